from __future__ import annotations
import asyncio
from typing import List, Dict, Optional
from fastapi import Request
from openai import OpenAI, OpenAIError

from therapy_api.config import OPENAI_MODEL, OPENAI_TIMEOUT_S

MAX_TURNS = 12


class ChatModel:
    """
    Thin async wrapper over the OpenAI chat-completions API.

    The SDK client is created on first use, so a missing OPENAI_API_KEY
    shows up as a failed call (which callers degrade from) instead of a
    start-up crash.
    """

    def __init__(self, model: str = OPENAI_MODEL, timeout: float = OPENAI_TIMEOUT_S,
                 client: Optional[OpenAI] = None):
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    async def complete(self, messages: List[Dict[str, str]], *, json_mode: bool = False) -> str:
        kwargs = {"model": self.model, "messages": messages, "timeout": self.timeout}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        def _call():
            return self.client.chat.completions.create(**kwargs)

        resp = await asyncio.to_thread(_call)
        # an empty completion is a failed call, so callers take their fallback path
        choices = getattr(resp, "choices", None)
        if not choices or getattr(choices[0], "message", None) is None:
            raise OpenAIError("model returned no choices")
        return (choices[0].message.content or "").strip()


def messages_for_openai(system_prompt: str, history: List[Dict[str, str]]) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    truncated = history[-(MAX_TURNS * 2):]
    messages.extend({"role": m["role"], "content": m["content"]} for m in truncated)
    return messages


def get_chat_model(request: Request) -> ChatModel:
    return request.app.state.chat_model
