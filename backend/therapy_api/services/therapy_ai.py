from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Optional

from openai import OpenAIError
from pydantic import ValidationError

from therapy_api.config import (
    THERAPEUTIC_SYSTEM_PROMPT, ANALYSIS_SYSTEM_PROMPT, ANALYSIS_GUIDELINE, FALLBACK_REPLY,
)
from therapy_api.schemas import MessageAnalysis
from therapy_api.services.json_extract import parse_model_json, Parsed
from therapy_api.services.openai_chat import ChatModel, messages_for_openai

logger = logging.getLogger(__name__)


def default_analysis() -> MessageAnalysis:
    return MessageAnalysis()


@dataclass
class TherapyReply:
    response: str
    analysis: MessageAnalysis

    def message_metadata(self) -> Dict[str, Any]:
        """Metadata stored on the assistant message that carries this reply."""
        return {
            "analysis": self.analysis.model_dump(by_alias=True),
            "currentGoal": None,
            "progress": {
                "emotionalState": self.analysis.emotional_state,
                "riskLevel": self.analysis.risk_level,
            },
        }


async def analyze_message(model: ChatModel, message: str) -> MessageAnalysis:
    """
    Ask the model for a structured reading of `message`.
    Any failure (call, parse or shape) yields the neutral default.
    """
    user_prompt = (
        "Analyse the following message and output only a JSON object that follows the schema.\n\n"
        f"[Message]\n---\n{message}\n---\n\n"
        f"[JSON schema (required)]\n{json.dumps(ANALYSIS_GUIDELINE, indent=2)}"
    )
    messages = [
        {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
    try:
        raw = await model.complete(messages, json_mode=True)
    except OpenAIError as e:
        logger.warning("Model analysis call failed, using neutral analysis: %s", e)
        return default_analysis()

    result = parse_model_json(raw)
    if not isinstance(result, Parsed):
        logger.warning("Model analysis unparseable, using neutral analysis: %s", result.reason)
        return default_analysis()
    if not isinstance(result.value, dict):
        logger.warning("Model analysis is not an object, using neutral analysis")
        return default_analysis()
    try:
        return MessageAnalysis.model_validate(result.value)
    except ValidationError as e:
        logger.warning("Model analysis has the wrong shape, using neutral analysis: %s", e)
        return default_analysis()


async def generate_reply(
    model: ChatModel,
    message: str,
    history: List[Dict[str, str]],
    analysis: MessageAnalysis,
    *,
    system_prompt: Optional[str] = None,
) -> str:
    messages = messages_for_openai(system_prompt or THERAPEUTIC_SYSTEM_PROMPT, history)
    messages.append({
        "role": "user",
        "content": (
            f"{message}\n\n"
            f"[Analysis of this message]\n{analysis.model_dump_json(by_alias=True)}\n\n"
            "Respond empathetically, safely and supportively."
        ),
    })
    try:
        reply = await model.complete(messages)
    except OpenAIError as e:
        logger.warning("Model reply call failed, using fallback reply: %s", e)
        return FALLBACK_REPLY
    return reply or FALLBACK_REPLY


async def generate_therapeutic_response(
    model: ChatModel,
    message: str,
    history: List[Dict[str, str]],
    *,
    system_prompt: Optional[str] = None,
) -> TherapyReply:
    """
    Analysis call followed by reply call.

    `history` holds the turns before `message`, oldest first, as
    {"role", "content"} dicts. Never raises on model failures: both calls
    degrade to fixed values so the caller always has a reply to return.
    """
    analysis = await analyze_message(model, message)
    response = await generate_reply(model, message, history, analysis, system_prompt=system_prompt)
    return TherapyReply(response=response, analysis=analysis)


SESSION_ANALYSIS_GUIDELINE = {
    "themes": ["string"],
    "emotionalSummary": "string",
    "riskFindings": ["string"],
    "followUpSuggestions": ["string"],
}

RECOMMENDATION_GUIDELINE = [
    {
        "name": "string",
        "reason": "string",
        "expectedBenefit": "string",
        "duration": "string",
        "difficulty": "easy|medium|hard",
    }
]


async def analyze_session(model: ChatModel, content: str) -> Optional[Dict[str, Any]]:
    """Summarise a whole session from its notes or transcript. None when nothing usable comes back."""
    if not content.strip():
        return None
    messages = [
        {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
        {"role": "user", "content": (
            f"Analyse the following therapy session:\n\n{content}\n\n"
            f"Return JSON:\n{json.dumps(SESSION_ANALYSIS_GUIDELINE, indent=2)}"
        )},
    ]
    try:
        raw = await model.complete(messages, json_mode=True)
    except OpenAIError as e:
        logger.warning("Session analysis call failed: %s", e)
        return None
    result = parse_model_json(raw)
    if isinstance(result, Parsed) and isinstance(result.value, dict):
        return result.value
    return None


async def generate_recommendations(
    model: ChatModel, mood: float, context: Optional[str] = None
) -> List[Dict[str, Any]]:
    """3-5 activity suggestions for a mood score; empty list when the model gives nothing usable."""
    messages = [
        {"role": "system", "content": "You suggest short wellbeing activities. Output JSON only."},
        {"role": "user", "content": (
            f"Provide 3-5 activity recommendations for a person with a mood score of {mood} (0-100).\n"
            f"Context: {context or 'none'}\n"
            f"Return a JSON array:\n{json.dumps(RECOMMENDATION_GUIDELINE, indent=2)}"
        )},
    ]
    try:
        raw = await model.complete(messages)
    except OpenAIError as e:
        logger.warning("Recommendation call failed: %s", e)
        return []
    result = parse_model_json(raw)
    if not isinstance(result, Parsed):
        return []
    value = result.value
    # tolerate {"recommendations": [...]}
    if isinstance(value, dict):
        value = value.get("recommendations", [])
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
