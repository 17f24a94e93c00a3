"""
Tests for the shared analysis + reply generation.

Usage:
    pytest backend/tests/test_therapy_ai.py -v
"""
import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from conftest import FakeChatModel, ANXIOUS_ANALYSIS, DEFAULT_REPLY, stub_openai_client
from therapy_api.config import FALLBACK_REPLY, THERAPEUTIC_SYSTEM_PROMPT
from therapy_api.services.openai_chat import ChatModel, messages_for_openai, MAX_TURNS
from therapy_api.services.therapy_ai import (
    analyze_message, generate_therapeutic_response, analyze_session, generate_recommendations,
)


@pytest.mark.asyncio
async def test_analysis_is_parsed_from_model_json():
    analysis = await analyze_message(FakeChatModel(), "work is crushing me")
    assert analysis.emotional_state == "anxious"
    assert analysis.risk_level == 3
    assert analysis.themes == ["work", "sleep"]


@pytest.mark.asyncio
async def test_fenced_analysis_is_accepted():
    model = FakeChatModel(analysis="```json\n" + json.dumps(ANXIOUS_ANALYSIS) + "\n```")
    analysis = await analyze_message(model, "hi")
    assert analysis.recommended_approach == "grounding"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [
    "not json at all",
    "[1, 2, 3]",
    '{"riskLevel": "very high"}',
])
async def test_unusable_analysis_falls_back_to_neutral(raw):
    analysis = await analyze_message(FakeChatModel(analysis=raw), "hi")
    assert analysis.emotional_state == "neutral"
    assert analysis.risk_level == 0
    assert analysis.recommended_approach == "supportive"


@pytest.mark.asyncio
async def test_partial_analysis_keeps_defaults_for_missing_fields():
    model = FakeChatModel(analysis='{"emotionalState": "sad"}')
    analysis = await analyze_message(model, "hi")
    assert analysis.emotional_state == "sad"
    assert analysis.themes == []
    assert analysis.progress_indicators == []


@pytest.mark.asyncio
async def test_response_uses_analysis_then_reply():
    model = FakeChatModel()
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "noted"}]
    reply = await generate_therapeutic_response(model, "now", history)

    assert reply.response == DEFAULT_REPLY
    assert reply.analysis.emotional_state == "anxious"
    assert [c["json_mode"] for c in model.calls] == [True, False]

    sent = model.calls[1]["messages"]
    assert sent[0] == {"role": "system", "content": THERAPEUTIC_SYSTEM_PROMPT}
    assert sent[1:3] == history
    assert sent[-1]["role"] == "user"
    assert sent[-1]["content"].startswith("now")


@pytest.mark.asyncio
async def test_custom_system_prompt_is_used():
    model = FakeChatModel()
    await generate_therapeutic_response(model, "hi", [], system_prompt="Be brief.")
    assert model.calls[1]["messages"][0] == {"role": "system", "content": "Be brief."}


@pytest.mark.asyncio
async def test_model_failure_gives_fallbacks():
    reply = await generate_therapeutic_response(FakeChatModel(fail=True), "hi", [])
    assert reply.response == FALLBACK_REPLY
    assert reply.analysis.emotional_state == "neutral"


@pytest.mark.asyncio
async def test_empty_reply_gives_fallback():
    reply = await generate_therapeutic_response(FakeChatModel(reply=""), "hi", [])
    assert reply.response == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_message_metadata_shape():
    reply = await generate_therapeutic_response(FakeChatModel(), "hi", [])
    meta = reply.message_metadata()
    assert meta["analysis"] == ANXIOUS_ANALYSIS
    assert meta["currentGoal"] is None
    assert meta["progress"] == {"emotionalState": "anxious", "riskLevel": 3}


def test_history_is_truncated_to_recent_turns():
    history = [{"role": "user", "content": str(i)} for i in range(MAX_TURNS * 2 + 10)]
    messages = messages_for_openai("sys", history)
    assert messages[0] == {"role": "system", "content": "sys"}
    assert len(messages) == MAX_TURNS * 2 + 1
    assert messages[-1]["content"] == history[-1]["content"]


@pytest.mark.asyncio
async def test_session_analysis_needs_content():
    model = FakeChatModel()
    assert await analyze_session(model, "  ") is None
    assert model.calls == []


@pytest.mark.asyncio
async def test_session_analysis_returns_object():
    model = FakeChatModel(analysis='{"themes": ["grief"], "emotionalSummary": "low"}')
    assert await analyze_session(model, "we talked about loss") == {
        "themes": ["grief"], "emotionalSummary": "low",
    }


@pytest.mark.asyncio
async def test_recommendations_accept_array_or_wrapped_object():
    items = [{"name": "Walk", "difficulty": "easy"}, "junk"]
    assert await generate_recommendations(FakeChatModel(reply=json.dumps(items)), 30) == [items[0]]

    wrapped = json.dumps({"recommendations": [{"name": "Journal"}]})
    assert await generate_recommendations(FakeChatModel(reply=wrapped), 30) == [{"name": "Journal"}]


@pytest.mark.asyncio
async def test_recommendations_empty_on_failure():
    assert await generate_recommendations(FakeChatModel(fail=True), 30) == []
    assert await generate_recommendations(FakeChatModel(reply="try walking"), 30) == []


class TestChatModel:

    @pytest.mark.asyncio
    async def test_returns_stripped_content(self):
        choice = SimpleNamespace(message=SimpleNamespace(content="  hello  "))
        model = ChatModel(client=stub_openai_client([choice]))
        assert await model.complete([{"role": "user", "content": "hi"}]) == "hello"

    @pytest.mark.asyncio
    async def test_empty_choices_is_a_failed_call(self):
        model = ChatModel(client=stub_openai_client([]))
        with pytest.raises(OpenAIError):
            await model.complete([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_empty_choices_degrade_to_fallbacks(self):
        model = ChatModel(client=stub_openai_client([]))
        reply = await generate_therapeutic_response(model, "hi", [])
        assert reply.response == FALLBACK_REPLY
        assert reply.analysis.emotional_state == "neutral"
