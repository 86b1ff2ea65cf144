"""
Tests for the text-generation client (Anthropic SDK faked, no network)
"""

from decimal import Decimal

import anthropic
import httpx
import pytest

from app.config import settings
from app.errors import UpstreamGenerationError
from app.models import AIUsageLog
from app.services.llm_client import LLMClient, calculate_api_cost
from app.services.monitoring import reset_llm_breaker

from factories import FakeAnthropic, fake_message

GAP_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "priority": {"type": "string", "enum": ["critical", "high", "medium"]},
    },
    "required": ["title", "priority"],
}


def _connection_error():
    return anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


class TestGenerateText:

    def test_returns_joined_text(self):
        fake = FakeAnthropic(fake_message(text="  HPD elevator violations ...  "))
        llm = LLMClient(client=fake, model="claude-haiku-4-5-20251001")

        text = llm.generate_text("system", "user", feature="knowledge_entry")

        assert text == "HPD elevator violations ..."
        call = fake.calls[0]
        assert call["model"] == "claude-haiku-4-5-20251001"
        assert call["system"] == "system"
        assert call["messages"] == [{"role": "user", "content": "user"}]

    def test_records_usage_when_session_given(self, db_session):
        fake = FakeAnthropic(fake_message(text="content", input_tokens=1000, output_tokens=500))
        llm = LLMClient(client=fake, model="claude-sonnet-4-5-20250929")

        llm.generate_text("system", "user", feature="knowledge_entry", db=db_session,
                          metadata={"candidate_id": 7})

        log = db_session.query(AIUsageLog).one()
        assert log.feature == "knowledge_entry"
        assert log.total_tokens == 1500
        assert log.estimated_cost_usd == Decimal("0.010500")
        assert log.metadata_ == {"candidate_id": 7}

    def test_empty_completion_is_failure(self):
        llm = LLMClient(client=FakeAnthropic(fake_message(text="   ")))

        with pytest.raises(UpstreamGenerationError):
            llm.generate_text("system", "user", feature="knowledge_entry")

    def test_api_error_is_failure(self):
        llm = LLMClient(client=FakeAnthropic(_connection_error()))

        with pytest.raises(UpstreamGenerationError) as exc_info:
            llm.generate_text("system", "user", feature="knowledge_entry")

        assert exc_info.value.feature == "knowledge_entry"

    def test_unconfigured_client(self):
        llm = LLMClient(client=FakeAnthropic(fake_message(text="unused")))
        llm.client = None

        with pytest.raises(UpstreamGenerationError, match="not configured"):
            llm.generate_text("system", "user", feature="knowledge_entry")

    def test_open_circuit_skips_upstream(self, monkeypatch):
        monkeypatch.setattr(settings, "circuit_breaker_fail_max", 2)
        reset_llm_breaker()
        fake = FakeAnthropic(_connection_error())
        llm = LLMClient(client=fake)

        for _ in range(4):
            with pytest.raises(UpstreamGenerationError):
                llm.generate_text("system", "user", feature="knowledge_entry")

        assert len(fake.calls) == 2


class TestGenerateStructured:

    def test_forced_tool_call(self):
        payload = {"title": "HPD Elevator Assessment Guide", "priority": "high"}
        fake = FakeAnthropic(fake_message(tool_name="knowledge_gap", tool_input=payload))
        llm = LLMClient(client=fake)

        result = llm.generate_structured("system", "user", tool_name="knowledge_gap",
                                         input_schema=GAP_SCHEMA, feature="gap_summary")

        assert result == payload
        call = fake.calls[0]
        assert call["tool_choice"] == {"type": "tool", "name": "knowledge_gap"}
        assert call["tools"][0]["input_schema"] == GAP_SCHEMA

    def test_missing_tool_call(self):
        llm = LLMClient(client=FakeAnthropic(fake_message(text="I cannot do that")))

        with pytest.raises(UpstreamGenerationError, match="No knowledge_gap tool call"):
            llm.generate_structured("system", "user", tool_name="knowledge_gap",
                                    input_schema=GAP_SCHEMA, feature="gap_summary")

    def test_non_object_payload(self):
        llm = LLMClient(client=FakeAnthropic(fake_message(tool_name="knowledge_gap", tool_input="high")))

        with pytest.raises(UpstreamGenerationError, match="Malformed"):
            llm.generate_structured("system", "user", tool_name="knowledge_gap",
                                    input_schema=GAP_SCHEMA, feature="gap_summary")

    def test_missing_required_field(self):
        fake = FakeAnthropic(fake_message(tool_name="knowledge_gap", tool_input={"title": "x"}))
        llm = LLMClient(client=fake)

        with pytest.raises(UpstreamGenerationError, match="priority"):
            llm.generate_structured("system", "user", tool_name="knowledge_gap",
                                    input_schema=GAP_SCHEMA, feature="gap_summary")


def test_calculate_api_cost():
    assert calculate_api_cost("claude-sonnet-4-5-20250929", 1000, 500) == Decimal("0.010500")
    assert calculate_api_cost("unknown-model", 1000, 0) == Decimal("0.003000")
