"""Tests for the Gemini client, BaseAgent JSON handling and the classification schema."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from blok_platform.agents.base import AgentResult, BaseAgent, strip_code_fences
from blok_platform.domain.schemas import ClassificationSchema


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fake_settings():
    """Return a mock Settings object with a fake API key."""
    s = MagicMock()
    s.gemini_api_key = "fake-key-for-testing"
    s.gemini_model = "gemini-test"
    return s


def _generation_config(mock_genai) -> dict:
    call_kwargs = mock_genai.GenerativeModel.call_args
    return call_kwargs.kwargs["generation_config"]


# ===================================================================
# Classification schema
# ===================================================================


class TestClassificationSchema:
    def test_schema_lists_all_fields(self):
        schema = ClassificationSchema.model_json_schema()
        assert set(schema["properties"]) == {
            "intent",
            "priority",
            "routeTo",
            "suggestedResponse",
            "requiresHumanReview",
            "extractedData",
        }

    def test_extracted_data_defaults_empty(self):
        parsed = ClassificationSchema(
            intent="other",
            priority="low",
            routeTo="admin",
            suggestedResponse="",
            requiresHumanReview=True,
        )
        assert parsed.extractedData.maintenanceCategory == ""


# ===================================================================
# Gemini client: get_model
# ===================================================================


class TestGeminiClientGetModel:
    @patch("blok_platform.infra.gemini_client.get_settings", return_value=_fake_settings())
    @patch("blok_platform.infra.gemini_client.genai")
    def test_json_mode_with_nested_schema_is_inlined(self, mock_genai, _mock_settings):
        from blok_platform.infra.gemini_client import get_model, response_schema_for

        get_model(json_mode=True, response_schema=response_schema_for(ClassificationSchema))

        gen_config = _generation_config(mock_genai)
        assert gen_config["response_mime_type"] == "application/json"
        dumped = json.dumps(gen_config["response_schema"])
        assert "$ref" not in dumped
        assert "$defs" not in dumped
        assert '"title"' not in dumped
        extracted = gen_config["response_schema"]["properties"]["extractedData"]
        assert "maintenanceCategory" in extracted["properties"]

    def test_property_named_title_is_kept(self):
        from blok_platform.infra.gemini_client import response_schema_for

        class TicketDraft(BaseModel):
            title: str = "Fuga"
            default: int = 0

        schema = response_schema_for(TicketDraft)

        assert set(schema["properties"]) == {"title", "default"}
        assert "title" not in schema
        assert "default" not in schema["properties"]["title"]
        assert schema["properties"]["default"]["type"] == "integer"

    @patch("blok_platform.infra.gemini_client.get_settings", return_value=_fake_settings())
    @patch("blok_platform.infra.gemini_client.genai")
    def test_json_mode_without_schema(self, mock_genai, _mock_settings):
        from blok_platform.infra.gemini_client import get_model

        get_model(json_mode=True)

        gen_config = _generation_config(mock_genai)
        assert gen_config["response_mime_type"] == "application/json"
        assert "response_schema" not in gen_config

    @patch("blok_platform.infra.gemini_client.get_settings", return_value=_fake_settings())
    @patch("blok_platform.infra.gemini_client.genai")
    def test_default_model_and_temperature(self, mock_genai, _mock_settings):
        from blok_platform.infra.gemini_client import get_model

        get_model(temperature=0.3)

        call_kwargs = mock_genai.GenerativeModel.call_args.kwargs
        assert call_kwargs["model_name"] == "gemini-test"
        assert call_kwargs["generation_config"] == {"temperature": 0.3}
        mock_genai.configure.assert_called_once_with(api_key="fake-key-for-testing")


# ===================================================================
# BaseAgent: generate_json
# ===================================================================


class TestBaseAgentGenerateJson:
    async def test_schema_passthrough(self):
        agent = BaseAgent(agent_name="test_agent")
        dummy_schema = {"type": "object"}

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.success(data='{"a": 1}')
            result = await agent.generate_json(prompt="test", response_schema=dummy_schema)

        mock_gen.assert_called_once_with(
            prompt="test",
            system_instruction=None,
            json_mode=True,
            response_schema=dummy_schema,
        )
        assert result.ok and result.data == {"a": 1}

    async def test_fenced_json_parsed(self):
        agent = BaseAgent(agent_name="test_agent")

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.success(data='```json\n{"intent": "other"}\n```')
            result = await agent.generate_json(prompt="test")

        assert result.ok
        assert result.data == {"intent": "other"}

    async def test_malformed_json_returns_failure(self):
        agent = BaseAgent(agent_name="test_agent")

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.success(data="not json at all")
            result = await agent.generate_json(prompt="test")

        assert not result.ok
        assert "JSON parse error" in result.error

    async def test_failure_passes_through(self):
        agent = BaseAgent(agent_name="test_agent")
        failure = AgentResult.failure("timed out after 1s", timed_out=True)

        with patch.object(agent, "generate", new_callable=AsyncMock, return_value=failure):
            result = await agent.generate_json(prompt="test")

        assert result is failure


@pytest.mark.parametrize("raw,expected", [
    ('{"a": 1}', '{"a": 1}'),
    ('```json\n{"a": 1}\n```', '{"a": 1}'),
    ('```\n{"a": 1}\n```', '{"a": 1}'),
    ('  \n{"a": 1}\n  ', '{"a": 1}'),
    ("", ""),
    (None, ""),
])
def test_strip_code_fences(raw, expected):
    assert strip_code_fences(raw) == expected
