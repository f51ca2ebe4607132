from __future__ import annotations

from types import SimpleNamespace

import pytest

from larder.config import Settings
from larder.errors import ProviderError
from larder.services import openai_responses
from larder.services.openai_responses import _extract_response_text


def test_extract_prefers_output_text():
    response = SimpleNamespace(output_text='  {"meals": []} ', output=None)
    assert _extract_response_text(response) == '{"meals": []}'


def test_extract_joins_rest_payload_chunks():
    payload = {
        "output": [
            {"type": "reasoning", "content": None},
            {"type": "message", "content": [{"text": '{"meals":'}, {"text": " []}"}]},
        ]
    }
    assert _extract_response_text(payload) == '{"meals": []}'


def test_unconfigured_client_raises(monkeypatch):
    monkeypatch.setattr(openai_responses, "get_settings", lambda: Settings(openai_api_key=None))
    with pytest.raises(ProviderError):
        openai_responses.call_openai_responses(
            model="gpt-5-mini", system_prompt="s", user_prompt="u", max_output_tokens=10
        )
