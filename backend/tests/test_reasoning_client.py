"""
Tests for the Anthropic reasoning client adapter.

Unit tests patch the SDK; the integration test calls the live API and only
runs with --run-integration and ANTHROPIC_API_KEY set.
"""

import os
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from services.errors import ReasoningEngineUnavailable
from services.reasoning_client import AnthropicReasoningClient


def _response(*blocks):
    return SimpleNamespace(content=list(blocks), stop_reason='end_turn')


class TestAnthropicReasoningClient:

    def test_missing_key_is_unavailable(self):
        client = AnthropicReasoningClient(api_key='')
        with pytest.raises(ReasoningEngineUnavailable):
            client.complete('system', 'user', 0.3)

    def test_construction_does_not_touch_sdk(self):
        with patch('services.reasoning_client.anthropic.Anthropic') as sdk:
            AnthropicReasoningClient(api_key='sk-test')
        sdk.assert_not_called()

    def test_complete_joins_text_blocks(self):
        with patch('services.reasoning_client.anthropic.Anthropic') as sdk:
            sdk.return_value.messages.create.return_value = _response(
                SimpleNamespace(type='text', text='{"recommendations": '),
                SimpleNamespace(type='thinking', thinking='...'),
                SimpleNamespace(type='text', text='[]}'),
            )
            client = AnthropicReasoningClient(api_key='sk-test', model='test-model', max_tokens=1234)

            text = client.complete('You are an analyst.', 'Analyze this.', 0.2)

        assert text == '{"recommendations": []}'
        sdk.assert_called_once_with(api_key='sk-test')
        sdk.return_value.messages.create.assert_called_once_with(
            model='test-model',
            max_tokens=1234,
            temperature=0.2,
            system='You are an analyst.',
            messages=[{'role': 'user', 'content': 'Analyze this.'}],
        )

    def test_sdk_client_reused(self):
        with patch('services.reasoning_client.anthropic.Anthropic') as sdk:
            sdk.return_value.messages.create.return_value = _response(SimpleNamespace(type='text', text='{}'))
            client = AnthropicReasoningClient(api_key='sk-test')
            client.complete('s', 'u', 0.3)
            client.complete('s', 'u', 0.2)

        assert sdk.call_count == 1

    def test_sdk_errors_propagate(self):
        with patch('services.reasoning_client.anthropic.Anthropic') as sdk:
            sdk.return_value.messages.create.side_effect = TimeoutError('read timed out')
            client = AnthropicReasoningClient(api_key='sk-test')

            with pytest.raises(TimeoutError):
                client.complete('s', 'u', 0.3)

    def test_model_name_defaults_from_config(self, monkeypatch):
        monkeypatch.setattr('services.reasoning_client.Config.AI_MODEL', 'configured-model')
        assert AnthropicReasoningClient(api_key='sk-test').model_name == 'configured-model'


@pytest.mark.integration
def test_live_completion_returns_json():
    api_key = os.getenv('ANTHROPIC_API_KEY')
    if not api_key:
        pytest.skip('ANTHROPIC_API_KEY not set')

    client = AnthropicReasoningClient(api_key=api_key, max_tokens=200)
    text = client.complete(
        'Respond with valid JSON only.',
        'Return {"ok": true} and nothing else.',
        0.0,
    )
    assert '"ok"' in text
