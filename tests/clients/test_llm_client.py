"""Unit tests for the LLM client"""
from unittest.mock import Mock

import pytest

from qa_dashboard.clients.llm_client import STUB_REPLY, LLMClient


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("qa_dashboard.clients.llm_client.time.sleep", lambda seconds: None)


def _completion(text):
    resp = Mock()
    resp.choices = [Mock()]
    resp.choices[0].message.content = text
    return resp


class TestLLMClient:

    def test_stub_reply_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        llm = LLMClient()

        assert not llm.enabled
        assert llm.status_label() == "AI: OFF (no key)"
        assert llm.chat([{"role": "user", "content": "hi"}]) == (STUB_REPLY, None)

    def test_chat(self):
        llm = LLMClient(api_key="sk-test", model="gpt-4o-mini")
        llm._client = Mock()
        llm._client.chat.completions.create.return_value = _completion("  Hello  ")

        assert llm.chat([{"role": "user", "content": "hi"}]) == ("Hello", None)
        kwargs = llm._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    def test_retries_then_reports_error(self):
        llm = LLMClient(api_key="sk-test")
        llm._client = Mock()
        llm._client.chat.completions.create.side_effect = RuntimeError("rate limited")

        text, error = llm.chat([{"role": "user", "content": "hi"}], retries=2)

        assert text == ""
        assert error == "rate limited"
        assert llm._client.chat.completions.create.call_count == 3

    def test_recovers_after_failure(self):
        llm = LLMClient(api_key="sk-test")
        llm._client = Mock()
        llm._client.chat.completions.create.side_effect = [RuntimeError("boom"), _completion("ok")]

        assert llm.chat([{"role": "user", "content": "hi"}]) == ("ok", None)
