"""
Unit tests for backend/quizgen/services/llm_service/llm.py and client.py
Tests: provider registry + instance cache, unknown-provider fallback, message
conversion, response text extraction, transport-error wrapping, MyOpenLM
payload and single-request error handling
Provider constructors are patched, so no network is required.
"""

import sys
import os
import pytest
from unittest.mock import MagicMock, patch

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

import quizgen.services.llm_service.llm as _llm
from quizgen.services.llm_service.client import (
    ChatMessage,
    ChatModelClient,
    response_text,
    to_langchain_messages,
)
from quizgen.services.llm_service.errors import CompletionTransportError
from quizgen.services.llm_service.llm import MyOpenLM, clear_llm_cache, get_llm


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_llm_cache()
    yield
    clear_llm_cache()


@pytest.fixture
def fake_builder(monkeypatch):
    """Replace every provider builder with a MagicMock factory."""
    _llm._register_providers()
    builder = MagicMock(side_effect=lambda **kw: MagicMock(name=f"llm-{kw['model']}"))
    for name in list(_llm._PROVIDERS):
        monkeypatch.setitem(_llm._PROVIDERS, name, builder)
    return builder


# ────────────────────────────────────────────────────────────────────────────
# Provider factory
# ────────────────────────────────────────────────────────────────────────────

class TestGetLlm:

    def test_builder_receives_parameters(self, fake_builder):
        get_llm(temperature=0.4, model="m1", timeout=12, max_tokens=50, provider="OPENAI")
        fake_builder.assert_called_once_with(model="m1", temperature=0.4, timeout=12, max_tokens=50)

    def test_instances_cached(self, fake_builder):
        a = get_llm(temperature=0.4, model="m1")
        b = get_llm(temperature=0.4, model="m1")
        assert a is b
        assert fake_builder.call_count == 1

    def test_different_temperature_new_instance(self, fake_builder):
        a = get_llm(temperature=0.4, model="m1")
        b = get_llm(temperature=0.5, model="m1")
        assert a is not b

    def test_default_timeout_from_settings(self, fake_builder):
        get_llm(temperature=0.4)
        assert fake_builder.call_args.kwargs["timeout"] == _llm.settings.LLM_TIMEOUT

    def test_unknown_provider_falls_back(self, fake_builder, caplog):
        get_llm(temperature=0.4, provider="nope")
        assert fake_builder.call_count == 1
        assert any("falling back" in r.message for r in caplog.records)

    def test_cache_bounded(self, fake_builder):
        for i in range(_llm._LLM_CACHE_MAX + 5):
            get_llm(temperature=0.1, model=f"m{i}")
        assert len(_llm._llm_cache) == _llm._LLM_CACHE_MAX

    def test_openai_builder_requests_single_choice(self):
        with patch.object(_llm, "ChatOpenAI") as chat_openai:
            _llm._build_openai(model=None, temperature=0.7, timeout=30, max_tokens=100)
        kwargs = chat_openai.call_args.kwargs
        assert kwargs["n"] == 1
        assert kwargs["model"] == _llm.settings.OPENAI_MODEL
        assert kwargs["temperature"] == 0.7
        assert kwargs["timeout"] == 30


# ────────────────────────────────────────────────────────────────────────────
# Chat model client
# ────────────────────────────────────────────────────────────────────────────

class TestMessages:

    def test_roles_mapped(self):
        messages = to_langchain_messages([
            ChatMessage(role="system", content="s"),
            ChatMessage(role="user", content="u"),
            ChatMessage(role="assistant", content="a"),
        ])
        assert [type(m) for m in messages] == [SystemMessage, HumanMessage, AIMessage]
        assert [m.content for m in messages] == ["s", "u", "a"]

    def test_response_text_from_message(self):
        assert response_text(AIMessage(content="hello")) == "hello"

    def test_response_text_from_plain_string(self):
        assert response_text("hello") == "hello"

    def test_response_text_from_parts(self):
        assert response_text(AIMessage(content=[{"type": "text", "text": "a"}, "b"])) == "ab"


class TestChatModelClient:

    MESSAGES = [ChatMessage(role="system", content="s"), ChatMessage(role="user", content="u")]

    def test_complete_returns_stripped_text(self):
        fake = MagicMock()
        fake.invoke.return_value = AIMessage(content="  {\"a\": 1}\n")
        with patch("quizgen.services.llm_service.client.get_llm", return_value=fake) as factory:
            text = ChatModelClient(provider="OLLAMA").complete(self.MESSAGES, temperature=0.3, model="m", timeout=5)
        assert text == '{"a": 1}'
        assert factory.call_args.kwargs["provider"] == "OLLAMA"
        assert factory.call_args.kwargs["temperature"] == 0.3

    def test_provider_error_wrapped(self):
        fake = MagicMock()
        fake.invoke.side_effect = RuntimeError("429 Too Many Requests")
        with patch("quizgen.services.llm_service.client.get_llm", return_value=fake):
            with pytest.raises(CompletionTransportError) as info:
                ChatModelClient().complete(self.MESSAGES, temperature=0.3)
        assert "429" in str(info.value)
        assert info.value.reason == "transport-error"

    @pytest.mark.asyncio
    async def test_acomplete(self):
        fake = MagicMock()

        async def _ainvoke(messages):
            return AIMessage(content="ok")

        fake.ainvoke.side_effect = _ainvoke
        with patch("quizgen.services.llm_service.client.get_llm", return_value=fake):
            assert await ChatModelClient().acomplete(self.MESSAGES, temperature=0.1) == "ok"


# ────────────────────────────────────────────────────────────────────────────
# MyOpenLM
# ────────────────────────────────────────────────────────────────────────────

class TestMyOpenLM:

    def test_payload(self):
        lm = MyOpenLM(model_name="tiny", temperature=0.2, max_tokens=64, timeout=5)
        assert lm._build_payload("hi") == {
            "message": "hi",
            "model": "tiny",
            "temperature": 0.2,
            "max_tokens": 64,
        }

    def test_call_returns_response_text(self):
        lm = MyOpenLM(model_name="tiny", timeout=5)
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"data": {"response": "pong"}}
        with patch.object(_llm.requests, "post", return_value=resp) as post:
            assert lm._call("ping") == "pong"
        assert post.call_args.kwargs["timeout"] == 5

    def test_connection_error_raised_after_one_request(self):
        lm = MyOpenLM(model_name="tiny", timeout=5)
        err = _llm.requests.exceptions.ConnectionError("down")
        with patch.object(_llm.requests, "post", side_effect=err) as post:
            with pytest.raises(_llm.requests.exceptions.ConnectionError):
                lm._call("ping")
        assert post.call_count == 1

    def test_http_error_not_retried(self):
        lm = MyOpenLM(model_name="tiny", timeout=5)
        resp = MagicMock(status_code=503)
        resp.raise_for_status.side_effect = _llm.requests.exceptions.HTTPError("503")
        with patch.object(_llm.requests, "post", return_value=resp) as post:
            with pytest.raises(_llm.requests.exceptions.HTTPError):
                lm._call("ping")
        assert post.call_count == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
