"""
Shared pytest fixtures and configuration for the entire test suite.
Applies to all subdirectories: unit/, e2e/
"""

import sys
import os
import pytest

# ── Ensure backend is importable from every pytest session ──────────────────
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# Minimal env so that Pydantic Settings validates without a real provider key
os.environ.setdefault("LLM_PROVIDER", "OPENAI")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")


# ── Scripted model client ────────────────────────────────────────────────────

class StubModelClient:
    """Model client double that replays scripted completions.

    Each entry of *responses* is returned (or raised, if it is an exception)
    for one request; the last entry repeats once the script runs out.
    """

    def __init__(self, responses):
        if isinstance(responses, (str, BaseException)):
            responses = [responses]
        self.responses = list(responses)
        self.calls = []

    def _next(self, messages, temperature, model, timeout):
        self.calls.append({
            "messages": list(messages),
            "temperature": temperature,
            "model": model,
            "timeout": timeout,
        })
        item = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(item, BaseException):
            raise item
        return item

    def complete(self, messages, *, temperature, model=None, timeout=None):
        return self._next(messages, temperature, model, timeout)

    async def acomplete(self, messages, *, temperature, model=None, timeout=None):
        return self._next(messages, temperature, model, timeout)

    @property
    def system_prompts(self):
        return [call["messages"][0].content for call in self.calls]

    @property
    def user_prompts(self):
        return [call["messages"][1].content for call in self.calls]


@pytest.fixture
def stub_client():
    """Factory: ``stub_client(["...", "..."])`` -> StubModelClient."""
    return StubModelClient


@pytest.fixture
def make_extractor():
    """Factory returning ``(extractor, client)`` for scripted responses."""
    from quizgen.services.llm_service.structured_invoker import StructuredExtractor

    def _make(responses, lenient_json=False):
        client = StubModelClient(responses)
        return StructuredExtractor(client=client, lenient_json=lenient_json), client

    return _make
