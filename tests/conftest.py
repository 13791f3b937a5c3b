import json
import os
from typing import Callable, List, Optional

import httpx
import pytest

# Deterministic, offline-friendly tests
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("PROXY_BASE_URL", "http://proxy.test")
os.environ.setdefault("PROXY_API_KEY", "proxy-key")
os.environ.setdefault("LANGFUSE_ENABLED", "0")

from services.llm_generate.app.completion import CompletionClient  # noqa: E402
from shared.models import ChatMessage  # noqa: E402
from shared.settings import Settings  # noqa: E402

VACATION_SNIPPET = {
    "text": "Los empleados tienen 15 días hábiles de vacaciones pagadas por año.",
    "file": {"name": "Manual_RH.pdf", "webUrl": "https://sp.example/Manual_RH.pdf"},
}
VACATION_FILE = {"name": "Manual_RH.pdf", "webUrl": "https://sp.example/Manual_RH.pdf"}


def make_settings(**overrides) -> Settings:
    base = dict(
        _env_file=None,
        openai_api_key="sk-test",
        proxy_base_url="http://proxy.test",
        proxy_api_key="proxy-key",
        langfuse_enabled=False,
    )
    base.update(overrides)
    return Settings(**base)


class FakeCompletionClient(CompletionClient):
    """Returns scripted answers in order; ``None`` simulates a provider error."""

    provider = "fake"

    def __init__(self, answers: Optional[List[Optional[str]]] = None) -> None:
        super().__init__(model="fake-model", temperature=0.2)
        self.answers = list(answers or [])
        self.calls: List[dict] = []

    async def _create(self, messages: List[ChatMessage], temperature: float) -> str:
        self.calls.append({"messages": messages, "temperature": temperature})
        answer = self.answers.pop(0) if self.answers else ""
        if answer is None:
            raise RuntimeError("provider unavailable")
        return answer


class ProxyRecorder:
    """httpx MockTransport handler that records calls to the retrieval proxy."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def body(self, i: int = 0) -> dict:
        return json.loads(self.requests[i].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def proxy_returning(payload: dict, status: int = 200) -> ProxyRecorder:
    return ProxyRecorder(lambda request: httpx.Response(status, json=payload))


@pytest.fixture
def settings() -> Settings:
    return make_settings()
