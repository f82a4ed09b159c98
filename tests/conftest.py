import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.completion_service import (
    CompletionClient,
    CompletionResult,
    get_completion_client,
)
from app.services.session_service import SessionManager, get_session_manager
from app.services.state_service import InMemoryStateStore, get_state_store


class FakeCompletionClient:
    """Stands in for CompletionClient in session tests; records what was sent."""

    model = "test-model"
    provider = "openai"

    def __init__(self, replies: Optional[List[Any]] = None):
        self.replies = list(replies or ["Generated text"])
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages, **kwargs) -> CompletionResult:
        self.calls.append([m.model_dump() if hasattr(m, "model_dump") else m for m in messages])
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return CompletionResult(text=reply, model=self.model, provider=self.provider)


def completion_body(content: Optional[str] = "Hello class", **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    body.update(extra)
    return body


@pytest.fixture
def make_client() -> Callable[..., CompletionClient]:
    """Build a real CompletionClient whose HTTP calls go to a handler function."""

    def _make(handler, **kwargs) -> CompletionClient:
        kwargs.setdefault("api_key", "sk-test")
        kwargs.setdefault("base_url", "https://api.openai.com/v1")
        kwargs.setdefault("model", "gpt-test")
        kwargs.setdefault("timeout_ms", 5000)
        return CompletionClient(transport=httpx.MockTransport(handler), **kwargs)

    return _make


@pytest.fixture
def recorded_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def ok_handler(recorded_requests):
    def _handler(request: httpx.Request) -> httpx.Response:
        recorded_requests.append(request)
        return httpx.Response(200, json=completion_body(usage={"total_tokens": 12}))

    return _handler


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def manager() -> SessionManager:
    return SessionManager()


@pytest.fixture
def api(store, fake_client, manager):
    """TestClient with in-memory storage and a fake completion client."""
    app.dependency_overrides[get_state_store] = lambda: store
    app.dependency_overrides[get_completion_client] = lambda: fake_client
    app.dependency_overrides[get_session_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


def request_json(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content)
