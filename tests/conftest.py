import json
import random
from typing import Callable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from deepchat.config import Settings
from deepchat.db.session import Database
from deepchat.db.store import ConversationStore
from deepchat.gateways.mock import MockGateway
from deepchat.gateways.upstream import CompletionGateway
from deepchat.main import create_app

UPSTREAM_URL = "https://upstream.test/v1/chat/completions"


def sse_line(content: str) -> bytes:
    event = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return ("data: " + json.dumps(event, ensure_ascii=False) + "\n\n").encode("utf-8")


def sse_body(*fragments: str, done: bool = True) -> bytes:
    body = b"".join(sse_line(f) for f in fragments)
    if done:
        body += b"data: [DONE]\n\n"
    return body


def envelope(content: str, role: str = "assistant") -> dict:
    return {
        "id": "cmpl-1",
        "object": "chat.completion",
        "model": "deepseek-v3",
        "choices": [{"index": 0, "message": {"role": role, "content": content}, "finish_reason": "stop"}],
    }


def byte_stream(chunks: List[bytes], error: Optional[Exception] = None):
    async def gen():
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    return gen()


class FakeUpstream:
    """httpx.MockTransport handler recording requests; set ``handler`` per test."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json=envelope("Hi there")
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def reply_json(self, body: dict, status_code: int = 200) -> None:
        self.handler = lambda request: httpx.Response(status_code, json=body)

    def reply_stream(self, chunks: List[bytes], error: Optional[Exception] = None) -> None:
        self.handler = lambda request: httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=byte_stream(chunks, error),
        )

    def fail(self, exc_factory: Callable[[httpx.Request], Exception]) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_factory(request)

        self.handler = handler

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        infini_ai_api_key="sk-test-0000000000000000000000",
        completion_url=UPSTREAM_URL,
        log_level="WARNING",
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def gateway(settings, upstream) -> CompletionGateway:
    return CompletionGateway(settings, transport=httpx.MockTransport(upstream))


@pytest.fixture
def app(settings, gateway):
    app = create_app(settings)
    app.state.gateway = gateway
    app.state.mock_gateway = MockGateway(random.Random(7))
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
async def store(settings):
    database = Database(settings.database_url)
    yield ConversationStore(database)
    await database.dispose()
