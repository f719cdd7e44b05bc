"""Test doubles shared across test modules."""

from typing import Callable

import httpx

from app.services.ingestion.dispatcher import DispatchRequest

EMBEDDING_DIMENSIONS = 4

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingDispatcher:
    """Job dispatcher that records hand-offs instead of calling a worker."""

    def __init__(self) -> None:
        self.requests: list[DispatchRequest] = []

    async def dispatch(self, request: DispatchRequest) -> str | None:
        self.requests.append(request)
        return f"exec-{request.job_id}"


def mock_http_client(handler: Handler) -> httpx.AsyncClient:
    """An AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def token_endpoint(calls: list[httpx.Request], access_token: str = "fresh-access-token") -> Handler:
    """Token endpoint that records calls and issues a one-hour access token."""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={"access_token": access_token, "expires_in": 3600, "token_type": "Bearer"},
        )

    return handler


def unit_vector(*components: float) -> list[float]:
    """Pad ``components`` with zeros to the test embedding size."""
    return list(components) + [0.0] * (EMBEDDING_DIMENSIONS - len(components))
