"""Hand-off of jobs to the external asynchronous worker."""

from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel

from app.core.config import settings
from app.services.youtube.exceptions import ExternalTransientFailure

logger = structlog.get_logger(__name__)


class DispatchRequest(BaseModel):
    """Payload handed to a worker. Results come back through the job callbacks."""

    tenant_id: int
    video_id: int | None
    job_id: int
    job_type: str
    access_token: str


class JobDispatcher(Protocol):
    async def dispatch(self, request: DispatchRequest) -> str | None:
        """Start the work and return the worker's execution reference, if any."""
        ...


class HttpJobDispatcher:
    """Posts dispatch requests to a workflow endpoint."""

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url or settings.dispatcher_url
        self.token = token or settings.dispatcher_token
        self._client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    async def dispatch(self, request: DispatchRequest) -> str | None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = await self._client.post(self.url, json=request.model_dump(), headers=headers)
        except httpx.TransportError as e:
            raise ExternalTransientFailure(f"Failed to reach job worker: {e}") from e

        if response.status_code >= 400:
            raise ExternalTransientFailure(
                f"Job worker rejected {request.job_type} job {request.job_id} with HTTP {response.status_code}"
            )

        # The worker has accepted the job; a missing or non-JSON body only loses the reference
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        execution_id = data.get("execution_id") or data.get("id")
        logger.info(
            "job_dispatched",
            job_id=request.job_id,
            job_type=request.job_type,
            execution_id=execution_id,
        )
        return str(execution_id) if execution_id is not None else None

    async def close(self) -> None:
        await self._client.aclose()
