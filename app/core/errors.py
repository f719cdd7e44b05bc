"""Structured service errors shared by the credential, ingestion and search layers."""

from datetime import datetime
from typing import Any, Literal

Action = Literal["reconnect", "wait", "retry"]


class ServiceError(Exception):
    """Base exception carrying a stable kind, a human message and retry hints.

    Callers decide between retry, terminal failure and user notification
    from ``kind``, ``retryable`` and ``retry_after``, never from the message.
    """

    kind: str = "service_error"
    retryable: bool = False
    default_action: Action | None = None

    def __init__(
        self,
        message: str,
        *,
        retry_after: datetime | None = None,
        action: Action | None = None,
    ) -> None:
        self.message = message
        self.retry_after = retry_after
        self.action = action or self.default_action
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses and job error details."""
        return {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "retry_after": self.retry_after.isoformat() if self.retry_after else None,
            "action": self.action,
        }
