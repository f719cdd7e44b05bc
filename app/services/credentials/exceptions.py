"""Credential lifecycle exceptions."""

from app.core.errors import ServiceError


class CredentialError(ServiceError):
    """Base exception for credential lifecycle errors."""

    kind = "credential_error"


class NotConnected(CredentialError):
    """Raised when no credential row exists for the tenant and provider."""

    kind = "not_connected"
    default_action = "reconnect"


class ReconnectRequired(CredentialError):
    """Raised when the stored credential can no longer be used or refreshed."""

    kind = "reconnect_required"
    default_action = "reconnect"


class DecryptionFailed(CredentialError):
    """Raised when a stored secret cannot be authenticated or decoded.

    Signals corruption or a wrong process secret, never a missing connection.
    """

    kind = "decryption_failed"
