"""Error taxonomy for the sync engine.

Protocol violations and integrity failures mean the backend and this client have
diverged. They are raised and propagated; nothing in the engine patches over
them. Auth rejection and transient fetch failures are reported to collaborators
and leave local state untouched.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync engine errors."""

    error: str = "sync_error"

    def __init__(self, message: str, *, error: str | None = None):
        super().__init__(message)
        if error:
            self.error = error


class ProtocolViolation(SyncError):
    """Backend sent something the protocol forbids (duplicate id, bad addressing)."""

    error = "protocol_violation"


class ReconciliationError(ProtocolViolation):
    """A merge produced a state that breaks an invariant (duplicate survived)."""

    error = "reconciliation_error"


class DataIntegrityError(SyncError):
    """A dialog node cannot be acted on correctly (e.g. no task descriptor)."""

    error = "data_integrity_error"


class InvalidMessage(SyncError):
    """Inbound message failed validation against its declared shape."""

    error = "invalid_message"

    def __init__(self, message: str, *, message_type: str | None = None):
        super().__init__(message)
        self.message_type = message_type


class InvalidDeepLink(SyncError):
    """A ``/dl/...`` URL is malformed or lacks a required parameter."""

    error = "invalid_deep_link"


class AuthRejected(SyncError):
    """Fetch was rejected with a 401; needs the re-authentication flow."""

    error = "auth_rejected"

    def __init__(self, message: str = "Unauthorized", *, origin: str = "api"):
        super().__init__(message)
        self.origin = origin


class FetchFailed(SyncError):
    """Transient fetch failure (network, timeout, non-401 HTTP error)."""

    error = "fetch_failed"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
