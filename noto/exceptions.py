"""
Noto Exceptions - 错误分类

Local data errors are loud (raised to the caller), remote sync errors are
quiet (logged by the store, never surfaced to the UI).
"""


class NotoError(Exception):
    """Base class for all Noto errors."""

    pass


class StorageQuotaExceeded(NotoError):
    """The storage medium rejected a durable write (capacity/quota).

    The edit that triggered the write was NOT saved.
    """

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(message or f"Storage quota exceeded while writing '{key}'")


class InvalidFormat(NotoError):
    """Import payload is unparseable or carries an unrecognized schemaVersion."""

    pass


class EntityNotFound(NotoError):
    """A mutation referenced an unknown id.

    The store treats this as a no-op; the class exists so lookups outside the
    store (CLI, bridge consumers) can raise it explicitly.
    """

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class AuthUnavailable(NotoError):
    """Login, register and token probe all failed; sync stays off for the session."""

    pass


class SyncFailed(NotoError):
    """Network or HTTP failure while pulling or pushing the remote snapshot."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ReorderMismatch(NotoError, ValueError):
    """Strict reorder received an id set different from the current collection."""

    def __init__(self, missing: set[str], unexpected: set[str]):
        self.missing = missing
        self.unexpected = unexpected
        super().__init__(
            f"Reorder id set mismatch: missing={sorted(missing)}, unexpected={sorted(unexpected)}"
        )


__all__ = [
    "NotoError",
    "StorageQuotaExceeded",
    "InvalidFormat",
    "EntityNotFound",
    "AuthUnavailable",
    "SyncFailed",
    "ReorderMismatch",
]
