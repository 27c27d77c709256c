from __future__ import annotations


class ValidationFault(ValueError):
    """Malformed input rejected before any access decision is made."""

    def __init__(self, message: str, *, field: str | None = None):
        self.field = field
        super().__init__(message)


class InfrastructureFault(RuntimeError):
    """Backing store, blob store or hashing backend failed.

    Never an access decision: callers must not serve content when this is
    raised, and must not blindly retry a consume without re-checking first.
    """

    def __init__(self, message: str, *, component: str):
        self.component = component
        super().__init__(f"{component}: {message}")
