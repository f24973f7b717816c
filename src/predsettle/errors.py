"""Resolution error taxonomy. Each error carries a machine-readable code for API/CLI output."""

from __future__ import annotations

from typing import Any


class ResolutionError(Exception):
    """Base error for resolution, cancellation and preview operations."""

    code = "resolution_error"

    def __init__(
        self,
        message: str,
        *,
        market_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.market_id = market_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.market_id is not None:
            out["market_id"] = self.market_id
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(ResolutionError):
    """Malformed input. Raised before any write."""

    code = "validation_failed"

    def __init__(self, message: str, *, field: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        self.details.setdefault("field", field)


class InvalidTransition(ResolutionError):
    """Market status does not permit the requested operation."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str, *, market_id: str | None = None) -> None:
        super().__init__(
            f"Cannot move market from '{current}' to '{requested}'",
            market_id=market_id,
            details={"current_status": current, "requested_status": requested},
        )
        self.current = current
        self.requested = requested


class NotFound(ResolutionError):
    """Market or option id does not exist."""

    code = "not_found"


class SettlementFailed(ResolutionError):
    """Transaction could not commit (retries exhausted or store failure)."""

    code = "settlement_failed"

    def __init__(self, message: str, *, attempts: int = 0, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.details.setdefault("attempts", attempts)


class ConcurrentModification(Exception):
    """A version-checked write matched no row; another writer got there first. Retryable."""

    def __init__(self, table: str, key: str, expected_version: int) -> None:
        super().__init__(f"{table} row {key!r} changed concurrently (expected version {expected_version})")
        self.table = table
        self.key = key
        self.expected_version = expected_version
