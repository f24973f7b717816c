"""Market lifecycle transitions and resolution/cancellation preconditions.

The machine holds no state of its own; it checks a market's current status
field. The settlement executor consults it inside the transaction, which is what
keeps a second resolve or cancel from succeeding.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from predsettle.errors import InvalidTransition, ValidationError
from predsettle.models import EVIDENCE_TYPES, Evidence, Market
from predsettle.resolution.payout import DEFAULT_CREATOR_FEE, validate_creator_fee

TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"active"}),
    "active": frozenset({"closed", "pending_resolution", "cancelled"}),
    "closed": frozenset({"pending_resolution", "cancelled"}),
    "pending_resolution": frozenset({"resolved", "cancelled"}),
    "resolved": frozenset(),
    "cancelled": frozenset(),
}
MIN_CANCELLATION_REASON_LENGTH = 10
SHORT_EVIDENCE_LENGTH = 10


class EvidenceIssue(BaseModel):
    field: str
    message: str
    code: str


class EvidenceValidation(BaseModel):
    is_valid: bool
    errors: list[EvidenceIssue] = Field(default_factory=list)
    warnings: list[EvidenceIssue] = Field(default_factory=list)


def can_transition(current: str, requested: str) -> bool:
    return requested in TRANSITIONS.get(current, frozenset())


def check_transition(market: Market, requested: str) -> None:
    """Raise InvalidTransition unless market.status -> requested is allowed."""
    if not can_transition(market.status, requested):
        raise InvalidTransition(market.status, requested, market_id=market.market_id)


def coerce_evidence(item: Any) -> Evidence | None:
    """Evidence model from a model or dict, with the type trimmed."""
    if isinstance(item, Evidence):
        return item.model_copy(update={"type": item.type.strip()})
    if isinstance(item, dict):
        return Evidence(
            type=str(item.get("type") or "").strip(),
            content=str(item.get("content") or ""),
            description=item.get("description"),
        )
    return None


def validate_evidence(evidence: list[Any] | None) -> EvidenceValidation:
    """Check evidence shape. Errors block resolution; warnings are advisory."""
    errors: list[EvidenceIssue] = []
    warnings: list[EvidenceIssue] = []
    items = list(evidence or [])
    if not items:
        errors.append(
            EvidenceIssue(field="evidence", message="At least one piece of evidence is required", code="NO_EVIDENCE")
        )
        return EvidenceValidation(is_valid=False, errors=errors)

    for index, raw in enumerate(items):
        field = f"evidence[{index}]"
        item = coerce_evidence(raw)
        if item is None:
            errors.append(EvidenceIssue(field=field, message="Evidence must be an object", code="INVALID_EVIDENCE"))
            continue
        if item.type not in EVIDENCE_TYPES:
            errors.append(
                EvidenceIssue(
                    field=f"{field}.type",
                    message=f"Evidence type must be one of {', '.join(EVIDENCE_TYPES)}",
                    code="INVALID_TYPE",
                )
            )
        content = item.content.strip()
        if not content:
            errors.append(EvidenceIssue(field=f"{field}.content", message="Evidence content is required", code="EMPTY_CONTENT"))
            continue
        if item.type == "url":
            parsed = urlparse(content)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                warnings.append(EvidenceIssue(field=field, message="URL does not look valid", code="INVALID_URL"))
        if len(content) < SHORT_EVIDENCE_LENGTH:
            warnings.append(
                EvidenceIssue(field=field, message="Evidence content is very short", code="SHORT_EVIDENCE")
            )

    typed = [coerce_evidence(e) for e in items]
    if not any(e is not None and e.type in ("url", "description") and e.content.strip() for e in typed):
        warnings.append(
            EvidenceIssue(field="evidence", message="No source URL or description provided", code="INSUFFICIENT_EVIDENCE")
        )
    return EvidenceValidation(is_valid=not errors, errors=errors, warnings=warnings)


def validate_resolution_request(
    market: Market,
    winning_option_id: str,
    evidence: list[Any] | None,
    creator_fee_percentage: float | None = None,
    default_creator_fee: float = DEFAULT_CREATOR_FEE,
) -> tuple[float, EvidenceValidation]:
    """Check every precondition of pending_resolution -> resolved.

    Returns the effective creator fee and the evidence report (for its warnings).
    The status check comes first so a settled market always fails with
    InvalidTransition, whatever the input.
    """
    check_transition(market, "resolved")
    if not winning_option_id or market.get_option(winning_option_id) is None:
        raise ValidationError(
            f"Option {winning_option_id!r} is not an option of market {market.market_id}",
            field="winning_option_id",
            market_id=market.market_id,
            details={"valid_options": market.option_ids},
        )
    report = validate_evidence(evidence)
    if not report.is_valid:
        first = report.errors[0]
        raise ValidationError(
            f"Invalid evidence: {'; '.join(e.message for e in report.errors)}",
            field=first.field,
            market_id=market.market_id,
            details={"errors": [e.model_dump() for e in report.errors]},
        )
    fee = default_creator_fee if creator_fee_percentage is None else creator_fee_percentage
    return validate_creator_fee(fee, market.market_id), report


def validate_cancellation(market: Market, reason: str | None) -> str:
    """Check {active, closed, pending_resolution} -> cancelled; return the trimmed reason."""
    check_transition(market, "cancelled")
    trimmed = (reason or "").strip()
    if len(trimmed) < MIN_CANCELLATION_REASON_LENGTH:
        raise ValidationError(
            f"Cancellation reason must be at least {MIN_CANCELLATION_REASON_LENGTH} characters",
            field="reason",
            market_id=market.market_id,
            details={"length": len(trimmed)},
        )
    return trimmed
