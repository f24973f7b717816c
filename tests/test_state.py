"""Lifecycle transitions, evidence checks and request validation."""

import pytest

from predsettle.errors import InvalidTransition, ValidationError
from predsettle.models import Market, MarketOption
from predsettle.resolution.state import (
    can_transition,
    coerce_evidence,
    validate_cancellation,
    validate_evidence,
    validate_resolution_request,
)

GOOD_EVIDENCE = [{"type": "url", "content": "https://example.com/result"}]


def _market(status="pending_resolution"):
    return Market(
        market_id="m1",
        created_by="creator",
        status=status,
        options=[MarketOption(option_id="yes"), MarketOption(option_id="no")],
    )


@pytest.mark.parametrize(
    "current,requested,allowed",
    [
        ("draft", "active", True),
        ("active", "pending_resolution", True),
        ("active", "resolved", False),
        ("closed", "pending_resolution", True),
        ("closed", "cancelled", True),
        ("pending_resolution", "resolved", True),
        ("pending_resolution", "cancelled", True),
        ("resolved", "cancelled", False),
        ("cancelled", "resolved", False),
        ("draft", "cancelled", False),
    ],
)
def test_transitions(current, requested, allowed):
    assert can_transition(current, requested) is allowed


def test_resolution_request_defaults_fee():
    fee, report = validate_resolution_request(_market(), "yes", GOOD_EVIDENCE)
    assert fee == 0.02
    assert report.is_valid


def test_resolution_request_rejects_bad_fee():
    with pytest.raises(ValidationError) as exc:
        validate_resolution_request(_market(), "yes", GOOD_EVIDENCE, creator_fee_percentage=0.06)
    assert exc.value.field == "creator_fee_percentage"


def test_resolution_request_rejects_unknown_option():
    with pytest.raises(ValidationError) as exc:
        validate_resolution_request(_market(), "maybe", GOOD_EVIDENCE)
    assert exc.value.field == "winning_option_id"


@pytest.mark.parametrize("status", ["active", "closed", "resolved", "cancelled", "draft"])
def test_resolution_requires_pending(status):
    with pytest.raises(InvalidTransition) as exc:
        validate_resolution_request(_market(status), "maybe", [], creator_fee_percentage=1.0)
    assert exc.value.details["current_status"] == status
    assert exc.value.code == "invalid_transition"


def test_evidence_errors():
    assert [e.code for e in validate_evidence([]).errors] == ["NO_EVIDENCE"]
    assert [e.code for e in validate_evidence(None).errors] == ["NO_EVIDENCE"]
    report = validate_evidence([{"type": "video", "content": "https://example.com"}, {"type": "url", "content": "  "}, 42])
    codes = [e.code for e in report.errors]
    assert "INVALID_TYPE" in codes
    assert "EMPTY_CONTENT" in codes
    assert "INVALID_EVIDENCE" in codes
    assert not report.is_valid


def test_evidence_warnings_do_not_block():
    report = validate_evidence([{"type": "url", "content": "not a url"}, {"type": "screenshot", "content": "img"}])
    assert report.is_valid
    codes = [w.code for w in report.warnings]
    assert "INVALID_URL" in codes
    assert "SHORT_EVIDENCE" in codes

    only_screenshot = validate_evidence([{"type": "screenshot", "content": "s3://bucket/shot.png"}])
    assert [w.code for w in only_screenshot.warnings] == ["INSUFFICIENT_EVIDENCE"]


def test_resolution_request_rejects_empty_evidence():
    with pytest.raises(ValidationError):
        validate_resolution_request(_market(), "yes", [])


def test_cancellation_reason_boundary():
    assert validate_cancellation(_market("active"), "abcdefghij") == "abcdefghij"
    assert validate_cancellation(_market("active"), "   abcdefghij   ") == "abcdefghij"
    with pytest.raises(ValidationError) as exc:
        validate_cancellation(_market("active"), "abcdefghi")
    assert exc.value.field == "reason"
    with pytest.raises(ValidationError):
        validate_cancellation(_market("active"), "              ")
    with pytest.raises(ValidationError):
        validate_cancellation(_market("active"), None)


@pytest.mark.parametrize("status", ["resolved", "cancelled", "draft"])
def test_cancellation_from_terminal_or_draft(status):
    with pytest.raises(InvalidTransition):
        validate_cancellation(_market(status), "a perfectly long reason")


def test_evidence_type_is_trimmed():
    item = coerce_evidence({"type": " url ", "content": "not a url"})
    assert item.type == "url"
    report = validate_evidence([{"type": " url ", "content": "not a url"}])
    assert report.is_valid
    assert "INVALID_URL" in [w.code for w in report.warnings]
    assert "INSUFFICIENT_EVIDENCE" not in [w.code for w in report.warnings]
