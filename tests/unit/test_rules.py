from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from firmwatch.core.errors import ValidationError
from firmwatch.domain.models import EntityStatus, EntityType, Severity, TrackedEntitySnapshot
from firmwatch.domain.rules import (
    RULE_SETS,
    RuleSet,
    Threshold,
    evaluate,
    format_license_type,
    get_rule_set,
    local_today,
)

TODAY = date(2025, 3, 1)


def snapshot(
    entity_type: EntityType = EntityType.LICENSE,
    deadline: date | datetime | str | None = None,
    *,
    status: EntityStatus = EntityStatus.ACTIVE,
    field: str | None = None,
    label: str = "Trade License",
    firm_name: str | None = "Alpha Builders",
) -> TrackedEntitySnapshot:
    default_fields = {rule_set.entity_type: rule_set.field for rule_set in RULE_SETS.values()}
    return TrackedEntitySnapshot(
        entity_type=entity_type,
        entity_id="e-1",
        firm_id="firm-1",
        status=status,
        deadline_field=field or default_fields[entity_type],
        deadline_value=deadline,
        label=label,
        firm_name=firm_name,
    )


def in_days(days: int) -> date:
    return TODAY + timedelta(days=days)


@pytest.mark.parametrize(
    ("days", "expected"),
    [
        (-1, Severity.OVERDUE),
        (0, Severity.HIGH),
        (7, Severity.HIGH),
        (8, Severity.MEDIUM),
        (30, Severity.MEDIUM),
        (31, Severity.LOW),
        (60, Severity.LOW),
        (61, None),
    ],
)
def test_license_thresholds_are_inclusive(days: int, expected: Severity | None) -> None:
    match = evaluate(snapshot(deadline=in_days(days)), TODAY)

    if expected is None:
        assert match is None
    else:
        assert match is not None
        assert match.severity == expected
        assert match.rule_code == "license_expiry"
        assert match.delta_days == days


@pytest.mark.parametrize(
    ("entity_type", "windows", "rule_code"),
    [
        (EntityType.ENLISTMENT, (30, 60, 90), "enlistment_expiry"),
        (EntityType.BANK_GUARANTEE, (7, 15, 30), "bg_expiry"),
        (EntityType.TAX_OBLIGATION, (3, 7, 15), "tax_deadline"),
        (EntityType.LOAN, (7, 15, 30), "loan_maturity"),
        (EntityType.TENDER, (2, 5, 7), "tender_deadline"),
        (EntityType.TASK, (1, 3, 7), "task_due"),
    ],
)
def test_each_entity_type_uses_its_own_table(
    entity_type: EntityType, windows: tuple[int, int, int], rule_code: str
) -> None:
    high, medium, low = windows

    assert evaluate(snapshot(entity_type, in_days(high)), TODAY).severity == Severity.HIGH
    assert evaluate(snapshot(entity_type, in_days(medium)), TODAY).severity == Severity.MEDIUM
    assert evaluate(snapshot(entity_type, in_days(low)), TODAY).rule_code == rule_code
    assert evaluate(snapshot(entity_type, in_days(low + 1)), TODAY) is None


def test_overdue_regardless_of_how_late() -> None:
    match = evaluate(snapshot(deadline=in_days(-400)), TODAY)

    assert match.severity == Severity.OVERDUE
    assert match.message == "Trade License for Alpha Builders expired 400 days ago"


def test_messages_for_upcoming_today_and_single_day() -> None:
    assert evaluate(snapshot(deadline=in_days(5)), TODAY).message == (
        "Trade License for Alpha Builders expires in 5 days"
    )
    assert evaluate(snapshot(deadline=TODAY), TODAY).message == (
        "Trade License for Alpha Builders expires today"
    )
    assert evaluate(snapshot(deadline=in_days(-1)), TODAY).message == (
        "Trade License for Alpha Builders expired 1 day ago"
    )


def test_message_without_firm_name() -> None:
    match = evaluate(
        snapshot(EntityType.TASK, in_days(1), label="Task 'File returns'", firm_name=None), TODAY
    )

    assert match.message == "Task 'File returns' is due in 1 day"


def test_closed_and_cancelled_entities_never_match() -> None:
    for status in (EntityStatus.CLOSED, EntityStatus.CANCELLED):
        assert evaluate(snapshot(deadline=in_days(-3), status=status), TODAY) is None


def test_missing_deadline_never_matches() -> None:
    assert evaluate(snapshot(deadline=None), TODAY) is None
    assert evaluate(snapshot(deadline=""), TODAY) is None


def test_time_of_day_is_ignored() -> None:
    late_evening = datetime(2025, 3, 8, 23, 59)

    match = evaluate(snapshot(deadline=late_evening), datetime(2025, 3, 1, 0, 1))

    assert match.delta_days == 7
    assert match.severity == Severity.HIGH


def test_iso_string_deadlines_are_accepted() -> None:
    assert evaluate(snapshot(deadline="2025-03-04"), TODAY).delta_days == 3
    assert evaluate(snapshot(deadline="2025-03-04T10:30:00"), TODAY).delta_days == 3


def test_malformed_deadline_raises_validation_error() -> None:
    with pytest.raises(ValidationError) as exc_info:
        evaluate(snapshot(deadline="next tuesday"), TODAY)

    assert exc_info.value.code == "VALIDATION_ERROR"
    assert "expiry_date" in exc_info.value.message


def test_unknown_deadline_field_raises_validation_error() -> None:
    with pytest.raises(ValidationError):
        evaluate(snapshot(deadline=in_days(1), field="renewal_date"), TODAY)


def test_get_rule_set_accepts_string_entity_type() -> None:
    assert get_rule_set("tender", "submission_date").rule_code == "tender_deadline"

    with pytest.raises(ValidationError):
        get_rule_set("vehicle", "expiry_date")


def test_rule_set_rejects_unordered_thresholds() -> None:
    with pytest.raises(ValueError):
        RuleSet(
            EntityType.TASK,
            "due_date",
            "task_due",
            (Threshold(7, Severity.LOW), Threshold(1, Severity.HIGH)),
        )


def test_custom_rule_sets_override_defaults() -> None:
    custom = {
        (EntityType.TASK, "due_date"): RuleSet(
            EntityType.TASK, "due_date", "task_due", (Threshold(30, Severity.HIGH),)
        )
    }

    match = evaluate(snapshot(EntityType.TASK, in_days(20)), TODAY, custom)

    assert match.severity == Severity.HIGH


def test_format_license_type() -> None:
    assert format_license_type("trade_license") == "Trade License"
    assert format_license_type("bsti_certificate") == "Bsti Certificate"
    assert format_license_type(None) == "License"


def test_local_today_rejects_unknown_timezone() -> None:
    with pytest.raises(ValidationError):
        local_today("Mars/Olympus_Mons")
