"""
Deadline rule engine.

Maps a tracked entity snapshot and a calendar date to an optional rule match.
Rule sets are keyed by ``(entity_type, deadline field)`` and hold thresholds
ordered by ascending window size. Evaluation never touches the alert ledger.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from firmwatch.core.errors import ValidationError
from firmwatch.domain.models import (
    EntityType,
    RuleMatch,
    Severity,
    TrackedEntitySnapshot,
)


@dataclass(frozen=True, slots=True)
class Threshold:
    """Entities due within ``within_days`` (inclusive) get ``severity``."""

    within_days: int
    severity: Severity


@dataclass(frozen=True, slots=True)
class RuleSet:
    entity_type: EntityType
    field: str
    rule_code: str
    thresholds: tuple[Threshold, ...]
    # Verbs used in alert messages, e.g. "expires" / "expired"
    upcoming_verb: str = "is due"
    past_verb: str = "was due"

    def __post_init__(self) -> None:
        windows = [threshold.within_days for threshold in self.thresholds]
        if not windows:
            raise ValueError(f"Rule set {self.rule_code} has no thresholds")
        if windows != sorted(windows) or len(set(windows)) != len(windows):
            raise ValueError(f"Rule set {self.rule_code} thresholds must be strictly ascending")
        if windows[0] < 0:
            raise ValueError(f"Rule set {self.rule_code} has a negative window")

    @property
    def largest_window(self) -> int:
        return self.thresholds[-1].within_days

    def severity_for(self, delta_days: int) -> Severity | None:
        if delta_days < 0:
            return Severity.OVERDUE
        for threshold in self.thresholds:
            if delta_days <= threshold.within_days:
                return threshold.severity
        return None


def _tiers(high: int, medium: int, low: int) -> tuple[Threshold, ...]:
    return (
        Threshold(high, Severity.HIGH),
        Threshold(medium, Severity.MEDIUM),
        Threshold(low, Severity.LOW),
    )


DEFAULT_RULE_SETS: tuple[RuleSet, ...] = (
    RuleSet(
        EntityType.LICENSE,
        "expiry_date",
        "license_expiry",
        _tiers(7, 30, 60),
        upcoming_verb="expires",
        past_verb="expired",
    ),
    RuleSet(
        EntityType.ENLISTMENT,
        "expiry_date",
        "enlistment_expiry",
        _tiers(30, 60, 90),
        upcoming_verb="expires",
        past_verb="expired",
    ),
    RuleSet(
        EntityType.BANK_GUARANTEE,
        "expiry_date",
        "bg_expiry",
        _tiers(7, 15, 30),
        upcoming_verb="expires",
        past_verb="expired",
    ),
    RuleSet(
        EntityType.TAX_OBLIGATION,
        "due_date",
        "tax_deadline",
        _tiers(3, 7, 15),
    ),
    RuleSet(
        EntityType.LOAN,
        "maturity_date",
        "loan_maturity",
        _tiers(7, 15, 30),
        upcoming_verb="matures",
        past_verb="matured",
    ),
    RuleSet(
        EntityType.TENDER,
        "submission_date",
        "tender_deadline",
        _tiers(2, 5, 7),
        upcoming_verb="closes for submission",
        past_verb="closed for submission",
    ),
    RuleSet(
        EntityType.TASK,
        "due_date",
        "task_due",
        _tiers(1, 3, 7),
    ),
)

RULE_SETS: Mapping[tuple[EntityType, str], RuleSet] = {
    (rule_set.entity_type, rule_set.field): rule_set for rule_set in DEFAULT_RULE_SETS
}


def get_rule_set(
    entity_type: EntityType | str,
    field: str,
    rule_sets: Mapping[tuple[EntityType, str], RuleSet] = RULE_SETS,
) -> RuleSet:
    key = (EntityType.parse(entity_type) if isinstance(entity_type, str) else entity_type, field)
    try:
        return rule_sets[key]
    except KeyError as exc:
        raise ValidationError(f"No deadline rule for {key[0].value}.{field}") from exc


def rule_codes_for(
    entity_type: EntityType,
    rule_sets: Mapping[tuple[EntityType, str], RuleSet] = RULE_SETS,
) -> list[str]:
    return [rs.rule_code for (etype, _), rs in rule_sets.items() if etype == entity_type]


def evaluate(
    entity: TrackedEntitySnapshot,
    today: date | datetime,
    rule_sets: Mapping[tuple[EntityType, str], RuleSet] = RULE_SETS,
) -> RuleMatch | None:
    """Return the rule match for ``entity`` on ``today``, or None when no alert applies."""
    rule_set = get_rule_set(entity.entity_type, entity.deadline_field, rule_sets)
    if not entity.is_evaluable:
        return None

    deadline = entity.deadline_date()
    if deadline is None:
        return None

    current = today.date() if isinstance(today, datetime) else today
    delta_days = (deadline - current).days

    severity = rule_set.severity_for(delta_days)
    if severity is None:
        return None

    return RuleMatch(
        severity=severity,
        rule_code=rule_set.rule_code,
        message=build_message(entity, rule_set, delta_days),
        deadline_date=deadline,
        delta_days=delta_days,
    )


def build_message(entity: TrackedEntitySnapshot, rule_set: RuleSet, delta_days: int) -> str:
    subject = entity.label or entity.entity_type.value.replace("_", " ").capitalize()
    if entity.firm_name:
        subject = f"{subject} for {entity.firm_name}"

    if delta_days == 0:
        return f"{subject} {rule_set.upcoming_verb} today"
    if delta_days > 0:
        return f"{subject} {rule_set.upcoming_verb} in {_days(delta_days)}"
    return f"{subject} {rule_set.past_verb} {_days(-delta_days)} ago"


def _days(count: int) -> str:
    return f"{count} day" if count == 1 else f"{count} days"


_LICENSE_TYPE_LABELS = {
    "trade_license": "Trade License",
    "tin": "TIN",
    "vat": "VAT",
    "irc": "IRC",
    "fire": "Fire License",
    "environmental": "Environmental License",
}


def format_license_type(license_type: str | None) -> str:
    if not license_type:
        return "License"
    if license_type in _LICENSE_TYPE_LABELS:
        return _LICENSE_TYPE_LABELS[license_type]
    return " ".join(word.capitalize() for word in license_type.split("_"))


def local_today(tz_name: str = "UTC") -> date:
    """Current calendar date in the configured deadline timezone."""
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {tz_name}") from exc
    return datetime.now(zone).date()
