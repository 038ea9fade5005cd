"""
Scan orchestration.

One scan walks every configured entity type, evaluates each active entity
with a deadline against the rule engine and reconciles the result into the
alert ledger. Live alerts whose entity is no longer yielded (closed,
cancelled, deadline cleared) are reconciled with no match so they resolve.

Every entity type runs in its own session. A failure inside one type is
logged and reported in the summary; the scan always moves on to the next
type and never raises.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firmwatch.core.config import get_settings
from firmwatch.core.errors import ScanPartialFailure
from firmwatch.domain.models import AlertKey, EntityType, RuleMatch, TrackedEntitySnapshot
from firmwatch.domain.rules import RULE_SETS, RuleSet, evaluate, local_today, rule_codes_for
from firmwatch.domain.services.alerts import AlertService, ReconcileOutcome
from firmwatch.domain.services.audit import SYSTEM_ACTOR, AuditRecorder
from firmwatch.infrastructure.repositories.entities import EntityRepository

logger = structlog.get_logger()


@dataclass(slots=True)
class TypeSummary:
    evaluated: int = 0
    created: int = 0
    updated: int = 0
    resolved: int = 0
    failed: int = 0
    error: str | None = None

    def count(self, outcome: ReconcileOutcome) -> None:
        if outcome == ReconcileOutcome.CREATED:
            self.created += 1
        elif outcome == ReconcileOutcome.UPDATED:
            self.updated += 1
        elif outcome == ReconcileOutcome.RESOLVED:
            self.resolved += 1


@dataclass(slots=True)
class ScanSummary:
    scan_date: date
    types: dict[str, TypeSummary] = field(default_factory=dict)

    @property
    def failed_types(self) -> list[str]:
        return [name for name, summary in self.types.items() if summary.error is not None]

    def totals(self) -> dict[str, int]:
        keys = ("evaluated", "created", "updated", "resolved", "failed")
        return {key: sum(getattr(summary, key) for summary in self.types.values()) for key in keys}

    def to_dict(self) -> dict[str, dict]:
        return {name: asdict(summary) for name, summary in self.types.items()}


class ScanService:
    """Runs full deadline scans and single-entity re-evaluations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditRecorder | None = None,
        entity_types: Sequence[EntityType] = tuple(EntityType),
        rule_sets: Mapping[tuple[EntityType, str], RuleSet] = RULE_SETS,
        repository_factory: Callable[[AsyncSession], EntityRepository] = EntityRepository,
    ) -> None:
        self.session_factory = session_factory
        self.audit = audit
        self.entity_types = tuple(entity_types)
        self.rule_sets = rule_sets
        self.repository_factory = repository_factory

    async def run(self, today: date | None = None, *, triggered_by: str = SYSTEM_ACTOR) -> ScanSummary:
        """Scan every entity type. Safe to run concurrently with another scan."""
        scan_date = today or local_today(get_settings().deadline_timezone)
        summary = ScanSummary(scan_date=scan_date)
        logger.info(
            "scan_started",
            scan_date=scan_date.isoformat(),
            entity_types=[entity_type.value for entity_type in self.entity_types],
            triggered_by=triggered_by,
        )

        for entity_type in self.entity_types:
            type_summary = TypeSummary()
            summary.types[entity_type.value] = type_summary
            try:
                await self._scan_type(entity_type, scan_date, type_summary)
            except Exception as exc:  # noqa: BLE001 - one type must not abort the scan
                failure = ScanPartialFailure(entity_type.value, exc)
                type_summary.failed += 1
                type_summary.error = failure.message
                logger.error(
                    "scan_type_failed",
                    entity_type=entity_type.value,
                    error=failure.message,
                    code=failure.code,
                    exc_info=True,
                )

        logger.info(
            "scan_completed",
            scan_date=scan_date.isoformat(),
            failed_types=summary.failed_types,
            **summary.totals(),
        )
        if self.audit is not None:
            await self.audit.record(
                triggered_by,
                "scan_run",
                "scan",
                None,
                after={"scan_date": scan_date.isoformat(), **summary.totals()},
            )
        return summary

    async def _scan_type(
        self,
        entity_type: EntityType,
        scan_date: date,
        type_summary: TypeSummary,
    ) -> None:
        async with self.session_factory() as session:
            repository = self.repository_factory(session)
            alerts = AlertService(session, audit=self.audit)

            snapshots = await repository.list_entities(entity_type)
            seen: set[AlertKey] = set()

            for snapshot in snapshots:
                type_summary.evaluated += 1
                try:
                    seen.update(await self._reconcile_snapshot(alerts, snapshot, scan_date, type_summary))
                except Exception as exc:  # noqa: BLE001 - count and keep scanning this type
                    await session.rollback()
                    type_summary.failed += 1
                    logger.warning(
                        "scan_entity_failed",
                        entity_type=entity_type.value,
                        entity_id=snapshot.entity_id,
                        error=str(exc),
                    )
                    # Leave any live alerts of a failed entity untouched
                    seen.update(
                        AlertKey(entity_type.value, snapshot.entity_id, rule_code)
                        for rule_code in rule_codes_for(entity_type, self.rule_sets)
                    )

            for key, firm_id in await alerts.live_keys(entity_type):
                if key in seen:
                    continue
                try:
                    type_summary.count(await alerts.reconcile(key, firm_id, None))
                except Exception as exc:  # noqa: BLE001 - keep sweeping the remaining keys
                    await session.rollback()
                    type_summary.failed += 1
                    logger.warning(
                        "scan_sweep_failed",
                        entity_type=entity_type.value,
                        entity_id=key.entity_id,
                        rule_code=key.rule_code,
                        error=str(exc),
                    )

        logger.info("scan_type_completed", entity_type=entity_type.value, **asdict(type_summary))

    async def _reconcile_snapshot(
        self,
        alerts: AlertService,
        snapshot: TrackedEntitySnapshot,
        scan_date: date,
        type_summary: TypeSummary,
    ) -> list[AlertKey]:
        match: RuleMatch | None = evaluate(snapshot, scan_date, self.rule_sets)
        keys = []
        for rule_code in rule_codes_for(snapshot.entity_type, self.rule_sets):
            key = AlertKey(snapshot.entity_type.value, snapshot.entity_id, rule_code)
            result = match if match is not None and match.rule_code == rule_code else None
            type_summary.count(await alerts.reconcile(key, snapshot.firm_id, result))
            keys.append(key)
        return keys

    async def evaluate_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        today: date | None = None,
    ) -> TypeSummary:
        """Re-evaluate one entity right after an interactive change.

        Reconcile failures are counted in the returned summary, never raised;
        the change that triggered the re-evaluation is already committed and
        the next scan picks the entity up again.
        """
        scan_date = today or local_today(get_settings().deadline_timezone)
        type_summary = TypeSummary()
        async with self.session_factory() as session:
            repository = self.repository_factory(session)
            alerts = AlertService(session, audit=self.audit)
            snapshot = await repository.get_entity(entity_type, entity_id)
            type_summary.evaluated = 1
            try:
                await self._reconcile_snapshot(alerts, snapshot, scan_date, type_summary)
            except Exception as exc:  # noqa: BLE001 - the triggering change stays committed
                await session.rollback()
                type_summary.failed += 1
                logger.warning(
                    "scan_entity_failed",
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    error=str(exc),
                )

        logger.info(
            "entity_reevaluated",
            entity_type=entity_type.value,
            entity_id=entity_id,
            **asdict(type_summary),
        )
        return type_summary
