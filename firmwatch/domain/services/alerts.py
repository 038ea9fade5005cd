"""
Alert lifecycle service.

Sole writer of the alert ledger. Reconciles rule engine output with the live
alert for a dedup key (entity_type, entity_id, rule_code):

    no live row  + match    -> insert active
    active       + match    -> update in place when severity/message changed
    acknowledged + match    -> unchanged (acknowledgement pins the alert)
    live row     + no match -> resolved
    no live row  + no match -> nothing

Acknowledgement is the only manual transition (active -> acknowledged).
Resolved rows are kept as history and never block a new alert for the key.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.core.errors import (
    AuthorizationError,
    DedupConflict,
    InvalidTransition,
    NotFoundError,
)
from firmwatch.domain.models import (
    Action,
    AlertKey,
    AlertStatus,
    EntityType,
    RuleMatch,
    Scope,
    Severity,
)
from firmwatch.domain.services import scope as scope_service
from firmwatch.domain.services.audit import SYSTEM_ACTOR, AuditRecorder
from firmwatch.infrastructure.db.models import Alert
from firmwatch.infrastructure.repositories.entities import scope_statement

logger = structlog.get_logger()


class ReconcileOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    PINNED = "pinned"
    RESOLVED = "resolved"
    NOOP = "noop"


def utcnow() -> datetime:
    return datetime.now(UTC)


_SEVERITY_ORDER = case(
    (Alert.severity == Severity.OVERDUE, Severity.OVERDUE.rank),
    (Alert.severity == Severity.HIGH, Severity.HIGH.rank),
    (Alert.severity == Severity.MEDIUM, Severity.MEDIUM.rank),
    (Alert.severity == Severity.LOW, Severity.LOW.rank),
    else_=0,
)


class AlertService:
    """Domain logic for the alert ledger."""

    def __init__(
        self,
        session: AsyncSession,
        audit: AuditRecorder | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.audit = audit
        self.clock = clock

    async def reconcile(
        self,
        key: AlertKey,
        firm_id: str,
        match: RuleMatch | None,
    ) -> ReconcileOutcome:
        """Bring the ledger for ``key`` in line with ``match``.

        A concurrent insert for the same key loses on the partial unique index
        and is retried once as an update against the winner's row.
        """
        try:
            return await self._reconcile_once(key, firm_id, match)
        except DedupConflict:
            logger.info(
                "alert_dedup_conflict_retry",
                entity_type=key.entity_type,
                entity_id=key.entity_id,
                rule_code=key.rule_code,
            )
            return await self._reconcile_once(key, firm_id, match)

    async def _reconcile_once(
        self,
        key: AlertKey,
        firm_id: str,
        match: RuleMatch | None,
    ) -> ReconcileOutcome:
        live = await self._find_live(key)
        now = self.clock()

        if match is None:
            if live is None:
                return ReconcileOutcome.NOOP
            before = live.state()
            live.status = AlertStatus.RESOLVED
            live.resolved_at = now
            live.updated_at = now
            await self.session.commit()
            logger.info("alert_resolved", alert_id=live.id, rule_code=key.rule_code)
            await self._record(SYSTEM_ACTOR, "alert_resolved", live, before)
            return ReconcileOutcome.RESOLVED

        if live is None:
            alert = Alert(
                entity_type=key.entity_type,
                entity_id=key.entity_id,
                firm_id=firm_id,
                rule_code=key.rule_code,
                severity=match.severity,
                message=match.message,
                status=AlertStatus.ACTIVE,
                deadline_date=match.deadline_date,
                created_at=now,
                updated_at=now,
            )
            self.session.add(alert)
            try:
                await self.session.commit()
            except IntegrityError as exc:
                await self.session.rollback()
                raise DedupConflict(
                    f"Live alert already exists for {key.entity_type}/{key.entity_id}/{key.rule_code}"
                ) from exc
            logger.info(
                "alert_created",
                alert_id=alert.id,
                entity_type=key.entity_type,
                entity_id=key.entity_id,
                severity=match.severity.value,
            )
            await self._record(SYSTEM_ACTOR, "alert_created", alert, None)
            return ReconcileOutcome.CREATED

        if live.status == AlertStatus.ACKNOWLEDGED:
            return ReconcileOutcome.PINNED

        if live.severity == match.severity and live.message == match.message:
            return ReconcileOutcome.UNCHANGED

        before = live.state()
        live.severity = match.severity
        live.message = match.message
        live.deadline_date = match.deadline_date
        live.updated_at = now
        await self.session.commit()
        logger.info(
            "alert_updated",
            alert_id=live.id,
            severity=match.severity.value,
            previous_severity=before["severity"],
        )
        await self._record(SYSTEM_ACTOR, "alert_updated", live, before)
        return ReconcileOutcome.UPDATED

    async def _find_live(self, key: AlertKey) -> Alert | None:
        stmt = (
            select(Alert)
            .where(
                Alert.entity_type == key.entity_type,
                Alert.entity_id == key.entity_id,
                Alert.rule_code == key.rule_code,
                Alert.status.in_(AlertStatus.live_statuses()),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def live_keys(self, entity_type: EntityType) -> list[tuple[AlertKey, str]]:
        """Dedup keys (with firm id) of every live alert for an entity type."""
        stmt = (
            select(Alert.entity_id, Alert.rule_code, Alert.firm_id)
            .where(
                Alert.entity_type == entity_type.value,
                Alert.status.in_(AlertStatus.live_statuses()),
            )
            .order_by(Alert.entity_id, Alert.rule_code)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            (AlertKey(entity_type.value, entity_id, rule_code), firm_id)
            for entity_id, rule_code, firm_id in rows
        ]

    async def acknowledge(self, alert_id: str, scope: Scope) -> Alert:
        """Move an active alert to acknowledged on behalf of ``scope``'s user.

        The row is locked like a reconcile would lock it, and the write only
        applies while the row is still active, so a concurrent resolve wins.
        """
        alert = await self.session.get(
            Alert, alert_id, populate_existing=True, with_for_update=True
        )
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")

        try:
            scope_service.authorize(scope, Action.ACKNOWLEDGE, alert.firm_id)
        except AuthorizationError:
            await self._record(
                scope.user_id,
                "unauthorized_access",
                alert,
                None,
                after={"attempted": Action.ACKNOWLEDGE.value},
            )
            raise

        if alert.status != AlertStatus.ACTIVE:
            raise InvalidTransition(
                f"Alert {alert_id} is {alert.status.value}; only active alerts can be acknowledged"
            )

        before = alert.state()
        now = self.clock()
        result = await self.session.execute(
            update(Alert)
            .where(Alert.id == alert.id, Alert.status == AlertStatus.ACTIVE)
            .values(
                status=AlertStatus.ACKNOWLEDGED,
                acknowledged_at=now,
                acknowledged_by=scope.user_id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise InvalidTransition(
                f"Alert {alert_id} is no longer active; only active alerts can be acknowledged"
            )
        await self.session.commit()
        await self.session.refresh(alert)

        logger.info("alert_acknowledged", alert_id=alert.id, user_id=scope.user_id)
        await self._record(scope.user_id, "alert_acknowledged", alert, before)
        return alert

    async def get_alert(self, alert_id: str, scope: Scope) -> Alert:
        alert = await self.session.get(Alert, alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        scope_service.authorize(scope, Action.READ, alert.firm_id)
        return alert

    async def list_alerts(
        self,
        scope: Scope,
        *,
        status: AlertStatus | None = AlertStatus.ACTIVE,
        firm_ids: Iterable[str] | None = None,
        severity: Severity | None = None,
        entity_type: EntityType | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Alerts visible to ``scope``, most urgent first."""
        scope_service.authorize(scope, Action.READ)
        effective = scope_service.apply(scope, firm_ids)

        stmt = select(Alert)
        if status is not None:
            stmt = stmt.where(Alert.status == status)
        if severity is not None:
            stmt = stmt.where(Alert.severity == severity)
        if entity_type is not None:
            stmt = stmt.where(Alert.entity_type == entity_type.value)
        stmt = scope_statement(stmt, Alert.firm_id, effective)
        stmt = stmt.order_by(
            _SEVERITY_ORDER.desc(),
            Alert.deadline_date.is_(None),
            Alert.deadline_date,
            Alert.created_at,
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def alert_stats(self, scope: Scope) -> dict:
        """Active alert counts per severity and per rule code within ``scope``."""
        scope_service.authorize(scope, Action.READ)
        effective = scope_service.apply(scope)

        by_severity_stmt = scope_statement(
            select(Alert.severity, func.count(Alert.id))
            .where(Alert.status == AlertStatus.ACTIVE)
            .group_by(Alert.severity),
            Alert.firm_id,
            effective,
        )
        by_rule_stmt = scope_statement(
            select(Alert.rule_code, func.count(Alert.id))
            .where(Alert.status == AlertStatus.ACTIVE)
            .group_by(Alert.rule_code),
            Alert.firm_id,
            effective,
        )
        severity_counts = {severity.value: 0 for severity in Severity}
        for severity, count in (await self.session.execute(by_severity_stmt)).all():
            severity_counts[Severity(severity).value] = count
        rule_counts = {
            rule_code: count
            for rule_code, count in (await self.session.execute(by_rule_stmt)).all()
        }
        return {
            "by_severity": severity_counts,
            "by_rule": rule_counts,
            "total": sum(severity_counts.values()),
        }

    async def _record(
        self,
        actor: str,
        action: str,
        alert: Alert,
        before: dict | None,
        *,
        after: dict | None = None,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            actor,
            action,
            "alert",
            alert.id,
            before=before,
            after=after if after is not None else alert.state(),
        )
