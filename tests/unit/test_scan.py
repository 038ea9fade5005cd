from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firmwatch.domain.models import (
    ALL_FIRMS,
    AlertKey,
    AlertStatus,
    EntityStatus,
    EntityType,
    FirmFilter,
    RuleMatch,
    Severity,
    TrackedEntitySnapshot,
    User,
)
from firmwatch.domain.services import scope as scope_service
from firmwatch.domain.services.alerts import AlertService, ReconcileOutcome
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.scan import ScanService
from firmwatch.infrastructure.db.models import AuditLog, License, Loan, Task
from firmwatch.infrastructure.repositories.entities import EntityRepository
from tests.utils import SeedData, add_entity, alerts_for

TODAY = date(2025, 3, 1)


def in_days(days: int) -> date:
    return TODAY + timedelta(days=days)


async def add_license(
    session_factory: async_sessionmaker[AsyncSession],
    firm_id: str,
    days: int,
    license_type: str = "trade_license",
) -> License:
    return await add_entity(
        session_factory,
        License,
        firm_id=firm_id,
        license_type=license_type,
        expiry_date=in_days(days),
    )


async def test_scan_creates_alerts_then_reaches_a_fixed_point(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    soon = await add_license(session_factory, seed.firm_1, 5)
    await add_entity(
        session_factory, License, firm_id=seed.firm_2, license_type="vat", expiry_date=in_days(45)
    )
    await add_entity(
        session_factory, License, firm_id=seed.firm_1, license_type="tin", expiry_date=in_days(100)
    )
    await add_entity(
        session_factory,
        License,
        firm_id=seed.firm_1,
        license_type="fire",
        expiry_date=in_days(-1),
        status=EntityStatus.CLOSED,
    )
    overdue_task = await add_entity(
        session_factory, Task, firm_id=seed.firm_2, title="File VAT return", due_date=in_days(-2)
    )

    scanner = ScanService(session_factory)
    first = await scanner.run(TODAY)

    assert first.types["license"].evaluated == 3
    assert first.types["license"].created == 2
    assert first.types["task"].created == 1
    assert first.totals()["created"] == 3
    assert first.failed_types == []

    [alert] = await alerts_for(session_factory, soon.id)
    assert alert.severity == Severity.HIGH
    assert alert.rule_code == "license_expiry"
    assert alert.message == "Trade License for Alpha Builders expires in 5 days"
    [task_alert] = await alerts_for(session_factory, overdue_task.id)
    assert task_alert.severity == Severity.OVERDUE

    second = await scanner.run(TODAY)

    totals = second.totals()
    assert (totals["created"], totals["updated"], totals["resolved"]) == (0, 0, 0)


async def test_next_day_scan_updates_in_place(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    license_ = await add_license(session_factory, seed.firm_1, 8)
    scanner = ScanService(session_factory)

    await scanner.run(TODAY)
    summary = await scanner.run(in_days(1))

    assert summary.types["license"].updated == 1
    [alert] = await alerts_for(session_factory, license_.id)
    assert alert.severity == Severity.HIGH
    assert alert.message.endswith("expires in 7 days")


async def test_closing_an_entity_resolves_its_alert(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    loan = await add_entity(
        session_factory,
        Loan,
        firm_id=seed.firm_1,
        loan_type="Term loan",
        bank_name="City Bank",
        maturity_date=in_days(3),
    )
    scanner = ScanService(session_factory)
    await scanner.run(TODAY)

    async with session_factory() as session:
        await session.execute(
            update(Loan).where(Loan.id == loan.id).values(status=EntityStatus.CLOSED)
        )
        await session.commit()

    summary = await scanner.run(TODAY)

    assert summary.types["loan"].resolved == 1
    [alert] = await alerts_for(session_factory, loan.id)
    assert alert.status == AlertStatus.RESOLVED
    assert alert.resolved_at is not None


async def test_acknowledge_then_renew_walkthrough(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    license_ = await add_license(session_factory, seed.firm_1, 5)
    scanner = ScanService(session_factory)
    await scanner.run(TODAY)
    [alert] = await alerts_for(session_factory, license_.id)

    admin = scope_service.resolve(User(user_id=seed.admin_id, role="admin"))
    async with session_factory() as session:
        await AlertService(session).acknowledge(alert.id, admin)

    # Unchanged condition keeps the acknowledgement
    await scanner.run(TODAY)
    [alert] = await alerts_for(session_factory, license_.id)
    assert alert.status == AlertStatus.ACKNOWLEDGED

    async with session_factory() as session:
        await session.execute(
            update(License).where(License.id == license_.id).values(expiry_date=in_days(200))
        )
        await session.commit()

    summary = await scanner.run(TODAY)

    assert summary.types["license"].resolved == 1
    [alert] = await alerts_for(session_factory, license_.id)
    assert alert.status == AlertStatus.RESOLVED
    assert alert.resolved_at is not None
    assert await alerts_for(session_factory, license_.id, status=AlertStatus.ACTIVE) == []


class FailingLoanRepository(EntityRepository):
    async def list_entities(
        self, entity_type: EntityType, firm_filter: FirmFilter = ALL_FIRMS
    ) -> list[TrackedEntitySnapshot]:
        if entity_type == EntityType.LOAN:
            raise ConnectionError("loan table unavailable")
        return await super().list_entities(entity_type, firm_filter)


async def test_type_failure_is_reported_and_scan_continues(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    await add_license(session_factory, seed.firm_1, 5)
    scanner = ScanService(session_factory, repository_factory=FailingLoanRepository)

    summary = await scanner.run(TODAY)

    assert summary.failed_types == ["loan"]
    assert summary.types["loan"].failed == 1
    assert "loan table unavailable" in summary.types["loan"].error
    assert summary.types["license"].created == 1
    assert summary.types["task"].error is None


class MalformedTaskRepository(EntityRepository):
    async def list_entities(
        self, entity_type: EntityType, firm_filter: FirmFilter = ALL_FIRMS
    ) -> list[TrackedEntitySnapshot]:
        snapshots = await super().list_entities(entity_type, firm_filter)
        if entity_type == EntityType.TASK and snapshots:
            bad = replace(snapshots[0], entity_id="task-bad", deadline_value="31/02/2025")
            return [bad, *snapshots]
        return snapshots


async def test_malformed_entity_is_counted_and_others_still_evaluated(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    task = await add_entity(
        session_factory, Task, firm_id=seed.firm_1, title="Board meeting", due_date=in_days(1)
    )
    scanner = ScanService(session_factory, repository_factory=MalformedTaskRepository)

    summary = await scanner.run(TODAY)

    assert summary.types["task"].evaluated == 2
    assert summary.types["task"].failed == 1
    assert summary.types["task"].created == 1
    assert summary.types["task"].error is None
    assert len(await alerts_for(session_factory, task.id)) == 1


async def test_evaluate_entity_reconciles_one_entity(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    task = await add_entity(
        session_factory, Task, firm_id=seed.firm_1, title="Renew lease", due_date=in_days(2)
    )
    scanner = ScanService(session_factory)

    result = await scanner.evaluate_entity(EntityType.TASK, task.id, today=TODAY)

    assert (result.evaluated, result.created) == (1, 1)
    [alert] = await alerts_for(session_factory, task.id)
    assert alert.severity == Severity.MEDIUM


async def test_scan_run_is_audited(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> None:
    scanner = ScanService(session_factory, audit=AuditRecorder(session_factory))

    await scanner.run(TODAY, triggered_by=seed.admin_id)

    async with session_factory() as session:
        entry = await session.scalar(select(AuditLog).where(AuditLog.action == "scan_run"))
    assert entry.actor_id == seed.admin_id
    assert entry.after_state["scan_date"] == TODAY.isoformat()


async def test_evaluate_entity_absorbs_a_repeated_dedup_conflict(
    session_factory: async_sessionmaker[AsyncSession],
    seed: SeedData,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    license_ = await add_license(session_factory, seed.firm_1, 5)
    scanner = ScanService(session_factory)
    await scanner.run(TODAY)

    async def never_sees_live(self: AlertService, key: AlertKey) -> None:
        return None

    # Every insert now collides with the existing live row, retry included
    monkeypatch.setattr(AlertService, "_find_live", never_sees_live)

    result = await scanner.evaluate_entity(EntityType.LICENSE, license_.id, today=TODAY)

    assert (result.evaluated, result.created, result.failed) == (1, 0, 1)
    [alert] = await alerts_for(session_factory, license_.id)
    assert alert.status == AlertStatus.ACTIVE


async def test_sweep_failure_for_one_key_does_not_stop_the_others(
    session_factory: async_sessionmaker[AsyncSession],
    seed: SeedData,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    stuck = await add_license(session_factory, seed.firm_1, 5)
    closed = await add_license(session_factory, seed.firm_2, 6, license_type="vat")
    scanner = ScanService(session_factory)
    await scanner.run(TODAY)

    async with session_factory() as session:
        await session.execute(
            update(License)
            .where(License.id.in_([stuck.id, closed.id]))
            .values(status=EntityStatus.CLOSED)
        )
        await session.commit()

    real_reconcile = AlertService.reconcile

    async def reconcile(
        self: AlertService, key: AlertKey, firm_id: str, match: RuleMatch | None
    ) -> ReconcileOutcome:
        if key.entity_id == stuck.id:
            raise ConnectionError("lock timeout")
        return await real_reconcile(self, key, firm_id, match)

    monkeypatch.setattr(AlertService, "reconcile", reconcile)

    summary = await scanner.run(TODAY)

    assert summary.types["license"].error is None
    assert (summary.types["license"].failed, summary.types["license"].resolved) == (1, 1)
    [still_live] = await alerts_for(session_factory, stuck.id)
    assert still_live.status == AlertStatus.ACTIVE
    [resolved] = await alerts_for(session_factory, closed.id)
    assert resolved.status == AlertStatus.RESOLVED
