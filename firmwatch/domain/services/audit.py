from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firmwatch.infrastructure.db.models import AuditLog

logger = structlog.get_logger()

SYSTEM_ACTOR = "system"


class AuditRecorder:
    """Fire-and-forget audit trail writer.

    Each record is written in its own session so a failure here can never
    roll back the change being audited. Failures are logged and dropped.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        actor: str | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(
                    AuditLog(
                        actor_id=None if actor == SYSTEM_ACTOR else actor,
                        action=action,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        before_state=before,
                        after_state=after,
                    )
                )
                await session.commit()
        except Exception as exc:  # noqa: BLE001 - audit must never break the caller
            logger.warning(
                "audit_record_failed",
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(exc),
            )
