import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit_log import AccessAuditLog


class AuditLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: str,
        action: str,
        module: str,
        decision: str,
        reason_code: str,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        id: uuid.UUID | None = None,
        timestamp: datetime | None = None,
    ) -> AccessAuditLog:
        audit_log = AccessAuditLog(
            user_id=user_id,
            action=action,
            module=module,
            decision=decision,
            reason_code=reason_code,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if id is not None:
            audit_log.id = id
        if timestamp is not None:
            audit_log.timestamp = timestamp
        self.session.add(audit_log)
        await self.session.commit()
        return audit_log

    async def get_by_id(self, audit_log_id: uuid.UUID) -> AccessAuditLog | None:
        return await self.session.get(AccessAuditLog, audit_log_id)

    async def list_by_user(self, user_id: str, limit: int = 100) -> list[AccessAuditLog]:
        result = await self.session.execute(
            select(AccessAuditLog)
            .where(AccessAuditLog.user_id == user_id)
            .order_by(AccessAuditLog.timestamp.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_filters(
        self,
        user_id: str | None = None,
        module: str | None = None,
        action: str | None = None,
        decision: str | None = None,
        reason_code: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AccessAuditLog]:
        query = select(AccessAuditLog)

        conditions = []
        if user_id is not None:
            conditions.append(AccessAuditLog.user_id == user_id)
        if module is not None:
            conditions.append(AccessAuditLog.module == module)
        if action is not None:
            conditions.append(AccessAuditLog.action == action)
        if decision is not None:
            conditions.append(AccessAuditLog.decision == decision)
        if reason_code is not None:
            conditions.append(AccessAuditLog.reason_code == reason_code)
        if from_date is not None:
            conditions.append(AccessAuditLog.timestamp >= from_date)
        if to_date is not None:
            conditions.append(AccessAuditLog.timestamp <= to_date)

        if conditions:
            query = query.where(and_(*conditions))

        query = query.order_by(AccessAuditLog.timestamp.desc()).limit(limit).offset(offset)

        result = await self.session.execute(query)
        return list(result.scalars().all())
