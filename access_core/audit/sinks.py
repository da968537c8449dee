"""Audit sinks: where recorded decisions end up.

The recorder only knows the ``AuditSink`` protocol. Every sink appends and
never updates or deletes; retention is an external policy.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Protocol, runtime_checkable

from redis.asyncio import Redis as AsyncRedis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..crud.audit_log import AuditLogRepository
from ..schemas.audit_log import AuditLogEntry, AuditLogFilter, AuditLogResponse

logger = logging.getLogger("access_core.audit")


@runtime_checkable
class AuditSink(Protocol):
    async def append(self, entry: AuditLogEntry) -> None: ...


class InMemoryAuditSink:
    """Process-local append-only sink; useful for tests and single-node setups."""

    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, entry: AuditLogEntry) -> None:
        async with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> tuple[AuditLogEntry, ...]:
        return tuple(self._entries)

    def list_by_filters(
        self,
        filters: AuditLogFilter | None = None,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        """Newest first, like the database repository."""
        filters = filters or AuditLogFilter()
        matched = [entry for entry in reversed(self._entries) if filters.matches(entry)]
        return matched[offset:offset + limit]

    def __len__(self) -> int:
        return len(self._entries)


class DatabaseAuditSink:
    """Writes each entry in its own session so audit commits never mix with
    the caller's transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    async def append(self, entry: AuditLogEntry) -> None:
        async with self._session_factory() as session:
            repo = AuditLogRepository(session)
            await repo.create(
                id=entry.id,
                user_id=entry.user_id,
                action=entry.action,
                module=entry.module,
                decision=entry.decision.value,
                reason_code=entry.reason_code.value,
                details=entry.details,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                timestamp=entry.timestamp,
            )

    async def get(self, entry_id: uuid.UUID) -> AuditLogResponse | None:
        async with self._session_factory() as session:
            row = await AuditLogRepository(session).get_by_id(entry_id)
        return AuditLogResponse.model_validate(row) if row is not None else None

    async def list_by_user(self, user_id: str, *, limit: int = 100) -> list[AuditLogResponse]:
        async with self._session_factory() as session:
            rows = await AuditLogRepository(session).list_by_user(user_id, limit=limit)
        return [AuditLogResponse.model_validate(row) for row in rows]

    async def list_by_filters(
        self,
        filters: AuditLogFilter | None = None,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogResponse]:
        filters = filters or AuditLogFilter()
        async with self._session_factory() as session:
            rows = await AuditLogRepository(session).list_by_filters(
                user_id=filters.user_id,
                module=filters.module,
                action=filters.action,
                decision=filters.decision.value if filters.decision is not None else None,
                reason_code=filters.reason_code.value if filters.reason_code is not None else None,
                from_date=filters.from_date,
                to_date=filters.to_date,
                limit=limit,
                offset=offset,
            )
        return [AuditLogResponse.model_validate(row) for row in rows]

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


class RedisStreamAuditSink:
    """Appends entries to a capped Redis stream (XADD ... MAXLEN ~ n)."""

    def __init__(self, redis_client: AsyncRedis, stream_key: str, maxlen: int = 100_000) -> None:
        self._redis = redis_client
        self._stream_key = stream_key
        self._maxlen = maxlen

    async def append(self, entry: AuditLogEntry) -> None:
        fields = {
            "id": str(entry.id),
            "user_id": entry.user_id,
            "module": entry.module,
            "action": entry.action,
            "decision": entry.decision.value,
            "reason_code": entry.reason_code.value,
            "timestamp": entry.timestamp.isoformat(),
            "entry": json.dumps(entry.model_dump(mode="json"), separators=(",", ":")),
        }
        await self._redis.xadd(
            self._stream_key,
            fields,
            maxlen=self._maxlen,
            approximate=True,
        )

    async def close(self) -> None:
        await self._redis.aclose()
