"""
Audit Recorder - append an entry for every authorization decision.

The decision is always computed first and returned to the caller unchanged;
recording happens afterwards and can never flip it. ``record`` builds the
entry synchronously and hands it to a bounded asyncio queue without waiting.
A single background task drains the queue in FIFO order, so entries for any
one principal reach the sink in the order they were decided.

FAILURE BOUNDARIES:
- queue full or recorder stopped: entry dropped, ERROR logged, error channel called
- sink raises or exceeds its timeout: entry counted as failed, ERROR logged,
  error channel called
- nothing is ever raised back into ``record``'s caller
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from ..auth.contract import DecisionOutcome
from ..auth.engine import Decision, Principal, PermissionRequest
from ..schemas.audit_log import AuditContext, AuditLogEntry
from .sinks import AuditSink

logger = logging.getLogger("access_core.audit")

ErrorChannel = Callable[[AuditLogEntry, BaseException], None]

_MAX_IP_LENGTH = 45
_MAX_ID_LENGTH = 255
_MAX_NAME_LENGTH = 100


class AuditRecordDropped(RuntimeError):
    """Passed to the error channel when an entry never reached the sink."""


@dataclass
class RecorderStats:
    recorded: int = 0
    written: int = 0
    dropped: int = 0
    failed: int = 0


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


def build_entry(
    principal: Principal,
    request: PermissionRequest,
    decision: Decision,
    context: AuditContext | None = None,
) -> AuditLogEntry:
    context = context or AuditContext()
    requirement = decision.matched_requirement
    # Decision fields win over caller-supplied extras
    details: dict[str, Any] = dict(context.extra)
    details.update({
        "role": principal.role,
        "status": principal.status.value,
        "permission": decision.matched_permission,
        "category": str(getattr(request.category, "value", request.category))
        if request.category is not None
        else None,
        "resource_owner_id": str(request.resource_owner_id)
        if request.resource_owner_id is not None
        else None,
        "requirement_level": requirement.level.value if requirement is not None else None,
        "two_factor_verified": principal.two_factor_verified,
    })
    return AuditLogEntry(
        user_id=_clip(principal.user_id, _MAX_ID_LENGTH),
        action=_clip(request.action_name, _MAX_NAME_LENGTH),
        module=_clip(request.module_name, _MAX_NAME_LENGTH),
        decision=DecisionOutcome.ALLOW if decision.allowed else DecisionOutcome.DENY,
        reason_code=decision.reason_code,
        details=details,
        ip_address=_clip(context.ip_address or principal.source_ip, _MAX_IP_LENGTH),
        user_agent=context.user_agent,
        timestamp=decision.evaluated_at,
    )


class AuditRecorder:
    def __init__(
        self,
        sink: AuditSink,
        *,
        max_queue_size: int = 10_000,
        sink_timeout: float = 2.0,
        on_error: ErrorChannel | None = None,
    ) -> None:
        if max_queue_size <= 0:
            raise ValueError("max_queue_size must be greater than 0")
        if sink_timeout <= 0:
            raise ValueError("sink_timeout must be greater than 0")
        self._sink = sink
        self._max_queue_size = max_queue_size
        self._sink_timeout = sink_timeout
        self._on_error = on_error
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[AuditLogEntry] | None = None
        self._task: asyncio.Task[None] | None = None
        self._accepting = False
        self.stats = RecorderStats()
        self._stats_lock = threading.Lock()

    @property
    def sink(self) -> AuditSink:
        return self._sink

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background writer on the running loop. Idempotent."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._task = asyncio.create_task(self._worker(), name="audit-recorder")
        self._accepting = True
        logger.info(
            "audit_recorder_started sink=%s queue_size=%d timeout=%.2fs",
            type(self._sink).__name__,
            self._max_queue_size,
            self._sink_timeout,
        )

    async def drain(self) -> None:
        """Wait until every queued entry has been handed to the sink."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def stop(self) -> None:
        """Stop accepting entries, flush the queue, then stop the writer."""
        if self._task is None:
            return
        self._accepting = False
        await self.drain()
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._queue = None
        self._loop = None
        logger.info(
            "audit_recorder_stopped recorded=%d written=%d dropped=%d failed=%d",
            self.stats.recorded,
            self.stats.written,
            self.stats.dropped,
            self.stats.failed,
        )

    def record(
        self,
        principal: Principal,
        request: PermissionRequest,
        decision: Decision,
        context: AuditContext | None = None,
    ) -> AuditLogEntry:
        """Build the entry for ``decision`` and enqueue it without blocking.

        Safe to call from the event loop thread or from worker threads.
        """
        entry = build_entry(principal, request, decision, context)
        with self._stats_lock:
            self.stats.recorded += 1
        self._submit(entry)
        return entry

    def _submit(self, entry: AuditLogEntry) -> None:
        loop = self._loop
        if not self._accepting or loop is None or loop.is_closed():
            self._drop(entry, "recorder_not_running")
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._enqueue(entry)
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, entry)
        except RuntimeError:
            self._drop(entry, "recorder_loop_closed")

    def _enqueue(self, entry: AuditLogEntry) -> None:
        if self._queue is None:
            self._drop(entry, "recorder_not_running")
            return
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self._drop(entry, "queue_full")

    def _drop(self, entry: AuditLogEntry, reason: str) -> None:
        with self._stats_lock:
            self.stats.dropped += 1
        logger.error(
            "audit_entry_dropped reason=%s entry_id=%s user_id=%s module=%s action=%s decision=%s",
            reason,
            entry.id,
            entry.user_id,
            entry.module,
            entry.action,
            entry.decision.value,
        )
        self._report(entry, AuditRecordDropped(reason))

    async def _worker(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            entry = await queue.get()
            try:
                await self._write(entry)
            finally:
                queue.task_done()

    async def _write(self, entry: AuditLogEntry) -> None:
        try:
            await asyncio.wait_for(self._sink.append(entry), timeout=self._sink_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.stats.failed += 1
            logger.error(
                "audit_write_failed entry_id=%s user_id=%s sink=%s",
                entry.id,
                entry.user_id,
                type(self._sink).__name__,
                exc_info=exc,
            )
            self._report(entry, exc)
            return
        self.stats.written += 1

    def _report(self, entry: AuditLogEntry, exc: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(entry, exc)
        except Exception:  # noqa: BLE001
            logger.exception("audit_error_channel_failed entry_id=%s", entry.id)
