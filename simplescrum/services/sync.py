"""
SimpleScrum Persistence Dispatcher

Carries store mutations to the owner's record store in submission order.
Local mutations are never rolled back; a failing operation stays at the head
of the queue and blocks the ones behind it so inserts always land before
the updates that depend on them.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from simplescrum.db.records import RecordStore
from simplescrum.errors import PersistenceError, SimpleScrumError
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.events import EventBus, PersistenceFailed
from simplescrum.services.store import StoreChange


@dataclass
class PendingOperation:
    kind: str
    op: str
    entity_id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    batch: Optional[str] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_change(cls, change: StoreChange) -> "PendingOperation":
        return cls(
            kind=change.kind,
            op=change.op,
            entity_id=change.entity_id,
            fields=dict(change.fields),
            batch=change.batch,
        )


class PersistenceDispatcher(Service):
    """
    Ordered retry queue in front of a RecordStore.

    ``enqueue`` is a store listener and never blocks: when an event loop is
    running it schedules a background drain, otherwise operations wait for
    the next ``flush()``.
    """

    def __init__(
        self,
        context: ServiceContext,
        records: RecordStore,
        bus: Optional[EventBus] = None,
    ) -> None:
        super().__init__(context)
        self.records = records
        self.bus = bus
        self._queue: Deque[PendingOperation] = deque()
        self._applied_in_batch: Dict[str, List[str]] = {}
        self._drain_task: Optional["asyncio.Task[None]"] = None
        self._draining = False
        self._stalled = False

    @property
    def pending(self) -> List[PendingOperation]:
        return list(self._queue)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def is_stalled(self) -> bool:
        return self._stalled

    def enqueue(self, change: StoreChange) -> None:
        self._queue.append(PendingOperation.from_change(change))
        self._schedule()

    def _schedule(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain_in_background())

    async def _drain_in_background(self) -> None:
        try:
            await self._drain()
        except PersistenceError:
            # Already logged and published as PersistenceFailed; the operation stays queued.
            return

    async def flush(self) -> None:
        """
        Wait until every queued operation has been persisted.

        Raises:
            PersistenceError: if the head operation still fails after the
                configured attempts. It remains queued for a later flush.
        """
        await self.settle()
        await self._drain()

    async def settle(self) -> None:
        """Wait for an in-flight background drain without raising; failures stay queued."""
        task = self._drain_task
        if task is not None and not task.done() and task.get_loop() is asyncio.get_running_loop():
            await asyncio.wait([task])

    async def retry(self) -> bool:
        """Flush once more; returns True when the queue is empty afterwards."""
        try:
            await self.flush()
        except PersistenceError:
            return False
        return True

    def discard(self) -> int:
        """Drop every queued operation (sign-out). Returns how many were dropped."""
        dropped = len(self._queue)
        self._queue.clear()
        self._applied_in_batch.clear()
        self._stalled = False
        if dropped:
            self.logger.warning("persistence_queue_discarded", extra=self.log_extra(dropped=dropped))
        return dropped

    async def _drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                op = self._queue[0]
                await self._apply_with_retry(op)
                if self._queue and self._queue[0] is op:
                    self._queue.popleft()
                    self._mark_applied(op)
            self._stalled = False
        finally:
            self._draining = False

    def _mark_applied(self, op: PendingOperation) -> None:
        if op.batch is None:
            return
        if any(o.batch == op.batch for o in self._queue):
            self._applied_in_batch.setdefault(op.batch, []).append(op.entity_id)
        else:
            self._applied_in_batch.pop(op.batch, None)

    async def _apply(self, op: PendingOperation) -> None:
        collection = self.records.collection(op.kind)
        if op.op == "insert":
            await collection.insert(op.fields)
        else:
            await collection.update(op.entity_id, op.fields)

    async def _apply_with_retry(self, op: PendingOperation) -> None:
        max_attempts = self.config.persistence_max_attempts
        delay = self.config.persistence_retry_delay
        for attempt in range(1, max_attempts + 1):
            op.attempts += 1
            try:
                await self._apply(op)
                return
            except SimpleScrumError as exc:
                op.last_error = str(exc)
                if not exc.retryable or attempt == max_attempts:
                    self._give_up(op, exc)
                wait = delay * (2 ** (attempt - 1))
                self.logger.warning(
                    "persistence_retry",
                    extra=self.log_extra(
                        kind=op.kind,
                        entity_id=op.entity_id,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay_seconds=wait,
                        error=str(exc),
                    ),
                )
                await asyncio.sleep(wait)

    def _give_up(self, op: PendingOperation, exc: SimpleScrumError) -> None:
        self._stalled = True
        metadata: Dict[str, Any] = {
            "kind": op.kind,
            "operation": op.op,
            "entity_id": op.entity_id,
            "attempts": op.attempts,
            "pending": len(self._queue),
        }
        if op.batch is not None:
            metadata["batch"] = op.batch
            metadata["applied"] = list(self._applied_in_batch.get(op.batch, []))
            metadata["unapplied"] = [o.entity_id for o in self._queue if o.batch == op.batch]
        self.logger.error(
            "persistence_failed",
            extra=self.log_extra(error=str(exc), **metadata),
        )
        if self.bus is not None:
            self.bus.publish(
                PersistenceFailed(
                    kind=op.kind,
                    operation=op.op,
                    entity_id=op.entity_id,
                    error=str(exc),
                    pending=len(self._queue),
                    metadata=metadata,
                )
            )
        raise PersistenceError(
            f"Could not persist {op.op} of {op.kind} {op.entity_id}: {exc}",
            metadata=metadata,
        ) from exc
