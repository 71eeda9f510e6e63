"""
Client-side mirror of the appointments collection with optimistic writes.

Every write goes through the same sequence: cancel in-flight reads,
snapshot, apply speculatively, dispatch to the store, restore the snapshot on
failure, and finally invalidate and re-read so the mirror converges to the
store's canonical state. Writes are chained so that at most one speculative
change is outstanding at any time.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog

from clinic_booking.core.exceptions import NotFoundException
from clinic_booking.core.mutation import Mutation, MutationCallbacks
from clinic_booking.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentUpdate,
)
from clinic_booking.stores.base import AppointmentStore

logger = structlog.get_logger()

APPOINTMENTS_CACHE_KEY = "appointments"

Precheck = Callable[[], Awaitable[None]]


def is_temporary_id(appointment_id: str, prefix: str = "temp-") -> bool:
    """Check whether an id was synthesized locally and not yet reconciled."""
    return appointment_id.startswith(prefix)


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable copy of the mirror taken before a speculative write."""

    rows: tuple[Appointment, ...] | None
    invalidated: bool
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AppointmentCache:
    """Owns the single shared appointments collection entry."""

    def __init__(
        self,
        store: AppointmentStore,
        stale_time: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache over the store's unfiltered listing."""
        self.store = store
        self.stale_time = stale_time
        self._clock = clock

        self._rows: tuple[Appointment, ...] | None = None
        self._fetched_at: float | None = None
        self._invalidated = False
        self._generation = 0
        self._read_task: asyncio.Task | None = None

    @property
    def data(self) -> list[Appointment] | None:
        """Current mirror contents, or None before the first read."""
        return list(self._rows) if self._rows is not None else None

    @property
    def is_stale(self) -> bool:
        """Check if the mirror must be re-read before serving it."""
        if self._rows is None or self._invalidated or self._fetched_at is None:
            return True
        return self._clock() - self._fetched_at >= self.stale_time

    @property
    def is_fetching(self) -> bool:
        """Check if a collection read is in flight."""
        return self._read_task is not None and not self._read_task.done()

    def find(self, appointment_id: str) -> Appointment | None:
        """Look up a mirrored appointment by id."""
        for row in self._rows or ():
            if row.id == appointment_id:
                return row
        return None

    def set_data(self, rows: list[Appointment] | None) -> None:
        """Replace the mirror contents."""
        self._rows = tuple(rows) if rows is not None else None

    def update_data(
        self,
        updater: Callable[[list[Appointment] | None], list[Appointment] | None],
    ) -> None:
        """Replace the mirror with ``updater(current)``."""
        self.set_data(updater(self.data))

    def snapshot(self) -> CacheSnapshot:
        """Capture the mirror for an exact rollback."""
        return CacheSnapshot(rows=self._rows, invalidated=self._invalidated)

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Replace the mirror with a snapshot, never merging."""
        self._rows = snapshot.rows
        self._invalidated = snapshot.invalidated

    async def _read(self, generation: int) -> list[Appointment]:
        rows = await self.store.list_appointments()
        if generation != self._generation:
            logger.debug("cache_read_discarded", key=APPOINTMENTS_CACHE_KEY)
            return self.data or []

        self._rows = tuple(rows)
        self._fetched_at = self._clock()
        self._invalidated = False
        logger.debug("cache_read_completed", key=APPOINTMENTS_CACHE_KEY, count=len(rows))
        return list(rows)

    async def fetch(self, force: bool = False) -> list[Appointment]:
        """
        Return the collection, reading it from the store when stale.

        Concurrent callers share one in-flight read. If a write cancels that
        read, callers get the mirror as the write left it.

        Args:
            force: Read from the store even if the mirror is fresh

        Returns:
            Appointments in the mirror

        Raises:
            StorageException: If the store read fails
        """
        if not force and not self.is_stale:
            return self.data or []

        if not self.is_fetching:
            self._read_task = asyncio.create_task(self._read(self._generation))
        task = self._read_task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return self.data or []

    async def cancel_reads(self) -> None:
        """Cancel any in-flight read; a late result is discarded."""
        self._generation += 1
        task, self._read_task = self._read_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
            logger.debug("cache_read_cancelled", key=APPOINTMENTS_CACHE_KEY)

    async def invalidate(self, refetch: bool = True) -> None:
        """
        Mark the mirror stale and, by default, re-read it.

        Raises:
            StorageException: If the re-read fails; the mirror stays stale
        """
        self._invalidated = True
        logger.debug("cache_invalidated", key=APPOINTMENTS_CACHE_KEY)
        if refetch:
            await self.fetch(force=True)


class OptimisticTransaction:
    """Snapshot, speculative apply, then commit or exact restore."""

    def __init__(self, cache: AppointmentCache):
        """Initialize transaction against the cache."""
        self.cache = cache
        self.snapshot: CacheSnapshot | None = None

    async def begin(self) -> "OptimisticTransaction":
        """Cancel in-flight reads and capture the current mirror."""
        await self.cache.cancel_reads()
        self.snapshot = self.cache.snapshot()
        return self

    def apply(
        self,
        updater: Callable[[list[Appointment] | None], list[Appointment] | None],
    ) -> None:
        """Apply a speculative change to the mirror."""
        if self.snapshot is None:
            raise RuntimeError("Transaction has not begun")
        self.cache.update_data(updater)

    def rollback(self) -> None:
        """Restore the mirror to the captured snapshot."""
        if self.snapshot is not None:
            self.cache.restore(self.snapshot)
            self.snapshot = None

    def commit(self) -> None:
        """Discard the snapshot; the speculative state stands until settle."""
        self.snapshot = None


class OptimisticCacheManager:
    """Runs create/update/delete against the store with optimistic mirror updates."""

    def __init__(
        self,
        store: AppointmentStore,
        cache: AppointmentCache | None = None,
        temp_id_prefix: str = "temp-",
    ):
        """Initialize manager; the cache defaults to one over the same store."""
        self.store = store
        self.cache = cache or AppointmentCache(store)
        self.temp_id_prefix = temp_id_prefix
        self._last_write: asyncio.Future | None = None

    def new_temp_id(self) -> str:
        """Synthesize a provisional id distinguishable from canonical ids."""
        return f"{self.temp_id_prefix}{uuid4().hex}"

    async def _run(
        self,
        operation: str,
        variables: Any,
        dispatch: Callable[[Any], Any],
        apply: Callable[[list[Appointment] | None], list[Appointment] | None],
        callbacks: MutationCallbacks | None,
    ) -> Any:
        previous = self._last_write
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._last_write = done

        async def on_start(_: Any) -> OptimisticTransaction:
            txn = await OptimisticTransaction(self.cache).begin()
            txn.apply(apply)
            logger.debug("optimistic_write_applied", operation=operation)
            return txn

        def on_error(error: Exception, _: Any, txn: OptimisticTransaction | None) -> None:
            if txn is not None:
                txn.rollback()
            logger.warning(
                "optimistic_write_rolled_back",
                operation=operation,
                error=getattr(error, "message", str(error)),
                error_type=type(error).__name__,
            )

        def on_success(_: Any, __: Any, txn: OptimisticTransaction) -> None:
            txn.commit()
            logger.info("optimistic_write_confirmed", operation=operation)

        async def on_settled(*_: Any) -> None:
            try:
                await self.cache.invalidate(refetch=True)
            except Exception as e:
                # Mirror stays invalidated; the next fetch re-reads it.
                logger.warning("cache_refetch_failed", operation=operation, error=str(e))

        mutation = Mutation(
            dispatch,
            on_start=on_start,
            on_error=on_error,
            on_success=on_success,
            on_settled=on_settled,
            callbacks=callbacks,
        )

        def release(_: Any = None) -> None:
            if not done.done():
                done.set_result(None)
            if self._last_write is done:
                self._last_write = None

        try:
            if previous is not None:
                await asyncio.wait({previous})
            return await mutation.execute(variables)
        finally:
            # A write cancelled while queued must not let its successor
            # overtake the write still in flight ahead of it.
            if previous is None or previous.done():
                release()
            else:
                previous.add_done_callback(release)

    async def create(
        self,
        data: AppointmentCreate,
        created_by: str | None = None,
        callbacks: MutationCallbacks | None = None,
        precheck: Precheck | None = None,
    ) -> Appointment:
        """
        Create an appointment optimistically.

        A provisional record with a temporary id is shown at the head of the
        collection until the store answers and the collection is re-read.
        ``precheck`` runs right before the store call; if it raises, the
        mirror is rolled back exactly as for a store rejection.

        Returns:
            The canonical appointment from the store
        """
        now = datetime.now(UTC)
        provisional = Appointment(
            **data.model_dump(),
            id=self.new_temp_id(),
            created_at=now,
            updated_at=now,
            created_by=created_by,
        )

        def apply(rows: list[Appointment] | None) -> list[Appointment]:
            return [provisional, *(rows or [])]

        async def dispatch(draft: AppointmentCreate) -> Appointment:
            if precheck is not None:
                await precheck()
            return await self.store.create_appointment(draft, created_by=created_by)

        return await self._run("create", data, dispatch, apply, callbacks)

    async def update(
        self,
        appointment_id: str,
        data: AppointmentUpdate,
        callbacks: MutationCallbacks | None = None,
        precheck: Precheck | None = None,
    ) -> Appointment:
        """
        Update an appointment optimistically.

        Returns:
            The canonical appointment from the store
        """
        changes = data.changes()

        def apply(rows: list[Appointment] | None) -> list[Appointment] | None:
            if rows is None:
                return None
            now = datetime.now(UTC)
            return [
                row.model_copy(update={**changes, "updated_at": now})
                if row.id == appointment_id
                else row
                for row in rows
            ]

        async def dispatch(patch: AppointmentUpdate) -> Appointment:
            if precheck is not None:
                await precheck()
            return await self.store.update_appointment(appointment_id, patch)

        return await self._run("update", data, dispatch, apply, callbacks)

    async def delete(
        self,
        appointment_id: str,
        callbacks: MutationCallbacks | None = None,
        missing_ok: bool = False,
    ) -> None:
        """
        Delete an appointment optimistically.

        Args:
            appointment_id: Appointment ID
            callbacks: Caller lifecycle hooks
            missing_ok: Treat an already-deleted appointment as success
        """

        def apply(rows: list[Appointment] | None) -> list[Appointment] | None:
            if rows is None:
                return None
            return [row for row in rows if row.id != appointment_id]

        async def dispatch(target_id: str) -> None:
            try:
                await self.store.delete_appointment(target_id)
            except NotFoundException:
                if not missing_ok:
                    raise
                logger.info("appointment_already_deleted", appointment_id=target_id)

        await self._run("delete", appointment_id, dispatch, apply, callbacks)
