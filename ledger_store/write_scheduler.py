"""
Debounced Snapshot Writer

Bursts of mutations collapse into one write. The first request opens a
cycle and waits out the debounce window; requests arriving while the cycle
is pending share its future. The snapshot is captured in one synchronous
step, after which the slot is released, so a mutation committed after the
capture opens the next cycle instead of being reported as written.
"""

import asyncio
from typing import Callable, Optional

from .errors import LedgerIOError
from .logging_config import get_logger, log_action
from .storage import SnapshotFile


class WriteScheduler:
    """
    Single-slot coordinator for snapshot writes

    At most one write is on disk at a time; the write itself runs in a
    worker thread so the event loop stays responsive.
    """

    def __init__(
        self,
        snapshot: SnapshotFile,
        serialize: Callable[[], str],
        delay: float = 1.0
    ):
        self.snapshot = snapshot
        self.serialize = serialize
        self.delay = delay
        self._pending: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self._dirty = False
        self.logger = get_logger("ledger_store.write_scheduler")

    @property
    def pending(self) -> bool:
        """Whether a cycle is waiting to capture the snapshot"""
        return self._pending is not None

    def schedule_write(self) -> asyncio.Future:
        """
        Request that the current state reach disk

        Does not need to be awaited. Awaiting the returned future waits for
        the write that includes every mutation committed before the call;
        it raises LedgerIOError if that write failed.
        """
        self._dirty = True
        if self._pending is not None:
            return self._pending

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending = future
        self._task = loop.create_task(self._run_cycle(future))
        return future

    async def flush(self) -> None:
        """
        Write any unwritten state now

        Waits for a pending cycle first so writes stay ordered, then writes
        again if that cycle failed or nothing has reached disk since the
        last mutation.

        Raises:
            LedgerIOError: If the write fails
        """
        while self._pending is not None:
            try:
                await self._pending
            except LedgerIOError:
                # Retried below
                pass
        # A captured snapshot may still be on its way to disk
        async with self._write_lock:
            pass
        if self._dirty:
            text = self._capture()
            self._dirty = False
            await self._write_or_mark_dirty(text)

    async def _run_cycle(self, future: asyncio.Future) -> None:
        await asyncio.sleep(self.delay)

        # The slot is freed before anything can fail so later writes still run
        self._pending = None
        try:
            text = self._capture()
            self._dirty = False
            await self._write_or_mark_dirty(text)
        except LedgerIOError as e:
            future.set_exception(e)
            # Reported through the log above; waiters still see the error
            future.exception()
        else:
            future.set_result(None)

    def _capture(self) -> str:
        """
        Serialize the current state, leaving it dirty on failure

        Raises:
            LedgerIOError: If the state cannot be serialized
        """
        try:
            return self.serialize()
        except (TypeError, ValueError) as e:
            self._dirty = True
            log_action(
                self.logger, "error", f"Snapshot serialization failed: {e}",
                action="flush", resource=str(self.snapshot.path)
            )
            raise LedgerIOError(f"Could not serialize snapshot: {e}") from e

    async def _write_or_mark_dirty(self, text: str) -> None:
        try:
            await self._write(text)
        except LedgerIOError:
            self._dirty = True
            raise

    async def _write(self, text: str) -> None:
        async with self._write_lock:
            try:
                await asyncio.to_thread(self.snapshot.write, text)
            except OSError as e:
                log_action(
                    self.logger, "error", f"Snapshot write failed: {e}",
                    action="flush", resource=str(self.snapshot.path)
                )
                raise LedgerIOError(f"Could not write {self.snapshot.path}: {e}") from e

        log_action(
            self.logger, "debug", "Snapshot written",
            action="flush", resource=str(self.snapshot.path),
            extra={"bytes": len(text)}
        )
