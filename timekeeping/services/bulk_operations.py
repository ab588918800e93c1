"""
Fan-out/fan-in of one action over many time entries.

Each entry gets exactly one gateway call. Calls run concurrently up to a
small bound, a failure only affects its own entry, and nothing is retried.
The final aggregate does not depend on the order results arrive in.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

from timekeeping.config import settings
from timekeeping.connectors.base import BaseEntryGateway
from timekeeping.constants.failure_reasons import ReasonCode
from timekeeping.errors import TimekeepingError
from timekeeping.schemas.bulk import BulkAction, BulkActionKind, BulkProgress, BulkResult, ItemOutcome
from timekeeping.schemas.time_entry import EntryAction, TimeEntry
from timekeeping.services.entry_service import EntrySnapshotStore

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class BulkOperation:
    """
    A running bulk operation. Progress can be polled through ``progress`` or
    pushed through the ``on_progress`` callback.
    """

    def __init__(self, entry_ids: Tuple[str, ...], action: BulkAction, on_progress: Optional[ProgressCallback]):
        self.entry_ids = entry_ids
        self.action = action
        self._on_progress = on_progress
        self._lock = asyncio.Lock()
        self._completed = 0
        self._outcomes: Dict[str, ItemOutcome] = {}
        self._abandoned = False
        self._task: Optional[asyncio.Task] = None

    @property
    def total(self) -> int:
        return len(self.entry_ids)

    @property
    def progress(self) -> BulkProgress:
        return BulkProgress(completed=self._completed, total=self.total)

    @property
    def outcomes(self) -> Dict[str, ItemOutcome]:
        return dict(self._outcomes)

    @property
    def is_abandoned(self) -> bool:
        return self._abandoned

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def abandon(self) -> None:
        """
        Stop caring about the result. Items not yet started are skipped,
        in-flight calls finish but are not recorded, and no further progress
        is reported.
        """
        if not self._abandoned:
            self._abandoned = True
            log.info(
                f"Bulk {self.action.kind.value} abandoned at {self._completed}/{self.total}"
            )

    async def wait(self) -> Optional[BulkResult]:
        """The aggregate result, or None if the operation was abandoned."""
        if self._task is None:
            raise RuntimeError("Bulk operation was never started")
        result = await self._task
        return None if self._abandoned else result

    async def _record(self, outcome: ItemOutcome) -> None:
        async with self._lock:
            if self._abandoned:
                return
            self._outcomes[outcome.entry_id] = outcome
            self._completed += 1
            completed = self._completed
            # Reported while holding the lock so callbacks observe strictly increasing counts.
            if self._on_progress is not None:
                try:
                    self._on_progress(completed, self.total)
                except Exception as e:
                    log.error(f"Bulk progress callback failed: {e}", exc_info=True)

    def _result(self) -> BulkResult:
        succeeded = frozenset(entry_id for entry_id, outcome in self._outcomes.items() if outcome.succeeded)
        return BulkResult(
            action=self.action,
            succeeded_ids=succeeded,
            failed_count=self.total - len(succeeded),
            total=self.total,
            outcomes=dict(self._outcomes),
        )


class BulkOperationCoordinator:
    """
    Runs bulk actions through the gateway.

    When a snapshot store is given it is kept in line with the server as each
    call resolves: deleted or missing entries are dropped and stopped entries
    are replaced by their confirmed snapshot. This also happens for abandoned
    operations, since the server has changed either way.
    """

    def __init__(
        self,
        gateway: BaseEntryGateway,
        max_concurrency: Optional[int] = None,
        item_timeout: Optional[float] = None,
        store: Optional[EntrySnapshotStore] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.max_concurrency = max(1, max_concurrency or settings.bulk_max_concurrency)
        self.item_timeout = item_timeout if item_timeout is not None else settings.bulk_item_timeout_seconds

    async def run(
        self,
        entry_ids: Iterable[str],
        action: BulkAction,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BulkResult:
        """Apply ``action`` to every id and wait for the aggregate."""
        operation = self._prepare(entry_ids, action, on_progress)
        return await self._execute(operation)

    def start(
        self,
        entry_ids: Iterable[str],
        action: BulkAction,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BulkOperation:
        """Launch the operation in the background; must be called inside the event loop."""
        operation = self._prepare(entry_ids, action, on_progress)
        operation._task = asyncio.get_running_loop().create_task(self._execute(operation))
        return operation

    def _prepare(
        self,
        entry_ids: Iterable[str],
        action: BulkAction,
        on_progress: Optional[ProgressCallback],
    ) -> BulkOperation:
        ids = tuple(dict.fromkeys(entry_ids))
        if not ids:
            raise ValueError("Bulk operation requires at least one entry id")
        return BulkOperation(ids, action, on_progress)

    async def _execute(self, operation: BulkOperation) -> BulkResult:
        log.info(
            f"Bulk {operation.action.kind.value} started for {operation.total} entries "
            f"(max_concurrency={self.max_concurrency})"
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(
            *(self._run_item(operation, entry_id, semaphore) for entry_id in operation.entry_ids)
        )

        result = operation._result()
        if not operation.is_abandoned:
            log.info(
                f"Bulk {operation.action.kind.value} finished: {len(result.succeeded_ids)}/{result.total} "
                f"succeeded, {result.failed_count} failed"
            )
        return result

    async def _run_item(self, operation: BulkOperation, entry_id: str, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            if operation.is_abandoned:
                return
            outcome, value = await self._call(entry_id, operation.action)
        self._reconcile(operation.action, outcome, value)
        await operation._record(outcome)

    def _dispatch(self, entry_id: str, action: BulkAction) -> Awaitable:
        if action.kind == BulkActionKind.DELETE:
            return self.gateway.delete_entry(entry_id)
        if action.kind == BulkActionKind.REASSIGN:
            return self.gateway.update_collections(entry_id, list(action.collection_ids or []))
        if action.kind == BulkActionKind.REFRESH_METADATA:
            return self.gateway.request_metadata_refresh(entry_id)
        if action.kind == BulkActionKind.STOP:
            return self.gateway.apply_transition(entry_id, EntryAction.STOP)
        raise ValueError(f"Unsupported bulk action: {action.kind}")

    async def _call(self, entry_id: str, action: BulkAction) -> Tuple[ItemOutcome, Any]:
        try:
            call = self._dispatch(entry_id, action)
            if self.item_timeout:
                value = await asyncio.wait_for(call, timeout=self.item_timeout)
            else:
                value = await call
            log.trace(f"Bulk {action.kind.value} succeeded for {entry_id}")
            return ItemOutcome(entry_id=entry_id, succeeded=True), value
        except asyncio.TimeoutError:
            log.warning(f"Bulk {action.kind.value} timed out for {entry_id} after {self.item_timeout}s")
            return ItemOutcome(entry_id=entry_id, succeeded=False, reason=ReasonCode.TIMEOUT), None
        except TimekeepingError as e:
            log.warning(f"Bulk {action.kind.value} failed for {entry_id}: {e}")
            return ItemOutcome(entry_id=entry_id, succeeded=False, reason=e.reason, detail=str(e)), None
        except Exception as e:
            log.error(f"Unexpected error during bulk {action.kind.value} for {entry_id}: {e}", exc_info=True)
            return ItemOutcome(entry_id=entry_id, succeeded=False, reason=ReasonCode.OTHER, detail=str(e)), None

    def _reconcile(self, action: BulkAction, outcome: ItemOutcome, value: Any) -> None:
        if self.store is None:
            return
        if outcome.reason == ReasonCode.NOT_FOUND:
            self.store.remove(outcome.entry_id)
        elif outcome.succeeded and action.kind == BulkActionKind.DELETE:
            self.store.remove(outcome.entry_id)
        elif outcome.succeeded and isinstance(value, TimeEntry):
            self.store.put(value)
