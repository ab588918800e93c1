"""APScheduler-driven once-per-second redraw of live elapsed times."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Iterable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from timekeeping.config import settings
from timekeeping.schemas.time_entry import TimeEntry
from timekeeping.services.duration import elapsed_seconds
from timekeeping.utils.timestamps import utc_now

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickerHandle:
    job_id: str


class ReconciliationTicker:
    """
    Repeating local clock for visible entries. Never touches the network.

    At most one handle is live: starting again stops the previous handle
    first. Ticks run on the event loop, never overlap, and a late tick is
    coalesced instead of queued. ``start`` must be called from within the
    running event loop.
    """

    def __init__(
        self,
        scheduler: Optional[AsyncIOScheduler] = None,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.scheduler = scheduler or AsyncIOScheduler()
        self._owns_scheduler = scheduler is None
        self.interval_seconds = interval_seconds or settings.tick_interval_seconds
        self._clock = clock
        self._lock = Lock()
        self._live: Optional[TickerHandle] = None

    @property
    def live_handle(self) -> Optional[TickerHandle]:
        return self._live

    @property
    def is_running(self) -> bool:
        return self._live is not None

    def start(self, on_tick: Callable[[datetime], None]) -> TickerHandle:
        with self._lock:
            if self._live is not None:
                log.debug(f"Ticker restarted; stopping {self._live.job_id}")
                self._remove_job(self._live)
                self._live = None

            if not self.scheduler.running:
                self.scheduler.start()

            handle = TickerHandle(job_id=f"reconciliation_tick_{uuid.uuid4().hex}")
            self.scheduler.add_job(
                self._fire,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                args=[handle, on_tick],
                id=handle.job_id,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self._live = handle
            log.debug(f"Ticker started: {handle.job_id} every {self.interval_seconds}s")
            return handle

    def watch(
        self,
        visible_entries: Callable[[], Iterable[TimeEntry]],
        on_update: Callable[[Dict[str, int]], None],
    ) -> TickerHandle:
        """
        Recompute elapsed seconds for whatever ``visible_entries`` returns on
        each tick and pass ``{entry_id: seconds}`` to ``on_update``.
        """

        def on_tick(now: datetime) -> None:
            on_update({entry.id: elapsed_seconds(entry, now) for entry in visible_entries()})

        return self.start(on_tick)

    def stop(self, handle: Optional[TickerHandle]) -> bool:
        """Stop ``handle`` if it is the live one. Stale handles are ignored."""
        with self._lock:
            if handle is None or handle != self._live:
                log.debug(f"Ignoring stop for stale ticker handle {getattr(handle, 'job_id', None)}")
                return False
            self._remove_job(handle)
            self._live = None
            log.debug(f"Ticker stopped: {handle.job_id}")
            return True

    def shutdown(self) -> None:
        self.stop(self._live)
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            log.debug("Ticker scheduler shut down")

    def tick_now(self) -> None:
        """Run the live handler once, outside the schedule."""
        handle = self._live
        if handle is None:
            return
        job = self.scheduler.get_job(handle.job_id)
        if job is not None:
            self._run_handler(handle, job.args[1])

    async def _fire(self, handle: TickerHandle, on_tick: Callable[[datetime], None]) -> None:
        self._run_handler(handle, on_tick)

    def _run_handler(self, handle: TickerHandle, on_tick: Callable[[datetime], None]) -> None:
        if handle != self._live:
            return
        try:
            on_tick(self._clock())
        except Exception as e:
            log.error(f"Tick handler failed for {handle.job_id}: {e}", exc_info=True)

    def _remove_job(self, handle: TickerHandle) -> None:
        try:
            self.scheduler.remove_job(handle.job_id)
        except JobLookupError:
            pass
