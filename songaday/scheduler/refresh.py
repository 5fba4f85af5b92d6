"""Per-user refresh schedule: refresh credentials, ingest, curate, publish

Each user gets a UserScheduler running on its own daemon thread. A cycle
always runs to completion before the next wait begins, so one user's cycles
never overlap. Any cycle-fatal error, or the end of the year, stops the
scheduler for good; a new authorisation creates a new one.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import tzinfo
from enum import Enum
from typing import Callable, Dict, List, Optional

from songaday.core.curation import curate
from songaday.core.ingest import DEFAULT_MAX_PAGES, ingest
from songaday.core.publish import PlaylistPublisher
from songaday.errors import AuthError, FetchError, PublishError
from songaday.models.aggregate import UserAggregate
from songaday.monitoring.metrics import record_cycle, set_active_schedulers
from songaday.notify import MessageBuilder, Notifier, NotificationKind
from songaday.utils.calendar import day_of_year, days_in_year


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15 * 60


class SchedulerState(Enum):
    ACTIVE = "active"
    STOPPED = "stopped"


class CycleOutcome(Enum):
    OK = "ok"
    YEAR_COMPLETE = "year_complete"
    AUTH_FAILED = "auth_failed"
    FETCH_FAILED = "fetch_failed"
    PUBLISH_FAILED = "publish_failed"
    STOPPED = "stopped"


_FAILURE_NOTIFICATIONS = {
    CycleOutcome.AUTH_FAILED: NotificationKind.AUTH_FAILED,
    CycleOutcome.FETCH_FAILED: NotificationKind.FETCH_FAILED,
    CycleOutcome.PUBLISH_FAILED: NotificationKind.PUBLISH_FAILED,
}


@dataclass
class CycleResult:
    outcome: CycleOutcome
    merged: int = 0
    published: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (CycleOutcome.OK, CycleOutcome.YEAR_COMPLETE)


class UserScheduler:
    """Repeating refresh cycle for one user."""

    def __init__(
        self,
        aggregate: UserAggregate,
        store,
        api,
        auth,
        notifier: Notifier,
        messages: MessageBuilder,
        tz: Optional[tzinfo] = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_pages: int = DEFAULT_MAX_PAGES,
        clock: Callable[[], float] = time.time,
        on_stop: Optional[Callable[["UserScheduler"], None]] = None,
    ):
        """Initialize a scheduler in the ACTIVE state.

        Args:
            aggregate: The user's current aggregate
            store: AggregateStore used for persistence
            api: SpotifyAPI (history fetch and playlist writes)
            auth: SpotifyAuth (credential refresh)
            notifier: Receives failure/completion events
            messages: Builds the notification texts
            tz: Timezone the target year is observed in
            interval: Seconds between the end of one cycle and the next
            max_pages: Ingest pagination limit
            clock: Returns the current time in epoch seconds
            on_stop: Called once when the scheduler stops
        """
        self.aggregate = aggregate
        self.store = store
        self.api = api
        self.auth = auth
        self.notifier = notifier
        self.messages = messages
        self.tz = tz
        self.interval = interval
        self.max_pages = max_pages
        self.clock = clock
        self.on_stop = on_stop
        self.publisher = PlaylistPublisher(api)

        self._state = SchedulerState.ACTIVE
        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles = 0
        self.last_result: Optional[CycleResult] = None

    @property
    def user_id(self) -> str:
        return self.aggregate.user_id

    @property
    def state(self) -> SchedulerState:
        return self._state

    def start(self) -> CycleResult:
        """Run the first cycle now, then arm the repeating timer.

        Returns:
            Result of the first cycle, for the caller that authorised the user
        """
        result = self.run_cycle()
        if self._state is SchedulerState.ACTIVE:
            self._thread = threading.Thread(
                target=self._loop,
                name=f"songaday-{self.user_id}",
                daemon=True,
            )
            self._thread.start()
            logger.info("%s: scheduled every %ds", self.user_id, int(self.interval))
        return result

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.run_cycle()

    def stop(self) -> bool:
        """Cancel the schedule. Idempotent.

        A cycle already in flight is left to finish; it will neither persist
        nor notify.

        Returns:
            True if this call performed the transition
        """
        with self._state_lock:
            if self._state is SchedulerState.STOPPED:
                return False
            self._state = SchedulerState.STOPPED
            self._stop_event.set()

        logger.info("%s: schedule stopped", self.user_id)
        if self.on_stop is not None:
            self.on_stop(self)
        return True

    def wait_idle(self) -> None:
        """Block until no cycle is in flight."""
        with self._cycle_lock:
            pass

    def save(self, aggregate: UserAggregate) -> bool:
        """Persist ``aggregate`` unless the scheduler has been stopped.

        Holding the state lock across the write means a save either lands
        before stop() returns or not at all.

        Returns:
            True if the aggregate was written
        """
        with self._state_lock:
            if self._state is SchedulerState.STOPPED:
                logger.info("%s: stopped, not persisting cycle state", self.user_id)
                return False
            self.store.save(aggregate)
            return True

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run_cycle(self) -> CycleResult:
        """Refresh, ingest, curate and publish once."""
        with self._cycle_lock:
            if self._state is SchedulerState.STOPPED:
                return CycleResult(CycleOutcome.STOPPED)

            start = time.monotonic()
            try:
                result = self._cycle()
            except AuthError as e:
                result = self._fail(CycleOutcome.AUTH_FAILED, e)
            except FetchError as e:
                result = self._fail(CycleOutcome.FETCH_FAILED, e)
            except PublishError as e:
                result = self._fail(CycleOutcome.PUBLISH_FAILED, e)
            except Exception as e:
                logger.error("%s: unexpected error in cycle", self.user_id, exc_info=True)
                result = self._fail(CycleOutcome.FETCH_FAILED, e)

            self.cycles += 1
            self.last_result = result
            record_cycle(result.outcome.value)
            logger.info(
                "%s: cycle %d finished: %s",
                self.user_id, self.cycles, result.outcome.value,
                extra={"user_id": self.user_id, "outcome": result.outcome.value,
                       "duration": round(time.monotonic() - start, 3)},
            )
            return result

    def _cycle(self) -> CycleResult:
        aggregate = self.aggregate
        credentials = self.auth.refresh(aggregate.credentials.refresh_token)
        aggregate = aggregate.model_copy(update={"credentials": credentials})
        if not self.save(aggregate):
            return CycleResult(CycleOutcome.STOPPED)
        self.aggregate = aggregate

        def fetch_page(cursor):
            return self.api.fetch_recent_plays(credentials.access_token, cursor)

        # ingest persists through self.save so a stopped scheduler writes nothing
        ingested = ingest(aggregate, fetch_page, store=self,
                          tz=self.tz, max_pages=self.max_pages)
        if self._state is SchedulerState.STOPPED:
            return CycleResult(CycleOutcome.STOPPED, merged=ingested.merged)
        self.aggregate = ingested.aggregate

        year = self.aggregate.year
        today = day_of_year(int(self.clock() * 1000), year, self.tz)
        track_ids = curate(self.aggregate.tracks, today, days_in_year(year))
        published = self.publisher.publish(self.aggregate.playlist_id, track_ids, credentials)

        if ingested.terminal:
            if self.stop():
                self._emit(NotificationKind.YEAR_COMPLETE)
            return CycleResult(CycleOutcome.YEAR_COMPLETE, merged=ingested.merged,
                               published=published.tracks)

        return CycleResult(CycleOutcome.OK, merged=ingested.merged, published=published.tracks)

    def _fail(self, outcome: CycleOutcome, error: Exception) -> CycleResult:
        logger.error("%s: %s", self.user_id, error)
        if self.stop():
            self._emit(_FAILURE_NOTIFICATIONS[outcome])
        else:
            logger.info("%s: already stopped, failure not reported", self.user_id)
        return CycleResult(outcome, error=str(error))

    def _emit(self, kind: NotificationKind) -> None:
        notification = self.messages.build(kind, self.user_id, self.aggregate.notify_ref)
        try:
            self.notifier.notify(notification)
        except Exception as e:
            logger.warning("%s: notifier raised: %s", self.user_id, e)


class SchedulerRegistry:
    """Owns the live scheduler handle of every user.

    A stopped scheduler releases its handle; registering a new scheduler for
    a user stops the old one and waits out its in-flight cycle before
    replacing it.
    """

    def __init__(self):
        self._handles: Dict[str, UserScheduler] = {}
        self._lock = threading.Lock()
        self.stopped_total = 0

    def register(self, scheduler: UserScheduler) -> Optional[UserScheduler]:
        """Take ownership of ``scheduler``.

        Returns:
            The previous scheduler of that user, stopped and idle, if any
        """
        scheduler.on_stop = self._release
        with self._lock:
            previous = self._handles.get(scheduler.user_id)
            self._handles[scheduler.user_id] = scheduler
        if previous is not None and previous is not scheduler:
            previous.stop()
            previous.wait_idle()
        self._update_gauge()
        return previous

    def _release(self, scheduler: UserScheduler) -> None:
        with self._lock:
            self.stopped_total += 1
            if self._handles.get(scheduler.user_id) is scheduler:
                del self._handles[scheduler.user_id]
        self._update_gauge()

    def get(self, user_id: str) -> Optional[UserScheduler]:
        with self._lock:
            return self._handles.get(user_id)

    def stop(self, user_id: str) -> bool:
        """Stop a user's scheduler and wait for its in-flight cycle.

        Returns:
            True if a running scheduler was stopped
        """
        scheduler = self.get(user_id)
        if scheduler is None:
            return False
        stopped = scheduler.stop()
        scheduler.wait_idle()
        return stopped

    def stop_all(self) -> None:
        for scheduler in self.schedulers():
            scheduler.stop()

    def schedulers(self) -> List[UserScheduler]:
        with self._lock:
            return list(self._handles.values())

    def active_count(self) -> int:
        return sum(1 for s in self.schedulers() if s.state is SchedulerState.ACTIVE)

    def _update_gauge(self) -> None:
        set_active_schedulers(self.active_count())
