import asyncio
import time
from datetime import datetime, timezone
from typing import Callable

import structlog

from usagebar.errors import UpstreamError, UsageFetchError
from usagebar.metrics import MetricsRecorder
from usagebar.models import UsageReading, UsageSnapshot
from usagebar.sources.base import UsageSource

logger = structlog.get_logger()

SnapshotCallback = Callable[[UsageSnapshot], None]


def utcnow() -> "datetime":
    return datetime.now(timezone.utc)


class PollingController:
    """
    PollingController orchestrates the periodic fetch-parse-update
    cycles. It owns the single UsageSnapshot and publishes it to its
    subscribers after every change.

    All state changes happen on the event loop the controller runs on,
    which plays the role of the UI thread. Cycles never overlap: a
    refresh requested while one is in flight is skipped.
    """

    def __init__(
        self,
        source: "UsageSource",
        metrics: "MetricsRecorder | None" = None,
        clock: "Callable[[], datetime]" = utcnow,
    ) -> "None":
        self._source = source
        self._metrics = metrics
        self._clock = clock
        self._snapshot = UsageSnapshot()
        self._subscribers: "list[SnapshotCallback]" = []
        self._in_flight = False
        self._stop_event: "asyncio.Event" = asyncio.Event()
        self._task: "asyncio.Task[None] | None" = None
        # keeps manual refresh tasks referenced until they finish
        self._background: "set[asyncio.Task[bool]]" = set()

    @property
    def snapshot(self) -> "UsageSnapshot":
        return self._snapshot

    @property
    def is_running(self) -> "bool":
        return self._task is not None and not self._task.done()

    def subscribe(self, callback: "SnapshotCallback") -> "Callable[[], None]":
        """
        registers a callback invoked with the snapshot after every
        publish. Returns a function that removes it again.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> "None":
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def start(self, interval_seconds: "float" = 60) -> "None":
        """
        performs one fetch right away, then keeps fetching every
        interval_seconds in the background until stop() is called.
        Ticks are aligned to the moment start() was called, so the
        schedule does not drift with the fetch duration.

        Can be called again after stop().
        """
        if self._task is not None:
            if not self._stop_event.is_set():
                raise RuntimeError("polling already started")
            # let the stopped loop wind down before starting a new one
            await self._task
            self._task = None

        self._stop_event.clear()
        origin = asyncio.get_running_loop().time()
        await self.refresh()
        self._task = asyncio.create_task(self._run(origin, interval_seconds))
        logger.info("polling_started", source=self._source.name, interval=interval_seconds)

    def stop(self) -> "None":
        """
        stops scheduling new cycles. A cycle already in flight is left
        to complete.
        """
        self._stop_event.set()

    async def close(self) -> "None":
        """
        stops polling, waits for the loop and any manual refresh to
        wind down, then closes the usage source.
        """
        self.stop()
        if self._task is not None:
            await self._task
            self._task = None

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        await self._source.close()

    def manual_refresh(self) -> "asyncio.Task[bool]":
        """
        schedules an out-of-band refresh, e.g. when the user opens the
        detail view.
        """
        task = asyncio.create_task(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _run(self, origin: "float", interval_seconds: "float") -> "None":
        loop = asyncio.get_running_loop()
        next_tick = origin

        while not self._stop_event.is_set():
            next_tick += interval_seconds
            now = loop.time()

            # a fetch overran one or more ticks: skip them, no catch-up burst
            if next_tick <= now:
                missed = int((now - next_tick) // interval_seconds) + 1
                next_tick += missed * interval_seconds
                logger.debug("poll_ticks_skipped", source=self._source.name, count=missed)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=next_tick - now)
            except TimeoutError:
                await self.refresh()

        logger.info("polling_stopped", source=self._source.name)

    async def refresh(self) -> "bool":
        """
        runs a single fetch cycle. Returns False when skipped because
        another cycle is still in flight.

        Failures never propagate: they are logged, counted and stored
        as the snapshot's last_error while the last known values stay
        in place.
        """
        if self._in_flight:
            logger.debug("fetch_skipped_in_flight", source=self._source.name)
            return False

        self._in_flight = True
        self._snapshot.is_loading = True
        self._publish()

        cycle_start = time.monotonic()
        source = self._source.name
        try:
            reading = await self._source.fetch()
            if reading.error is not None:
                raise UpstreamError(reading.error)

        except UsageFetchError as exc:
            logger.warning("usage_fetch_failed", source=source, kind=exc.kind, error=str(exc))
            self._snapshot.last_error = str(exc)
            if self._metrics is not None:
                self._metrics.inc_fetch_error(source, exc.kind)

        except Exception as exc:
            logger.exception("usage_fetch_unexpected_error", source=source)
            self._snapshot.last_error = f"{type(exc).__name__}: {exc}"
            if self._metrics is not None:
                self._metrics.inc_fetch_error(source, "unexpected")

        else:
            self._apply(reading)
            logger.info(
                "usage_fetched",
                source=source,
                session=self._snapshot.session_usage,
                weekly=self._snapshot.weekly_usage,
            )

        finally:
            self._in_flight = False
            self._snapshot.is_loading = False
            if self._metrics is not None:
                self._metrics.observe_fetch_duration(source, time.monotonic() - cycle_start)
            self._publish()

        return True

    def _apply(self, reading: "UsageReading") -> "None":
        """
        replaces both windows wholesale; a window missing from the
        reading clears its fields.
        """
        snapshot = self._snapshot
        five_hour = reading.five_hour
        seven_day = reading.seven_day

        snapshot.session_usage = five_hour.utilization if five_hour else None
        snapshot.session_reset_at = five_hour.resets_at if five_hour else None
        snapshot.weekly_usage = seven_day.utilization if seven_day else None
        snapshot.weekly_reset_at = seven_day.resets_at if seven_day else None
        snapshot.fetched_at = reading.fetched_at
        snapshot.last_error = None
        snapshot.last_updated = self._clock()

        if self._metrics is not None:
            name = self._source.name
            self._metrics.set_window("session", snapshot.session_usage, snapshot.session_reset_at)
            self._metrics.set_window("weekly", snapshot.weekly_usage, snapshot.weekly_reset_at)
            self._metrics.set_last_fetch_success(name, snapshot.last_updated.timestamp())

    def _publish(self) -> "None":
        for callback in list(self._subscribers):
            try:
                callback(self._snapshot)
            except Exception:
                logger.exception("subscriber_error")
