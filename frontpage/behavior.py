"""Behavior event recording: ring buffer, interest forwarding, sampling."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections import deque
from typing import Callable

from frontpage.config import get_behavior_config
from frontpage.interest import InterestModel
from frontpage.models import BehaviorEvent

logger = logging.getLogger(__name__)


class BehaviorRecorder:
    """Best-effort telemetry entry point for the rendering layer.

    ``record`` stamps the event, keeps it in a bounded buffer, feeds the
    interest model and notifies listeners. It never raises.
    """

    def __init__(
        self,
        interest: InterestModel,
        buffer_size: int = 200,
        clock: Callable[[], float] = time.time,
    ):
        self.interest = interest
        self._clock = clock
        self._buffer: deque[BehaviorEvent] = deque(maxlen=buffer_size)
        self._listeners: list[Callable[[BehaviorEvent], None]] = []
        self.dropped = 0

    @classmethod
    def from_config(
        cls,
        config: dict,
        interest: InterestModel,
        clock: Callable[[], float] = time.time,
    ):
        cfg = get_behavior_config(config)
        return cls(interest, buffer_size=cfg["buffer_size"], clock=clock)

    def subscribe(self, listener: Callable[[BehaviorEvent], None]) -> None:
        """Call ``listener`` after every successfully recorded event."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[BehaviorEvent], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def record(self, event: BehaviorEvent) -> None:
        try:
            stamped = dataclasses.replace(event, timestamp=self._clock())
            self.interest.update(stamped)
            self._buffer.append(stamped)
        except Exception as exc:
            self.dropped += 1
            logger.warning("Dropped behavior event %r: %s", event, exc)
            return

        for listener in list(self._listeners):
            try:
                listener(stamped)
            except Exception:
                logger.exception("Behavior listener failed")

    def recent(self, limit: int | None = None) -> list[BehaviorEvent]:
        """Buffered events, oldest first."""
        events = list(self._buffer)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def start_reading(self) -> Callable[[], None]:
        """Start a dwell timer; the returned callable records reading_time."""
        started = self._clock()
        done = False

        def stop() -> None:
            nonlocal done
            if done:
                return
            done = True
            elapsed_ms = (self._clock() - started) * 1000.0
            self.record(BehaviorEvent.reading_time(elapsed_ms))

        return stop


class ScrollSampler:
    """Turn a flood of raw scroll positions into at most one event per interval.

    ``observe`` is cheap enough to call from every scroll callback. The
    deepest position seen since the last emitted event is what gets recorded.
    """

    def __init__(
        self,
        recorder: BehaviorRecorder,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        self.recorder = recorder
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._last_emit: float | None = None
        self._pending: float | None = None

    def observe(self, depth_percent: float) -> None:
        if self._pending is None or depth_percent > self._pending:
            self._pending = depth_percent

        now = self._clock()
        if self._last_emit is None or now - self._last_emit >= self.interval_seconds:
            self.flush()

    def flush(self) -> None:
        """Record the pending depth now, if any."""
        if self._pending is None:
            return
        depth, self._pending = self._pending, None
        self._last_emit = self._clock()
        self.recorder.record(BehaviorEvent.scroll(depth))
