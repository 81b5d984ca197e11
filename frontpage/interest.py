"""Decayed per-topic interest scores built from behavior events."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from frontpage.config import get_interest_config
from frontpage.models import (
    READING_TIME,
    SCROLL,
    VISIT_CATEGORY,
    VISIT_TAG,
    BehaviorEvent,
    PrefetchTarget,
)

logger = logging.getLogger(__name__)

TOPIC_KINDS = {VISIT_CATEGORY: "category", VISIT_TAG: "tag"}


@dataclass
class InterestScore:
    kind: str
    topic: str
    score: float
    seq: int  # update order, breaks ties in favour of the freshest topic


class InterestModel:
    """Scores decay geometrically with a fixed half-life.

    Before each contribution every score is multiplied by
    ``0.5 ** (elapsed / half_life)``; topics that fall under
    ``prune_threshold`` are dropped. Visits credit the visited topic and make
    it the active topic; scroll depth and dwell time credit the active topic.
    """

    def __init__(
        self,
        half_life_seconds: float = 300.0,
        visit_weight: float = 10.0,
        scroll_weight: float = 5.0,
        reading_weight_per_second: float = 0.1,
        reading_cap_ms: float = 120_000.0,
        prune_threshold: float = 0.01,
        clock: Callable[[], float] = time.time,
    ):
        if half_life_seconds <= 0:
            raise ValueError("half_life_seconds must be positive")
        self.half_life_seconds = half_life_seconds
        self.visit_weight = visit_weight
        self.scroll_weight = scroll_weight
        self.reading_weight_per_second = reading_weight_per_second
        self.reading_cap_ms = reading_cap_ms
        self.prune_threshold = prune_threshold
        self._clock = clock
        self._scores: dict[tuple[str, str], InterestScore] = {}
        self._decayed_at: float | None = None
        self._active: tuple[str, str] | None = None
        self._seq = 0
        self.last_activity: float | None = None

    @classmethod
    def from_config(cls, config: dict, clock: Callable[[], float] = time.time):
        return cls(clock=clock, **get_interest_config(config))

    def update(self, event: BehaviorEvent) -> None:
        """Fold one event into the scores. Raises ValueError if malformed."""
        now = event.timestamp if event.timestamp is not None else self._clock()
        target, weight = self._contribution(event)
        self.last_activity = now
        if target is None or weight <= 0:
            return

        self._decay_to(now)
        self._seq += 1
        current = self._scores.get(target)
        if current is None:
            self._scores[target] = InterestScore(
                kind=target[0], topic=target[1], score=weight, seq=self._seq,
            )
        else:
            current.score += weight
            current.seq = self._seq
        logger.debug(
            "Interest %s:%s +%.2f (%s)", target[0], target[1], weight, event.kind,
        )

    def top_scores(self, limit: int = 5) -> list[PrefetchTarget]:
        """Topics by descending decayed score, freshest first on ties."""
        factor = self._factor(self._clock())
        ranked = sorted(
            self._scores.values(), key=lambda s: (-s.score, -s.seq),
        )
        return [
            PrefetchTarget(kind=s.kind, topic=s.topic, score=s.score * factor)
            for s in ranked[:max(limit, 0)]
        ]

    def score(self, kind: str, topic: str) -> float:
        entry = self._scores.get((kind, topic))
        if entry is None:
            return 0.0
        return entry.score * self._factor(self._clock())

    @property
    def active_topic(self) -> tuple[str, str] | None:
        return self._active

    def __len__(self) -> int:
        return len(self._scores)

    def _contribution(
        self, event: BehaviorEvent,
    ) -> tuple[tuple[str, str] | None, float]:
        if event.kind in TOPIC_KINDS:
            topic = (event.topic or "").strip()
            if not topic:
                return None, 0.0
            self._active = (TOPIC_KINDS[event.kind], topic)
            return self._active, self.visit_weight

        if not math.isfinite(event.value):
            raise ValueError(f"Non-finite value in {event.kind} event")

        if event.kind == SCROLL:
            depth = min(max(event.value, 0.0), 100.0)
            return self._active, self.scroll_weight * depth / 100.0

        if event.kind == READING_TIME:
            duration = min(max(event.value, 0.0), self.reading_cap_ms)
            return self._active, self.reading_weight_per_second * duration / 1000.0

        raise ValueError(f"Unknown behavior event kind: {event.kind!r}")

    def _factor(self, now: float) -> float:
        if self._decayed_at is None:
            return 1.0
        elapsed = max(now - self._decayed_at, 0.0)
        return 0.5 ** (elapsed / self.half_life_seconds)

    def _decay_to(self, now: float) -> None:
        factor = self._factor(now)
        if self._decayed_at is None or now > self._decayed_at:
            self._decayed_at = now
        if factor >= 1.0:
            return

        pruned = []
        for key, entry in self._scores.items():
            entry.score *= factor
            if entry.score < self.prune_threshold:
                pruned.append(key)
        for key in pruned:
            del self._scores[key]
        if pruned:
            logger.debug("Pruned %d faded topics", len(pruned))
