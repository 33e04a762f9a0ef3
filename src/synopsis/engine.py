# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Synopsis scoring engine: per-publisher sliding windows, ranking, lottery.

Pure Python, in-memory, synchronous.

Each publisher owns a newest-first list of frames, one per ``frame_size``
(a day by default).  Visits add to the newest frame and to the record
aggregate.  ``prune`` drops frames older than ``num_frames * frame_size`` and
recomputes the aggregate from what is left, so rankings reflect a true
sliding window.  Ranking, sampling and serialization prune first; recording
a visit never does.

NOTE: This class is NOT thread-safe.  Callers sharing an engine across
threads must serialize access (one lock per instance).
"""

from __future__ import annotations

import json
import logging
import random
import time
from collections.abc import Callable, Mapping
from typing import Any

from . import Frame, PublisherRecord, Ranking
from .config import SynopsisConfig
from .errors import SynopsisError
from .resolver import PublisherResolver, get_default_resolver
from .scorekeepers import Scorekeeper, score_visit
from .serialization import dump_state, load_publishers, load_state

logger = logging.getLogger(__name__)

_system_random = random.SystemRandom()


def _now_ms() -> int:
    return int(time.time() * 1000)


class Synopsis:
    """Attention scores for publishers over a sliding window of frames.

    Args:
        config: None for defaults, a SynopsisConfig, a persisted options
            mapping, or a serialized state blob (str/bytes JSON, or a mapping
            with ``publishers`` or ``options``) to resume from.
        resolver: URL → publisher resolver (default: shipped rule table).
        clock: Returns the current time in epoch milliseconds.
        rng: Returns a uniform float in [0, 1) for ``winner``.
    """

    def __init__(
        self,
        config: SynopsisConfig | Mapping[str, Any] | str | bytes | None = None,
        *,
        resolver: PublisherResolver | None = None,
        clock: Callable[[], float] | None = None,
        rng: Callable[[], float] | None = None,
    ) -> None:
        self._resolver = resolver or get_default_resolver()
        self._clock = clock or _now_ms
        self._rng = rng or _system_random.random
        self.publishers: dict[str, PublisherRecord] = {}

        is_blob = isinstance(config, Mapping) and ("publishers" in config or "options" in config)
        if isinstance(config, (str, bytes)) or is_blob:
            self.config, self.publishers = load_state(config)
            logger.debug("Restored synopsis state: %d publishers", len(self.publishers))
        elif isinstance(config, Mapping):
            self.config = SynopsisConfig.from_options(config)
        else:
            self.config = config or SynopsisConfig()

    # -- Recording --

    def add_visit(self, url: str, duration: float, markup: str | bytes | None = None) -> str | None:
        """Credit a page visit to its publisher.

        Visits shorter than ``min_duration`` and URLs that do not resolve to a
        publisher (invalid host, excluded, missing markup, rule failure)
        contribute nothing and return None.
        """
        if duration < self.config.min_duration:
            return None

        try:
            resolution = self._resolver.resolve(url, markup)
        except SynopsisError as e:
            logger.debug("Visit dropped, resolution failed for %s: %s", url, e)
            return None
        if not resolution.publisher:
            logger.debug("Visit dropped, %s for %s", resolution.status.value, url)
            return None

        return self.add_publisher(resolution.publisher, duration)

    def init_publisher(self, publisher: str) -> None:
        """Create an empty record with one open frame, unless one exists."""
        if publisher in self.publishers:
            return
        self.publishers[publisher] = PublisherRecord(
            scores=self.config.empty_scores(),
            window=[self._new_frame(self._clock())],
        )

    def add_publisher(self, publisher: str, props: float | Mapping[str, Any] | None) -> str | None:
        """Credit one visit of ``props`` (ms, or a mapping with ``duration``) to *publisher*."""
        if not props:
            return None
        duration = props.get("duration", 0) if isinstance(props, Mapping) else props
        if duration < self.config.min_duration:
            return None

        scores = self.scores(duration)
        if scores is None:
            return None

        now = self._clock()
        self.init_publisher(publisher)
        record = self.publishers[publisher]
        if record.window is None:
            self._repair(record, now)

        if not record.window or record.window[0].timestamp <= now - self.config.frame_size:
            record.window.insert(0, self._new_frame(now))
            logger.debug("Opened frame for %s (%d frames)", publisher, len(record.window))

        frame = record.window[0]
        frame.visits += 1
        frame.duration += duration
        record.visits += 1
        record.duration += duration
        for name, value in scores.items():
            frame.scores[name] = frame.scores.get(name, 0) + value
            record.scores[name] = record.scores.get(name, 0) + value

        return publisher

    def scores(self, duration: float) -> dict[str, float] | None:
        """Per-scorekeeper contribution of one visit, or None if all are zero."""
        return score_visit(duration, self.config)

    # -- Window maintenance --

    def _new_frame(self, now: float) -> Frame:
        return Frame(timestamp=now, scores=self.config.empty_scores())

    @staticmethod
    def _repair(record: PublisherRecord, now: float) -> None:
        # hand-edited state: fold the aggregate into a single current frame
        record.window = [
            Frame(timestamp=now, visits=record.visits, duration=record.duration, scores=dict(record.scores))
        ]

    def prune(self) -> None:
        """Drop frames older than the retention horizon and recompute aggregates."""
        now = self._clock()
        then = now - self.config.horizon

        for publisher, record in self.publishers.items():
            if record.window is None:
                self._repair(record, now)
                continue

            visits = 0
            duration: float = 0
            scores = self.config.empty_scores()
            kept = 0
            for frame in record.window:
                if frame.timestamp < then:
                    break
                visits += frame.visits
                duration += frame.duration
                for name, value in frame.scores.items():
                    scores[name] = scores.get(name, 0) + value
                kept += 1

            if kept < len(record.window):
                logger.debug("Pruned %d frames for %s", len(record.window) - kept, publisher)
                record.visits = visits
                record.duration = duration
                record.scores = scores
                del record.window[kept:]

    # -- Ranking and sampling --

    def top_n(self, n: int = 0, scorekeeper: str | None = None) -> list[Ranking] | None:
        """Publishers ranked by score, weights normalized over the returned set.

        ``n <= 0`` keeps every publisher with a non-zero score.  Returns None
        when there is nothing to rank.
        """
        name = Scorekeeper(scorekeeper or self.config.scorekeeper).value
        self.prune()

        entries = [
            (publisher, record.scores[name])
            for publisher, record in self.publishers.items()
            if record.scores.get(name)
        ]
        entries.sort(key=lambda entry: -entry[1])
        if n > 0:
            entries = entries[:n]

        total = sum(value for _, value in entries)
        if total == 0:
            return None
        return [Ranking(publisher, value / total) for publisher, value in entries]

    def all_n(self, n: int = 0) -> list[dict[str, Any]]:
        """Every ranked publisher with its record and weights under each scorekeeper.

        A publisher outside one scorekeeper's top ``n`` has no weight entry for it.
        """
        weights: dict[str, dict[str, float]] = {}
        for kind in Scorekeeper:
            for entry in self.top_n(n, kind) or []:
                weights.setdefault(entry.publisher, {})[kind.value] = entry.weight

        results = []
        for publisher, weight in weights.items():
            record = self.publishers[publisher].to_dict()
            results.append({"publisher": publisher, "weights": weight, **record})
        return results

    def winner(self, n: int = 0) -> str | None:
        """Weighted lottery over ``top_n(n)``.

        None when there is no ranking, or when rounding leaves the cumulative
        weight short of the draw; the draw is not retried.
        """
        point = self._rng()
        results = self.top_n(n)
        if not results:
            return None

        upper = 0.0
        for entry in results:
            upper += entry.weight
            if upper >= point:
                return entry.publisher
        logger.debug("No winner: cumulative weight %.17g < draw %.17g", upper, point)
        return None

    # -- Persistence --

    def to_json(self) -> dict[str, Any]:
        """Prune, then return ``{options, publishers}`` (JSON-compatible)."""
        self.prune()
        return dump_state(self.config, self.publishers)

    serialize = to_json

    def dumps(self, **kwargs: Any) -> str:
        return json.dumps(self.to_json(), **kwargs)

    def load_publishers(self, publishers: Mapping[str, Any]) -> None:
        """Merge persisted publisher entries (legacy schemas accepted), replacing same-named ones."""
        self.publishers.update(load_publishers(publishers, self.config))

    def __len__(self) -> int:
        return len(self.publishers)

    def __contains__(self, publisher: object) -> bool:
        return publisher in self.publishers
