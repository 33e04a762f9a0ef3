# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Synopsis: publisher attribution and time-windowed attention scoring.

For each page visit:
- resolve: which publisher gets credit (rule table over URL + optional markup)
- score: how much weight that publisher now carries relative to others
  (sliding window of daily frames, concave duration scoring, weighted lottery)
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Frame:
    """One ``frame_size`` bucket of activity for a publisher."""

    timestamp: float  # epoch ms at which the bucket opened
    visits: int = 0
    duration: float = 0  # ms
    scores: dict[str, float] = field(default_factory=dict)  # scorekeeper -> accumulated score

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "visits": self.visits,
            "duration": self.duration,
            "scores": dict(self.scores),
        }


@dataclass
class PublisherRecord:
    """Sliding-window aggregate for one publisher.

    After a prune, visits/duration/scores equal the sums over ``window``.
    ``window`` is newest-first; None only for hand-edited or very old state.
    """

    visits: int = 0
    duration: float = 0
    scores: dict[str, float] = field(default_factory=dict)
    window: list[Frame] | None = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict = {
            "visits": self.visits,
            "duration": self.duration,
            "scores": dict(self.scores),
        }
        if self.window is not None:
            data["window"] = [frame.to_dict() for frame in self.window]
        return data


@dataclass(frozen=True, slots=True)
class Ranking:
    """A publisher and its normalized weight within a ranking."""

    publisher: str
    weight: float

    def to_dict(self) -> dict:
        return {"publisher": self.publisher, "weight": self.weight}


from .engine import Synopsis  # noqa: E402
from .resolver import is_publisher_id, resolve_publisher  # noqa: E402

__all__ = [
    "Frame",
    "PublisherRecord",
    "Ranking",
    "Synopsis",
    "is_publisher_id",
    "resolve_publisher",
]
