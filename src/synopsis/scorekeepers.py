# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scorekeepers: the closed set of visit-duration → score strategies."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import SynopsisConfig


class Scorekeeper(StrEnum):
    """Registered scorekeepers, in registration order (the first is the default)."""

    CONCAVE = "concave"
    VISITS = "visits"


SCOREKEEPERS: tuple[str, ...] = tuple(kind.value for kind in Scorekeeper)


def concave(duration: float, config: SynopsisConfig) -> float:
    """Diminishing-returns score: (-b + sqrt(b² + 4·2a·duration)) / 2a.

    Equals 1 at ``min_duration`` with the default constants; a very long visit
    cannot dominate the way a linear duration score would.
    """
    return (-config.b + math.sqrt(config.b2 + config.a4 * duration)) / config.a2


def visits(duration: float, config: SynopsisConfig) -> float:
    return 1.0


_FUNCTIONS = {
    Scorekeeper.CONCAVE: concave,
    Scorekeeper.VISITS: visits,
}


def score(kind: Scorekeeper | str, duration: float, config: SynopsisConfig) -> float:
    """Score one visit of *duration* ms under *kind*; non-positive results clamp to 0."""
    value = _FUNCTIONS[Scorekeeper(kind)](duration, config)
    return value if value > 0 else 0.0


def score_visit(duration: float, config: SynopsisConfig) -> dict[str, float] | None:
    """Per-scorekeeper scores for one visit, or None when every score is zero."""
    result = {kind.value: score(kind, duration, config) for kind in Scorekeeper}
    if not any(result.values()):
        return None
    return result
