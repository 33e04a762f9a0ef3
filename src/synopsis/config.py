# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Engine configuration: defaults, derived decay constants, persisted options.

The persisted form (``to_options``) keeps the key names of existing state
blobs (``minDuration``, ``_d``, ``emptyScores`` ...) so older files load
unchanged.
"""

from __future__ import annotations

import dataclasses
import math
import os
from collections.abc import Mapping
from typing import Any

from .errors import ConfigError
from .scorekeepers import SCOREKEEPERS

DEFAULT_MIN_DURATION = 2 * 1000  # ms
DEFAULT_NUM_FRAMES = 30
DEFAULT_FRAME_SIZE = 24 * 60 * 60 * 1000  # one day, ms
DEFAULT_DECAY_RATE = 1 / (30 * 1000)

_ENV_PREFIX = "SYNOPSIS_"


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class SynopsisConfig:
    """Immutable scoring configuration.

    ``a`` and ``b`` default to values derived from ``d`` and ``min_duration``;
    pass them explicitly only to reproduce a persisted engine.
    """

    min_duration: float = DEFAULT_MIN_DURATION
    num_frames: int = DEFAULT_NUM_FRAMES
    frame_size: float = DEFAULT_FRAME_SIZE
    scorekeeper: str = SCOREKEEPERS[0]
    d: float = DEFAULT_DECAY_RATE
    a: float | None = None
    b: float | None = None

    def __post_init__(self) -> None:
        if self.min_duration < 0:
            raise ConfigError(f"min_duration must be >= 0, got {self.min_duration}")
        if self.num_frames <= 0:
            raise ConfigError(f"num_frames must be > 0, got {self.num_frames}")
        if self.frame_size <= 0:
            raise ConfigError(f"frame_size must be > 0, got {self.frame_size}")
        if not (math.isfinite(self.d) and self.d > 0):
            raise ConfigError(f"d must be a finite value > 0, got {self.d}")

        if self.scorekeeper not in SCOREKEEPERS:
            object.__setattr__(self, "scorekeeper", SCOREKEEPERS[0])
        if self.a is None:
            object.__setattr__(self, "a", (1 / (self.d * 2)) - self.min_duration)
        if self.b is None:
            object.__setattr__(self, "b", self.min_duration - self.a)

        for name in ("a", "b", "a2", "a4", "b2"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigError(f"decay constant {name} is not finite")
        if self.a <= 0:
            raise ConfigError(f"decay constant a must be > 0 (1/(2d) > min_duration), got {self.a}")

    # -- Derived constants --

    @property
    def a2(self) -> float:
        return self.a * 2

    @property
    def a4(self) -> float:
        return self.a2 * 2

    @property
    def b2(self) -> float:
        return self.b * self.b

    @property
    def scorekeepers(self) -> tuple[str, ...]:
        return SCOREKEEPERS

    @property
    def horizon(self) -> float:
        """Retention span in ms: frames older than now - horizon are pruned."""
        return self.num_frames * self.frame_size

    def empty_scores(self) -> dict[str, float]:
        """A fresh zero-valued mapping over all scorekeepers."""
        return {name: 0 for name in SCOREKEEPERS}

    # -- Persisted options --

    def to_options(self) -> dict[str, Any]:
        return {
            "minDuration": self.min_duration,
            "numFrames": self.num_frames,
            "frameSize": self.frame_size,
            "scorekeeper": self.scorekeeper,
            "scorekeepers": list(SCOREKEEPERS),
            "emptyScores": self.empty_scores(),
            "_d": self.d,
            "_a": self.a,
            "_a2": self.a2,
            "_a4": self.a4,
            "_b": self.b,
            "_b2": self.b2,
        }

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None) -> SynopsisConfig:
        """Build from persisted options; missing keys take defaults, derived keys are recomputed."""
        options = options or {}
        kwargs: dict[str, Any] = {}
        for key, attr in (
            ("minDuration", "min_duration"),
            ("numFrames", "num_frames"),
            ("frameSize", "frame_size"),
            ("scorekeeper", "scorekeeper"),
            ("_d", "d"),
            ("_a", "a"),
            ("_b", "b"),
        ):
            if options.get(key) is not None:
                kwargs[attr] = options[key]
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(f"invalid options: {e}") from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SynopsisConfig:
        """Build from ``SYNOPSIS_*`` environment variables (unset → default)."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        for suffix, attr, cast in (
            ("MIN_DURATION", "min_duration", float),
            ("NUM_FRAMES", "num_frames", int),
            ("FRAME_SIZE", "frame_size", float),
            ("SCOREKEEPER", "scorekeeper", str),
            ("DECAY_RATE", "d", float),
        ):
            raw = env.get(_ENV_PREFIX + suffix, "").strip()
            if not raw:
                continue
            try:
                kwargs[attr] = cast(raw)
            except ValueError as e:
                raise ConfigError(f"{_ENV_PREFIX}{suffix}={raw!r} is not a valid {cast.__name__}") from e
        return cls(**kwargs)
