# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import synopsis  # noqa: F401
except ImportError:
    raise ImportError("synopsis is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from synopsis.engine import Synopsis

DAY_MS = 24 * 60 * 60 * 1000
START_MS = 1_700_000_000_000

YOUTUBE_WATCH_MARKUP = """\
<html><head><title>video</title></head>
<body>
  <div id="watch7-content" class="watch-main-col">
    <meta itemprop="channelId" content="UC123abc">
  </div>
  <div id="watch7-user-header" class="spf-link yt-user-photo">
    <img data-thumb="https://yt3.example.com/photo.jpg" src="/blank.gif">
  </div>
</body></html>
"""


class FakeClock:
    """Deterministic epoch-ms clock; tests move it with ``advance``."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FixedRandom:
    """Random source returning a settable value."""

    def __init__(self, value: float = 0.5) -> None:
        self.value = value

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> FixedRandom:
    return FixedRandom()


@pytest.fixture
def engine(clock, rng) -> Synopsis:
    return Synopsis(clock=clock, rng=rng)


@pytest.fixture
def youtube_markup() -> str:
    return YOUTUBE_WATCH_MARKUP
