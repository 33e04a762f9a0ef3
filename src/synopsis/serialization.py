# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Engine state ↔ JSON blob ``{"options": {...}, "publishers": {...}}``.

Loading runs the legacy upgrade once: entries and frames written before
per-scorekeeper scores existed carry a single ``score`` number, which becomes
``scores.concave`` (with ``visits`` copied into ``scores.visits``).
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any

from . import Frame, PublisherRecord
from .config import SynopsisConfig
from .errors import StateError
from .scorekeepers import Scorekeeper

logger = logging.getLogger(__name__)


def decode_state(blob: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    """Parse a state blob into a plain dict."""
    if isinstance(blob, Mapping):
        return dict(blob)
    try:
        data = json.loads(blob)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StateError(f"state blob is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise StateError(f"state blob must be a JSON object, got {type(data).__name__}")
    return data


# ---------------------------------------------------------------------------
# Legacy upgrade
# ---------------------------------------------------------------------------


def _upgrade_scores(item: dict[str, Any], empty_scores: Mapping[str, float]) -> bool:
    """Give *item* a ``scores`` mapping if it lacks one. Returns True if upgraded."""
    if item.get("scores") is not None:
        return False
    scores = dict(empty_scores)
    legacy = item.pop("score", None)
    if legacy:
        scores[Scorekeeper.CONCAVE.value] = legacy
        scores[Scorekeeper.VISITS.value] = item.get("visits", 0)
    item["scores"] = scores
    return True


def upgrade_entry(entry: Mapping[str, Any], empty_scores: Mapping[str, float]) -> dict[str, Any]:
    """Return a copy of a persisted publisher entry in the current schema."""
    entry = copy.deepcopy(dict(entry))
    upgraded = _upgrade_scores(entry, empty_scores)
    for frame in entry.get("window") or []:
        upgraded = _upgrade_scores(frame, empty_scores) or upgraded
    if upgraded:
        logger.debug("Upgraded legacy publisher entry")
    return entry


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def frame_from_dict(data: Mapping[str, Any]) -> Frame:
    return Frame(
        timestamp=data["timestamp"],
        visits=data.get("visits", 0),
        duration=data.get("duration", 0),
        scores=dict(data.get("scores") or {}),
    )


def record_from_dict(data: Mapping[str, Any]) -> PublisherRecord:
    window = data.get("window")
    return PublisherRecord(
        visits=data.get("visits", 0),
        duration=data.get("duration", 0),
        scores=dict(data.get("scores") or {}),
        window=[frame_from_dict(frame) for frame in window] if window is not None else None,
    )


def load_publishers(
    publishers: Mapping[str, Any] | None, config: SynopsisConfig
) -> dict[str, PublisherRecord]:
    """Upgrade and decode a persisted ``publishers`` mapping."""
    empty = config.empty_scores()
    records: dict[str, PublisherRecord] = {}
    for publisher, entry in (publishers or {}).items():
        try:
            records[publisher] = record_from_dict(upgrade_entry(entry, empty))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StateError(f"malformed entry for publisher {publisher!r}: {e}") from e
    return records


def load_state(blob: str | bytes | Mapping[str, Any]) -> tuple[SynopsisConfig, dict[str, PublisherRecord]]:
    """Decode a full state blob into configuration and publisher records."""
    data = decode_state(blob)
    config = SynopsisConfig.from_options(data.get("options"))
    return config, load_publishers(data.get("publishers"), config)


def dump_state(config: SynopsisConfig, publishers: Mapping[str, PublisherRecord]) -> dict[str, Any]:
    """JSON-compatible ``{options, publishers}`` dict."""
    return {
        "options": config.to_options(),
        "publishers": {publisher: record.to_dict() for publisher, record in publishers.items()},
    }
