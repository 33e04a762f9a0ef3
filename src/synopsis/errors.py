# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Synopsis exception hierarchy.

All synopsis-specific errors inherit from SynopsisError, allowing callers
to catch the base class for any failure or specific subclasses
for targeted handling.
"""

from __future__ import annotations


class SynopsisError(Exception):
    """Base exception for all synopsis errors."""


class InvalidUrlError(SynopsisError):
    """URL host has no resolvable public suffix."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class MissingMarkupError(SynopsisError):
    """A DOM-dependent rule matched but no markup was supplied."""

    def __init__(self, message: str, *, url: str = "", rule: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.rule = rule


class ExpressionError(SynopsisError):
    """Rule expression failed to compile or evaluate."""

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class RuleSchemaError(SynopsisError):
    """Rule table does not match the rule schema (fatal at load time)."""


class ConfigError(SynopsisError):
    """Engine configuration is invalid (fatal at construction)."""


class StateError(SynopsisError):
    """Serialized engine state could not be decoded."""
