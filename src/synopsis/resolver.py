# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL (+ optional markup) → publisher id.

Rules are tried in table order.  The first rule whose condition holds decides
the outcome unless its consequent evaluates to "" (inconclusive, keep going):

- non-empty string  → publisher id, trimmed of leading/trailing "." and "/"
- None / False      → excluded, stop
- table exhausted   → not applicable
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import lxml.html

from .dom import parse_markup, query_selector
from .errors import ExpressionError, InvalidUrlError, MissingMarkupError
from .properties import parse_url, split_domain
from .rules import Rule, default_rules

logger = logging.getLogger(__name__)

_TRIM_CHARS = "./"


class ResolutionStatus(StrEnum):
    PUBLISHER = "publisher"
    EXCLUDED = "excluded"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of resolving one URL."""

    status: ResolutionStatus
    publisher: str | None = None
    rule: str = ""  # description of the deciding rule
    extras: dict[str, Any] = field(default_factory=dict)  # descriptive DOM fields (faviconURL, ...)

    def __bool__(self) -> bool:
        return self.status is ResolutionStatus.PUBLISHER


_NOT_APPLICABLE = Resolution(ResolutionStatus.NOT_APPLICABLE)


class PublisherResolver:
    """Evaluates an immutable rule table against URLs."""

    def __init__(self, rules: Sequence[Rule] | None = None) -> None:
        self._rules: tuple[Rule, ...] = tuple(rules) if rules is not None else default_rules()

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def resolve(self, url: str, markup: str | bytes | None = None) -> Resolution:
        """Resolve *url* to a publisher.

        Raises:
            MissingMarkupError: a DOM-dependent rule matched and *markup* is None/empty.
            ExpressionError: a rule expression failed at evaluation time.
        """
        try:
            props = parse_url(url)
        except InvalidUrlError as e:
            logger.debug("Not applicable: %s", e)
            return _NOT_APPLICABLE

        context = props.as_context()
        doc: lxml.html.HtmlElement | None = None

        for rule in self._rules:
            if not rule.matches(context):
                continue

            sub = rule.publisher_dom
            if sub is not None:
                if not markup:
                    raise MissingMarkupError(
                        "markup parameter required", url=url, rule=rule.description
                    )
                if doc is None:
                    doc = parse_markup(markup)
                node = query_selector(doc, sub.selector) if doc is not None else None
                result = sub.consequent.evaluate({**context, "node": node})
            else:
                result = rule.evaluate_consequent(context)

            if result == "":
                continue

            if isinstance(result, str):
                publisher = result.strip(_TRIM_CHARS)
                if not publisher:
                    # nothing but separators: resolution stops without an id
                    return Resolution(ResolutionStatus.NOT_APPLICABLE, rule=rule.description)
                return Resolution(
                    ResolutionStatus.PUBLISHER,
                    publisher=publisher,
                    rule=rule.description,
                    extras=self._extras(rule, context, doc, markup),
                )

            logger.debug("Excluded %s by rule %r", url, rule.description)
            return Resolution(ResolutionStatus.EXCLUDED, rule=rule.description)

        return _NOT_APPLICABLE

    def _extras(
        self,
        rule: Rule,
        context: dict[str, Any],
        doc: lxml.html.HtmlElement | None,
        markup: str | bytes | None,
    ) -> dict[str, Any]:
        """Evaluate the rule's descriptive DOM fields; failures only drop the field."""
        extra_dom = rule.extra_dom
        if not extra_dom or not markup:
            return {}
        if doc is None:
            doc = parse_markup(markup)
            if doc is None:
                return {}

        extras: dict[str, Any] = {}
        for name, sub in extra_dom.items():
            node = query_selector(doc, sub.selector)
            try:
                value = sub.consequent.evaluate({**context, "node": node})
            except ExpressionError:
                logger.debug("DOM field %s unavailable for %s", name, context["URL"], exc_info=True)
                continue
            if value is not None:
                extras[name] = value
        return extras


# ---------------------------------------------------------------------------
# Module-level helpers (shipped rule table)
# ---------------------------------------------------------------------------

_default_resolver: PublisherResolver | None = None


def get_default_resolver() -> PublisherResolver:
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = PublisherResolver()
    return _default_resolver


def resolve_publisher(url: str, markup: str | bytes | None = None) -> str | None:
    """Publisher id for *url*, or None when excluded, unmatched, or not a valid host.

    Raises:
        MissingMarkupError: a matched rule needs *markup*.
    """
    return get_default_resolver().resolve(url, markup).publisher


def is_publisher_id(publisher: str) -> bool:
    """True for ``domain`` or ``domain/path`` with no query string or fragment."""
    if not isinstance(publisher, str):
        return False
    domain, sep, path = publisher.partition("/")
    if split_domain(domain) is None:
        return False
    if not sep:
        return True
    # a bare "?" or "#" still opens a query string / fragment
    return "?" not in path and "#" not in path
