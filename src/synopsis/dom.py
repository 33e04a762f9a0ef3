# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Markup snapshot querying for DOM-dependent rules.

lxml parses the snapshot; cssselect compiles rule selectors to XPath.
Only the first match inside <body> is ever needed, mirroring
``document.body.querySelector`` in a browser.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import lxml.html
from cssselect import SelectorError
from lxml import etree
from lxml.cssselect import CSSSelector

from .errors import RuleSchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DomNode:
    """Read-only view of a matched element, exposed to rule expressions as ``node``."""

    element: lxml.html.HtmlElement

    @property
    def tag(self) -> str:
        return str(self.element.tag)

    def get(self, name: str, default: str | None = None) -> str | None:
        """Attribute value, or *default* when the attribute is absent."""
        return self.element.get(name, default)

    def text(self) -> str:
        return self.element.text_content().strip()


def compile_selector(selector: str) -> CSSSelector:
    """Compile a CSS selector, raising RuleSchemaError when it is malformed."""
    try:
        return CSSSelector(selector, translator="html")
    except SelectorError as e:
        raise RuleSchemaError(f"invalid nodeSelector {selector!r}: {e}") from e


def parse_markup(markup: str | bytes) -> lxml.html.HtmlElement | None:
    """Parse a markup snapshot into a document tree, or None if it has no content."""
    try:
        return lxml.html.document_fromstring(markup)
    except (etree.ParserError, ValueError):
        logger.debug("Markup snapshot could not be parsed (%d chars)", len(markup))
        return None


def query_selector(markup: str | bytes | lxml.html.HtmlElement, selector: str | CSSSelector) -> DomNode | None:
    """Return the first element under <body> matching *selector*, or None."""
    doc = markup if isinstance(markup, lxml.html.HtmlElement) else parse_markup(markup)
    if doc is None:
        return None

    if isinstance(selector, str):
        selector = compile_selector(selector)

    try:
        root = doc.body
    except IndexError:
        root = doc

    matches = selector(root)
    return DomNode(matches[0]) if matches else None
