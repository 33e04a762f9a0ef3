# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL → PropertySet extraction for rule evaluation.

Pure module — no engine state.  Domain parts come from the public suffix
list bundled with tldextract (no network fetch):

    foo.bar.example.com   QLD=bar     RLD=foo.bar  SLD=example.com  TLD=com
    search.yahoo.co.jp    QLD=search  RLD=search   SLD=yahoo.co.jp  TLD=co.jp
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlsplit

import idna
import tldextract

from .errors import InvalidUrlError

logger = logging.getLogger(__name__)

# Empty URL list = bundled snapshot only.
_EXTRACTOR = tldextract.TLDExtract(suffix_list_urls=())

_HOST_LABEL_RE = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?$")


def to_ascii_hostname(hostname: str) -> str | None:
    """Punycode form of an internationalized hostname, or None if it cannot be encoded."""
    if hostname.isascii():
        return hostname
    try:
        return idna.encode(hostname, uts46=True).decode("ascii")
    except UnicodeError:  # idna.IDNAError and its subclasses
        return None


@dataclass(frozen=True, slots=True)
class DomainParts:
    """Public-suffix split of a hostname."""

    TLD: str
    SLD: str
    RLD: str
    QLD: str


@dataclass(frozen=True, slots=True)
class PropertySet:
    """Everything a rule condition can see about a URL."""

    URL: str
    protocol: str  # "https:"
    slashes: bool
    auth: str
    host: str  # hostname[:port]
    hostname: str
    port: str
    pathname: str
    search: str  # "?a=b" or ""
    query: dict[str, str] = field(default_factory=dict)
    hash: str = ""  # "#frag" or ""
    path: str = ""  # pathname + search
    href: str = ""
    TLD: str = ""
    SLD: str = ""
    RLD: str = ""
    QLD: str = ""

    def as_context(self) -> dict[str, Any]:
        """Name → value mapping handed to the expression evaluator."""
        return asdict(self)


def is_valid_hostname(hostname: str) -> bool:
    """Syntactic DNS check: 1-253 chars, dot-separated labels of [a-z0-9_-]."""
    if not hostname or len(hostname) > 253:
        return False
    return all(_HOST_LABEL_RE.match(label) for label in hostname.rstrip(".").split("."))


def split_domain(hostname: str) -> DomainParts | None:
    """Split *hostname* into TLD/SLD/RLD/QLD, or None without a public suffix."""
    hostname = to_ascii_hostname(hostname.lower().rstrip(".")) or ""
    if not is_valid_hostname(hostname):
        return None
    ext = _EXTRACTOR(hostname)
    if not ext.suffix or not ext.domain:
        return None
    rld = ext.subdomain
    return DomainParts(
        TLD=ext.suffix,
        SLD=f"{ext.domain}.{ext.suffix}",
        RLD=rld,
        QLD=rld.split(".")[-1] if rld else "",
    )


def parse_url(url: str) -> PropertySet:
    """Build the PropertySet for *url*.

    Raises:
        InvalidUrlError: no host, or a host without a resolvable public suffix
            (IP literals included).
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname or ""
        port = parts.port
    except ValueError as e:
        raise InvalidUrlError(f"unparseable URL: {e}", url=url) from e

    ascii_hostname = to_ascii_hostname(hostname)
    if ascii_hostname is None:
        raise InvalidUrlError(f"host {hostname!r} is not a valid internationalized name", url=url)
    hostname = ascii_hostname

    domain = split_domain(hostname)
    if domain is None:
        raise InvalidUrlError(f"no public suffix for host {hostname!r}", url=url)

    netloc = parts.netloc
    auth = netloc.rpartition("@")[0] if "@" in netloc else ""
    host = f"{hostname}:{port}" if port is not None else hostname
    search = f"?{parts.query}" if parts.query else ""
    pathname = parts.path or "/"

    return PropertySet(
        URL=url,
        protocol=f"{parts.scheme}:" if parts.scheme else "",
        slashes=url.partition(":")[2].startswith("//"),
        auth=auth,
        host=host,
        hostname=hostname,
        port=str(port) if port is not None else "",
        pathname=pathname,
        search=search,
        query=dict(parse_qsl(parts.query, keep_blank_values=True)),
        hash=f"#{parts.fragment}" if parts.fragment else "",
        path=pathname + search,
        href=url,
        TLD=domain.TLD,
        SLD=domain.SLD,
        RLD=domain.RLD,
        QLD=domain.QLD,
    )


def extract_properties(url: str) -> PropertySet | None:
    """Like ``parse_url``, but None instead of InvalidUrlError."""
    try:
        return parse_url(url)
    except InvalidUrlError as e:
        logger.debug("Invalid URL %s: %s", url, e)
        return None
