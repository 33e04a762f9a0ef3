# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for synopsis.properties — URL → PropertySet extraction."""

from __future__ import annotations

import pytest

from synopsis.errors import InvalidUrlError
from synopsis.properties import (
    extract_properties,
    is_valid_hostname,
    parse_url,
    split_domain,
    to_ascii_hostname,
)

# =========================================================================
# Domain splitting
# =========================================================================


class TestSplitDomain:
    def test_nested_subdomain(self):
        parts = split_domain("foo.bar.example.com")
        assert parts.TLD == "com"
        assert parts.SLD == "example.com"
        assert parts.RLD == "foo.bar"
        assert parts.QLD == "bar"

    def test_multi_label_suffix(self):
        parts = split_domain("search.yahoo.co.jp")
        assert parts.TLD == "co.jp"
        assert parts.SLD == "yahoo.co.jp"
        assert parts.RLD == "search"
        assert parts.QLD == "search"

    def test_bare_domain_has_empty_subdomain(self):
        parts = split_domain("example.com")
        assert parts.RLD == ""
        assert parts.QLD == ""

    def test_case_insensitive(self):
        assert split_domain("WWW.Example.COM").SLD == "example.com"

    def test_internationalized_host_in_punycode(self):
        parts = split_domain("www.bücher.de")
        assert parts.SLD == "xn--bcher-kva.de"
        assert parts.TLD == "de"
        assert parts.RLD == "www"

    def test_unencodable_host(self):
        assert split_domain("ü" * 70 + ".de") is None

    @pytest.mark.parametrize("host", ["localhost", "192.168.0.1", "", "com", "bad host.com", "-x.example.com"])
    def test_no_public_suffix(self, host):
        assert split_domain(host) is None


class TestIsValidHostname:
    def test_valid(self):
        assert is_valid_hostname("a-b.example.com")

    def test_underscore_allowed(self):
        assert is_valid_hostname("_dmarc.example.com")

    def test_empty_label(self):
        assert not is_valid_hostname("a..example.com")

    def test_too_long(self):
        assert not is_valid_hostname(("a" * 60 + ".") * 5 + "com")


# =========================================================================
# URL properties
# =========================================================================


class TestExtractProperties:
    def test_url_components(self):
        props = extract_properties("https://user:pw@www.example.com:8443/a/b?x=1&y=2#top")
        assert props.URL == "https://user:pw@www.example.com:8443/a/b?x=1&y=2#top"
        assert props.protocol == "https:"
        assert props.slashes is True
        assert props.auth == "user:pw"
        assert props.hostname == "www.example.com"
        assert props.host == "www.example.com:8443"
        assert props.port == "8443"
        assert props.pathname == "/a/b"
        assert props.search == "?x=1&y=2"
        assert props.query == {"x": "1", "y": "2"}
        assert props.hash == "#top"
        assert props.path == "/a/b?x=1&y=2"

    def test_domain_parts(self):
        props = extract_properties("https://foo.bar.example.com/")
        assert (props.QLD, props.RLD, props.SLD, props.TLD) == ("bar", "foo.bar", "example.com", "com")

    def test_root_pathname(self):
        props = extract_properties("https://example.com")
        assert props.pathname == "/"
        assert props.search == ""
        assert props.hash == ""

    def test_context_exposes_all_fields(self):
        context = extract_properties("https://www.youtube.com/watch?v=X").as_context()
        assert context["SLD"] == "youtube.com"
        assert context["pathname"] == "/watch"
        assert context["query"] == {"v": "X"}
        assert context["URL"] == "https://www.youtube.com/watch?v=X"

    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost:8000/",
            "http://127.0.0.1/page",
            "https://[::1]/",
            "not a url",
            "",
            "mailto:someone@example.com",
            "http://example.com:99999/",
        ],
    )
    def test_invalid_returns_none(self, url):
        assert extract_properties(url) is None

    @pytest.mark.parametrize("url", ["http://localhost/", "http://example.com:99999/"])
    def test_parse_url_raises(self, url):
        with pytest.raises(InvalidUrlError) as exc_info:
            parse_url(url)
        assert exc_info.value.url == url

    def test_internationalized_host(self):
        props = extract_properties("https://www.bücher.de/buch")
        assert props.hostname == "www.xn--bcher-kva.de"
        assert props.host == "www.xn--bcher-kva.de"
        assert props.SLD == "xn--bcher-kva.de"
        assert props.pathname == "/buch"

    def test_ascii_hostname_unchanged(self):
        assert to_ascii_hostname("my_host.example.com") == "my_host.example.com"
        assert to_ascii_hostname("münchen.de") == "xn--mnchen-3ya.de"
