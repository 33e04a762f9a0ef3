# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for synopsis.resolver — rule precedence, DOM rules, publisher ids."""

from __future__ import annotations

import pytest

from synopsis.errors import ExpressionError, MissingMarkupError
from synopsis.resolver import (
    PublisherResolver,
    Resolution,
    ResolutionStatus,
    is_publisher_id,
    resolve_publisher,
)
from synopsis.rules import load_rules


def _resolver(*rules: dict) -> PublisherResolver:
    return PublisherResolver(load_rules(list(rules)))


# =========================================================================
# Shipped rule table
# =========================================================================


class TestDefaultTable:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://foo.bar.example.com/path?q=1", "example.com"),
            ("http://www.bbc.co.uk/news", "bbc.co.uk"),
            ("https://example.com", "example.com"),
            ("https://www.youtube.com/channel/UCxyz/", "youtube.com/channel/UCxyz"),
            ("https://www.youtube.com/channel/UCxyz/videos", "youtube.com/channel/UCxyz/videos"),
            ("https://www.youtube.com/", "youtube.com"),
            ("https://bücher.de/", "xn--bcher-kva.de"),
            ("https://www.münchen.de/rathaus", "xn--mnchen-3ya.de"),
        ],
    )
    def test_publishers(self, url, expected):
        assert resolve_publisher(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.google.com/search?q=x",
            "https://www.google.co.uk/",
            "https://www.bing.com/search?q=x",
            "https://search.yahoo.co.jp/search?p=x",
            "https://pbs.twimg.com/media/abc.jpg",
            "https://i.ytimg.com/vi/abc/default.jpg",
            "https://us1.campaign-archive2.com/?u=1",
        ],
    )
    def test_excluded(self, url):
        resolution = PublisherResolver().resolve(url)
        assert resolution.status is ResolutionStatus.EXCLUDED
        assert resolution.publisher is None
        assert resolve_publisher(url) is None

    def test_google_paths_always_excluded(self):
        assert resolve_publisher("https://www.google.com/maps/place/x") is None

    @pytest.mark.parametrize("url", ["http://localhost/", "http://10.0.0.1/x", "garbage", ""])
    def test_not_applicable(self, url):
        resolution = PublisherResolver().resolve(url)
        assert resolution.status is ResolutionStatus.NOT_APPLICABLE
        assert resolve_publisher(url) is None

    def test_youtube_watch_uses_channel_meta(self, youtube_markup):
        url = "https://www.youtube.com/watch?v=X"
        assert resolve_publisher(url, youtube_markup) == "youtube.com/channel/UC123abc"

    def test_youtube_watch_extras(self, youtube_markup):
        resolution = PublisherResolver().resolve("https://www.youtube.com/watch?v=X", youtube_markup)
        assert resolution.rule == "youtube videos, credited to the uploading channel"
        assert resolution.extras == {"faviconURL": "https://yt3.example.com/photo.jpg"}

    def test_youtube_watch_bytes_markup(self, youtube_markup):
        url = "https://www.youtube.com/watch?v=X"
        assert resolve_publisher(url, youtube_markup.encode("utf-8")) == "youtube.com/channel/UC123abc"

    def test_youtube_watch_without_markup(self):
        with pytest.raises(MissingMarkupError, match="markup"):
            resolve_publisher("https://www.youtube.com/watch?v=X")

    def test_youtube_watch_without_channel_meta(self):
        with pytest.raises(ExpressionError):
            resolve_publisher("https://www.youtube.com/watch?v=X", "<html><body><p>x</p></body></html>")

    def test_extras_missing_node_dropped(self):
        resolution = PublisherResolver().resolve(
            "https://www.youtube.com/channel/UC1", "<html><body><p>no image</p></body></html>"
        )
        assert resolution.publisher == "youtube.com/channel/UC1"
        assert resolution.extras == {}

    def test_resolution_truthiness(self):
        assert PublisherResolver().resolve("https://example.com/")
        assert not PublisherResolver().resolve("https://www.google.com/")


# =========================================================================
# Rule semantics
# =========================================================================


class TestRuleSemantics:
    def test_first_match_wins(self):
        resolver = _resolver(
            {"condition": "SLD == 'example.com'", "consequent": "'first.com'"},
            {"condition": "SLD == 'example.com'", "consequent": "'second.com'"},
            {"condition": True, "consequent": "SLD"},
        )
        assert resolver.resolve("https://example.com/").publisher == "first.com"

    def test_non_matching_rules_skipped(self):
        resolver = _resolver(
            {"condition": "SLD == 'other.com'", "consequent": "'other'"},
            {"condition": True, "consequent": "SLD"},
        )
        assert resolver.resolve("https://example.com/").publisher == "example.com"

    def test_empty_string_falls_through(self):
        resolver = _resolver(
            {"condition": "SLD == 'example.com'", "consequent": "''"},
            {"condition": True, "consequent": "'fallback.com'"},
        )
        assert resolver.resolve("https://example.com/").publisher == "fallback.com"

    def test_conditional_pass(self):
        resolver = _resolver(
            {"condition": "SLD == 'example.com'", "consequent": "QLD == 'blog' and 'blog.example.com' or ''"},
            {"condition": True, "consequent": "SLD"},
        )
        assert resolver.resolve("https://blog.example.com/").publisher == "blog.example.com"
        assert resolver.resolve("https://www.example.com/").publisher == "example.com"

    def test_absent_consequent_falls_through(self):
        resolver = _resolver(
            {"condition": True, "description": "annotation only"},
            {"condition": True, "consequent": "SLD"},
        )
        assert resolver.resolve("https://example.com/").publisher == "example.com"

    @pytest.mark.parametrize("consequent", [None, False, "null", "false"])
    def test_null_or_false_halts(self, consequent):
        resolver = _resolver(
            {"condition": "SLD == 'example.com'", "consequent": consequent, "description": "deny"},
            {"condition": True, "consequent": "SLD"},
        )
        resolution = resolver.resolve("https://example.com/")
        assert resolution == Resolution(ResolutionStatus.EXCLUDED, rule="deny")

    def test_exhausted_table(self):
        resolver = _resolver({"condition": "SLD == 'other.com'", "consequent": "SLD"})
        assert resolver.resolve("https://example.com/").status is ResolutionStatus.NOT_APPLICABLE

    def test_trims_dots_and_slashes(self):
        resolver = _resolver({"condition": True, "consequent": "'./' + SLD + pathname + '/.'"})
        assert resolver.resolve("https://example.com/a/b/").publisher == "example.com/a/b"

    def test_only_separators_is_no_publisher(self):
        resolver = _resolver({"condition": True, "consequent": "'/./'"}, {"condition": True, "consequent": "SLD"})
        assert resolver.resolve("https://example.com/").publisher is None

    def test_markup_only_required_when_dom_rule_matches(self):
        resolver = _resolver(
            {
                "condition": "pathname == '/dom'",
                "dom": {"publisher": {"nodeSelector": "a[rel=author]", "consequent": "node.get('href')"}},
            },
            {"condition": True, "consequent": "SLD"},
        )
        assert resolver.resolve("https://example.com/plain").publisher == "example.com"
        with pytest.raises(MissingMarkupError):
            resolver.resolve("https://example.com/dom")
        markup = '<html><body><a rel="author" href="https://author.example.org/">x</a></body></html>'
        assert resolver.resolve("https://example.com/dom", markup).publisher == "https://author.example.org"

    def test_dom_consequent_empty_falls_through(self):
        resolver = _resolver(
            {
                "condition": True,
                "dom": {"publisher": {"nodeSelector": "meta[name=pub]", "consequent": "node and node.get('content') or ''"}},
            },
            {"condition": True, "consequent": "SLD"},
        )
        assert resolver.resolve("https://example.com/", "<html><body></body></html>").publisher == "example.com"


# =========================================================================
# Publisher id validation
# =========================================================================


class TestIsPublisherId:
    @pytest.mark.parametrize(
        "publisher",
        ["example.com", "example.com/a/b", "youtube.com/channel/UC123", "bbc.co.uk", "sub.example.com", "bücher.de"],
    )
    def test_valid(self, publisher):
        assert is_publisher_id(publisher) is True

    @pytest.mark.parametrize(
        "publisher",
        [
            "example.com/a?x=1",
            "example.com/a#frag",
            "example.com/?",
            "localhost",
            "co.uk",
            "",
            "127.0.0.1/path",
            "https://example.com",
        ],
    )
    def test_invalid(self, publisher):
        assert is_publisher_id(publisher) is False

    def test_non_string(self):
        assert is_publisher_id(None) is False
