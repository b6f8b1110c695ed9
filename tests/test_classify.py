"""URL classification tests."""

from __future__ import annotations

import pytest

from external_links.classify import PROTOCOL_ALLOW_LIST, UrlClassifier, classify, compile_exclusion_pattern
from external_links.types import ExclusionConfig, LinkClassification

MAILTO = LinkClassification.MAILTO
EXTERNAL = LinkClassification.EXTERNAL
INTERNAL = LinkClassification.INTERNAL


@pytest.fixture()
def classifier() -> UrlClassifier:
    exclusions = ExclusionConfig(domains=("https://partner.example.com", "*.trusted.org"), css_class="exclude")
    return UrlClassifier(exclusions, base_url="https://mysite.test")


@pytest.mark.parametrize(
    "url, expected",
    [
        ("mailto:a@b.com", MAILTO),
        ("http://other.test", EXTERNAL),
        ("https://other.test/path?q=1", EXTERNAL),
        ("HTTPS://other.test", EXTERNAL),
        ("ftp://x", EXTERNAL),
        ("tel:+4912345", EXTERNAL),
        ("webcal://calendar.example.net/feed.ics", EXTERNAL),
        ("www.example.com", EXTERNAL),
        ("example.com", INTERNAL),
        ("/about/", INTERNAL),
        ("#top", INTERNAL),
        ("?page=2", INTERNAL),
        ("xyz://x", INTERNAL),
        ("javascript:void(0)", INTERNAL),
        (":foo", INTERNAL),
    ],
)
def test_classification_table(classifier, url, expected):
    assert classifier.classify(url) is expected


@pytest.mark.parametrize(
    "url",
    [
        "https://mysite.test",
        "https://mysite.test/blog/post",
        "https://partner.example.com/deal",
        "https://cdn.trusted.org/file.zip",
        "ftp://mirror.trusted.org/pub",
    ],
)
def test_excluded_domains_are_internal(classifier, url):
    assert classifier.classify(url) is INTERNAL


def test_exclusion_wins_over_mailto():
    classifier = UrlClassifier(ExclusionConfig(domains=("mailto:*@mysite.test",)))

    assert classifier.classify("mailto:team@mysite.test") is INTERNAL
    assert classifier.classify("mailto:someone@else.test") is MAILTO


def test_exclusion_only_matches_at_start(classifier):
    assert classifier.classify("https://other.test/?next=https://mysite.test") is EXTERNAL


def test_empty_exclusions_do_not_match_everything():
    assert compile_exclusion_pattern(["", ""]) is None
    classifier = UrlClassifier(ExclusionConfig(domains=("",)), base_url="")

    assert classifier.classify("http://other.test") is EXTERNAL


def test_exclusion_pattern_escapes_regex_characters():
    pattern = compile_exclusion_pattern(["https://a.b+c.test"])

    assert pattern.match("https://a.b+c.test/x")
    assert not pattern.match("https://aXb+c.test/x")
    assert not pattern.match("https://a.bbc.test/x")


def test_classification_does_not_depend_on_previous_url(classifier):
    # A url with a colon followed by one without must be judged on its own.
    assert classifier.classify("https://other.test") is EXTERNAL
    assert classifier.classify("www.other.test") is EXTERNAL
    assert classifier.classify("plain-path") is INTERNAL
    assert classifier.classify("www.other.test") is EXTERNAL


def test_protocol_allow_list_is_fixed():
    assert PROTOCOL_ALLOW_LIST == {
        "ftp", "http", "https", "irc", "mailto", "news", "nntp",
        "rtsp", "sftp", "ssh", "tel", "telnet", "webcal",
    }


def test_module_level_classify_helper():
    assert classify("https://other.test", ExclusionConfig(), base_url="https://mysite.test") is EXTERNAL
    assert classify("https://mysite.test/a", ExclusionConfig(), base_url="https://mysite.test") is INTERNAL
