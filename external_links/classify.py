"""Classification of link targets into mailto, external and internal URLs."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .types import ExclusionConfig, LinkClassification

PROTOCOL_ALLOW_LIST: frozenset[str] = frozenset(
    {
        "ftp",
        "http",
        "https",
        "irc",
        "mailto",
        "news",
        "nntp",
        "rtsp",
        "sftp",
        "ssh",
        "tel",
        "telnet",
        "webcal",
    }
)


def compile_exclusion_pattern(domains: Iterable[str]) -> Optional[re.Pattern[str]]:
    """Build a pattern matching URLs that start with any excluded domain.

    Each domain is escaped literally except for ``*`` which matches any run of
    characters. Empty entries are dropped since an empty alternative would
    match every URL. ``None`` is returned when nothing is excluded.
    """

    alternatives = [re.escape(domain).replace(r"\*", ".*") for domain in domains if domain]
    if not alternatives:
        return None
    return re.compile("(?:" + "|".join(alternatives) + ")")


class UrlClassifier:
    """Classify URLs against a fixed exclusion list and protocol allow-list.

    The exclusion pattern is compiled once at construction; instances are
    immutable afterwards and may be shared between threads.
    """

    def __init__(
        self,
        exclusions: ExclusionConfig,
        base_url: str = "",
        protocols: frozenset[str] = PROTOCOL_ALLOW_LIST,
    ) -> None:
        self.exclusions = exclusions
        self.protocols = protocols
        self.pattern = compile_exclusion_pattern([*exclusions.domains, base_url])

    def is_excluded(self, url: str) -> bool:
        return self.pattern is not None and self.pattern.match(url) is not None

    def classify(self, url: str) -> LinkClassification:
        if self.is_excluded(url):
            return LinkClassification.INTERNAL
        if url.startswith("mailto:"):
            return LinkClassification.MAILTO

        colon = url.find(":")
        if colon < 0:
            # Protocol-less link such as "www.example.com/page"
            if url.startswith("www."):
                return LinkClassification.EXTERNAL
            return LinkClassification.INTERNAL

        if colon > 0 and url[:colon].lower() in self.protocols:
            return LinkClassification.EXTERNAL
        return LinkClassification.INTERNAL


def classify(url: str, exclusions: ExclusionConfig, base_url: str = "") -> LinkClassification:
    """One-off classification; build a :class:`UrlClassifier` for repeated use."""

    return UrlClassifier(exclusions, base_url).classify(url)
