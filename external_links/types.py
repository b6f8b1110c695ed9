"""Typed data structures shared by the classifier, prober and annotator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class LinkClassification(str, Enum):
    """Category an anchor's ``href`` falls into."""

    MAILTO = "mailto"
    EXTERNAL = "external"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ExclusionConfig:
    """Domains and the CSS class that keep anchors out of classification."""

    domains: Tuple[str, ...] = ()
    css_class: Optional[str] = None


@dataclass(frozen=True)
class ImageDimensions:
    """Pixel size of an image; ``0`` means the axis is unknown."""

    width: int = 0
    height: int = 0

    @property
    def largest(self) -> int:
        return max(self.width, self.height)


@dataclass
class AnchorAnnotation:
    """Mutable result of processing a single anchor."""

    classes: List[str] = field(default_factory=list)
    target: Optional[str] = None
    rel: Optional[List[str]] = None
    changed: bool = False

    @classmethod
    def from_tokens(cls, tokens: object) -> "AnchorAnnotation":
        return cls(classes=split_tokens(tokens))

    def add_class(self, token: str) -> None:
        self.changed = True
        if token not in self.classes:
            self.classes.append(token)

    def add_rel(self, token: str, existing: object) -> None:
        rel = split_tokens(existing)
        if token not in rel:
            rel.append(token)
            self.rel = rel


def split_tokens(value: object) -> List[str]:
    """Return whitespace separated tokens in first-seen order without duplicates.

    BeautifulSoup hands multi-valued attributes such as ``class`` and ``rel``
    back as lists, everything else arrives as a plain string.
    """

    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split()
    else:
        parts = [token for item in value for token in str(item).split()]

    tokens: List[str] = []
    for part in parts:
        if part not in tokens:
            tokens.append(part)
    return tokens
