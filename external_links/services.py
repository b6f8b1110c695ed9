"""Annotate anchors in rendered HTML with link-category CSS classes.

Each ``<a href>`` gets ``mailto`` or ``external`` depending on where it
points, plus exactly one of ``imgs``, ``icon``, ``img`` or ``no-img``
depending on the images it wraps. External links may additionally receive a
``target`` attribute and a ``nofollow`` relation. Themes style these classes
(see ``external_links/css/external_links.css``).
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any, Mapping

from bs4 import BeautifulSoup, FeatureNotFound, Tag

from .classify import UrlClassifier
from .conf import LinkConfig, get_site_config, load_config
from .images import ImageSizeProber
from .types import AnchorAnnotation, LinkClassification

logger = logging.getLogger(__name__)

# Images at most this many pixels on their longest side are treated as icons.
ICON_MAX_SIZE = 32

_DOCUMENT_START = re.compile(r"^\s*(?:<!--.*?-->\s*)*<(?:!doctype|html)[\s>]", re.IGNORECASE | re.DOTALL)


def is_document(html: str) -> bool:
    """Return ``True`` when ``html`` is a complete document rather than a fragment."""

    return _DOCUMENT_START.match(html) is not None


def parse_html(html: str, document: bool = False) -> BeautifulSoup:
    """Parse ``html`` leniently.

    Complete documents go through lxml when it is installed. Fragments always
    use ``html.parser`` which, unlike lxml, does not wrap them in synthetic
    ``<html>``/``<body>``/``<p>`` elements.
    """

    if document:
        try:
            return BeautifulSoup(html, "lxml")
        except FeatureNotFound:
            pass
    return BeautifulSoup(html, "html.parser")


class LinkAnnotator:
    """Classify anchors of HTML fragments according to a :class:`LinkConfig`."""

    def __init__(
        self,
        config: LinkConfig | None = None,
        *,
        classifier: UrlClassifier | None = None,
        prober: ImageSizeProber | None = None,
    ) -> None:
        self.config = config or load_config(None)
        self.classifier = classifier or UrlClassifier(self.config.exclusions, self.config.base_url)
        self.prober = prober or ImageSizeProber(
            self.config.document_root,
            max_remote_bytes=self.config.max_remote_bytes,
            timeout=self.config.remote_timeout,
        )

    def for_page(self, header: Mapping[str, Any] | None = None, base_url: str | None = None) -> "LinkAnnotator":
        """Return an annotator for a page header and base URL.

        ``self`` is returned when neither changes the configuration.
        """

        config = self.config.for_page(header)
        if base_url and not config.base_url:
            config = config.with_overrides({"base_url": base_url})
        if config == self.config:
            return self
        return LinkAnnotator(config)

    def annotate(self, html: str, routable: bool = True) -> str:
        """Return ``html`` with its anchors annotated.

        The input is returned unchanged when the page is not routable, when
        processing is switched off, or when it contains no anchors.
        """

        if not html or not routable:
            return html
        if not (self.config.enabled and self.config.process):
            return html

        document = is_document(html)
        soup = parse_html(html, document)
        if soup.find(True) is None:
            logger.debug("No elements found, leaving content untouched")
            return html

        anchors = soup.find_all("a")
        if not anchors:
            return html

        for anchor in anchors:
            self.annotate_anchor(anchor)

        # The soup object is the synthetic root; only its children are emitted.
        return str(soup)

    def annotate_anchor(self, anchor: Tag) -> AnchorAnnotation | None:
        """Add classes and attributes to a single ``<a>`` element in place."""

        href = anchor.get("href")
        if not isinstance(href, str) or not href:
            return None

        annotation = AnchorAnnotation.from_tokens(anchor.get("class"))
        excluded_class = self.config.exclusions.css_class
        if excluded_class and excluded_class in annotation.classes:
            return None

        classification = self.classifier.classify(href)
        if classification is LinkClassification.MAILTO:
            annotation.add_class("mailto")
        elif classification is LinkClassification.EXTERNAL:
            annotation.add_class("external")
            if self.config.target:
                annotation.target = self.config.target
            if self.config.no_follow:
                annotation.add_rel("nofollow", anchor.get("rel"))

        annotation.add_class(self.image_class(anchor))
        apply_annotation(anchor, annotation)
        return annotation

    def image_class(self, anchor: Tag) -> str:
        images = anchor.find_all("img")
        if len(images) > 1:
            return "imgs"
        if not images:
            return "no-img"

        image = images[0]
        size = self.prober.probe(
            image.get("src"),
            style=image.get("style"),
            width=image.get("width"),
            height=image.get("height"),
        ).largest
        return "icon" if 0 < size <= ICON_MAX_SIZE else "img"


def apply_annotation(anchor: Tag, annotation: AnchorAnnotation) -> None:
    if annotation.changed and annotation.classes:
        anchor["class"] = " ".join(annotation.classes)
    if annotation.target:
        anchor["target"] = annotation.target
    if annotation.rel is not None:
        anchor["rel"] = " ".join(annotation.rel)


def annotate_html(
    html: str,
    config: LinkConfig | None = None,
    *,
    routable: bool = True,
    header: Mapping[str, Any] | None = None,
) -> str:
    """Annotate ``html`` with ``config``, defaulting to the site configuration."""

    annotator = LinkAnnotator(config) if config is not None else get_site_annotator()
    return annotator.for_page(header).annotate(html, routable=routable)


@lru_cache(maxsize=None)
def get_site_annotator() -> LinkAnnotator:
    """Annotator for the site configuration, built once until settings change."""

    return LinkAnnotator(get_site_config())


def reset_site_annotator(*, setting: str, **kwargs: Any) -> None:
    """``setting_changed`` receiver dropping the cached site annotator."""

    if setting in {"EXTERNAL_LINKS", "EXTERNAL_LINKS_CONFIG"}:
        get_site_annotator.cache_clear()
