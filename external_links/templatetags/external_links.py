from __future__ import annotations

from typing import Any, Mapping

from django import template
from django.templatetags.static import static
from django.utils.html import format_html
from django.utils.safestring import SafeString, mark_safe

from ..conf import get_site_config
from ..services import get_site_annotator

register = template.Library()

STYLESHEET = 'external_links/css/external_links.css'


@register.filter(name='external_links')
def external_links_filter(value: Any, header: Mapping[str, Any] | None = None) -> Any:
    """Annotate the anchors of an HTML value.

    ``{{ page.body|external_links }}`` or, with page-level overrides,
    ``{{ page.body|external_links:page.header }}``.
    """

    if not value:
        return value
    annotator = get_site_annotator()
    if not annotator.config.enabled:
        return value
    annotated = annotator.for_page(header or None).annotate(str(value))
    if isinstance(value, SafeString) or annotated != str(value):
        return mark_safe(annotated)
    return value


@register.simple_tag
def external_links_css() -> str:
    """Render the built-in stylesheet link when ``built_in_css`` is enabled."""

    config = get_site_config()
    if not (config.enabled and config.built_in_css):
        return ''
    return format_html('<link rel="stylesheet" href="{}">', static(STYLESHEET))
