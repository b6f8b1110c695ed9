from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable

from django.core.exceptions import MiddlewareNotUsed
from django.http import HttpRequest, HttpResponse

from .conf import LinkConfig, get_site_config
from .services import LinkAnnotator

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')

# Distinct request hosts keeping a ready-built annotator.
MAX_CACHED_HOSTS = 32


class ExternalLinksMiddleware:
    """Annotate anchors of rendered HTML responses.

    Views may attach page-level overrides as ``response.external_links``
    (same shape as a page header: an ``external_links`` mapping and/or
    ``process: {external_links: bool}``).
    """

    def __init__(
        self,
        get_response: Callable[[HttpRequest], HttpResponse],
        *,
        config: LinkConfig | None = None,
    ) -> None:
        self.get_response = get_response
        self.config = config or get_site_config()
        if not self.config.enabled:
            raise MiddlewareNotUsed('External links processing is disabled.')
        self.annotator = LinkAnnotator(self.config)
        self._annotator_for_base_url = lru_cache(maxsize=MAX_CACHED_HOSTS)(self._build_annotator)

    def __call__(self, request: HttpRequest) -> HttpResponse:
        response = self.get_response(request)
        if not self._is_candidate(request, response):
            return response

        annotator = self._annotator_for(request).for_page(getattr(response, 'external_links', None))
        charset = response.charset or 'utf-8'
        try:
            content = response.content.decode(charset)
        except (LookupError, UnicodeDecodeError) as exc:
            logger.debug('Skipping %s: undecodable body (%s)', request.path, exc)
            return response

        processed = annotator.annotate(content, routable=self._is_routable(response))
        if processed is not content:
            response.content = processed.encode(charset)
            if response.has_header('Content-Length'):
                response['Content-Length'] = str(len(response.content))
        return response

    def _annotator_for(self, request: HttpRequest) -> LinkAnnotator:
        if self.config.base_url:
            return self.annotator
        return self._annotator_for_base_url(request.build_absolute_uri('/'))

    def _build_annotator(self, base_url: str) -> LinkAnnotator:
        return self.annotator.for_page(base_url=base_url)

    def _is_candidate(self, request: HttpRequest, response: HttpResponse) -> bool:
        if getattr(response, 'streaming', False):
            return False
        if response.has_header('Content-Encoding'):
            return False
        content_type = response.get('Content-Type', '').split(';')[0].strip().lower()
        if content_type not in HTML_CONTENT_TYPES:
            return False
        return not any(request.path.startswith(prefix) for prefix in self.config.excluded_paths)

    @staticmethod
    def _is_routable(response: HttpResponse) -> bool:
        return response.status_code == 200


def external_links_middleware(get_response: Callable[[HttpRequest], HttpResponse]) -> ExternalLinksMiddleware:
    return ExternalLinksMiddleware(get_response)
