"""Page cache middleware for Starlette applications.

Serves cached pages before the application runs and caches the HTML
responses the application renders.

Handlers tell the cache which elements a page rendered by appending IDs
to ``request.state.cache_element_ids`` (and element queries to
``request.state.cache_element_queries``); those become the page's
dependencies in the cache index.

Example:
    app = Starlette(routes=routes)
    app.add_middleware(
        PageCacheMiddleware,
        cache_service=services.cache,
        content=content_system,
        settings=settings,
    )
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from pagecache.config import Settings
from pagecache.core.content import ContentSystem
from pagecache.core.elements import Element
from pagecache.core.site_uri import Site, SiteUri
from pagecache.exceptions import SiteNotFoundError
from pagecache.request.classifier import (
    is_cacheable_request,
    is_cacheable_uri,
    requested_site_uri,
)
from pagecache.request.context import RequestContext, UserState
from pagecache.services.caching import CacheService

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Page-Cache"


class RequestSites:
    """Content system view whose current site is the one a URL belongs to.

    The site with the longest base URL prefixing the request URL wins, so
    ``https://example.com/de`` is matched before ``https://example.com``.
    """

    def __init__(self, content: ContentSystem, url: str):
        self.content = content
        self.url = url

    def current_site(self) -> Site:
        matches = [
            site
            for site in self.content.all_sites()
            if self.url.startswith(site.trimmed_base_url)
        ]
        if not matches:
            raise SiteNotFoundError()
        return max(matches, key=lambda site: len(site.trimmed_base_url))

    def all_sites(self) -> list[Site]:
        return self.content.all_sites()

    def site_by_id(self, site_id: int) -> Site | None:
        return self.content.site_by_id(site_id)

    async def element_by_id(self, element_id: int) -> Element | None:
        return await self.content.element_by_id(element_id)

    def all_element_types(self) -> list[str]:
        return self.content.all_element_types()

    async def elements_of_type(self, element_type: str, site_id: int) -> list[Element]:
        return await self.content.elements_of_type(element_type, site_id)


def build_request_context(request: Request, status_code: int = 200) -> RequestContext:
    """Build a RequestContext from a Starlette request.

    Applications flag previews, action requests and the logged-in user
    through ``request.state`` (``is_preview``, ``is_live_preview``,
    ``is_action_request``, ``cache_user``).
    """
    state = request.state
    user: UserState | None = getattr(state, "cache_user", None)

    return RequestContext(
        method=request.method,
        absolute_url=str(request.url),
        params=dict(request.query_params),
        is_action_request=getattr(state, "is_action_request", False),
        is_preview=getattr(state, "is_preview", False),
        is_live_preview=getattr(state, "is_live_preview", False),
        status_code=status_code,
        user=user,
    )


def _is_html(response: Response) -> bool:
    return response.headers.get("content-type", "").startswith("text/html")


class PageCacheMiddleware(BaseHTTPMiddleware):
    """Serve and store full-page HTML responses.

    Cache failures are logged and never change the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        cache_service: CacheService,
        content: ContentSystem,
        settings: Settings,
    ) -> None:
        super().__init__(app)
        self.cache_service = cache_service
        self.content = content
        self.settings = settings

    def _site_uri(self, context: RequestContext) -> SiteUri | None:
        site_uri = requested_site_uri(
            context, RequestSites(self.content, context.absolute_url), self.settings
        )
        if site_uri is None:
            return None
        if not is_cacheable_uri(site_uri.site_id, site_uri.uri, self.settings):
            return None
        return site_uri

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.cache_element_ids = []
        request.state.cache_element_queries = []

        context = build_request_context(request)
        if not is_cacheable_request(context, self.settings):
            return await call_next(request)

        site_uri = self._site_uri(context)
        if site_uri is None:
            return await call_next(request)

        try:
            cached = await self.cache_service.get_cached_value(site_uri)
        except Exception:
            logger.exception(f"Reading cached page {site_uri.uri!r} failed")
            cached = b""

        if cached:
            return Response(
                content=cached,
                media_type="text/html",
                headers={CACHE_HEADER: "HIT"},
            )

        response = await call_next(request)

        context = build_request_context(request, status_code=response.status_code)
        if response.status_code != 200 or not _is_html(response):
            return response
        if not is_cacheable_request(context, self.settings):
            return response

        body_iterator = getattr(response, "body_iterator")
        body = b"".join([chunk async for chunk in body_iterator])

        await self._save(request, site_uri, body)

        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )

    async def _save(self, request: Request, site_uri: SiteUri, body: bytes) -> None:
        element_ids: list[Any] = getattr(request.state, "cache_element_ids", [])
        element_queries: list[Any] = getattr(request.state, "cache_element_queries", [])
        try:
            await self.cache_service.save_output(
                site_uri,
                body,
                element_ids=element_ids,
                element_queries=element_queries,
            )
        except Exception:
            logger.exception(f"Caching page {site_uri.uri!r} failed")
