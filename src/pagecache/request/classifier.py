"""Request classification: may this request read or write the page cache?

All functions here are pure decisions over a RequestContext and the
settings; none of them touch storage.
"""

from __future__ import annotations

import logging
import re

from pagecache.config import QueryStringCaching, Settings, UriPattern
from pagecache.core.content import ContentSystem
from pagecache.core.site_uri import Site, SiteUri, normalize_uri
from pagecache.exceptions import SiteNotFoundError
from pagecache.request.context import RequestContext

logger = logging.getLogger(__name__)

NO_CACHE_PARAM = "no-cache"
TOKEN_PARAM = "token"
HOME_URI = "__home__"

_QUERY_RE = re.compile(r"\?.*")


def is_cacheable_site_request(request: RequestContext) -> bool:
    """A GET to a site-facing endpoint that is not an action or a preview."""
    return (
        request.is_site_request
        and request.is_get
        and not request.is_console_request
        and not request.is_action_request
        and not request.is_preview
        and not request.is_live_preview
    )


def is_cacheable_request(request: RequestContext, settings: Settings) -> bool:
    """Return whether the response to this request may be cached."""
    if not settings.caching_enabled:
        return False

    if not is_cacheable_site_request(request):
        return False

    if not request.is_ok:
        return False

    user = request.user
    if user is not None:
        if not request.system_live and not user.can_access_site_when_offline:
            return False

        if user.debug_toolbar_enabled:
            return False

    if request.param(NO_CACHE_PARAM):
        return False

    if request.param(TOKEN_PARAM):
        return False

    if (
        settings.query_string_caching == QueryStringCaching.DISABLED
        and request.query_string_without_path
    ):
        return False

    return True


def requested_site_uri(
    request: RequestContext,
    content: ContentSystem,
    settings: Settings,
) -> SiteUri | None:
    """Derive the cache key for a request.

    Returns None without a current site, or when the request URL is not
    below the current site's base URL.
    """
    try:
        site = content.current_site()
    except SiteNotFoundError:
        return None

    url = request.absolute_url

    if settings.query_string_caching == QueryStringCaching.SAME_PAGE:
        url = _QUERY_RE.sub("", url)

    base_url = site.trimmed_base_url
    if not url.startswith(base_url):
        return None

    uri = url[len(base_url) :]

    return SiteUri(site_id=site.id, uri=normalize_uri(uri))


def _matches(patterns: list[UriPattern], site_id: int, uri: str) -> bool:
    for item in patterns:
        if item.site_id is not None and item.site_id != site_id:
            continue
        # An empty pattern stands for the home page
        pattern = item.pattern or "^$"
        try:
            if re.search(pattern, uri):
                return True
        except re.error as e:
            logger.warning(f"Invalid URI pattern {item.pattern!r}: {e}")
    return False


def is_cacheable_uri(site_id: int, uri: str, settings: Settings) -> bool:
    """Return whether a site URI passes the include/exclude URI patterns."""
    uri = normalize_uri(uri)
    if uri == HOME_URI:
        uri = ""

    if "index.php" in uri:
        return False

    if _matches(settings.excluded_uri_patterns, site_id, uri):
        return False

    return _matches(settings.included_uri_patterns, site_id, uri)


def site_url(site: Site, uri: str) -> str:
    """Absolute URL of a URI on a site."""
    return SiteUri(site_id=site.id, uri=uri).url(site)
