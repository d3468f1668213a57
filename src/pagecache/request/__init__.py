"""Request classification for pagecache."""

from pagecache.request.classifier import (
    is_cacheable_request,
    is_cacheable_site_request,
    is_cacheable_uri,
    requested_site_uri,
    site_url,
)
from pagecache.request.context import RequestContext, UserState

__all__ = [
    "RequestContext",
    "UserState",
    "is_cacheable_request",
    "is_cacheable_site_request",
    "is_cacheable_uri",
    "requested_site_uri",
    "site_url",
]
