"""Framework-neutral view of an inbound request.

The hosting application builds a ``RequestContext`` from its own request,
response and user objects; the classifier only ever sees this value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit

# Query parameter some content systems use to carry the routed path
PATH_PARAM = "p"


@dataclass(frozen=True)
class UserState:
    """The logged-in user, as far as caching is concerned."""

    can_access_site_when_offline: bool = False
    debug_toolbar_enabled: bool = False


@dataclass
class RequestContext:
    method: str
    absolute_url: str
    params: dict[str, str] = field(default_factory=dict)
    is_site_request: bool = True
    is_console_request: bool = False
    is_action_request: bool = False
    is_preview: bool = False
    is_live_preview: bool = False
    status_code: int = 200
    system_live: bool = True
    user: UserState | None = None

    @property
    def is_get(self) -> bool:
        return self.method.upper() == "GET"

    @property
    def is_ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def query_string_without_path(self) -> str:
        query = urlsplit(self.absolute_url).query
        pairs = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k != PATH_PARAM]
        return urlencode(pairs)

    def param(self, name: str) -> str:
        return self.params.get(name, "")
