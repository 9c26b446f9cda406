"""Route table mapping ``(method, path pattern)`` to handler names.

Patterns use ``{name}`` for a single path segment and ``{name:path}`` for the
rest of the path, slashes included.
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass, field

_PARAM = re.compile(r"{(\w+)(?::(\w+))?}")
_CONVERTERS = {"str": "[^/]+", "path": ".+"}


def compile_pattern(pattern: str):
    parts = []
    pos = 0
    for m in _PARAM.finditer(pattern):
        parts.append(re.escape(pattern[pos:m.start()]))
        kind = m.group(2) or "str"
        if kind not in _CONVERTERS:
            raise ValueError(f"Unknown converter {kind!r} in {pattern!r}")
        parts.append(f"(?P<{m.group(1)}>{_CONVERTERS[kind]})")
        pos = m.end()
    parts.append(re.escape(pattern[pos:]))
    return re.compile("^" + "".join(parts) + "$")


@dataclass(frozen=True)
class Route:
    method: str
    pattern: str
    handler: str
    auth: bool = True
    regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "regex", compile_pattern(self.pattern))

    def match(self, path: str):
        m = self.regex.match(path)
        if m is None:
            return None
        return {k: urllib.parse.unquote(v) for k, v in m.groupdict().items()}


class RouteTable:
    def __init__(self, routes=()):
        self.routes: list[Route] = list(routes)

    def add(self, method, pattern, handler, auth=True):
        self.routes.append(Route(method.upper(), pattern, handler, auth))

    def match(self, method: str, path: str, auth=None):
        """Return ``(route, params)`` for the first matching route, or None.

        ``auth`` restricts the search to authenticated or public routes.
        """
        for route in self.routes:
            if route.method != method.upper():
                continue
            if auth is not None and route.auth != auth:
                continue
            params = route.match(path)
            if params is not None:
                return route, params
        return None

    def allowed_methods(self, path: str, auth=None) -> set[str]:
        return {
            route.method
            for route in self.routes
            if (auth is None or route.auth == auth) and route.match(path) is not None
        }


def build_routes() -> RouteTable:
    table = RouteTable()
    table.add("GET", "/api/list", "handle_list")
    table.add("PUT", "/api/upload/", "handle_upload")
    table.add("PUT", "/api/upload/{key:path}", "handle_upload")
    table.add("POST", "/api/delete", "handle_delete")
    table.add("POST", "/api/create-folder", "handle_create_folder")
    table.add("POST", "/api/move", "handle_move")
    table.add("POST", "/api/rename", "handle_rename")
    table.add("GET", "/", "handle_index", auth=False)
    table.add("GET", "/static/{path:path}", "handle_static", auth=False)
    table.add("GET", "/{key:path}", "handle_download", auth=False)
    table.add("HEAD", "/{key:path}", "handle_download", auth=False)
    return table
