"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler plus the middleware that guards it.

=============================================================================
PATTERN SYNTAX
=============================================================================

    /users              literal segments, exact match
    /users/:id          :name captures one segment  → {"id": "42"}
    /static/*path       *name captures the remainder → {"path": "css/a.css"}
    /*                  bare * captures into "wildcard"

=============================================================================
PRECEDENCE: MOST SPECIFIC WINS
=============================================================================

Several routes can match one path. Each pattern gets a specificity key,
one rank per segment, compared left to right:

    literal = 0   <   :param = 1   <   *wildcard = 2

    GET /users/me

        /users/me        (0, 0)   ◄── wins
        /users/:id       (0, 1)
        /*               (2,)

When two keys are equal the route registered first wins. Registration order
runs through mounted groups in the order they were mounted, so

    router.get("/a/:x")(first)
    router.include("/a", other)      # other has "/:y"

matches "/a/1" to ``first``.

=============================================================================
GROUPS AND MIDDLEWARE
=============================================================================

    root = Router()
    protected = root.group("/protected")
    protected.use(AuthMiddleware(verifier))        ← applies to every route
                                                     in the group
    protected.get("/profile")(profile)

    root.get("/limited", middleware=[RateLimitMiddleware(...)])(limited)
                               ▲
                               └── route-specific middleware

A match carries the effective chain: outer group middleware first, then
inner groups, then the route's own list.

=============================================================================
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Union
import re

from .request import HTTPRequest
from .response import HTTPResponse

if TYPE_CHECKING:
    from ..middleware.base import Middleware


Handler = Callable[[HTTPRequest], HTTPResponse]


class SegmentKind(IntEnum):
    """Rank of a pattern segment; lower is more specific."""
    LITERAL = 0
    PARAM = 1
    WILDCARD = 2


@dataclass(frozen=True)
class CompiledPattern:
    regex: "re.Pattern[str]"
    param_names: tuple
    specificity: tuple


@lru_cache(maxsize=1024)
def compile_pattern(path: str) -> CompiledPattern:
    """
    Compile a route pattern to a regex and its specificity key.

        /users/:id      → ^/users/(?P<id>[^/]+)$           (0, 1)
        /static/*path   → ^/static(?:/(?P<path>.*))?$       (0, 2)
        /               → ^/$                               ()
    """
    param_names: List[str] = []
    ranks: List[int] = []
    parts = ["^"]

    for segment in (s for s in path.split("/") if s):
        if segment.startswith(":"):
            name = segment[1:]
            param_names.append(name)
            ranks.append(SegmentKind.PARAM)
            parts.append(f"/(?P<{name}>[^/]+)")
        elif segment.startswith("*"):
            name = segment[1:] or "wildcard"
            param_names.append(name)
            ranks.append(SegmentKind.WILDCARD)
            parts.append(f"(?:/(?P<{name}>.*))?")
            break  # Wildcard swallows the rest
        else:
            ranks.append(SegmentKind.LITERAL)
            parts.append("/" + re.escape(segment))

    if len(parts) == 1:
        parts.append("/")
    parts.append("$")

    return CompiledPattern(
        regex=re.compile("".join(parts)),
        param_names=tuple(param_names),
        specificity=tuple(int(r) for r in ranks),
    )


def normalize_path(path: str) -> str:
    """Ensure one leading slash and no trailing slash ("/" stays "/")."""
    stripped = path.strip("/")
    return "/" + stripped if stripped else "/"


def _join(prefix: str, path: str) -> str:
    joined = prefix.rstrip("/") + "/" + path.lstrip("/")
    return normalize_path(joined)


@dataclass
class Route:
    """
    One route table entry.

    Attributes:
        path: Pattern, relative to the owning router until resolved.
        method: Upper-case method, or None for any method.
        handler: Terminal handler.
        middleware: Route-specific middleware, outermost first. Resolved
            routes (from ``routes()``/``match()``) carry the full chain.
        name: Optional name for url_for().
        meta: Free-form metadata.
    """
    path: str
    method: Optional[str]
    handler: Handler
    middleware: List["Middleware"] = field(default_factory=list)
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]

    @property
    def handler(self) -> Handler:
        return self.route.handler

    @property
    def middleware(self) -> List["Middleware"]:
        return self.route.middleware


@dataclass
class _Mount:
    prefix: str
    router: "Router"


class Router:
    """
    Route table with groups, per-route middleware and specificity matching.

    Example:
        router = Router()

        @router.get("/users/:id")
        def get_user(request):
            return success({"id": request.path_params["id"]})

        match = router.match("GET", "/users/7")
        match.params   # {"id": "7"}
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._entries: List[Union[Route, _Mount]] = []
        self._middleware: List["Middleware"] = []

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        middleware: Optional[List["Middleware"]] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        """
        Register a handler.

        Args:
            path: Pattern relative to this router.
            handler: Terminal handler.
            method: HTTP method, or None to accept any.
            middleware: Route-specific middleware, outermost first.
            name: Optional name for url_for().
        """
        route = Route(
            path=normalize_path(path),
            method=method.upper() if method else None,
            handler=handler,
            middleware=list(middleware or []),
            name=name,
            meta=meta,
        )
        self._entries.append(route)
        return route

    def use(self, *middleware: "Middleware") -> "Router":
        """Attach middleware to every route of this router and its groups."""
        self._middleware.extend(middleware)
        return self

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        middleware: Optional[List["Middleware"]] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, middleware, name, **meta)
            return handler
        return decorator

    def get(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "GET", **kwargs)

    def post(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "POST", **kwargs)

    def put(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "PUT", **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "DELETE", **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "PATCH", **kwargs)

    def head(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "HEAD", **kwargs)

    def options(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "OPTIONS", **kwargs)

    # =========================================================================
    # COMPOSITION
    # =========================================================================

    def include(self, prefix: str, router: "Router") -> "Router":
        """
        Mount an existing router under ``prefix``.

        The mounted router keeps its own prefix, which composes:
        include("/v1", Router("/users")) serves "/v1/users/...".
        """
        self._entries.append(_Mount(prefix.rstrip("/"), router))
        return router

    def group(self, prefix: str) -> "Router":
        """Create, mount and return an empty sub-router under ``prefix``."""
        return self.include(prefix, Router())

    # =========================================================================
    # MATCHING
    # =========================================================================

    def routes(self) -> List[Route]:
        """
        Every route, resolved: full path and full middleware chain, in
        registration order.
        """
        return list(self._resolve("", []))

    def _resolve(self, base: str, inherited: List["Middleware"]) -> Iterator[Route]:
        base = base + self.prefix
        chain = inherited + self._middleware

        for entry in self._entries:
            if isinstance(entry, _Mount):
                yield from entry.router._resolve(base + entry.prefix, chain)
            else:
                yield replace(
                    entry,
                    path=_join(base, entry.path),
                    middleware=chain + entry.middleware,
                )

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the most specific route for ``method`` and ``path``.

        HEAD falls back to the GET route when no HEAD route matches.

        Returns:
            RouteMatch with captured params, or None if nothing matches.
        """
        path = normalize_path(path)
        method = method.upper()

        found = self._find(method, path)
        if found is None and method == "HEAD":
            found = self._find("GET", path)
        return found

    def _find(self, method: str, path: str) -> Optional[RouteMatch]:
        best_key = None
        best: Optional[RouteMatch] = None

        for order, route in enumerate(self._resolve("", [])):
            if route.method and route.method != method:
                continue

            pattern = compile_pattern(route.path)
            found = pattern.regex.match(path)
            if not found:
                continue

            key = (pattern.specificity, order)
            if best_key is None or key < best_key:
                best_key = key
                params = {k: v or "" for k, v in found.groupdict().items()}
                best = RouteMatch(route=route, params=params)

        return best

    # =========================================================================
    # UTILITIES
    # =========================================================================

    def url_for(self, name: str, **params: str) -> Optional[str]:
        """Build a URL for a named route: url_for("user", id="7") → "/users/7"."""
        for route in self._resolve("", []):
            if route.name == name:
                url = route.path
                for key, value in params.items():
                    url = url.replace(f":{key}", str(value))
                    url = url.replace(f"*{key}", str(value))
                return url
        return None

    def print_routes(self) -> None:
        print("\nRegistered Routes:")
        print("-" * 60)
        for route in self.routes():
            method = route.method or "ANY"
            guards = ", ".join(getattr(m, "name", type(m).__name__) for m in route.middleware)
            suffix = f"  [{guards}]" if guards else ""
            print(f"  {method:8} {route.path}{suffix}")
        print("-" * 60)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# compile_pattern   pattern → regex + specificity key (cached)
# Router            add_route / use / group / include / match / url_for
# RouteMatch        resolved route (full path, full middleware) + params
#
# No 405 handling here: a path that exists under another method is simply
# unmatched, and the dispatcher answers 404.
# =============================================================================
