"""
=============================================================================
APPLICATION FACTORY
=============================================================================

``create_app(config)`` assembles the whole application and returns the
Dispatcher the server calls for every request.

=============================================================================
ROUTE TABLE
=============================================================================

    GET     /                       welcome document
    GET     /users                  list
    GET     /users/:id              fetch
    POST    /users                  create
    PUT     /users/:id              update
    DELETE  /users/:id              delete
    GET     /hello/:name            greeting
    GET     /search?q=&limit=       user search
    GET     /error                  always 500
    GET     /limited                ── RateLimit(5 / 60 s) ──► handler
    GET     /products               list
    GET     /products/:id           fetch
    GET     /protected/profile      ── Auth ──► handler
    GET     /protected/dashboard    ── Auth ──► handler
    GET     /api/status             uptime
    GET     /api/version            version

    anything else, GET outside /api ──► SPA fallback (when static_dir set)
    anything else                   ──► 404 {message: "路由不存在", path}

Global middleware, outermost first:

    Logging → PrettyJSON → CORS → RequestId

=============================================================================
COLLABORATORS
=============================================================================

Stores, the limiter and the credential verifier are built from the config
unless passed in. Tests pass their own to control seed data, time and
credentials:

    app = create_app(ServerConfig(), limiter=SlidingWindowRateLimiter(clock=fake))

=============================================================================
"""

import logging
from typing import Optional

from . import __version__
from .config import ServerConfig
from .core.rate_limiter import SlidingWindowRateLimiter
from .dispatcher import Dispatcher
from .handlers.general import GeneralHandlers
from .handlers.products import ProductHandlers
from .handlers.protected import ProtectedHandlers
from .handlers.static import SPAFallbackHandler
from .handlers.status import StatusHandlers
from .handlers.users import UserHandlers
from .http.router import Router
from .middleware.auth import AuthMiddleware, CredentialVerifier, StaticTokenVerifier
from .middleware.base import Middleware
from .middleware.cors import CORSConfig, CORSMiddleware
from .middleware.logging import LoggingMiddleware
from .middleware.pretty_json import PrettyJSONMiddleware
from .middleware.rate_limit import RateLimitMiddleware
from .middleware.request_id import RequestIdMiddleware
from .stores.base import ProductStore, UserStore
from .stores.memory import InMemoryProductStore, InMemoryUserStore
from .stores.sql import SqlUserStore, create_database_engine

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[ServerConfig] = None,
    user_store: Optional[UserStore] = None,
    product_store: Optional[ProductStore] = None,
    limiter: Optional[SlidingWindowRateLimiter] = None,
    verifier: Optional[CredentialVerifier] = None,
) -> Dispatcher:
    """
    Build the application.

    Args:
        config: Settings; defaults to ``ServerConfig()``.
        user_store: Overrides the store chosen from ``config.database_url``.
        product_store: Overrides the seeded in-memory catalogue.
        limiter: Shared rate window store for rate-limited routes.
        verifier: Credential check for /protected routes.

    Returns:
        The Dispatcher; call it with an HTTPRequest to get an HTTPResponse.
    """
    config = config or ServerConfig()

    closers = []
    if user_store is None:
        user_store = _build_user_store(config)
        if isinstance(user_store, SqlUserStore):
            closers.append(user_store.dispose)

    if product_store is None:
        product_store = InMemoryProductStore(seed=None if config.seed_data else [])

    if limiter is None:
        limiter = SlidingWindowRateLimiter(max_identifiers=config.rate_limit_max_identifiers)

    if verifier is None:
        verifier = StaticTokenVerifier(expected=f"Bearer {config.auth_token}")

    router = Router()
    _register_routes(router, config, user_store, product_store, limiter, verifier)

    fallback = None
    if config.static_dir:
        fallback = SPAFallbackHandler(config.static_dir, index_file=config.index_file)
        logger.info(f"SPA fallback serving {fallback.root_dir}")

    app = Dispatcher(
        router,
        middleware=_global_middleware(config),
        fallback=fallback,
        api_prefix=config.api_prefix,
    )
    for close in closers:
        app.on_close(close)

    return app


def _build_user_store(config: ServerConfig) -> UserStore:
    if not config.database_url:
        return InMemoryUserStore(seed=None if config.seed_data else [])

    store = SqlUserStore(create_database_engine(config.database_url))
    store.init_schema(seed=config.seed_data)
    logger.info(f"Users stored in {store.engine.url.render_as_string(hide_password=True)}")
    return store


def _global_middleware(config: ServerConfig) -> list:
    stages: list = [LoggingMiddleware(log_format=config.log_format)]
    if config.pretty_json:
        stages.append(PrettyJSONMiddleware())
    stages.append(CORSMiddleware(CORSConfig(allow_origins=list(config.cors_origins))))
    stages.append(RequestIdMiddleware())
    return stages


def _register_routes(
    router: Router,
    config: ServerConfig,
    users: UserStore,
    products: ProductStore,
    limiter: SlidingWindowRateLimiter,
    verifier: CredentialVerifier,
) -> None:
    general = GeneralHandlers(__version__)
    user_handlers = UserHandlers(users)
    product_handlers = ProductHandlers(products)
    protected_handlers = ProtectedHandlers(users, products)
    status_handlers = StatusHandlers(__version__)

    router.add_route("/", general.index, "GET", name="index")

    router.add_route("/users", user_handlers.list_users, "GET", name="users")
    router.add_route("/users/:id", user_handlers.get_user, "GET", name="user")
    router.add_route("/users", user_handlers.create_user, "POST")
    router.add_route("/users/:id", user_handlers.update_user, "PUT")
    router.add_route("/users/:id", user_handlers.delete_user, "DELETE")

    router.add_route("/hello/:name", general.hello, "GET", name="hello")
    router.add_route("/search", user_handlers.search, "GET", name="search")
    router.add_route("/error", general.error, "GET")

    rate_limit: Middleware = RateLimitMiddleware(
        limiter,
        limit=config.rate_limit,
        window_ms=config.rate_limit_window_ms,
    )
    router.add_route("/limited", general.limited, "GET", middleware=[rate_limit], name="limited")

    catalogue = router.group("/products")
    catalogue.add_route("/", product_handlers.list_products, "GET", name="products")
    catalogue.add_route("/:id", product_handlers.get_product, "GET", name="product")

    protected = router.group("/protected").use(AuthMiddleware(verifier))
    protected.add_route("/profile", protected_handlers.profile, "GET", name="profile")
    protected.add_route("/dashboard", protected_handlers.dashboard, "GET", name="dashboard")

    api = router.group(config.api_prefix or "/api")
    api.add_route("/status", status_handlers.status, "GET", name="api_status")
    api.add_route("/version", status_handlers.version_info, "GET", name="api_version")
