"""
=============================================================================
PIPESERVE
=============================================================================

A users/products JSON API served by a threaded HTTP/1.1 server written on
raw sockets, with an explicit middleware pipeline in between.

    bytes ─► RequestParser ─► HTTPRequest
                                  │
                     Dispatcher   ▼
                     ┌──────────────────────────────────────────────┐
                     │ Logging → PrettyJSON → CORS → RequestId      │
                     │        └─► Router.match                      │
                     │              └─► Auth → RateLimit → handler  │
                     │        no match: SPA fallback or 404         │
                     │        exception: 500 envelope               │
                     └──────────────────────────────────────────────┘
                                  │
    bytes ◄─ HTTPResponse.to_bytes◄┘

Quick start:

    from pipeserve import HTTPServer, ServerConfig
    HTTPServer(ServerConfig(port=3000)).run()

or, without a socket:

    from pipeserve import create_app
    from pipeserve.http import parse_request
    app = create_app()
    response = app(parse_request(b"GET /users HTTP/1.1\\r\\nHost: x\\r\\n\\r\\n"))

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .app import create_app
from .dispatcher import Dispatcher
from .server import HTTPServer

__all__ = ["HTTPServer", "ServerConfig", "Dispatcher", "create_app", "__version__"]
