"""
=============================================================================
HANDLERS
=============================================================================

Route handlers. Each class takes its collaborators (stores, version) in
its constructor and exposes one bound method per endpoint:

    handler(request: HTTPRequest) -> HTTPResponse

    ┌────────────────────┬──────────────────────────────────────────────┐
    │ GeneralHandlers    │ /, /hello/:name, /error, /limited            │
    │ UserHandlers       │ /users CRUD, /search                         │
    │ ProductHandlers    │ /products, /products/:id                     │
    │ ProtectedHandlers  │ /protected/profile, /protected/dashboard     │
    │ StatusHandlers     │ /api/status, /api/version                    │
    │ SPAFallbackHandler │ unmatched GETs (not a route; see Dispatcher) │
    └────────────────────┴──────────────────────────────────────────────┘

Handlers answer validation and not-found themselves with the failure
envelope. Anything they raise goes to the Dispatcher's 500 boundary.

=============================================================================
"""

from .general import GeneralHandlers, iso_now
from .users import UserHandlers
from .products import ProductHandlers
from .protected import ProtectedHandlers
from .status import StatusHandlers
from .static import SPAFallbackHandler

__all__ = [
    "GeneralHandlers",
    "iso_now",
    "UserHandlers",
    "ProductHandlers",
    "ProtectedHandlers",
    "StatusHandlers",
    "SPAFallbackHandler",
]
