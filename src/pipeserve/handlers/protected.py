"""
Endpoints behind AuthMiddleware.

Both read the Principal the auth stage stored on the request; reaching
them without one means the route was registered outside the protected
group, which is a wiring bug and surfaces as a 500.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, success
from ..middleware.auth import PRINCIPAL_KEY, Principal
from ..stores.base import ProductStore, UserStore


class ProtectedHandlers:
    def __init__(self, users: UserStore, products: ProductStore):
        self.users = users
        self.products = products

    def profile(self, request: HTTPRequest) -> HTTPResponse:
        principal: Principal = request.context[PRINCIPAL_KEY]
        return success({
            "id": principal.claims.get("id"),
            "username": principal.claims.get("username", principal.subject),
            "role": principal.roles[0] if principal.roles else None,
        })

    def dashboard(self, request: HTTPRequest) -> HTTPResponse:
        return success({
            "stats": {
                "users": self.users.count(),
                "products": self.products.count(),
            },
        })
