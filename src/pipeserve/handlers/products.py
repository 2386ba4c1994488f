"""Product catalogue endpoints: GET /products and GET /products/:id."""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, not_found, success
from ..stores.base import ProductStore
from .users import parse_id


PRODUCT_NOT_FOUND = "产品不存在"


class ProductHandlers:
    def __init__(self, store: ProductStore):
        self.store = store

    def list_products(self, request: HTTPRequest) -> HTTPResponse:
        products = self.store.list_products()
        return success([p.to_dict() for p in products], total=len(products))

    def get_product(self, request: HTTPRequest) -> HTTPResponse:
        product_id = parse_id(request.path_params.get("id"))
        product = self.store.get_product(product_id) if product_id is not None else None
        if product is None:
            return not_found(PRODUCT_NOT_FOUND)
        return success(product.to_dict())
