from typing import List, Tuple

import httpx

from errors import (CartConflictError, CartError, CartNotFoundError, CartValidationError,
                    MergeAbortedError, StorageUnavailableError)
from microservices.local_cart import dump_entries
from schemas.cart_schemas import Cart, MergeReport

ERRORS_BY_STATUS = {
    400: CartValidationError,
    404: CartNotFoundError,
    409: CartConflictError,
    422: CartValidationError,
    503: StorageUnavailableError,
}


def error_from_response(status_code: int, data: dict) -> CartError:
    # rebuilds the server-side error kind from a failure response
    message = data.get("message") or str(data.get("detail") or "Cart request failed")
    error_class = ERRORS_BY_STATUS.get(status_code, CartError)
    # a merge abort carries the message of the error that stopped it separately
    error = error_class(data.get("cause") or message)
    error.status_code = status_code
    if "merged" in data:
        return MergeAbortedError(error, data["merged"], data.get("remaining") or [])
    return error


class CartApiClient:
    """Calls the /cart routes on behalf of one logged-in user."""

    def __init__(self, http: httpx.AsyncClient, access_token: str):
        self.http = http
        self.headers = {"Authorization": f"Bearer {access_token}"}

    async def _call(self, method: str, path: str, json=None) -> dict:
        try:
            response = await self.http.request(method, f"/cart/{path}", json=json, headers=self.headers)
        except httpx.HTTPError as e:
            raise StorageUnavailableError(f"Cart server is unreachable: {e}") from e
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_success:
            return data
        raise error_from_response(response.status_code, data)

    async def get_cart(self) -> Cart:
        data = await self._call("GET", "get-cart")
        return Cart.model_validate(data["cart"])

    async def count(self) -> int:
        data = await self._call("GET", "cart-count")
        return data["count"]

    async def add_item(self, product_id: int, name_en=None, name_ar=None, price=None,
                       image_url=None, quantity: int = 1) -> Cart:
        data = await self._call("POST", "add-cart-item", json={
            "product_id": product_id, "name_en": name_en, "name_ar": name_ar,
            "price": price, "image_url": image_url, "quantity": quantity})
        return Cart.model_validate(data["cart"])

    async def remove_item(self, product_id: int) -> Cart:
        data = await self._call("POST", "delete-cart-item", json={"product_id": product_id})
        return Cart.model_validate(data["cart"])

    async def set_quantity(self, product_id: int, quantity: int) -> Cart:
        data = await self._call("POST", "update-cart-item",
                                json={"product_id": product_id, "quantity": quantity})
        return Cart.model_validate(data["cart"])

    async def clear(self) -> Cart:
        data = await self._call("POST", "clear-cart")
        return Cart.model_validate(data["cart"])

    async def save_local_cart(self, entries: List) -> Tuple[Cart, MergeReport]:
        data = await self._call("POST", "save-local-cart",
                                json={"local_cart": dump_entries(entries)})
        return Cart.model_validate(data["cart"]), MergeReport.model_validate(data["report"])
