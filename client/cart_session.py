"""
Client-side cart that follows the shopper across login and logout.

While anonymous every change is written to the device-local cache. `login`
is the only place the session becomes authenticated: it hands the local
cart to the server for merging, clears it, and from then on every change
goes to the server.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import httpx

from client.cart_api import CartApiClient
from errors import CartNotFoundError, MergeAbortedError
from logging_config import get_logger
from microservices.cart_microservice import (aggregate, validate_add_request, validate_quantity,
                                              validate_snapshot)
from microservices.local_cart import LocalCartCache
from schemas.cart_schemas import Cart, LocalCartEntry, MergeReport

logger = get_logger(__name__)


@dataclass
class AnonymousCart:
    local: LocalCartCache


@dataclass
class AuthenticatedCart:
    api: CartApiClient
    cart: Cart


CartState = Union[AnonymousCart, AuthenticatedCart]


class CartSession:
    def __init__(self, http: httpx.AsyncClient, local_cache: Optional[LocalCartCache] = None):
        self.http = http
        self.local_cache = local_cache if local_cache is not None else LocalCartCache()
        self.state: CartState = AnonymousCart(self.local_cache)
        self.last_report: Optional[MergeReport] = None

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self.state, AuthenticatedCart)

    def items(self) -> List:
        if isinstance(self.state, AuthenticatedCart):
            return list(self.state.cart.items)
        return self.state.local.load()

    def totals(self) -> Tuple[int, float]:
        if isinstance(self.state, AuthenticatedCart):
            return self.state.cart.total_items, self.state.cart.total_price
        # local entries carry no totals, skip anything that could not be priced
        entries = [entry for entry in self.state.local.load()
                   if entry.price is not None and entry.quantity and entry.quantity > 0]
        return aggregate(entries)

    async def add_item(self, product_id: int, name_en: Optional[str] = None, name_ar: Optional[str] = None,
                       price: Optional[float] = None, image_url: Optional[str] = None, quantity: int = 1):
        if isinstance(self.state, AuthenticatedCart):
            self.state.cart = await self.state.api.add_item(
                product_id, name_en=name_en, name_ar=name_ar, price=price,
                image_url=image_url, quantity=quantity)
            return self.items()
        validate_add_request(product_id, quantity)
        entries = self.state.local.load()
        existing = next((entry for entry in entries if entry.product_id == product_id), None)
        if existing:
            existing.quantity = (existing.quantity or 0) + quantity
        else:
            snapshot = {"name_en": name_en, "name_ar": name_ar, "price": price, "image_url": image_url}
            validate_snapshot(snapshot)
            entries.append(LocalCartEntry(product_id=product_id, quantity=quantity, **snapshot))
        self.state.local.save(entries)
        return entries

    async def remove_item(self, product_id: int):
        if isinstance(self.state, AuthenticatedCart):
            self.state.cart = await self.state.api.remove_item(product_id)
            return self.items()
        entries = [entry for entry in self.state.local.load() if entry.product_id != product_id]
        self.state.local.save(entries)
        return entries

    async def set_quantity(self, product_id: int, quantity: int):
        validate_quantity(quantity)
        if isinstance(self.state, AuthenticatedCart):
            self.state.cart = await self.state.api.set_quantity(product_id, quantity)
            return self.items()
        if quantity <= 0:
            return await self.remove_item(product_id)
        entries = self.state.local.load()
        existing = next((entry for entry in entries if entry.product_id == product_id), None)
        if existing is None:
            raise CartNotFoundError("Item not found in cart")
        existing.quantity = quantity
        self.state.local.save(entries)
        return entries

    async def clear(self):
        if isinstance(self.state, AuthenticatedCart):
            self.state.cart = await self.state.api.clear()
        else:
            self.state.local.clear()
        return self.items()

    async def refresh(self):
        if isinstance(self.state, AuthenticatedCart):
            self.state.cart = await self.state.api.get_cart()
        return self.items()

    async def login(self, access_token: str) -> Cart:
        if isinstance(self.state, AuthenticatedCart):
            logger.info("Session already authenticated, refreshing cart")
            self.state.cart = await self.state.api.get_cart()
            return self.state.cart
        api = CartApiClient(self.http, access_token)
        # the raw snapshot goes up as stored, the server reports entries it cannot use
        entries = self.local_cache.load_raw()
        if entries:
            try:
                cart, self.last_report = await api.save_local_cart(entries)
            except MergeAbortedError as e:
                # keep only what the server did not take, so a retry cannot double-add
                self.local_cache.save(e.remaining)
                raise
            self.local_cache.clear()
            if self.last_report.skipped:
                logger.warning("%d local cart item(s) could not be merged", len(self.last_report.skipped))
        else:
            cart = await api.get_cart()
        self.state = AuthenticatedCart(api=api, cart=cart)
        return cart

    def logout(self):
        self.state = AnonymousCart(self.local_cache)
