import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from config import CART_CONFLICT_RETRIES
from errors import CartConflictError, CartNotFoundError
from logging_config import get_logger
from microservices.cart_microservice import (add_line, apply_totals, remove_line, validate_add_request,
                                              validate_quantity, validate_snapshot)
from microservices.cart_store import CartStore
from schemas.cart_schemas import Cart, utc_now

logger = get_logger(__name__)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self):
        return len(self._locks)


class CartService:
    """
    Read-modify-write operations on a user's cart.

    Mutations for one user run one at a time inside this process; a version
    conflict at save (another process won the race) is retried against a
    fresh read, up to `max_attempts` times.
    """

    def __init__(self, store: CartStore, max_attempts: int = CART_CONFLICT_RETRIES):
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.locks = KeyedLock()

    def _log_conflict(self, retry_state):
        logger.warning("Conflict saving cart (attempt %d/%d), retrying against a fresh read",
                       retry_state.attempt_number, self.max_attempts)

    async def _load(self, user_id: str, create: bool) -> Cart:
        if create:
            return await self.store.get_or_create(user_id)
        cart = await self.store.get(user_id)
        if cart is None:
            raise CartNotFoundError("Cart not found")
        return cart

    async def _mutate(self, user_id: str, change, create: bool = True) -> Cart:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(CartConflictError),
            stop=stop_after_attempt(self.max_attempts),
            before_sleep=self._log_conflict,
            reraise=True,
        )
        async with self.locks.hold(user_id):
            # a conflict anywhere from the read to the save restarts from a fresh read
            async for attempt in retrying:
                with attempt:
                    cart = await self._load(user_id, create)
                    now = utc_now()
                    change(cart, now)
                    apply_totals(cart, now)
                    saved = await self.store.save(cart)
        return saved

    async def get(self, user_id: str) -> Cart:
        return await self.store.get_or_create(user_id)

    async def count(self, user_id: str) -> int:
        # badge count, does not create a cart
        cart = await self.store.get(user_id)
        return cart.total_items if cart else 0

    async def add_item(self, user_id: str, product_id: int, name_en: Optional[str] = None,
                       name_ar: Optional[str] = None, price: Optional[float] = None,
                       image_url: Optional[str] = None, quantity: int = 1) -> Cart:
        snapshot = {"name_en": name_en, "name_ar": name_ar,
                    "price": price, "image_url": image_url}
        validate_add_request(product_id, quantity)
        # only an increment can go without the product fields, a new line is checked before any cart is created
        current = await self.store.get(user_id)
        if current is None or current.find_item(product_id) is None:
            validate_snapshot(snapshot)

        def change(cart, now):
            add_line(cart, product_id, quantity, snapshot, now)

        cart = await self._mutate(user_id, change)
        logger.debug("Added %d x product %s to cart of user %s", quantity, product_id, user_id)
        return cart

    async def remove_item(self, user_id: str, product_id: int) -> Cart:
        def change(cart, now):
            remove_line(cart, product_id)

        return await self._mutate(user_id, change, create=False)

    async def set_quantity(self, user_id: str, product_id: int, quantity: int) -> Cart:
        validate_quantity(quantity)

        def change(cart, now):
            if quantity <= 0:
                remove_line(cart, product_id)
                return
            item = cart.find_item(product_id)
            if item is None:
                raise CartNotFoundError("Item not found in cart")
            item.quantity = quantity

        return await self._mutate(user_id, change, create=False)

    async def clear(self, user_id: str) -> Cart:
        def change(cart, now):
            cart.items = []

        return await self._mutate(user_id, change, create=False)


__all__ = ["CartService", "KeyedLock"]
