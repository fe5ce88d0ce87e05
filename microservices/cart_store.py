"""
Cart persistence: one cart record per user id.

Both stores use compare-and-set on the cart's `version` so a save based on a
stale read raises CartConflictError instead of overwriting a newer cart.
"""
from typing import Dict, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import CartConflictError, StorageUnavailableError
from logging_config import get_logger
from schemas.cart_schemas import Cart

logger = get_logger(__name__)


class CartStore:
    async def get(self, user_id: str) -> Optional[Cart]:
        raise NotImplementedError

    async def get_or_create(self, user_id: str) -> Cart:
        raise NotImplementedError

    async def save(self, cart: Cart) -> Cart:
        raise NotImplementedError


class MongoCartStore(CartStore):
    def __init__(self, collection):
        self.collection = collection

    async def ensure_indexes(self):
        # the unique index is what keeps concurrent first loads from creating two carts
        try:
            await self.collection.create_index("user_id", unique=True)
        except PyMongoError as e:
            logger.error("Error creating cart indexes: %s", e)
            raise StorageUnavailableError("Cart storage is unavailable") from e

    async def get(self, user_id: str) -> Optional[Cart]:
        try:
            document = await self.collection.find_one({"user_id": user_id})
        except PyMongoError as e:
            logger.error("Error fetching cart for user %s: %s", user_id, e)
            raise StorageUnavailableError("Cart storage is unavailable") from e
        if document is None:
            return None
        document.pop("_id", None)
        return Cart.model_validate(document)

    async def get_or_create(self, user_id: str) -> Cart:
        cart = await self.get(user_id)
        if cart:
            return cart
        cart = Cart(user_id=user_id)
        try:
            await self.collection.insert_one(cart.model_dump())
        except DuplicateKeyError:
            # another request created it between our read and insert
            logger.info("Cart for user %s created concurrently, re-reading", user_id)
            existing = await self.get(user_id)
            if existing is None:
                raise CartConflictError("Cart was modified concurrently")
            return existing
        except PyMongoError as e:
            logger.error("Error creating cart for user %s: %s", user_id, e)
            raise StorageUnavailableError("Cart storage is unavailable") from e
        return cart

    async def save(self, cart: Cart) -> Cart:
        saved = cart.model_copy(update={"version": cart.version + 1})
        try:
            result = await self.collection.update_one(
                {"user_id": cart.user_id, "version": cart.version},
                {"$set": saved.model_dump()})
        except PyMongoError as e:
            logger.error("Error saving cart for user %s: %s", cart.user_id, e)
            raise StorageUnavailableError("Cart storage is unavailable") from e
        if not result.matched_count:
            raise CartConflictError("Cart was modified concurrently")
        return saved


class InMemoryCartStore(CartStore):
    # process-local store, used for development and tests
    def __init__(self):
        self.documents: Dict[str, dict] = {}

    async def get(self, user_id: str) -> Optional[Cart]:
        document = self.documents.get(user_id)
        if document is None:
            return None
        return Cart.model_validate(document)

    async def get_or_create(self, user_id: str) -> Cart:
        if user_id not in self.documents:
            self.documents[user_id] = Cart(user_id=user_id).model_dump()
        return await self.get(user_id)

    async def save(self, cart: Cart) -> Cart:
        current = self.documents.get(cart.user_id)
        stored_version = current["version"] if current else 0
        if stored_version != cart.version:
            raise CartConflictError("Cart was modified concurrently")
        saved = cart.model_copy(update={"version": cart.version + 1})
        self.documents[cart.user_id] = saved.model_dump()
        return saved
