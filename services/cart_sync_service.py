from dataclasses import dataclass
from typing import Iterable

from errors import CartError, CartValidationError, MergeAbortedError
from logging_config import get_logger
from microservices.local_cart import LocalCartCache, parse_entry
from schemas.cart_schemas import Cart, MergeReport, SkippedEntry
from services.cart_service import CartService

logger = get_logger(__name__)


@dataclass
class SyncResult:
    cart: Cart
    report: MergeReport


class CartSyncService:
    """
    Merges an anonymous local cart into a user's server cart when they log in.

    Quantities of the same product add together. Every entry goes through
    CartService.add_item on its own, so the merge as a whole is not atomic:
    a malformed entry is skipped and reported, while a storage failure or an
    exhausted conflict stops the merge and leaves the unmerged entries in the
    local cache. A completed merge clears the local cache, so calling this
    again afterwards changes nothing.
    """

    def __init__(self, cart_service: CartService):
        self.cart_service = cart_service

    async def reconcile(self, user_id: str, local_cache: LocalCartCache) -> SyncResult:
        snapshot = local_cache.load_raw()
        report = MergeReport()
        for index, value in enumerate(snapshot):
            try:
                entry = parse_entry(value)
            except CartValidationError as e:
                self._skip(report, user_id, index, value.get("product_id") if isinstance(value, dict) else None, e)
                continue
            if entry.product_id is None or not entry.quantity or entry.quantity <= 0:
                report.ignored += 1
                continue
            try:
                await self.cart_service.add_item(
                    user_id,
                    entry.product_id,
                    name_en=entry.name_en,
                    name_ar=entry.name_ar,
                    price=entry.price,
                    image_url=entry.image_url,
                    quantity=entry.quantity,
                )
            except CartValidationError as e:
                self._skip(report, user_id, index, entry.product_id, e)
                continue
            except CartError as e:
                remaining = snapshot[index:]
                local_cache.save(remaining)
                logger.error("Cart merge for user %s stopped after %d item(s): %s",
                             user_id, report.merged, e.message)
                raise MergeAbortedError(e, report.merged, remaining) from e
            report.merged += 1
        local_cache.clear()
        if snapshot:
            logger.info("Merged %d local cart item(s) for user %s (%d skipped, %d ignored)",
                        report.merged, user_id, len(report.skipped), report.ignored)
        cart = await self.cart_service.get(user_id)
        return SyncResult(cart=cart, report=report)

    def _skip(self, report: MergeReport, user_id: str, index: int, product_id, error: CartValidationError):
        logger.warning("Skipping local cart entry %d for user %s: %s", index, user_id, error.message)
        report.skipped.append(SkippedEntry(
            index=index,
            product_id=product_id if isinstance(product_id, int) and not isinstance(product_id, bool) else None,
            reason=error.message,
        ))

    async def reconcile_snapshot(self, user_id: str, entries: Iterable) -> SyncResult:
        # entries are validated one by one, so a malformed one cannot reject the others
        return await self.reconcile(user_id, LocalCartCache.from_entries(entries))
