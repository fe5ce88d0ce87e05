from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple

from errors import CartValidationError
from schemas.cart_schemas import Cart, CartItem


SNAPSHOT_FIELDS = ("name_en", "name_ar", "price", "image_url")
CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    # str() keeps 0.1 as 0.1 instead of its binary float expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


def aggregate(items: Iterable) -> Tuple[int, float]:
    # returns (total_items, total_price) for any items carrying price and quantity
    total_items = 0
    total_price = Decimal("0")
    for item in items:
        total_items += item.quantity
        total_price += to_decimal(item.price) * item.quantity
    return total_items, float(total_price.quantize(CENTS, rounding=ROUND_HALF_UP))


def apply_totals(cart: Cart, now) -> Cart:
    # recompute the derived fields after any change to cart.items
    cart.total_items, cart.total_price = aggregate(cart.items)
    cart.last_updated = now
    return cart


def validate_quantity(quantity):
    # bool is an int subclass, reject it explicitly
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise CartValidationError("Quantity must be a whole number")
    return quantity


def validate_add_request(product_id, quantity):
    if product_id is None:
        raise CartValidationError("Product id is required")
    validate_quantity(quantity)
    if quantity < 1:
        raise CartValidationError("Quantity must be greater than zero")


def missing_snapshot_fields(data: dict):
    missing = []
    for field in SNAPSHOT_FIELDS:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


def validate_snapshot(data: dict):
    # the product fields a brand-new line is created from
    missing = missing_snapshot_fields(data)
    if missing:
        raise CartValidationError(f"Field {missing[0]} is required")
    if data["price"] < 0:
        raise CartValidationError("Price must not be negative")


def add_line(cart: Cart, product_id, quantity, data: dict, now) -> CartItem:
    # increments an existing line, or appends a new one from the product snapshot
    validate_add_request(product_id, quantity)
    existing = cart.find_item(product_id)
    if existing:
        existing.quantity += quantity
        return existing
    validate_snapshot(data)
    item = CartItem(
        product_id=product_id,
        name_en=data["name_en"],
        name_ar=data["name_ar"],
        price=data["price"],
        image_url=data["image_url"],
        quantity=quantity,
        added_at=now,
    )
    cart.items.append(item)
    return item


def remove_line(cart: Cart, product_id) -> bool:
    remaining = [item for item in cart.items if item.product_id != product_id]
    removed = len(remaining) != len(cart.items)
    cart.items = remaining
    return removed
