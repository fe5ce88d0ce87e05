from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Any, List, Optional


def utc_now():
    return datetime.now(timezone.utc)


class CartItem(BaseModel):
    # name, price and image are copied from the catalog when the line is first added
    product_id: int
    name_en: str = Field(..., min_length=1)
    name_ar: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    image_url: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    added_at: datetime = Field(default_factory=utc_now)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = []
    total_items: int = 0
    total_price: float = 0
    last_updated: datetime = Field(default_factory=utc_now)
    version: int = 0

    def find_item(self, product_id: int) -> Optional[CartItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    def to_response(self):
        # version is a storage detail
        return self.model_dump(mode="json", exclude={"version"})


class LocalCartEntry(BaseModel):
    # entries saved on a device before login, possibly by an older client
    product_id: Optional[int] = None
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    price: Optional[float] = None
    image_url: Optional[str] = None
    quantity: Optional[int] = 1


class AddCartItemSchema(BaseModel):
    product_id: int
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    price: Optional[float] = None
    image_url: Optional[str] = None
    quantity: int = 1


class RemoveCartItemSchema(BaseModel):
    product_id: int


class UpdateCartItemSchema(BaseModel):
    product_id: int
    quantity: int


class SaveLocalCart(BaseModel):
    # entries are checked one at a time during the merge
    local_cart: List[Any] = []


class SkippedEntry(BaseModel):
    index: int
    product_id: Optional[int] = None
    reason: str


class MergeReport(BaseModel):
    merged: int = 0
    ignored: int = 0
    skipped: List[SkippedEntry] = []


__all__ = ["CartItem", "Cart", "LocalCartEntry", "AddCartItemSchema", "RemoveCartItemSchema",
           "UpdateCartItemSchema", "SaveLocalCart", "SkippedEntry", "MergeReport", "utc_now"]
