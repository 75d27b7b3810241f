"""Menu catalog models.

Menu items are either regular items with a fixed price or special offers
whose price is derived from an original price and a discount percentage.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from canteen_ordering_service.errors import ValidationError
from canteen_ordering_service.models.common import (
    CAMEL_CASE_CONFIG,
    Money,
    from_storage_timestamp,
    to_storage_timestamp,
)

SPECIAL_FIELDS = (
    "original_price",
    "discount_percentage",
    "special_badge",
    "special_description",
    "valid_until",
)


class MenuCategory(str, Enum):
    """Menu sections shown in the storefront."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACKS = "snacks"
    BEVERAGES = "beverages"


class SpecialBadge(str, Enum):
    """Badge rendered on a special offer card."""

    HOT = "hot"
    LIMITED = "limited"
    NEW = "new"
    BESTSELLER = "bestseller"
    COMBO = "combo"


def compute_discounted_price(original_price: Decimal, discount_percentage: int | Decimal) -> Decimal:
    """Compute the final price of a special offer.

    The result is rounded half-up to a whole currency unit.

    Args:
        original_price: Price before the discount, must be positive
        discount_percentage: Discount in percent, inclusive range 1-100

    Returns:
        Decimal: Discounted price with no fractional part

    Raises:
        ValidationError: If either input is out of range
    """
    original = Decimal(str(original_price))
    percentage = Decimal(str(discount_percentage))

    if original <= 0:
        raise ValidationError("Original price must be greater than 0")
    if percentage < 1 or percentage > 100:
        raise ValidationError("Discount percentage must be between 1 and 100")

    discounted = original - original * percentage / 100
    return discounted.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


class MenuItem(BaseModel):
    """Menu item as stored in the catalog."""

    model_config = CAMEL_CASE_CONFIG

    id: str = Field(..., description="Unique identifier for the menu item")
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    category: MenuCategory
    price: Money = Field(..., ge=0, description="Price charged for one unit")
    image: str | None = Field(None, description="Relative path of the uploaded image")
    available: bool = True
    is_special: bool = False
    original_price: Money | None = Field(None, gt=0)
    discount_percentage: int | None = Field(None, ge=1, le=100)
    special_badge: SpecialBadge | None = None
    special_description: str | None = Field(None, max_length=200)
    valid_until: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def check_special_fields(self) -> "MenuItem":
        """Enforce the special-offer invariants."""
        if self.is_special:
            if self.original_price is None or self.discount_percentage is None:
                raise ValueError("special items need original_price and discount_percentage")
            expected = compute_discounted_price(self.original_price, self.discount_percentage)
            if self.price != expected:
                raise ValueError(f"special item price must be {expected}")
        else:
            for field in SPECIAL_FIELDS:
                if getattr(self, field) is not None:
                    raise ValueError(f"{field} is only allowed on special items")
        return self

    def is_offer_active(self, now: datetime) -> bool:
        """Whether this item is a special offer that has not expired.

        Args:
            now: Current time (timezone-aware)

        Returns:
            bool: True if special and valid_until is unset or not yet passed
        """
        if not self.is_special:
            return False
        return self.valid_until is None or self.valid_until >= now

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "price": self.price,
            "available": self.available,
            "is_special": self.is_special,
            "created_at": to_storage_timestamp(self.created_at),
            "updated_at": to_storage_timestamp(self.updated_at),
        }

        if self.image is not None:
            item["image"] = self.image

        if self.is_special:
            item["original_price"] = self.original_price
            item["discount_percentage"] = self.discount_percentage
            if self.special_badge is not None:
                item["special_badge"] = self.special_badge.value
            if self.special_description is not None:
                item["special_description"] = self.special_description
            if self.valid_until is not None:
                item["valid_until"] = to_storage_timestamp(self.valid_until)

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "MenuItem":
        """Create MenuItem from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            MenuItem: Parsed model instance
        """
        data: dict[str, Any] = {
            "id": item["id"],
            "name": item["name"],
            "description": item["description"],
            "category": MenuCategory(item["category"]),
            "price": Decimal(str(item["price"])),
            "image": item.get("image"),
            "available": item.get("available", True),
            "is_special": item.get("is_special", False),
            "created_at": from_storage_timestamp(item["created_at"]),
            "updated_at": from_storage_timestamp(item["updated_at"]),
        }

        if data["is_special"]:
            data["original_price"] = Decimal(str(item["original_price"]))
            data["discount_percentage"] = int(item["discount_percentage"])
            if "special_badge" in item:
                data["special_badge"] = SpecialBadge(item["special_badge"])
            if "special_description" in item:
                data["special_description"] = item["special_description"]
            if "valid_until" in item:
                data["valid_until"] = from_storage_timestamp(item["valid_until"])

        return cls(**data)


class MenuItemCreate(BaseModel):
    """Fields accepted when creating a menu item."""

    model_config = CAMEL_CASE_CONFIG

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    category: MenuCategory
    price: Decimal | None = Field(None, gt=0)
    available: bool = True
    is_special: bool = False
    original_price: Decimal | None = Field(None, gt=0)
    discount_percentage: int | None = Field(None, ge=1, le=100)
    special_badge: SpecialBadge | None = None
    special_description: str | None = Field(None, max_length=200)
    valid_until: datetime | None = None


class MenuItemUpdate(BaseModel):
    """Partial update of a menu item; unset fields are left unchanged."""

    model_config = CAMEL_CASE_CONFIG

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, min_length=1, max_length=500)
    category: MenuCategory | None = None
    price: Decimal | None = Field(None, gt=0)
    available: bool | None = None
    is_special: bool | None = None
    original_price: Decimal | None = Field(None, gt=0)
    discount_percentage: int | None = Field(None, ge=1, le=100)
    special_badge: SpecialBadge | None = None
    special_description: str | None = Field(None, max_length=200)
    valid_until: datetime | None = None


class MenuItemFilter(BaseModel):
    """Criteria for listing menu items. Unset criteria match everything."""

    category: MenuCategory | None = None
    available: bool | None = None
    special_only: bool = False
    search: str | None = None

    def matches(self, item: MenuItem) -> bool:
        """Check a menu item against every criterion."""
        if self.category is not None and item.category != self.category:
            return False
        if self.available is not None and item.available != self.available:
            return False
        if self.special_only and not item.is_special:
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in item.name.lower() and needle not in item.description.lower():
                return False
        return True


class AvailabilityUpdate(BaseModel):
    """Body of the availability toggle endpoint."""

    available: bool
