"""Menu catalog service: menu item management and special-offer pricing."""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from canteen_ordering_service.errors import NotFoundError, ValidationError
from canteen_ordering_service.models.menu_models import (
    SPECIAL_FIELDS,
    MenuItem,
    MenuItemCreate,
    MenuItemFilter,
    MenuItemUpdate,
    compute_discounted_price,
)
from canteen_ordering_service.observability import traced
from canteen_ordering_service.observability.metrics import record_menu_item_change
from canteen_ordering_service.repositories.menu_repository import MenuItemRepository
from canteen_ordering_service.services.image_store import ImageStore, ImageUpload

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _normalize_datetime(value: datetime | None) -> datetime | None:
    """Make a datetime timezone-aware, reading naive values as server-local time."""
    if value is None or value.tzinfo is not None:
        return value
    return value.astimezone()


def invalid_item_message(error: PydanticValidationError) -> str:
    """Describe the first problem pydantic found with an assembled menu item."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"])
    if field:
        return f"Invalid menu item {field}: {first['msg']}"
    return f"Invalid menu item: {first['msg']}"


def resolve_pricing(
    is_special: bool,
    price: Decimal | None,
    original_price: Decimal | None,
    discount_percentage: int | None,
) -> Decimal:
    """Determine the price a menu item is sold at.

    Special items always derive their price from the original price and the
    discount; any submitted price is ignored for them.

    Raises:
        ValidationError: If the fields needed for the price are missing
    """
    if is_special:
        if original_price is None or discount_percentage is None:
            raise ValidationError(
                "Special items require both originalPrice and discountPercentage"
            )
        return compute_discounted_price(original_price, discount_percentage)

    if price is None:
        raise ValidationError("Please provide a price")
    return price


class MenuService:
    """Service owning menu item records and their pricing.

    Uploaded images are written before the record; if persisting the record
    fails the new file is removed again so no orphaned images are left.
    """

    def __init__(
        self,
        menu_repository: MenuItemRepository,
        image_store: ImageStore,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the MenuService.

        Args:
            menu_repository: Repository for menu item records
            image_store: Storage for uploaded images
            clock: Returns the current timezone-aware time
        """
        self.menu_repository = menu_repository
        self.image_store = image_store
        self.clock = clock

    @traced("menu.create_item")
    async def create_item(self, payload: MenuItemCreate, image: ImageUpload | None = None) -> MenuItem:
        """Create a menu item.

        Args:
            payload: Item fields
            image: Optional uploaded image

        Returns:
            The created MenuItem

        Raises:
            ValidationError: If required or special-offer fields are missing
        """
        price = resolve_pricing(
            payload.is_special, payload.price, payload.original_price, payload.discount_percentage
        )

        special: dict[str, Any] = {}
        if payload.is_special:
            special = {
                "original_price": payload.original_price,
                "discount_percentage": payload.discount_percentage,
                "special_badge": payload.special_badge,
                "special_description": payload.special_description,
                "valid_until": _normalize_datetime(payload.valid_until),
            }

        image_path = self.image_store.save(image) if image is not None else None
        now = self.clock()

        try:
            item = MenuItem(
                id=f"item_{uuid.uuid4().hex[:12]}",
                name=payload.name,
                description=payload.description,
                category=payload.category,
                price=price,
                image=image_path,
                available=payload.available,
                is_special=payload.is_special,
                created_at=now,
                updated_at=now,
                **special,
            )
            self.menu_repository.save_item(item)
        except PydanticValidationError as e:
            self.image_store.delete(image_path)
            raise ValidationError(invalid_item_message(e)) from e
        except Exception:
            self.image_store.delete(image_path)
            raise

        record_menu_item_change("create")
        logger.info(f"Created menu item {item.id} ({item.name})")
        return item

    @traced("menu.update_item")
    async def update_item(
        self, item_id: str, payload: MenuItemUpdate, image: ImageUpload | None = None
    ) -> MenuItem:
        """Apply a partial update to a menu item.

        Only fields explicitly set on ``payload`` change. Turning the special
        flag off clears every special-offer field and keeps the current price
        unless a new one is given; while the item is special its price is
        recomputed from the original price and discount.

        Args:
            item_id: Menu item to update
            payload: Fields to change
            image: Optional replacement image

        Returns:
            The updated MenuItem

        Raises:
            NotFoundError: If the item does not exist
            ValidationError: If the result would be an incomplete special offer
        """
        existing = self.menu_repository.get_item(item_id)
        if existing is None:
            raise NotFoundError("Menu item not found")

        changes = payload.model_dump(exclude_unset=True)
        if changes.get("is_special") is None:
            changes.pop("is_special", None)

        data = existing.model_dump()
        data.update(changes)

        if data["is_special"]:
            data["price"] = resolve_pricing(
                True, None, data["original_price"], data["discount_percentage"]
            )
            data["valid_until"] = _normalize_datetime(data["valid_until"])
        else:
            for field in SPECIAL_FIELDS:
                data[field] = None

        new_image_path = self.image_store.save(image) if image is not None else None
        if new_image_path is not None:
            data["image"] = new_image_path
        data["updated_at"] = self.clock()

        try:
            updated = MenuItem(**data)
            self.menu_repository.save_item(updated)
        except PydanticValidationError as e:
            self.image_store.delete(new_image_path)
            raise ValidationError(invalid_item_message(e)) from e
        except Exception:
            self.image_store.delete(new_image_path)
            raise

        if new_image_path is not None and existing.image:
            self.image_store.delete(existing.image)

        record_menu_item_change("update")
        logger.info(f"Updated menu item {item_id}")
        return updated

    @traced("menu.set_availability")
    async def set_availability(self, item_id: str, available: bool) -> MenuItem:
        """Toggle whether an item can be ordered.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.menu_repository.update_availability(item_id, available, self.clock())
        if item is None:
            raise NotFoundError("Menu item not found")

        record_menu_item_change("availability")
        logger.info(f"Menu item {item_id} availability set to {available}")
        return item

    @traced("menu.delete_item")
    async def delete_item(self, item_id: str) -> None:
        """Delete a menu item and its image.

        Orders keep their own copy of the item's name and price, so deleting
        an item never changes existing orders.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.menu_repository.get_item(item_id)
        if item is None or not self.menu_repository.delete_item(item_id):
            raise NotFoundError("Menu item not found")

        self.image_store.delete(item.image)

        record_menu_item_change("delete")
        logger.info(f"Deleted menu item {item_id}")

    async def get_item(self, item_id: str) -> MenuItem:
        """Get a single menu item.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.menu_repository.get_item(item_id)
        if item is None:
            raise NotFoundError("Menu item not found")
        return item

    @traced("menu.list_items")
    async def list_items(self, item_filter: MenuItemFilter | None = None) -> list[MenuItem]:
        """List menu items matching a filter.

        Args:
            item_filter: Criteria; None lists everything

        Returns:
            Matching items, special items first, then newest first
        """
        item_filter = item_filter or MenuItemFilter()
        items = [item for item in self.menu_repository.iter_items() if item_filter.matches(item)]

        items.sort(key=lambda item: item.created_at, reverse=True)
        items.sort(key=lambda item: not item.is_special)
        return items

    async def list_active_specials(self, now: datetime | None = None) -> list[MenuItem]:
        """List special offers that have not expired.

        Args:
            now: Reference time (defaults to the service clock)

        Returns:
            Special items whose valid_until is unset or not before ``now``
        """
        now = now or self.clock()
        specials = await self.list_items(MenuItemFilter(special_only=True))
        return [item for item in specials if item.is_offer_active(now)]

    async def get_items(self, item_ids: Iterable[str]) -> dict[str, MenuItem]:
        """Batch lookup of menu items by ID; missing IDs are absent from the result."""
        return self.menu_repository.get_items(item_ids)

    async def count_items(self) -> int:
        return self.menu_repository.count_items()
