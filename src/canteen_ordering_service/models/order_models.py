"""Order lifecycle models.

An order holds a snapshot of the menu lines it was placed with. Lines are
copied from the catalog at creation time and never re-read, so later menu
edits or deletions do not change historical orders.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from canteen_ordering_service.models.common import (
    CAMEL_CASE_CONFIG,
    Money,
    from_storage_timestamp,
    to_storage_timestamp,
)
from canteen_ordering_service.models.user_models import UserSummary


class OrderStatus(str, Enum):
    """Order status values in lifecycle order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERY = "delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Delivered and cancelled orders accept no further transitions."""
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check whether ``target`` is reachable from this status.

        Forward moves along the fulfilment chain may skip steps, cancellation
        is allowed from any non-terminal status, and re-applying the current
        non-terminal status is a no-op. Terminal statuses are locked.

        Args:
            target: Requested status

        Returns:
            bool: True if the transition is allowed
        """
        if self.is_terminal:
            return False
        if target is OrderStatus.CANCELLED or target is self:
            return True
        return FULFILMENT_CHAIN.index(target) > FULFILMENT_CHAIN.index(self)


FULFILMENT_CHAIN = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERY,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Statuses counted as "pending" on the admin dashboard
OPEN_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING})


class PaymentStatus(str, Enum):
    """Payment state of an order."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """How the order is paid. Only cash is processed."""

    CASH = "cash"
    ONLINE = "online"


class OrderLine(BaseModel):
    """Snapshot of one menu item within an order."""

    model_config = CAMEL_CASE_CONFIG

    menu_item_id: str
    name: str
    price: Money = Field(..., ge=0, description="Unit price at order time")
    quantity: int = Field(..., ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dynamodb_item(self) -> dict[str, Any]:
        return {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "OrderLine":
        return cls(
            menu_item_id=item["menu_item_id"],
            name=item["name"],
            price=Decimal(str(item["price"])),
            quantity=int(item["quantity"]),
        )


class Order(BaseModel):
    """Persisted order.

    The item list and total are fixed at creation; only ``status``,
    ``payment_status`` and ``updated_at`` change afterwards.
    """

    model_config = CAMEL_CASE_CONFIG

    order_id: str = Field(..., description="Unique order identifier")
    user_id: str
    items: list[OrderLine] = Field(..., min_length=1)
    total_amount: Money = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.CASH
    special_instructions: str | None = Field(None, max_length=500)
    room_number: str | None = Field(None, max_length=50)
    created_at: datetime
    updated_at: datetime

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "order_id": self.order_id,
            "user_id": self.user_id,
            "items": [line.to_dynamodb_item() for line in self.items],
            "total_amount": self.total_amount,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method.value,
            "created_at": to_storage_timestamp(self.created_at),
            "updated_at": to_storage_timestamp(self.updated_at),
        }

        if self.special_instructions is not None:
            item["special_instructions"] = self.special_instructions

        if self.room_number is not None:
            item["room_number"] = self.room_number

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Order":
        """Create Order from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Order: Parsed model instance
        """
        return cls(
            order_id=item["order_id"],
            user_id=item["user_id"],
            items=[OrderLine.from_dynamodb_item(line) for line in item["items"]],
            total_amount=Decimal(str(item["total_amount"])),
            status=OrderStatus(item["status"]),
            payment_status=PaymentStatus(item.get("payment_status", "pending")),
            payment_method=PaymentMethod(item.get("payment_method", "cash")),
            special_instructions=item.get("special_instructions"),
            room_number=item.get("room_number"),
            created_at=from_storage_timestamp(item["created_at"]),
            updated_at=from_storage_timestamp(item["updated_at"]),
        )


class OrderLineRequest(BaseModel):
    """Cart line submitted by the storefront.

    ``name`` and ``price`` are accepted for compatibility with existing
    clients but the stored snapshot is always taken from the catalog.
    """

    model_config = CAMEL_CASE_CONFIG

    menu_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    name: str | None = None
    price: Decimal | None = Field(None, ge=0)


class OrderCreateRequest(BaseModel):
    """Body of ``POST /api/orders``."""

    model_config = CAMEL_CASE_CONFIG

    user_id: str = Field(..., min_length=1)
    items: list[OrderLineRequest]
    total_amount: Decimal | None = Field(None, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    special_instructions: str | None = Field(None, max_length=500)
    room_number: str | None = Field(None, max_length=50)

    @field_validator("special_instructions", "room_number")
    @classmethod
    def strip_blank(cls, v: str | None) -> str | None:
        """Treat whitespace-only text as absent."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class StatusUpdateRequest(BaseModel):
    """Body of ``PATCH /api/orders/{id}/status``.

    The status is kept as a raw string so unknown tokens reach the service
    and are reported as validation errors with the order untouched.
    """

    status: str


class OrderLineView(OrderLine):
    """Order line with the current catalog image, for display only."""

    image: str | None = None


class OrderView(BaseModel):
    """Read projection of an order with the owning user joined."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    user_id: str
    user: UserSummary | None = None
    items: list[OrderLineView]
    total_amount: Money
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    special_instructions: str | None = None
    room_number: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(
        cls,
        order: Order,
        user: UserSummary | None = None,
        images: dict[str, str | None] | None = None,
    ) -> "OrderView":
        """Build the projection.

        Args:
            order: Stored order
            user: Joined user details, if the user still exists
            images: Optional mapping of menu item id to current image path

        Returns:
            OrderView: Display model
        """
        images = images or {}
        return cls(
            id=order.order_id,
            user_id=order.user_id,
            user=user,
            items=[
                OrderLineView(**line.model_dump(), image=images.get(line.menu_item_id))
                for line in order.items
            ],
            total_amount=order.total_amount,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            special_instructions=order.special_instructions,
            room_number=order.room_number,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderStats(BaseModel):
    """Dashboard counters."""

    model_config = CAMEL_CASE_CONFIG

    orders_today: int
    revenue_today: Money
    pending_count: int
    total_orders: int
    total_menu_items: int


class MonthlyRevenue(BaseModel):
    month: str = Field(..., description="Calendar month as YYYY-MM")
    revenue: Money


class CategoryCount(BaseModel):
    category: str
    orders: int


class WeekdayCount(BaseModel):
    day: str = Field(..., description="Short weekday label, e.g. Mon")
    orders: int


class TopItem(BaseModel):
    model_config = CAMEL_CASE_CONFIG

    menu_item_id: str
    name: str
    quantity: int
    revenue: Money


class OrderAnalytics(BaseModel):
    """Aggregates for the analytics page, recomputed on every request."""

    model_config = CAMEL_CASE_CONFIG

    monthly_revenue: list[MonthlyRevenue]
    category_counts: list[CategoryCount]
    weekday_counts: list[WeekdayCount]
    top_items: list[TopItem]
