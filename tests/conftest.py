"""Shared pytest fixtures and configuration for all tests."""

import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

# Entry-point modules skip building the real application in test mode
os.environ.setdefault("ENVIRONMENT", "test")

from canteen_ordering_service.models.menu_models import MenuCategory, MenuItem  # noqa: E402
from canteen_ordering_service.models.order_models import (  # noqa: E402
    Order,
    OrderLine,
    OrderStatus,
)
from canteen_ordering_service.models.user_models import UserRecord, UserRole  # noqa: E402

# Server-local timezone used by order service tests (IST)
LOCAL_TZ = timezone(timedelta(hours=5, minutes=30))


@pytest.fixture
def local_now() -> datetime:
    """Fixture providing a fixed local time: Wednesday 2024-03-13 14:30 IST."""
    return datetime(2024, 3, 13, 14, 30, tzinfo=LOCAL_TZ)


@pytest.fixture
def utc_now() -> datetime:
    """Fixture providing a fixed UTC time."""
    return datetime(2024, 3, 13, 9, 0, tzinfo=UTC)


@pytest.fixture
def make_menu_item() -> Callable[..., MenuItem]:
    """Factory fixture building menu items with sensible defaults."""

    def _make(**overrides: Any) -> MenuItem:
        data: dict[str, Any] = {
            "id": "item_samosa",
            "name": "Samosa",
            "description": "Crispy pastry with spiced potato filling",
            "category": MenuCategory.SNACKS,
            "price": Decimal("15"),
            "available": True,
            "created_at": datetime(2024, 3, 1, 8, 0, tzinfo=UTC),
            "updated_at": datetime(2024, 3, 1, 8, 0, tzinfo=UTC),
        }
        data.update(overrides)
        return MenuItem(**data)

    return _make


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """Factory fixture building orders with one Samosa line by default."""

    def _make(**overrides: Any) -> Order:
        created_at = overrides.pop("created_at", datetime(2024, 3, 13, 5, 0, tzinfo=UTC))
        data: dict[str, Any] = {
            "order_id": "ord_123",
            "user_id": "user_1",
            "items": [
                OrderLine(
                    menu_item_id="item_samosa", name="Samosa", price=Decimal("15"), quantity=2
                )
            ],
            "total_amount": Decimal("30"),
            "status": OrderStatus.PENDING,
            "created_at": created_at,
            "updated_at": created_at,
        }
        data.update(overrides)
        return Order(**data)

    return _make


@pytest.fixture
def faculty_user() -> UserRecord:
    """Fixture providing an active faculty account."""
    return UserRecord(
        user_id="user_1",
        full_name="Asha Rao",
        phone="9876543210",
        email="asha@example.edu",
        role=UserRole.USER,
        created_at=datetime(2024, 1, 10, tzinfo=UTC),
    )


@pytest.fixture
def sample_order_dynamodb_item() -> dict[str, Any]:
    """Fixture providing an order item as returned by DynamoDB."""
    return {
        "order_id": "ord_123",
        "user_id": "user_1",
        "items": [
            {
                "menu_item_id": "item_samosa",
                "name": "Samosa",
                "price": Decimal("15"),
                "quantity": Decimal("2"),
            }
        ],
        "total_amount": Decimal("30"),
        "status": "pending",
        "payment_status": "pending",
        "payment_method": "cash",
        "room_number": "B-204",
        "created_at": "2024-03-13T05:00:00.000000+00:00",
        "updated_at": "2024-03-13T05:00:00.000000+00:00",
    }
