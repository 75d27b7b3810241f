"""Unit tests for OrderService."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from canteen_ordering_service.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from canteen_ordering_service.models.menu_models import MenuCategory, MenuItem
from canteen_ordering_service.models.order_models import (
    Order,
    OrderCreateRequest,
    OrderLine,
    OrderLineRequest,
    OrderStatus,
)
from canteen_ordering_service.models.user_models import UserRecord
from canteen_ordering_service.repositories.order_repository import OrderRepository
from canteen_ordering_service.services.identity_service import IdentityService
from canteen_ordering_service.services.menu_service import MenuService
from canteen_ordering_service.services.order_service import (
    OrderService,
    local_day_bounds,
    parse_status,
    trailing_months,
)

LOCAL_TZ = timezone(timedelta(hours=5, minutes=30))


@pytest.fixture
def samosa(make_menu_item: Callable[..., MenuItem]) -> MenuItem:
    return make_menu_item(image="menu-images/samosa.png")


@pytest.fixture
def tea(make_menu_item: Callable[..., MenuItem]) -> MenuItem:
    return make_menu_item(
        id="item_tea",
        name="Tea",
        description="Masala chai",
        category=MenuCategory.BEVERAGES,
        price=Decimal("10"),
    )


@pytest.fixture
def mock_order_repository() -> MagicMock:
    return MagicMock(spec=OrderRepository)


@pytest.fixture
def mock_menu_service(samosa: MenuItem, tea: MenuItem) -> MagicMock:
    menu_service = MagicMock(spec=MenuService)
    menu_service.get_items = AsyncMock(return_value={samosa.id: samosa, tea.id: tea})
    menu_service.count_items = AsyncMock(return_value=12)
    return menu_service


@pytest.fixture
def mock_identity_service(faculty_user: UserRecord) -> MagicMock:
    identity_service = MagicMock(spec=IdentityService)
    identity_service.user_exists = AsyncMock(return_value=faculty_user)
    identity_service.get_users = AsyncMock(return_value={faculty_user.user_id: faculty_user})
    return identity_service


@pytest.fixture
def service(
    mock_order_repository: MagicMock,
    mock_menu_service: MagicMock,
    mock_identity_service: MagicMock,
    local_now: datetime,
) -> OrderService:
    return OrderService(
        order_repository=mock_order_repository,
        menu_service=mock_menu_service,
        identity_service=mock_identity_service,
        clock=lambda: local_now,
    )


def order_request(**overrides: object) -> OrderCreateRequest:
    data: dict[str, object] = {
        "user_id": "user_1",
        "items": [OrderLineRequest(menu_item_id="item_samosa", quantity=2)],
        "total_amount": Decimal("30"),
        "room_number": "B-204",
    }
    data.update(overrides)
    return OrderCreateRequest(**data)  # type: ignore[arg-type]


@pytest.mark.unit
class TestHelpers:
    """Tests for the module-level helpers."""

    def test_local_day_bounds(self, local_now: datetime) -> None:
        start, end = local_day_bounds(local_now)

        assert start == datetime(2024, 3, 13, tzinfo=LOCAL_TZ)
        assert end == datetime(2024, 3, 14, tzinfo=LOCAL_TZ)

    def test_trailing_months_crosses_year_boundary(self) -> None:
        months = trailing_months(datetime(2024, 2, 10), 4)

        assert months == [(2023, 11), (2023, 12), (2024, 1), (2024, 2)]

    def test_parse_status(self) -> None:
        assert parse_status("delivery") is OrderStatus.DELIVERY

        with pytest.raises(ValidationError, match="Invalid status 'shipped'"):
            parse_status("shipped")


@pytest.mark.unit
class TestCreateOrder:
    """Tests for OrderService.create_order."""

    @pytest.mark.asyncio
    async def test_create_order_snapshots_catalog_prices(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        local_now: datetime,
    ) -> None:
        """Test that the stored lines use catalog names and prices, not client values."""
        request = order_request(
            items=[
                OrderLineRequest(
                    menu_item_id="item_samosa", quantity=2, name="Free", price=Decimal("1")
                )
            ]
        )

        view = await service.create_order(request)

        saved: Order = mock_order_repository.save_order.call_args.args[0]
        assert saved.items == [
            OrderLine(menu_item_id="item_samosa", name="Samosa", price=Decimal("15"), quantity=2)
        ]
        assert saved.total_amount == Decimal("30")
        assert saved.status is OrderStatus.PENDING
        assert saved.room_number == "B-204"
        assert saved.created_at == local_now
        assert view.id == saved.order_id
        assert view.user is not None
        assert view.user.full_name == "Asha Rao"

    @pytest.mark.asyncio
    async def test_total_is_optional(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        view = await service.create_order(order_request(total_amount=None))

        assert view.total_amount == Decimal("30")
        mock_order_repository.save_order.assert_called_once()

    @pytest.mark.asyncio
    async def test_total_mismatch_is_rejected(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        with pytest.raises(ValidationError, match="does not match"):
            await service.create_order(order_request(total_amount=Decimal("25")))

        mock_order_repository.save_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_cart_is_rejected(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        with pytest.raises(ValidationError, match="at least one item"):
            await service.create_order(order_request(items=[], total_amount=None))

        mock_order_repository.save_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_user(
        self,
        service: OrderService,
        mock_identity_service: MagicMock,
        mock_order_repository: MagicMock,
    ) -> None:
        mock_identity_service.user_exists.return_value = None

        with pytest.raises(NotFoundError, match="User not found"):
            await service.create_order(order_request())

        mock_order_repository.save_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_menu_item(self, service: OrderService) -> None:
        request = order_request(items=[OrderLineRequest(menu_item_id="item_gone", quantity=1)])

        with pytest.raises(NotFoundError, match="item_gone"):
            await service.create_order(request)

    @pytest.mark.asyncio
    async def test_unavailable_item(
        self,
        service: OrderService,
        mock_menu_service: MagicMock,
        make_menu_item: Callable[..., MenuItem],
    ) -> None:
        mock_menu_service.get_items.return_value = {"item_samosa": make_menu_item(available=False)}

        with pytest.raises(ValidationError, match="currently unavailable"):
            await service.create_order(order_request())

    @pytest.mark.asyncio
    async def test_multiple_lines_sum_to_total(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        request = order_request(
            items=[
                OrderLineRequest(menu_item_id="item_samosa", quantity=2),
                OrderLineRequest(menu_item_id="item_tea", quantity=3),
            ],
            total_amount=Decimal("60"),
        )

        await service.create_order(request)

        saved: Order = mock_order_repository.save_order.call_args.args[0]
        assert [line.line_total for line in saved.items] == [Decimal("30"), Decimal("30")]
        assert saved.total_amount == Decimal("60")


@pytest.mark.unit
class TestTransitionStatus:
    """Tests for OrderService.transition_status."""

    @pytest.mark.asyncio
    async def test_forward_transition(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
        local_now: datetime,
    ) -> None:
        mock_order_repository.get_order.return_value = make_order()
        mock_order_repository.update_status.return_value = make_order(
            status=OrderStatus.CONFIRMED
        )

        view = await service.transition_status("ord_123", "confirmed")

        assert view.status is OrderStatus.CONFIRMED
        mock_order_repository.update_status.assert_called_once_with(
            "ord_123", OrderStatus.CONFIRMED, local_now, expected_status=OrderStatus.PENDING
        )

    @pytest.mark.asyncio
    async def test_unknown_status_leaves_order_untouched(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        with pytest.raises(ValidationError, match="Invalid status"):
            await service.transition_status("ord_123", "shipped")

        mock_order_repository.get_order.assert_not_called()
        mock_order_repository.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_terminal_order_is_locked(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        mock_order_repository.get_order.return_value = make_order(status=OrderStatus.DELIVERED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.transition_status("ord_123", "pending")

        assert exc_info.value.status_code == 400
        assert exc_info.value.current == "delivered"
        mock_order_repository.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_backward_transition_is_rejected(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        mock_order_repository.get_order.return_value = make_order(status=OrderStatus.READY)

        with pytest.raises(InvalidTransitionError):
            await service.transition_status("ord_123", "preparing")

    @pytest.mark.asyncio
    async def test_missing_order(self, service: OrderService, mock_order_repository: MagicMock) -> None:
        mock_order_repository.get_order.return_value = None

        with pytest.raises(NotFoundError, match="Order not found"):
            await service.transition_status("missing", "ready")

    @pytest.mark.asyncio
    async def test_order_deleted_during_update(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        mock_order_repository.get_order.side_effect = [make_order(), None]
        mock_order_repository.update_status.return_value = None

        with pytest.raises(NotFoundError):
            await service.transition_status("ord_123", "cancelled")

    @pytest.mark.asyncio
    async def test_concurrent_cancel_wins_over_delivery(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that a status read before a concurrent cancel cannot overwrite it."""
        mock_order_repository.get_order.side_effect = [
            make_order(status=OrderStatus.READY),
            make_order(status=OrderStatus.CANCELLED),
        ]
        mock_order_repository.update_status.return_value = None

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.transition_status("ord_123", "delivered")

        assert exc_info.value.current == "cancelled"
        assert exc_info.value.requested == "delivered"
        assert (
            mock_order_repository.update_status.call_args.kwargs["expected_status"]
            is OrderStatus.READY
        )


@pytest.mark.unit
class TestReadViews:
    """Tests for order listings and lookups."""

    @pytest.mark.asyncio
    async def test_get_order_keeps_snapshot_after_menu_change(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        mock_menu_service: MagicMock,
        make_order: Callable[..., Order],
        make_menu_item: Callable[..., MenuItem],
    ) -> None:
        """Test that later price changes never alter a stored order."""
        mock_order_repository.get_order.return_value = make_order()
        repriced = make_menu_item(price=Decimal("25"), image="menu-images/samosa-v2.png")
        mock_menu_service.get_items.return_value = {"item_samosa": repriced}

        view = await service.get_order("ord_123")

        assert view.items[0].price == Decimal("15")
        assert view.total_amount == Decimal("30")
        assert view.items[0].image == "menu-images/samosa-v2.png"

    @pytest.mark.asyncio
    async def test_get_order_after_item_deleted(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        mock_menu_service: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        mock_order_repository.get_order.return_value = make_order()
        mock_menu_service.get_items.return_value = {}

        view = await service.get_order("ord_123")

        assert view.items[0].name == "Samosa"
        assert view.items[0].image is None

    @pytest.mark.asyncio
    async def test_get_missing_order(self, service: OrderService, mock_order_repository: MagicMock) -> None:
        mock_order_repository.get_order.return_value = None

        with pytest.raises(NotFoundError):
            await service.get_order("missing")

    @pytest.mark.asyncio
    async def test_list_orders_today_uses_local_midnight(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
        mock_identity_service: MagicMock,
    ) -> None:
        mock_order_repository.list_orders.return_value = [make_order(user_id="user_gone")]
        mock_identity_service.get_users.return_value = {}

        views = await service.list_orders(status="pending", today=True)

        mock_order_repository.list_orders.assert_called_once_with(
            OrderStatus.PENDING,
            datetime(2024, 3, 13, tzinfo=LOCAL_TZ),
            datetime(2024, 3, 14, tzinfo=LOCAL_TZ),
        )
        assert views[0].user is None

    @pytest.mark.asyncio
    async def test_list_orders_rejects_unknown_status(self, service: OrderService) -> None:
        with pytest.raises(ValidationError):
            await service.list_orders(status="lost")

    @pytest.mark.asyncio
    async def test_recent_orders_skip_cancelled_and_stop_at_limit(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        orders = [
            make_order(
                order_id=f"ord_{i}",
                status=OrderStatus.CANCELLED if i % 3 == 0 else OrderStatus.DELIVERED,
            )
            for i in range(10)
        ]
        mock_order_repository.iter_orders_for_user.return_value = iter(orders)

        views = await service.list_recent_user_orders("user_1")

        assert [view.id for view in views] == ["ord_1", "ord_2", "ord_4", "ord_5", "ord_7"]

    @pytest.mark.asyncio
    async def test_list_user_orders(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        make_order: Callable[..., Order],
    ) -> None:
        mock_order_repository.iter_orders_for_user.return_value = iter(
            [make_order(order_id="ord_2"), make_order(order_id="ord_1")]
        )

        views = await service.list_user_orders("user_1")

        assert [view.id for view in views] == ["ord_2", "ord_1"]
        assert views[0].items[0].image == "menu-images/samosa.png"


@pytest.mark.unit
class TestDashboard:
    """Tests for dashboard counters and analytics."""

    @pytest.fixture
    def history(self, make_order: Callable[..., Order]) -> list[Order]:
        """Orders relative to 2024-03-13 14:30 IST, newest first."""
        return [
            # Today 10:30 IST
            make_order(order_id="ord_a"),
            # Today 09:00 IST, cancelled
            make_order(
                order_id="ord_b",
                status=OrderStatus.CANCELLED,
                total_amount=Decimal("50"),
                items=[
                    OrderLine(menu_item_id="item_tea", name="Tea", price=Decimal("10"), quantity=5)
                ],
                created_at=datetime(2024, 3, 13, 3, 30, tzinfo=UTC),
            ),
            # Yesterday (Tuesday) 15:30 IST; one line's menu item has since been deleted
            make_order(
                order_id="ord_c",
                status=OrderStatus.DELIVERED,
                total_amount=Decimal("70"),
                items=[
                    OrderLine(menu_item_id="item_tea", name="Tea", price=Decimal("10"), quantity=3),
                    OrderLine(
                        menu_item_id="item_combo", name="Old Combo", price=Decimal("40"), quantity=1
                    ),
                ],
                created_at=datetime(2024, 3, 12, 10, 0, tzinfo=UTC),
            ),
            # January
            make_order(
                order_id="ord_d",
                status=OrderStatus.DELIVERED,
                total_amount=Decimal("15"),
                items=[
                    OrderLine(
                        menu_item_id="item_samosa", name="Samosa", price=Decimal("15"), quantity=1
                    )
                ],
                created_at=datetime(2024, 1, 20, 6, 0, tzinfo=UTC),
            ),
        ]

    @pytest.mark.asyncio
    async def test_today_count_uses_local_day_window(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        mock_order_repository.count_orders.return_value = 7

        count = await service.compute_today_count()

        assert count == 7
        mock_order_repository.count_orders.assert_called_once_with(
            created_from=datetime(2024, 3, 13, tzinfo=LOCAL_TZ),
            created_to=datetime(2024, 3, 14, tzinfo=LOCAL_TZ),
        )

    @pytest.mark.asyncio
    async def test_stats(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        history: list[Order],
    ) -> None:
        mock_order_repository.list_orders.return_value = history

        stats = await service.compute_stats()

        assert stats.orders_today == 2
        assert stats.revenue_today == Decimal("30")
        assert stats.pending_count == 1
        assert stats.total_orders == 4
        assert stats.total_menu_items == 12

    @pytest.mark.asyncio
    async def test_analytics(
        self,
        service: OrderService,
        mock_order_repository: MagicMock,
        history: list[Order],
    ) -> None:
        mock_order_repository.list_orders.return_value = history

        analytics = await service.compute_analytics()

        assert [(m.month, m.revenue) for m in analytics.monthly_revenue] == [
            ("2023-10", Decimal(0)),
            ("2023-11", Decimal(0)),
            ("2023-12", Decimal(0)),
            ("2024-01", Decimal("15")),
            ("2024-02", Decimal(0)),
            ("2024-03", Decimal("100")),
        ]
        assert [(c.category, c.orders) for c in analytics.category_counts] == [
            ("breakfast", 0),
            ("lunch", 0),
            ("dinner", 0),
            ("snacks", 2),
            ("beverages", 1),
            ("unknown", 1),
        ]
        assert [(d.day, d.orders) for d in analytics.weekday_counts] == [
            ("Thu", 0),
            ("Fri", 0),
            ("Sat", 0),
            ("Sun", 0),
            ("Mon", 0),
            ("Tue", 1),
            ("Wed", 1),
        ]
        assert [(t.menu_item_id, t.quantity, t.revenue) for t in analytics.top_items] == [
            ("item_samosa", 3, Decimal("45")),
            ("item_tea", 3, Decimal("30")),
            ("item_combo", 1, Decimal("40")),
        ]

    @pytest.mark.asyncio
    async def test_analytics_with_no_orders(
        self, service: OrderService, mock_order_repository: MagicMock
    ) -> None:
        mock_order_repository.list_orders.return_value = []

        analytics = await service.compute_analytics()

        assert len(analytics.monthly_revenue) == 6
        assert all(day.orders == 0 for day in analytics.weekday_counts)
        assert "unknown" not in [c.category for c in analytics.category_counts]
        assert analytics.top_items == []
