"""Order lifecycle service: order creation, status transitions and read views."""

import logging
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from decimal import Decimal
from itertools import islice

from canteen_ordering_service.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from canteen_ordering_service.models.menu_models import MenuCategory
from canteen_ordering_service.models.order_models import (
    OPEN_STATUSES,
    CategoryCount,
    MonthlyRevenue,
    Order,
    OrderAnalytics,
    OrderCreateRequest,
    OrderLine,
    OrderStats,
    OrderStatus,
    OrderView,
    TopItem,
    WeekdayCount,
)
from canteen_ordering_service.observability import traced
from canteen_ordering_service.observability.metrics import (
    record_order_created,
    record_rejected_transition,
    record_status_transition,
)
from canteen_ordering_service.repositories.order_repository import OrderRepository
from canteen_ordering_service.services.identity_service import IdentityService
from canteen_ordering_service.services.menu_service import MenuService

logger = logging.getLogger(__name__)

RECENT_ORDERS_LIMIT = 5
ANALYTICS_MONTHS = 6
ANALYTICS_DAYS = 7
TOP_ITEMS_LIMIT = 5
UNKNOWN_CATEGORY = "unknown"
WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def _local_now() -> datetime:
    return datetime.now().astimezone()


def local_day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return ``[midnight today, midnight tomorrow)`` in the timezone of ``now``."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def trailing_months(now: datetime, count: int) -> list[tuple[int, int]]:
    """Return ``count`` (year, month) pairs ending with the month of ``now``, oldest first."""
    months = []
    for offset in range(count - 1, -1, -1):
        index = now.year * 12 + (now.month - 1) - offset
        months.append((index // 12, index % 12 + 1))
    return months


def parse_status(token: str) -> OrderStatus:
    """Parse a status token.

    Raises:
        ValidationError: If the token is not one of the seven statuses
    """
    try:
        return OrderStatus(token)
    except ValueError:
        raise ValidationError(f"Invalid status '{token}'") from None


class OrderService:
    """Service owning the order lifecycle.

    Orders store a snapshot of each line's name and unit price taken from
    the catalog when the order is placed. The client-submitted prices are
    never trusted; a submitted total that disagrees with the catalog is
    rejected.

    Status changes follow the fulfilment chain
    pending -> confirmed -> preparing -> ready -> delivery -> delivered, may
    skip forward, may cancel any open order, and never leave delivered or
    cancelled.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        menu_service: MenuService,
        identity_service: IdentityService,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        """Initialize the OrderService.

        Args:
            order_repository: Repository for order records
            menu_service: Catalog used for snapshots and read-time joins
            identity_service: Lookup of order owners
            clock: Returns the current time in the server's local timezone
        """
        self.order_repository = order_repository
        self.menu_service = menu_service
        self.identity_service = identity_service
        self.clock = clock

    @traced("orders.create")
    async def create_order(self, request: OrderCreateRequest) -> OrderView:
        """Place an order.

        Args:
            request: Owner, cart lines, expected total and delivery details

        Returns:
            OrderView of the stored order with user details joined

        Raises:
            NotFoundError: If the user or a referenced menu item does not exist
            ValidationError: If the cart is empty or invalid, an item is
                unavailable, or the submitted total does not match
        """
        user = await self.identity_service.user_exists(request.user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not request.items:
            raise ValidationError("Order must contain at least one item")
        for line in request.items:
            if line.quantity < 1:
                raise ValidationError("Item quantity must be at least 1")
            if line.price is not None and line.price < 0:
                raise ValidationError("Item price cannot be negative")

        catalog = await self.menu_service.get_items(line.menu_item_id for line in request.items)

        lines: list[OrderLine] = []
        for line in request.items:
            item = catalog.get(line.menu_item_id)
            if item is None:
                raise NotFoundError(f"Menu item {line.menu_item_id} not found")
            if not item.available:
                raise ValidationError(f"'{item.name}' is currently unavailable")
            lines.append(
                OrderLine(
                    menu_item_id=item.id,
                    name=item.name,
                    price=item.price,
                    quantity=line.quantity,
                )
            )

        total_amount = sum((line.line_total for line in lines), Decimal(0))
        if request.total_amount is not None and request.total_amount != total_amount:
            raise ValidationError(
                f"Order total {request.total_amount} does not match current prices ({total_amount})"
            )

        now = self.clock()
        order = Order(
            order_id=f"ord_{uuid.uuid4().hex[:12]}",
            user_id=request.user_id,
            items=lines,
            total_amount=total_amount,
            payment_method=request.payment_method,
            special_instructions=request.special_instructions,
            room_number=request.room_number,
            created_at=now,
            updated_at=now,
        )
        self.order_repository.save_order(order)

        record_order_created(order.payment_method.value, float(total_amount))
        logger.info(
            f"Order {order.order_id} placed by {order.user_id} "
            f"({len(lines)} lines, total {total_amount})"
        )
        return OrderView.from_order(order, user.summary())

    @traced("orders.transition_status")
    async def transition_status(self, order_id: str, new_status: str) -> OrderView:
        """Move an order to a new status.

        Args:
            order_id: Order to update
            new_status: Target status token

        Returns:
            OrderView of the updated order

        Raises:
            ValidationError: If the token is not a known status
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the status graph forbids the change, or
                another update changed the status after it was read
        """
        target = parse_status(new_status)

        order = self.order_repository.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")

        if not order.status.can_transition_to(target):
            record_rejected_transition(order.status.value, target.value)
            logger.warning(
                f"Rejected status change for order {order_id}: "
                f"{order.status.value} -> {target.value}"
            )
            raise InvalidTransitionError(order.status.value, target.value)

        updated = self.order_repository.update_status(
            order_id, target, self.clock(), expected_status=order.status
        )
        if updated is None:
            # Either deleted or changed by a concurrent update since the read
            current = self.order_repository.get_order(order_id)
            if current is None:
                raise NotFoundError("Order not found")
            record_rejected_transition(current.status.value, target.value)
            logger.warning(
                f"Status of order {order_id} changed to {current.status.value} "
                f"before {target.value} could be applied"
            )
            raise InvalidTransitionError(current.status.value, target.value)

        record_status_transition(order.status.value, target.value)
        logger.info(f"Order {order_id} status {order.status.value} -> {target.value}")
        return (await self._to_views([updated]))[0]

    async def get_order(self, order_id: str) -> OrderView:
        """Get a single order with user details joined.

        Raises:
            NotFoundError: If the order does not exist
        """
        order = self.order_repository.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return (await self._to_views([order], with_images=True))[0]

    @traced("orders.list")
    async def list_orders(self, status: str | None = None, today: bool = False) -> list[OrderView]:
        """List orders for the admin console, newest first.

        Args:
            status: Optional status token to filter by
            today: Only orders created since local midnight

        Raises:
            ValidationError: If ``status`` is not a known status
        """
        status_filter = parse_status(status) if status else None

        created_from = created_to = None
        if today:
            created_from, created_to = local_day_bounds(self.clock())

        orders = self.order_repository.list_orders(status_filter, created_from, created_to)
        return await self._to_views(orders)

    async def list_user_orders(self, user_id: str) -> list[OrderView]:
        """List all orders of one user, newest first, with current item images."""
        orders = list(self.order_repository.iter_orders_for_user(user_id))
        return await self._to_views(orders, with_images=True)

    async def list_recent_user_orders(
        self, user_id: str, limit: int = RECENT_ORDERS_LIMIT
    ) -> list[OrderView]:
        """List a user's latest non-cancelled orders with current item images."""
        recent = islice(
            (
                order
                for order in self.order_repository.iter_orders_for_user(user_id)
                if order.status is not OrderStatus.CANCELLED
            ),
            limit,
        )
        return await self._to_views(list(recent), with_images=True)

    async def compute_today_count(self) -> int:
        """Count orders created in ``[local midnight, next local midnight)``."""
        start, end = local_day_bounds(self.clock())
        return self.order_repository.count_orders(created_from=start, created_to=end)

    @traced("orders.stats")
    async def compute_stats(self) -> OrderStats:
        """Compute the admin dashboard counters."""
        start, end = local_day_bounds(self.clock())
        orders = self.order_repository.list_orders()

        todays = [order for order in orders if start <= order.created_at < end]
        revenue_today = sum(
            (order.total_amount for order in todays if order.status is not OrderStatus.CANCELLED),
            Decimal(0),
        )

        return OrderStats(
            orders_today=len(todays),
            revenue_today=revenue_today,
            pending_count=sum(1 for order in orders if order.status in OPEN_STATUSES),
            total_orders=len(orders),
            total_menu_items=await self.menu_service.count_items(),
        )

    @traced("orders.analytics")
    async def compute_analytics(self) -> OrderAnalytics:
        """Compute the analytics page aggregates.

        Cancelled orders are excluded from every aggregate. Categories are
        resolved against the current catalog; lines whose menu item has been
        deleted count under ``unknown``.
        """
        now = self.clock()
        tz = now.tzinfo
        orders = [
            order
            for order in self.order_repository.list_orders()
            if order.status is not OrderStatus.CANCELLED
        ]
        catalog = await self.menu_service.get_items(
            line.menu_item_id for order in orders for line in order.items
        )

        # Revenue per calendar month
        months = trailing_months(now, ANALYTICS_MONTHS)
        revenue: dict[tuple[int, int], Decimal] = {month: Decimal(0) for month in months}
        for order in orders:
            created = order.created_at.astimezone(tz)
            key = (created.year, created.month)
            if key in revenue:
                revenue[key] += order.total_amount

        # Orders containing at least one item of each category
        category_counter: Counter[str] = Counter()
        for order in orders:
            categories = {
                catalog[line.menu_item_id].category.value
                if line.menu_item_id in catalog
                else UNKNOWN_CATEGORY
                for line in order.items
            }
            category_counter.update(categories)
        category_names = [category.value for category in MenuCategory]
        if category_counter[UNKNOWN_CATEGORY]:
            category_names.append(UNKNOWN_CATEGORY)

        # Orders per day over the trailing week, oldest day first
        today_start, _ = local_day_bounds(now)
        days: list[date] = [
            (today_start - timedelta(days=offset)).date()
            for offset in range(ANALYTICS_DAYS - 1, -1, -1)
        ]
        day_counter: Counter[date] = Counter(order.created_at.astimezone(tz).date() for order in orders)

        # Best sellers by quantity
        quantities: Counter[str] = Counter()
        item_revenue: dict[str, Decimal] = defaultdict(Decimal)
        names: dict[str, str] = {}
        for order in orders:  # newest first, so the latest name wins
            for line in order.items:
                quantities[line.menu_item_id] += line.quantity
                item_revenue[line.menu_item_id] += line.line_total
                names.setdefault(line.menu_item_id, line.name)
        ranked = sorted(
            quantities,
            key=lambda item_id: (quantities[item_id], item_revenue[item_id]),
            reverse=True,
        )

        return OrderAnalytics(
            monthly_revenue=[
                MonthlyRevenue(month=f"{year:04d}-{month:02d}", revenue=revenue[(year, month)])
                for year, month in months
            ],
            category_counts=[
                CategoryCount(category=name, orders=category_counter[name]) for name in category_names
            ],
            weekday_counts=[
                WeekdayCount(day=WEEKDAY_LABELS[day.weekday()], orders=day_counter[day]) for day in days
            ],
            top_items=[
                TopItem(
                    menu_item_id=item_id,
                    name=names[item_id],
                    quantity=quantities[item_id],
                    revenue=item_revenue[item_id],
                )
                for item_id in ranked[:TOP_ITEMS_LIMIT]
            ],
        )

    async def _to_views(self, orders: Iterable[Order], with_images: bool = False) -> list[OrderView]:
        """Join user details, and optionally current item images, onto orders."""
        orders = list(orders)
        users = await self.identity_service.get_users({order.user_id for order in orders})

        images: dict[str, str | None] = {}
        if with_images and orders:
            catalog = await self.menu_service.get_items(
                line.menu_item_id for order in orders for line in order.items
            )
            images = {item_id: item.image for item_id, item in catalog.items()}

        return [
            OrderView.from_order(
                order,
                users[order.user_id].summary() if order.user_id in users else None,
                images,
            )
            for order in orders
        ]
