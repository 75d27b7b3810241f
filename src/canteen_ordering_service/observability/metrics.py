"""Custom metrics for the canteen ordering service."""

from opentelemetry import metrics

meter = metrics.get_meter("canteen-svc")

orders_created_counter = meter.create_counter(
    name="orders_created_total",
    description="Total number of orders placed by payment method",
    unit="1",
)

order_value_histogram = meter.create_histogram(
    name="order_value",
    description="Total amount of placed orders",
    unit="1",
)

status_transition_counter = meter.create_counter(
    name="order_status_transitions_total",
    description="Total number of applied order status changes by target status",
    unit="1",
)

rejected_transition_counter = meter.create_counter(
    name="rejected_transitions_total",
    description="Total number of status changes refused by the status graph",
    unit="1",
)

menu_item_change_counter = meter.create_counter(
    name="menu_item_changes_total",
    description="Total number of menu item writes by action",
    unit="1",
)


def record_order_created(payment_method: str, total_amount: float) -> None:
    """Record a newly placed order.

    Args:
        payment_method: Payment method of the order (e.g. "cash")
        total_amount: Order total
    """
    orders_created_counter.add(1, {"payment_method": payment_method})
    order_value_histogram.record(total_amount, {"payment_method": payment_method})


def record_status_transition(from_status: str, to_status: str) -> None:
    """Record an applied status change.

    Args:
        from_status: Status before the change
        to_status: Status after the change
    """
    status_transition_counter.add(1, {"from_status": from_status, "to_status": to_status})


def record_rejected_transition(from_status: str, to_status: str) -> None:
    """Record a status change refused because it is not an edge of the graph."""
    rejected_transition_counter.add(1, {"from_status": from_status, "to_status": to_status})


def record_menu_item_change(action: str) -> None:
    """Record a menu item write.

    Args:
        action: One of "create", "update", "availability", "delete"
    """
    menu_item_change_counter.add(1, {"action": action})
