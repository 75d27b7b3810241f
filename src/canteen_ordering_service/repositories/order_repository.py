"""DynamoDB repository for orders.

Each order, including its line snapshot, is a single item, so creating an
order either persists everything or nothing.
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from canteen_ordering_service.models.common import to_storage_timestamp
from canteen_ordering_service.models.order_models import Order, OrderStatus
from canteen_ordering_service.repositories.dynamodb_utils import (
    count_all,
    is_conditional_check_failure,
    iterate_pages,
    storage_error,
)

logger = logging.getLogger(__name__)

USER_INDEX = "user_id-index"


def build_order_filter(
    status: OrderStatus | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
) -> dict[str, Any]:
    """Build scan parameters for the optional order filters.

    ``created_from`` is inclusive and ``created_to`` exclusive.

    Returns:
        dict: FilterExpression and attribute maps, empty if no filter applies
    """
    clauses: list[str] = []
    names: dict[str, str] = {}
    values: dict[str, Any] = {}

    if status is not None:
        clauses.append("#status = :status")
        names["#status"] = "status"
        values[":status"] = status.value

    if created_from is not None:
        clauses.append("created_at >= :created_from")
        values[":created_from"] = to_storage_timestamp(created_from)

    if created_to is not None:
        clauses.append("created_at < :created_to")
        values[":created_to"] = to_storage_timestamp(created_to)

    if not clauses:
        return {}

    params: dict[str, Any] = {
        "FilterExpression": " AND ".join(clauses),
        "ExpressionAttributeValues": values,
    }
    if names:
        params["ExpressionAttributeNames"] = names
    return params


class OrderRepository:
    """Repository for order persistence.

    Orders are keyed by ``order_id``; a Global Secondary Index on
    ``user_id`` with ``created_at`` as sort key serves per-user history.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def save_order(self, order: Order) -> None:
        """Persist a new order.

        Args:
            order: Order to create
        """
        try:
            self.table.put_item(
                Item=order.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(order_id)",
            )
        except ClientError as e:
            raise storage_error("save order", e) from e

    def get_order(self, order_id: str) -> Order | None:
        """Retrieve an order by ID.

        Args:
            order_id: Order identifier

        Returns:
            Order if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"order_id": order_id})
        except ClientError as e:
            raise storage_error("get order", e) from e

        if "Item" not in response:
            return None

        return Order.from_dynamodb_item(response["Item"])

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        updated_at: datetime,
        expected_status: OrderStatus | None = None,
    ) -> Order | None:
        """Set the status of an existing order.

        When ``expected_status`` is given the write only succeeds if the stored
        status still equals it, so a check made against an earlier read cannot
        be overtaken by a concurrent update.

        Args:
            order_id: Order identifier
            status: New status
            updated_at: Modification timestamp
            expected_status: Status the order must currently have

        Returns:
            The updated Order, or None if no order has this ID or its status
            no longer matches ``expected_status``
        """
        condition = "attribute_exists(order_id)"
        values: dict[str, Any] = {
            ":status": status.value,
            ":updated_at": to_storage_timestamp(updated_at),
        }
        if expected_status is not None:
            condition += " AND #status = :expected"
            values[":expected"] = expected_status.value

        try:
            response = self.table.update_item(
                Key={"order_id": order_id},
                UpdateExpression="SET #status = :status, updated_at = :updated_at",
                ConditionExpression=condition,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                return None
            raise storage_error("update order status", e) from e

        return Order.from_dynamodb_item(response["Attributes"])

    def list_orders(
        self,
        status: OrderStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[Order]:
        """List orders matching the filters, newest first.

        Args:
            status: Only orders with this status
            created_from: Only orders created at or after this time
            created_to: Only orders created before this time

        Returns:
            list: Matching orders (empty list if none found)
        """
        params = build_order_filter(status, created_from, created_to)

        try:
            orders = [Order.from_dynamodb_item(raw) for raw in iterate_pages(self.table.scan, **params)]
        except ClientError as e:
            raise storage_error("list orders", e) from e

        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders

    def iter_orders_for_user(self, user_id: str) -> Iterator[Order]:
        """Iterate over a user's orders, newest first.

        Pages are requested only as the caller consumes them.

        Args:
            user_id: Owning user

        Yields:
            Order: The user's orders
        """
        try:
            for raw in iterate_pages(
                self.table.query,
                IndexName=USER_INDEX,
                KeyConditionExpression="user_id = :uid",
                ExpressionAttributeValues={":uid": user_id},
                ScanIndexForward=False,  # Most recent first
            ):
                yield Order.from_dynamodb_item(raw)
        except ClientError as e:
            raise storage_error("list user orders", e) from e

    def count_orders(
        self,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> int:
        """Count orders, optionally restricted to a creation window."""
        params = build_order_filter(created_from=created_from, created_to=created_to)

        try:
            return count_all(self.table, **params)
        except ClientError as e:
            raise storage_error("count orders", e) from e
