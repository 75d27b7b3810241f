"""DynamoDB repository for menu items.

Reads return None for missing items; storage failures are logged and raised
as ServerError so they are never mistaken for "not found".
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from canteen_ordering_service.models.common import to_storage_timestamp
from canteen_ordering_service.models.menu_models import MenuItem
from canteen_ordering_service.repositories.dynamodb_utils import (
    count_all,
    is_conditional_check_failure,
    iterate_pages,
    storage_error,
)

logger = logging.getLogger(__name__)

# BatchGetItem accepts at most 100 keys per request
BATCH_GET_LIMIT = 100


class MenuItemRepository:
    """Repository for menu item CRUD operations.

    Manages menu item records in DynamoDB with ``id`` as partition key.
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

    def get_item(self, item_id: str) -> MenuItem | None:
        """Retrieve a menu item by ID.

        Args:
            item_id: Menu item identifier

        Returns:
            MenuItem if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"id": item_id})
        except ClientError as e:
            raise storage_error("get menu item", e) from e

        if "Item" not in response:
            return None

        return MenuItem.from_dynamodb_item(response["Item"])

    def save_item(self, item: MenuItem) -> None:
        """Create or replace a menu item.

        Args:
            item: MenuItem to save
        """
        try:
            self.table.put_item(Item=item.to_dynamodb_item())
        except ClientError as e:
            raise storage_error("save menu item", e) from e

    def update_availability(
        self, item_id: str, available: bool, updated_at: datetime
    ) -> MenuItem | None:
        """Set the availability flag without touching other attributes.

        Args:
            item_id: Menu item identifier
            available: New availability
            updated_at: Modification timestamp

        Returns:
            The updated MenuItem, or None if no item has this ID
        """
        try:
            response = self.table.update_item(
                Key={"id": item_id},
                UpdateExpression="SET available = :available, updated_at = :updated_at",
                ConditionExpression="attribute_exists(id)",
                ExpressionAttributeValues={
                    ":available": available,
                    ":updated_at": to_storage_timestamp(updated_at),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                return None
            raise storage_error("update menu item availability", e) from e

        return MenuItem.from_dynamodb_item(response["Attributes"])

    def delete_item(self, item_id: str) -> bool:
        """Delete a menu item.

        Args:
            item_id: Menu item identifier

        Returns:
            bool: True if an item was deleted, False if none existed
        """
        try:
            self.table.delete_item(
                Key={"id": item_id},
                ConditionExpression="attribute_exists(id)",
            )
            return True

        except ClientError as e:
            if is_conditional_check_failure(e):
                return False
            raise storage_error("delete menu item", e) from e

    def iter_items(self) -> Iterator[MenuItem]:
        """Iterate over every menu item, one scan page at a time.

        Yields:
            MenuItem: Items in storage order
        """
        try:
            for raw in iterate_pages(self.table.scan):
                yield MenuItem.from_dynamodb_item(raw)
        except ClientError as e:
            raise storage_error("scan menu items", e) from e

    def get_items(self, item_ids: Iterable[str]) -> dict[str, MenuItem]:
        """Batch-read menu items.

        Args:
            item_ids: Identifiers to look up (duplicates are ignored)

        Returns:
            dict: Mapping of ID to MenuItem for the items that exist
        """
        unique_ids = list(dict.fromkeys(item_ids))
        found: dict[str, MenuItem] = {}

        try:
            for start in range(0, len(unique_ids), BATCH_GET_LIMIT):
                chunk = unique_ids[start : start + BATCH_GET_LIMIT]
                request = {self.table_name: {"Keys": [{"id": item_id} for item_id in chunk]}}

                while request:
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                    for raw in response.get("Responses", {}).get(self.table_name, []):
                        item = MenuItem.from_dynamodb_item(raw)
                        found[item.id] = item
                    request = response.get("UnprocessedKeys") or {}

        except ClientError as e:
            raise storage_error("batch get menu items", e) from e

        return found

    def count_items(self) -> int:
        """Count all menu items."""
        try:
            return count_all(self.table)
        except ClientError as e:
            raise storage_error("count menu items", e) from e
