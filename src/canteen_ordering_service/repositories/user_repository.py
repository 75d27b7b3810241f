"""Read-only DynamoDB access to the faculty and admin account tables.

Account creation, passwords and Google credentials are handled by the
identity side of the system; this service only looks accounts up.
"""

import logging
from collections.abc import Iterator

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from canteen_ordering_service.models.user_models import UserRecord, UserRole
from canteen_ordering_service.repositories.dynamodb_utils import (
    count_all,
    iterate_pages,
    storage_error,
)

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository over the users (faculty) and admins tables.

    Both tables use ``user_id`` as partition key.
    """

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        users_table_name: str,
        admins_table_name: str,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            users_table_name: Table holding faculty accounts
            admins_table_name: Table holding admin accounts
        """
        self.dynamodb = dynamodb_resource
        self.users_table: Table = dynamodb_resource.Table(users_table_name)
        self.admins_table: Table = dynamodb_resource.Table(admins_table_name)

    def _get(self, table: Table, user_id: str, role: UserRole) -> UserRecord | None:
        try:
            response = table.get_item(Key={"user_id": user_id})
        except ClientError as e:
            raise storage_error(f"get {role.value} account", e) from e

        if "Item" not in response:
            return None

        raw = dict(response["Item"], role=role.value)
        return UserRecord.from_dynamodb_item(raw)

    def get_user(self, user_id: str) -> UserRecord | None:
        """Retrieve a faculty account by ID."""
        return self._get(self.users_table, user_id, UserRole.USER)

    def get_admin(self, user_id: str) -> UserRecord | None:
        """Retrieve an admin account by ID."""
        return self._get(self.admins_table, user_id, UserRole.ADMIN)

    def iter_users(self) -> Iterator[UserRecord]:
        """Iterate over all faculty accounts, one scan page at a time."""
        try:
            for raw in iterate_pages(self.users_table.scan):
                yield UserRecord.from_dynamodb_item(dict(raw, role=UserRole.USER.value))
        except ClientError as e:
            raise storage_error("scan user accounts", e) from e

    def count_admins(self) -> int:
        """Count registered admin accounts."""
        try:
            return count_all(self.admins_table)
        except ClientError as e:
            raise storage_error("count admin accounts", e) from e
