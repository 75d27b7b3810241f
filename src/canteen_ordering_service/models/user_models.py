"""Identity models.

Users (faculty) and admins live in separate tables owned by the identity
side of the system. The order lifecycle only reads them.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from canteen_ordering_service.models.common import (
    CAMEL_CASE_CONFIG,
    from_storage_timestamp,
)


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class AuthProvider(str, Enum):
    PHONE = "phone"
    GOOGLE = "google"


class UserRecord(BaseModel):
    """Admin or faculty account."""

    model_config = CAMEL_CASE_CONFIG

    user_id: str = Field(..., serialization_alias="id")
    full_name: str
    phone: str | None = None
    email: str | None = None
    role: UserRole = UserRole.USER
    auth_provider: AuthProvider = AuthProvider.PHONE
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "UserRecord":
        """Create UserRecord from DynamoDB item.

        Password hashes and Google subject ids may be present in the item;
        they are never loaded into the model.

        Args:
            item: DynamoDB item dictionary

        Returns:
            UserRecord: Parsed model instance
        """
        data: dict[str, Any] = {
            "user_id": item["user_id"],
            "full_name": item.get("full_name") or item.get("name", ""),
            "phone": item.get("phone"),
            "email": item.get("email"),
            "role": UserRole(item.get("role", "user")),
            "auth_provider": AuthProvider(item.get("auth_provider", "phone")),
            "is_active": item.get("is_active", True),
        }

        if "created_at" in item:
            data["created_at"] = from_storage_timestamp(item["created_at"])

        return cls(**data)

    def summary(self) -> "UserSummary":
        return UserSummary(
            id=self.user_id,
            full_name=self.full_name,
            phone=self.phone,
            email=self.email,
        )


class UserSummary(BaseModel):
    """User details joined into order views."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    full_name: str
    phone: str | None = None
    email: str | None = None


class CallerIdentity(BaseModel):
    """Authenticated caller resolved from a bearer token."""

    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


class UserPage(BaseModel):
    """One page of the faculty listing."""

    model_config = CAMEL_CASE_CONFIG

    users: list[UserRecord]
    current_page: int
    total_pages: int
    total_users: int
    users_per_page: int
    has_next_page: bool
    has_prev_page: bool


class AdminAvailability(BaseModel):
    """Whether another admin account may still be registered."""

    model_config = CAMEL_CASE_CONFIG

    admin_count: int
    max_admins: int
    can_register: bool
