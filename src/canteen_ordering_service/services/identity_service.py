"""Identity lookups used to authorize callers and validate order owners."""

import logging
import math
from datetime import UTC, datetime

from canteen_ordering_service.auth.token_validator import TokenValidator
from canteen_ordering_service.errors import AuthError, ValidationError
from canteen_ordering_service.models.user_models import (
    AdminAvailability,
    CallerIdentity,
    UserPage,
    UserRecord,
)
from canteen_ordering_service.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_ADMINS = 2
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class IdentityService:
    """Read-side of the identity boundary.

    Resolves bearer tokens to callers and answers whether an order owner
    exists. Signup, login and credential storage are not handled here.
    """

    def __init__(
        self,
        user_repository: UserRepository,
        token_validator: TokenValidator,
        max_admins: int = DEFAULT_MAX_ADMINS,
    ) -> None:
        """Initialize the IdentityService.

        Args:
            user_repository: Repository over user and admin accounts
            token_validator: Verifier for bearer tokens
            max_admins: Maximum number of admin accounts allowed
        """
        self.user_repository = user_repository
        self.token_validator = token_validator
        self.max_admins = max_admins

    async def resolve_caller(self, token: str) -> CallerIdentity:
        """Resolve a bearer token to the calling account.

        Admin accounts take precedence when the same ID exists in both tables.

        Args:
            token: Encoded bearer token

        Returns:
            CallerIdentity with the account ID and role

        Raises:
            AuthError: 401 for bad tokens or unknown accounts, 403 for
                deactivated accounts
        """
        user_id = self.token_validator.subject(token)

        account = self.user_repository.get_admin(user_id) or self.user_repository.get_user(user_id)
        if account is None:
            logger.warning(f"Token presented for unknown account {user_id}")
            raise AuthError("User not found")

        if not account.is_active:
            logger.warning(f"Deactivated account {user_id} attempted access")
            raise AuthError("Account has been deactivated", status_code=403)

        return CallerIdentity(user_id=account.user_id, role=account.role)

    async def user_exists(self, user_id: str) -> UserRecord | None:
        """Look up an active faculty account.

        Args:
            user_id: Account ID

        Returns:
            UserRecord if the account exists and is active, None otherwise
        """
        user = self.user_repository.get_user(user_id)
        if user is None or not user.is_active:
            return None
        return user

    async def get_users(self, user_ids: set[str]) -> dict[str, UserRecord]:
        """Look up several faculty accounts, skipping IDs that no longer exist."""
        users: dict[str, UserRecord] = {}
        for user_id in user_ids:
            user = self.user_repository.get_user(user_id)
            if user is not None:
                users[user_id] = user
        return users

    async def check_admin_availability(self) -> AdminAvailability:
        """Report whether another admin account may be registered."""
        admin_count = self.user_repository.count_admins()
        return AdminAvailability(
            admin_count=admin_count,
            max_admins=self.max_admins,
            can_register=admin_count < self.max_admins,
        )

    async def list_users(self, search: str | None = None, page: int = 1, limit: int = 10) -> UserPage:
        """List faculty accounts for the admin console.

        Args:
            search: Case-insensitive substring matched against name, email and phone
            page: 1-based page number
            limit: Users per page

        Returns:
            UserPage with the requested slice, newest accounts first

        Raises:
            ValidationError: If page or limit is not positive
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")

        needle = search.lower() if search else None
        users = [
            user
            for user in self.user_repository.iter_users()
            if needle is None
            or needle in user.full_name.lower()
            or needle in (user.email or "").lower()
            or needle in (user.phone or "")
        ]
        users.sort(key=lambda user: user.created_at or EPOCH, reverse=True)

        total_users = len(users)
        total_pages = math.ceil(total_users / limit)
        start = (page - 1) * limit

        return UserPage(
            users=users[start : start + limit],
            current_page=page,
            total_pages=total_pages,
            total_users=total_users,
            users_per_page=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )
