"""FastAPI dependencies and guards for bearer authentication.

Token resolution itself lives in IdentityService; these helpers only
extract the header and check roles.
"""

from typing import Annotated

from fastapi import Header

from canteen_ordering_service.errors import AuthError
from canteen_ordering_service.models.user_models import CallerIdentity


def get_bearer_token(authorization: Annotated[str | None, Header()] = None) -> str:
    """FastAPI dependency to extract the token from an ``Authorization: Bearer`` header.

    Args:
        authorization: Raw Authorization header (injected by FastAPI)

    Returns:
        str: The bearer token

    Raises:
        AuthError: 401 if the header is missing or not a bearer credential
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Access denied. No token provided.")

    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise AuthError("Access denied. No token provided.")

    return token


def ensure_admin(caller: CallerIdentity) -> CallerIdentity:
    """Require the admin role.

    Raises:
        AuthError: 403 for non-admin callers
    """
    if not caller.is_admin:
        raise AuthError("Access denied. Admin privileges required.", status_code=403)
    return caller


def ensure_self_or_admin(caller: CallerIdentity, user_id: str) -> CallerIdentity:
    """Require the caller to be ``user_id`` or an admin.

    Raises:
        AuthError: 403 when a user acts on another user's data
    """
    if not caller.is_admin and caller.user_id != user_id:
        raise AuthError("Access denied. You can only access your own orders.", status_code=403)
    return caller
