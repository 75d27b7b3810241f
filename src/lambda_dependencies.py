"""Shared dependency factory for the Lambda handler.

Dependencies are created once and reused across invocations within the
same Lambda container.
"""

import logging
import os
from typing import Any

import boto3
from fastapi import FastAPI

from canteen_ordering_service.auth.token_validator import TokenValidator
from canteen_ordering_service.handlers.api_handler import create_app
from canteen_ordering_service.observability import configure_logging, setup_observability
from canteen_ordering_service.repositories.menu_repository import MenuItemRepository
from canteen_ordering_service.repositories.order_repository import OrderRepository
from canteen_ordering_service.repositories.user_repository import UserRepository
from canteen_ordering_service.services.identity_service import IdentityService
from canteen_ordering_service.services.image_store import ImageStore
from canteen_ordering_service.services.menu_service import MenuService
from canteen_ordering_service.services.order_service import OrderService

logger = logging.getLogger(__name__)

# Module-level caches for Lambda container reuse
_dynamodb_resource: Any | None = None
_identity_service: IdentityService | None = None
_menu_service: MenuService | None = None
_order_service: OrderService | None = None
_fastapi_app: FastAPI | None = None


def get_dynamodb_resource() -> Any:
    """Create or retrieve cached DynamoDB resource.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    global _dynamodb_resource

    if _dynamodb_resource is not None:
        return _dynamodb_resource

    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        _dynamodb_resource = boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "dummy"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "dummy"),
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        _dynamodb_resource = boto3.resource("dynamodb", region_name=region)

    return _dynamodb_resource


def get_cors_origins() -> list[str]:
    """Read allowed front-end origins from CLIENT_URLS (comma separated)."""
    origins_str = os.getenv("CLIENT_URLS", "http://localhost:5173")
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


def get_identity_service() -> IdentityService:
    """Create or retrieve cached identity service.

    Raises:
        ValueError: If JWT_SECRET is not configured
    """
    global _identity_service

    if _identity_service is not None:
        return _identity_service

    jwt_secret = os.getenv("JWT_SECRET")
    if not jwt_secret:
        raise ValueError("JWT_SECRET must be set in environment")

    user_repository = UserRepository(
        dynamodb_resource=get_dynamodb_resource(),
        users_table_name=os.getenv("DYNAMODB_USERS_TABLE", "canteen-users"),
        admins_table_name=os.getenv("DYNAMODB_ADMINS_TABLE", "canteen-admins"),
    )

    _identity_service = IdentityService(
        user_repository=user_repository,
        token_validator=TokenValidator(
            secret=jwt_secret, algorithm=os.getenv("JWT_ALGORITHM", "HS256")
        ),
        max_admins=int(os.getenv("MAX_ADMINS", "2")),
    )

    logger.info("Identity service initialized")
    return _identity_service


def get_menu_service() -> MenuService:
    """Create or retrieve cached menu service."""
    global _menu_service

    if _menu_service is not None:
        return _menu_service

    menu_repository = MenuItemRepository(
        dynamodb_resource=get_dynamodb_resource(),
        table_name=os.getenv("DYNAMODB_MENU_TABLE", "canteen-menu-items"),
    )
    # /tmp is the only writable path in a Lambda container
    image_store = ImageStore(root=os.getenv("UPLOAD_DIR", "/tmp/upload"))

    _menu_service = MenuService(menu_repository=menu_repository, image_store=image_store)

    logger.info("Menu service initialized")
    return _menu_service


def get_order_service() -> OrderService:
    """Create or retrieve cached order service."""
    global _order_service

    if _order_service is not None:
        return _order_service

    order_repository = OrderRepository(
        dynamodb_resource=get_dynamodb_resource(),
        table_name=os.getenv("DYNAMODB_ORDERS_TABLE", "canteen-orders"),
    )

    _order_service = OrderService(
        order_repository=order_repository,
        menu_service=get_menu_service(),
        identity_service=get_identity_service(),
    )

    logger.info("Order service initialized")
    return _order_service


def get_fastapi_app() -> FastAPI:
    """Create or retrieve cached FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    global _fastapi_app

    if _fastapi_app is not None:
        return _fastapi_app

    menu_service = get_menu_service()

    _fastapi_app = create_app(
        menu_service=menu_service,
        order_service=get_order_service(),
        identity_service=get_identity_service(),
        upload_dir=menu_service.image_store.root,
        cors_origins=get_cors_origins(),
    )
    setup_observability(_fastapi_app)

    logger.info("FastAPI application initialized")
    return _fastapi_app


def initialize_lambda_environment() -> None:
    """Initialize Lambda environment with logging.

    Should be called once during Lambda cold start.
    """
    # Configure structured logging
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Lambda environment initialized")
