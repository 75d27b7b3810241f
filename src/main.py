"""Main application entry point for the canteen ordering service.

This module provides the FastAPI application factory and configuration
for running the service locally or in production.
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


def get_dynamodb_resource() -> Any:
    """Create DynamoDB resource with appropriate configuration.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    # Check for local DynamoDB endpoint (for development)
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # DynamoDB Local accepts any credentials
        access_key = os.getenv("AWS_ACCESS_KEY_ID", "dummy")
        secret_key = os.getenv("AWS_SECRET_ACCESS_KEY", "dummy")
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        # Production - boto3 will use default credential chain (IAM role, env vars, etc.)
        return boto3.resource("dynamodb", region_name=region)


def get_cors_origins() -> list[str]:
    """Read allowed front-end origins from CLIENT_URLS (comma separated)."""
    origins_str = os.getenv("CLIENT_URLS", "http://localhost:5173")
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    This factory function:
    1. Configures logging
    2. Creates the DynamoDB resource
    3. Initializes repositories
    4. Creates services
    5. Creates the FastAPI app
    6. Sets up observability

    Returns:
        Configured FastAPI application instance

    Raises:
        ValueError: If JWT_SECRET is not configured
    """
    # Configure structured logging
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Initializing canteen ordering service...")

    jwt_secret = os.getenv("JWT_SECRET")
    if not jwt_secret:
        raise ValueError("JWT_SECRET must be set in environment")

    # Create DynamoDB resource
    dynamodb_resource = get_dynamodb_resource()

    # Get table names from environment
    menu_table = os.getenv("DYNAMODB_MENU_TABLE", "canteen-menu-items")
    orders_table = os.getenv("DYNAMODB_ORDERS_TABLE", "canteen-orders")
    users_table = os.getenv("DYNAMODB_USERS_TABLE", "canteen-users")
    admins_table = os.getenv("DYNAMODB_ADMINS_TABLE", "canteen-admins")

    # Create repositories
    menu_repository = MenuItemRepository(dynamodb_resource=dynamodb_resource, table_name=menu_table)
    order_repository = OrderRepository(dynamodb_resource=dynamodb_resource, table_name=orders_table)
    user_repository = UserRepository(
        dynamodb_resource=dynamodb_resource,
        users_table_name=users_table,
        admins_table_name=admins_table,
    )

    logger.info(
        f"Repositories configured - menu: {menu_table}, orders: {orders_table}, "
        f"users: {users_table}, admins: {admins_table}"
    )

    # Create services
    upload_dir = os.getenv("UPLOAD_DIR", "upload")
    image_store = ImageStore(root=upload_dir)

    token_validator = TokenValidator(
        secret=jwt_secret, algorithm=os.getenv("JWT_ALGORITHM", "HS256")
    )
    identity_service = IdentityService(
        user_repository=user_repository,
        token_validator=token_validator,
        max_admins=int(os.getenv("MAX_ADMINS", "2")),
    )
    menu_service = MenuService(menu_repository=menu_repository, image_store=image_store)
    order_service = OrderService(
        order_repository=order_repository,
        menu_service=menu_service,
        identity_service=identity_service,
    )

    logger.info("Services initialized")

    app = create_app(
        menu_service=menu_service,
        order_service=order_service,
        identity_service=identity_service,
        upload_dir=upload_dir,
        cors_origins=get_cors_origins(),
    )

    setup_observability(app)

    logger.info("Canteen ordering service initialized successfully")

    return app


# Create the FastAPI application instance (only when not in test mode)
# This prevents the app from being created during test collection
# We use if-else instead of ternary to avoid calling create_application() before checking
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    # Create a placeholder app for test imports
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
