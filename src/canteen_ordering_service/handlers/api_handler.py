"""FastAPI application exposing the menu, order and identity endpoints."""

import logging
from pathlib import Path
from typing import Any, TypeVar

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from canteen_ordering_service.auth.api_dependencies import (
    ensure_admin,
    ensure_self_or_admin,
    get_bearer_token,
)
from canteen_ordering_service.errors import AuthError, CanteenError, ValidationError
from canteen_ordering_service.models.common import CAMEL_CASE_CONFIG
from canteen_ordering_service.models.menu_models import (
    AvailabilityUpdate,
    MenuCategory,
    MenuItem,
    MenuItemCreate,
    MenuItemFilter,
    MenuItemUpdate,
)
from canteen_ordering_service.models.order_models import (
    OrderAnalytics,
    OrderCreateRequest,
    OrderStats,
    OrderView,
    StatusUpdateRequest,
)
from canteen_ordering_service.models.user_models import (
    AdminAvailability,
    CallerIdentity,
    UserPage,
)
from canteen_ordering_service.services.identity_service import IdentityService
from canteen_ordering_service.services.image_store import ImageUpload
from canteen_ordering_service.services.menu_service import MenuService
from canteen_ordering_service.services.order_service import OrderService

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class OrderResponse(BaseModel):
    """Response for order writes."""

    success: bool = True
    message: str
    order: OrderView


class CountResponse(BaseModel):
    success: bool = True
    count: int


class StatsResponse(BaseModel):
    success: bool = True
    stats: OrderStats


class AnalyticsResponse(BaseModel):
    success: bool = True
    analytics: OrderAnalytics


class UserListResponse(BaseModel):
    success: bool = True
    message: str
    data: UserPage


class AdminAvailabilityResponse(BaseModel):
    model_config = CAMEL_CASE_CONFIG

    success: bool = True
    data: AdminAvailability


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def describe_validation_errors(errors: list[Any]) -> str:
    """Turn pydantic error details into one readable message."""
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def parse_payload(model: type[ModelT], data: dict[str, Any]) -> ModelT:
    """Validate form data into a payload model, reporting failures as ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_errors(e.errors())) from e


def menu_form_fields(
    name: str | None = Form(None),
    description: str | None = Form(None),
    category: str | None = Form(None),
    price: str | None = Form(None),
    available: str | None = Form(None),
    is_special: str | None = Form(None, alias="isSpecial"),
    original_price: str | None = Form(None, alias="originalPrice"),
    discount_percentage: str | None = Form(None, alias="discountPercentage"),
    special_badge: str | None = Form(None, alias="specialBadge"),
    special_description: str | None = Form(None, alias="specialDescription"),
    valid_until: str | None = Form(None, alias="validUntil"),
) -> dict[str, str]:
    """Collect the menu item form fields that were actually submitted.

    Empty strings are treated as absent, so a partial update only touches
    the fields the admin filled in.
    """
    submitted = {
        "name": name,
        "description": description,
        "category": category,
        "price": price,
        "available": available,
        "is_special": is_special,
        "original_price": original_price,
        "discount_percentage": discount_percentage,
        "special_badge": special_badge,
        "special_description": special_description,
        "valid_until": valid_until,
    }
    return {key: value for key, value in submitted.items() if value not in (None, "")}


async def read_upload(image: UploadFile | None) -> ImageUpload | None:
    """Read an uploaded file into memory; browsers send an empty part when no file is chosen."""
    if image is None or not image.filename:
        return None
    content = await image.read()
    return ImageUpload(
        filename=image.filename,
        content_type=image.content_type or "",
        content=content,
    )


def create_app(
    menu_service: MenuService,
    order_service: OrderService,
    identity_service: IdentityService,
    upload_dir: str | Path | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        menu_service: Menu catalog service
        order_service: Order lifecycle service
        identity_service: Caller and account lookups
        upload_dir: Directory served under ``/upload`` (images are not served if None)
        cors_origins: Front-end origins allowed to call the API

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Canteen Ordering API",
        description="Menu, order and dashboard API for the institute canteen",
        version="1.0.0",
    )

    # Store services in app state for access in route handlers
    app.state.menu_service = menu_service
    app.state.order_service = order_service
    app.state.identity_service = identity_service

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    if upload_dir is not None:
        app.mount("/upload", StaticFiles(directory=upload_dir, check_dir=False), name="upload")

    @app.exception_handler(CanteenError)
    async def handle_canteen_error(request: Request, exc: CanteenError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        elif isinstance(exc, AuthError):
            logger.warning(f"{request.method} {request.url.path} unauthorized: {exc.message}")
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(400, describe_validation_errors(list(exc.errors())))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return error_response(500, "Internal server error")

    async def current_caller(token: str = Depends(get_bearer_token)) -> CallerIdentity:
        """Dependency resolving the bearer token to the calling account."""
        caller: CallerIdentity = await app.state.identity_service.resolve_caller(token)
        return caller

    async def admin_caller(caller: CallerIdentity = Depends(current_caller)) -> CallerIdentity:
        """Dependency requiring an admin caller."""
        return ensure_admin(caller)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    # Menu

    @app.get("/api/menu", response_model=list[MenuItem], tags=["Menu"])
    async def list_menu_items(
        category: MenuCategory | None = None,
        search: str | None = None,
        isSpecial: bool | None = None,  # noqa: N803
        available: bool | None = None,
    ) -> list[MenuItem]:
        """List menu items, special offers first, then newest first."""
        item_filter = MenuItemFilter(
            category=category,
            available=available,
            special_only=bool(isSpecial),
            search=search or None,
        )
        items: list[MenuItem] = await app.state.menu_service.list_items(item_filter)
        return items

    @app.get("/api/menu/specials", response_model=list[MenuItem], tags=["Menu"])
    async def list_specials() -> list[MenuItem]:
        """List special offers that have not expired."""
        items: list[MenuItem] = await app.state.menu_service.list_active_specials()
        return items

    @app.get("/api/menu/{item_id}", response_model=MenuItem, tags=["Menu"])
    async def get_menu_item(item_id: str) -> MenuItem:
        item: MenuItem = await app.state.menu_service.get_item(item_id)
        return item

    @app.post("/api/menu", response_model=MenuItem, status_code=201, tags=["Menu"])
    async def create_menu_item(
        fields: dict[str, str] = Depends(menu_form_fields),
        image: UploadFile | None = File(None),
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> MenuItem:
        """Create a menu item from a multipart form with an optional image."""
        payload = parse_payload(MenuItemCreate, fields)
        upload = await read_upload(image)
        item: MenuItem = await app.state.menu_service.create_item(payload, upload)
        return item

    @app.put("/api/menu/{item_id}", response_model=MenuItem, tags=["Menu"])
    async def update_menu_item(
        item_id: str,
        fields: dict[str, str] = Depends(menu_form_fields),
        image: UploadFile | None = File(None),
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> MenuItem:
        """Partially update a menu item; a new image replaces the old one."""
        payload = parse_payload(MenuItemUpdate, fields)
        upload = await read_upload(image)
        item: MenuItem = await app.state.menu_service.update_item(item_id, payload, upload)
        return item

    @app.delete("/api/menu/{item_id}", response_model=MessageResponse, tags=["Menu"])
    async def delete_menu_item(
        item_id: str,
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> MessageResponse:
        await app.state.menu_service.delete_item(item_id)
        return MessageResponse(message="Menu item deleted successfully")

    @app.patch("/api/menu/{item_id}/availability", response_model=MenuItem, tags=["Menu"])
    async def set_menu_item_availability(
        item_id: str,
        body: AvailabilityUpdate,
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> MenuItem:
        item: MenuItem = await app.state.menu_service.set_availability(item_id, body.available)
        return item

    # Orders

    @app.post("/api/orders", response_model=OrderResponse, status_code=201, tags=["Orders"])
    async def create_order(
        body: OrderCreateRequest,
        caller: CallerIdentity = Depends(current_caller),
    ) -> OrderResponse:
        """Place an order for the calling user."""
        ensure_self_or_admin(caller, body.user_id)
        order: OrderView = await app.state.order_service.create_order(body)
        return OrderResponse(message="Order placed successfully", order=order)

    @app.get("/api/orders", response_model=list[OrderView], tags=["Orders"])
    async def list_orders(
        status: str | None = None,
        date: str | None = None,
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> list[OrderView]:
        """List orders, optionally by status and restricted to today (``date=today``)."""
        orders: list[OrderView] = await app.state.order_service.list_orders(
            status=status or None, today=date == "today"
        )
        return orders

    @app.get("/api/orders/today-count", response_model=CountResponse, tags=["Dashboard"])
    async def today_count(_admin: CallerIdentity = Depends(admin_caller)) -> CountResponse:
        count: int = await app.state.order_service.compute_today_count()
        return CountResponse(count=count)

    @app.get("/api/orders/stats", response_model=StatsResponse, tags=["Dashboard"])
    async def order_stats(_admin: CallerIdentity = Depends(admin_caller)) -> StatsResponse:
        stats: OrderStats = await app.state.order_service.compute_stats()
        return StatsResponse(stats=stats)

    @app.get("/api/orders/analytics", response_model=AnalyticsResponse, tags=["Dashboard"])
    async def order_analytics(_admin: CallerIdentity = Depends(admin_caller)) -> AnalyticsResponse:
        analytics: OrderAnalytics = await app.state.order_service.compute_analytics()
        return AnalyticsResponse(analytics=analytics)

    @app.get("/api/orders/recent", response_model=list[OrderView], tags=["Orders"])
    async def recent_orders(caller: CallerIdentity = Depends(current_caller)) -> list[OrderView]:
        """Latest non-cancelled orders of the calling user."""
        orders: list[OrderView] = await app.state.order_service.list_recent_user_orders(
            caller.user_id
        )
        return orders

    @app.get("/api/orders/user/{user_id}", response_model=list[OrderView], tags=["Orders"])
    async def user_orders(
        user_id: str,
        caller: CallerIdentity = Depends(current_caller),
    ) -> list[OrderView]:
        ensure_self_or_admin(caller, user_id)
        orders: list[OrderView] = await app.state.order_service.list_user_orders(user_id)
        return orders

    @app.get("/api/orders/{order_id}", response_model=OrderView, tags=["Orders"])
    async def get_order(
        order_id: str,
        caller: CallerIdentity = Depends(current_caller),
    ) -> OrderView:
        order: OrderView = await app.state.order_service.get_order(order_id)
        ensure_self_or_admin(caller, order.user_id)
        return order

    @app.patch("/api/orders/{order_id}/status", response_model=OrderResponse, tags=["Orders"])
    async def update_order_status(
        order_id: str,
        body: StatusUpdateRequest,
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> OrderResponse:
        """Move an order along the status graph."""
        order: OrderView = await app.state.order_service.transition_status(order_id, body.status)
        return OrderResponse(message="Order status updated", order=order)

    # Accounts

    @app.get(
        "/api/auth/admin/availability",
        response_model=AdminAvailabilityResponse,
        tags=["Accounts"],
    )
    async def admin_availability() -> AdminAvailabilityResponse:
        availability: AdminAvailability = await app.state.identity_service.check_admin_availability()
        return AdminAvailabilityResponse(data=availability)

    @app.get("/api/auth/users/all", response_model=UserListResponse, tags=["Accounts"])
    async def list_users(
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
        _admin: CallerIdentity = Depends(admin_caller),
    ) -> UserListResponse:
        """Faculty accounts with search and pagination."""
        users: UserPage = await app.state.identity_service.list_users(search, page, limit)
        return UserListResponse(message="Users fetched successfully", data=users)

    return app
