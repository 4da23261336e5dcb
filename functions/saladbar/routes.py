"""
HTTP routes for the salad bar API.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool

from saladbar import services
from saladbar.auth import (
    Principal,
    authenticate,
    create_access_token,
    public_user,
    register_user,
)
from saladbar.config import Settings, get_settings
from saladbar.db import RecordStore
from saladbar.dependencies import (
    get_principal,
    get_record_store,
    get_storage_client,
    require_admin,
)
from saladbar.schemas import (
    AuthResponse,
    DeleteResponse,
    LoginPayload,
    LoyaltyResponse,
    MenuResponse,
    OptionPayload,
    OptionRecordResponse,
    OptionUpdate,
    OrderListResponse,
    OrderPayload,
    OrderRecordResponse,
    OrderResponse,
    OrderStatusUpdate,
    RegisterPayload,
    SaladImageResponse,
    SaladPayload,
    SaladRecordResponse,
    SaladUpdate,
    SubscriptionActiveUpdate,
    SubscriptionListResponse,
    SubscriptionPayload,
    SubscriptionRecordResponse,
    SubscriptionResponse,
)
from saladbar.storage import StorageClient
from shared.types import OrderStatus

router = APIRouter()


def _auth_response(record: dict, settings: Settings) -> AuthResponse:
    token = create_access_token(
        record["id"],
        record.get("role") or "customer",
        secret=settings.secret_key,
        ttl_minutes=settings.token_ttl_minutes,
    )
    return AuthResponse(token=token, user=public_user(record))


@router.get("/menu", response_model=MenuResponse)
def get_menu(
    store: RecordStore = Depends(get_record_store),
    storage: StorageClient = Depends(get_storage_client),
):
    return MenuResponse(**services.fetch_menu(store, storage))


@router.post("/order", response_model=OrderResponse)
def submit_order(
    payload: OrderPayload,
    principal: Principal = Depends(get_principal),
    store: RecordStore = Depends(get_record_store),
):
    order = services.place_order(store, principal, payload)
    return OrderResponse(
        message=services.ORDER_PLACED_MESSAGE,
        order_id=order["id"],
        total=order["total"],
    )


@router.get("/orders", response_model=OrderListResponse)
def my_orders(
    principal: Principal = Depends(get_principal),
    store: RecordStore = Depends(get_record_store),
):
    return OrderListResponse(orders=services.list_orders(store, principal))


@router.post("/subscriptions", response_model=SubscriptionResponse)
def create_subscription(
    payload: SubscriptionPayload,
    principal: Principal = Depends(get_principal),
    store: RecordStore = Depends(get_record_store),
):
    subscription = services.create_subscription(store, principal, payload)
    return SubscriptionResponse(
        message=services.SUBSCRIPTION_CREATED_MESSAGE, sub_id=subscription["id"]
    )


@router.get("/subscriptions", response_model=SubscriptionListResponse)
def my_subscriptions(
    principal: Principal = Depends(get_principal),
    store: RecordStore = Depends(get_record_store),
):
    return SubscriptionListResponse(
        subscriptions=services.list_subscriptions(store, principal)
    )


@router.post(
    "/subscriptions/{sub_id}/cancel", response_model=SubscriptionRecordResponse
)
def cancel_subscription(
    sub_id: str,
    principal: Principal = Depends(get_principal),
    store: RecordStore = Depends(get_record_store),
):
    subscription = services.cancel_subscription(store, principal, sub_id)
    return SubscriptionRecordResponse(subscription=subscription)


@router.get("/loyalty", response_model=LoyaltyResponse)
def loyalty(principal: Principal = Depends(get_principal)):
    return LoyaltyResponse(**services.loyalty_for(principal))


@router.post("/auth/register", response_model=AuthResponse)
def register(
    payload: RegisterPayload,
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
):
    record = register_user(
        store,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        address=payload.address,
    )
    return _auth_response(record, settings)


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: LoginPayload,
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
):
    record = authenticate(store, email=payload.email, password=payload.password)
    return _auth_response(record, settings)


@router.get("/admin/orders", response_model=OrderListResponse)
def all_orders(
    status: Optional[OrderStatus] = None,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    return OrderListResponse(orders=services.list_all_orders(store, status))


@router.patch("/admin/orders/{order_id}/status", response_model=OrderRecordResponse)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    order = services.advance_order_status(store, order_id, payload.status)
    return OrderRecordResponse(order=order)


@router.patch("/admin/subscriptions/{sub_id}", response_model=SubscriptionRecordResponse)
def update_subscription(
    sub_id: str,
    payload: SubscriptionActiveUpdate,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    subscription = services.set_subscription_active(store, sub_id, payload.active)
    return SubscriptionRecordResponse(subscription=subscription)


@router.post("/admin/salads", response_model=SaladRecordResponse)
def add_salad(
    payload: SaladPayload,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
    storage: StorageClient = Depends(get_storage_client),
):
    salad = services.create_salad(store, storage, payload.model_dump(mode="json"))
    return SaladRecordResponse(salad=salad)


@router.patch("/admin/salads/{salad_id}", response_model=SaladRecordResponse)
def edit_salad(
    salad_id: str,
    payload: SaladUpdate,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
    storage: StorageClient = Depends(get_storage_client),
):
    changes = payload.model_dump(mode="json", exclude_unset=True)
    salad = services.update_salad(store, storage, salad_id, changes)
    return SaladRecordResponse(salad=salad)


@router.delete("/admin/salads/{salad_id}", response_model=DeleteResponse)
def remove_salad(
    salad_id: str,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    services.delete_menu_item(store, "salads", salad_id)
    return DeleteResponse(deleted=salad_id)


@router.post("/admin/options", response_model=OptionRecordResponse)
def add_option(
    payload: OptionPayload,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    option = services.create_option(store, payload.model_dump(mode="json"))
    return OptionRecordResponse(option=option)


@router.patch("/admin/options/{option_id}", response_model=OptionRecordResponse)
def edit_option(
    option_id: str,
    payload: OptionUpdate,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    changes = payload.model_dump(mode="json", exclude_unset=True)
    return OptionRecordResponse(option=services.update_option(store, option_id, changes))


@router.delete("/admin/options/{option_id}", response_model=DeleteResponse)
def remove_option(
    option_id: str,
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    services.delete_menu_item(store, "custom_options", option_id)
    return DeleteResponse(deleted=option_id)


@router.post("/admin/salads/{salad_id}/image", response_model=SaladImageResponse)
async def upload_salad_image(
    salad_id: str,
    file: UploadFile = File(...),
    admin: Principal = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
    storage: StorageClient = Depends(get_storage_client),
):
    # Reject on the declared size before buffering the body.
    if file.size is not None:
        services.ensure_image_size(file.size)
    content = await file.read()
    # The store and boto3 calls block, so they run off the event loop.
    salad = await run_in_threadpool(
        services.attach_salad_image,
        store,
        storage,
        salad_id,
        filename=file.filename or "image",
        content=content,
        content_type=file.content_type,
    )
    return SaladImageResponse(
        salad_id=salad["id"], image=salad["image"], image_url=salad["image_url"]
    )
