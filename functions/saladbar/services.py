"""
Domain operations behind the HTTP routes.

Every function takes the record store (and, where needed, the principal)
explicitly; none of them hold state between calls.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from saladbar.auth import Principal
from saladbar.collection_schemas import SALADS
from saladbar.db import RecordStore, utc_now
from saladbar.errors import BadRequest, PayloadTooLarge, RecordNotFound
from saladbar.schemas import OrderPayload, SubscriptionPayload
from saladbar.storage import StorageClient
from shared.types import OptionCategory, OrderStatus

logger = logging.getLogger(__name__)

DELIVERY_INTERVAL = timedelta(days=7)
ORDER_PLACED_MESSAGE = "Order placed"
SUBSCRIPTION_CREATED_MESSAGE = "Subscription created"


def _with_image_url(salad: dict, storage: StorageClient) -> dict:
    image = salad.get("image")
    salad["image_url"] = storage.presign_get(image) if image else None
    return salad


def fetch_menu(store: RecordStore, storage: StorageClient) -> dict:
    """All salads and all custom options. Either query failing fails the whole call."""
    salads = store.find_records("salads")
    options = store.find_records("custom_options")
    return {
        "salads": [_with_image_url(salad, storage) for salad in salads],
        "options": options,
    }


def create_salad(store: RecordStore, storage: StorageClient, data: dict) -> dict:
    salad = store.create_record("salads", data)
    logger.info("Salad %s (%s) added to the menu", salad["id"], salad["name"])
    return _with_image_url(salad, storage)


def create_option(store: RecordStore, data: dict) -> dict:
    option = store.create_record("custom_options", data)
    logger.info(
        "Option %s (%s %s) added to the menu",
        option["id"],
        option["category"],
        option["name"],
    )
    return option


def _update_menu_item(
    store: RecordStore, collection: str, record_id: str, changes: dict
) -> dict:
    if not changes:
        raise BadRequest("No fields to update")
    if store.get_record(collection, record_id) is None:
        raise RecordNotFound(collection, record_id)
    updated = store.update_record(collection, record_id, changes)
    logger.info("Updated %s %s: %s", collection, record_id, ", ".join(sorted(changes)))
    return updated


def update_salad(
    store: RecordStore, storage: StorageClient, salad_id: str, changes: dict
) -> dict:
    return _with_image_url(_update_menu_item(store, "salads", salad_id, changes), storage)


def update_option(store: RecordStore, option_id: str, changes: dict) -> dict:
    return _update_menu_item(store, "custom_options", option_id, changes)


def delete_menu_item(store: RecordStore, collection: str, record_id: str) -> None:
    # Orders keep their own copy of the selection and total, so they are unaffected.
    store.delete_record(collection, record_id)
    logger.info("Deleted %s %s", collection, record_id)


def _as_list(selection) -> list[str]:
    if isinstance(selection, list):
        return selection
    return [selection]


def _resolve_options(store: RecordStore, category: OptionCategory, selection) -> list[dict]:
    candidates = store.find_records("custom_options", {"category": category.value})
    chosen = []
    for wanted in _as_list(selection):
        match = next(
            (
                option
                for option in candidates
                if wanted in (option["id"], option.get("name"))
            ),
            None,
        )
        if match is None:
            raise BadRequest(f"Unknown {category.value} option {wanted!r}")
        if not match.get("available", True):
            raise BadRequest(f"{category.value.capitalize()} option {wanted!r} is not available")
        chosen.append(match)
    return chosen


def price_order(store: RecordStore, payload: OrderPayload) -> float:
    """Salad price plus the price of every selected option."""
    salad = store.get_record("salads", payload.salad_id)
    if salad is None:
        raise BadRequest(f"Unknown salad {payload.salad_id!r}")
    if not salad.get("available", True):
        raise BadRequest(f"Salad {salad.get('name') or salad['id']!r} is not available")

    total = Decimal(str(salad.get("price") or 0))
    for category, selection in payload.custom.items():
        for option in _resolve_options(store, category, selection):
            total += Decimal(str(option.get("price") or 0))
    return float(total.quantize(Decimal("0.01")))


def place_order(store: RecordStore, principal: Principal, payload: OrderPayload) -> dict:
    total = price_order(store, payload)
    items = {
        "salad_id": payload.salad_id,
        "custom": {
            category.value: selection for category, selection in payload.custom.items()
        },
    }
    order = store.create_record(
        "orders",
        {
            "user_id": principal.id,
            "items": items,
            "total": total,
            "status": OrderStatus.PENDING.value,
            "delivery": payload.delivery,
        },
    )
    logger.info("Order %s placed by %s (total %.2f)", order["id"], principal.id, total)
    return order


def list_orders(store: RecordStore, principal: Principal) -> list[dict]:
    return store.find_records("orders", {"user_id": principal.id}, sort="-created")


def list_all_orders(
    store: RecordStore, status: Optional[OrderStatus] = None
) -> list[dict]:
    """Every customer's orders, newest first, optionally narrowed to one status."""
    filters = {"status": status.value} if status is not None else None
    return store.find_records("orders", filters, sort="-created")


def advance_order_status(store: RecordStore, order_id: str, target: OrderStatus) -> dict:
    order = store.get_record("orders", order_id)
    if order is None:
        raise RecordNotFound("orders", order_id)
    current = OrderStatus(order["status"])
    if not current.can_transition_to(target):
        if current.is_terminal:
            raise BadRequest(f"Order {order_id} is already {current.value}")
        raise BadRequest(
            f"Order {order_id} can move from {current.value} to "
            f"{current.next_status.value}, not {target.value}"
        )
    updated = store.update_record("orders", order_id, {"status": target.value})
    logger.info("Order %s moved %s -> %s", order_id, current.value, target.value)
    return updated


def create_subscription(
    store: RecordStore,
    principal: Principal,
    payload: SubscriptionPayload,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utc_now()
    subscription = store.create_record(
        "subscriptions",
        {
            "user_id": principal.id,
            "plan": payload.plan.value,
            "salads_per_cycle": payload.salads_per_cycle,
            "active": True,
            "next_delivery": now + DELIVERY_INTERVAL,
        },
        now=now,
    )
    logger.info(
        "Subscription %s (%s) created for %s",
        subscription["id"],
        payload.plan.value,
        principal.id,
    )
    return subscription


def list_subscriptions(store: RecordStore, principal: Principal) -> list[dict]:
    return store.find_records("subscriptions", {"user_id": principal.id}, sort="-created")


def cancel_subscription(store: RecordStore, principal: Principal, sub_id: str) -> dict:
    subscription = store.get_record("subscriptions", sub_id)
    # Someone else's subscription is reported exactly like a missing one.
    if subscription is None or subscription["user_id"] != principal.id:
        raise RecordNotFound("subscriptions", sub_id)
    return store.update_record("subscriptions", sub_id, {"active": False})


def set_subscription_active(store: RecordStore, sub_id: str, active: bool) -> dict:
    if store.get_record("subscriptions", sub_id) is None:
        raise RecordNotFound("subscriptions", sub_id)
    updated = store.update_record("subscriptions", sub_id, {"active": active})
    logger.info("Subscription %s active=%s", sub_id, active)
    return updated


def loyalty_for(principal: Principal) -> dict:
    return {"points": principal.points, "salad_streak": principal.salad_streak}


def _safe_filename(filename: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename.rsplit("/", 1)[-1]).strip("._")
    return name or "image"


def ensure_image_size(size: int) -> None:
    max_size = SALADS.get_field("image").max_size
    if max_size is not None and size > max_size:
        raise PayloadTooLarge(f"Image exceeds the {max_size} byte limit")


def attach_salad_image(
    store: RecordStore,
    storage: StorageClient,
    salad_id: str,
    *,
    filename: str,
    content: bytes,
    content_type: Optional[str] = None,
) -> dict:
    if store.get_record("salads", salad_id) is None:
        raise RecordNotFound("salads", salad_id)
    ensure_image_size(len(content))
    if not content:
        raise BadRequest("Image file is empty")

    path = f"salads/{salad_id}/{_safe_filename(filename)}"
    storage.upload_bytes(path, content, content_type)
    salad = store.update_record("salads", salad_id, {"image": path})
    logger.info("Stored image %s for salad %s", path, salad_id)
    return _with_image_url(salad, storage)
