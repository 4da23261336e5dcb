"""
Pydantic schemas for the salad bar API.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from shared.types import OptionCategory, OrderStatus, SubscriptionPlan


class MenuResponse(BaseModel):
    salads: List[dict]
    options: List[dict]


class OrderPayload(BaseModel):
    salad_id: str = Field(..., min_length=1)
    # category -> option name or id; toppings may list several
    custom: Dict[OptionCategory, Union[str, List[str]]] = Field(default_factory=dict)
    delivery: bool = False


class OrderResponse(BaseModel):
    message: str
    order_id: str
    total: float


class OrderListResponse(BaseModel):
    orders: List[dict]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderRecordResponse(BaseModel):
    order: dict


class SubscriptionPayload(BaseModel):
    plan: SubscriptionPlan
    salads_per_cycle: int = Field(
        ...,
        ge=1,
        strict=True,
        validation_alias=AliasChoices("salads_per_cycle", "salads_per_week"),
    )


class SubscriptionResponse(BaseModel):
    message: str
    sub_id: str


class SubscriptionListResponse(BaseModel):
    subscriptions: List[dict]


class SubscriptionActiveUpdate(BaseModel):
    active: bool


class SubscriptionRecordResponse(BaseModel):
    subscription: dict


class LoyaltyResponse(BaseModel):
    points: int
    salad_streak: int


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    token: str
    user: dict


class SaladImageResponse(BaseModel):
    salad_id: str
    image: str
    image_url: str


class SaladPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    ingredients: List[str] = Field(default_factory=list)
    is_default: bool = True
    available: bool = True
    category: Optional[str] = None
    calories: Optional[float] = Field(default=None, ge=0)


class SaladUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    ingredients: Optional[List[str]] = None
    is_default: Optional[bool] = None
    available: Optional[bool] = None
    category: Optional[str] = None
    calories: Optional[float] = Field(default=None, ge=0)


class SaladRecordResponse(BaseModel):
    salad: dict


class OptionPayload(BaseModel):
    category: OptionCategory
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(default=0, ge=0)
    available: bool = True


class OptionUpdate(BaseModel):
    category: Optional[OptionCategory] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[float] = Field(default=None, ge=0)
    available: Optional[bool] = None


class OptionRecordResponse(BaseModel):
    option: dict


class DeleteResponse(BaseModel):
    deleted: str


class HealthResponse(BaseModel):
    status: str
    collections: List[str]
