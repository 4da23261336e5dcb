"""
Domain vocabulary shared by the API, the record store and the scripts.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class OrderStatus(str, Enum):
    """Lifecycle of an order. Orders only ever move one step forward."""

    PENDING = "pending"
    PREPPING = "prepping"
    READY = "ready"
    DELIVERED = "delivered"

    @property
    def next_status(self) -> Optional["OrderStatus"]:
        members = list(OrderStatus)
        index = members.index(self)
        if index + 1 < len(members):
            return members[index + 1]
        return None

    @property
    def is_terminal(self) -> bool:
        return self.next_status is None

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return self.next_status == target


class SubscriptionPlan(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class OptionCategory(str, Enum):
    BASE = "base"
    TOPPING = "topping"
    DRESSING = "dressing"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


def enum_values(enum_cls) -> tuple[str, ...]:
    return tuple(member.value for member in enum_cls)
