# order_status.py
"""Order lifecycle: statuses, legal transitions and the admin "advance" hint."""
from __future__ import annotations

import enum
from typing import Optional

from order_logic import DEPOSIT_PAYMENT


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAID = "PAID"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class IllegalStatusTransition(Exception):
    def __init__(self, current: OrderStatus, requested: OrderStatus, allowed: list[OrderStatus]) -> None:
        allowed_names = ", ".join(s.value for s in allowed) or "none"
        super().__init__(
            f"Cannot change order status from {current.value} to {requested.value} "
            f"(allowed: {allowed_names})"
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed


S = OrderStatus

# label, description, priority; priority drives progress display only
STATUS_INFO: dict[OrderStatus, dict] = {
    S.PENDING: {"label": "Awaiting confirmation", "description": "Order placed, waiting for the shop to confirm", "priority": 1},
    S.CONFIRMED: {"label": "Confirmed", "description": "The shop has confirmed the order", "priority": 2},
    S.PAYMENT_PENDING: {"label": "Awaiting payment", "description": "Waiting for the deposit or payment to be checked", "priority": 3},
    S.PAID: {"label": "Paid", "description": "Payment received", "priority": 4},
    S.PREPARING: {"label": "Preparing", "description": "Preparing the items or the pet for hand-over", "priority": 5},
    S.READY_FOR_PICKUP: {"label": "Ready for pickup", "description": "Ready to be collected or handed over at the store", "priority": 6},
    S.SHIPPED: {"label": "Shipped", "description": "Handed to the courier", "priority": 7},
    S.OUT_FOR_DELIVERY: {"label": "Out for delivery", "description": "The courier is on the way", "priority": 8},
    S.DELIVERED: {"label": "Delivered", "description": "Delivered to the customer", "priority": 9},
    S.COMPLETED: {"label": "Completed", "description": "Order finished", "priority": 10},
    S.CANCELLED: {"label": "Cancelled", "description": "Order was cancelled", "priority": 98},
    S.REFUNDED: {"label": "Refunded", "description": "Payment was refunded", "priority": 99},
}

STATUS_TRANSITIONS: dict[OrderStatus, tuple[OrderStatus, ...]] = {
    S.PENDING: (S.CONFIRMED, S.CANCELLED),
    S.CONFIRMED: (S.PAYMENT_PENDING, S.PAID, S.PREPARING, S.CANCELLED),
    S.PAYMENT_PENDING: (S.PAID, S.CANCELLED),
    S.PAID: (S.PREPARING, S.CANCELLED),
    S.PREPARING: (S.READY_FOR_PICKUP, S.SHIPPED, S.CANCELLED),
    S.READY_FOR_PICKUP: (S.COMPLETED, S.CANCELLED),
    S.SHIPPED: (S.OUT_FOR_DELIVERY, S.DELIVERED),
    # a failed delivery attempt goes back to SHIPPED
    S.OUT_FOR_DELIVERY: (S.DELIVERED, S.SHIPPED),
    S.DELIVERED: (S.COMPLETED,),
    S.COMPLETED: (),
    S.CANCELLED: (S.REFUNDED,),
    S.REFUNDED: (),
}

CANCELLED_FAMILY = frozenset({S.CANCELLED, S.REFUNDED})

SELF_PICKUP_MARKERS = ("pickup", "รับด้วยตัวเอง")

for _table in (STATUS_INFO, STATUS_TRANSITIONS):
    _missing = set(OrderStatus) - set(_table)
    if _missing:
        raise RuntimeError(f"status table is missing {sorted(s.value for s in _missing)}")


def parse_status(value) -> OrderStatus:
    """Coerce a status name to OrderStatus; raises ValueError for unknown names."""
    if isinstance(value, OrderStatus):
        return value
    return OrderStatus(str(value).strip().upper())


def can_transition_to(current, target) -> bool:
    return parse_status(target) in STATUS_TRANSITIONS[parse_status(current)]


def get_available_transitions(current) -> list[OrderStatus]:
    return list(STATUS_TRANSITIONS[parse_status(current)])


def ensure_transition(current, target) -> None:
    current, target = parse_status(current), parse_status(target)
    if not can_transition_to(current, target):
        raise IllegalStatusTransition(current, target, get_available_transitions(current))


def is_self_pickup(shipping_method: Optional[str]) -> bool:
    if not shipping_method:
        return False
    method = shipping_method.lower()
    return any(marker in method for marker in SELF_PICKUP_MARKERS)


def get_next_recommended_status(
    current,
    requires_deposit: bool = False,
    shipping_method: Optional[str] = None,
    payment_type: Optional[str] = None,
) -> Optional[OrderStatus]:
    """Single suggested next step for the admin "advance" action.

    Advisory only: callers still go through ensure_transition before writing.
    """
    current = parse_status(current)
    if current is S.PENDING:
        return S.CONFIRMED
    if current is S.CONFIRMED:
        if requires_deposit and payment_type == DEPOSIT_PAYMENT:
            return S.PAYMENT_PENDING
        return S.PAID
    if current is S.PAYMENT_PENDING:
        return S.PAID
    if current is S.PAID:
        return S.PREPARING
    if current is S.PREPARING:
        return S.READY_FOR_PICKUP if is_self_pickup(shipping_method) else S.SHIPPED
    if current is S.READY_FOR_PICKUP:
        return S.COMPLETED
    if current is S.SHIPPED:
        return S.OUT_FOR_DELIVERY
    if current is S.OUT_FOR_DELIVERY:
        return S.DELIVERED
    if current is S.DELIVERED:
        return S.COMPLETED
    if current in (S.COMPLETED, S.CANCELLED, S.REFUNDED):
        return None
    raise ValueError(f"no recommendation rule for {current.value}")


def is_terminal(status) -> bool:
    return not STATUS_TRANSITIONS[parse_status(status)]


def is_cancelled_family(status) -> bool:
    return parse_status(status) in CANCELLED_FAMILY


def get_status_info(status) -> dict:
    return STATUS_INFO[parse_status(status)]


def get_all_statuses() -> list[OrderStatus]:
    return sorted(OrderStatus, key=lambda s: STATUS_INFO[s]["priority"])


def get_status_progress(status) -> int:
    status = parse_status(status)
    if is_cancelled_family(status):
        return 0
    max_priority = max(
        info["priority"] for s, info in STATUS_INFO.items() if s not in CANCELLED_FAMILY
    )
    return round(STATUS_INFO[status]["priority"] / max_priority * 100)
