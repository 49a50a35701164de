"""Tests for the order status transition table and recommendations."""

import pytest

from order_logic import DEPOSIT_PAYMENT, FULL_PAYMENT
from order_status import (
    IllegalStatusTransition,
    OrderStatus as S,
    can_transition_to,
    ensure_transition,
    get_all_statuses,
    get_available_transitions,
    get_next_recommended_status,
    get_status_progress,
    is_cancelled_family,
    is_self_pickup,
    is_terminal,
    parse_status,
)

EXPECTED = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED},
    S.CONFIRMED: {S.PAYMENT_PENDING, S.PAID, S.PREPARING, S.CANCELLED},
    S.PAYMENT_PENDING: {S.PAID, S.CANCELLED},
    S.PAID: {S.PREPARING, S.CANCELLED},
    S.PREPARING: {S.READY_FOR_PICKUP, S.SHIPPED, S.CANCELLED},
    S.READY_FOR_PICKUP: {S.COMPLETED, S.CANCELLED},
    S.SHIPPED: {S.OUT_FOR_DELIVERY, S.DELIVERED},
    S.OUT_FOR_DELIVERY: {S.DELIVERED, S.SHIPPED},
    S.DELIVERED: {S.COMPLETED},
    S.CANCELLED: {S.REFUNDED},
    S.COMPLETED: set(),
    S.REFUNDED: set(),
}


def test_twelve_statuses():
    assert len(S) == 12


@pytest.mark.parametrize("current", list(S))
def test_transition_table_is_closed(current):
    for target in S:
        assert can_transition_to(current, target) == (target in EXPECTED[current])


def test_terminal_statuses():
    assert [s for s in S if is_terminal(s)] == [S.COMPLETED, S.REFUNDED]
    assert get_available_transitions(S.COMPLETED) == []
    assert get_available_transitions(S.REFUNDED) == []


def test_accepts_status_names():
    assert can_transition_to("pending", "CONFIRMED")
    assert parse_status(" paid ") is S.PAID
    with pytest.raises(ValueError):
        parse_status("PROCESSING")


def test_delivered_cannot_go_back_to_preparing():
    assert not can_transition_to(S.DELIVERED, S.PREPARING)
    with pytest.raises(IllegalStatusTransition) as exc:
        ensure_transition(S.DELIVERED, S.PREPARING)

    assert exc.value.current is S.DELIVERED
    assert exc.value.requested is S.PREPARING
    assert exc.value.allowed == [S.COMPLETED]
    assert "DELIVERED" in str(exc.value) and "PREPARING" in str(exc.value)


def test_failed_delivery_reverts_to_shipped():
    ensure_transition(S.OUT_FOR_DELIVERY, S.SHIPPED)


class TestRecommendation:
    def test_deposit_order_waits_for_payment(self):
        assert get_next_recommended_status(
            S.CONFIRMED, requires_deposit=True, payment_type=DEPOSIT_PAYMENT
        ) is S.PAYMENT_PENDING

    def test_full_payment_goes_to_paid(self):
        assert get_next_recommended_status(S.CONFIRMED, payment_type=FULL_PAYMENT) is S.PAID
        assert get_next_recommended_status(
            S.CONFIRMED, requires_deposit=True, payment_type=FULL_PAYMENT
        ) is S.PAID

    @pytest.mark.parametrize("method", ["pickup", "self_pickup", "รับด้วยตัวเอง"])
    def test_pickup_orders_become_ready_for_pickup(self, method):
        assert get_next_recommended_status(S.PREPARING, shipping_method=method) is S.READY_FOR_PICKUP

    def test_delivery_orders_ship(self):
        assert get_next_recommended_status(S.PREPARING, shipping_method="delivery") is S.SHIPPED
        assert get_next_recommended_status(S.PREPARING) is S.SHIPPED

    @pytest.mark.parametrize("current,expected", [
        (S.PENDING, S.CONFIRMED),
        (S.PAYMENT_PENDING, S.PAID),
        (S.PAID, S.PREPARING),
        (S.READY_FOR_PICKUP, S.COMPLETED),
        (S.SHIPPED, S.OUT_FOR_DELIVERY),
        (S.OUT_FOR_DELIVERY, S.DELIVERED),
        (S.DELIVERED, S.COMPLETED),
        (S.COMPLETED, None),
        (S.CANCELLED, None),
        (S.REFUNDED, None),
    ])
    def test_fixed_steps(self, current, expected):
        assert get_next_recommended_status(current) == expected

    @pytest.mark.parametrize("current", list(S))
    def test_recommendation_is_always_legal(self, current):
        for kwargs in (
            {"requires_deposit": True, "payment_type": DEPOSIT_PAYMENT, "shipping_method": "pickup"},
            {"requires_deposit": False, "payment_type": FULL_PAYMENT, "shipping_method": "delivery"},
        ):
            target = get_next_recommended_status(current, **kwargs)
            if target is not None:
                assert can_transition_to(current, target)


def test_cancelled_family():
    assert is_cancelled_family(S.CANCELLED)
    assert is_cancelled_family(S.REFUNDED)
    assert not is_cancelled_family(S.COMPLETED)


def test_progress():
    assert get_status_progress(S.PENDING) == 10
    assert get_status_progress(S.PREPARING) == 50
    assert get_status_progress(S.COMPLETED) == 100
    assert get_status_progress(S.CANCELLED) == 0
    assert get_status_progress(S.REFUNDED) == 0


def test_all_statuses_sorted_by_priority():
    statuses = get_all_statuses()
    assert statuses[0] is S.PENDING
    assert statuses[-2:] == [S.CANCELLED, S.REFUNDED]


def test_self_pickup_detection():
    assert is_self_pickup("Pickup")
    assert not is_self_pickup(None)
    assert not is_self_pickup("delivery")
