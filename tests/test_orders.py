"""Tests for the checkout entry point and order persistence."""

from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from core import db, Order, Product, ShippingOption
from discount_codes import DiscountCodeRepository, DiscountInvalid, validate_discount_code
from order_status import IllegalStatusTransition, OrderStatus
from orders import OrderRepository, OrderUpdateConflict, analyze_order
from shop import line_from_product
from system_settings import SettingsRepository


def _lines(*slugs_and_qty):
    return [
        line_from_product(Product.query.filter_by(slug=slug).first(), qty)
        for slug, qty in slugs_and_qty
    ]


def _pickup():
    return ShippingOption.query.filter_by(method="pickup").first()


def _place(lines, discount=None, option=None):
    analysis = analyze_order(lines, discount)
    return OrderRepository().create("Somchai", "somchai@example.com", lines, analysis,
                                    discount=discount, shipping_option=option or _pickup())


def test_analyze_order_reads_current_settings(ctx):
    lines = _lines(("golden-retriever-puppy", 1))
    assert analyze_order(lines).deposit_amount == Decimal("1500.00")

    SettingsRepository().update("deposit.percentage", "20", type="number", category="payment")
    assert analyze_order(lines).deposit_amount == Decimal("3000.00")

    SettingsRepository().update("deposit.min_amount", "20000", type="number", category="payment")
    assert analyze_order(lines).requires_deposit is False


def test_sale_price_used_for_kitten(ctx):
    analysis = analyze_order(_lines(("scottish-fold-kitten", 1)))
    assert analysis.total_amount == Decimal("9500")
    assert analysis.requires_deposit is False


def test_create_persists_analysis(ctx):
    order = _place(_lines(("golden-retriever-puppy", 1), ("pet-bed", 2)))

    stored = db.session.get(Order, order.id)
    assert stored.status == "PENDING"
    assert stored.subtotal == Decimal("15800.00")
    assert stored.total_amount == Decimal("15800.00")
    assert stored.requires_deposit is True
    assert stored.deposit_amount == Decimal("1580.00")
    assert stored.remaining_amount == Decimal("14220.00")
    assert stored.payment_type == "DEPOSIT_PAYMENT"
    assert stored.shipping_method == "pickup"
    assert sorted((it.name, it.price, it.qty) for it in stored.items) == [
        ("Golden Retriever Puppy", Decimal("15000.00"), 1),
        ("Pet Bed", Decimal("400.00"), 2),
    ]


def test_create_counts_discount_usage(ctx):
    lines = _lines(("golden-retriever-puppy", 1))
    discount = validate_discount_code("WELCOME10", Decimal("15000"))
    order = _place(lines, discount)

    assert order.discount_code == "WELCOME10"
    assert order.discount_amount == Decimal("1500.00")
    assert order.deposit_amount == Decimal("1350.00")
    assert DiscountCodeRepository().find_by_code("WELCOME10").usage_count == 1


def test_create_fails_when_code_used_up_meanwhile(ctx):
    DiscountCodeRepository().create("LAST", "fixed", Decimal("100"), usage_limit=1)
    lines = _lines(("chew-toy", 1))
    discount = validate_discount_code("LAST", Decimal("120"))
    _place(lines, discount, option=ShippingOption.query.filter_by(method="delivery").first())

    with pytest.raises(DiscountInvalid) as exc:
        _place(lines, discount, option=ShippingOption.query.filter_by(method="delivery").first())
    assert exc.value.reason == "usage_limit_reached"
    assert Order.query.count() == 1


def test_update_status_follows_table(ctx):
    order = _place(_lines(("chew-toy", 1)))
    repo = OrderRepository()

    updated = repo.update_status(order.id, "CONFIRMED", admin_comment="  called customer ")
    assert updated.status == "CONFIRMED"
    assert updated.admin_comment == "called customer"

    with pytest.raises(IllegalStatusTransition) as exc:
        repo.update_status(order.id, OrderStatus.COMPLETED)
    assert exc.value.current is OrderStatus.CONFIRMED
    assert db.session.get(Order, order.id).status == "CONFIRMED"


def test_update_status_missing_order(ctx):
    assert OrderRepository().update_status(999, "CONFIRMED") is None


def test_update_status_rereads_row(ctx):
    order = _place(_lines(("chew-toy", 1)))
    # another writer cancels the order behind this session's back
    db.session.execute(
        db.update(Order).where(Order.id == order.id)
        .values(status="CANCELLED", version=Order.version + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    with pytest.raises(IllegalStatusTransition) as exc:
        OrderRepository().update_status(order.id, "CONFIRMED")
    assert exc.value.current is OrderStatus.CANCELLED
    assert exc.value.allowed == [OrderStatus.REFUNDED]


def test_update_status_version_conflict(ctx, monkeypatch):
    order = _place(_lines(("chew-toy", 1)))
    repo = OrderRepository()

    def stale_commit():
        raise StaleDataError("version mismatch")

    monkeypatch.setattr(repo.session, "commit", stale_commit)
    with pytest.raises(OrderUpdateConflict):
        repo.update_status(order.id, "CONFIRMED")
