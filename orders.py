# orders.py
"""Checkout entry point and order persistence."""
import uuid

import structlog
from sqlalchemy.orm.exc import StaleDataError

from core import db, Order, OrderItem
from discount_codes import DiscountCodeRepository, DiscountInvalid
from order_logic import analyze, effective_unit_price, round2
from order_status import IllegalStatusTransition, OrderStatus, ensure_transition, parse_status
from system_settings import SettingsRepository

logger = structlog.get_logger()


class OrderUpdateConflict(Exception):
    """Another request changed the order between read and write."""


def analyze_order(cart_lines, discount=None, settings_repository=None):
    """Analyze a cart with the deposit settings currently stored."""
    settings = (settings_repository or SettingsRepository()).get_deposit_settings()
    return analyze(cart_lines, discount, settings)


class OrderRepository:
    def __init__(self, session=None, discount_codes=None):
        self.session = session or db.session
        self.discount_codes = discount_codes or DiscountCodeRepository(self.session)

    def get(self, order_id):
        return self.session.get(Order, order_id)

    def get_by_number(self, order_number):
        return self.session.execute(
            db.select(Order).filter_by(order_number=order_number)
        ).scalar_one_or_none()

    def create(self, name, email, cart_lines, analysis, discount=None,
               shipping_option=None, shipping_fee=0, shipping_discount=0):
        """Persist a new PENDING order from an analysis snapshot.

        A discount code's usage counter is bumped in the same transaction; if
        the code hit its limit meanwhile, nothing is written.
        """
        order = Order(
            order_number=str(uuid.uuid4())[:8].upper(),
            name=name,
            email=email,
            subtotal=round2(analysis.total_amount_before_discount),
            discount_code=discount.code if discount else None,
            discount_amount=round2(analysis.total_amount_before_discount - analysis.total_amount),
            total_amount=round2(analysis.total_amount),
            shipping_fee=shipping_fee,
            shipping_discount=shipping_discount,
            requires_deposit=analysis.requires_deposit,
            deposit_amount=analysis.deposit_amount,
            remaining_amount=analysis.remaining_amount,
            payment_type=analysis.payment_type,
            shipping_option_id=shipping_option.id if shipping_option else None,
            shipping_method=shipping_option.method if shipping_option else analysis.suggested_shipping_method,
            status=OrderStatus.PENDING.value,
        )
        self.session.add(order)
        self.session.flush()
        for line in cart_lines:
            self.session.add(OrderItem(
                order_id_fk=order.id,
                product_id=line.product_id,
                name=line.name,
                price=round2(effective_unit_price(line)),
                qty=line.quantity,
            ))
        if discount is not None and discount.code:
            if not self.discount_codes.increment_usage(discount.code):
                self.session.rollback()
                raise DiscountInvalid("usage_limit_reached", "This discount code has reached its usage limit")
        self.session.commit()
        logger.info("order_created", order_number=order.order_number, total=str(order.total_amount),
                    payment_type=order.payment_type, requires_deposit=order.requires_deposit)
        return order

    def update_status(self, order_id, new_status, admin_comment=None):
        """Move an order to ``new_status`` if the transition table allows it.

        The row is read under a lock and written with a version check, so two
        writers starting from the same status cannot both succeed.
        """
        new_status = parse_status(new_status)
        order = self.session.execute(
            db.select(Order).filter_by(id=order_id).with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            return None
        current = order.status
        try:
            ensure_transition(current, new_status)
        except IllegalStatusTransition:
            self.session.rollback()
            logger.warning("status_transition_rejected", order_id=order_id,
                           current=current, requested=new_status.value)
            raise
        order.status = new_status.value
        if admin_comment is not None:
            order.admin_comment = admin_comment.strip() or None
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            logger.warning("status_update_conflict", order_id=order_id, requested=new_status.value)
            raise OrderUpdateConflict(f"Order {order_id} was modified by another request")
        logger.info("status_changed", order_id=order_id, previous=current, status=new_status.value)
        return order
