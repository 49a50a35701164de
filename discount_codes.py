# discount_codes.py
"""Promotional discount codes: lookup, validation and usage counting."""
from decimal import Decimal

import structlog

from core import db, DiscountCode, as_naive_utc, utcnow
from order_logic import DiscountDescriptor, round2, to_decimal

logger = structlog.get_logger()

DISCOUNT_TYPES = ("percentage", "fixed")


class DiscountInvalid(Exception):
    """A discount code cannot be applied; ``message`` is shown to the customer."""

    def __init__(self, reason, message):
        super().__init__(message)
        self.reason = reason
        self.message = message


class DiscountCodeRepository:
    def __init__(self, session=None):
        self.session = session or db.session

    def find_by_code(self, code):
        if not code:
            return None
        return self.session.execute(
            db.select(DiscountCode).filter_by(code=code.strip().upper())
        ).scalar_one_or_none()

    def increment_usage(self, code):
        """Count one redemption; False if the code is missing or already at its limit.

        Conditional UPDATE so concurrent redemptions cannot overshoot the limit.
        The caller owns the transaction.
        """
        result = self.session.execute(
            db.update(DiscountCode)
            .where(DiscountCode.code == code.strip().upper())
            .where(db.or_(DiscountCode.usage_limit.is_(None),
                          DiscountCode.usage_count < DiscountCode.usage_limit))
            .values(usage_count=DiscountCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        ok = result.rowcount == 1
        logger.info("discount_usage_incremented" if ok else "discount_usage_rejected", code=code)
        return ok

    def create(self, code, type, value, description=None, min_amount=None,
               valid_from=None, valid_until=None, usage_limit=None, is_active=True):
        code = (code or "").strip().upper()
        if not code:
            raise ValueError("Discount code is required")
        if type not in DISCOUNT_TYPES:
            raise ValueError(f"Discount type must be one of {', '.join(DISCOUNT_TYPES)}")
        value = to_decimal(value)
        if value < 0:
            raise ValueError("Discount value cannot be negative")
        if type == "percentage" and not (0 < value <= 100):
            raise ValueError("Percentage discount must be greater than 0 and at most 100")
        if min_amount is not None and to_decimal(min_amount) < 0:
            raise ValueError("Minimum amount cannot be negative")
        if usage_limit is not None and int(usage_limit) < 0:
            raise ValueError("Usage limit cannot be negative")
        valid_from, valid_until = as_naive_utc(valid_from), as_naive_utc(valid_until)
        if valid_from and valid_until and valid_until < valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.find_by_code(code) is not None:
            raise ValueError(f"Discount code {code} already exists")

        record = DiscountCode(
            code=code, type=type, value=value, description=description,
            min_amount=to_decimal(min_amount) if min_amount is not None else None,
            valid_from=valid_from, valid_until=valid_until,
            usage_limit=int(usage_limit) if usage_limit is not None else None,
            usage_count=0, is_active=is_active,
        )
        self.session.add(record)
        self.session.commit()
        logger.info("discount_code_created", code=code, type=type, value=str(value))
        return record


def check_discount_code(record, subtotal, now=None) -> DiscountDescriptor:
    """Run the ordered checklist against a stored code and return its descriptor.

    Raises DiscountInvalid with the first failing reason.
    """
    now = now or utcnow()
    if record is None:
        raise DiscountInvalid("invalid_code", "Invalid discount code")
    if not record.is_active:
        raise DiscountInvalid("inactive", "This discount code is not active")
    if record.valid_from is not None and record.valid_from > now:
        raise DiscountInvalid("not_yet_valid", "This discount code is not valid yet")
    if record.valid_until is not None and record.valid_until < now:
        raise DiscountInvalid("expired", "This discount code has expired")
    if record.usage_limit is not None and record.usage_count >= record.usage_limit:
        raise DiscountInvalid("usage_limit_reached", "This discount code has reached its usage limit")
    if record.min_amount is not None and to_decimal(subtotal) < to_decimal(record.min_amount):
        raise DiscountInvalid(
            "below_minimum",
            f"Order is below the minimum amount of {round2(record.min_amount)} for this code",
        )
    return DiscountDescriptor(type=record.type, value=Decimal(record.value), code=record.code)


def validate_discount_code(code, subtotal, repository=None, now=None) -> DiscountDescriptor:
    repository = repository or DiscountCodeRepository()
    try:
        return check_discount_code(repository.find_by_code(code), subtotal, now=now)
    except DiscountInvalid as e:
        logger.info("discount_rejected", code=code, reason=e.reason)
        raise
