# order_logic.py
"""Cart pricing, discount and deposit policy for pet shop orders."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")
CURRENCY = "THB"

FULL_PAYMENT = "FULL_PAYMENT"
DEPOSIT_PAYMENT = "DEPOSIT_PAYMENT"
PICKUP = "pickup"
DELIVERY = "delivery"

# Live-animal categories, English keys and Thai names
ANIMAL_CATEGORIES = (
    "dogs", "cats", "birds", "fish", "rabbits", "hamsters", "reptiles", "small-pets",
    "สุนัข", "แมว", "นก", "ปลา", "กระต่าย", "แฮมสเตอร์",
    "สัตว์เลื้อยคลาน", "สัตว์เลี้ยงตัวเล็ก",
)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value) -> Decimal:
    """Round a money amount to 2 places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# --- Types ---
@dataclass(frozen=True)
class CartLine:
    product_id: int
    price: Decimal
    quantity: int
    category: str
    sale_price: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None
    name: str = ""


@dataclass(frozen=True)
class DiscountDescriptor:
    type: str  # "percentage" | "fixed"
    value: Decimal
    code: Optional[str] = None


@dataclass(frozen=True)
class DepositSettings:
    min_amount: Decimal = Decimal("10000")
    percentage: Decimal = Decimal("0.10")  # 0..1
    enabled: bool = True


@dataclass(frozen=True)
class OrderAnalysis:
    has_pets: bool
    requires_deposit: bool
    total_amount: Decimal
    total_amount_before_discount: Decimal
    discount_amount: Decimal
    deposit_amount: Optional[Decimal]
    remaining_amount: Optional[Decimal]
    deposit_rate: int
    payment_type: str
    suggested_shipping_method: str
    pet_lines: tuple = field(default_factory=tuple)
    non_pet_lines: tuple = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["pet_lines"] = [line.product_id for line in self.pet_lines]
        data["non_pet_lines"] = [line.product_id for line in self.non_pet_lines]
        return data


# --- Classification & line pricing ---
def is_animal_category(category_label: Optional[str]) -> bool:
    if not category_label:
        return False
    label = category_label.lower()
    return any(token in label for token in ANIMAL_CATEGORIES)


def effective_unit_price(line: CartLine) -> Decimal:
    """Unit price after sale price or percent discount.

    A sale price wins outright and is never combined with the percent
    discount. No rounding happens here.
    """
    if line.sale_price is not None:
        return to_decimal(line.sale_price)
    price = to_decimal(line.price)
    if line.discount_percent is not None and to_decimal(line.discount_percent) > 0:
        pct = to_decimal(line.discount_percent)
        return max(ZERO, price * (1 - pct / 100))
    return price


def cart_subtotal(cart_lines: Iterable[CartLine]) -> Decimal:
    return sum((effective_unit_price(line) * line.quantity for line in cart_lines), ZERO)


def discount_amount(subtotal, discount: Optional[DiscountDescriptor]) -> Decimal:
    if discount is None:
        return ZERO
    value = to_decimal(discount.value)
    if discount.type == "percentage":
        return to_decimal(subtotal) * value / 100
    if discount.type == "fixed":
        return value
    return ZERO


def suggest_shipping_method(has_pets: bool) -> str:
    return PICKUP if has_pets else DELIVERY


# --- Deposit policy ---
def analyze(
    cart_lines: Iterable[CartLine],
    discount: Optional[DiscountDescriptor],
    settings: DepositSettings,
) -> OrderAnalysis:
    lines = list(cart_lines)
    pet_lines = tuple(line for line in lines if is_animal_category(line.category))
    non_pet_lines = tuple(line for line in lines if not is_animal_category(line.category))
    has_pets = len(pet_lines) > 0

    before_discount = cart_subtotal(lines)
    discount_value = discount_amount(before_discount, discount)
    total = max(ZERO, before_discount - discount_value)

    percentage = to_decimal(settings.percentage)
    requires_deposit = bool(has_pets and settings.enabled and total > to_decimal(settings.min_amount))

    deposit = remaining = None
    payment_type = FULL_PAYMENT
    if requires_deposit:
        deposit = round2(total * percentage)
        remaining = round2(total - deposit)
        payment_type = DEPOSIT_PAYMENT

    return OrderAnalysis(
        has_pets=has_pets,
        requires_deposit=requires_deposit,
        total_amount=total,
        total_amount_before_discount=before_discount,
        discount_amount=discount_value,
        deposit_amount=deposit,
        remaining_amount=remaining,
        deposit_rate=int((percentage * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
        payment_type=payment_type,
        suggested_shipping_method=suggest_shipping_method(has_pets),
        pet_lines=pet_lines,
        non_pet_lines=non_pet_lines,
    )


# --- Shipping & payment helpers ---
def filter_shipping_options(candidates, analysis: OrderAnalysis) -> list:
    """Keep the shipping options usable for this cart.

    Live animals only leave the store by pickup; other carts see every option
    not reserved for animals.
    """
    if analysis.has_pets:
        return [option for option in candidates if option.method == PICKUP]
    return [option for option in candidates if not option.for_pets_only]


def calculate_payment_amount(analysis: OrderAnalysis, shipping_fee=ZERO, shipping_discount=ZERO) -> Decimal:
    base = analysis.deposit_amount if analysis.requires_deposit else analysis.total_amount
    amount = to_decimal(base or ZERO) + to_decimal(shipping_fee) - to_decimal(shipping_discount)
    return max(ZERO, round2(amount))


def payment_description(analysis: OrderAnalysis) -> str:
    if analysis.requires_deposit:
        return (
            f"Pay a deposit of {round2(analysis.deposit_amount):,} {CURRENCY} ({analysis.deposit_rate}%), "
            f"remaining {round2(analysis.remaining_amount):,} {CURRENCY} due when you collect your pet"
        )
    return f"Pay in full {round2(analysis.total_amount):,} {CURRENCY}"


def shipping_description(analysis: OrderAnalysis) -> str:
    if analysis.has_pets:
        return "Your order includes a pet, so our staff will hand it over in person by appointment"
    return "Express delivery"
