# shop.py
from flask import Blueprint, jsonify, request, session
from decimal import Decimal, InvalidOperation

from core import db, Product, ShippingOption, FREESHIP_CODE
from discount_codes import DiscountInvalid, validate_discount_code
from order_logic import (
    CURRENCY, CartLine, cart_subtotal, filter_shipping_options, calculate_payment_amount,
    payment_description, shipping_description,
)
from order_status import get_status_info, get_status_progress
from orders import OrderRepository, analyze_order

shop_bp = Blueprint("shop", __name__)


# --- Helpers (storefront-specific) ---
def get_cart():
    return session.setdefault("cart", {})  # slug -> qty


def line_from_product(product, qty):
    return CartLine(
        product_id=product.id,
        name=product.name,
        price=Decimal(str(product.price)),
        sale_price=Decimal(str(product.sale_price)) if product.sale_price is not None else None,
        discount_percent=Decimal(str(product.discount_percent)) if product.discount_percent is not None else None,
        quantity=qty,
        category=product.category,
    )


def session_cart_lines():
    lines = []
    for slug, qty in get_cart().items():
        product = Product.query.filter_by(slug=slug).first()
        if not product:
            continue
        lines.append(line_from_product(product, int(qty)))
    return lines


def cart_lines_from_payload(items):
    """Build cart lines from ``[{"product_id"|"slug": ..., "quantity": n}]``; raises ValueError."""
    if not isinstance(items, list):
        raise ValueError("Invalid cart items")
    lines = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("Invalid cart item")
        if "product_id" in item:
            product = db.session.get(Product, item["product_id"])
        else:
            product = Product.query.filter_by(slug=item.get("slug")).first()
        if not product:
            raise ValueError("Product not found")
        try:
            qty = int(item.get("quantity", 1))
        except (TypeError, ValueError):
            raise ValueError("Invalid quantity")
        if qty < 1:
            raise ValueError("Quantity must be at least 1")
        lines.append(line_from_product(product, qty))
    return lines


def active_shipping_options():
    return (ShippingOption.query.filter_by(is_active=True)
            .order_by(ShippingOption.sort_order, ShippingOption.id).all())


def discount_error(e):
    status = 404 if e.reason == "invalid_code" else 400
    return jsonify({"error": e.message, "reason": e.reason}), status


def analysis_payload(lines, discount):
    analysis = analyze_order(lines, discount)
    options = filter_shipping_options(active_shipping_options(), analysis)
    data = analysis.to_dict()
    data["discount_code"] = discount.code if discount else None
    data["currency"] = CURRENCY
    data["payment_description"] = payment_description(analysis)
    data["shipping_description"] = shipping_description(analysis)
    data["amount_due"] = calculate_payment_amount(analysis)
    data["shipping_options"] = [o.to_dict() for o in options]
    return data


# --- Routes: Cart ---
@shop_bp.route("/cart/add/<slug>", methods=["POST"])
def add_to_cart(slug):
    product = Product.query.filter_by(slug=slug).first()
    if not product:
        return jsonify({"error": "Product not found"}), 404
    body = request.get_json(silent=True) or {}
    try:
        qty = max(1, int(body.get("quantity", 1)))
    except (TypeError, ValueError):
        return jsonify({"error": "Invalid quantity"}), 400
    cart = get_cart()
    cart[slug] = int(cart.get(slug, 0)) + qty
    session["cart"] = cart
    return jsonify({"cart": cart})


@shop_bp.route("/cart/remove/<slug>", methods=["POST"])
def remove(slug):
    cart = get_cart()
    if slug in cart:
        del cart[slug]
        session["cart"] = cart
    return jsonify({"cart": cart})


@shop_bp.route("/cart")
def cart_view():
    lines = session_cart_lines()
    promo_code = session.get("promo_code")
    discount, promo_msg = None, None
    if promo_code:
        try:
            discount = validate_discount_code(promo_code, cart_subtotal(lines))
        except DiscountInvalid as e:
            promo_msg = e.message
    data = analysis_payload(lines, discount)
    data["cart"] = get_cart()
    data["promo_code"] = promo_code
    data["promo_msg"] = promo_msg
    return jsonify(data)


@shop_bp.route("/apply-promo", methods=["POST"])
def apply_promo_route():
    body = request.get_json(silent=True) or {}
    code = (body.get("code") or request.form.get("promo", "")).strip()
    if not code:
        session["promo_code"] = None
        return jsonify({"promo_code": None})
    try:
        discount = validate_discount_code(code, cart_subtotal(session_cart_lines()))
    except DiscountInvalid as e:
        return discount_error(e)
    session["promo_code"] = discount.code
    return jsonify({"promo_code": discount.code})


# --- Routes: Checkout API ---
@shop_bp.route("/api/analyze-order", methods=["POST"])
def analyze_order_route():
    body = request.get_json(silent=True) or {}
    try:
        lines = cart_lines_from_payload(body.get("items"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    discount = None
    if body.get("discount_code"):
        try:
            discount = validate_discount_code(body["discount_code"], cart_subtotal(lines))
        except DiscountInvalid as e:
            return discount_error(e)
    return jsonify(analysis_payload(lines, discount))


@shop_bp.route("/api/discount-codes/validate", methods=["POST"])
def validate_discount_route():
    body = request.get_json(silent=True) or {}
    code = (body.get("code") or "").strip()
    if not code:
        return jsonify({"error": "Discount code is required"}), 400
    try:
        subtotal = Decimal(str(body.get("subtotal", 0)))
    except InvalidOperation:
        return jsonify({"error": "Invalid subtotal"}), 400
    if not subtotal.is_finite() or subtotal < 0:
        return jsonify({"error": "Invalid subtotal"}), 400
    try:
        discount = validate_discount_code(code, subtotal)
    except DiscountInvalid as e:
        return discount_error(e)
    return jsonify({"valid": True, "discount_code": {"code": discount.code, "type": discount.type, "value": discount.value}})


@shop_bp.route("/api/shipping-options")
def shipping_options():
    return jsonify([o.to_dict() for o in active_shipping_options()])


@shop_bp.route("/checkout", methods=["POST"])
def checkout():
    body = request.get_json(silent=True) or {}
    name = (body.get("name") or "").strip()
    email = (body.get("email") or "").strip()
    if not name or not email:
        return jsonify({"error": "Please provide name and email."}), 400

    try:
        lines = cart_lines_from_payload(body["items"]) if "items" in body else session_cart_lines()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not lines:
        return jsonify({"error": "Your cart is empty."}), 400

    code = body.get("discount_code", session.get("promo_code"))
    discount = None
    if code:
        try:
            discount = validate_discount_code(code, cart_subtotal(lines))
        except DiscountInvalid as e:
            return discount_error(e)

    analysis = analyze_order(lines, discount)
    allowed = filter_shipping_options(active_shipping_options(), analysis)
    option = next((o for o in allowed if o.id == body.get("shipping_option_id")), None)
    if option is None:
        return jsonify({"error": "Please choose a shipping option available for this order.",
                        "shipping_options": [o.to_dict() for o in allowed]}), 400

    fee = Decimal(str(option.price))
    shipping_discount = fee if discount and discount.code == FREESHIP_CODE else Decimal("0")
    try:
        order = OrderRepository().create(name, email, lines, analysis, discount=discount,
                                         shipping_option=option, shipping_fee=fee,
                                         shipping_discount=shipping_discount)
    except DiscountInvalid as e:
        return discount_error(e)

    session["cart"] = {}
    session["promo_code"] = None
    session["last_order_number"] = order.order_number
    return jsonify({
        "order": order.to_dict(),
        "amount_due": calculate_payment_amount(analysis, fee, shipping_discount),
        "payment_description": payment_description(analysis),
        "shipping_description": shipping_description(analysis),
    }), 201


@shop_bp.route("/api/orders/<order_number>")
def receipt(order_number):
    order = OrderRepository().get_by_number(order_number)
    if not order:
        return jsonify({"error": "Order not found"}), 404
    data = order.to_dict()
    data["status_info"] = get_status_info(order.status)
    data["progress"] = get_status_progress(order.status)
    return jsonify(data)
