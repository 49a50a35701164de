# admin.py
from flask import Blueprint, current_app, jsonify, request, session
from datetime import datetime
from decimal import Decimal, InvalidOperation

from core import as_naive_utc
from discount_codes import DiscountCodeRepository
from order_status import (
    IllegalStatusTransition, get_available_transitions, get_next_recommended_status,
    get_status_info, get_status_progress, is_cancelled_family, is_terminal, parse_status,
)
from orders import OrderRepository, OrderUpdateConflict
from system_settings import SettingsRepository

admin_bp = Blueprint("admin", __name__)


def require_admin():
    if session.get("is_admin"):
        return None
    return jsonify({"error": "Admin login required"}), 401


def order_detail(order):
    data = order.to_dict()
    data["status_info"] = get_status_info(order.status)
    data["progress"] = get_status_progress(order.status)
    data["is_terminal"] = is_terminal(order.status)
    data["is_cancelled"] = is_cancelled_family(order.status)
    data["available_transitions"] = get_available_transitions(order.status)
    data["recommended_status"] = get_next_recommended_status(
        order.status,
        requires_deposit=order.requires_deposit,
        shipping_method=order.shipping_method,
        payment_type=order.payment_type,
    )
    return data


def apply_status(order_id, status, admin_comment=None):
    try:
        order = OrderRepository().update_status(order_id, status, admin_comment=admin_comment)
    except IllegalStatusTransition as e:
        return jsonify({
            "error": str(e),
            "current": e.current,
            "requested": e.requested,
            "allowed": e.allowed,
        }), 400
    except OrderUpdateConflict as e:
        return jsonify({"error": str(e)}), 409
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"success": True, "order": order_detail(order)})


def parse_datetime(value):
    if not value:
        return None
    return as_naive_utc(datetime.fromisoformat(value))


def parse_bool(value):
    """JSON booleans as-is; the strings "true"/"false" (any case) are accepted too."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"Expected a boolean, got {value!r}")


# --- Routes: Session ---
@admin_bp.route("/login", methods=["POST"])
def admin_login():
    body = request.get_json(silent=True) or {}
    pwd = body.get("password") or request.form.get("password", "")
    if pwd == current_app.config["ADMIN_PASSWORD"]:
        session["is_admin"] = True
        return jsonify({"success": True})
    return jsonify({"error": "Incorrect password."}), 401


@admin_bp.route("/logout", methods=["POST"])
def admin_logout():
    session.pop("is_admin", None)
    return jsonify({"success": True})


# --- Routes: Orders ---
@admin_bp.route("/orders/<int:order_id>")
def admin_order(order_id):
    if require_admin(): return require_admin()
    order = OrderRepository().get(order_id)
    if not order:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order_detail(order))


@admin_bp.route("/orders/<int:order_id>/status", methods=["PATCH"])
def admin_order_status(order_id):
    if require_admin(): return require_admin()
    body = request.get_json(silent=True) or {}
    try:
        status = parse_status(body.get("status", ""))
    except ValueError:
        return jsonify({"error": "Invalid status value"}), 400
    return apply_status(order_id, status, body.get("admin_comment"))


@admin_bp.route("/orders/<int:order_id>/advance", methods=["POST"])
def admin_order_advance(order_id):
    if require_admin(): return require_admin()
    order = OrderRepository().get(order_id)
    if not order:
        return jsonify({"error": "Order not found"}), 404
    target = get_next_recommended_status(
        order.status,
        requires_deposit=order.requires_deposit,
        shipping_method=order.shipping_method,
        payment_type=order.payment_type,
    )
    if target is None:
        return jsonify({"error": f"No next status for an order that is {order.status}"}), 400
    body = request.get_json(silent=True) or {}
    return apply_status(order_id, target, body.get("admin_comment"))


# --- Routes: Settings & discount codes ---
@admin_bp.route("/system-settings/deposit", methods=["GET", "PUT"])
def admin_deposit_settings():
    if require_admin(): return require_admin()
    repo = SettingsRepository()
    if request.method == "PUT":
        body = request.get_json(silent=True) or {}
        updates = {}
        try:
            if "min_amount" in body:
                min_amount = Decimal(str(body["min_amount"]))
                if not min_amount.is_finite() or min_amount < 0:
                    raise InvalidOperation
                updates["deposit.min_amount"] = (min_amount, "number")
            if "percentage" in body:
                percentage = Decimal(str(body["percentage"]))  # percent, e.g. 10
                if not (0 <= percentage <= 100):
                    raise InvalidOperation
                updates["deposit.percentage"] = (percentage, "number")
            if "enabled" in body:
                updates["deposit.enabled"] = ("true" if parse_bool(body["enabled"]) else "false", "boolean")
        except (InvalidOperation, ValueError):
            return jsonify({"error": "Invalid deposit settings"}), 400
        for key, (value, type_) in updates.items():
            repo.update(key, value, type=type_, category="payment")
    settings = repo.get_deposit_settings()
    return jsonify({
        "min_amount": settings.min_amount,
        "percentage": settings.percentage * 100,
        "enabled": settings.enabled,
    })


@admin_bp.route("/discount-codes", methods=["POST"])
def admin_new_discount_code():
    if require_admin(): return require_admin()
    body = request.get_json(silent=True) or {}
    try:
        record = DiscountCodeRepository().create(
            code=body.get("code"),
            type=body.get("type"),
            value=body.get("value", 0),
            description=body.get("description"),
            min_amount=body.get("min_amount"),
            valid_from=parse_datetime(body.get("valid_from")),
            valid_until=parse_datetime(body.get("valid_until")),
            usage_limit=body.get("usage_limit"),
            is_active=parse_bool(body.get("is_active", True)),
        )
    except InvalidOperation:
        return jsonify({"error": "Invalid discount value"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"id": record.id, "code": record.code, "type": record.type, "value": record.value}), 201
