# core.py
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from decimal import Decimal
from datetime import datetime, timezone
import os

import structlog

# --- DB handle (imported by blueprints and repositories) ---
db = SQLAlchemy()

# --- Constants / Config shared across blueprints ---
FREESHIP_CODE = "FREESHIP"
DEPOSIT_DEFAULTS = {
    "deposit.min_amount": ("10000", "number", "Minimum order total that requires a deposit (THB)"),
    "deposit.percentage": ("10", "number", "Deposit percentage (%)"),
    "deposit.enabled": ("true", "boolean", "Turn deposit payments on or off"),
}


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value):
    """Timestamps are stored as naive UTC; offset-aware values are converted first."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def configure_logging():
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


# --- Models ---
class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(60), nullable=False)  # dogs, cats, accessories, ...
    price = db.Column(db.Numeric(10, 2), nullable=False)
    sale_price = db.Column(db.Numeric(10, 2), nullable=True)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)


class DiscountCode(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(40), unique=True, nullable=False)  # stored upper-case
    description = db.Column(db.String(200), nullable=True)
    type = db.Column(db.String(20), nullable=False)  # percentage | fixed
    value = db.Column(db.Numeric(10, 2), nullable=False)
    min_amount = db.Column(db.Numeric(10, 2), nullable=True)
    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class SystemSetting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="string")
    category = db.Column(db.String(40), nullable=False, default="general")
    description = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ShippingOption(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(200), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    estimated_days = db.Column(db.String(40), nullable=True)
    method = db.Column(db.String(40), nullable=False)  # pickup | delivery
    for_pets_only = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "estimated_days": self.estimated_days,
            "method": self.method,
            "for_pets_only": self.for_pets_only,
        }


class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(12), unique=True, nullable=False)  # short public ID
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    discount_code = db.Column(db.String(40), nullable=True)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    shipping_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    shipping_discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    requires_deposit = db.Column(db.Boolean, nullable=False, default=False)
    deposit_amount = db.Column(db.Numeric(10, 2), nullable=True)
    remaining_amount = db.Column(db.Numeric(10, 2), nullable=True)
    payment_type = db.Column(db.String(20), nullable=False)
    shipping_option_id = db.Column(db.Integer, db.ForeignKey("shipping_option.id"), nullable=True)
    shipping_method = db.Column(db.String(40), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    admin_comment = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version = db.Column(db.Integer, nullable=False)

    items = db.relationship("OrderItem", backref="order", lazy=True)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "name": self.name,
            "email": self.email,
            "subtotal": self.subtotal,
            "discount_code": self.discount_code,
            "discount_amount": self.discount_amount,
            "total_amount": self.total_amount,
            "shipping_fee": self.shipping_fee,
            "shipping_discount": self.shipping_discount,
            "requires_deposit": self.requires_deposit,
            "deposit_amount": self.deposit_amount,
            "remaining_amount": self.remaining_amount,
            "payment_type": self.payment_type,
            "shipping_method": self.shipping_method,
            "status": self.status,
            "admin_comment": self.admin_comment,
            "items": [
                {"product_id": it.product_id, "name": it.name, "price": it.price, "qty": it.qty}
                for it in self.items
            ],
        }


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id_fk = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)  # effective unit price at order time
    qty = db.Column(db.Integer, nullable=False)


def seed_if_empty():
    """Seed catalog, shipping options, promo codes and deposit settings on first run."""
    from system_settings import SettingsRepository

    SettingsRepository().initialize_deposit_settings()
    if Product.query.count() > 0:
        return
    products = [
        # Live animals
        {"slug": "golden-retriever-puppy", "name": "Golden Retriever Puppy", "category": "dogs", "price": Decimal("15000.00")},
        {"slug": "scottish-fold-kitten", "name": "Scottish Fold Kitten", "category": "cats", "price": Decimal("12000.00"), "sale_price": Decimal("9500.00")},
        {"slug": "budgie", "name": "Budgerigar", "category": "birds", "price": Decimal("450.00")},
        # Accessories
        {"slug": "pet-bed", "name": "Pet Bed", "category": "accessories", "price": Decimal("500.00"), "discount_percent": Decimal("20")},
        {"slug": "chew-toy", "name": "Chew Toy", "category": "accessories", "price": Decimal("120.00")},
    ]
    for p in products:
        db.session.add(Product(**p))
    shipping = [
        {"name": "Store hand-over (pets)", "description": "Delivered by our staff by appointment", "price": Decimal("0.00"),
         "estimated_days": "By appointment", "method": "pickup", "for_pets_only": True, "sort_order": 1},
        {"name": "Express delivery", "description": "Delivered within 1-2 business days", "price": Decimal("50.00"),
         "estimated_days": "1-2 business days", "method": "delivery", "for_pets_only": False, "sort_order": 2},
    ]
    for s in shipping:
        db.session.add(ShippingOption(**s))
    codes = [
        {"code": "WELCOME10", "description": "10% off your first order", "type": "percentage", "value": Decimal("10")},
        {"code": FREESHIP_CODE, "description": "Free shipping", "type": "fixed", "value": Decimal("0")},
    ]
    for c in codes:
        db.session.add(DiscountCode(**c))
    db.session.commit()


def create_app(config=None):
    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

    # --- Config ---
    BASE_DIR = os.path.abspath(os.path.dirname(__file__))
    DB_PATH = os.path.join(BASE_DIR, "petshop.db")
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", f"sqlite:///{DB_PATH}")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["ADMIN_PASSWORD"] = os.environ.get("ADMIN_PASSWORD", "admin123")
    app.config["SEED_DATA"] = True
    if config:
        app.config.update(config)

    configure_logging()
    db.init_app(app)

    # Register blueprints (import inside to avoid circular imports)
    from shop import shop_bp
    from admin import admin_bp
    app.register_blueprint(shop_bp)          # storefront at /
    app.register_blueprint(admin_bp, url_prefix="/admin")

    # Ensure tables exist at startup
    with app.app_context():
        db.create_all()
        if app.config["SEED_DATA"]:
            seed_if_empty()

    return app


# Local dev entrypoint
if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
