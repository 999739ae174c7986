"""
Business Dashboard – Domain Models

Tables:
- users / user_sessions (authentication, server-held sessions)
- vat_rates, vat_transactions (VAT master data and reporting)
- products (inventory, low-stock flag)
- contacts (customers and suppliers, order aggregates derived at read time)
- orders, deliveries (embedded item lists stored as JSON)
- audit_logs (who changed what)

IMPORTANT:
- Money values are stored as decimal strings; arithmetic goes through Decimal.
- JSON representation uses camelCase keys (see to_dict()).
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def utcnow() -> datetime:
    """Naive UTC timestamp (columns are timezone-less)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(value) -> Decimal:
    """Convert a stored decimal string / None to Decimal safely."""
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _enum_value(value):
    return value.value if isinstance(value, enum.Enum) else value


def _string_enum(enum_cls: type[enum.Enum]) -> db.Enum:
    """Closed enum persisted as its string values (VARCHAR + CHECK, no native type)."""
    return db.Enum(
        enum_cls,
        native_enum=False,
        validate_strings=True,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


# ---------------------------------------------------------------------
# Closed status variants
# ---------------------------------------------------------------------
class ContactType(str, enum.Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def counts_towards_totals(self) -> bool:
        return {
            OrderStatus.PENDING: True,
            OrderStatus.COMPLETED: True,
            OrderStatus.CANCELLED: False,
        }[self]


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return {
            DeliveryStatus.PENDING: True,
            DeliveryStatus.IN_TRANSIT: True,
            DeliveryStatus.RECEIVED: False,
            DeliveryStatus.CANCELLED: False,
        }[self]


# ---------------------------------------------------------------------
# Users & sessions
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username}

    def __repr__(self):
        return f"<User {self.username}>"


class UserSession(db.Model):
    """Server-held session record keyed by the opaque cookie token."""

    __tablename__ = "user_sessions"

    token = db.Column(db.String(64), primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    data = db.Column(db.Text, nullable=False, default="{}")
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, passive_deletes=True))

    def __repr__(self):
        return f"<UserSession user={self.user_id} expires={self.expires_at}>"


# ---------------------------------------------------------------------
# VAT master data
# ---------------------------------------------------------------------
class VatRate(db.Model):
    """
    VAT rate with a validity window.

    At most one rate should be active per date in correct usage; this is not
    enforced by the table (see VatRateRepository.active_on).
    """

    __tablename__ = "vat_rates"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    # Stored as percent string (e.g. "27")
    rate = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)

    valid_from = db.Column(db.Date, nullable=False, index=True)
    valid_to = db.Column(db.Date, nullable=True, index=True)

    def is_valid_on(self, day: date) -> bool:
        if day < self.valid_from:
            return False
        return self.valid_to is None or day <= self.valid_to

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rate": self.rate,
            "description": self.description,
            "validFrom": _iso(self.valid_from),
            "validTo": _iso(self.valid_to),
        }

    def __repr__(self):
        return f"<VatRate {self.name} {self.rate}%>"


# ---------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------
class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(100), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.String(32), nullable=False)

    vat_rate_id = db.Column(
        db.Integer,
        db.ForeignKey("vat_rates.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    stock_level = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(20), nullable=False, default="db")

    vat_rate = db.relationship("VatRate", backref=db.backref("products", lazy=True))

    __table_args__ = (
        db.CheckConstraint("stock_level >= 0", name="ck_products_stock_level"),
        db.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_level"),
    )

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_level or 0) <= (self.min_stock_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "price": self.price,
            "vatRateId": self.vat_rate_id,
            "stockLevel": self.stock_level,
            "minStockLevel": self.min_stock_level,
            "unit": self.unit,
            "lowStock": self.is_low_stock,
        }

    def __repr__(self):
        return f"<Product {self.sku} - {self.name}>"


# ---------------------------------------------------------------------
# Contacts & orders
# ---------------------------------------------------------------------
class Contact(db.Model):
    """Customer or supplier. Order aggregates are computed from the orders relationship."""

    __tablename__ = "contacts"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(_string_enum(ContactType), nullable=False, index=True)

    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    address = db.Column(db.String(255))
    tax_number = db.Column(db.String(50))
    notes = db.Column(db.Text)

    rating = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    orders = db.relationship("Order", back_populates="contact", lazy=True)

    def _counted_orders(self) -> list["Order"]:
        return [o for o in self.orders if OrderStatus(_enum_value(o.status)).counts_towards_totals]

    @property
    def total_orders(self) -> int:
        return len(self._counted_orders())

    @property
    def total_spent(self) -> Decimal:
        return money(sum((to_decimal(o.gross_total) for o in self._counted_orders()), Decimal("0.00")))

    @property
    def last_order_date(self) -> datetime | None:
        dates = [o.order_date for o in self._counted_orders() if o.order_date is not None]
        return max(dates) if dates else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": _enum_value(self.type),
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "taxNumber": self.tax_number,
            "notes": self.notes,
            "rating": self.rating,
            "totalOrders": self.total_orders,
            "totalSpent": str(self.total_spent),
            "lastOrderDate": _iso(self.last_order_date),
        }

    def __repr__(self):
        return f"<Contact {self.name}>"


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    contact_id = db.Column(
        db.Integer,
        db.ForeignKey("contacts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    order_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    status = db.Column(_string_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    net_total = db.Column(db.String(32), nullable=False)
    vat_total = db.Column(db.String(32), nullable=False)
    gross_total = db.Column(db.String(32), nullable=False)

    # [{productId, quantity, price, vatRate, vatAmount}]
    items = db.Column(db.JSON, nullable=False, default=list)

    invoice_number = db.Column(db.String(100), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    contact = db.relationship("Contact", back_populates="orders")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contactId": self.contact_id,
            "orderDate": _iso(self.order_date),
            "status": _enum_value(self.status),
            "netTotal": self.net_total,
            "vatTotal": self.vat_total,
            "grossTotal": self.gross_total,
            "items": list(self.items or []),
            "invoiceNumber": self.invoice_number,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<Order {self.id} contact={self.contact_id}>"


class VatTransaction(db.Model):
    """One VAT-reportable event for an order."""

    __tablename__ = "vat_transactions"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    vat_rate_id = db.Column(
        db.Integer,
        db.ForeignKey("vat_rates.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    net_amount = db.Column(db.String(32), nullable=False)
    vat_amount = db.Column(db.String(32), nullable=False)

    reporting_period = db.Column(db.String(20), nullable=False, index=True)
    reported = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Rows go with their order (ON DELETE CASCADE); loaded ones are deleted by the ORM
    order = db.relationship(
        "Order",
        backref=db.backref("vat_transactions", lazy=True, cascade="save-update, merge, delete", passive_deletes=True),
    )
    vat_rate = db.relationship("VatRate")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "transactionDate": _iso(self.transaction_date),
            "vatRateId": self.vat_rate_id,
            "netAmount": self.net_amount,
            "vatAmount": self.vat_amount,
            "reportingPeriod": self.reporting_period,
            "reported": bool(self.reported),
        }


# ---------------------------------------------------------------------
# Incoming deliveries
# ---------------------------------------------------------------------
class Delivery(db.Model):
    __tablename__ = "deliveries"

    id = db.Column(db.Integer, primary_key=True)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("contacts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    expected_date = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(_string_enum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING, index=True)

    # [{productId, quantity, price}]
    items = db.Column(db.JSON, nullable=False, default=list)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    supplier = db.relationship("Contact")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplierId": self.supplier_id,
            "expectedDate": _iso(self.expected_date),
            "status": _enum_value(self.status),
            "items": list(self.items or []),
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Audit trail entry, written in the same transaction as the change."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
