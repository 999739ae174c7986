"""
bizdash/storage.py

Storage interface: the single seam between the routes and the database.

Storage owns one repository per entity. Every repository offers
get_all / get_by_id / create / update / delete plus atomic batch variants
(create_many / update_many / delete_many). Entity-specific lookups live on the
entity repository (users.get_by_username, products.low_stock, ...).

Rules:
- get_by_id returns None when the row is absent; update/delete raise NotFound.
- Every mutation runs inside Storage.transaction(): commit on success, rollback
  on any exception. Batches therefore apply fully or not at all.
- Driver errors never leave this module raw: IntegrityError -> Conflict,
  connectivity/pool errors -> Unavailable.
- When an auditor is configured, an audit entry is added in the same transaction
  as the change it describes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, Iterator, Optional

from sqlalchemy import func, inspect, text
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, selectinload

from .audit import serialize_model
from .errors import Conflict, NotFound, Unavailable
from .models import (
    Contact,
    Delivery,
    DeliveryStatus,
    Order,
    OrderStatus,
    Product,
    User,
    VatRate,
    VatTransaction,
    money,
    to_decimal,
)
from .schemas import check_order_totals, check_vat_window

logger = logging.getLogger(__name__)

# auditor(entity, action, before=..., after=...)
Auditor = Callable[..., None]

_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)

# SQLSTATE foreign_key_violation (PostgreSQL drivers expose it as pgcode / sqlstate)
_FOREIGN_KEY_VIOLATION = "23503"


def _violates_reference(exc: IntegrityError) -> bool:
    """True when the IntegrityError is a foreign-key failure rather than a unique/not-null one."""
    code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if code:
        return code == _FOREIGN_KEY_VIOLATION
    return "foreign key" in str(exc.orig).lower()


class Repository:
    """Generic SQLAlchemy-backed repository for one mapped model."""

    model: Any = None
    entity_name = "Record"
    conflict_message = Conflict.message
    # Message for a foreign-key failure; None reuses conflict_message
    reference_message: Optional[str] = None
    audit_exclude: frozenset[str] = frozenset()

    def __init__(self, storage: "Storage"):
        self.storage = storage

    # -----------------------------
    # Internals
    # -----------------------------
    def _list_query(self, session: Session):
        return session.query(self.model).order_by(self.model.id.asc())

    def _columns(self) -> set[str]:
        return {attr.key for attr in inspect(self.model).column_attrs if attr.key != "id"}

    def _build(self, values: dict[str, Any]):
        row = self.model()
        self._apply(row, values)
        return row

    def _apply(self, row, values: dict[str, Any]) -> None:
        columns = self._columns()
        for key, value in values.items():
            if key in columns:
                setattr(row, key, value)

    def _check(self, row) -> None:
        """Row-level invariants checked before flush (override per entity)."""

    def _snapshot(self, row) -> dict:
        return serialize_model(row, exclude=self.audit_exclude)

    def _audit(self, row, action: str, *, before: Optional[dict] = None, after: Optional[dict] = None) -> None:
        if self.storage.auditor is not None:
            self.storage.auditor(row, action, before=before, after=after)

    def _get_or_raise(self, session: Session, entity_id: int):
        row = session.get(self.model, entity_id)
        if row is None:
            raise NotFound(f"{self.entity_name} not found")
        return row

    def _get_many_or_raise(self, session: Session, ids: Iterable[int]) -> list:
        unique_ids = list(dict.fromkeys(ids))
        rows = (
            session.query(self.model)
            .filter(self.model.id.in_(unique_ids))
            .order_by(self.model.id.asc())
            .all()
        )
        missing = sorted(set(unique_ids) - {row.id for row in rows})
        if missing:
            raise NotFound(f"{self.entity_name} not found: {', '.join(str(i) for i in missing)}")
        return rows

    def _transaction(self):
        return self.storage.transaction(
            conflict_message=self.conflict_message,
            reference_message=self.reference_message,
        )

    # -----------------------------
    # Single-row operations
    # -----------------------------
    def get_all(self) -> list:
        with self.storage.reading() as session:
            return self._list_query(session).all()

    def get_by_id(self, entity_id: int):
        with self.storage.reading() as session:
            return session.get(self.model, entity_id)

    def create(self, values: dict[str, Any]):
        with self._transaction() as session:
            row = self._build(values)
            self._check(row)
            session.add(row)
            session.flush()
            self._audit(row, "CREATE", after=self._snapshot(row))
        return row

    def update(self, entity_id: int, values: dict[str, Any]):
        with self._transaction() as session:
            row = self._get_or_raise(session, entity_id)
            before = self._snapshot(row)
            self._apply(row, values)
            self._check(row)
            session.flush()
            self._audit(row, "UPDATE", before=before, after=self._snapshot(row))
        return row

    def delete(self, entity_id: int) -> None:
        with self._transaction() as session:
            row = self._get_or_raise(session, entity_id)
            before = self._snapshot(row)
            session.delete(row)
            session.flush()
            self._audit(row, "DELETE", before=before)

    # -----------------------------
    # Batch operations (one transaction each)
    # -----------------------------
    def create_many(self, rows: list[dict[str, Any]]) -> list:
        with self._transaction() as session:
            created = []
            for values in rows:
                row = self._build(values)
                self._check(row)
                session.add(row)
                created.append(row)
            session.flush()
            for row in created:
                self._audit(row, "CREATE", after=self._snapshot(row))
        return created

    def update_many(self, ids: list[int], values: dict[str, Any]) -> list:
        with self._transaction() as session:
            rows = self._get_many_or_raise(session, ids)
            for row in rows:
                before = self._snapshot(row)
                self._apply(row, values)
                self._check(row)
                session.flush()
                self._audit(row, "UPDATE", before=before, after=self._snapshot(row))
        return rows

    def delete_many(self, ids: list[int]) -> int:
        with self._transaction() as session:
            rows = self._get_many_or_raise(session, ids)
            for row in rows:
                before = self._snapshot(row)
                session.delete(row)
                session.flush()
                self._audit(row, "DELETE", before=before)
        return len(rows)


# ---------------------------------------------------------------------
# Entity repositories
# ---------------------------------------------------------------------
class UserRepository(Repository):
    model = User
    entity_name = "User"
    conflict_message = "Username already exists"
    audit_exclude = frozenset({"password_hash"})

    def _build(self, values: dict[str, Any]) -> User:
        user = User(username=values["username"])
        user.set_password(values["password"])
        return user

    def get_by_username(self, username: str) -> Optional[User]:
        with self.storage.reading() as session:
            return session.query(User).filter_by(username=username).first()

    def set_password(self, user_id: int, password: str) -> User:
        with self._transaction() as session:
            user = self._get_or_raise(session, user_id)
            user.set_password(password)
            session.flush()
            self._audit(user, "UPDATE")
        return user


class VatRateRepository(Repository):
    model = VatRate
    entity_name = "VAT rate"
    conflict_message = "VAT rate is referenced by other records"

    def _check(self, row: VatRate) -> None:
        check_vat_window(row.valid_from, row.valid_to)

    def active_on(self, day: date) -> list[VatRate]:
        """Rates whose validity window contains the given day (newest first)."""
        with self.storage.reading() as session:
            return (
                session.query(VatRate)
                .filter(VatRate.valid_from <= day)
                .filter((VatRate.valid_to.is_(None)) | (VatRate.valid_to >= day))
                .order_by(VatRate.valid_from.desc(), VatRate.id.asc())
                .all()
            )


class ProductRepository(Repository):
    model = Product
    entity_name = "Product"
    conflict_message = "A product with this SKU already exists"
    reference_message = "Referenced VAT rate does not exist"

    def _list_query(self, session: Session):
        return session.query(Product).order_by(Product.name.asc(), Product.id.asc())

    def low_stock(self) -> list[Product]:
        with self.storage.reading() as session:
            return (
                session.query(Product)
                .filter(Product.stock_level <= Product.min_stock_level)
                .order_by(Product.stock_level.asc(), Product.id.asc())
                .all()
            )


class ContactRepository(Repository):
    model = Contact
    entity_name = "Contact"
    conflict_message = "Contact is referenced by orders or deliveries"

    def _list_query(self, session: Session):
        # Aggregates (totalOrders/totalSpent) read the orders relationship
        return (
            session.query(Contact)
            .options(selectinload(Contact.orders))
            .order_by(Contact.name.asc(), Contact.id.asc())
        )


class OrderRepository(Repository):
    model = Order
    entity_name = "Order"
    conflict_message = "Order is referenced by other records"
    reference_message = "Referenced contact does not exist"

    def _list_query(self, session: Session):
        return session.query(Order).order_by(Order.order_date.desc(), Order.id.desc())

    def _check(self, row: Order) -> None:
        check_order_totals(row.net_total, row.vat_total, row.gross_total)


class VatTransactionRepository(Repository):
    model = VatTransaction
    entity_name = "VAT transaction"
    reference_message = "Referenced order or VAT rate does not exist"

    def get_all(self, period: Optional[str] = None, reported: Optional[bool] = None) -> list[VatTransaction]:
        with self.storage.reading() as session:
            query = session.query(VatTransaction)
            if period:
                query = query.filter(VatTransaction.reporting_period == period)
            if reported is not None:
                query = query.filter(VatTransaction.reported.is_(reported))
            return query.order_by(VatTransaction.transaction_date.asc(), VatTransaction.id.asc()).all()

    def mark_reported(self, ids: list[int]) -> list[VatTransaction]:
        return self.update_many(ids, {"reported": True})

    def summary(self, period: Optional[str] = None) -> list[dict]:
        """Per reporting period: summed net/VAT amounts and reported/pending counts."""
        periods: dict[str, dict] = {}
        for tx in self.get_all(period=period):
            entry = periods.setdefault(
                tx.reporting_period,
                {
                    "reportingPeriod": tx.reporting_period,
                    "netAmount": Decimal("0.00"),
                    "vatAmount": Decimal("0.00"),
                    "transactions": 0,
                    "reported": 0,
                    "pending": 0,
                },
            )
            entry["netAmount"] += to_decimal(tx.net_amount)
            entry["vatAmount"] += to_decimal(tx.vat_amount)
            entry["transactions"] += 1
            entry["reported" if tx.reported else "pending"] += 1

        result = []
        for key in sorted(periods):
            entry = periods[key]
            entry["netAmount"] = str(money(entry["netAmount"]))
            entry["vatAmount"] = str(money(entry["vatAmount"]))
            result.append(entry)
        return result


class DeliveryRepository(Repository):
    model = Delivery
    entity_name = "Delivery"
    reference_message = "Referenced supplier does not exist"

    def _list_query(self, session: Session):
        return session.query(Delivery).order_by(Delivery.expected_date.asc(), Delivery.id.asc())


# ---------------------------------------------------------------------
# Storage handle
# ---------------------------------------------------------------------
class Storage:
    """
    Storage handle passed to the application factory.

    Usage:
        storage = Storage(db)
        product = storage.products.create({...})
        storage.products.update_many([1, 2], {"min_stock_level": 20})
    """

    def __init__(self, database, auditor: Optional[Auditor] = None):
        self._db = database
        self.auditor = auditor

        self.users = UserRepository(self)
        self.vat_rates = VatRateRepository(self)
        self.products = ProductRepository(self)
        self.contacts = ContactRepository(self)
        self.orders = OrderRepository(self)
        self.vat_transactions = VatTransactionRepository(self)
        self.deliveries = DeliveryRepository(self)

    @property
    def session(self) -> Session:
        return self._db.session

    @contextmanager
    def transaction(
        self,
        conflict_message: Optional[str] = None,
        reference_message: Optional[str] = None,
    ) -> Iterator[Session]:
        """
        Unit of work: commit on success, rollback on any exception.

        IntegrityError -> Conflict (reference_message for foreign-key failures),
        connectivity errors -> Unavailable.
        Domain errors (NotFound, ValidationFailed) propagate after the rollback.
        """
        session = self.session
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            logger.warning("Constraint violation: %s", exc.orig)
            if reference_message and _violates_reference(exc):
                raise Conflict(reference_message) from exc
            raise Conflict(conflict_message) from exc
        except _UNAVAILABLE_ERRORS as exc:
            session.rollback()
            logger.error("Database unavailable: %s", exc)
            raise Unavailable() from exc
        except Exception:
            session.rollback()
            raise

    @contextmanager
    def reading(self) -> Iterator[Session]:
        """Read-only access with the same error classification as transaction()."""
        session = self.session
        try:
            yield session
        except _UNAVAILABLE_ERRORS as exc:
            session.rollback()
            logger.error("Database unavailable: %s", exc)
            raise Unavailable() from exc

    def ping(self) -> None:
        with self.reading() as session:
            session.execute(text("SELECT 1"))

    def dashboard_stats(self) -> dict:
        """Headline numbers for the dashboard cards."""
        with self.reading() as session:
            product_count = session.query(func.count(Product.id)).scalar() or 0
            low_stock_count = (
                session.query(func.count(Product.id))
                .filter(Product.stock_level <= Product.min_stock_level)
                .scalar()
                or 0
            )
            contact_count = session.query(func.count(Contact.id)).scalar() or 0
            order_count = session.query(func.count(Order.id)).scalar() or 0
            completed_totals = (
                session.query(Order.gross_total).filter(Order.status == OrderStatus.COMPLETED).all()
            )
            open_statuses = [status for status in DeliveryStatus if status.is_open]
            open_deliveries = (
                session.query(func.count(Delivery.id)).filter(Delivery.status.in_(open_statuses)).scalar() or 0
            )

        revenue = money(sum((to_decimal(total) for (total,) in completed_totals), Decimal("0.00")))
        return {
            "productCount": product_count,
            "lowStockCount": low_stock_count,
            "contactCount": contact_count,
            "orderCount": order_count,
            "revenue": str(revenue),
            "openDeliveries": open_deliveries,
        }
