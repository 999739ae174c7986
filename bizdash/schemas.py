"""
bizdash/schemas.py

Request validation schemas (pydantic).

Each entity has a *Create* schema (the insertable shape) and an *Update* schema
(every field optional, used for PATCH). validate_payload() turns raw JSON into a
dict of column values or raises ValidationFailed listing every bad field.

Coercion rules:
- Money/decimal fields accept numbers or numeric strings and are stored as plain
  decimal strings ("10.00" stays "10.00", 10.5 becomes "10.5").
- Blank optional strings become None.
- JSON keys are camelCase; snake_case is accepted as well.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, ClassVar, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from .errors import ValidationFailed
from .models import ContactType, DeliveryStatus, OrderStatus, to_decimal, utcnow


# ---------------------------------------------------------------------
# Field types
# ---------------------------------------------------------------------
def _coerce_money(value: Any) -> str:
    """Accept int/float/Decimal/numeric string; return a decimal string without exponent."""
    if isinstance(value, bool):
        raise PydanticCustomError("invalid_number", "Not a valid number")
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str):
        raw = value.strip().replace(",", ".")
    else:
        raise PydanticCustomError("invalid_number", "Not a valid number")

    try:
        number = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise PydanticCustomError("invalid_number", "Not a valid number") from None
    if not number.is_finite():
        raise PydanticCustomError("invalid_number", "Not a valid number")
    return format(number, "f")


def _non_negative(value: str) -> str:
    if Decimal(value) < 0:
        raise PydanticCustomError("invalid_number", "Must not be negative")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _naive_utc(value: datetime) -> datetime:
    """Timestamp columns are naive UTC; convert aware inputs."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


Money = Annotated[str, BeforeValidator(_coerce_money)]
Timestamp = Annotated[datetime, AfterValidator(_naive_utc)]
NonNegativeMoney = Annotated[str, BeforeValidator(_coerce_money), AfterValidator(_non_negative)]
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")]
OptionalEmail = Annotated[Optional[Email], BeforeValidator(_blank_to_none)]


class ApiSchema(BaseModel):
    """Base schema: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # Columns that must not be set to null through a partial update
    not_null: ClassVar[frozenset[str]] = frozenset()


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class UserCredentials(ApiSchema):
    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=80)]
    password: Annotated[str, StringConstraints(min_length=1)]


class PasswordChange(ApiSchema):
    current_password: Annotated[str, StringConstraints(min_length=1)]
    new_password: Annotated[str, StringConstraints(min_length=6)]


# ---------------------------------------------------------------------
# VAT
# ---------------------------------------------------------------------
_WINDOW_MESSAGE = "validTo must not precede validFrom"


def window_is_valid(valid_from, valid_to) -> bool:
    return valid_to is None or valid_from is None or valid_to >= valid_from


def check_vat_window(valid_from, valid_to) -> None:
    """Raise ValidationFailed when validTo precedes validFrom."""
    if not window_is_valid(valid_from, valid_to):
        raise ValidationFailed(
            [{"field": "validTo", "code": "invalid_format", "message": _WINDOW_MESSAGE}]
        )


class VatRateCreate(ApiSchema):
    name: RequiredText
    rate: NonNegativeMoney
    description: OptionalText = None
    valid_from: date
    valid_to: Optional[date] = None

    @model_validator(mode="after")
    def _check_window(self):
        if not window_is_valid(self.valid_from, self.valid_to):
            raise PydanticCustomError("invalid_format", _WINDOW_MESSAGE, {"field": "validTo"})
        return self


class VatRateUpdate(ApiSchema):
    not_null: ClassVar[frozenset[str]] = frozenset({"name", "rate", "valid_from"})

    name: Optional[RequiredText] = None
    rate: Optional[NonNegativeMoney] = None
    description: OptionalText = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None


class VatTransactionCreate(ApiSchema):
    order_id: int
    transaction_date: Timestamp = Field(default_factory=utcnow)
    vat_rate_id: int
    net_amount: Money
    vat_amount: Money
    reporting_period: OptionalText = None
    reported: bool = False

    @model_validator(mode="after")
    def _default_period(self):
        # Monthly reporting unless the caller names the period
        if self.reporting_period is None:
            self.reporting_period = self.transaction_date.strftime("%Y-%m")
        return self


class VatTransactionUpdate(ApiSchema):
    not_null: ClassVar[frozenset[str]] = frozenset(
        {"order_id", "transaction_date", "vat_rate_id", "net_amount", "vat_amount", "reporting_period", "reported"}
    )

    order_id: Optional[int] = None
    transaction_date: Optional[Timestamp] = None
    vat_rate_id: Optional[int] = None
    net_amount: Optional[Money] = None
    vat_amount: Optional[Money] = None
    reporting_period: OptionalText = None
    reported: Optional[bool] = None


# ---------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------
class ProductCreate(ApiSchema):
    name: RequiredText
    sku: RequiredText
    description: OptionalText = None
    price: NonNegativeMoney
    vat_rate_id: int
    stock_level: int = Field(default=0, ge=0)
    min_stock_level: int = Field(default=0, ge=0)
    unit: RequiredText = "db"


class ProductUpdate(ApiSchema):
    not_null: ClassVar[frozenset[str]] = frozenset(
        {"name", "sku", "price", "vat_rate_id", "stock_level", "min_stock_level", "unit"}
    )

    name: Optional[RequiredText] = None
    sku: Optional[RequiredText] = None
    description: OptionalText = None
    price: Optional[NonNegativeMoney] = None
    vat_rate_id: Optional[int] = None
    stock_level: Optional[int] = Field(default=None, ge=0)
    min_stock_level: Optional[int] = Field(default=None, ge=0)
    unit: Optional[RequiredText] = None


class ProductBatchUpdate(ApiSchema):
    ids: list[int] = Field(min_length=1)
    updates: ProductUpdate


class IdList(ApiSchema):
    ids: list[int] = Field(min_length=1)


# ---------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------
class ContactCreate(ApiSchema):
    name: RequiredText
    type: ContactType
    email: OptionalEmail = None
    phone: OptionalText = None
    address: OptionalText = None
    tax_number: OptionalText = None
    notes: OptionalText = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)


class ContactUpdate(ApiSchema):
    not_null: ClassVar[frozenset[str]] = frozenset({"name", "type"})

    name: Optional[RequiredText] = None
    type: Optional[ContactType] = None
    email: OptionalEmail = None
    phone: OptionalText = None
    address: OptionalText = None
    tax_number: OptionalText = None
    notes: OptionalText = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
class OrderItem(ApiSchema):
    product_id: int
    quantity: int = Field(gt=0)
    price: Money
    vat_rate: Money
    vat_amount: Money


def _items_to_json(items) -> list[dict] | None:
    if items is None:
        return None
    return [item.model_dump(by_alias=True) for item in items]


_TOTALS_MESSAGE = "grossTotal must equal netTotal + vatTotal"


def totals_match(net_total, vat_total, gross_total) -> bool:
    return to_decimal(gross_total) == to_decimal(net_total) + to_decimal(vat_total)


def check_order_totals(net_total, vat_total, gross_total) -> None:
    """Raise ValidationFailed unless gross == net + vat (compared as decimals)."""
    if not totals_match(net_total, vat_total, gross_total):
        raise ValidationFailed(
            [
                {
                    "field": "grossTotal",
                    "code": "invalid_number",
                    "message": _TOTALS_MESSAGE,
                }
            ]
        )


class OrderCreate(ApiSchema):
    contact_id: int
    order_date: Timestamp = Field(default_factory=utcnow)
    status: OrderStatus = OrderStatus.PENDING
    net_total: Money
    vat_total: Money
    gross_total: Money
    items: list[OrderItem] = Field(min_length=1)
    invoice_number: OptionalText = None
    notes: OptionalText = None

    @field_serializer("items")
    def _serialize_items(self, items):
        return _items_to_json(items)

    @model_validator(mode="after")
    def _check_totals(self):
        if not totals_match(self.net_total, self.vat_total, self.gross_total):
            raise PydanticCustomError("invalid_number", _TOTALS_MESSAGE, {"field": "grossTotal"})
        return self


class OrderUpdate(ApiSchema):
    not_null: ClassVar[frozenset[str]] = frozenset(
        {"contact_id", "order_date", "status", "net_total", "vat_total", "gross_total", "items"}
    )

    contact_id: Optional[int] = None
    order_date: Optional[Timestamp] = None
    status: Optional[OrderStatus] = None
    net_total: Optional[Money] = None
    vat_total: Optional[Money] = None
    gross_total: Optional[Money] = None
    items: Optional[list[OrderItem]] = Field(default=None, min_length=1)
    invoice_number: OptionalText = None
    notes: OptionalText = None

    @field_serializer("items")
    def _serialize_items(self, items):
        return _items_to_json(items)


# ---------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------
class DeliveryItem(ApiSchema):
    product_id: int
    quantity: int = Field(gt=0)
    price: Money


class DeliveryCreate(ApiSchema):
    supplier_id: int
    expected_date: Timestamp
    status: DeliveryStatus = DeliveryStatus.PENDING
    items: list[DeliveryItem] = Field(default_factory=list)
    notes: OptionalText = None

    @field_serializer("items")
    def _serialize_items(self, items):
        return _items_to_json(items)


class DeliveryUpdate(ApiSchema):
    not_null: ClassVar[frozenset[str]] = frozenset({"supplier_id", "expected_date", "status", "items"})

    supplier_id: Optional[int] = None
    expected_date: Optional[Timestamp] = None
    status: Optional[DeliveryStatus] = None
    items: Optional[list[DeliveryItem]] = None
    notes: OptionalText = None

    @field_serializer("items")
    def _serialize_items(self, items):
        return _items_to_json(items)


# ---------------------------------------------------------------------
# Validation entry points
# ---------------------------------------------------------------------
_NUMBER_ERRORS = {
    "invalid_number",
    "int_parsing",
    "int_type",
    "int_from_float",
    "float_parsing",
    "float_type",
    "decimal_parsing",
    "greater_than",
    "greater_than_equal",
    "less_than",
    "less_than_equal",
}


def _error_code(error: dict) -> str:
    kind = error["type"]
    if kind == "missing":
        return "required"
    if kind == "string_too_short" and not str(error.get("input") or "").strip():
        return "required"
    if kind in _NUMBER_ERRORS:
        return "invalid_number"
    return "invalid_format"


def field_errors(exc: ValidationError) -> list[dict[str, str]]:
    """Flatten a pydantic ValidationError into {field, code, message} dicts."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        if not field:
            field = (error.get("ctx") or {}).get("field", "")
        errors.append({"field": field, "code": _error_code(error), "message": error["msg"]})
    return errors


def _null_errors(schema: type[ApiSchema], values: dict[str, Any], prefix: str = "") -> list[dict[str, str]]:
    errors = []
    for name in sorted(schema.not_null):
        if name in values and values[name] is None:
            errors.append(
                {"field": f"{prefix}{to_camel(name)}", "code": "required", "message": "Field may not be null"}
            )
    return errors


def parse_payload(schema: type[ApiSchema], payload: Any) -> ApiSchema:
    """Validate payload into a schema instance (raises ValidationFailed)."""
    if not isinstance(payload, dict):
        raise ValidationFailed(
            [{"field": "", "code": "invalid_format", "message": "Expected a JSON object"}]
        )
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc)) from None


def validate_payload(schema: type[ApiSchema], payload: Any, *, partial: bool = False) -> dict[str, Any]:
    """
    Validate raw input and return column values.

    partial=True (PATCH): only keys present in the payload are returned and
    explicit nulls on NOT NULL columns are rejected.
    """
    obj = parse_payload(schema, payload)
    return dump_values(obj, partial=partial)


def dump_values(obj: ApiSchema, *, partial: bool = False, prefix: str = "") -> dict[str, Any]:
    values = obj.model_dump(exclude_unset=partial)
    if partial:
        errors = _null_errors(type(obj), values, prefix=prefix)
        if errors:
            raise ValidationFailed(errors)
    return values
