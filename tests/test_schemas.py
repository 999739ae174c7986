"""
Tests for request validation schemas.

No database access: validation is pure.
"""

from datetime import date, datetime

import pytest

from bizdash.errors import ValidationFailed
from bizdash.models import ContactType, OrderStatus
from bizdash.schemas import (
    ContactCreate,
    ContactUpdate,
    DeliveryCreate,
    OrderCreate,
    OrderUpdate,
    ProductCreate,
    ProductUpdate,
    VatRateCreate,
    VatTransactionCreate,
    check_order_totals,
    validate_payload,
)


def _errors_by_field(exc: ValidationFailed) -> dict[str, str]:
    return {error["field"]: error["code"] for error in exc.errors}


def _order_payload(**overrides) -> dict:
    payload = {
        "contactId": 1,
        "netTotal": "100.00",
        "vatTotal": "27.00",
        "grossTotal": "127.00",
        "items": [
            {"productId": 1, "quantity": 2, "price": "50.00", "vatRate": "27", "vatAmount": "27.00"},
        ],
    }
    payload.update(overrides)
    return payload


class TestProductSchema:
    """Product create/update validation."""

    def test_valid_product_is_coerced(self):
        values = validate_payload(
            ProductCreate,
            {"name": "Widget", "sku": "W-1", "price": 10.5, "vatRateId": 1, "stockLevel": 5, "minStockLevel": 10},
        )

        assert values["name"] == "Widget"
        assert values["price"] == "10.5"
        assert values["vat_rate_id"] == 1
        assert values["stock_level"] == 5
        assert values["min_stock_level"] == 10
        assert values["unit"] == "db"

    def test_money_string_keeps_its_scale(self):
        values = validate_payload(ProductCreate, {"name": "A", "sku": "A", "price": "10.00", "vatRateId": 1})
        assert values["price"] == "10.00"

    def test_money_accepts_decimal_comma(self):
        values = validate_payload(ProductCreate, {"name": "A", "sku": "A", "price": "1234,5", "vatRateId": 1})
        assert values["price"] == "1234.5"

    def test_snake_case_keys_are_accepted(self):
        values = validate_payload(ProductCreate, {"name": "A", "sku": "A", "price": "1", "vat_rate_id": 3})
        assert values["vat_rate_id"] == 3

    def test_unknown_keys_are_ignored(self):
        values = validate_payload(
            ProductCreate, {"name": "A", "sku": "A", "price": "1", "vatRateId": 1, "colour": "red"}
        )
        assert "colour" not in values

    def test_every_violation_is_reported(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ProductCreate, {"name": "  ", "price": "abc", "vatRateId": 1, "stockLevel": -1})

        errors = _errors_by_field(excinfo.value)
        assert errors["name"] == "required"
        assert errors["sku"] == "required"
        assert errors["price"] == "invalid_number"
        assert errors["stockLevel"] == "invalid_number"

    @pytest.mark.parametrize("price", [True, "NaN", "Infinity", [], "-1"])
    def test_rejects_bad_prices(self, price):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ProductCreate, {"name": "A", "sku": "A", "price": price, "vatRateId": 1})
        assert _errors_by_field(excinfo.value) == {"price": "invalid_number"}

    def test_non_object_payload(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ProductCreate, ["not", "an", "object"])
        assert excinfo.value.errors[0]["code"] == "invalid_format"

    def test_partial_update_returns_only_sent_keys(self):
        values = validate_payload(ProductUpdate, {"minStockLevel": 20}, partial=True)
        assert values == {"min_stock_level": 20}

    def test_partial_update_rejects_null_on_required_column(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ProductUpdate, {"price": None, "description": None}, partial=True)
        assert _errors_by_field(excinfo.value) == {"price": "required"}

    def test_partial_update_allows_clearing_optional_column(self):
        values = validate_payload(ProductUpdate, {"description": None}, partial=True)
        assert values == {"description": None}


class TestContactSchema:
    def test_type_is_closed_enum(self):
        values = validate_payload(ContactCreate, {"name": "Kovács", "type": "supplier"})
        assert values["type"] is ContactType.SUPPLIER

        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ContactCreate, {"name": "Kovács", "type": "partner"})
        assert _errors_by_field(excinfo.value) == {"type": "invalid_format"}

    def test_blank_email_becomes_none(self):
        values = validate_payload(ContactCreate, {"name": "Kovács", "type": "customer", "email": " "})
        assert values["email"] is None

    def test_invalid_email(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ContactCreate, {"name": "Kovács", "type": "customer", "email": "nope"})
        assert _errors_by_field(excinfo.value) == {"email": "invalid_format"}

    def test_rating_range(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(ContactUpdate, {"rating": 6}, partial=True)
        assert _errors_by_field(excinfo.value) == {"rating": "invalid_number"}


class TestOrderSchema:
    def test_valid_order(self):
        values = validate_payload(OrderCreate, _order_payload())

        assert values["status"] is OrderStatus.PENDING
        assert isinstance(values["order_date"], datetime)
        assert values["items"] == [
            {"productId": 1, "quantity": 2, "price": "50.00", "vatRate": "27", "vatAmount": "27.00"}
        ]

    def test_item_missing_field_is_reported_with_path(self):
        payload = _order_payload(
            items=[
                {"productId": 1, "quantity": 1, "price": "50", "vatRate": "27", "vatAmount": "13.5"},
                {"productId": 2, "quantity": 1, "vatRate": "27", "vatAmount": "13.5"},
            ]
        )
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(OrderCreate, payload)
        assert _errors_by_field(excinfo.value) == {"items.1.price": "required"}

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(OrderCreate, _order_payload(items=[]))
        assert "items" in _errors_by_field(excinfo.value)

    def test_gross_must_equal_net_plus_vat(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(OrderCreate, _order_payload(grossTotal="128.00"))
        assert _errors_by_field(excinfo.value) == {"grossTotal": "invalid_number"}

    def test_totals_compare_as_decimals(self):
        values = validate_payload(OrderCreate, _order_payload(netTotal=100, vatTotal="27", grossTotal="127.000"))
        assert values["gross_total"] == "127.000"

    def test_unknown_status(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(OrderCreate, _order_payload(status="shipped"))
        assert _errors_by_field(excinfo.value) == {"status": "invalid_format"}

    def test_update_serializes_items(self):
        values = validate_payload(
            OrderUpdate,
            {"items": [{"productId": 3, "quantity": 1, "price": 5, "vatRate": 27, "vatAmount": 1.35}]},
            partial=True,
        )
        assert values == {"items": [{"productId": 3, "quantity": 1, "price": "5", "vatRate": "27", "vatAmount": "1.35"}]}

    def test_check_order_totals(self):
        check_order_totals("10", "2.7", "12.70")
        with pytest.raises(ValidationFailed):
            check_order_totals("10", "2.7", "12.71")


class TestDeliverySchema:
    def test_items_default_to_empty_list(self):
        values = validate_payload(DeliveryCreate, {"supplierId": 1, "expectedDate": "2024-05-01T08:00:00"})
        assert values["items"] == []

    def test_aware_timestamp_is_stored_as_naive_utc(self):
        values = validate_payload(DeliveryCreate, {"supplierId": 1, "expectedDate": "2024-05-01T10:00:00+02:00"})
        assert values["expected_date"] == datetime(2024, 5, 1, 8, 0, 0)

    def test_item_quantity_must_be_positive(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(
                DeliveryCreate,
                {"supplierId": 1, "expectedDate": "2024-05-01T08:00:00", "items": [{"productId": 1, "quantity": 0, "price": "1"}]},
            )
        assert _errors_by_field(excinfo.value) == {"items.0.quantity": "invalid_number"}


class TestVatSchemas:
    def test_validity_window(self):
        with pytest.raises(ValidationFailed) as excinfo:
            validate_payload(
                VatRateCreate, {"name": "ÁFA 5%", "rate": "5", "validFrom": "2024-01-01", "validTo": "2023-12-31"}
            )
        assert _errors_by_field(excinfo.value) == {"validTo": "invalid_format"}

    def test_open_ended_rate(self):
        values = validate_payload(VatRateCreate, {"name": "ÁFA 5%", "rate": 5, "validFrom": "2024-01-01"})
        assert values["valid_from"] == date(2024, 1, 1)
        assert values["valid_to"] is None
        assert values["rate"] == "5"

    def test_transaction_defaults_reporting_period_to_month(self):
        values = validate_payload(
            VatTransactionCreate,
            {"orderId": 1, "vatRateId": 1, "netAmount": "100", "vatAmount": "27", "transactionDate": "2024-03-15T12:00:00"},
        )
        assert values["reporting_period"] == "2024-03"
        assert values["reported"] is False
