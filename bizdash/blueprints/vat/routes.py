"""
VAT routes.

/api/vat-rates
- standard CRUD
- GET /active?date=YYYY-MM-DD   rates valid on that day (default: today)

/api/vat-transactions
- standard CRUD; the list accepts ?period=YYYY-MM and ?reported=true|false
- POST /report  {ids: [...]}     mark transactions as reported (all or none)
- GET  /summary?period=          per-period net/VAT sums and reported/pending counts
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...api import get_storage, json_body, register_crud
from ...errors import ValidationFailed
from ...schemas import (
    IdList,
    VatRateCreate,
    VatRateUpdate,
    VatTransactionCreate,
    VatTransactionUpdate,
    parse_payload,
)

vat_rates_bp = Blueprint("vat_rates", __name__, url_prefix="/api/vat-rates")
vat_transactions_bp = Blueprint("vat_transactions", __name__, url_prefix="/api/vat-transactions")

register_crud(vat_rates_bp, "vat_rates", VatRateCreate, VatRateUpdate)
register_crud(vat_transactions_bp, "vat_transactions", VatTransactionCreate, VatTransactionUpdate, skip={"list"})


# ---------------------------------------------------------------------
# Query-string helpers
# ---------------------------------------------------------------------
def _parse_date_arg(name: str) -> Optional[date]:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationFailed(
            [{"field": name, "code": "invalid_format", "message": "Expected a date (YYYY-MM-DD)"}]
        ) from None


def _parse_bool_arg(name: str) -> Optional[bool]:
    raw = (request.args.get(name) or "").strip().lower()
    if not raw:
        return None
    if raw in {"1", "true", "yes"}:
        return True
    if raw in {"0", "false", "no"}:
        return False
    raise ValidationFailed(
        [{"field": name, "code": "invalid_format", "message": "Expected true or false"}]
    )


# ---------------------------------------------------------------------
# VAT rates
# ---------------------------------------------------------------------
@vat_rates_bp.route("/active")
@login_required
def active_rates():
    day = _parse_date_arg("date") or date.today()
    return jsonify([rate.to_dict() for rate in get_storage().vat_rates.active_on(day)])


# ---------------------------------------------------------------------
# VAT transactions
# ---------------------------------------------------------------------
@vat_transactions_bp.route("", methods=["GET"])
@login_required
def list_transactions():
    period = (request.args.get("period") or "").strip() or None
    reported = _parse_bool_arg("reported")
    rows = get_storage().vat_transactions.get_all(period=period, reported=reported)
    return jsonify([tx.to_dict() for tx in rows])


@vat_transactions_bp.route("/report", methods=["POST"])
@login_required
def mark_reported():
    ids = parse_payload(IdList, json_body()).ids
    rows = get_storage().vat_transactions.mark_reported(ids)
    return jsonify([tx.to_dict() for tx in rows])


@vat_transactions_bp.route("/summary")
@login_required
def summary():
    period = (request.args.get("period") or "").strip() or None
    return jsonify(get_storage().vat_transactions.summary(period=period))
