"""
Product (inventory) routes.

Standard CRUD under /api/products plus:
- POST   /api/products/import   {products: [...]}      -> 201 [rows]
- PATCH  /api/products/batch    {ids: [...], updates}  -> 200 [rows]
- DELETE /api/products/batch    {ids: [...]}           -> 204
- GET    /api/products/low-stock                       -> 200 [rows]

IMPORTANT:
- Import rows are validated one by one; any invalid row fails the whole request
  (400, failing indexes reported) and nothing is persisted.
- Batch update/delete require a non-empty id list and apply to all ids or none.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import login_required

from ...api import get_storage, json_body, register_crud
from ...errors import ValidationFailed
from ...schemas import (
    IdList,
    ProductBatchUpdate,
    ProductCreate,
    ProductUpdate,
    dump_values,
    parse_payload,
    validate_payload,
)

logger = logging.getLogger(__name__)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

register_crud(products_bp, "products", ProductCreate, ProductUpdate)


# ---------------------------------------------------------------------
# Low stock view
# ---------------------------------------------------------------------
@products_bp.route("/low-stock")
@login_required
def low_stock():
    """Products with stockLevel <= minStockLevel."""
    return jsonify([p.to_dict() for p in get_storage().products.low_stock()])


# ---------------------------------------------------------------------
# Import (batch create)
# ---------------------------------------------------------------------
@products_bp.route("/import", methods=["POST"])
@login_required
def import_products():
    payload = json_body()
    rows = payload.get("products") if isinstance(payload, dict) else None

    if not isinstance(rows, list) or not rows:
        raise ValidationFailed(
            [{"field": "products", "code": "invalid_format", "message": "Expected a non-empty array"}],
            message="products must be a non-empty array",
        )

    values = []
    failures = []
    for index, raw in enumerate(rows):
        try:
            values.append(validate_payload(ProductCreate, raw))
        except ValidationFailed as exc:
            failures.append({"index": index, "errors": exc.errors})

    if failures:
        raise ValidationFailed(
            failures,
            message=f"Invalid product at index {failures[0]['index']}",
        )

    created = get_storage().products.create_many(values)
    logger.info("Imported %d products", len(created))
    return jsonify([p.to_dict() for p in created]), 201


# ---------------------------------------------------------------------
# Batch update / delete
# ---------------------------------------------------------------------
@products_bp.route("/batch", methods=["PATCH"])
@login_required
def batch_update():
    batch = parse_payload(ProductBatchUpdate, json_body())
    updates = dump_values(batch.updates, partial=True, prefix="updates.")

    if not updates:
        raise ValidationFailed(
            [{"field": "updates", "code": "required", "message": "No fields to update"}]
        )

    rows = get_storage().products.update_many(batch.ids, updates)
    return jsonify([p.to_dict() for p in rows])


@products_bp.route("/batch", methods=["DELETE"])
@login_required
def batch_delete():
    ids = parse_payload(IdList, json_body()).ids
    removed = get_storage().products.delete_many(ids)
    logger.info("Deleted %d products in batch", removed)
    return "", 204
