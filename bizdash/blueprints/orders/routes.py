"""
Sales order routes.

Standard CRUD under /api/orders. Items are embedded in the order; a contactId
that does not exist is rejected with 409. Deleting an order also deletes its
VAT transactions.
"""

from flask import Blueprint

from ...api import register_crud
from ...schemas import OrderCreate, OrderUpdate

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

# Totals must satisfy grossTotal == netTotal + vatTotal on create and after every update
register_crud(orders_bp, "orders", OrderCreate, OrderUpdate)
