"""
Contact routes (customers and suppliers).

totalOrders / totalSpent / lastOrderDate in the responses are computed from the
contact's orders at read time; they are not accepted as input.
"""

from flask import Blueprint

from ...api import register_crud
from ...schemas import ContactCreate, ContactUpdate

contacts_bp = Blueprint("contacts", __name__, url_prefix="/api/contacts")

register_crud(contacts_bp, "contacts", ContactCreate, ContactUpdate)
