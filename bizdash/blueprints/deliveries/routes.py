"""
Incoming delivery routes (supplier shipments).

Status is one of pending / in_transit / received / cancelled.
"""

from flask import Blueprint

from ...api import register_crud
from ...schemas import DeliveryCreate, DeliveryUpdate

deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")

register_crud(deliveries_bp, "deliveries", DeliveryCreate, DeliveryUpdate)
