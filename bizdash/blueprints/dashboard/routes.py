"""
Dashboard routes.

Provides:
- GET /api/dashboard/stats   aggregate counts and completed-order revenue
"""

from flask import Blueprint, jsonify
from flask_login import login_required

from ...api import get_storage

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.route("/stats")
@login_required
def stats():
    """Counts for the dashboard cards: products, low stock, contacts, orders, revenue, open deliveries."""
    return jsonify(get_storage().dashboard_stats())
