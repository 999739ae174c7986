"""
VAT blueprint package: VAT rates and VAT transactions.

Exposes both Blueprint objects for registration in create_app().
"""

from .routes import vat_rates_bp, vat_transactions_bp  # noqa: F401
