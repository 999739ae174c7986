"""
bizdash/seed.py

Seed default VAT rates (Hungarian ÁFA keys).

Rules:
- Safe to run multiple times (idempotent, matched by name).
- Products require a vatRateId, so a fresh database needs at least one rate.
"""

from __future__ import annotations

from datetime import date

from .extensions import db
from .models import VatRate


DEFAULT_VAT_RATES = [
    ("ÁFA 27%", "27", "Általános adókulcs", date(2012, 1, 1)),
    ("ÁFA 18%", "18", "Kedvezményes adókulcs", date(2009, 7, 1)),
    ("ÁFA 5%", "5", "Kedvezményes adókulcs", date(2009, 7, 1)),
    ("AAM 0%", "0", "Alanyi adómentes", date(2009, 7, 1)),
]


def seed_default_vat_rates() -> int:
    """Insert missing default VAT rates. Returns the number of rows created."""
    existing = {name for (name,) in db.session.query(VatRate.name).all()}

    created = 0
    for name, rate, description, valid_from in DEFAULT_VAT_RATES:
        if name in existing:
            continue
        db.session.add(VatRate(name=name, rate=rate, description=description, valid_from=valid_from))
        created += 1

    db.session.commit()
    return created
