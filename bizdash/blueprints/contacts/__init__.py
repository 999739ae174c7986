"""
Contacts blueprint package.

Exposes the Blueprint object for registration in create_app().
The routes live in routes.py.
"""

from .routes import contacts_bp  # noqa: F401
