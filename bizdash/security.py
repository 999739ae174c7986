"""
bizdash/security.py

Session/auth gate helpers.

Key rules:
- Identity comes from the server-held session (see sessions.py); the cookie is an opaque token.
- Every entity route is wrapped with flask_login.login_required; anonymous calls get 401 JSON.
- Login rotates the session token so a pre-login token cannot be reused.
"""

from __future__ import annotations

from flask import session
from flask_login import login_user, logout_user

from .errors import Unauthorized, error_response
from .models import User


def unauthorized():
    """Flask-Login unauthorized handler: JSON 401 instead of a login redirect."""
    return error_response(Unauthorized())


def start_session(user: User) -> None:
    """Authenticate user for this and following requests."""
    rotate = getattr(session, "rotate", None)
    if callable(rotate):
        rotate()
    session.permanent = True
    login_user(user)


def end_session() -> None:
    """Forget the current identity and drop the session record."""
    logout_user()
    session.clear()
