"""
Authentication Routes

Provides:
- POST /api/register
- POST /api/login
- POST /api/logout
- GET  /api/user
- POST /api/user/password
- GET  /api/csrf-token

Rules:
- Passwords are stored as salted hashes (Werkzeug).
- Unknown usernames on login are rejected unless AUTO_REGISTER_ON_LOGIN is enabled,
  in which case the account is created and logged in (201).
"""

import logging

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required
from flask_wtf.csrf import generate_csrf

from ...api import get_storage, json_body
from ...errors import Unauthorized
from ...schemas import PasswordChange, UserCredentials, validate_payload
from ...security import end_session, start_session

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api")


# ============================================================
# REGISTER
# ============================================================

@auth_bp.route("/register", methods=["POST"])
def register():
    """Create an account and log it in. Duplicate usernames answer 409."""
    credentials = validate_payload(UserCredentials, json_body())

    user = get_storage().users.create(credentials)
    start_session(user)

    logger.info("Registered user %s", user.username)
    return jsonify(user.to_dict()), 201


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate with username + password."""
    credentials = validate_payload(UserCredentials, json_body())
    users = get_storage().users

    user = users.get_by_username(credentials["username"])

    if user is None and current_app.config.get("AUTO_REGISTER_ON_LOGIN", False):
        user = users.create(credentials)
        start_session(user)
        logger.info("Auto-registered unknown user %s on login", user.username)
        return jsonify(user.to_dict()), 201

    if user is None or not user.check_password(credentials["password"]):
        logger.info("Failed login for %s", credentials["username"])
        raise Unauthorized("Invalid username or password")

    start_session(user)
    return jsonify(user.to_dict())


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Log out (idempotent)."""
    end_session()
    return "", 204


# ============================================================
# CURRENT USER
# ============================================================

@auth_bp.route("/user")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.route("/user/password", methods=["POST"])
@login_required
def change_password():
    """Change own password; the current password must be supplied."""
    data = validate_payload(PasswordChange, json_body())

    if not current_user.check_password(data["current_password"]):
        raise Unauthorized("Current password is incorrect")

    get_storage().users.set_password(current_user.id, data["new_password"])
    return "", 204


# ============================================================
# CSRF
# ============================================================

@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header on mutating requests."""
    return jsonify({"csrfToken": generate_csrf()})
