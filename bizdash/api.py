"""
bizdash/api.py

Shared helpers for the JSON route handlers.

- get_storage(): the Storage handle injected through create_app()
- json_body(): request JSON (None when absent or malformed)
- register_crud(): list / detail / create / update / delete endpoints for one repository
"""

from __future__ import annotations

from typing import Any, Iterable

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from .errors import NotFound
from .schemas import ApiSchema, validate_payload
from .storage import Storage

STORAGE_EXTENSION_KEY = "bizdash.storage"


def get_storage() -> Storage:
    return current_app.extensions[STORAGE_EXTENSION_KEY]


def json_body() -> Any:
    return request.get_json(silent=True)


def register_crud(
    bp: Blueprint,
    repository: str,
    create_schema: type[ApiSchema],
    update_schema: type[ApiSchema],
    *,
    skip: Iterable[str] = (),
) -> None:
    """
    Attach the standard REST endpoints for Storage.<repository>:

        GET    ""            -> 200 [rows]
        GET    "/<id>"       -> 200 row | 404
        POST   ""            -> 201 row (validated with create_schema)
        PATCH  "/<id>"       -> 200 row (validated with update_schema, partial)
        DELETE "/<id>"       -> 204

    Endpoint names are list/detail/create/update/delete; pass skip={"list"} when
    the blueprint provides its own variant.
    """
    skip = set(skip)

    def _repo():
        return getattr(get_storage(), repository)

    @login_required
    def list_items():
        return jsonify([row.to_dict() for row in _repo().get_all()])

    @login_required
    def get_item(item_id: int):
        repo = _repo()
        row = repo.get_by_id(item_id)
        if row is None:
            raise NotFound(f"{repo.entity_name} not found")
        return jsonify(row.to_dict())

    @login_required
    def create_item():
        values = validate_payload(create_schema, json_body())
        row = _repo().create(values)
        return jsonify(row.to_dict()), 201

    @login_required
    def update_item(item_id: int):
        values = validate_payload(update_schema, json_body(), partial=True)
        row = _repo().update(item_id, values)
        return jsonify(row.to_dict())

    @login_required
    def delete_item(item_id: int):
        _repo().delete(item_id)
        return "", 204

    rules = [
        ("list", "", list_items, "GET"),
        ("detail", "/<int:item_id>", get_item, "GET"),
        ("create", "", create_item, "POST"),
        ("update", "/<int:item_id>", update_item, "PATCH"),
        ("delete", "/<int:item_id>", delete_item, "DELETE"),
    ]
    for endpoint, rule, view, method in rules:
        if endpoint in skip:
            continue
        bp.add_url_rule(rule, endpoint, view, methods=[method])
