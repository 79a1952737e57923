"""
routes/categories.py — Per-user expense categories.

Endpoints (url_prefix=/api/v1/categories):
  POST   /categories           → 201
  GET    /categories           → 200  caller's categories, by name
  GET    /categories/defaults  → 200  suggested names, flagged when already owned
  GET    /categories/:id       → 200
  PATCH  /categories/:id       → 200
  DELETE /categories/:id       → 200  expenses using it become uncategorised
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.category_schema import CreateCategorySchema, PatchCategorySchema
from groupledger.app.services import category_service

categories_bp = Blueprint("categories", __name__)


@categories_bp.route("/", methods=["POST"])
@require_auth
def create_category():
    data = CreateCategorySchema().load(request.get_json(silent=True) or {})
    result = category_service.create_category(
        name=data["name"],
        user_id=g.user_id,
        session=db.session,
        description=data.get("description"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@categories_bp.route("/", methods=["GET"])
@require_auth
def list_categories():
    result = category_service.list_categories(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@categories_bp.route("/defaults", methods=["GET"])
@require_auth
def list_default_categories():
    result = category_service.default_categories(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@categories_bp.route("/<int:category_id>", methods=["GET"])
@require_auth
def get_category(category_id: int):
    result = category_service.get_category(category_id, g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@categories_bp.route("/<int:category_id>", methods=["PATCH"])
@require_auth
def update_category(category_id: int):
    data = PatchCategorySchema().load(request.get_json(silent=True) or {})
    result = category_service.update_category(category_id, g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@categories_bp.route("/<int:category_id>", methods=["DELETE"])
@require_auth
def delete_category(category_id: int):
    category_service.delete_category(category_id, g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": {"deleted": True, "category_id": category_id}, "warnings": []}), 200
