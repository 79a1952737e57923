"""
routes/balances.py — Balance route handlers.

Read-only: call ONE service, return the envelope. Group membership and the
conservation check (a non-zero balance_sum is a 500) happen in
balance_service.

Endpoints (url_prefix=/api/v1):
  GET /groups/:id/balances              → 200  balances, totals, simplified debts
  GET /groups/:id/balances/:other_uid   → 200  caller vs one other member
  GET /balances/mine                    → 200  caller's balance per group + overall
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/groups/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    result = balance_service.get_group_summary(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/groups/<int:group_id>/balances/<int:other_uid>", methods=["GET"])
@require_auth
def get_pairwise_balance(group_id: int, other_uid: int):
    """Negative `balance` means the caller owes the other member."""
    result = balance_service.get_pairwise_balance(
        group_id=group_id,
        caller_id=g.user_id,
        other_user_id=other_uid,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/balances/mine", methods=["GET"])
@require_auth
def get_my_balances():
    result = balance_service.get_my_balances(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200
