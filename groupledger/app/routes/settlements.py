"""
routes/settlements.py — Settlement route handlers.

Parse, validate, call ONE service, commit, send the signal, return the
envelope. The commit also releases the group row lock taken by
settlement_service.create_settlement.

A rejected settlement (OVERPAYMENT, NOT_IN_SPLIT, ...) is an AppError and
nothing is written. An admitted one comes back with its `admission`: what
was owed before this payment.

Endpoints (url_prefix=/api/v1):
  POST   /groups/:id/settlements  → 201  record a payment
  GET    /groups/:id/settlements  → 200  all settlements of a group
  GET    /settlements/mine        → 200  settlements the caller paid or received
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app import signals
from groupledger.app.extensions import db
from groupledger.app.ledger import SettlementStatus
from groupledger.app.ledger.money import format_money
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.models.settlement import Settlement
from groupledger.app.schemas.settlement_schema import CreateSettlementSchema
from groupledger.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _serialize_settlement(s: Settlement) -> dict:
    return {
        "id": s.id,
        "group_id": s.group_id,
        "expense_id": s.expense_id,
        "from_user_id": s.from_user_id,
        "from_name": s.payer.name,
        "to_user_id": s.to_user_id,
        "to_name": s.recipient.name,
        "amount": format_money(s.amount),
        "note": s.note,
        "status": SettlementStatus(s.status).value,
        "settled_at": s.settled_at.isoformat() if s.settled_at else None,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


# ── Route handlers ─────────────────────────────────────────────────────────

@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    """
    POST /groups/:id/settlements — Record a payment.

    from_user_id defaults to the caller; the caller must be one of the two
    parties. With expense_id the payment is checked against that expense's
    share, otherwise against what the pair owe each other in the group.
    """
    data = CreateSettlementSchema().load(request.get_json(silent=True) or {})
    settlement, admission = settlement_service.create_settlement(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
        currency_label=current_app.config["CURRENCY_LABEL"],
    )
    db.session.commit()
    payload = {**_serialize_settlement(settlement), "admission": admission.to_dict()}
    signals.emit(signals.settlement_added, current_app._get_current_object(), group_id, payload)
    return jsonify({"data": payload, "warnings": []}), 201


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    settlements = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/settlements/mine", methods=["GET"])
@require_auth
def list_my_settlements():
    settlements = settlement_service.list_my_settlements(g.user_id, db.session)
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200
