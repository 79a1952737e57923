"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this
blueprint owns both the group-scoped paths (/groups/:id/expenses) and the
expense-ID paths (/expenses/:id).

Parse, validate, call ONE service, commit, send the signal, return the
envelope. _serialize_expense() only shapes data.

Endpoints:
  POST   /groups/:id/expenses          → 201  create expense
  GET    /groups/:id/expenses          → 200  active expenses, each with is_fully_settled
  GET    /groups/:id/expenses/filter   → 200  filtered, sorted, paginated
  GET    /expenses/search?q=           → 200  search across the caller's groups
  GET    /expenses/:id                 → 200  expense + splits + outstanding
  PATCH  /expenses/:id                 → 200  partial update
  DELETE /expenses/:id                 → 200  soft delete
  POST   /expenses/:id/receipt         → 200  attach receipt reference
  DELETE /expenses/:id/receipt         → 200  remove receipt reference

Every endpoint counts against EXPENSE_RATE_LIMIT. Search and receipt
uploads also have their own tighter limits.
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app import signals
from groupledger.app.extensions import configured_limit, db, limiter
from groupledger.app.ledger.money import format_money
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.models.expense import SplitMode
from groupledger.app.schemas.expense_schema import (
    CreateExpenseSchema,
    ExpenseFilterSchema,
    ExpenseSearchSchema,
    PatchExpenseSchema,
    ReceiptSchema,
)
from groupledger.app.services import expense_service
from groupledger.app.services.expense_service import AnnotatedExpense, Page

expenses_bp = Blueprint("expenses", __name__)
limiter.limit(configured_limit("EXPENSE_RATE_LIMIT"))(expenses_bp)


# ── Serialization helpers ──────────────────────────────────────────────────

def _iso(value):
    return value.isoformat() if value else None


def _serialize_expense(item: AnnotatedExpense) -> dict:
    expense = item.expense
    data = {
        "id": expense.id,
        "group_id": expense.group_id,
        "paid_by_user_id": expense.paid_by_user_id,
        "paid_by_name": expense.payer.name,
        "created_by_user_id": expense.created_by_user_id,
        "description": expense.description,
        "amount": format_money(expense.amount),
        "split_mode": SplitMode(expense.split_mode).value,
        "category_id": expense.category_id,
        "category_name": expense.category.name if expense.category is not None else None,
        "tags": list(expense.tags or []),
        "receipt": {
            "url": expense.receipt_url,
            "public_id": expense.receipt_public_id,
            "filename": expense.receipt_filename,
        } if expense.has_receipt else None,
        "is_fully_settled": item.is_fully_settled,
        "created_at": _iso(expense.created_at),
        "updated_at": _iso(expense.updated_at),
        "deleted_at": _iso(expense.deleted_at),
        "splits": [
            {
                "id": s.id,
                "user_id": s.user_id,
                "name": s.user.name,
                "share": format_money(s.share),
            }
            for s in expense.splits
        ],
    }
    if item.outstanding is not None:
        data["outstanding"] = [
            {"user_id": uid, "remaining": format_money(remaining)}
            for uid, remaining in item.outstanding.items()
        ]
    return data


def _serialize_page(page: Page) -> dict:
    return {
        "expenses": [_serialize_expense(e) for e in page.items],
        "pagination": page.pagination,
    }


def _page_sizes() -> dict:
    return {
        "default_page_size": current_app.config["DEFAULT_PAGE_SIZE"],
        "max_page_size": current_app.config["MAX_PAGE_SIZE"],
    }


# ── Group-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    """
    POST /groups/:id/expenses — Record a new expense.
    Handles both 'equal' (server computes shares) and 'custom' modes.
    """
    data = CreateExpenseSchema().load(request.get_json(silent=True) or {})
    item = expense_service.create_expense(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    payload = _serialize_expense(item)
    signals.emit(signals.expense_added, current_app._get_current_object(), group_id, payload)
    return jsonify({"data": payload, "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    items = expense_service.list_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in items],
        "warnings": [],
    }), 200


@expenses_bp.route("/groups/<int:group_id>/expenses/filter", methods=["GET"])
@require_auth
def filter_expenses(group_id: int):
    filters = ExpenseFilterSchema().load(request.args.to_dict())
    page = expense_service.filter_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        filters=filters,
        session=db.session,
        **_page_sizes(),
    )
    return jsonify({"data": _serialize_page(page), "warnings": []}), 200


@expenses_bp.route("/expenses/search", methods=["GET"])
@limiter.limit(configured_limit("SEARCH_RATE_LIMIT"), override_defaults=False)
@require_auth
def search_expenses():
    params = ExpenseSearchSchema().load(request.args.to_dict())
    page = expense_service.search_expenses(
        caller_id=g.user_id,
        query=params["q"],
        session=db.session,
        page=params["page"],
        limit=params["limit"],
        **_page_sizes(),
    )
    return jsonify({"data": _serialize_page(page), "warnings": []}), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    """GET /expenses/:id — Detail with splits and what each user still owes."""
    item = expense_service.get_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(item), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["PATCH"])
@require_auth
def edit_expense(expense_id: int):
    """
    PATCH /expenses/:id — Partial update. Shares are re-validated against
    the amount whenever either changes. Expense creator or group creator only.
    """
    data = PatchExpenseSchema().load(request.get_json(silent=True) or {})
    item = expense_service.edit_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    payload = _serialize_expense(item)
    signals.emit(signals.expense_updated, current_app._get_current_object(), item.expense.group_id, payload)
    return jsonify({"data": payload, "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    """
    DELETE /expenses/:id — Soft delete. The row and its splits stay; every
    balance and status computation skips it from now on.
    """
    expense = expense_service.delete_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    payload = {"deleted": True, "expense_id": expense_id}
    signals.emit(signals.expense_deleted, current_app._get_current_object(), expense.group_id, payload)
    return jsonify({"data": payload, "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>/receipt", methods=["POST"])
@limiter.limit(configured_limit("UPLOAD_RATE_LIMIT"), override_defaults=False)
@require_auth
def attach_receipt(expense_id: int):
    data = ReceiptSchema().load(request.get_json(silent=True) or {})
    item = expense_service.attach_receipt(
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    payload = _serialize_expense(item)
    signals.emit(signals.expense_updated, current_app._get_current_object(), item.expense.group_id, payload)
    return jsonify({"data": payload, "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>/receipt", methods=["DELETE"])
@require_auth
def remove_receipt(expense_id: int):
    item = expense_service.remove_receipt(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    payload = _serialize_expense(item)
    signals.emit(signals.expense_updated, current_app._get_current_object(), item.expense.group_id, payload)
    return jsonify({"data": payload, "warnings": []}), 200
