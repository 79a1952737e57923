"""
routes/exports.py — CSV downloads.

These are the only handlers that do not return the JSON envelope: a
successful export is a text/csv attachment. Errors (bad format, not a
member) still come back as the usual JSON error body.

Endpoints (url_prefix=/api/v1/export):
  GET /export/options                            → 200  JSON
  GET /export/groups/:id/expenses?format=        → 200  CSV (detailed | summary)
  GET /export/groups/:id/settlements             → 200  CSV
  GET /export/expenses/mine?format=              → 200  CSV (detailed | summary)

All of them share EXPORT_RATE_LIMIT.
"""

from __future__ import annotations

from flask import Blueprint, Response, g, jsonify, request

from groupledger.app.extensions import configured_limit, db, limiter
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.export_schema import ExportQuerySchema
from groupledger.app.services import export_service

exports_bp = Blueprint("exports", __name__)
limiter.limit(configured_limit("EXPORT_RATE_LIMIT"))(exports_bp)


def _csv_response(filename: str, content: str) -> Response:
    return Response(
        content,
        status=200,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@exports_bp.route("/options", methods=["GET"])
@require_auth
def export_options():
    return jsonify({"data": export_service.export_options(), "warnings": []}), 200


@exports_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def export_group_expenses(group_id: int):
    params = ExportQuerySchema().load(request.args.to_dict())
    filename, content = export_service.export_group_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        fmt=params["format"],
        session=db.session,
    )
    return _csv_response(filename, content)


@exports_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_auth
def export_group_settlements(group_id: int):
    filename, content = export_service.export_group_settlements(group_id, g.user_id, db.session)
    return _csv_response(filename, content)


@exports_bp.route("/expenses/mine", methods=["GET"])
@require_auth
def export_my_expenses():
    params = ExportQuerySchema().load(request.args.to_dict())
    filename, content = export_service.export_my_expenses(g.user_id, params["format"], db.session)
    return _csv_response(filename, content)
