# groupledger/app/routes/users.py
from flask import Blueprint, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import auth_service

users_bp = Blueprint("users", __name__)


# Used by the "add member" dialog to resolve an email before POSTing it.
@users_bp.route("/by-email/<string:email>", methods=["GET"])
@require_auth
def get_user_by_email(email: str):
    result = auth_service.find_user_by_email(email, db.session)
    return jsonify({"data": result, "warnings": []}), 200
