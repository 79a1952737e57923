"""
extensions.py — Flask extension singletons.

`db`, `ma` and `limiter` are created unbound here and attached to an app by
create_app() through init_app(), so tests can build as many isolated apps
as they need.

    from groupledger.app.extensions import db, ma, limiter

Request schemas in app/schemas/ inherit marshmallow.Schema directly, not
ma.Schema: ma.Schema needs an application context, and tests/unit/ runs
without one.
"""

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Bound in create_app() alongside db; request schemas do not depend on it.
ma = Marshmallow()

# Storage, default limit and headers come from the RATELIMIT_* config keys.
limiter = Limiter(key_func=get_remote_address)


def configured_limit(config_key: str):
    """
    Limit string read from app config at request time.

        @limiter.limit(configured_limit("SEARCH_RATE_LIMIT"))
    """
    return lambda: current_app.config[config_key]


def failed_request(response) -> bool:
    """deduct_when hook: only 4xx/5xx responses count against the limit."""
    return response.status_code >= 400
