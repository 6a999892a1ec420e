"""Custom decorators for authentication and validation."""
from functools import wraps

from flask import g, request
from flask_jwt_extended import get_jwt_identity

from attendance_engine import db
from attendance_engine.models.user import User
from attendance_engine.utils.helpers import error_response


def current_user_required(f):
    """Load the JWT identity into ``g.current_user``; use under ``@jwt_required()``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_id = int(get_jwt_identity())
        except (TypeError, ValueError):
            return error_response("Invalid token identity", 401)

        user = db.session.get(User, user_id)
        if not user:
            return error_response("User not found", 404)

        if not user.is_active:
            return error_response("Account is disabled", 403)

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def json_body_required(f):
    """Reject requests whose body is not a JSON object."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return error_response("Request body must be a JSON object", 400)
        return f(*args, **kwargs)
    return decorated_function


def json_body_optional(f):
    """Allow an empty body, but reject one that is not a JSON object."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        data = request.get_json(silent=True)
        if data is not None and not isinstance(data, dict):
            return error_response("Request body must be a JSON object", 400)
        return f(*args, **kwargs)
    return decorated_function
