"""Check-in token API endpoints (facilitator QR screen)."""
from flask import Blueprint, g, request
from flask_jwt_extended import jwt_required

from attendance_engine import limiter
from attendance_engine.services.token_service import TokenService
from attendance_engine.utils.decorators import current_user_required, json_body_optional
from attendance_engine.utils.helpers import service_error_response, success_response

tokens_bp = Blueprint('tokens', __name__)


def _include_image() -> bool:
    data = request.get_json(silent=True) or {}
    return bool(data.get('include_image', True))


@tokens_bp.route('/<int:session_id>/token', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_optional
@limiter.limit("60 per hour")
def issue_token(session_id):
    """Issue a check-in token, replacing the active one."""
    data, error = TokenService.issue(session_id, g.current_user, include_image=_include_image())
    if error:
        return service_error_response(error)

    return success_response(data=data, message="Check-in token issued", status_code=201)


@tokens_bp.route('/<int:session_id>/token/refresh', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_optional
@limiter.limit("120 per hour")
def refresh_token(session_id):
    """Rotate the token before it expires."""
    data, error = TokenService.refresh(session_id, g.current_user, include_image=_include_image())
    if error:
        return service_error_response(error)

    return success_response(data=data, message="Check-in token refreshed")


@tokens_bp.route('/<int:session_id>/token', methods=['GET'])
@jwt_required()
@current_user_required
@limiter.exempt
def current_token(session_id):
    """Polled by the QR screen."""
    data, error = TokenService.current_token(session_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=data)
