"""Absence request API endpoints."""
from flask import Blueprint, current_app, g, request
from flask_jwt_extended import jwt_required

from attendance_engine import limiter
from attendance_engine.services.absence_service import AbsenceService
from attendance_engine.utils.decorators import current_user_required, json_body_optional, json_body_required
from attendance_engine.utils.helpers import error_response, service_error_response, success_response
from attendance_engine.utils.validators import Validator, pagination_args

absences_bp = Blueprint('absences', __name__)


@absences_bp.route('', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_required
@limiter.limit("20 per hour")
def submit_request():
    """File an absence request for an upcoming session."""
    data = request.get_json()

    validation = Validator.validate_required_fields(data, ['session_id', 'reason'])
    if not validation['is_valid']:
        return error_response(validation['errors'][0], 400)

    session_check = Validator.validate_int(data['session_id'], 'session_id', minimum=1)
    if not session_check['is_valid']:
        return error_response(session_check['errors'][0], 400)

    result, error = AbsenceService.submit(
        data['session_id'],
        g.current_user,
        str(data['reason']),
        attachment=data.get('attachment')
    )
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Absence request submitted", status_code=201)


@absences_bp.route('/mine', methods=['GET'])
@jwt_required()
@current_user_required
def my_requests():
    result, _ = AbsenceService.list_mine(g.current_user, request.args.get('program_id', type=int))
    return success_response(data=result)


@absences_bp.route('/programs/<int:program_id>', methods=['GET'])
@jwt_required()
@current_user_required
def program_requests(program_id):
    """Paginated requests of a program, filterable by status and session."""
    page, limit = pagination_args(
        request.args, current_app.config['DEFAULT_PAGE_SIZE'], current_app.config['MAX_PAGE_SIZE']
    )
    result, error = AbsenceService.list_for_program(
        program_id,
        g.current_user,
        status=request.args.get('status'),
        session_id=request.args.get('session_id', type=int),
        page=page,
        limit=limit
    )
    if error:
        return service_error_response(error)

    return success_response(data=result)


@absences_bp.route('/<int:request_id>/approve', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_optional
def approve_request(request_id):
    data = request.get_json(silent=True) or {}

    result, error = AbsenceService.approve(request_id, g.current_user, note=data.get('note'))
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Absence request approved")


@absences_bp.route('/<int:request_id>/reject', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_required
def reject_request(request_id):
    data = request.get_json()

    validation = Validator.validate_required_fields(data, ['reason'])
    if not validation['is_valid']:
        return error_response(validation['errors'][0], 400)

    result, error = AbsenceService.reject(request_id, g.current_user, str(data['reason']))
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Absence request rejected")


@absences_bp.route('/<int:request_id>', methods=['DELETE'])
@jwt_required()
@current_user_required
def cancel_request(request_id):
    """Withdraw a pending request."""
    result, error = AbsenceService.cancel(request_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Absence request cancelled")
