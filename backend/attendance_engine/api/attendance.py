"""Attendance API endpoints."""
from flask import Blueprint, g, request
from flask_jwt_extended import jwt_required

from attendance_engine import limiter
from attendance_engine.services.attendance_service import AttendanceService
from attendance_engine.services.check_in_service import CheckInService
from attendance_engine.services.token_service import TokenService
from attendance_engine.utils.decorators import current_user_required, json_body_required
from attendance_engine.utils.helpers import error_response, service_error_response, success_response
from attendance_engine.utils.validators import Validator

attendance_bp = Blueprint('attendance', __name__)


@attendance_bp.route('/check-in', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_required
@limiter.limit("10 per minute")
def check_in():
    """Self check-in with a scanned token."""
    data = request.get_json()

    validation = Validator.validate_required_fields(data, ['token'])
    if not validation['is_valid']:
        return error_response(validation['errors'][0], 400)

    result, error = CheckInService.check_in_via_token(data['token'], g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result, message=result['message'], status_code=201)


@attendance_bp.route('/validate', methods=['POST'])
@jwt_required()
@json_body_required
@limiter.limit("30 per minute")
def validate_token():
    """Check a scanned token without recording anything."""
    data = request.get_json()

    result, error = TokenService.validate(data.get('token'))
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Token is valid")


@attendance_bp.route('/sessions/<int:session_id>/manual', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_required
def manual_check_in(session_id):
    """Mark or correct a participant's status by hand."""
    data = request.get_json()

    validation = Validator.validate_required_fields(data, ['user_id', 'status'])
    if not validation['is_valid']:
        return error_response(validation['errors'][0], 400)

    user_check = Validator.validate_int(data['user_id'], 'user_id', minimum=1)
    if not user_check['is_valid']:
        return error_response(user_check['errors'][0], 400)

    result, error = CheckInService.manual_check_in(
        session_id,
        data['user_id'],
        str(data['status']),
        g.current_user,
        note=data.get('note')
    )
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Attendance updated")


@attendance_bp.route('/sessions/<int:session_id>', methods=['GET'])
@jwt_required()
@current_user_required
@limiter.exempt
def session_attendance(session_id):
    """Roster with per-person status; clients poll this while check-in is open."""
    result, error = AttendanceService.get_session_attendance(session_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@attendance_bp.route('/programs/<int:program_id>/participants/<int:user_id>/rate', methods=['GET'])
@jwt_required()
@current_user_required
def participant_rate(program_id, user_id):
    """Attendance summary of one participant."""
    result, error = AttendanceService.get_participant_rate(program_id, user_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@attendance_bp.route('/programs/<int:program_id>/me', methods=['GET'])
@jwt_required()
@current_user_required
def my_attendance(program_id):
    """The caller's records and summary for a program."""
    history, error = AttendanceService.participant_history(program_id, g.current_user)
    if error:
        return service_error_response(error)

    summary, error = AttendanceService.get_participant_rate(program_id, g.current_user.id, g.current_user)
    if error:
        return service_error_response(error)

    history['summary'] = summary
    return success_response(data=history)
