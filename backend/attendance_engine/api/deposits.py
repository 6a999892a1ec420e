"""Deposit policy and settlement API endpoints."""
from flask import Blueprint, g, request
from flask_jwt_extended import jwt_required

from attendance_engine import limiter
from attendance_engine.services.deposit_service import DepositService
from attendance_engine.utils.decorators import current_user_required, json_body_optional, json_body_required
from attendance_engine.utils.helpers import error_response, service_error_response, success_response
from attendance_engine.utils.validators import Validator

deposits_bp = Blueprint('deposits', __name__)


@deposits_bp.route('/<int:program_id>/deposit-policy', methods=['GET'])
@jwt_required()
@current_user_required
def get_policy(program_id):
    result, error = DepositService.get_policy(program_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@deposits_bp.route('/<int:program_id>/deposit-policy', methods=['PUT'])
@jwt_required()
@current_user_required
@json_body_required
def update_policy(program_id):
    """Change deposit amount, thresholds, tiers or grace window."""
    data = request.get_json()

    for field in ('deposit_amount', 'grace_minutes'):
        if data.get(field) is not None:
            check = Validator.validate_int(data[field], field, minimum=0)
            if not check['is_valid']:
                return error_response(check['errors'][0], 400)

    if data.get('tiers') is not None:
        check = Validator.validate_tiers(data['tiers'])
        if not check['is_valid']:
            return error_response(check['errors'][0], 400)

    minimum_rate = data.get('minimum_rate')
    if minimum_rate is not None and (isinstance(minimum_rate, bool) or not isinstance(minimum_rate, (int, float))):
        return error_response("minimum_rate must be a number", 400)

    result, error = DepositService.update_policy(
        program_id,
        g.current_user,
        deposit_amount=data.get('deposit_amount'),
        minimum_rate=minimum_rate,
        tiers=data.get('tiers'),
        shortfall_action=data.get('shortfall_action'),
        grace_minutes=data.get('grace_minutes')
    )
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Deposit policy updated")


@deposits_bp.route('/<int:program_id>/deposits/summary', methods=['GET'])
@jwt_required()
@current_user_required
def deposit_summary(program_id):
    result, error = DepositService.summary(program_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@deposits_bp.route('/<int:program_id>/deposits/preview', methods=['GET'])
@jwt_required()
@current_user_required
def preview_all_deposits(program_id):
    """Projected return and forfeit for every participant."""
    result, error = DepositService.preview_all(program_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@deposits_bp.route('/<int:program_id>/deposits/<int:user_id>/preview', methods=['GET'])
@jwt_required()
@current_user_required
def preview_deposit(program_id, user_id):
    result, error = DepositService.preview(program_id, user_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@deposits_bp.route('/<int:program_id>/deposits/<int:user_id>', methods=['GET'])
@jwt_required()
@current_user_required
def get_deposit(program_id, user_id):
    result, error = DepositService.get_deposit(program_id, user_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(data=result)


@deposits_bp.route('/<int:program_id>/deposits/<int:user_id>/payment', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_optional
def record_payment(program_id, user_id):
    """Record that the participant paid their deposit."""
    data = request.get_json(silent=True) or {}

    amount = data.get('amount')
    if amount is not None:
        check = Validator.validate_int(amount, 'amount', minimum=0)
        if not check['is_valid']:
            return error_response(check['errors'][0], 400)

    result, error = DepositService.record_payment(program_id, user_id, g.current_user, amount=amount)
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Deposit payment recorded")


@deposits_bp.route('/<int:program_id>/deposits/<int:user_id>/settle', methods=['POST'])
@jwt_required()
@current_user_required
@json_body_optional
@limiter.limit("60 per hour")
def settle_deposit(program_id, user_id):
    """Settle one deposit; a settled deposit cannot be settled again."""
    data = request.get_json(silent=True) or {}

    result, error = DepositService.settle(program_id, user_id, g.current_user, note=data.get('note'))
    if error:
        return service_error_response(error)

    return success_response(data=result, message="Deposit settled")


@deposits_bp.route('/<int:program_id>/deposits/settle-all', methods=['POST'])
@jwt_required()
@current_user_required
@limiter.limit("10 per hour")
def settle_all_deposits(program_id):
    """Settle every paid deposit; failures are reported per participant."""
    result, error = DepositService.settle_all(program_id, g.current_user)
    if error:
        return service_error_response(error)

    return success_response(
        data=result,
        message=f"Settled {result['settled']} deposit(s), {result['failed']} failed"
    )
