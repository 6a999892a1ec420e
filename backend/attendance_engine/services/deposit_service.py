"""Deposit policy, payment recording and settlement."""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from attendance_engine import db
from attendance_engine.models.deposit import (
    DEFAULT_MINIMUM_RATE, DEFAULT_REFUND_TIERS, Deposit, DepositPolicy, DepositStatus,
    RefundTier, ShortfallAction
)
from attendance_engine.models.program import Participant, Program
from attendance_engine.models.user import User
from attendance_engine.services.attendance_service import AttendanceService
from attendance_engine.services.authorization import Capability, require_capability
from attendance_engine.utils.errors import ErrorCode, ServiceError, fail
from attendance_engine.utils.helpers import isoformat, round_half_up, utcnow


@dataclass(frozen=True)
class SettlementOutcome:
    refund_percent: int
    return_amount: int
    forfeit_amount: int
    status: DepositStatus


def calculate_settlement(amount: int, rate: float, policy: DepositPolicy) -> SettlementOutcome:
    """Split a deposit into returned and kept parts for a final attendance rate."""
    percent = policy.refund_percent_for(rate)
    return_amount = min(amount, round_half_up(amount * percent / 100))
    forfeit_amount = amount - return_amount

    if return_amount == amount:
        status = DepositStatus.RETURNED
    elif policy.shortfall_action == ShortfallAction.CARRY:
        status = DepositStatus.CARRIED
    else:
        status = DepositStatus.FORFEITED

    return SettlementOutcome(percent, return_amount, forfeit_amount, status)


def deposit_to_dict(deposit: Deposit, participant: Participant) -> Dict:
    return {
        'participant_id': participant.id,
        'user_id': participant.user_id,
        'program_id': participant.program_id,
        'status': deposit.status.value,
        'amount': deposit.amount,
        'paid_at': isoformat(deposit.paid_at),
        'return_amount': deposit.return_amount,
        'forfeit_amount': deposit.forfeit_amount,
        'final_attendance_rate': deposit.final_attendance_rate,
        'settled_at': isoformat(deposit.settled_at),
        'settle_note': deposit.settle_note,
    }


class DepositService:
    """Service for deposit operations."""

    # ------------------------------------------------------------------ policy

    @staticmethod
    def ensure_policy(program_id: int) -> DepositPolicy:
        """The program's policy, creating the default one if missing (not committed)."""
        policy = DepositPolicy.query.filter_by(program_id=program_id).first()
        if policy:
            return policy

        policy = DepositService.default_policy(program_id)
        db.session.add(policy)
        return policy

    @staticmethod
    def default_policy(program_id: int) -> DepositPolicy:
        """A transient policy with the configured defaults."""
        policy = DepositPolicy(
            program_id=program_id,
            deposit_amount=current_app.config['DEFAULT_DEPOSIT_AMOUNT'],
            minimum_rate=DEFAULT_MINIMUM_RATE,
            shortfall_action=ShortfallAction.FORFEIT,
        )
        policy.tiers = [
            RefundTier(min_rate=min_rate, refund_percent=percent, label=f"{min_rate:g}% or more")
            for min_rate, percent in DEFAULT_REFUND_TIERS
        ]
        return policy

    @staticmethod
    def get_policy(program_id: int, actor: User) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        try:
            policy = DepositService.ensure_policy(program_id)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to load deposit policy for program %s', program_id)
            return fail(ErrorCode.INTERNAL_ERROR)

        return policy.to_dict(), None

    @staticmethod
    def _validate_policy(deposit_amount, minimum_rate, tiers, shortfall_action, grace_minutes,
                         current_minimum_rate: float = DEFAULT_MINIMUM_RATE) -> Optional[str]:
        if deposit_amount is not None and (not isinstance(deposit_amount, int) or deposit_amount < 0):
            return 'deposit_amount must be a non-negative integer'
        if minimum_rate is not None and not 0 <= minimum_rate <= 100:
            return 'minimum_rate must be between 0 and 100'
        threshold = minimum_rate if minimum_rate is not None else current_minimum_rate
        if grace_minutes is not None and (not isinstance(grace_minutes, int) or grace_minutes < 0):
            return 'grace_minutes must be a non-negative integer'
        if shortfall_action is not None:
            try:
                ShortfallAction(shortfall_action)
            except ValueError:
                return 'shortfall_action must be FORFEIT or CARRY'
        if tiers is not None:
            seen = set()
            for tier in tiers:
                min_rate = tier.get('min_rate')
                percent = tier.get('refund_percent')
                if min_rate is None or not 0 <= min_rate <= 100:
                    return 'tier min_rate must be between 0 and 100'
                if not isinstance(percent, int) or not 0 <= percent < 100:
                    return 'tier refund_percent must be an integer between 0 and 99'
                # Full return is reached only through minimum_rate
                if min_rate >= threshold:
                    return 'tier min_rate must be below minimum_rate'
                if min_rate in seen:
                    return 'tier min_rate values must be unique'
                seen.add(min_rate)
        return None

    @staticmethod
    def update_policy(
        program_id: int,
        actor: User,
        deposit_amount: Optional[int] = None,
        minimum_rate: Optional[float] = None,
        tiers: Optional[Sequence[Dict]] = None,
        shortfall_action: Optional[str] = None,
        grace_minutes: Optional[int] = None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Change a program's deposit settings; omitted fields are kept."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        current = DepositPolicy.query.filter_by(program_id=program_id).first()
        message = DepositService._validate_policy(
            deposit_amount, minimum_rate, tiers, shortfall_action, grace_minutes,
            current_minimum_rate=current.minimum_rate if current else DEFAULT_MINIMUM_RATE
        )
        if message:
            return fail(ErrorCode.VALIDATION_ERROR, message)

        try:
            policy = DepositService.ensure_policy(program_id)
            if deposit_amount is not None:
                policy.deposit_amount = deposit_amount
            if minimum_rate is not None:
                policy.minimum_rate = float(minimum_rate)
            if shortfall_action is not None:
                policy.shortfall_action = ShortfallAction(shortfall_action)
            if grace_minutes is not None:
                policy.grace_minutes = grace_minutes
            if tiers is not None:
                # Old rows go first; a new tier may reuse an old min_rate
                policy.tiers = []
                db.session.flush()
                policy.tiers = [
                    RefundTier(
                        min_rate=float(tier['min_rate']),
                        refund_percent=tier['refund_percent'],
                        label=tier.get('label'),
                    )
                    for tier in tiers
                ]
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to update deposit policy for program %s', program_id)
            return fail(ErrorCode.INTERNAL_ERROR)

        current_app.logger.info('Deposit policy of program %s updated by user %s', program_id, actor.id)
        db.session.refresh(policy)
        return policy.to_dict(), None

    # ----------------------------------------------------------------- payment

    @staticmethod
    def get_deposit(program_id: int, user_id: int, actor: User) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """A participant's deposit, readable by the participant or deposit managers."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        if actor.id != user_id:
            error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
            if error:
                return None, error

        participant = Participant.find(program_id, user_id)
        if not participant:
            return fail(ErrorCode.PARTICIPANT_NOT_FOUND)
        if not participant.deposit:
            return fail(ErrorCode.DEPOSIT_NOT_FOUND)

        return deposit_to_dict(participant.deposit, participant), None

    @staticmethod
    def record_payment(
        program_id: int,
        user_id: int,
        actor: User,
        amount: Optional[int] = None,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Record that a participant paid; no money is moved here."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        participant = Participant.find(program_id, user_id)
        if not participant:
            return fail(ErrorCode.PARTICIPANT_NOT_FOUND)

        if amount is not None and (not isinstance(amount, int) or amount < 0):
            return fail(ErrorCode.VALIDATION_ERROR, 'amount must be a non-negative integer')

        deposit = participant.deposit
        if deposit and deposit.is_settled:
            return fail(ErrorCode.ALREADY_SETTLED)
        if deposit and deposit.status == DepositStatus.PAID:
            return fail(ErrorCode.VALIDATION_ERROR, 'The deposit is already paid')

        try:
            if amount is None:
                amount = DepositService.ensure_policy(program_id).deposit_amount
            if deposit is None:
                deposit = Deposit(participant_id=participant.id)
                db.session.add(deposit)
            deposit.status = DepositStatus.PAID
            deposit.amount = amount
            deposit.paid_at = now or utcnow()
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to record deposit payment for participant %s', participant.id)
            return fail(ErrorCode.INTERNAL_ERROR)

        current_app.logger.info(
            'Deposit of %s recorded for participant %s by user %s', amount, participant.id, actor.id
        )
        return deposit_to_dict(deposit, participant), None

    # -------------------------------------------------------------- settlement

    @staticmethod
    def settle(
        program_id: int,
        user_id: int,
        actor: User,
        note: Optional[str] = None,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Freeze the attendance rate and decide the deposit's return, once."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        participant = Participant.find(program_id, user_id)
        if not participant:
            return fail(ErrorCode.PARTICIPANT_NOT_FOUND)

        return DepositService._settle_participant(participant, actor, note, now or utcnow())

    @staticmethod
    def _settle_participant(participant: Participant, actor: User, note, now):
        deposit = participant.deposit
        if deposit is None:
            return fail(ErrorCode.DEPOSIT_NOT_PAID)
        if deposit.is_settled:
            return fail(ErrorCode.ALREADY_SETTLED)
        if deposit.status != DepositStatus.PAID:
            return fail(ErrorCode.DEPOSIT_NOT_PAID)

        try:
            policy = DepositService.ensure_policy(participant.program_id)
            summary = AttendanceService.rate_for(participant, now)
            outcome = calculate_settlement(deposit.amount, summary.rate, policy)

            # Compare-and-swap on PAID so concurrent settlements resolve to one
            updated = Deposit.query.filter_by(id=deposit.id, status=DepositStatus.PAID).update({
                'status': outcome.status,
                'return_amount': outcome.return_amount,
                'forfeit_amount': outcome.forfeit_amount,
                'final_attendance_rate': summary.rate,
                'settled_at': now,
                'settled_by': actor.id,
                'settle_note': note,
                'updated_at': now,
            })
            if not updated:
                db.session.rollback()
                return fail(ErrorCode.ALREADY_SETTLED)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to settle deposit for participant %s', participant.id)
            return fail(ErrorCode.INTERNAL_ERROR)

        current_app.logger.info(
            'Deposit of participant %s settled as %s at rate %s (returned %s, kept %s) by user %s',
            participant.id, outcome.status.value, summary.rate,
            outcome.return_amount, outcome.forfeit_amount, actor.id
        )

        db.session.refresh(deposit)
        data = deposit_to_dict(deposit, participant)
        data['refund_percent'] = outcome.refund_percent
        data['attendance'] = summary.to_dict()
        return data, None

    @staticmethod
    def settle_all(program_id: int, actor: User, now=None) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Settle every PAID deposit of a program, reporting each result."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        now = now or utcnow()
        participants = Participant.query.join(Deposit).filter(
            Participant.program_id == program_id,
            Deposit.status == DepositStatus.PAID
        ).order_by(Participant.id).all()

        results: List[Dict] = []
        for participant in participants:
            data, error = DepositService._settle_participant(participant, actor, None, now)
            entry = {'participant_id': participant.id, 'user_id': participant.user_id, 'success': error is None}
            if error:
                entry['error'] = error.to_dict()
            else:
                entry['deposit'] = data
            results.append(entry)

        succeeded = sum(1 for entry in results if entry['success'])
        current_app.logger.info(
            'Batch settlement of program %s: %s settled, %s failed',
            program_id, succeeded, len(results) - succeeded
        )
        return {
            'program_id': program_id,
            'settled': succeeded,
            'failed': len(results) - succeeded,
            'results': results,
        }, None

    @staticmethod
    def summary(program_id: int, actor: User) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Counts and totals of a program's deposits by status."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        deposits = Deposit.query.join(Participant).filter(Participant.program_id == program_id).all()

        counts = {status.value.lower(): 0 for status in DepositStatus}
        for deposit in deposits:
            counts[deposit.status.value.lower()] += 1

        return {
            'program_id': program_id,
            'counts': counts,
            'total_paid': sum(d.amount for d in deposits if d.paid_at),
            'total_returned': sum(d.return_amount or 0 for d in deposits if d.is_settled),
            'total_forfeited': sum(
                d.forfeit_amount or 0 for d in deposits if d.status == DepositStatus.FORFEITED
            ),
            'total_carried': sum(
                d.forfeit_amount or 0 for d in deposits if d.status == DepositStatus.CARRIED
            ),
        }, None

    # ----------------------------------------------------------------- preview

    @staticmethod
    def _project(participant: Participant, policy: DepositPolicy, now) -> Dict:
        deposit = participant.deposit
        summary = AttendanceService.rate_for(participant, now)

        if deposit and (deposit.status == DepositStatus.PAID or deposit.is_settled):
            amount = deposit.amount
        else:
            amount = policy.deposit_amount
        outcome = calculate_settlement(amount, summary.rate, policy)

        data = {
            'participant_id': participant.id,
            'user_id': participant.user_id,
            'program_id': participant.program_id,
            'deposit_status': deposit.status.value if deposit else DepositStatus.NONE.value,
            'settled': bool(deposit and deposit.is_settled),
            'amount': amount,
            'attendance': summary.to_dict(),
            'minimum_rate': policy.minimum_rate,
            'eligible_for_full_return': summary.rate >= policy.minimum_rate,
            'refund_percent': outcome.refund_percent,
            'projected_return': outcome.return_amount,
            'projected_forfeit': outcome.forfeit_amount,
            'projected_status': outcome.status.value,
        }
        if deposit and deposit.is_settled:
            data['deposit'] = deposit_to_dict(deposit, participant)
        return data

    @staticmethod
    def _policy_for_preview(program_id: int) -> DepositPolicy:
        """Stored policy, or the defaults without creating a row."""
        return (
            DepositPolicy.query.filter_by(program_id=program_id).first()
            or DepositService.default_policy(program_id)
        )

    @staticmethod
    def preview(
        program_id: int,
        user_id: int,
        actor: User,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """
        What settling now would return, from the live attendance rate.
        Nothing is written; settled deposits also carry their frozen outcome.
        """
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        if actor.id != user_id:
            error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
            if error:
                return None, error

        participant = Participant.find(program_id, user_id)
        if not participant:
            return fail(ErrorCode.PARTICIPANT_NOT_FOUND)

        policy = DepositService._policy_for_preview(program_id)
        return DepositService._project(participant, policy, now or utcnow()), None

    @staticmethod
    def preview_all(program_id: int, actor: User, now=None) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Projected settlement of every participant in a program."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.MANAGE_DEPOSITS)
        if error:
            return None, error

        now = now or utcnow()
        policy = DepositService._policy_for_preview(program_id)
        participants = Participant.query.filter_by(program_id=program_id).order_by(Participant.id).all()

        rows = []
        for participant in participants:
            row = DepositService._project(participant, policy, now)
            row['name'] = participant.user.name
            rows.append(row)

        return {
            'program_id': program_id,
            'participants': rows,
            'eligible_for_full_return': sum(1 for row in rows if row['eligible_for_full_return']),
            'projected_return': sum(row['projected_return'] for row in rows),
            'projected_forfeit': sum(row['projected_forfeit'] for row in rows),
        }, None
