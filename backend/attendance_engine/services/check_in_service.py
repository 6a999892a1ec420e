"""Turns scanned tokens and manual marks into attendance records."""
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendance_engine import db
from attendance_engine.models.attendance import AttendanceRecord, AttendanceStatus, CheckInMethod
from attendance_engine.models.deposit import DepositPolicy
from attendance_engine.models.program import Participant, ProgramSession
from attendance_engine.models.user import User
from attendance_engine.services.attendance_cache import get_cache
from attendance_engine.services.authorization import Capability, require_capability
from attendance_engine.services.token_service import TokenService
from attendance_engine.utils.errors import ErrorCode, ServiceError, fail
from attendance_engine.utils.helpers import isoformat, utcnow

MANUAL_STATUSES = (AttendanceStatus.PRESENT, AttendanceStatus.LATE, AttendanceStatus.ABSENT)
WRITE_ATTEMPTS = 2


def determine_status(scheduled_at: datetime, checked_at: datetime, grace_minutes: int) -> AttendanceStatus:
    """PRESENT up to and including the end of the grace window, LATE after."""
    if checked_at <= scheduled_at + timedelta(minutes=grace_minutes):
        return AttendanceStatus.PRESENT
    return AttendanceStatus.LATE


def late_minutes(scheduled_at: datetime, checked_at: datetime) -> int:
    """Whole minutes after the scheduled start; negative when early."""
    return int((checked_at - scheduled_at).total_seconds() // 60)


def check_in_message(status: AttendanceStatus, minutes_late: Optional[int] = None) -> str:
    if status == AttendanceStatus.PRESENT:
        return 'Checked in. Welcome!'
    if status == AttendanceStatus.LATE:
        return f'Checked in late ({minutes_late} min after start)'
    return 'Attendance recorded'


class CheckInService:
    """Service for check-in operations."""

    @staticmethod
    def grace_minutes_for(program_id: int) -> int:
        """Program override, else the configured default."""
        policy = DepositPolicy.query.filter_by(program_id=program_id).first()
        if policy and policy.grace_minutes is not None:
            return policy.grace_minutes
        return current_app.config['DEFAULT_GRACE_MINUTES']

    @staticmethod
    def check_in_window(session: ProgramSession) -> Tuple[datetime, datetime]:
        config = current_app.config
        opens_at = session.scheduled_at - timedelta(minutes=config['CHECK_IN_OPENS_BEFORE_MINUTES'])
        closes_at = session.check_in_closes_at(config['CHECK_IN_DEFAULT_DURATION_MINUTES'])
        return opens_at, closes_at

    @staticmethod
    def is_check_in_open(session: ProgramSession, now: datetime) -> bool:
        opens_at, closes_at = CheckInService.check_in_window(session)
        return opens_at <= now <= closes_at

    @staticmethod
    def remaining_check_in_seconds(session: ProgramSession, now: datetime) -> int:
        _, closes_at = CheckInService.check_in_window(session)
        return max(0, int((closes_at - now).total_seconds()))

    @staticmethod
    def check_in_via_token(
        token_string: str,
        user: User,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """
        Self check-in by scanning a session's QR token.
        Returns: ({status, checked_at, late_minutes, message, session}, None) or (None, error)
        """
        now = now or utcnow()

        token = TokenService.find_usable(token_string, now)
        if not token:
            return fail(ErrorCode.INVALID_OR_EXPIRED_TOKEN)

        session = db.session.get(ProgramSession, token.session_id)
        if not session:
            return fail(ErrorCode.SESSION_NOT_FOUND)

        participant = Participant.find(session.program_id, user.id)
        if not participant:
            return fail(ErrorCode.NOT_A_PARTICIPANT)

        existing = AttendanceRecord.find(session.id, participant.id)
        if existing and existing.status != AttendanceStatus.ABSENT:
            return fail(ErrorCode.ALREADY_CHECKED_IN)

        if not CheckInService.is_check_in_open(session, now):
            return fail(ErrorCode.CHECK_IN_CLOSED)

        status = determine_status(
            session.scheduled_at, now, CheckInService.grace_minutes_for(session.program_id)
        )
        values = {
            'status': status,
            'checked_at': now,
            'method': CheckInMethod.QR,
            'token_id': token.id,
        }

        try:
            written = CheckInService._write_qr_record(session.id, participant.id, values)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('QR check-in failed for session %s, user %s', session.id, user.id)
            return fail(ErrorCode.INTERNAL_ERROR)

        if not written:
            return fail(ErrorCode.ALREADY_CHECKED_IN)

        get_cache().invalidate(session.id)

        minutes = late_minutes(session.scheduled_at, now) if status == AttendanceStatus.LATE else None
        return {
            'status': status.value,
            'checked_at': now.isoformat(),
            'method': CheckInMethod.QR.value,
            'late_minutes': minutes,
            'message': check_in_message(status, minutes),
            'session': session.to_summary(),
        }, None

    @staticmethod
    def _write_qr_record(session_id: int, participant_id: int, values: Dict) -> bool:
        """Insert, or convert an ABSENT row; False when another check-in got there first."""
        for _ in range(WRITE_ATTEMPTS):
            record = AttendanceRecord.find(session_id, participant_id)
            if record is None:
                db.session.add(AttendanceRecord(
                    session_id=session_id, participant_id=participant_id, **values
                ))
                try:
                    db.session.commit()
                    return True
                except IntegrityError:
                    # Someone wrote the row in between; decide again from what is stored
                    db.session.rollback()
                    continue

            # Only a row still ABSENT may be converted by a scan
            updated = AttendanceRecord.query.filter_by(
                id=record.id, status=AttendanceStatus.ABSENT
            ).update(values)
            if not updated:
                db.session.rollback()
                return False
            db.session.commit()
            return True

        return False

    @staticmethod
    def manual_check_in(
        session_id: int,
        target_user_id: int,
        status: Union[AttendanceStatus, str],
        actor: User,
        note: Optional[str] = None,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Set a participant's status directly; the correction path."""
        session = db.session.get(ProgramSession, session_id)
        if not session:
            return fail(ErrorCode.SESSION_NOT_FOUND)

        error = require_capability(actor, session.program_id, Capability.RUN_CHECK_IN)
        if error:
            return None, error

        try:
            status = AttendanceStatus(status.upper() if isinstance(status, str) else status)
        except ValueError:
            return fail(ErrorCode.INVALID_STATUS)
        if status not in MANUAL_STATUSES:
            return fail(ErrorCode.INVALID_STATUS, 'Status must be PRESENT, LATE or ABSENT')

        participant = Participant.find(session.program_id, target_user_id)
        if not participant:
            return fail(ErrorCode.NOT_A_PARTICIPANT)

        now = now or utcnow()
        record = None
        for attempt in range(1, WRITE_ATTEMPTS + 1):
            record = AttendanceRecord.get_or_build(session.id, participant.id)
            record.status = status
            record.method = CheckInMethod.MANUAL
            record.checked_at = None if status == AttendanceStatus.ABSENT else now
            record.token_id = None
            record.marked_by = actor.id
            if note is not None:
                record.note = note
            try:
                db.session.commit()
                break
            except IntegrityError:
                # Concurrent insert for the same pair; retry as an update
                db.session.rollback()
                if attempt == WRITE_ATTEMPTS:
                    current_app.logger.exception('Manual check-in kept colliding for session %s', session.id)
                    return fail(ErrorCode.INTERNAL_ERROR)
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception('Manual check-in failed for session %s', session.id)
                return fail(ErrorCode.INTERNAL_ERROR)

        get_cache().invalidate(session.id)
        current_app.logger.info(
            'User %s marked user %s as %s for session %s',
            actor.id, target_user_id, status.value, session.id
        )

        return {
            'session_id': session.id,
            'participant_id': participant.id,
            'status': record.status.value,
            'method': record.method.value,
            'checked_at': isoformat(record.checked_at),
            'note': record.note,
        }, None
