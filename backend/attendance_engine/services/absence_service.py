"""Excused-absence request workflow."""
import math
from typing import Dict, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendance_engine import db
from attendance_engine.models.absence_request import AbsenceRequest, AbsenceRequestStatus
from attendance_engine.models.attendance import AttendanceRecord, AttendanceStatus, CheckInMethod
from attendance_engine.models.program import Participant, Program, ProgramSession
from attendance_engine.models.user import User
from attendance_engine.services.attendance_cache import get_cache
from attendance_engine.services.authorization import Capability, require_capability
from attendance_engine.utils.errors import ErrorCode, ServiceError, fail
from attendance_engine.utils.helpers import utcnow

WRITE_ATTEMPTS = 2


class AbsenceService:
    """Service for absence requests: PENDING -> APPROVED | REJECTED, or cancelled."""

    @staticmethod
    def submit(
        session_id: int,
        user: User,
        reason: str,
        attachment: Optional[str] = None,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """File a request for an upcoming session."""
        session = db.session.get(ProgramSession, session_id)
        if not session:
            return fail(ErrorCode.SESSION_NOT_FOUND)

        participant = Participant.find(session.program_id, user.id)
        if not participant:
            return fail(ErrorCode.NOT_A_PARTICIPANT)

        reason = (reason or '').strip()
        if not reason:
            return fail(ErrorCode.VALIDATION_ERROR, 'A reason is required')

        now = now or utcnow()
        if session.scheduled_at < now:
            return fail(ErrorCode.SESSION_ALREADY_PAST)

        if AbsenceRequest.query.filter_by(session_id=session.id, participant_id=participant.id).first():
            return fail(ErrorCode.DUPLICATE_ABSENCE_REQUEST)

        request = AbsenceRequest(
            session_id=session.id,
            participant_id=participant.id,
            user_id=user.id,
            reason=reason,
            attachment=attachment,
            status=AbsenceRequestStatus.PENDING,
        )
        try:
            request.save()
        except IntegrityError:
            db.session.rollback()
            return fail(ErrorCode.DUPLICATE_ABSENCE_REQUEST)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to file absence request for session %s', session_id)
            return fail(ErrorCode.INTERNAL_ERROR)

        return request.to_dict(), None

    @staticmethod
    def _load_for_review(request_id: int, actor: User):
        request = db.session.get(AbsenceRequest, request_id)
        if not request:
            return fail(ErrorCode.REQUEST_NOT_FOUND)

        error = require_capability(actor, request.session.program_id, Capability.REVIEW_ABSENCES)
        if error:
            return None, error

        if not request.is_pending:
            return fail(ErrorCode.REQUEST_NOT_PENDING)
        return request, None

    @staticmethod
    def _decide(request: AbsenceRequest, status: AbsenceRequestStatus, actor: User, note, now) -> int:
        """Move a still-pending request to its final state; 0 when already decided."""
        return AbsenceRequest.query.filter_by(
            id=request.id, status=AbsenceRequestStatus.PENDING
        ).update({
            'status': status,
            'reviewed_by': actor.id,
            'reviewed_at': now,
            'review_note': note,
            'updated_at': now,
        })

    @staticmethod
    def approve(
        request_id: int,
        actor: User,
        note: Optional[str] = None,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Approve and mark the session EXCUSED for the requester."""
        request, error = AbsenceService._load_for_review(request_id, actor)
        if error:
            return None, error

        now = now or utcnow()
        session_id, participant_id = request.session_id, request.participant_id
        excuse_note = f"Absence approved: {request.reason}"

        for attempt in range(1, WRITE_ATTEMPTS + 1):
            try:
                if not AbsenceService._decide(request, AbsenceRequestStatus.APPROVED, actor, note, now):
                    db.session.rollback()
                    return fail(ErrorCode.REQUEST_NOT_PENDING)

                record = AttendanceRecord.get_or_build(session_id, participant_id)
                record.status = AttendanceStatus.EXCUSED
                record.checked_at = None
                record.method = CheckInMethod.MANUAL
                record.token_id = None
                record.marked_by = actor.id
                record.note = excuse_note

                db.session.commit()
                break
            except IntegrityError:
                # Attendance row for the pair appeared concurrently; redo both writes
                db.session.rollback()
                if attempt == WRITE_ATTEMPTS:
                    current_app.logger.exception('Approval of absence request %s kept colliding', request_id)
                    return fail(ErrorCode.INTERNAL_ERROR)
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception('Failed to approve absence request %s', request_id)
                return fail(ErrorCode.INTERNAL_ERROR)

        get_cache().invalidate(session_id)
        current_app.logger.info('Absence request %s approved by user %s', request_id, actor.id)

        db.session.refresh(request)
        return request.to_dict(), None

    @staticmethod
    def reject(
        request_id: int,
        actor: User,
        reason: str,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Reject; the attendance record is left as it is."""
        request, error = AbsenceService._load_for_review(request_id, actor)
        if error:
            return None, error

        now = now or utcnow()
        try:
            if not AbsenceService._decide(request, AbsenceRequestStatus.REJECTED, actor, reason, now):
                db.session.rollback()
                return fail(ErrorCode.REQUEST_NOT_PENDING)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to reject absence request %s', request_id)
            return fail(ErrorCode.INTERNAL_ERROR)

        current_app.logger.info('Absence request %s rejected by user %s', request_id, actor.id)

        db.session.refresh(request)
        return request.to_dict(), None

    @staticmethod
    def cancel(request_id: int, user: User) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """The requester withdraws a pending request; the row is deleted."""
        request = db.session.get(AbsenceRequest, request_id)
        if not request:
            return fail(ErrorCode.REQUEST_NOT_FOUND)

        if request.user_id != user.id:
            return fail(ErrorCode.FORBIDDEN, 'Only the requester can cancel this request')

        if not request.is_pending:
            return fail(ErrorCode.REQUEST_NOT_PENDING)

        try:
            deleted = AbsenceRequest.query.filter_by(
                id=request_id, status=AbsenceRequestStatus.PENDING
            ).delete()
            if not deleted:
                db.session.rollback()
                return fail(ErrorCode.REQUEST_NOT_PENDING)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception('Failed to cancel absence request %s', request_id)
            return fail(ErrorCode.INTERNAL_ERROR)

        return {'id': request_id, 'cancelled': True}, None

    @staticmethod
    def list_for_program(
        program_id: int,
        actor: User,
        status: Optional[str] = None,
        session_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Paginated requests of one program, newest first."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        error = require_capability(actor, program_id, Capability.REVIEW_ABSENCES)
        if error:
            return None, error

        query = AbsenceRequest.query.join(ProgramSession).filter(ProgramSession.program_id == program_id)
        if session_id:
            query = query.filter(AbsenceRequest.session_id == session_id)
        if status:
            try:
                query = query.filter(AbsenceRequest.status == AbsenceRequestStatus(status.upper()))
            except ValueError:
                return fail(ErrorCode.VALIDATION_ERROR, f"Unknown status: {status}")

        page = max(page, 1)
        limit = max(1, min(limit, current_app.config['MAX_PAGE_SIZE']))
        total = query.count()
        requests = query.order_by(AbsenceRequest.created_at.desc(), AbsenceRequest.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        return {
            'requests': [request.to_dict() for request in requests],
            'total': total,
            'page': page,
            'total_pages': math.ceil(total / limit) if total else 0,
        }, None

    @staticmethod
    def list_mine(user: User, program_id: Optional[int] = None) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """The caller's own requests, newest first."""
        query = AbsenceRequest.query.filter(AbsenceRequest.user_id == user.id)
        if program_id:
            query = query.join(ProgramSession).filter(ProgramSession.program_id == program_id)

        requests = query.order_by(AbsenceRequest.created_at.desc(), AbsenceRequest.id.desc()).all()
        return {'requests': [request.to_dict() for request in requests]}, None
