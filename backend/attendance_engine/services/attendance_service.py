"""Attendance aggregation: rates, counts and session rosters."""
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from flask import current_app

from attendance_engine import db
from attendance_engine.models.attendance import AttendanceRecord, AttendanceStatus
from attendance_engine.models.program import Participant, Program, ProgramSession
from attendance_engine.models.user import User
from attendance_engine.services.attendance_cache import get_cache
from attendance_engine.services.authorization import Capability, require_capability
from attendance_engine.utils.errors import ErrorCode, ServiceError, fail
from attendance_engine.utils.helpers import isoformat, round_half_up, utcnow


@dataclass(frozen=True)
class AttendanceSummary:
    """Counts over the held sessions of one program for one participant."""
    held: int
    present: int
    late: int
    absent: int
    excused: int
    counted: int
    rate: float
    last_attended_at: Optional[datetime] = None

    @property
    def attended(self) -> int:
        return self.present + self.late

    def to_dict(self):
        data = asdict(self)
        data['attended'] = self.attended
        data['last_attended_at'] = isoformat(self.last_attended_at)
        return data


def summarize(held_session_ids: Iterable[int], records: Iterable[AttendanceRecord]) -> AttendanceSummary:
    """
    Aggregate records over held sessions.

    Excused sessions leave both numerator and denominator; a held session
    without a record counts as absent.
    """
    held = set(held_session_ids)
    statuses = {}
    last_attended_at = None

    for record in records:
        if record.session_id not in held:
            continue
        statuses[record.session_id] = record.status
        if record.status == AttendanceStatus.PRESENT and record.checked_at:
            if last_attended_at is None or record.checked_at > last_attended_at:
                last_attended_at = record.checked_at

    present = sum(1 for s in statuses.values() if s == AttendanceStatus.PRESENT)
    late = sum(1 for s in statuses.values() if s == AttendanceStatus.LATE)
    excused = sum(1 for s in statuses.values() if s == AttendanceStatus.EXCUSED)
    counted = len(held) - excused
    absent = counted - present - late

    rate = 0.0
    if counted > 0:
        rate = round_half_up(Decimal((present + late) * 100) / Decimal(counted), 1)

    return AttendanceSummary(
        held=len(held),
        present=present,
        late=late,
        absent=absent,
        excused=excused,
        counted=counted,
        rate=rate,
        last_attended_at=last_attended_at,
    )


class AttendanceService:
    """Service for reading attendance state."""

    @staticmethod
    def held_session_ids(program_id: int, now=None):
        now = now or utcnow()
        rows = db.session.query(ProgramSession.id).filter(
            ProgramSession.program_id == program_id,
            ProgramSession.scheduled_at <= now
        ).all()
        return [row.id for row in rows]

    @staticmethod
    def rate_for(participant: Participant, now=None) -> AttendanceSummary:
        """Recompute the participant's summary from stored records."""
        held = AttendanceService.held_session_ids(participant.program_id, now)
        records = AttendanceRecord.query.filter_by(participant_id=participant.id).all()
        return summarize(held, records)

    @staticmethod
    def get_participant_rate(
        program_id: int,
        user_id: int,
        actor: User,
        now=None
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """A participant may read their own rate; staff need view access."""
        if not db.session.get(Program, program_id):
            return fail(ErrorCode.PROGRAM_NOT_FOUND)

        if actor.id != user_id:
            error = require_capability(actor, program_id, Capability.VIEW_ATTENDANCE)
            if error:
                return None, error

        participant = Participant.find(program_id, user_id)
        if not participant:
            return fail(ErrorCode.NOT_A_PARTICIPANT)

        summary = AttendanceService.rate_for(participant, now)
        data = summary.to_dict()
        data.update({'program_id': program_id, 'user_id': user_id, 'participant_id': participant.id})
        return data, None

    @staticmethod
    def get_session_attendance(session_id: int, actor: User) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Roster, per-person status and counts for one session."""
        session = db.session.get(ProgramSession, session_id)
        if not session:
            return fail(ErrorCode.SESSION_NOT_FOUND)

        error = require_capability(actor, session.program_id, Capability.VIEW_ATTENDANCE)
        if error:
            return None, error

        cache = get_cache()
        cached = cache.get(session_id)
        if cached is not None:
            return cached, None

        payload = AttendanceService._build_session_view(session)
        cache.set(session_id, payload)
        return payload, None

    @staticmethod
    def _build_session_view(session: ProgramSession) -> Dict:
        participants = Participant.query.filter_by(program_id=session.program_id) \
            .order_by(Participant.id).all()
        records = {
            record.participant_id: record
            for record in AttendanceRecord.query.filter_by(session_id=session.id)
        }

        stats = {'total': len(participants), 'present': 0, 'late': 0, 'absent': 0, 'excused': 0}
        roster = []
        for participant in participants:
            record = records.get(participant.id)
            status = record.status if record else AttendanceStatus.ABSENT
            stats[status.value.lower()] += 1

            roster.append({
                'participant_id': participant.id,
                'user': {
                    'id': participant.user.id,
                    'name': participant.user.name,
                    'email': participant.user.email,
                },
                'attendance': {
                    'status': record.status.value,
                    'method': record.method.value,
                    'checked_at': isoformat(record.checked_at),
                    'note': record.note,
                } if record else None,
            })

        return {
            'session': session.to_summary(),
            'participants': roster,
            'stats': stats,
            'poll_interval_seconds': current_app.config['ATTENDANCE_POLL_INTERVAL_SECONDS'],
        }

    @staticmethod
    def participant_history(program_id: int, user: User) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """The caller's own records in a program, by session number."""
        participant = Participant.find(program_id, user.id)
        if not participant:
            return fail(ErrorCode.NOT_A_PARTICIPANT)

        records = AttendanceRecord.query.join(ProgramSession) \
            .filter(AttendanceRecord.participant_id == participant.id) \
            .order_by(ProgramSession.session_no).all()

        return {
            'program_id': program_id,
            'records': [
                {
                    'session': record.session.to_summary(),
                    'status': record.status.value,
                    'method': record.method.value,
                    'checked_at': isoformat(record.checked_at),
                    'note': record.note,
                }
                for record in records
            ],
        }, None
