"""Attendance record: one row per (session, participant)."""
from enum import Enum

from attendance_engine import db
from attendance_engine.models.base import BaseModel


class AttendanceStatus(Enum):
    PRESENT = 'PRESENT'
    LATE = 'LATE'
    ABSENT = 'ABSENT'
    EXCUSED = 'EXCUSED'


class CheckInMethod(Enum):
    QR = 'QR'
    MANUAL = 'MANUAL'


class AttendanceRecord(BaseModel):
    """Attendance record model."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'participant_id', name='uq_attendance_session_participant'),
    )

    session_id = db.Column(db.Integer, db.ForeignKey('program_sessions.id'), nullable=False, index=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, index=True)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False)
    checked_at = db.Column(db.DateTime, nullable=True)
    method = db.Column(db.Enum(CheckInMethod), nullable=False, default=CheckInMethod.MANUAL)
    note = db.Column(db.Text, nullable=True)

    # Token used for a QR check-in, kept for auditing
    token_id = db.Column(db.Integer, db.ForeignKey('check_in_tokens.id'), nullable=True)

    # Who made the last manual change
    marked_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @classmethod
    def find(cls, session_id: int, participant_id: int):
        return cls.query.filter_by(session_id=session_id, participant_id=participant_id).first()

    @classmethod
    def get_or_build(cls, session_id: int, participant_id: int) -> 'AttendanceRecord':
        """Existing row for the pair, or a new one added to the session (upsert)."""
        record = cls.find(session_id, participant_id)
        if record is None:
            record = cls(session_id=session_id, participant_id=participant_id)
            db.session.add(record)
        return record

    def __repr__(self):
        return f'<AttendanceRecord {self.session_id}-{self.participant_id} {self.status.value}>'
