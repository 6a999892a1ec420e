"""Excused-absence requests filed ahead of a session."""
from enum import Enum

from attendance_engine import db
from attendance_engine.models.base import BaseModel


class AbsenceRequestStatus(Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class AbsenceRequest(BaseModel):
    """One request per (session, participant)."""

    __tablename__ = 'absence_requests'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'participant_id', name='uq_absence_session_participant'),
    )

    session_id = db.Column(db.Integer, db.ForeignKey('program_sessions.id'), nullable=False, index=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=False)
    attachment = db.Column(db.String(500), nullable=True)
    status = db.Column(
        db.Enum(AbsenceRequestStatus), nullable=False, default=AbsenceRequestStatus.PENDING
    )

    # Review
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_note = db.Column(db.Text, nullable=True)

    participant = db.relationship('Participant')

    @property
    def is_pending(self) -> bool:
        return self.status == AbsenceRequestStatus.PENDING

    def to_dict(self, exclude: list = None):
        data = super().to_dict(exclude=exclude)
        data['session'] = self.session.to_summary()
        return data

    def __repr__(self):
        return f'<AbsenceRequest {self.session_id}-{self.participant_id} {self.status.value}>'
