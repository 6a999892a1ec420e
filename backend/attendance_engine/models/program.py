"""Program, its sessions, its staff and its enrolled participants."""
from datetime import timedelta
from enum import Enum

from attendance_engine import db
from attendance_engine.models.base import BaseModel


class StaffRole(Enum):
    """Per-program roles that grant management capabilities."""
    ORGANIZER = 'organizer'
    FACILITATOR = 'facilitator'


class Program(BaseModel):
    """A program with scheduled sessions and enrolled participants."""

    __tablename__ = 'programs'

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    sessions = db.relationship(
        'ProgramSession', backref='program', lazy='dynamic',
        order_by='ProgramSession.session_no', cascade='all, delete-orphan'
    )
    participants = db.relationship(
        'Participant', backref='program', lazy='dynamic', cascade='all, delete-orphan'
    )
    staff = db.relationship(
        'ProgramStaff', backref='program', lazy='dynamic', cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f'<Program {self.title}>'


class ProgramStaff(BaseModel):
    """A user holding an organizer or facilitator role in one program."""

    __tablename__ = 'program_staff'
    __table_args__ = (
        db.UniqueConstraint('program_id', 'user_id', name='uq_program_staff_user'),
    )

    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    role = db.Column(db.Enum(StaffRole), nullable=False)

    user = db.relationship('User')


class ProgramSession(BaseModel):
    """One scheduled meeting of a program."""

    __tablename__ = 'program_sessions'
    __table_args__ = (
        db.UniqueConstraint('program_id', 'session_no', name='uq_program_session_no'),
    )

    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False, index=True)
    session_no = db.Column(db.Integer, nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime, nullable=True)
    title = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    tokens = db.relationship(
        'CheckInToken', backref='session', lazy='dynamic', cascade='all, delete-orphan'
    )
    attendance_records = db.relationship(
        'AttendanceRecord', backref='session', lazy='dynamic', cascade='all, delete-orphan'
    )
    absence_requests = db.relationship(
        'AbsenceRequest', backref='session', lazy='dynamic', cascade='all, delete-orphan'
    )

    def check_in_closes_at(self, default_duration_minutes: int):
        """End of the check-in window: session end, or a default duration after start."""
        if self.ends_at:
            return self.ends_at
        return self.scheduled_at + timedelta(minutes=default_duration_minutes)

    def to_summary(self):
        return {
            'id': self.id,
            'program_id': self.program_id,
            'session_no': self.session_no,
            'title': self.title,
            'location': self.location,
            'scheduled_at': self.scheduled_at.isoformat(),
            'ends_at': self.ends_at.isoformat() if self.ends_at else None,
        }

    def __repr__(self):
        return f'<ProgramSession {self.program_id}#{self.session_no}>'


class Participant(BaseModel):
    """A user's enrollment in a program; anchors attendance and deposit state."""

    __tablename__ = 'participants'
    __table_args__ = (
        db.UniqueConstraint('program_id', 'user_id', name='uq_participant_program_user'),
    )

    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    user = db.relationship('User')
    attendance_records = db.relationship('AttendanceRecord', backref='participant', lazy='dynamic')
    deposit = db.relationship(
        'Deposit', backref='participant', uselist=False, cascade='all, delete-orphan'
    )

    @classmethod
    def find(cls, program_id: int, user_id: int):
        return cls.query.filter_by(program_id=program_id, user_id=user_id).first()

    def __repr__(self):
        return f'<Participant {self.program_id}-{self.user_id}>'
