"""Short-lived check-in tokens shown as QR codes."""
import secrets

from attendance_engine import db
from attendance_engine.models.base import BaseModel


class CheckInToken(BaseModel):
    """Opaque token bound to one session; at most one active per session."""

    __tablename__ = 'check_in_tokens'
    __table_args__ = (
        db.Index(
            'uq_check_in_tokens_active_session', 'session_id',
            unique=True,
            sqlite_where=db.text('is_active = 1'),
            postgresql_where=db.text('is_active'),
        ),
    )

    session_id = db.Column(db.Integer, db.ForeignKey('program_sessions.id'), nullable=False)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    valid_from = db.Column(db.DateTime, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @staticmethod
    def generate_token() -> str:
        """Generate an unguessable token string."""
        return secrets.token_urlsafe(32)

    def is_usable(self, now) -> bool:
        """Active and inside its validity window, both ends inclusive."""
        return bool(self.is_active) and self.valid_from <= now <= self.valid_until

    def __repr__(self):
        return f'<CheckInToken session={self.session_id} active={self.is_active}>'
