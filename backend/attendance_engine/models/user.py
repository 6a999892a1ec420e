"""User model: the acting identity behind every request."""
from enum import Enum

from attendance_engine import db
from attendance_engine.models.base import BaseModel


class UserRole(Enum):
    """Site-wide roles."""
    MEMBER = 'member'
    ADMIN = 'admin'
    SUPER_ADMIN = 'super_admin'


class User(BaseModel):
    """A person known to the identity directory."""

    __tablename__ = 'users'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.MEMBER)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def is_admin(self) -> bool:
        """Check if user is a site administrator."""
        return self.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    def __repr__(self) -> str:
        return f'<User {self.email}>'
