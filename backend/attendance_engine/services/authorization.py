"""Single capability check shared by every service."""
from enum import Enum
from typing import Optional

from attendance_engine.models.program import ProgramStaff, StaffRole
from attendance_engine.models.user import User
from attendance_engine.utils.errors import ErrorCode, ServiceError


class Capability(Enum):
    """Things an actor may do inside one program."""
    RUN_CHECK_IN = 'run_check_in'          # issue tokens, mark attendance by hand
    VIEW_ATTENDANCE = 'view_attendance'
    REVIEW_ABSENCES = 'review_absences'
    MANAGE_DEPOSITS = 'manage_deposits'


STAFF_CAPABILITIES = {
    StaffRole.ORGANIZER: frozenset(Capability),
    StaffRole.FACILITATOR: frozenset({Capability.RUN_CHECK_IN, Capability.VIEW_ATTENDANCE}),
}


def has_capability(actor: Optional[User], program_id: int, capability: Capability) -> bool:
    """Administrators can do everything; staff only what their role grants."""
    if actor is None or not actor.is_active:
        return False
    if actor.is_admin():
        return True

    staff = ProgramStaff.query.filter_by(program_id=program_id, user_id=actor.id).first()
    if not staff:
        return False
    return capability in STAFF_CAPABILITIES.get(staff.role, frozenset())


def require_capability(actor: Optional[User], program_id: int,
                       capability: Capability) -> Optional[ServiceError]:
    """Return a FORBIDDEN error when the actor lacks the capability."""
    if has_capability(actor, program_id, capability):
        return None
    return ServiceError(ErrorCode.FORBIDDEN)
