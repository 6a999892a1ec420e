"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .program import Program, ProgramStaff, StaffRole, ProgramSession, Participant
from .check_in_token import CheckInToken
from .attendance import AttendanceRecord, AttendanceStatus, CheckInMethod
from .absence_request import AbsenceRequest, AbsenceRequestStatus
from .deposit import Deposit, DepositPolicy, DepositStatus, RefundTier, ShortfallAction

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'Program', 'ProgramStaff', 'StaffRole', 'ProgramSession', 'Participant',
    'CheckInToken', 'AttendanceRecord', 'AttendanceStatus', 'CheckInMethod',
    'AbsenceRequest', 'AbsenceRequestStatus',
    'Deposit', 'DepositPolicy', 'DepositStatus', 'RefundTier', 'ShortfallAction'
]
