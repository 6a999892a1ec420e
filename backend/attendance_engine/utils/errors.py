"""Typed outcomes returned by the attendance and deposit services."""
from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Expected failure reasons a caller can act on."""
    INVALID_OR_EXPIRED_TOKEN = 'INVALID_OR_EXPIRED_TOKEN'
    NOT_A_PARTICIPANT = 'NOT_A_PARTICIPANT'
    ALREADY_CHECKED_IN = 'ALREADY_CHECKED_IN'
    SESSION_NOT_FOUND = 'SESSION_NOT_FOUND'
    FORBIDDEN = 'FORBIDDEN'
    DUPLICATE_ABSENCE_REQUEST = 'DUPLICATE_ABSENCE_REQUEST'
    SESSION_ALREADY_PAST = 'SESSION_ALREADY_PAST'
    REQUEST_NOT_PENDING = 'REQUEST_NOT_PENDING'
    DEPOSIT_NOT_PAID = 'DEPOSIT_NOT_PAID'
    ALREADY_SETTLED = 'ALREADY_SETTLED'

    CHECK_IN_CLOSED = 'CHECK_IN_CLOSED'
    INVALID_STATUS = 'INVALID_STATUS'
    REQUEST_NOT_FOUND = 'REQUEST_NOT_FOUND'
    PROGRAM_NOT_FOUND = 'PROGRAM_NOT_FOUND'
    PARTICIPANT_NOT_FOUND = 'PARTICIPANT_NOT_FOUND'
    DEPOSIT_NOT_FOUND = 'DEPOSIT_NOT_FOUND'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    INTERNAL_ERROR = 'INTERNAL_ERROR'


_STATUS_CODES = {
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.REQUEST_NOT_FOUND: 404,
    ErrorCode.PROGRAM_NOT_FOUND: 404,
    ErrorCode.PARTICIPANT_NOT_FOUND: 404,
    ErrorCode.DEPOSIT_NOT_FOUND: 404,
    ErrorCode.ALREADY_CHECKED_IN: 409,
    ErrorCode.DUPLICATE_ABSENCE_REQUEST: 409,
    ErrorCode.REQUEST_NOT_PENDING: 409,
    ErrorCode.ALREADY_SETTLED: 409,
    ErrorCode.INTERNAL_ERROR: 500,
}

_DEFAULT_MESSAGES = {
    ErrorCode.INVALID_OR_EXPIRED_TOKEN: 'The QR code is invalid or has expired',
    ErrorCode.NOT_A_PARTICIPANT: 'You are not a participant of this program',
    ErrorCode.ALREADY_CHECKED_IN: 'Attendance has already been recorded',
    ErrorCode.SESSION_NOT_FOUND: 'Session not found',
    ErrorCode.FORBIDDEN: 'You do not have permission to do this',
    ErrorCode.DUPLICATE_ABSENCE_REQUEST: 'An absence request already exists for this session',
    ErrorCode.SESSION_ALREADY_PAST: 'Absence requests cannot be filed for past sessions',
    ErrorCode.REQUEST_NOT_PENDING: 'Only pending requests can be changed',
    ErrorCode.DEPOSIT_NOT_PAID: 'The deposit has not been paid',
    ErrorCode.ALREADY_SETTLED: 'The deposit has already been settled',
    ErrorCode.CHECK_IN_CLOSED: 'Check-in is not open for this session',
    ErrorCode.INVALID_STATUS: 'Unsupported attendance status',
    ErrorCode.REQUEST_NOT_FOUND: 'Absence request not found',
    ErrorCode.PROGRAM_NOT_FOUND: 'Program not found',
    ErrorCode.PARTICIPANT_NOT_FOUND: 'Participant not found',
    ErrorCode.DEPOSIT_NOT_FOUND: 'Deposit not found',
    ErrorCode.VALIDATION_ERROR: 'Invalid input',
    ErrorCode.INTERNAL_ERROR: 'Something went wrong, please try again',
}


@dataclass(frozen=True)
class ServiceError:
    """A typed, expected failure returned alongside a ``None`` result."""
    code: ErrorCode
    message: str = ''

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, 'message', _DEFAULT_MESSAGES[self.code])

    @property
    def http_status(self) -> int:
        return _STATUS_CODES.get(self.code, 400)

    def to_dict(self):
        return {'code': self.code.value, 'message': self.message}


def fail(code: ErrorCode, message: str = ''):
    """Shorthand for the ``(None, error)`` service return."""
    return None, ServiceError(code, message)
