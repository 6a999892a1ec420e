"""QR and manual check-in."""
from datetime import timedelta

import pytest

from attendance_engine.models import AttendanceRecord, AttendanceStatus, CheckInMethod, DepositPolicy
from attendance_engine.services.check_in_service import (
    CheckInService, determine_status, late_minutes
)
from attendance_engine.services.token_service import TokenService
from attendance_engine.utils.errors import ErrorCode

from conftest import FIRST_SESSION_AT

START = FIRST_SESSION_AT


@pytest.fixture
def token(session, facilitator):
    data, _ = TokenService.issue(session.id, facilitator, now=START)
    return data['token']


def records_for(session_id):
    return AttendanceRecord.query.filter_by(session_id=session_id).all()


@pytest.mark.parametrize('offset_minutes, expected', [
    (-20, AttendanceStatus.PRESENT),
    (0, AttendanceStatus.PRESENT),
    (10, AttendanceStatus.PRESENT),
    (11, AttendanceStatus.LATE),
    (45, AttendanceStatus.LATE),
])
def test_determine_status(offset_minutes, expected):
    checked_at = START + timedelta(minutes=offset_minutes)
    assert determine_status(START, checked_at, 10) == expected


def test_late_minutes_are_floored():
    assert late_minutes(START, START + timedelta(minutes=12, seconds=59)) == 12


def test_qr_check_in_twelve_minutes_late(session, member, token):
    now = START + timedelta(minutes=12)

    data, error = CheckInService.check_in_via_token(token, member, now=now)

    assert error is None
    assert data['status'] == 'LATE'
    assert data['method'] == 'QR'
    assert data['late_minutes'] == 12
    assert data['checked_at'] == now.isoformat()
    assert data['session']['id'] == session.id

    [record] = records_for(session.id)
    assert record.status == AttendanceStatus.LATE
    assert record.method == CheckInMethod.QR
    assert record.checked_at == now
    assert record.token_id is not None


def test_qr_check_in_on_time(session, member, token):
    data, error = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=10))

    assert error is None
    assert data['status'] == 'PRESENT'
    assert data['late_minutes'] is None


def test_program_grace_overrides_default(session, member, token):
    DepositPolicy(program_id=session.program_id, deposit_amount=0, grace_minutes=15).save()

    data, _ = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=12))

    assert data['status'] == 'PRESENT'


def test_repeated_scan_keeps_one_record(session, member, token):
    CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=1))

    data, error = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=2))

    assert data is None
    assert error.code == ErrorCode.ALREADY_CHECKED_IN
    assert len(records_for(session.id)) == 1
    assert records_for(session.id)[0].status == AttendanceStatus.PRESENT


def test_non_participant_is_rejected(session, outsider, token):
    _, error = CheckInService.check_in_via_token(token, outsider, now=START)

    assert error.code == ErrorCode.NOT_A_PARTICIPANT
    assert records_for(session.id) == []


def test_expired_token_is_rejected(session, member, token):
    _, error = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=16))

    assert error.code == ErrorCode.INVALID_OR_EXPIRED_TOKEN


def test_check_in_closed_before_window_opens(session, member, facilitator):
    issued_at = START - timedelta(minutes=40)
    data, _ = TokenService.issue(session.id, facilitator, now=issued_at)

    _, error = CheckInService.check_in_via_token(data['token'], member, now=issued_at + timedelta(minutes=1))

    assert error.code == ErrorCode.CHECK_IN_CLOSED


def test_check_in_closed_after_session_end(make_session, member, facilitator):
    session = make_session(1, ends_at=START + timedelta(minutes=60))
    issued_at = START + timedelta(minutes=55)
    data, _ = TokenService.issue(session.id, facilitator, now=issued_at)

    _, error = CheckInService.check_in_via_token(data['token'], member, now=START + timedelta(minutes=61))

    assert error.code == ErrorCode.CHECK_IN_CLOSED


def test_check_in_window_defaults_to_two_hours(app, session):
    opens_at, closes_at = CheckInService.check_in_window(session)

    assert opens_at == START - timedelta(minutes=30)
    assert closes_at == START + timedelta(minutes=120)
    assert CheckInService.remaining_check_in_seconds(session, START + timedelta(minutes=119)) == 60
    assert CheckInService.remaining_check_in_seconds(session, START + timedelta(minutes=200)) == 0


def test_scan_converts_absent_record(session, member, facilitator, token):
    CheckInService.manual_check_in(session.id, member.id, 'ABSENT', facilitator, now=START)

    data, error = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=5))

    assert error is None
    assert data['status'] == 'PRESENT'
    [record] = records_for(session.id)
    assert record.method == CheckInMethod.QR


def test_manual_correction_then_scan_fails(session, member, facilitator, token):
    scanned, error = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=12))
    assert error is None
    assert scanned['status'] == 'LATE'

    data, error = CheckInService.manual_check_in(
        session.id, member.id, 'present', facilitator, note='Was at the door', now=START + timedelta(minutes=13)
    )
    assert error is None
    assert data['status'] == 'PRESENT'
    assert data['method'] == 'MANUAL'
    assert data['note'] == 'Was at the door'

    # The token is still valid here; only the existing record blocks the scan
    assert TokenService.find_usable(token, START + timedelta(minutes=14)) is not None
    _, error = CheckInService.check_in_via_token(token, member, now=START + timedelta(minutes=14))
    assert error.code == ErrorCode.ALREADY_CHECKED_IN

    [record] = records_for(session.id)
    assert record.status == AttendanceStatus.PRESENT
    assert record.marked_by == facilitator.id


def test_manual_absent_clears_checked_at(session, member, facilitator):
    CheckInService.manual_check_in(session.id, member.id, 'PRESENT', facilitator, now=START)

    data, error = CheckInService.manual_check_in(session.id, member.id, 'ABSENT', facilitator, now=START)

    assert error is None
    assert data['checked_at'] is None
    assert len(records_for(session.id)) == 1


def test_manual_ignores_check_in_window(session, member, facilitator):
    _, error = CheckInService.manual_check_in(
        session.id, member.id, 'LATE', facilitator, now=START + timedelta(days=3)
    )
    assert error is None


@pytest.mark.parametrize('status', ['EXCUSED', 'HERE', ''])
def test_manual_rejects_unsupported_status(session, member, facilitator, status):
    _, error = CheckInService.manual_check_in(session.id, member.id, status, facilitator, now=START)

    assert error.code == ErrorCode.INVALID_STATUS
    assert records_for(session.id) == []


def test_manual_requires_run_check_in(session, member, make_user, enroll):
    peer = make_user('Peer')
    enroll(peer)

    _, error = CheckInService.manual_check_in(session.id, member.id, 'PRESENT', peer, now=START)

    assert error.code == ErrorCode.FORBIDDEN


def test_manual_for_non_participant(session, outsider, facilitator):
    _, error = CheckInService.manual_check_in(session.id, outsider.id, 'PRESENT', facilitator, now=START)

    assert error.code == ErrorCode.NOT_A_PARTICIPANT


def test_manual_for_missing_session(app, member, admin):
    _, error = CheckInService.manual_check_in(404, member.id, 'PRESENT', admin, now=START)

    assert error.code == ErrorCode.SESSION_NOT_FOUND
