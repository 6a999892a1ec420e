"""Absence request workflow."""
from datetime import timedelta

from attendance_engine import db
from attendance_engine.models import (
    AbsenceRequest, AbsenceRequestStatus, AttendanceRecord, AttendanceStatus, Participant
)
from attendance_engine.services.absence_service import AbsenceService
from attendance_engine.services.check_in_service import CheckInService
from attendance_engine.utils.errors import ErrorCode

from conftest import FIRST_SESSION_AT

BEFORE = FIRST_SESSION_AT - timedelta(days=1)


def submit(session, user, reason='Out of town'):
    data, error = AbsenceService.submit(session.id, user, reason, now=BEFORE)
    assert error is None
    return data


def test_submit_creates_pending_request(session, member):
    data, error = AbsenceService.submit(
        session.id, member, '  Medical appointment ', attachment='https://files.example.org/note.pdf', now=BEFORE
    )

    assert error is None
    assert data['status'] == 'PENDING'
    assert data['reason'] == 'Medical appointment'
    assert data['attachment'] == 'https://files.example.org/note.pdf'
    assert data['session']['id'] == session.id


def test_duplicate_request_is_rejected(session, member):
    submit(session, member)

    _, error = AbsenceService.submit(session.id, member, 'Again', now=BEFORE)

    assert error.code == ErrorCode.DUPLICATE_ABSENCE_REQUEST
    assert AbsenceRequest.query.count() == 1


def test_request_for_started_session_is_rejected(session, member):
    _, error = AbsenceService.submit(session.id, member, 'Overslept', now=FIRST_SESSION_AT + timedelta(minutes=1))

    assert error.code == ErrorCode.SESSION_ALREADY_PAST


def test_request_requires_enrollment(session, outsider):
    _, error = AbsenceService.submit(session.id, outsider, 'Busy', now=BEFORE)

    assert error.code == ErrorCode.NOT_A_PARTICIPANT


def test_request_requires_reason(session, member):
    _, error = AbsenceService.submit(session.id, member, '   ', now=BEFORE)

    assert error.code == ErrorCode.VALIDATION_ERROR


def test_request_for_missing_session(app, member):
    _, error = AbsenceService.submit(999, member, 'Busy', now=BEFORE)

    assert error.code == ErrorCode.SESSION_NOT_FOUND


def test_approve_excuses_the_session(session, member, organizer):
    request = submit(session, member, 'Exam week')

    data, error = AbsenceService.approve(request['id'], organizer, note='ok', now=BEFORE)

    assert error is None
    assert data['status'] == 'APPROVED'
    assert data['reviewed_by'] == organizer.id
    assert data['review_note'] == 'ok'

    participant = Participant.find(session.program_id, member.id)
    record = AttendanceRecord.find(session.id, participant.id)
    assert record.status == AttendanceStatus.EXCUSED
    assert record.checked_at is None
    assert record.note == 'Absence approved: Exam week'


def test_approve_overrides_existing_record(session, member, organizer, facilitator):
    request = submit(session, member)
    CheckInService.manual_check_in(session.id, member.id, 'ABSENT', facilitator, now=FIRST_SESSION_AT)

    AbsenceService.approve(request['id'], organizer, now=FIRST_SESSION_AT)

    records = AttendanceRecord.query.filter_by(session_id=session.id).all()
    assert [r.status for r in records] == [AttendanceStatus.EXCUSED]


def test_decided_request_cannot_be_decided_again(session, member, organizer):
    request = submit(session, member)
    AbsenceService.approve(request['id'], organizer, now=BEFORE)

    _, error = AbsenceService.approve(request['id'], organizer, now=BEFORE)
    assert error.code == ErrorCode.REQUEST_NOT_PENDING

    _, error = AbsenceService.reject(request['id'], organizer, 'changed my mind', now=BEFORE)
    assert error.code == ErrorCode.REQUEST_NOT_PENDING


def test_reject_leaves_attendance_alone(session, member, organizer):
    request = submit(session, member)

    data, error = AbsenceService.reject(request['id'], organizer, 'Not a valid reason', now=BEFORE)

    assert error is None
    assert data['status'] == 'REJECTED'
    assert data['review_note'] == 'Not a valid reason'
    assert AttendanceRecord.query.count() == 0


def test_facilitator_cannot_review(session, member, facilitator):
    request = submit(session, member)

    _, error = AbsenceService.approve(request['id'], facilitator, now=BEFORE)

    assert error.code == ErrorCode.FORBIDDEN
    assert db.session.get(AbsenceRequest, request["id"]).status == AbsenceRequestStatus.PENDING


def test_review_of_missing_request(app, admin):
    _, error = AbsenceService.approve(31337, admin)

    assert error.code == ErrorCode.REQUEST_NOT_FOUND


def test_requester_can_cancel_pending(session, member):
    request = submit(session, member)

    data, error = AbsenceService.cancel(request['id'], member)

    assert error is None
    assert data == {'id': request['id'], 'cancelled': True}
    assert AbsenceRequest.query.count() == 0

    # The slot is free again
    submit(session, member)


def test_only_requester_can_cancel(session, member, organizer):
    request = submit(session, member)

    _, error = AbsenceService.cancel(request['id'], organizer)

    assert error.code == ErrorCode.FORBIDDEN


def test_cannot_cancel_decided_request(session, member, organizer):
    request = submit(session, member)
    AbsenceService.reject(request['id'], organizer, 'No', now=BEFORE)

    _, error = AbsenceService.cancel(request['id'], member)

    assert error.code == ErrorCode.REQUEST_NOT_PENDING


def test_list_for_program_filters_and_pages(make_session, make_user, enroll, organizer):
    sessions = [make_session(no) for no in (1, 2, 3)]
    user = make_user('Sam')
    enroll(user)
    requests = [submit(s, user) for s in sessions]
    AbsenceService.approve(requests[0]['id'], organizer, now=BEFORE)

    data, error = AbsenceService.list_for_program(sessions[0].program_id, organizer, limit=2)
    assert error is None
    assert data['total'] == 3
    assert data['total_pages'] == 2
    assert len(data['requests']) == 2

    data, _ = AbsenceService.list_for_program(sessions[0].program_id, organizer, status='pending')
    assert {r['id'] for r in data['requests']} == {requests[1]['id'], requests[2]['id']}

    data, _ = AbsenceService.list_for_program(sessions[0].program_id, organizer, session_id=sessions[2].id)
    assert [r['id'] for r in data['requests']] == [requests[2]['id']]

    _, error = AbsenceService.list_for_program(sessions[0].program_id, organizer, status='LOST')
    assert error.code == ErrorCode.VALIDATION_ERROR


def test_list_for_program_requires_review_capability(program, member):
    _, error = AbsenceService.list_for_program(program.id, member)

    assert error.code == ErrorCode.FORBIDDEN


def test_list_mine_only_shows_own(session, member, make_user, enroll):
    other = make_user('Other')
    enroll(other)
    mine = submit(session, member)
    submit(session, other)

    data, error = AbsenceService.list_mine(member)

    assert error is None
    assert [r['id'] for r in data['requests']] == [mine['id']]
