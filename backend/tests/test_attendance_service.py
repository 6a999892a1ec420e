"""Attendance rate aggregation and session views."""
import json
from datetime import timedelta
from types import SimpleNamespace

from attendance_engine.models import AttendanceRecord, AttendanceStatus, CheckInMethod
from attendance_engine.services.absence_service import AbsenceService
from attendance_engine.services.attendance_service import AttendanceService, summarize
from attendance_engine.services.check_in_service import CheckInService
from attendance_engine.utils.errors import ErrorCode

from conftest import FIRST_SESSION_AT

P, L, A, E = (AttendanceStatus.PRESENT, AttendanceStatus.LATE,
              AttendanceStatus.ABSENT, AttendanceStatus.EXCUSED)


def fake_records(statuses):
    return [
        SimpleNamespace(
            session_id=index,
            status=status,
            checked_at=FIRST_SESSION_AT + timedelta(days=index) if status in (P, L) else None
        )
        for index, status in enumerate(statuses, start=1)
    ]


def test_excused_sessions_leave_the_rate():
    records = fake_records([P, P, P, P, P, P, L, L, A, E])

    summary = summarize(range(1, 11), records)

    assert summary.held == 10
    assert summary.excused == 1
    assert summary.counted == 9
    assert summary.attended == 8
    assert summary.absent == 1
    assert summary.rate == 88.9


def test_missing_records_count_as_absent():
    records = fake_records([P, L])

    summary = summarize(range(1, 5), records)

    assert summary.absent == 2
    assert summary.rate == 50.0


def test_sessions_not_yet_held_are_ignored():
    records = fake_records([P, P, P])

    summary = summarize([1, 2], records)

    assert summary.held == 2
    assert summary.rate == 100.0


def test_rate_rounds_half_up():
    # 2/3 = 66.666... and 1/8 = 12.5 exactly
    assert summarize([1, 2, 3], fake_records([P, L, A])).rate == 66.7
    assert summarize(range(1, 9), fake_records([P])).rate == 12.5


def test_no_counted_sessions_gives_zero():
    assert summarize([], []).rate == 0.0
    assert summarize([1], fake_records([E])).rate == 0.0


def test_last_attended_uses_present_records():
    records = fake_records([P, P, L])

    summary = summarize([1, 2, 3], records)

    assert summary.last_attended_at == FIRST_SESSION_AT + timedelta(days=2)


def test_summarize_is_deterministic():
    records = fake_records([P, L, A, E, P])
    assert summarize(range(1, 6), records) == summarize(range(1, 6), list(reversed(records)))


def mark(session, participant, status):
    AttendanceRecord(
        session_id=session.id,
        participant_id=participant.id,
        status=status,
        method=CheckInMethod.MANUAL,
        checked_at=session.scheduled_at if status in (P, L) else None
    ).save()


def test_approved_absence_removes_session_from_denominator(make_session, make_user, enroll, organizer):
    user = make_user('Dana')
    participant = enroll(user)
    sessions = [make_session(no) for no in range(1, 7)]

    # Present at five sessions; the sixth is pre-marked absent and still upcoming
    for held in sessions[:5]:
        mark(held, participant, P)
    mark(sessions[5], participant, A)
    request, _ = AbsenceService.submit(
        sessions[5].id, user, 'Family event', now=sessions[5].scheduled_at - timedelta(days=1)
    )

    after_program = sessions[5].scheduled_at + timedelta(days=1)
    assert AttendanceService.rate_for(participant, after_program).rate == round(5 / 6 * 100, 1)

    AbsenceService.approve(request['id'], organizer, now=after_program)

    assert AttendanceRecord.find(sessions[5].id, participant.id).status == E
    summary = AttendanceService.rate_for(participant, after_program)
    assert summary.counted == 5
    assert summary.excused == 1
    assert summary.rate == 100.0


def test_participant_reads_own_rate(make_session, member):
    session = make_session(1)
    data, error = AttendanceService.get_participant_rate(
        session.program_id, member.id, member, now=session.scheduled_at + timedelta(hours=3)
    )

    assert error is None
    assert data['user_id'] == member.id
    assert data['held'] == 1
    assert data['absent'] == 1
    assert data['rate'] == 0.0


def test_peer_cannot_read_someone_elses_rate(program, member, make_user, enroll):
    peer = make_user('Peer')
    enroll(peer)

    _, error = AttendanceService.get_participant_rate(program.id, member.id, peer)

    assert error.code == ErrorCode.FORBIDDEN


def test_staff_reads_rate_of_non_participant(program, facilitator, outsider):
    _, error = AttendanceService.get_participant_rate(program.id, outsider.id, facilitator)

    assert error.code == ErrorCode.NOT_A_PARTICIPANT


def test_rate_for_missing_program(app, admin):
    _, error = AttendanceService.get_participant_rate(12345, admin.id, admin)

    assert error.code == ErrorCode.PROGRAM_NOT_FOUND


def test_session_roster_and_stats(session, make_user, enroll, facilitator):
    users = [make_user(f'P{i}') for i in range(4)]
    participants = [enroll(user) for user in users]
    mark(session, participants[0], P)
    mark(session, participants[1], L)
    mark(session, participants[2], E)

    data, error = AttendanceService.get_session_attendance(session.id, facilitator)

    assert error is None
    assert data['session']['id'] == session.id
    assert data['stats'] == {'total': 4, 'present': 1, 'late': 1, 'absent': 1, 'excused': 1}
    assert data['poll_interval_seconds'] == 5
    roster = {row['user']['id']: row for row in data['participants']}
    assert roster[users[1].id]['attendance']['status'] == 'LATE'
    assert roster[users[3].id]['attendance'] is None


def test_session_roster_requires_view_capability(session, member):
    _, error = AttendanceService.get_session_attendance(session.id, member)

    assert error.code == ErrorCode.FORBIDDEN


def test_participant_history_in_session_order(make_session, member, facilitator):
    second = make_session(2)
    first = make_session(1)
    CheckInService.manual_check_in(second.id, member.id, 'LATE', facilitator, now=second.scheduled_at)
    CheckInService.manual_check_in(first.id, member.id, 'PRESENT', facilitator, now=first.scheduled_at)

    data, error = AttendanceService.participant_history(first.program_id, member)

    assert error is None
    assert [row['session']['session_no'] for row in data['records']] == [1, 2]
    assert [row['status'] for row in data['records']] == ['PRESENT', 'LATE']


def test_history_for_non_participant(program, outsider):
    _, error = AttendanceService.participant_history(program.id, outsider)

    assert error.code == ErrorCode.NOT_A_PARTICIPANT


def test_roster_is_cached_and_invalidated_on_write(session, member, facilitator, fake_redis):
    key = f'attendance:session:{session.id}'

    data, _ = AttendanceService.get_session_attendance(session.id, facilitator)
    assert json.loads(fake_redis.store[key]) == data

    CheckInService.manual_check_in(session.id, member.id, 'PRESENT', facilitator)
    assert key not in fake_redis.store
    assert fake_redis.deleted == [key]

    data, _ = AttendanceService.get_session_attendance(session.id, facilitator)
    assert data['stats']['present'] == 1


def test_cached_roster_is_served_from_cache(session, facilitator, fake_redis):
    cached = {'session': {'id': session.id}, 'participants': [], 'stats': {}, 'poll_interval_seconds': 5}
    fake_redis.store[f'attendance:session:{session.id}'] = json.dumps(cached)

    data, _ = AttendanceService.get_session_attendance(session.id, facilitator)

    assert data == cached
