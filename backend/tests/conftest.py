"""Shared fixtures: app, client and model factories."""
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from attendance_engine import create_app, db
from attendance_engine.models import (
    Deposit, DepositStatus, Participant, Program, ProgramSession, ProgramStaff, StaffRole,
    User, UserRole
)

# Sessions in these tests start at 10:00 on consecutive days from here
FIRST_SESSION_AT = datetime(2026, 3, 2, 10, 0)


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make_user(name=None, role=UserRole.MEMBER, is_active=True):
        counter['n'] += 1
        name = name or f"User {counter['n']}"
        user = User(
            email=f"user{counter['n']}@example.org",
            name=name,
            role=role,
            is_active=is_active
        )
        return user.save()
    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user('Admin', role=UserRole.ADMIN)


@pytest.fixture
def program(app):
    return Program(title='Evening Study Group', description='Weekly sessions').save()


@pytest.fixture
def make_session(program):
    def _make_session(session_no, scheduled_at=None, ends_at=None, target=None):
        target = target or program
        scheduled_at = scheduled_at or FIRST_SESSION_AT + timedelta(days=session_no - 1)
        return ProgramSession(
            program_id=target.id,
            session_no=session_no,
            scheduled_at=scheduled_at,
            ends_at=ends_at,
            title=f'Session {session_no}'
        ).save()
    return _make_session


@pytest.fixture
def session(make_session):
    """First session, 10:00 on FIRST_SESSION_AT's day."""
    return make_session(1)


@pytest.fixture
def enroll(program):
    def _enroll(user, target=None):
        target = target or program
        return Participant(program_id=target.id, user_id=user.id).save()
    return _enroll


@pytest.fixture
def add_staff(program):
    def _add_staff(user, role=StaffRole.ORGANIZER, target=None):
        target = target or program
        return ProgramStaff(program_id=target.id, user_id=user.id, role=role).save()
    return _add_staff


@pytest.fixture
def organizer(make_user, add_staff):
    user = make_user('Organizer')
    add_staff(user, StaffRole.ORGANIZER)
    return user


@pytest.fixture
def facilitator(make_user, add_staff):
    user = make_user('Facilitator')
    add_staff(user, StaffRole.FACILITATOR)
    return user


@pytest.fixture
def member(make_user, enroll):
    """An enrolled participant."""
    user = make_user('Member')
    enroll(user)
    return user


@pytest.fixture
def outsider(make_user):
    """A user with no role in the program."""
    return make_user('Outsider')


@pytest.fixture
def paid_deposit():
    def _paid_deposit(participant, amount=50000):
        return Deposit(
            participant_id=participant.id,
            status=DepositStatus.PAID,
            amount=amount,
            paid_at=FIRST_SESSION_AT - timedelta(days=7)
        ).save()
    return _paid_deposit


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers


class FakeRedis:
    """Enough of redis.Redis for the attendance cache."""

    def __init__(self):
        self.store = {}
        self.deleted = []

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, key):
        self.deleted.append(key)
        self.store.pop(key, None)


@pytest.fixture
def fake_redis(app):
    from attendance_engine.services.attendance_cache import AttendanceCache, EXTENSION_KEY
    client = FakeRedis()
    app.extensions[EXTENSION_KEY] = AttendanceCache(client, ttl_seconds=5)
    return client
