"""Check-in token issuing, rotation and validation."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models import CheckInToken
from attendance_engine.services.token_service import TokenService
from attendance_engine.utils.errors import ErrorCode

from conftest import FIRST_SESSION_AT

NOW = FIRST_SESSION_AT - timedelta(minutes=5)


def active_tokens(session_id):
    return CheckInToken.query.filter_by(session_id=session_id, is_active=True).all()


def test_issue_returns_token_and_expiry(session, facilitator):
    data, error = TokenService.issue(session.id, facilitator, now=NOW)

    assert error is None
    assert data['session_id'] == session.id
    assert data['valid_from'] == NOW.isoformat()
    assert data['expires_at'] == (NOW + timedelta(minutes=15)).isoformat()
    assert data['expires_in'] == 15 * 60
    assert data['check_in_url'] == f"/attendance/{data['token']}"
    assert 'qr_image' not in data


def test_issue_can_render_qr_image(session, facilitator):
    data, error = TokenService.issue(session.id, facilitator, now=NOW, include_image=True)

    assert error is None
    assert data['qr_image'].startswith('data:image/png;base64,')


def test_reissue_leaves_exactly_one_active_token(session, facilitator):
    first, _ = TokenService.issue(session.id, facilitator, now=NOW)
    second, _ = TokenService.refresh(session.id, facilitator, now=NOW + timedelta(minutes=1))
    third, _ = TokenService.refresh(session.id, facilitator, now=NOW + timedelta(minutes=2))

    active = active_tokens(session.id)
    assert len(active) == 1
    assert active[0].token == third['token']

    _, error = TokenService.validate(first['token'], now=NOW + timedelta(minutes=3))
    assert error.code == ErrorCode.INVALID_OR_EXPIRED_TOKEN
    _, error = TokenService.validate(second['token'], now=NOW + timedelta(minutes=3))
    assert error.code == ErrorCode.INVALID_OR_EXPIRED_TOKEN


def test_tokens_of_other_sessions_are_untouched(make_session, facilitator):
    first = make_session(1)
    second = make_session(2)

    TokenService.issue(first.id, facilitator, now=NOW)
    TokenService.issue(second.id, facilitator, now=NOW)

    assert len(active_tokens(first.id)) == 1
    assert len(active_tokens(second.id)) == 1


def test_database_rejects_second_active_token(session, facilitator):
    TokenService.issue(session.id, facilitator, now=NOW)

    db.session.add(CheckInToken(
        session_id=session.id,
        token=CheckInToken.generate_token(),
        valid_from=NOW,
        valid_until=NOW + timedelta(minutes=15),
        is_active=True
    ))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_validity_window_is_inclusive(session, facilitator):
    data, _ = TokenService.issue(session.id, facilitator, now=NOW)
    expires_at = NOW + timedelta(minutes=15)

    result, error = TokenService.validate(data['token'], now=NOW)
    assert error is None
    assert result == {'valid': True, 'session_id': session.id}

    _, error = TokenService.validate(data['token'], now=expires_at)
    assert error is None


def test_token_invalid_one_second_after_expiry(session, facilitator):
    data, _ = TokenService.issue(session.id, facilitator, now=NOW)

    _, error = TokenService.validate(data['token'], now=NOW + timedelta(minutes=15, seconds=1))
    assert error.code == ErrorCode.INVALID_OR_EXPIRED_TOKEN


def test_token_invalid_before_valid_from(session, facilitator):
    data, _ = TokenService.issue(session.id, facilitator, now=NOW)

    _, error = TokenService.validate(data['token'], now=NOW - timedelta(seconds=1))
    assert error.code == ErrorCode.INVALID_OR_EXPIRED_TOKEN


@pytest.mark.parametrize('token', ['', None, 'not-a-real-token'])
def test_unknown_tokens_are_invalid(app, token):
    _, error = TokenService.validate(token, now=NOW)
    assert error.code == ErrorCode.INVALID_OR_EXPIRED_TOKEN


def test_participant_cannot_issue(session, member):
    data, error = TokenService.issue(session.id, member, now=NOW)

    assert data is None
    assert error.code == ErrorCode.FORBIDDEN
    assert error.http_status == 403
    assert active_tokens(session.id) == []


def test_admin_can_issue_without_program_role(session, admin):
    _, error = TokenService.issue(session.id, admin, now=NOW)
    assert error is None


def test_issue_for_missing_session(app, admin):
    _, error = TokenService.issue(9999, admin, now=NOW)
    assert error.code == ErrorCode.SESSION_NOT_FOUND


def test_current_token_status(session, facilitator):
    data, error = TokenService.current_token(session.id, facilitator, now=NOW)
    assert error is None
    assert data == {'has_token': False, 'is_expired': True, 'expires_at': None, 'token': None}

    issued, _ = TokenService.issue(session.id, facilitator, now=NOW)

    data, _ = TokenService.current_token(session.id, facilitator, now=NOW + timedelta(minutes=1))
    assert data['has_token'] is True
    assert data['is_expired'] is False
    assert data['token'] == issued['token']

    data, _ = TokenService.current_token(session.id, facilitator, now=NOW + timedelta(minutes=16))
    assert data['has_token'] is True
    assert data['is_expired'] is True
    assert data['token'] is None
