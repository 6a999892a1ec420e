"""Check-in token issuing, rotation and validation."""
import base64
import io
from datetime import timedelta
from typing import Dict, Optional, Tuple

import qrcode
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendance_engine import db
from attendance_engine.models.check_in_token import CheckInToken
from attendance_engine.models.program import ProgramSession
from attendance_engine.models.user import User
from attendance_engine.services.authorization import Capability, require_capability
from attendance_engine.utils.errors import ErrorCode, ServiceError, fail
from attendance_engine.utils.helpers import utcnow

ROTATION_ATTEMPTS = 2


class TokenService:
    """Service for check-in token operations."""

    @staticmethod
    def render_qr_image(data: str) -> str:
        """Render data as a PNG QR code and return it as a data URI."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"

    @staticmethod
    def check_in_url(token: str) -> str:
        return current_app.config['CHECK_IN_URL_TEMPLATE'].format(token=token)

    @staticmethod
    def issue(
        session_id: int,
        actor: User,
        now=None,
        include_image: bool = False
    ) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """
        Deactivate every active token of the session and create a new one.
        Returns: ({token, valid_from, expires_at, ...}, None) or (None, error)
        """
        session = db.session.get(ProgramSession, session_id)
        if not session:
            return fail(ErrorCode.SESSION_NOT_FOUND)

        error = require_capability(actor, session.program_id, Capability.RUN_CHECK_IN)
        if error:
            return None, error

        now = now or utcnow()
        ttl = timedelta(minutes=current_app.config['CHECK_IN_TOKEN_TTL_MINUTES'])

        for attempt in range(1, ROTATION_ATTEMPTS + 1):
            try:
                token = TokenService._rotate(session_id, actor, now, now + ttl)
                break
            except IntegrityError:
                # Another rotation for the session committed first; rotate again over it
                db.session.rollback()
                current_app.logger.info(
                    'Token rotation for session %s collided (attempt %s)', session_id, attempt
                )
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception('Failed to issue check-in token for session %s', session_id)
                return fail(ErrorCode.INTERNAL_ERROR)
        else:
            return fail(ErrorCode.INTERNAL_ERROR)

        current_app.logger.info(
            'Check-in token issued for session %s by user %s, valid until %s',
            session_id, actor.id, token.valid_until.isoformat()
        )

        data = {
            'token': token.token,
            'session_id': session_id,
            'valid_from': token.valid_from.isoformat(),
            'expires_at': token.valid_until.isoformat(),
            'expires_in': int(ttl.total_seconds()),
            'check_in_url': TokenService.check_in_url(token.token),
        }
        if include_image:
            data['qr_image'] = TokenService.render_qr_image(data['check_in_url'])
        return data, None

    @staticmethod
    def refresh(session_id: int, actor: User, now=None, include_image: bool = False):
        """Re-issue; the previous token stops working immediately."""
        return TokenService.issue(session_id, actor, now=now, include_image=include_image)

    @staticmethod
    def _rotate(session_id: int, actor: User, valid_from, valid_until) -> CheckInToken:
        """Deactivate and create in one transaction, holding the session row."""
        db.session.query(ProgramSession).filter_by(id=session_id).with_for_update().one()

        CheckInToken.query.filter_by(session_id=session_id, is_active=True).update(
            {'is_active': False}
        )

        token = CheckInToken(
            session_id=session_id,
            token=CheckInToken.generate_token(),
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=True,
            created_by=actor.id,
        )
        db.session.add(token)
        db.session.commit()
        return token

    @staticmethod
    def find_usable(token_string: str, now=None) -> Optional[CheckInToken]:
        """Token row if it can be used right now, else None."""
        if not token_string:
            return None
        token = CheckInToken.query.filter_by(token=token_string).first()
        if not token or not token.is_usable(now or utcnow()):
            return None
        return token

    @staticmethod
    def validate(token_string: str, now=None) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """
        Validate a scanned token.
        Returns: ({valid, session_id}, None) or (None, INVALID_OR_EXPIRED_TOKEN)
        """
        token = TokenService.find_usable(token_string, now)
        if not token:
            # One reason for every failed precondition
            return fail(ErrorCode.INVALID_OR_EXPIRED_TOKEN)
        return {'valid': True, 'session_id': token.session_id}, None

    @staticmethod
    def current_token(session_id: int, actor: User, now=None) -> Tuple[Optional[Dict], Optional[ServiceError]]:
        """Status of the session's active token, for the facilitator's QR screen."""
        session = db.session.get(ProgramSession, session_id)
        if not session:
            return fail(ErrorCode.SESSION_NOT_FOUND)

        error = require_capability(actor, session.program_id, Capability.RUN_CHECK_IN)
        if error:
            return None, error

        now = now or utcnow()
        token = CheckInToken.query.filter_by(session_id=session_id, is_active=True).first()
        usable = token is not None and token.is_usable(now)

        return {
            'has_token': token is not None,
            'is_expired': not usable,
            'expires_at': token.valid_until.isoformat() if token else None,
            'token': token.token if usable else None,
        }, None
