# services/token_codec.py
"""
Signed, time-limited attendance tokens for QR check-in.

Wire format:
    base64url(JSON{sid, eid, n, exp}) + "." + base64url(HMAC-SHA256(secret, payload))

Both parts are base64url without padding. exp is absolute epoch milliseconds.
Issued tokens are never stored; they are verified from their signature alone.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time

logger = logging.getLogger('token_codec')


class TokenError:
    """Token verification error codes."""
    INVALID_FORMAT = 'invalid_format'
    INVALID_SIGNATURE = 'invalid_signature'
    PARSE_ERROR = 'parse_error'
    EXPIRED = 'expired'


TOKEN_ERROR_MESSAGES = {
    TokenError.INVALID_FORMAT: 'Invalid token format',
    TokenError.INVALID_SIGNATURE: 'Invalid signature',
    TokenError.PARSE_ERROR: 'Token parsing failed',
    TokenError.EXPIRED: 'Token expired',
}


def b64url_encode(raw):
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


def b64url_decode(text):
    padded = text + '=' * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode('ascii'))


def now_ms(now=None):
    """Epoch milliseconds for a datetime, or for the current time."""
    if now is None:
        return int(time.time() * 1000)
    return int(now.timestamp() * 1000)


class AttendanceTokenCodec:
    """
    Issues and verifies attendance tokens with a process-wide secret.

    The secret is injected once, either directly or from app config in
    init_app, and never regenerated at runtime.
    """

    def __init__(self, secret=None, default_ttl=30, app=None):
        self._secret = secret.encode('utf-8') if isinstance(secret, str) else secret
        self.default_ttl = default_ttl
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Bind the codec to the application's token settings."""
        from club_attendance.config import DEV_TOKEN_SECRET

        secret = app.config.get('ATTENDANCE_TOKEN_SECRET')
        if not secret:
            # Production refuses to start without a secret, see validate_production_config.
            app.logger.warning("ATTENDANCE_TOKEN_SECRET not set, using development fallback secret")
            secret = DEV_TOKEN_SECRET

        self._secret = secret.encode('utf-8')
        self.default_ttl = app.config.get('ATTENDANCE_TOKEN_TTL', self.default_ttl)
        app.extensions['attendance_token_codec'] = self

    @property
    def secret(self):
        if not self._secret:
            raise RuntimeError("Attendance token codec used before a secret was configured")
        return self._secret

    def sign(self, encoded_payload):
        digest = hmac.new(self.secret, encoded_payload.encode('ascii'), hashlib.sha256).digest()
        return b64url_encode(digest)

    def issue(self, session_id, event_id, nonce, ttl_seconds=None, now=None):
        """
        Build a signed token for the given session rotation.

        Args:
            session_id: Attendance session ID
            event_id: Event ID
            nonce: Session's current nonce
            ttl_seconds: Token lifetime, defaults to ATTENDANCE_TOKEN_TTL
            now: Issue time (datetime), defaults to the current time

        Returns:
            str: payload.signature
        """
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        payload = {
            'sid': session_id,
            'eid': event_id,
            'n': nonce,
            'exp': now_ms(now) + int(ttl * 1000)
        }

        encoded_payload = b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
        return f"{encoded_payload}.{self.sign(encoded_payload)}"

    def verify(self, token, now=None):
        """
        Verify a token's format, signature, payload and freshness, in that order.

        Returns:
            dict: {'valid': True, 'session_id', 'event_id', 'nonce', 'exp'}
                  or {'valid': False, 'error': TokenError.*}
        """
        if not isinstance(token, str):
            return {'valid': False, 'error': TokenError.INVALID_FORMAT}

        parts = token.split('.')
        if len(parts) != 2:
            return {'valid': False, 'error': TokenError.INVALID_FORMAT}

        encoded_payload, signature = parts

        # Non-ASCII input (lone surrogates included) can never match a base64url signature
        try:
            expected_signature = self.sign(encoded_payload).encode('ascii')
            presented_signature = signature.encode('ascii')
        except UnicodeEncodeError:
            return {'valid': False, 'error': TokenError.INVALID_SIGNATURE}

        if not hmac.compare_digest(expected_signature, presented_signature):
            return {'valid': False, 'error': TokenError.INVALID_SIGNATURE}

        try:
            payload = json.loads(b64url_decode(encoded_payload).decode('utf-8'))
            session_id = payload['sid']
            event_id = payload['eid']
            nonce = payload['n']
            exp = int(payload['exp'])
        except (binascii.Error, ValueError, UnicodeDecodeError, KeyError, TypeError):
            return {'valid': False, 'error': TokenError.PARSE_ERROR}

        if now_ms(now) > exp:
            return {'valid': False, 'error': TokenError.EXPIRED}

        return {
            'valid': True,
            'session_id': session_id,
            'event_id': event_id,
            'nonce': nonce,
            'exp': exp
        }
