# services/check_in_service.py
"""
Check-in processing for scanned QR tokens and typed attendance codes.
The single path that turns a presented token or code into an AttendanceRecord.

Expected rejections come back as result dicts with an error code; only
storage errors raise (as StorageFailure). Duplicate check-ins are answered
with a success-shaped 'already_checked_in' result, relying on the
(session_id, member_id) unique constraint when two scans race.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from club_attendance.exceptions import StorageFailure
from club_attendance.extensions import db, token_codec
from club_attendance.models import AttendanceRecord, AttendanceSession, SessionStatus
from club_attendance.services.attendance_session_service import AttendanceSessionService
from club_attendance.services.code_generator import is_well_formed_code, normalize_code
from club_attendance.services.token_codec import TOKEN_ERROR_MESSAGES, TokenError
from club_attendance.utils.auth import PermissionChecker

logger = logging.getLogger('check_in_service')

DEVICE_HASH_MAX_LENGTH = 128


class CheckInError:
    """Check-in error codes."""
    INVALID_FORMAT = TokenError.INVALID_FORMAT
    INVALID_SIGNATURE = TokenError.INVALID_SIGNATURE
    PARSE_ERROR = TokenError.PARSE_ERROR
    EXPIRED = TokenError.EXPIRED
    SESSION_NOT_FOUND = 'session_not_found'
    SESSION_CLOSED = 'session_closed'
    NONCE_MISMATCH = 'nonce_mismatch'
    EVENT_MISMATCH = 'event_mismatch'
    CODE_MISMATCH = 'code_mismatch'
    NOT_A_MEMBER = 'not_a_member'
    FORBIDDEN = 'forbidden'


class CheckInStatus:
    """Statuses of successful check-in results."""
    CHECKED_IN = 'checked_in'
    ALREADY_CHECKED_IN = 'already_checked_in'


CHECK_IN_ERROR_MESSAGES = dict(TOKEN_ERROR_MESSAGES, **{
    CheckInError.INVALID_FORMAT: 'Invalid QR code!',
    CheckInError.EXPIRED: 'QR code expired! Please scan the new QR.',
    CheckInError.SESSION_NOT_FOUND: 'Session not found!',
    CheckInError.SESSION_CLOSED: 'Attendance session has ended!',
    CheckInError.NONCE_MISMATCH: 'QR code expired! Please scan the new QR.',
    CheckInError.EVENT_MISMATCH: 'Invalid QR code for this event!',
    CheckInError.CODE_MISMATCH: 'Invalid or expired code!',
    CheckInError.NOT_A_MEMBER: 'You are not a member of this club!',
    CheckInError.FORBIDDEN: 'Authentication required',
})


class CheckInService:
    """Service class for member check-ins."""

    @staticmethod
    def scan(token, member, device_hash=None, now=None):
        """
        Check a member in with a QR token.

        Args:
            token: Token string read from the organizer's QR code
            member: Authenticated User presenting the token
            device_hash: Optional device fingerprint hash
            now: Current time (datetime), for deterministic callers

        Returns:
            dict: {'success', 'message', 'status' | 'error_code', 'checked_in_at', 'is_late', ...}

        Raises:
            StorageFailure: on unexpected database errors
        """
        now = now or datetime.now()
        member_id = member.id if member is not None else None

        verification = token_codec.verify(token, now=now)
        if not verification['valid']:
            return CheckInService._rejection(verification['error'], member_id)

        session_id = verification['session_id']
        attendance_session = CheckInService._load_session(session_id, member_id)
        if not attendance_session:
            return CheckInService._rejection(CheckInError.SESSION_NOT_FOUND, member_id, session_id)

        rejection = CheckInService._check_session_open(attendance_session, member_id, now)
        if rejection:
            return rejection

        if verification['nonce'] != attendance_session.current_nonce:
            # Token from an earlier rotation
            return CheckInService._rejection(CheckInError.NONCE_MISMATCH, member_id, session_id)

        if verification['event_id'] != attendance_session.event_id:
            return CheckInService._rejection(CheckInError.EVENT_MISMATCH, member_id, session_id)

        return CheckInService._record_check_in(attendance_session, member, device_hash, now, 'qr_token')

    @staticmethod
    def scan_code(code, member, device_hash=None, now=None):
        """
        Check a member in with the session's typed code.

        The code is uppercased and stripped of whitespace, then matched against
        the current code of active sessions.
        """
        now = now or datetime.now()
        member_id = member.id if member is not None else None

        normalized = normalize_code(code)
        if not is_well_formed_code(normalized):
            return CheckInService._rejection(
                CheckInError.INVALID_FORMAT, member_id,
                message='Invalid code! Must be 7 letters.'
            )

        try:
            attendance_session = (
                db.session.query(AttendanceSession)
                .filter_by(current_code=normalized, status=SessionStatus.ACTIVE)
                .order_by(AttendanceSession.created_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise CheckInService._storage_failure('code_lookup', None, member_id, e) from e

        if not attendance_session:
            return CheckInService._rejection(CheckInError.CODE_MISMATCH, member_id)

        rejection = CheckInService._check_session_open(attendance_session, member_id, now)
        if rejection:
            return rejection

        return CheckInService._record_check_in(attendance_session, member, device_hash, now, 'code')

    # Private Helper Methods

    @staticmethod
    def _load_session(session_id, member_id):
        try:
            return db.session.get(AttendanceSession, session_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise CheckInService._storage_failure('session_lookup', session_id, member_id, e) from e

    @staticmethod
    def _check_session_open(attendance_session, member_id, now):
        """Closed, and active-but-expired, sessions accept no check-ins."""
        if attendance_session.is_usable(now):
            return None

        message = None
        if attendance_session.status == SessionStatus.ACTIVE:
            message = 'Attendance session has expired!'
        return CheckInService._rejection(CheckInError.SESSION_CLOSED, member_id,
                                         attendance_session.id, message=message)

    @staticmethod
    def _record_check_in(attendance_session, member, device_hash, now, method):
        session_id = attendance_session.id
        event_id = attendance_session.event_id

        if member is None:
            return CheckInService._rejection(CheckInError.FORBIDDEN, None, session_id)

        member_id = member.id
        cutoff = AttendanceSessionService.late_cutoff_for(attendance_session)

        event = attendance_session.event
        try:
            is_member = PermissionChecker.is_club_member(member, event.club_id if event else None)
            existing = CheckInService._find_record(session_id, member_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise CheckInService._storage_failure('record_lookup', session_id, member_id, e) from e

        if not is_member:
            return CheckInService._rejection(CheckInError.NOT_A_MEMBER, member_id, session_id)

        if existing:
            return CheckInService._already_checked_in(existing, cutoff)

        record = AttendanceRecord(
            session_id=session_id,
            event_id=event_id,
            member_id=member_id,
            device_hash=CheckInService._clean_device_hash(device_hash),
            checked_in_at=now,
            created_at=now
        )

        try:
            db.session.add(record)
            db.session.commit()
        except IntegrityError as e:
            # Lost the race against a concurrent scan by the same member
            db.session.rollback()
            try:
                existing = CheckInService._find_record(session_id, member_id)
            except SQLAlchemyError as lookup_error:
                db.session.rollback()
                raise CheckInService._storage_failure('record_insert', session_id, member_id,
                                                      lookup_error) from lookup_error
            if existing:
                return CheckInService._already_checked_in(existing, cutoff)
            raise CheckInService._storage_failure('record_insert', session_id, member_id, e) from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise CheckInService._storage_failure('record_insert', session_id, member_id, e) from e

        is_late = cutoff is not None and now > cutoff
        logger.info(f"Attendance marked for member {member_id} in session {session_id} "
                    f"(event {event_id}, via {method}){' [LATE]' if is_late else ''}")

        return {
            'success': True,
            'status': CheckInStatus.CHECKED_IN,
            'message': 'Attendance marked! (Late)' if is_late else 'Attendance marked!',
            'checked_in_at': now.isoformat(),
            'is_late': is_late,
            'session_id': session_id,
            'event_id': event_id,
            'record_id': record.id
        }

    @staticmethod
    def _find_record(session_id, member_id):
        return (
            db.session.query(AttendanceRecord)
            .filter_by(session_id=session_id, member_id=member_id)
            .first()
        )

    @staticmethod
    def _already_checked_in(record, cutoff):
        logger.info(f"Duplicate check-in for member {record.member_id} in session {record.session_id}")
        return {
            'success': True,
            'status': CheckInStatus.ALREADY_CHECKED_IN,
            'message': 'Attendance already marked!',
            'checked_in_at': record.checked_in_at.isoformat(),
            'is_late': cutoff is not None and record.checked_in_at > cutoff,
            'session_id': record.session_id,
            'event_id': record.event_id,
            'record_id': record.id
        }

    @staticmethod
    def _rejection(error_code, member_id, session_id=None, message=None):
        logger.warning(f"Check-in rejected: {error_code} (member={member_id}, session={session_id})")
        return {
            'success': False,
            'error_code': error_code,
            'message': message or CHECK_IN_ERROR_MESSAGES.get(error_code, 'Check-in failed')
        }

    @staticmethod
    def _clean_device_hash(device_hash):
        if not isinstance(device_hash, str):
            return None
        device_hash = device_hash.strip()
        return device_hash[:DEVICE_HASH_MAX_LENGTH] or None

    @staticmethod
    def _storage_failure(stage, session_id, member_id, error):
        logger.error(f"Storage failure during {stage} (session={session_id}, member={member_id}): "
                     f"{error.__class__.__name__}", exc_info=True)
        return StorageFailure(stage, session_id=session_id, member_id=member_id, original=error)
