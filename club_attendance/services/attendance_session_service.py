# services/attendance_session_service.py
"""
Attendance session lifecycle: open, rotate, close, current token and code.

This service is the only writer of AttendanceSession rows. Rotation and
closing are single guarded UPDATE statements, so they are safe to run while
check-ins are reading the same row from other workers.
"""

import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from club_attendance.exceptions import (
    EventNotFoundError, ForbiddenError, InvalidSessionParameters,
    SessionClosedError, SessionNotFoundError, StorageFailure
)
from club_attendance.extensions import db, token_codec
from club_attendance.models import AttendanceRecord, AttendanceSession, Event, SessionStatus, User
from club_attendance.services.code_generator import generate_attendance_code, generate_nonce
from club_attendance.utils.auth import PermissionChecker

logger = logging.getLogger('attendance_session_service')

CODE_COLLISION_RETRIES = 5


class AttendanceSessionService:
    """Service class for attendance session management."""

    @staticmethod
    def open_session(event_id, organizer, ttl_seconds=None, token_only=False, on_time_until=None, now=None):
        """
        Open attendance for an event, or refresh the event's running session.

        When the event already has a usable session it is rotated and returned
        as is: ttl_seconds, token_only and on_time_until apply only to newly
        opened sessions. End the running session first to change them.

        Args:
            event_id: Event to collect attendance for
            organizer: User opening the session
            ttl_seconds: Session window, defaults to ATTENDANCE_SESSION_TTL
            token_only: Skip the typed-code fallback
            on_time_until: Optional lateness cutoff overriding the event start time
            now: Current time (datetime), for deterministic callers

        Returns:
            tuple: (AttendanceSession, created: bool)

        Raises:
            EventNotFoundError, ForbiddenError, InvalidSessionParameters, StorageFailure
        """
        now = now or datetime.now()
        ttl = AttendanceSessionService._resolve_ttl(ttl_seconds)

        event = db.session.get(Event, event_id)
        if not event:
            raise EventNotFoundError()

        if not PermissionChecker.is_event_organizer(organizer, event):
            logger.warning(f"User {organizer.id} tried to open attendance for event {event_id} without rights")
            raise ForbiddenError()

        existing = AttendanceSessionService.get_active_session_for_event(event.id)
        if existing:
            if existing.is_usable(now):
                AttendanceSessionService.rotate_session(existing.id, now=now)
                logger.info(f"Attendance session {existing.id} already active for event {event.id}, rotated")
                return existing, False

            AttendanceSessionService.close_session(existing.id, now=now)

        if not current_app.config.get('ATTENDANCE_CODE_ENABLED', True):
            token_only = True

        attendance_session = AttendanceSession(
            event_id=event.id,
            owner_id=organizer.id,
            status=SessionStatus.ACTIVE,
            expires_at=now + timedelta(seconds=ttl),
            ttl_seconds=ttl,
            current_nonce=generate_nonce(),
            current_code=None if token_only else AttendanceSessionService._unique_code(),
            on_time_until=on_time_until,
            created_at=now
        )

        try:
            db.session.add(attendance_session)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to open attendance session for event {event.id}: {e}", exc_info=True)
            raise StorageFailure('open_session', member_id=organizer.id, original=e) from e

        logger.info(f"Attendance session {attendance_session.id} opened for event '{event.title}' "
                    f"by user {organizer.id} (ttl={ttl}s, token_only={token_only})")
        return attendance_session, True

    @staticmethod
    def rotate_session(session_id, now=None):
        """
        Replace nonce and code together and push expiry to now + ttl_seconds.

        Tokens minted for the previous nonce stop verifying against the session
        immediately. An active session that has already expired is closed rather
        than revived.

        Returns:
            AttendanceSession: the rotated session

        Raises:
            SessionNotFoundError, SessionClosedError, StorageFailure
        """
        now = now or datetime.now()
        attendance_session = AttendanceSessionService.get_session(session_id)

        if attendance_session.is_closed:
            raise SessionClosedError('Attendance session is closed')

        if attendance_session.is_expired(now):
            AttendanceSessionService.close_session(session_id, now=now)
            raise SessionClosedError('Attendance session has expired')

        values = {
            'current_nonce': generate_nonce(),
            'expires_at': now + timedelta(seconds=attendance_session.ttl_seconds),
            'updated_at': now
        }
        if not attendance_session.token_only:
            values['current_code'] = AttendanceSessionService._unique_code()

        try:
            updated = (
                db.session.query(AttendanceSession)
                .filter(
                    AttendanceSession.id == session_id,
                    AttendanceSession.status == SessionStatus.ACTIVE,
                    AttendanceSession.expires_at > now
                )
                .update(values, synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to rotate attendance session {session_id}: {e}", exc_info=True)
            raise StorageFailure('rotate_session', session_id=session_id, original=e) from e

        if not updated:
            # Closed by another worker between the read and the update
            raise SessionClosedError('Attendance session is closed')

        db.session.refresh(attendance_session)
        logger.debug(f"Attendance session {session_id} rotated, expires at {attendance_session.expires_at}")
        return attendance_session

    @staticmethod
    def close_session(session_id, now=None):
        """
        Close a session. Closing an already closed session is a no-op.

        Returns:
            tuple: (AttendanceSession, changed: bool)
        """
        now = now or datetime.now()
        attendance_session = AttendanceSessionService.get_session(session_id)

        if attendance_session.is_closed:
            return attendance_session, False

        try:
            updated = (
                db.session.query(AttendanceSession)
                .filter(
                    AttendanceSession.id == session_id,
                    AttendanceSession.status == SessionStatus.ACTIVE
                )
                .update({'status': SessionStatus.CLOSED, 'closed_at': now, 'updated_at': now},
                        synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to close attendance session {session_id}: {e}", exc_info=True)
            raise StorageFailure('close_session', session_id=session_id, original=e) from e

        db.session.refresh(attendance_session)
        if updated:
            logger.info(f"Attendance session {session_id} closed")
        return attendance_session, bool(updated)

    @staticmethod
    def current_token(session_id, now=None):
        """Mint a fresh token for the session's current nonce."""
        now = now or datetime.now()
        attendance_session = AttendanceSessionService.get_session(session_id)

        if not attendance_session.is_usable(now):
            raise SessionClosedError()

        return token_codec.issue(
            attendance_session.id,
            attendance_session.event_id,
            attendance_session.current_nonce,
            now=now
        )

    @staticmethod
    def current_code(session_id):
        """Current typed code, or None for a token-only session."""
        return AttendanceSessionService.get_session(session_id).current_code

    @staticmethod
    def get_session(session_id):
        try:
            attendance_session = db.session.get(AttendanceSession, session_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageFailure('session_lookup', session_id=session_id, original=e) from e

        if not attendance_session:
            raise SessionNotFoundError()
        return attendance_session

    @staticmethod
    def get_session_for_manager(session_id, user):
        """Load a session for an owner-facing route, enforcing who may run it."""
        attendance_session = AttendanceSessionService.get_session(session_id)
        if not PermissionChecker.can_manage_session(user, attendance_session):
            raise ForbiddenError('Access denied!')
        return attendance_session

    @staticmethod
    def get_active_session_for_event(event_id):
        return (
            db.session.query(AttendanceSession)
            .filter_by(event_id=event_id, status=SessionStatus.ACTIVE)
            .order_by(AttendanceSession.created_at.desc())
            .first()
        )

    @staticmethod
    def late_cutoff_for(attendance_session):
        """
        Time after which a check-in counts as late, or None when no cutoff applies.
        An explicit session cutoff wins over the event start plus grace period.
        """
        if attendance_session.on_time_until:
            return attendance_session.on_time_until

        event = attendance_session.event
        if event is not None and event.start_time:
            grace = current_app.config.get('ATTENDANCE_LATE_GRACE_MINUTES', 5)
            return event.start_time + timedelta(minutes=grace)

        return None

    @staticmethod
    def get_session_summary(session_id, now=None):
        """
        Live attendance summary for the organizer's screen.

        Returns:
            dict: counts, time left, checked-in members and devices shared by
                  more than one member
        """
        now = now or datetime.now()
        attendance_session = AttendanceSessionService.get_session(session_id)
        cutoff = AttendanceSessionService.late_cutoff_for(attendance_session)

        rows = (
            db.session.query(AttendanceRecord, User)
            .join(User, User.id == AttendanceRecord.member_id)
            .filter(AttendanceRecord.session_id == attendance_session.id)
            .order_by(AttendanceRecord.checked_in_at.desc())
            .all()
        )

        members = []
        for record, user in rows:
            members.append({
                'id': user.id,
                'username': user.username,
                'student_id': user.student_id,
                'checked_in_at': record.checked_in_at.isoformat(),
                'is_late': cutoff is not None and record.checked_in_at > cutoff
            })

        shared_devices = (
            db.session.query(AttendanceRecord.device_hash, func.count(AttendanceRecord.id))
            .filter(
                AttendanceRecord.session_id == attendance_session.id,
                AttendanceRecord.device_hash.isnot(None)
            )
            .group_by(AttendanceRecord.device_hash)
            .having(func.count(AttendanceRecord.id) > 1)
            .all()
        )

        event = attendance_session.event
        return {
            'session_id': attendance_session.id,
            'event_id': attendance_session.event_id,
            'event_title': event.title if event else 'Unknown Event',
            'status': attendance_session.status,
            'is_usable': attendance_session.is_usable(now),
            'present_count': len(members),
            'late_count': sum(1 for m in members if m['is_late']),
            'time_left': attendance_session.seconds_left(now),
            'expires_at': attendance_session.expires_at.isoformat(),
            'members': members,
            'shared_devices': [
                {'device_hash': device_hash, 'member_count': count}
                for device_hash, count in shared_devices
            ]
        }

    @staticmethod
    def count_records(session_id):
        return (
            db.session.query(func.count(AttendanceRecord.id))
            .filter(AttendanceRecord.session_id == session_id)
            .scalar()
        )

    @staticmethod
    def close_expired_sessions(now=None):
        """Close every active session whose window has passed. Returns the count closed."""
        now = now or datetime.now()
        try:
            closed = (
                db.session.query(AttendanceSession)
                .filter(
                    AttendanceSession.status == SessionStatus.ACTIVE,
                    AttendanceSession.expires_at <= now
                )
                .update({'status': SessionStatus.CLOSED, 'closed_at': now, 'updated_at': now},
                        synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to close expired attendance sessions: {e}", exc_info=True)
            raise StorageFailure('close_expired_sessions', original=e) from e

        if closed:
            logger.info(f"Closed {closed} expired attendance session(s)")
        return closed

    @staticmethod
    def rotate_active_sessions(now=None):
        """Rotate every usable session once. Driven by the rotation timer command."""
        now = now or datetime.now()
        session_ids = [
            row.id for row in
            db.session.query(AttendanceSession.id)
            .filter(
                AttendanceSession.status == SessionStatus.ACTIVE,
                AttendanceSession.expires_at > now
            )
            .all()
        ]

        rotated = 0
        for session_id in session_ids:
            try:
                AttendanceSessionService.rotate_session(session_id, now=now)
                rotated += 1
            except SessionClosedError:
                # Closed while we were iterating
                continue

        return rotated

    # Private Helper Methods

    @staticmethod
    def _resolve_ttl(ttl_seconds):
        default_ttl = current_app.config.get('ATTENDANCE_SESSION_TTL', 180)
        max_ttl = current_app.config.get('ATTENDANCE_SESSION_TTL_MAX', 3600)

        if ttl_seconds is None:
            return default_ttl

        try:
            ttl = int(ttl_seconds)
        except (TypeError, ValueError):
            raise InvalidSessionParameters('ttl_seconds must be an integer')

        if ttl <= 0 or ttl > max_ttl:
            raise InvalidSessionParameters(f'ttl_seconds must be between 1 and {max_ttl}')
        return ttl

    @staticmethod
    def _unique_code():
        """A code that no other active session currently shows."""
        code = generate_attendance_code()
        for _ in range(CODE_COLLISION_RETRIES):
            taken = (
                db.session.query(AttendanceSession.id)
                .filter_by(current_code=code, status=SessionStatus.ACTIVE)
                .first()
            )
            if not taken:
                break
            code = generate_attendance_code()
        return code
