# utils/auth.py
from functools import wraps
from flask import jsonify
from flask_login import current_user

from club_attendance.models import Membership, RoleType


def role_required(*roles):
    """Decorator to require specific role(s)."""

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'message': 'Authentication required'}), 401

            if current_user.role not in roles:
                return jsonify({'success': False, 'message': f'Role required: {", ".join(roles)}'}), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def organizer_required(f):
    """Decorator to require an account that can run events (owner or admin)."""
    return role_required(RoleType.OWNER, RoleType.ADMIN)(f)


def member_required(f):
    """Decorator that allows any authenticated account to check in."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'message': 'Authentication required'}), 401

        return f(*args, **kwargs)

    return decorated_function


class PermissionChecker:
    """Utility class for attendance permission checks."""

    @staticmethod
    def is_event_organizer(user, event):
        """Check if user can open and run attendance sessions for an event."""
        if user is None or event is None:
            return False

        if user.is_admin():
            return True

        if event.created_by is not None and event.created_by == user.id:
            return True

        return event.club is not None and event.club.owner_id == user.id

    @staticmethod
    def can_manage_session(user, attendance_session):
        """Owner of the session, or anyone who could have opened it."""
        if attendance_session.owner_id == user.id:
            return True

        return PermissionChecker.is_event_organizer(user, attendance_session.event)

    @staticmethod
    def is_club_member(user, club_id):
        """Roster check used before a check-in is recorded."""
        if user is None or club_id is None:
            return False

        return Membership.exists_for(user.id, club_id)
