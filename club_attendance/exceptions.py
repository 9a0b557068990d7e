# exceptions.py
"""
Exceptions raised by the attendance services.
Expected check-in rejections are returned as result dicts instead; these cover
session management failures and storage errors.
"""


class AttendanceError(Exception):
    """Base class for attendance service errors."""

    error_code = 'attendance_error'
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ForbiddenError(AttendanceError):
    """You are not allowed to manage attendance for this event."""

    error_code = 'forbidden'
    status_code = 403


class EventNotFoundError(AttendanceError):
    """Event not found."""

    error_code = 'event_not_found'
    status_code = 404


class SessionNotFoundError(AttendanceError):
    """Attendance session not found."""

    error_code = 'session_not_found'
    status_code = 404


class SessionClosedError(AttendanceError):
    """Attendance session is closed or has expired."""

    error_code = 'session_closed'
    status_code = 400


class StorageFailure(AttendanceError):
    """Database error while processing attendance."""

    error_code = 'storage_failure'
    status_code = 500

    def __init__(self, stage, session_id=None, member_id=None, original=None):
        super().__init__()
        self.stage = stage
        self.session_id = session_id
        self.member_id = member_id
        self.original = original

    def __str__(self):
        return (f"storage failure during {self.stage} "
                f"(session={self.session_id}, member={self.member_id})")


class InvalidSessionParameters(AttendanceError):
    """Invalid attendance session parameters."""

    error_code = 'invalid_parameters'
    status_code = 400
