# models/__init__.py
from .base import BaseModel
from .user import User, RoleType
from .club import Club, Membership
from .event import Event
from .attendance_session import AttendanceSession, SessionStatus
from .attendance_record import AttendanceRecord

__all__ = [
    'BaseModel',
    'User',
    'RoleType',
    'Club',
    'Membership',
    'Event',
    'AttendanceSession',
    'SessionStatus',
    'AttendanceRecord'
]
