# models/attendance_session.py
from datetime import datetime

from sqlalchemy import Index

from club_attendance.extensions import db
from .base import BaseModel


class SessionStatus:
    """Stored session states. 'closed' is terminal."""
    ACTIVE = 'active'
    CLOSED = 'closed'

    ALL = (ACTIVE, CLOSED)


class AttendanceSession(BaseModel):
    """
    One organizer-initiated attendance window for an event.

    Holds the current nonce/code pair. Only AttendanceSessionService mutates
    rows of this table; check-in reads them.
    """

    __tablename__ = 'attendance_sessions'

    event_id = db.Column(db.Integer, db.ForeignKey('events.id'), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(10), default=SessionStatus.ACTIVE, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    ttl_seconds = db.Column(db.Integer, nullable=False)
    current_nonce = db.Column(db.String(64), nullable=False)
    current_code = db.Column(db.String(7), nullable=True)  # NULL in token-only mode
    on_time_until = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)

    event = db.relationship('Event', back_populates='attendance_sessions')
    owner = db.relationship('User', foreign_keys=[owner_id])
    records = db.relationship('AttendanceRecord', back_populates='session', lazy='dynamic',
                              cascade='all, delete-orphan')

    __table_args__ = (
        Index('idx_attendance_session_event', 'event_id'),
        Index('idx_attendance_session_status', 'status'),
        Index('idx_attendance_session_code_status', 'current_code', 'status'),
        db.CheckConstraint("status IN ('active', 'closed')", name='ck_attendance_session_status'),
    )

    @property
    def is_closed(self):
        return self.status == SessionStatus.CLOSED

    @property
    def token_only(self):
        return self.current_code is None

    def is_expired(self, now=None):
        return (now or datetime.now()) >= self.expires_at

    def is_usable(self, now=None):
        """Active and not yet expired. Expired-but-active counts as closed for check-in."""
        return self.status == SessionStatus.ACTIVE and not self.is_expired(now)

    def seconds_left(self, now=None):
        remaining = (self.expires_at - (now or datetime.now())).total_seconds()
        return max(0, int(remaining))

    def __repr__(self):
        return f'<AttendanceSession {self.id} event={self.event_id} {self.status}>'
