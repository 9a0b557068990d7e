# models/attendance_record.py
from datetime import datetime

from sqlalchemy import Index, UniqueConstraint

from club_attendance.extensions import db
from .base import BaseModel


class AttendanceRecord(BaseModel):
    """A verified check-in. Written once by CheckInService, never updated."""

    __tablename__ = 'attendance_records'

    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id', ondelete='CASCADE'), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey('events.id'), nullable=False)  # denormalized from session
    member_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    device_hash = db.Column(db.String(128), nullable=True)
    checked_in_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    session = db.relationship('AttendanceSession', back_populates='records')
    member = db.relationship('User', foreign_keys=[member_id])

    __table_args__ = (
        # One check-in per member per session; the dedup source of truth
        UniqueConstraint('session_id', 'member_id', name='uq_attendance_session_member'),
        Index('idx_attendance_record_event', 'event_id'),
        Index('idx_attendance_record_session_time', 'session_id', 'checked_in_at'),
        Index('idx_attendance_record_device', 'session_id', 'device_hash'),
    )

    def __repr__(self):
        return f'<AttendanceRecord session={self.session_id} member={self.member_id}>'
