# models/event.py
from club_attendance.extensions import db
from .base import BaseModel


class Event(BaseModel):
    __tablename__ = 'events'

    club_id = db.Column(db.Integer, db.ForeignKey('clubs.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    start_time = db.Column(db.DateTime, nullable=True)  # Used for the late-arrival cutoff
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    club = db.relationship('Club', back_populates='events')
    attendance_sessions = db.relationship('AttendanceSession', back_populates='event', lazy='dynamic',
                                          cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Event {self.title}>'
