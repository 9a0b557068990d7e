# models/club.py
from sqlalchemy import UniqueConstraint

from club_attendance.extensions import db
from .base import BaseModel


class Club(BaseModel):
    __tablename__ = 'clubs'

    name = db.Column(db.String(120), unique=True, nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)

    owner = db.relationship('User', foreign_keys=[owner_id])
    memberships = db.relationship('Membership', back_populates='club', lazy='dynamic')
    events = db.relationship('Event', back_populates='club', lazy='dynamic')

    def __repr__(self):
        return f'<Club {self.name}>'


class Membership(BaseModel):
    __tablename__ = 'memberships'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    club_id = db.Column(db.Integer, db.ForeignKey('clubs.id'), nullable=False, index=True)

    user = db.relationship('User', back_populates='memberships')
    club = db.relationship('Club', back_populates='memberships')

    __table_args__ = (
        UniqueConstraint('user_id', 'club_id', name='uq_membership_user_club'),
    )

    @staticmethod
    def exists_for(user_id, club_id):
        """Roster lookup used by check-in."""
        return db.session.query(
            db.session.query(Membership)
            .filter_by(user_id=user_id, club_id=club_id)
            .exists()
        ).scalar()

    def __repr__(self):
        return f'<Membership user={self.user_id} club={self.club_id}>'
