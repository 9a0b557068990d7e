# models/user.py
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import Index

from club_attendance.extensions import db
from .base import BaseModel


class RoleType:
    """Define role types as constants."""
    ADMIN = 'admin'
    OWNER = 'owner'
    MEMBER = 'member'

    ALL = (ADMIN, OWNER, MEMBER)


class User(UserMixin, BaseModel):
    """Platform user. Owners run clubs, members check in to their events."""

    __tablename__ = 'users'

    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), default=RoleType.MEMBER, nullable=False)
    student_id = db.Column(db.String(32))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    memberships = db.relationship('Membership', back_populates='user', lazy='dynamic')

    __table_args__ = (
        Index('idx_user_role_active', 'role', 'is_active'),
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def is_admin(self):
        return self.role == RoleType.ADMIN

    def to_dict(self):
        result = super().to_dict()
        result.pop('password_hash', None)
        return result

    def __repr__(self):
        return f'<User {self.username}>'
