# services/auth_service.py
"""
Authentication service for login and logout of API clients.
Identity for check-in comes from the Flask-Login session established here.
"""

import logging

from flask import session
from flask_login import login_user, logout_user, current_user
from sqlalchemy import or_

from club_attendance.models import User
from club_attendance.extensions import db


class AuthService:
    """Service class for authentication."""

    @staticmethod
    def authenticate_user(identifier, password, remember_me=False):
        """
        Authenticate user with username/email and password.

        Args:
            identifier: Username or email address
            password: User password
            remember_me: Whether to remember login session

        Returns:
            tuple: (success: bool, user: User|None, message: str)
        """
        logger = logging.getLogger('auth_service')

        if not identifier or not password:
            return False, None, "Username/email and password are required"

        user = (
            db.session.query(User)
            .filter(
                or_(
                    User.username == identifier,
                    User.email == identifier
                ),
                User.is_active.is_(True)
            )
            .first()
        )

        if not user or not user.check_password(password):
            logger.warning(f"Failed login attempt for identifier: {identifier}")
            return False, None, "Invalid username/email or password"

        login_user(user, remember=remember_me)

        logger.info(f"Successful login for user: {user.username}")
        return True, user, "Login successful"

    @staticmethod
    def logout_user_session():
        """Logout current user and clear session."""
        logger = logging.getLogger('auth_service')

        if current_user.is_authenticated:
            username = current_user.username
            logout_user()
            session.clear()
            logger.info(f"User logged out: {username}")

        return True
