# controllers/auth.py
"""
Authentication routes for API clients: login, logout and the current user.
"""

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from club_attendance.services.auth_service import AuthService

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/login', methods=['POST'])
def login():
    """User login route."""
    data = request.get_json(silent=True) or {}

    success, user, message = AuthService.authenticate_user(
        identifier=(data.get('identifier') or '').strip(),
        password=data.get('password'),
        remember_me=bool(data.get('remember_me', False))
    )

    if not success:
        return jsonify({'success': False, 'message': message}), 401

    return jsonify({'success': True, 'message': message, 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """User logout route."""
    AuthService.logout_user_session()
    return jsonify({'success': True, 'message': 'You have been logged out successfully.'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'user': current_user.to_dict()})
