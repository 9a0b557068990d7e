# controllers/check_in.py
"""
Attendance routes for QR sessions and member check-in.
Organizers open a session, poll it for a fresh token/code and close it;
members submit the scanned token or the typed code.
"""

import logging
from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, send_file
from flask_login import current_user

from club_attendance.exceptions import AttendanceError, StorageFailure
from club_attendance.services.attendance_session_service import AttendanceSessionService
from club_attendance.services.check_in_service import CheckInService, CheckInError
from club_attendance.services.code_generator import format_code_for_display
from club_attendance.services.qr_code_service import QRCodeService, QRCodeError
from club_attendance.utils.auth import organizer_required, member_required

# Initialize blueprint
check_in_bp = Blueprint('check_in', __name__)

logger = logging.getLogger('check_in')

# HTTP status for check-in rejections that are not plain 400s
REJECTION_STATUS = {
    CheckInError.SESSION_NOT_FOUND: 404,
    CheckInError.NOT_A_MEMBER: 403,
    CheckInError.FORBIDDEN: 401,
}


@check_in_bp.route('/session/start', methods=['POST'])
@organizer_required
def start_session():
    """
    Open an attendance session for an event, or refresh the one already running.
    Returns the first token and code so the organizer screen can render immediately.
    """
    data = request.get_json(silent=True) or {}

    event_id = _parse_int(data.get('event_id') or data.get('eventId'))
    if event_id is None:
        return jsonify({'success': False, 'message': 'Event ID required!', 'error_code': 'missing_event'}), 400

    on_time_until = None
    if data.get('on_time_until'):
        try:
            on_time_until = datetime.fromisoformat(str(data['on_time_until']))
        except ValueError:
            return jsonify({
                'success': False,
                'message': 'on_time_until must be an ISO 8601 datetime',
                'error_code': 'invalid_parameters'
            }), 400

    try:
        attendance_session, created = AttendanceSessionService.open_session(
            event_id=event_id,
            organizer=current_user._get_current_object(),
            ttl_seconds=data.get('ttl_seconds'),
            token_only=bool(data.get('token_only', False)),
            on_time_until=on_time_until
        )
        token = AttendanceSessionService.current_token(attendance_session.id)
    except AttendanceError as e:
        return _error_response(e)

    return jsonify({
        'success': True,
        'message': 'Attendance session started!' if created else 'Session already active',
        'session': _session_payload(attendance_session, token)
    }), 201 if created else 200


@check_in_bp.route('/session/<int:session_id>/token')
@organizer_required
def refresh_token(session_id):
    """
    Rotate the session and return the new token and code.
    Polled by the organizer screen every ATTENDANCE_ROTATION_INTERVAL seconds.
    """
    try:
        AttendanceSessionService.get_session_for_manager(session_id, current_user)
        attendance_session = AttendanceSessionService.rotate_session(session_id)
        token = AttendanceSessionService.current_token(session_id)
    except AttendanceError as e:
        return _error_response(e)

    payload = _session_payload(attendance_session, token)
    payload['success'] = True
    return jsonify(payload)


@check_in_bp.route('/session/<int:session_id>/qr.png')
@organizer_required
def session_qr(session_id):
    """Current token rendered as a QR image. Does not rotate."""
    try:
        AttendanceSessionService.get_session_for_manager(session_id, current_user)
        token = AttendanceSessionService.current_token(session_id)
    except AttendanceError as e:
        return _error_response(e)

    try:
        image = QRCodeService.render_png(token)
    except Exception as e:
        logger.error(f"QR rendering failed for session {session_id}: {e}", exc_info=True)
        return jsonify({
            'success': False,
            'message': 'Failed to render QR code',
            'error_code': QRCodeError.GENERATION_FAILED
        }), 500

    response = send_file(image, mimetype='image/png', max_age=0)
    response.headers['Cache-Control'] = 'no-store'
    return response


@check_in_bp.route('/session/<int:session_id>/summary')
@organizer_required
def session_summary(session_id):
    """Live attendance summary for the organizer."""
    try:
        AttendanceSessionService.get_session_for_manager(session_id, current_user)
        summary = AttendanceSessionService.get_session_summary(session_id)
    except AttendanceError as e:
        return _error_response(e)

    return jsonify({'success': True, 'summary': summary})


@check_in_bp.route('/session/<int:session_id>/end', methods=['POST'])
@organizer_required
def end_session(session_id):
    """Close the session. Closing twice is not an error."""
    try:
        AttendanceSessionService.get_session_for_manager(session_id, current_user)
        _, changed = AttendanceSessionService.close_session(session_id)
        total_present = AttendanceSessionService.count_records(session_id)
    except AttendanceError as e:
        return _error_response(e)

    if changed:
        logger.info(f"Attendance session {session_id} ended. Total present: {total_present}")

    return jsonify({
        'success': True,
        'message': 'Attendance session ended!' if changed else 'Session already closed!',
        'total_present': total_present
    })


@check_in_bp.route('/scan', methods=['POST'])
@member_required
def scan():
    """Member check-in with a scanned QR token."""
    data = request.get_json(silent=True) or {}

    token = data.get('token')
    if not token:
        return jsonify({'success': False, 'message': 'QR token required!', 'error_code': 'missing_token'}), 400

    return _check_in_response(
        CheckInService.scan,
        token,
        data.get('device_hash') or data.get('deviceHash')
    )


@check_in_bp.route('/scan-code', methods=['POST'])
@member_required
def scan_code():
    """Member check-in with the typed 7-letter code."""
    data = request.get_json(silent=True) or {}

    code = data.get('code')
    if not code:
        return jsonify({'success': False, 'message': 'Attendance code required!', 'error_code': 'missing_code'}), 400

    return _check_in_response(
        CheckInService.scan_code,
        code,
        data.get('device_hash') or data.get('deviceHash')
    )


# Helper Functions

def _check_in_response(handler, credential, device_hash):
    member = current_user._get_current_object()
    try:
        result = handler(credential, member, device_hash=device_hash)
    except StorageFailure:
        # Already logged with session, member and stage by the service
        return jsonify({
            'success': False,
            'message': 'Server error!',
            'error_code': StorageFailure.error_code
        }), 500

    if result['success']:
        return jsonify(result)

    return jsonify(result), REJECTION_STATUS.get(result.get('error_code'), 400)


def _session_payload(attendance_session, token):
    event = attendance_session.event
    code = attendance_session.current_code
    return {
        'id': attendance_session.id,
        'event_id': attendance_session.event_id,
        'event_title': event.title if event else None,
        'status': attendance_session.status,
        'expires_at': attendance_session.expires_at.isoformat(),
        'time_left': attendance_session.seconds_left(),
        'token': token,
        'code': code,
        'code_display': format_code_for_display(code),
        'refresh_interval': current_app.config.get('ATTENDANCE_ROTATION_INTERVAL', 25)
    }


def _error_response(error):
    if isinstance(error, StorageFailure):
        return jsonify({'success': False, 'message': 'Server error!', 'error_code': error.error_code}), 500

    return jsonify({
        'success': False,
        'message': error.message,
        'error_code': error.error_code
    }), error.status_code


def _parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
