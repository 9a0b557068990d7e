import logging
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from club_attendance.exceptions import StorageFailure
from club_attendance.extensions import db
from club_attendance.models import AttendanceRecord
from club_attendance.services.attendance_session_service import AttendanceSessionService
from club_attendance.services.check_in_service import CheckInService
from tests.conftest import T0


def _failing_commit():
    raise OperationalError('COMMIT', {}, Exception('disk I/O error'))


@pytest.fixture
def broken_commit(monkeypatch):
    """Make every commit on the current session fail; rollback still works."""
    def _break():
        monkeypatch.setattr(db.session(), 'commit', _failing_commit)

    return _break


@pytest.fixture
def running(directory):
    attendance_session, _ = AttendanceSessionService.open_session(
        directory.event.id, directory.owner, ttl_seconds=30, now=T0
    )
    token = AttendanceSessionService.current_token(attendance_session.id, now=T0)
    return attendance_session, token


def test_scan_insert_failure_rolls_back_and_reports_stage(directory, running, broken_commit, caplog):
    attendance_session, token = running
    broken_commit()

    with caplog.at_level(logging.ERROR, logger='check_in_service'):
        with pytest.raises(StorageFailure) as exc_info:
            CheckInService.scan(token, directory.member, now=T0 + timedelta(seconds=1))

    failure = exc_info.value
    assert failure.stage == 'record_insert'
    assert failure.session_id == attendance_session.id
    assert failure.member_id == directory.member.id
    assert isinstance(failure.original, OperationalError)

    assert db.session.query(AttendanceRecord).count() == 0

    assert 'record_insert' in caplog.text
    assert f'member={directory.member.id}' in caplog.text
    assert token not in caplog.text


def test_rotate_failure_keeps_previous_nonce(directory, running, broken_commit):
    attendance_session, _ = running
    nonce, code = attendance_session.current_nonce, attendance_session.current_code
    broken_commit()

    with pytest.raises(StorageFailure) as exc_info:
        AttendanceSessionService.rotate_session(attendance_session.id, now=T0 + timedelta(seconds=5))

    assert exc_info.value.stage == 'rotate_session'
    assert exc_info.value.session_id == attendance_session.id
    assert attendance_session.current_nonce == nonce
    assert attendance_session.current_code == code
    assert attendance_session.expires_at == T0 + timedelta(seconds=30)


def test_scan_route_answers_generic_500(directory, login, broken_commit):
    client = login('owner')
    payload = client.post('/attendance/session/start', json={'event_id': directory.event.id}).get_json()['session']
    client.post('/auth/logout')
    login('member')
    broken_commit()

    response = client.post('/attendance/scan', json={'token': payload['token']})

    assert response.status_code == 500
    assert response.get_json() == {'success': False, 'message': 'Server error!', 'error_code': 'storage_failure'}
    assert db.session.query(AttendanceRecord).count() == 0


def test_end_route_answers_generic_500(directory, login, broken_commit):
    client = login('owner')
    payload = client.post('/attendance/session/start', json={'event_id': directory.event.id}).get_json()['session']
    broken_commit()

    response = client.post(f"/attendance/session/{payload['id']}/end")

    assert response.status_code == 500
    assert response.get_json() == {'success': False, 'message': 'Server error!', 'error_code': 'storage_failure'}
