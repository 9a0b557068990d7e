import pytest

from club_attendance.extensions import db
from club_attendance.models import AttendanceRecord, AttendanceSession, SessionStatus


@pytest.fixture
def started(directory, login):
    """Owner logged in with a freshly started session."""
    client = login('owner')
    response = client.post('/attendance/session/start', json={'event_id': directory.event.id})
    assert response.status_code == 201
    return client, response.get_json()['session']


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'


def test_database_health(client):
    response = client.get('/health/database')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_login_and_me(directory, login):
    client = login('member')

    response = client.get('/auth/me')

    assert response.status_code == 200
    assert response.get_json()['user']['username'] == 'member'
    assert 'password_hash' not in response.get_json()['user']


def test_bad_login(directory, client):
    response = client.post('/auth/login', json={'identifier': 'member', 'password': 'nope'})

    assert response.status_code == 401


class TestOrganizerRoutes:

    def test_start_returns_token_and_code(self, directory, started):
        _, payload = started

        assert payload['event_id'] == directory.event.id
        assert payload['event_title'] == 'Weekly Build Night'
        assert payload['status'] == SessionStatus.ACTIVE
        assert payload['token'].count('.') == 1
        assert len(payload['code']) == 7
        assert payload['code_display'] == f"{payload['code'][:3]} {payload['code'][3:]}"
        assert payload['refresh_interval'] == 25
        assert 0 < payload['time_left'] <= 180

    def test_start_again_returns_running_session(self, directory, started):
        client, payload = started

        response = client.post('/attendance/session/start', json={'eventId': directory.event.id})

        assert response.status_code == 200
        assert response.get_json()['session']['id'] == payload['id']
        assert response.get_json()['session']['token'] != payload['token']

    def test_start_validates_input(self, directory, login):
        client = login('owner')

        assert client.post('/attendance/session/start', json={}).status_code == 400
        assert client.post('/attendance/session/start',
                           json={'event_id': directory.event.id, 'ttl_seconds': 0}).status_code == 400
        assert client.post('/attendance/session/start',
                           json={'event_id': directory.event.id, 'on_time_until': 'noon'}).status_code == 400
        assert client.post('/attendance/session/start', json={'event_id': 9999}).status_code == 404

    def test_token_refresh_rotates(self, started):
        client, payload = started

        response = client.get(f"/attendance/session/{payload['id']}/token")

        body = response.get_json()
        assert response.status_code == 200
        assert body['success'] is True
        assert body['token'] != payload['token']
        assert body['code'] != payload['code']

    def test_qr_png(self, started):
        client, payload = started

        response = client.get(f"/attendance/session/{payload['id']}/qr.png")

        assert response.status_code == 200
        assert response.mimetype == 'image/png'
        assert response.data.startswith(b'\x89PNG')
        assert response.headers['Cache-Control'] == 'no-store'

    def test_end_is_idempotent(self, started):
        client, payload = started

        first = client.post(f"/attendance/session/{payload['id']}/end")
        second = client.post(f"/attendance/session/{payload['id']}/end")

        assert first.get_json() == {'success': True, 'message': 'Attendance session ended!', 'total_present': 0}
        assert second.get_json()['message'] == 'Session already closed!'
        assert db.session.get(AttendanceSession, payload['id']).status == SessionStatus.CLOSED

        assert client.get(f"/attendance/session/{payload['id']}/token").status_code == 400

    def test_other_owner_cannot_manage(self, directory, started):
        client, payload = started
        client.post('/auth/logout')
        client.post('/auth/login', json={'identifier': 'other_owner', 'password': 'correct-horse'})

        for path in ('token', 'qr.png', 'summary'):
            assert client.get(f"/attendance/session/{payload['id']}/{path}").status_code == 403
        assert client.post(f"/attendance/session/{payload['id']}/end").status_code == 403

    def test_members_cannot_start(self, directory, login):
        client = login('member')

        response = client.post('/attendance/session/start', json={'event_id': directory.event.id})

        assert response.status_code == 403

    def test_anonymous_is_unauthorized(self, directory, client):
        assert client.post('/attendance/session/start', json={'event_id': directory.event.id}).status_code == 401
        assert client.post('/attendance/scan', json={'token': 'x.y'}).status_code == 401
        assert client.post('/attendance/scan-code', json={'code': 'ABCDEFG'}).status_code == 401

    def test_unknown_session(self, directory, login):
        client = login('owner')

        assert client.get('/attendance/session/9999/summary').status_code == 404


class TestMemberRoutes:

    def _switch_to(self, client, username):
        client.post('/auth/logout')
        response = client.post('/auth/login', json={'identifier': username, 'password': 'correct-horse'})
        assert response.status_code == 200

    def test_scan_then_summary(self, directory, started):
        client, payload = started
        self._switch_to(client, 'member')

        first = client.post('/attendance/scan', json={'token': payload['token'], 'deviceHash': 'abc123'})
        second = client.post('/attendance/scan', json={'token': payload['token']})

        assert first.status_code == 200
        assert first.get_json()['status'] == 'checked_in'
        assert second.status_code == 200
        assert second.get_json()['status'] == 'already_checked_in'
        assert db.session.query(AttendanceRecord).one().device_hash == 'abc123'

        self._switch_to(client, 'owner')
        summary = client.get(f"/attendance/session/{payload['id']}/summary").get_json()['summary']
        assert summary['present_count'] == 1
        assert summary['members'][0]['username'] == 'member'

    def test_scan_code(self, directory, started):
        client, payload = started
        self._switch_to(client, 'member')

        response = client.post('/attendance/scan-code', json={'code': payload['code_display'].lower()})

        assert response.status_code == 200
        assert response.get_json()['success'] is True

    def test_scan_rejections(self, directory, started):
        client, payload = started
        self._switch_to(client, 'outsider')

        assert client.post('/attendance/scan', json={}).status_code == 400
        assert client.post('/attendance/scan-code', json={}).status_code == 400

        not_member = client.post('/attendance/scan', json={'token': payload['token']})
        assert not_member.status_code == 403
        assert not_member.get_json()['error_code'] == 'not_a_member'

        bad = client.post('/attendance/scan', json={'token': 'not-a-token'})
        assert bad.status_code == 400
        assert bad.get_json()['error_code'] == 'invalid_format'

    def test_scan_after_end(self, directory, started):
        client, payload = started
        client.post(f"/attendance/session/{payload['id']}/end")
        self._switch_to(client, 'member')

        response = client.post('/attendance/scan', json={'token': payload['token']})

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'session_closed'

    def test_scan_with_lone_surrogate_is_rejected(self, directory, started):
        client, _ = started
        self._switch_to(client, 'member')

        response = client.post('/attendance/scan', json={'token': 'abc.\ud800'})

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'invalid_signature'
