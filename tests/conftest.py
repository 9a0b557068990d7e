"""
Pytest configuration and fixtures for the club attendance tests
"""

from datetime import datetime
from types import SimpleNamespace

import pytest

from club_attendance import create_app
from club_attendance.extensions import db
from club_attendance.models import Club, Event, Membership, RoleType, User

PASSWORD = 'correct-horse'

# Fixed clock origin for scenario tests
T0 = datetime(2026, 3, 14, 18, 0, 0)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(username, role=RoleType.MEMBER):
    user = User(username=username, email=f'{username}@uni.example', role=role, student_id=f'S-{username}')
    user.set_password(PASSWORD)
    db.session.add(user)
    return user


def seed_directory():
    """Users, a club with two members, and one event without a start time."""
    owner = _user('owner', RoleType.OWNER)
    other_owner = _user('other_owner', RoleType.OWNER)
    admin = _user('admin', RoleType.ADMIN)
    member = _user('member')
    second_member = _user('second_member')
    outsider = _user('outsider')
    db.session.flush()

    club = Club(name='Robotics Club', owner_id=owner.id)
    other_club = Club(name='Chess Club', owner_id=other_owner.id)
    db.session.add_all([club, other_club])
    db.session.flush()

    db.session.add_all([
        Membership(user_id=member.id, club_id=club.id),
        Membership(user_id=second_member.id, club_id=club.id),
        Membership(user_id=outsider.id, club_id=other_club.id),
    ])

    event = Event(club_id=club.id, title='Weekly Build Night', created_by=owner.id)
    db.session.add(event)
    db.session.commit()

    return SimpleNamespace(
        owner=owner,
        other_owner=other_owner,
        admin=admin,
        member=member,
        second_member=second_member,
        outsider=outsider,
        club=club,
        other_club=other_club,
        event=event
    )


@pytest.fixture
def directory(app):
    return seed_directory()


@pytest.fixture
def login(client):
    def _login(username):
        response = client.post('/auth/login', json={'identifier': username, 'password': PASSWORD})
        assert response.status_code == 200, response.get_json()
        return client

    return _login
