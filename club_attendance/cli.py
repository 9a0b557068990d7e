# cli.py
"""
Flask CLI commands for the club attendance service.
Includes the rotation timer that refreshes nonce/code pairs of running sessions.
"""

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from club_attendance.extensions import db


@click.command("init-db")
@with_appcontext
def init_db():
    """Create all database tables."""
    db.create_all()
    click.echo("Database tables created.")


@click.command("create-user")
@click.argument("username")
@click.argument("email")
@click.option("--role", type=click.Choice(['admin', 'owner', 'member']), default='member', show_default=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user(username, email, role, password):
    """Create a user account."""
    from club_attendance.models import User

    if User.query.filter((User.username == username) | (User.email == email)).first():
        click.echo(f"Error: user {username} or email {email} already exists", err=True)
        return

    user = User(username=username, email=email, role=role)
    user.set_password(password)

    try:
        user.save()
    except Exception as e:
        db.session.rollback()
        click.echo(f"Error creating user: {str(e)}", err=True)
        raise

    click.echo(f"Created {role} {username} (id={user.id})")


@click.command("rotate-attendance-sessions")
@click.option("--watch", is_flag=True, help="Keep rotating until interrupted")
@click.option("--interval", type=int, default=None, help="Seconds between rotations when watching")
@with_appcontext
def rotate_attendance_sessions(watch, interval):
    """
    Rotate the nonce and code of every running attendance session.

    Example usage:
        flask rotate-attendance-sessions                 # Rotate once
        flask rotate-attendance-sessions --watch         # Rotate every ATTENDANCE_ROTATION_INTERVAL seconds
    """
    from club_attendance.services.attendance_session_service import AttendanceSessionService

    interval = interval or current_app.config.get('ATTENDANCE_ROTATION_INTERVAL', 25)

    while True:
        closed = AttendanceSessionService.close_expired_sessions()
        rotated = AttendanceSessionService.rotate_active_sessions()
        click.echo(f"Rotated {rotated} session(s), closed {closed} expired session(s)")

        if not watch:
            break

        # Release the connection between ticks
        db.session.remove()
        time.sleep(interval)


@click.command("close-expired-attendance-sessions")
@with_appcontext
def close_expired_attendance_sessions():
    """Close active sessions whose window has passed."""
    from club_attendance.services.attendance_session_service import AttendanceSessionService

    closed = AttendanceSessionService.close_expired_sessions()
    click.echo(f"Closed {closed} expired attendance session(s)")


def register_cli_commands(app):
    """Register all CLI commands with the Flask app."""
    app.cli.add_command(init_db)
    app.cli.add_command(create_user)
    app.cli.add_command(rotate_attendance_sessions)
    app.cli.add_command(close_expired_attendance_sessions)
