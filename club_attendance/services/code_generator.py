# services/code_generator.py
"""
Rotating attendance codes and nonces.
Codes are the no-camera fallback for QR scanning: 7 uppercase letters drawn
from an alphabet without I and O so they cannot be confused with 1 and 0.
"""

import re
import secrets

ATTENDANCE_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ'
ATTENDANCE_CODE_LENGTH = 7
NONCE_BYTES = 16

_WHITESPACE = re.compile(r'\s+')


def generate_attendance_code():
    """Return a new 7-letter code; each position is drawn independently."""
    return ''.join(secrets.choice(ATTENDANCE_CODE_ALPHABET) for _ in range(ATTENDANCE_CODE_LENGTH))


def generate_nonce():
    """Return a random nonce as 32 hex characters."""
    return secrets.token_hex(NONCE_BYTES)


def normalize_code(raw_code):
    """Uppercase a submitted code and strip all whitespace from it."""
    if raw_code is None:
        return ''
    return _WHITESPACE.sub('', str(raw_code)).upper()


def is_well_formed_code(code):
    """Check length and alphabet of an already normalized code."""
    return (
        len(code) == ATTENDANCE_CODE_LENGTH
        and all(ch in ATTENDANCE_CODE_ALPHABET for ch in code)
    )


def format_code_for_display(code):
    """Render a code as 'ABC DEFG' for screens. Never used on the wire."""
    if not code:
        return code
    return f"{code[:3]} {code[3:]}"
