# services/qr_code_service.py
"""
QR Code rendering for attendance tokens.
The organizer's screen shows the current token as a QR image; images are
rendered in memory on each refresh and never written to disk, since a token
is only valid for a few seconds.
"""

import io
import logging

import qrcode
from flask import current_app

logger = logging.getLogger('qr_code_service')


class QRCodeError:
    """QR Code service error codes."""
    EMPTY_DATA = 'empty_data'
    GENERATION_FAILED = 'generation_failed'


class QRCodeService:
    """Service for rendering attendance tokens as QR images."""

    @staticmethod
    def render_png(data):
        """
        Render a string as a PNG QR code.

        Args:
            data: Text to encode, normally an attendance token

        Returns:
            io.BytesIO: PNG image positioned at the start

        Raises:
            ValueError: if data is empty
        """
        if not data:
            raise ValueError(QRCodeError.EMPTY_DATA)

        # Medium error correction keeps the module count low for fast phone scans
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=current_app.config.get('QR_BOX_SIZE', 10),
            border=current_app.config.get('QR_BORDER', 4),
        )
        qr.add_data(data)
        qr.make(fit=True)

        qr_image = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        qr_image.save(buffer, format='PNG')
        buffer.seek(0)

        logger.debug(f"Rendered QR image ({buffer.getbuffer().nbytes} bytes, version {qr.version})")
        return buffer
