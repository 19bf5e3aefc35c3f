from io import BytesIO

import qrcode

from .models import Ticket
from .service import qr_token_service


def create_ticket_qr_png(ticket: Ticket) -> bytes:
    """Render the ticket's signed token as a PNG QR code."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(qr_token_service.presentable_token(ticket))
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, "PNG")
    return buffered.getvalue()
