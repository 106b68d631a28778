"""
Pix presentment helpers: QR image rendering and synthetic payloads for simulated payments.
"""
import base64
import io
import random
import logging
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

_PAYLOAD_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_PIX_GUI_PREFIX = "00020126580014BR.GOV.BCB.PIX0136"
_MERCHANT_BLOCK = "5204000053039865802BR5925DEBOXE ECLIPSE PAGAMENTO6009SAO PAULO62070503***6304"


def render_qr_data_url(payload: str, box_size: int = 8, border: int = 2) -> str:
    """Render a Pix payload as a PNG QR code and return it as a data URL."""
    if not payload:
        raise ValueError("Cannot render a QR code for an empty payload")

    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = io.BytesIO()
    img.save(buffered, format="PNG")
    qr_b64 = base64.b64encode(buffered.getvalue()).decode("ascii")
    return f"data:image/png;base64,{qr_b64}"


def generate_mock_pix_code(rng: Optional[random.Random] = None) -> str:
    """
    Build a realistic-looking Pix copy-and-paste code.

    Not a valid BR Code: the key and the CRC are random.
    """
    rng = rng or random.Random()
    key = "".join(rng.choice(_PAYLOAD_CHARS) for _ in range(32))
    checksum = "".join(rng.choice("0123456789") for _ in range(4))
    return f"{_PIX_GUI_PREFIX}{key}{_MERCHANT_BLOCK}{checksum}"
