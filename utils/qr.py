"""
QR codes for invitation links, so a new staff member can scan the link off
the manager's screen.
"""

import io, base64
import qrcode


def build_link_qr_png(url: str, box_size: int = 8) -> str:
    """Return the PNG of ``url`` as a QR code, base64 encoded."""
    qr = qrcode.QRCode(box_size=box_size, border=2)
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return base64.b64encode(bio.getvalue()).decode("utf-8")


def as_data_uri(png_b64: str) -> str:
    return "data:image/png;base64," + png_b64
