from __future__ import annotations

import io
import sys
from typing import TextIO

import qrcode
from loguru import logger

log = logger.bind(component="qr")

_BANNER = "=== WhatsApp QR Code ==="
_FOOTER = "========================"


def render_qr(data: str, *, out: TextIO | None = None) -> None:
    """
    Print a scannable QR block to stderr.

    The banner lines let log scrapers find the most recent code.
    """

    stream = out or sys.stderr
    buf = io.StringIO()
    try:
        qr = qrcode.QRCode(border=1)
        qr.add_data(data)
        qr.make(fit=True)
        qr.print_ascii(out=buf, invert=True)
    except Exception as e:
        log.warning("could not render QR code ({}), printing raw data", e)
        stream.write(f"QR Code (paste into QR reader): {data}\n")
        stream.flush()
        return

    stream.write(f"\n{_BANNER}\n")
    stream.write("Scan this QR code with your phone:\n")
    stream.write("WhatsApp > Settings > Linked Devices > Link a Device\n\n")
    stream.write(buf.getvalue())
    stream.write(f"{_FOOTER}\n\n")
    stream.flush()
