"""
Velvest Capture Boundary

Decoding of captured frames into PacketRecords.
"""

from velvest.capture.decoder import decode_frame, read_capture

__all__ = [
    "decode_frame",
    "read_capture",
]
