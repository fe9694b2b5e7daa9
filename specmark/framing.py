"""SPECMARK — bit protocol.

Layout of the embedded bit sequence (one bit per eligible frequency bin):

  [0:8]    pilot          = 0 1 0 1 0 1 0 1   (threshold + polarity calibration)
  [8:24]   length_header  uint16 BE, message byte count (wraps above 65535)
  [24:]    payload        message bytes, MSB first
  ── 24 + 8·N bits total ──

No escaping and no checksum: the decoder treats the header as a hint and
relies on cross-frame redundancy plus the length search in decision.py.
"""

import struct

import numpy as np
from numpy.typing import NDArray

from .profiles import PILOT_PATTERN, PILOT_LEN, HEADER_END

_LENGTH_STRUCT = struct.Struct(">H")    # 16-bit header

PILOT_BITS: NDArray[np.uint8] = np.array(PILOT_PATTERN, dtype=np.uint8)
PILOT_BITS.flags.writeable = False


# ── bit ↔ byte helpers ────────────────────────────────────────────────────────

def bytes_to_bits(data: bytes) -> NDArray[np.uint8]:
    """Unpack bytes to a 1-D bit array (MSB first per byte)."""
    return np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8))


def bits_to_bytes(bits) -> bytes:
    """Pack a 1-D bit array (MSB first per byte) into bytes.

    Trailing bits that don't fill a full byte are discarded.
    """
    bits    = np.asarray(bits, dtype=np.uint8) & 1
    n_bytes = len(bits) // 8
    return np.packbits(bits[:n_bytes * 8]).tobytes()


# ── length header ─────────────────────────────────────────────────────────────

def pack_length_header(n_bytes: int) -> NDArray[np.uint8]:
    """Return the 16 header bits for a message of *n_bytes* bytes.

    Lengths above 65535 wrap silently (only the low 16 bits are kept).
    """
    return bytes_to_bits(_LENGTH_STRUCT.pack(n_bytes & 0xFFFF))


def decode_length_header(bits) -> int:
    """Read up to 16 bits as a big-endian unsigned integer.

    The result is a hint: header bits go through the same noisy channel as
    everything else.
    """
    value = 0
    for bit in bits:
        value = ((value << 1) | (int(bit) & 1)) & 0xFFFF
    return value


# ── full sequence ─────────────────────────────────────────────────────────────

def build_bit_sequence(message: str) -> NDArray[np.uint8]:
    """Serialise *message* to ``pilot | length_header | payload`` bits.

    The returned array is read-only.
    """
    payload = message.encode("utf-8")
    bits = np.concatenate([
        PILOT_BITS,
        pack_length_header(len(payload)),
        bytes_to_bits(payload),
    ]).astype(np.uint8)
    bits.flags.writeable = False
    return bits


def split_bit_sequence(bits):
    """Split decided bits into ``(pilot, length_header, payload)`` views.

    Short inputs yield short (possibly empty) fields; the ranges never overlap.
    """
    return bits[:PILOT_LEN], bits[PILOT_LEN:HEADER_END], bits[HEADER_END:]
