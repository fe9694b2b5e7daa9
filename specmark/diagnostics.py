"""SPECMARK — result types, failure codes and diagnostics records."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class FailureCode(str, Enum):
    """Why an encode or decode call fell back or gave up."""

    OK                    = "ok"
    INFEASIBLE_FRAME      = "infeasible_frame"       # encoder: frame cannot hold the pilot
    INSUFFICIENT_SPECTRUM = "insufficient_spectrum"  # decoder: fewer bins than pilot + header
    EMPTY_PAYLOAD         = "empty_payload"          # decoder: no whole payload byte
    NO_RELIABLE_FRAMES    = "no_reliable_frames"     # decoder: no frame passed the pilot check


class WatermarkError(Exception):
    """Base class for codec failures."""

    code = FailureCode.OK


class NoReliableFramesError(WatermarkError):
    """No frame matched the pilot pattern: the input carries no detectable watermark."""

    code = FailureCode.NO_RELIABLE_FRAMES

    def __init__(self, frames_total: int = 0, frames_skipped: int = 0):
        self.frames_total   = frames_total
        self.frames_skipped = frames_skipped
        super().__init__(
            f"unable to decode watermark: no reliable frames detected "
            f"({frames_skipped}/{frames_total} frames skipped)"
        )


@dataclass(frozen=True)
class DecodedWatermark:
    """Final decode output.  ``message`` is the lossy UTF-8 view of ``raw_bytes``."""

    message:   str   = ""
    raw_bytes: bytes = b""

    @classmethod
    def from_bytes(cls, raw: bytes) -> "DecodedWatermark":
        raw = bytes(raw)
        return cls(message=raw.decode("utf-8", errors="replace"), raw_bytes=raw)

    def to_dict(self) -> dict:
        return {"message": self.message, "raw_bytes": list(self.raw_bytes)}


def _empty() -> np.ndarray:
    return np.zeros(0, dtype=np.float64)


@dataclass
class EncodeTrace:
    """Side record of one encode call, for reporting layers."""

    bit_sequence:      np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    original_frame:    np.ndarray = field(default_factory=_empty)
    watermarked_frame: np.ndarray = field(default_factory=_empty)
    frame_len:         int        = 0
    fft_len:           int        = 0
    strength:          float      = 0.0
    bits_embedded:     int        = 0     # per frame; < len(bit_sequence) when bins run out
    failure:           FailureCode = FailureCode.OK

    def summary(self) -> str:
        if self.failure is not FailureCode.OK:
            return f"[SKIP:{self.failure.value}]  frame={self.frame_len} bits={len(self.bit_sequence)}"
        return (
            f"[OK] {self.bits_embedded}/{len(self.bit_sequence)} bits per frame  "
            f"frame={self.frame_len} fft={self.fft_len} strength={self.strength:.2f}"
        )


@dataclass
class DecodeTrace:
    """Side record of one decode call.

    Populated alongside the decision algorithm; nothing in the decoder reads it back.
    """

    bit_sequence:    np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    scores:          np.ndarray = field(default_factory=_empty)
    votes:           np.ndarray = field(default_factory=_empty)
    threshold:       float = 0.0
    avg_high:        float = 0.0
    avg_low:         float = 0.0
    inverted:        bool  = False
    first_frame:     np.ndarray = field(default_factory=_empty)

    frames_valid:    int = 0
    frames_skipped:  int = 0
    frames_inverted: int = 0
    header_hint:     Optional[int] = None
    chosen_length:   int = 0
    failure:         FailureCode = FailureCode.OK

    def summary(self) -> str:
        frames = (
            f"frames={self.frames_valid} valid / {self.frames_skipped} skipped"
            f" / {self.frames_inverted} inverted"
        )
        if self.failure is not FailureCode.OK:
            return f"[FAIL:{self.failure.value}]  {frames}"
        polarity = "inverted" if self.inverted else "normal"
        return (
            f"[OK] {self.chosen_length}B chosen (header hint={self.header_hint})  "
            f"{frames}  thr={self.threshold:.3f} polarity={polarity}"
        )

    def __repr__(self) -> str:
        return f"DecodeTrace({self.summary()})"
