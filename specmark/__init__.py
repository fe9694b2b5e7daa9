"""SPECMARK — blind spectral audio watermark.

Public API:
    encode_audio(samples, sample_rate, message, frame_duration_ms=32, strength_percent=15) -> np.ndarray
    decode_audio(samples, sample_rate, *, frame_duration_ms=32)                         -> DecodedWatermark
"""

from .api import (
    encode_audio, decode_audio,
    encode_with_trace, decode_with_trace,
    effective_strength,
)
from .diagnostics import (
    DecodedWatermark, DecodeTrace, EncodeTrace,
    FailureCode, WatermarkError, NoReliableFramesError,
)
from .profiles import DecisionTuning

__version__ = "1.0.0"
__all__ = [
    "encode_audio", "decode_audio",
    "encode_with_trace", "decode_with_trace",
    "effective_strength",
    "DecodedWatermark", "DecodeTrace", "EncodeTrace",
    "FailureCode", "WatermarkError", "NoReliableFramesError",
    "DecisionTuning",
]
