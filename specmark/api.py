"""SPECMARK — high-level encode / decode API.

encode_audio(samples, sample_rate, message, frame_duration_ms, strength_percent) -> np.ndarray
decode_audio(samples, sample_rate, *, frame_duration_ms)                         -> DecodedWatermark

Full pipeline
=============

Encode
------
  message
    → UTF-8 bytes
    → pilot | uint16 length | payload bits           (framing.build_bit_sequence)
    → frame length from sample rate + duration      (frames.frame_length_samples)
    → [infeasible frame] return the input unchanged
    → per frame: rfft → scale bins → irfft          (spectral.embed_frames)

Decode
------
  float samples
    → per frame: rfft → scores → pilot fit          (spectral.analyze_frames)
    → median scores + vote ratios over valid frames (decision.aggregate_frames)
      [no valid frame] raise NoReliableFramesError
    → [fewer bins than pilot + header] empty result
    → global threshold + polarity from the pilot    (dsp.pilot_stats)
    → tiered bit decisions                          (decision.decide_bits)
    → header hint → length search                   (decision.choose_length)
    → DecodedWatermark
"""

import logging

import numpy as np
from numpy.typing import NDArray

from .decision import aggregate_frames, decide_bits, choose_length
from .diagnostics import (
    DecodedWatermark, DecodeTrace, EncodeTrace, FailureCode,
)
from .framing import build_bit_sequence, decode_length_header, split_bit_sequence
from .modem.dsp import pilot_stats
from .modem.frames import (
    frame_length_samples, fft_size, eligible_bins, frame_is_feasible,
)
from .modem.spectral import embed_frames, analyze_frames
from .profiles import (
    START_BIN, WINDOW_RADIUS, HEADER_END,
    DEFAULT_FRAME_MS, DEFAULT_STRENGTH_PERCENT,
    MIN_STRENGTH_PERCENT, STRENGTH_DIVISOR, MAX_STRENGTH,
    DecisionTuning, DEFAULT_TUNING,
)

log = logging.getLogger(__name__)


def _as_samples(samples) -> NDArray[np.float64]:
    arr = np.asarray(samples, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"samples must be a 1-D array, got shape {arr.shape}")
    return arr


def effective_strength(strength_percent: float) -> float:
    """Fractional embedding strength for a user-facing percentage.

    Values below 15 % are raised to 15 % so the mark stays detectable; the
    result is capped at 0.5 (half amplitude).
    """
    pct = max(strength_percent, MIN_STRENGTH_PERCENT)
    return min(pct / STRENGTH_DIVISOR, MAX_STRENGTH)


# ── encode ────────────────────────────────────────────────────────────────────

def encode_with_trace(
    samples,
    sample_rate: int,
    message: str,
    frame_duration_ms: float = DEFAULT_FRAME_MS,
    strength_percent: float = DEFAULT_STRENGTH_PERCENT,
    *,
    start_bin: int = START_BIN,
) -> tuple[NDArray[np.float64], EncodeTrace]:
    """Like :func:`encode_audio` but also returns an :class:`EncodeTrace`."""
    samples   = _as_samples(samples)
    bits      = build_bit_sequence(message)
    frame_len = frame_length_samples(sample_rate, frame_duration_ms)
    fft_len   = fft_size(frame_len)

    trace = EncodeTrace(bit_sequence=bits, frame_len=frame_len, fft_len=fft_len)

    if not frame_is_feasible(frame_len, start_bin):
        log.debug("frame of %d samples cannot hold the pilot; input returned unchanged", frame_len)
        trace.failure = FailureCode.INFEASIBLE_FRAME
        return samples.copy(), trace

    strength = effective_strength(strength_percent)
    encoded  = embed_frames(samples, bits, frame_len, strength, start_bin)

    trace.strength          = strength
    trace.bits_embedded     = min(len(bits), eligible_bins(fft_len, start_bin))
    trace.original_frame    = samples[:frame_len].copy()
    trace.watermarked_frame = encoded[:frame_len].copy()
    return encoded, trace


def encode_audio(
    samples,
    sample_rate: int,
    message: str,
    frame_duration_ms: float = DEFAULT_FRAME_MS,
    strength_percent: float = DEFAULT_STRENGTH_PERCENT,
    *,
    start_bin: int = START_BIN,
) -> NDArray[np.float64]:
    """Hide *message* in *samples*.

    Args:
        samples:           1-D float audio in [-1, 1].
        sample_rate:       Hz.
        message:           Text to embed (UTF-8, at most 65535 bytes are counted
                           by the header).
        frame_duration_ms: Frame length in milliseconds (default 32).
        strength_percent:  Embedding strength; floored at 15, see
                           :func:`effective_strength`.

    Returns:
        float64 array with the same length as *samples*.  When a frame is too
        short to carry the pilot the samples come back unmodified.
    """
    encoded, _ = encode_with_trace(
        samples, sample_rate, message, frame_duration_ms, strength_percent,
        start_bin=start_bin,
    )
    return encoded


# ── decode ────────────────────────────────────────────────────────────────────

def decode_with_trace(
    samples,
    sample_rate: int,
    *,
    frame_duration_ms: float = DEFAULT_FRAME_MS,
    start_bin: int = START_BIN,
    window_radius: int = WINDOW_RADIUS,
    tuning: DecisionTuning = DEFAULT_TUNING,
) -> tuple[DecodedWatermark, DecodeTrace]:
    """Like :func:`decode_audio` but also returns a :class:`DecodeTrace`."""
    samples   = _as_samples(samples)
    frame_len = frame_length_samples(sample_rate, frame_duration_ms)
    trace     = DecodeTrace(first_frame=samples[:frame_len].copy())

    # ── 1. Per-frame analysis + aggregation ───────────────────────────────────
    reports = analyze_frames(samples, frame_len, start_bin, window_radius)
    summary = aggregate_frames(reports)      # raises NoReliableFramesError

    trace.frames_valid    = summary.frames_valid
    trace.frames_skipped  = summary.frames_skipped
    trace.frames_inverted = summary.frames_inverted
    log.debug(
        "frames: %d valid, %d skipped, %d inverted",
        summary.frames_valid, summary.frames_skipped, summary.frames_inverted,
    )

    if len(summary.scores) < HEADER_END:
        trace.failure = FailureCode.INSUFFICIENT_SPECTRUM
        return DecodedWatermark(), trace

    # ── 2. Global threshold + polarity ────────────────────────────────────────
    avg_high, avg_low, threshold = pilot_stats(summary.scores)
    inverted = summary.majority_inverted or avg_high < avg_low

    # ── 3. Bit decisions ──────────────────────────────────────────────────────
    bits = decide_bits(
        summary.scores, summary.votes, threshold, avg_high, avg_low, inverted, tuning,
    )
    _pilot, len_bits, payload_bits = split_bit_sequence(bits)
    header_hint = decode_length_header(len_bits)
    log.debug("length header bits: %s → %d", "".join(map(str, len_bits)), header_hint)

    trace.bit_sequence = bits
    trace.scores       = summary.scores
    trace.votes        = summary.votes
    trace.threshold    = threshold
    trace.avg_high     = avg_high
    trace.avg_low      = avg_low
    trace.inverted     = inverted
    trace.header_hint  = header_hint

    # ── 4. Length search ──────────────────────────────────────────────────────
    if len(payload_bits) < 8:
        trace.failure = FailureCode.EMPTY_PAYLOAD
        return DecodedWatermark(), trace

    raw = choose_length(payload_bits, header_hint, tuning)
    trace.chosen_length = len(raw)
    return DecodedWatermark.from_bytes(raw), trace


def decode_audio(
    samples,
    sample_rate: int,
    *,
    frame_duration_ms: float = DEFAULT_FRAME_MS,
    start_bin: int = START_BIN,
    window_radius: int = WINDOW_RADIUS,
    tuning: DecisionTuning = DEFAULT_TUNING,
) -> DecodedWatermark:
    """Blindly recover the message hidden by :func:`encode_audio`.

    Args:
        samples:           1-D float audio in [-1, 1].
        sample_rate:       Hz.
        frame_duration_ms: Must match the value used at encode time (default 32).
        tuning:            Decision thresholds, see :class:`DecisionTuning`.

    Returns:
        :class:`DecodedWatermark`.  Empty when the spectrum is too narrow for
        pilot + header or leaves no whole payload byte.

    Raises:
        NoReliableFramesError: no frame matched the pilot pattern.
    """
    decoded, _ = decode_with_trace(
        samples, sample_rate,
        frame_duration_ms=frame_duration_ms,
        start_bin=start_bin,
        window_radius=window_radius,
        tuning=tuning,
    )
    return decoded
