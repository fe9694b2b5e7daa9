"""SPECMARK — all compile-time constants, keyed in one place.

Nothing here is computed at runtime except the derived values at the bottom.
Encoder and decoder both import from here, so the bit layout and the bin
window can never drift apart.
"""

from dataclasses import dataclass

# ── Bit protocol ──────────────────────────────────────────────────────────────
# Alternating pilot gives the decoder four "boosted" and four "reduced" bins
# to calibrate its threshold against.
PILOT_PATTERN      = (0, 1, 0, 1, 0, 1, 0, 1)
PILOT_LEN          = len(PILOT_PATTERN)     # 8
LENGTH_HEADER_BITS = 16                     # big-endian byte count, wraps above 65535
HEADER_END         = PILOT_LEN + LENGTH_HEADER_BITS   # first payload bit index = 24
MAX_MESSAGE_LEN    = (1 << LENGTH_HEADER_BITS) - 1

# ── Spectral window ───────────────────────────────────────────────────────────
START_BIN     = 48       # first eligible rfft bin; keeps clear of strong low-frequency content
WINDOW_RADIUS = 3        # neighbours each side used for the local log-magnitude baseline
LOG_EPSILON   = 1e-12    # magnitude floor before log()

# ── Framing ───────────────────────────────────────────────────────────────────
DEFAULT_FRAME_MS = 32

# ── Embedding strength ────────────────────────────────────────────────────────
# strength_percent is floored at 15 so the watermark stays detectable, then
# mapped to a fraction and capped at half amplitude:
#   15 % → 0.50 (boost ×1.5 / reduce ×0.5)
DEFAULT_STRENGTH_PERCENT = 15
MIN_STRENGTH_PERCENT     = 15
STRENGTH_DIVISOR         = 30.0
MAX_STRENGTH             = 0.5

# ── Pilot acceptance ──────────────────────────────────────────────────────────
PILOT_MIN_MATCHES = 5    # of 8 pilot bits, under the better orientation

# ── PCM boundary ──────────────────────────────────────────────────────────────
SAMPLE_DIVISOR = 32768.0   # int16 → float
PCM_SCALE      = 32767.0   # float → int16

# ── Experiment grid (wav_bridge.run_sweep) ────────────────────────────────────
SAMPLE_RATES        = (8000, 16_000, 32_000)
FRAME_DURATIONS_MS  = (20, 32, 64)
WATERMARK_STRENGTHS = (5, 15, 30, 50)


# ── Decision tuning ───────────────────────────────────────────────────────────
# These ratios and band multipliers were tuned empirically against noisy
# speech recordings, not derived.  They are exposed so callers can retune them
# against their own material without patching the decoder.

@dataclass(frozen=True)
class DecisionTuning:
    """Thresholds used by the bit decision engine and the length search."""

    header_vote_ratio:  float = 0.54   # header bit needs this share of frames voting 1
    payload_vote_ratio: float = 0.45   # ambiguous payload bit falls back to this vote share
    band_fraction:      float = 0.1    # hysteresis band = |avg_high - avg_low| × this
    confident_band:     float = 3.0    # "confident" decisions sit this many bands away
    soft_band:          float = 0.75   # soft fallback accepts scores this many bands short

    # Length search: 2·printable_ratio + 0.05·length + 0.1 / (1 + |length - hint|)
    printable_weight:   float = 2.0
    length_weight:      float = 0.05
    proximity_weight:   float = 0.1


DEFAULT_TUNING = DecisionTuning()
