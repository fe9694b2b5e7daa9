"""SPECMARK — cross-frame aggregation, bit decisions and length search.

Aggregation
-----------
Every valid frame contributes one score and one vote per eligible bin.  The
per-bin statistic is the median score (element n//2 of the sorted column, so
the upper middle element when n is even) and the share of frames that voted
"1" under their own orientation.

Decisions
---------
  band = |avg_high - avg_low| × band_fraction

  header bits   : 1 iff ratio ≥ header_vote_ratio AND score clears the threshold
  other bits    : confident 1   : ≥ confident_band × band past the threshold
                  confident 0   : same margin on the other side
                  ambiguous     : 1 iff ratio ≥ payload_vote_ratio
                                   or score within soft_band × band of the 1-side

All comparisons are mirrored when the global polarity is inverted.  Vote
ratios are already expressed in each frame's own orientation and are used
as-is.

Length search
-------------
The 16-bit header is too fragile to trust, so every length 1..max_bytes is
tried and scored:

  2 × printable_ratio + 0.05 × length + 0.1 / (1 + |length - header_hint|)

Scores are evaluated as exact fractions; the first (shortest) candidate wins
ties.
"""

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from .diagnostics import NoReliableFramesError
from .framing import bits_to_bytes
from .modem.spectral import FrameReport
from .profiles import PILOT_LEN, HEADER_END, DecisionTuning, DEFAULT_TUNING

log = logging.getLogger(__name__)

# bytes.isspace() minus \x0b, matching the usual "ASCII whitespace" set
_ASCII_WHITESPACE = frozenset(b" \t\n\x0c\r")


# ── aggregation ───────────────────────────────────────────────────────────────

@dataclass
class FrameSummary:
    """Per-bin statistics folded from all valid frames."""

    scores:          NDArray[np.float64]   # median score per eligible bin
    votes:           NDArray[np.float64]   # vote ratio per eligible bin, in [0, 1]
    frames_valid:    int
    frames_skipped:  int
    frames_inverted: int

    @property
    def majority_inverted(self) -> bool:
        return self.frames_inverted * 2 >= max(self.frames_valid, 1)


def aggregate_frames(reports: Sequence[FrameReport]) -> FrameSummary:
    """Fold per-frame reports (in frame order) into one :class:`FrameSummary`.

    Raises:
        NoReliableFramesError: no frame passed the pilot check.
    """
    valid = [r for r in reports if r.valid]
    if not valid:
        raise NoReliableFramesError(len(reports), len(reports))

    scores = np.vstack([r.scores for r in valid])
    votes  = np.vstack([r.votes for r in valid])
    n      = len(valid)

    medians = np.sort(scores, axis=0)[n // 2]
    ratios  = votes.sum(axis=0) / n

    return FrameSummary(
        scores=medians,
        votes=ratios,
        frames_valid=n,
        frames_skipped=len(reports) - n,
        frames_inverted=sum(1 for r in valid if r.inverted),
    )


# ── bit decisions ─────────────────────────────────────────────────────────────

def decision_band(avg_high: float, avg_low: float, tuning: DecisionTuning = DEFAULT_TUNING) -> float:
    return abs(avg_high - avg_low) * tuning.band_fraction


def decide_bits(
    scores: NDArray[np.floating],
    votes: NDArray[np.floating],
    threshold: float,
    avg_high: float,
    avg_low: float,
    inverted: bool,
    tuning: DecisionTuning = DEFAULT_TUNING,
) -> NDArray[np.uint8]:
    """Turn aggregated scores and vote ratios into one bit per eligible bin.

    Args:
        scores:    Median score per bin.
        votes:     Vote ratio per bin (frame-oriented share of "1" votes).
        threshold: Global threshold from the aggregated pilot.
        avg_high:  Mean aggregated score of pilot "1" positions.
        avg_low:   Mean aggregated score of pilot "0" positions.
        inverted:  Global polarity.
        tuning:    Ratios and band multipliers.

    Returns:
        uint8 array, same length as *scores*.
    """
    scores = np.asarray(scores, dtype=np.float64)
    ratios = np.asarray(votes, dtype=np.float64)
    band   = decision_band(avg_high, avg_low, tuning)

    confident = tuning.confident_band * band
    soft      = tuning.soft_band * band

    if inverted:
        one_side       = scores <= threshold
        confident_one  = scores <= threshold - confident
        confident_zero = scores >= threshold + confident
        soft_one       = scores <= threshold + soft
    else:
        one_side       = scores >= threshold
        confident_one  = scores >= threshold + confident
        confident_zero = scores <= threshold - confident
        soft_one       = scores >= threshold - soft

    idx       = np.arange(len(scores))
    in_header = (idx >= PILOT_LEN) & (idx < HEADER_END)

    header_bits  = (ratios >= tuning.header_vote_ratio) & one_side
    fallback     = (ratios >= tuning.payload_vote_ratio) | soft_one
    payload_bits = np.where(confident_one, True, np.where(confident_zero, False, fallback))

    return np.where(in_header, header_bits, payload_bits).astype(np.uint8)


# ── length search ─────────────────────────────────────────────────────────────

def is_printable(byte: int) -> bool:
    """ASCII graphic (0x21–0x7E) or ASCII whitespace."""
    return 0x21 <= byte <= 0x7E or byte in _ASCII_WHITESPACE


def printable_ratio(raw: bytes) -> Fraction:
    if not raw:
        return Fraction(0)
    return Fraction(sum(1 for b in raw if is_printable(b)), len(raw))


def length_score(
    raw: bytes,
    header_hint: int,
    tuning: DecisionTuning = DEFAULT_TUNING,
) -> Fraction:
    """Score one candidate payload; higher is more plausible."""
    n = len(raw)
    return (
        Fraction(str(tuning.printable_weight)) * printable_ratio(raw)
        + Fraction(str(tuning.length_weight)) * n
        + Fraction(str(tuning.proximity_weight)) / (1 + abs(n - header_hint))
    )


def choose_length(
    payload_bits: NDArray[np.uint8],
    header_hint: int,
    tuning: DecisionTuning = DEFAULT_TUNING,
) -> bytes:
    """Pick the most plausible payload among every whole-byte length.

    Returns b"" when no whole byte is available.
    """
    max_bytes = len(payload_bits) // 8
    packed    = bits_to_bytes(payload_bits[:max_bytes * 8])

    best_raw   = b""
    best_score = None
    for n in range(1, max_bytes + 1):
        candidate = packed[:n]
        score     = length_score(candidate, header_hint, tuning)
        if best_score is None or score > best_score:
            best_raw, best_score = candidate, score

    log.debug(
        "length search: hint=%d chosen=%d of %d (score=%s)",
        header_hint, len(best_raw), max_bytes,
        f"{float(best_score):.3f}" if best_score is not None else "-",
    )
    return best_raw
