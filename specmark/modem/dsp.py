"""SPECMARK — DSP helpers: neighbour-relative scores and pilot calibration.

Score model
-----------
Raw bin magnitudes depend on the recording and on frequency, so the decoder
never compares them directly.  Each eligible bin is scored against its own
neighbourhood instead:

  L[k]     = ln(max(|X[k]|, LOG_EPSILON))
  base[k]  = mean(L[j]  for j in k-R .. k+R, j ≠ k, 0 ≤ j < n)
  score[k] = L[k] - base[k]

A boosted bin (×(1+s)) scores above its neighbours, a reduced bin (×(1-s))
below.  Near either edge the window is simply truncated.

Pilot calibration
-----------------
The first PILOT_LEN scores carry the known pilot.  The midpoint between the
mean "1" score and the mean "0" score is the decision threshold; comparing
the pilot against it in both orientations tells us whether the channel has
inverted boost and reduce.
"""

from typing import NamedTuple, Optional

import numpy as np
from numpy.typing import NDArray

from ..profiles import PILOT_PATTERN, PILOT_LEN, WINDOW_RADIUS, LOG_EPSILON

_PILOT   = np.array(PILOT_PATTERN, dtype=np.uint8)
_IS_HIGH = _PILOT == 1
_IS_LOW  = ~_IS_HIGH


class PilotFit(NamedTuple):
    """Per-frame pilot calibration result."""

    threshold: float
    matches:   int     # pilot bits matched under the winning orientation
    inverted:  bool
    avg_high:  float
    avg_low:   float


# ── scores ────────────────────────────────────────────────────────────────────

def spectral_scores(
    magnitudes: NDArray[np.floating],
    window_radius: int = WINDOW_RADIUS,
) -> NDArray[np.float64]:
    """Log-magnitude of each bin relative to the mean of its neighbours.

    Args:
        magnitudes:    |X[k]| for the eligible bins of one frame.
        window_radius: Neighbours considered on each side.

    Returns:
        float64 array, same length.  Bins without any neighbour score 0.
    """
    log_mags = np.log(np.maximum(np.asarray(magnitudes, dtype=np.float64), LOG_EPSILON))
    n = len(log_mags)
    if n == 0:
        return log_mags

    prefix = np.concatenate([[0.0], np.cumsum(log_mags)])
    idx    = np.arange(n)
    start  = np.maximum(idx - window_radius, 0)
    end    = np.minimum(idx + window_radius + 1, n)

    neighbours = end - start - 1
    sums       = prefix[end] - prefix[start] - log_mags
    baseline   = sums / np.maximum(neighbours, 1)

    return np.where(neighbours > 0, log_mags - baseline, 0.0)


# ── pilot calibration ─────────────────────────────────────────────────────────

def pilot_stats(scores: NDArray[np.floating]) -> tuple[float, float, float]:
    """Return ``(avg_high, avg_low, threshold)`` from the pilot positions."""
    pilot    = np.asarray(scores[:PILOT_LEN], dtype=np.float64)
    avg_high = float(np.mean(pilot[_IS_HIGH]))
    avg_low  = float(np.mean(pilot[_IS_LOW]))
    return avg_high, avg_low, (avg_high + avg_low) * 0.5


def frame_pilot_stats(scores: NDArray[np.floating]) -> Optional[PilotFit]:
    """Calibrate one frame against the pilot.

    Both orientations are tried: normal (``score ≥ thr`` ⇒ 1) and inverted
    (``score ≤ thr`` ⇒ 1).  Inverted wins only if it matches strictly more
    pilot bits.

    Returns None if the frame has fewer scores than pilot bits.
    """
    if len(scores) < PILOT_LEN:
        return None

    avg_high, avg_low, threshold = pilot_stats(scores)
    pilot = np.asarray(scores[:PILOT_LEN], dtype=np.float64)

    matches_normal   = int(np.count_nonzero((pilot >= threshold) == _IS_HIGH))
    matches_inverted = int(np.count_nonzero((pilot <= threshold) == _IS_HIGH))

    if matches_inverted > matches_normal:
        return PilotFit(threshold, matches_inverted, True, avg_high, avg_low)
    return PilotFit(threshold, matches_normal, False, avg_high, avg_low)


def frame_votes(
    scores: NDArray[np.floating],
    threshold: float,
    inverted: bool,
) -> NDArray[np.bool_]:
    """Per-bin "bit = 1" votes of one frame under its own orientation."""
    if inverted:
        return scores <= threshold
    return scores >= threshold
