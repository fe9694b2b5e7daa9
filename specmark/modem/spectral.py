"""SPECMARK — frame-wise spectral embedder and analyzer.

Embedding
---------
  per frame (rectangular, zero-padded to fft_len):
    → rfft                                     fft_len//2 + 1 complex bins
    → bin START_BIN + i  ×= (1 + s)        if bit[i] == 1
                         ×= max(0, 1 - s)  if bit[i] == 0
    → irfft, keep the first frame_len samples

The same bit sequence is written into every frame; bits that do not fit the
eligible bins of a frame are dropped for that frame.  Redundancy across frames
is the only error protection.

numpy's irfft already divides by fft_len, so no extra normalisation is
applied on the way back.

Analysis
--------
  per frame:
    → rfft → |X[k]| for eligible bins
    → [constant frame or null pilot bin] skip   (has_signal)
    → neighbour-relative scores                (dsp.spectral_scores)
    → pilot calibration, accept / reject       (dsp.frame_pilot_stats)
    → per-bin votes under the frame's own orientation
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from ..profiles import START_BIN, WINDOW_RADIUS, PILOT_LEN, PILOT_MIN_MATCHES, LOG_EPSILON
from .dsp import PilotFit, spectral_scores, frame_pilot_stats, frame_votes
from .frames import fft_size, n_rfft_bins, iter_frames, pad_frame


# ── embed ─────────────────────────────────────────────────────────────────────

def bin_scales(bits: NDArray[np.uint8], strength: float) -> NDArray[np.float64]:
    """Per-bit amplitude factor: ``1 + s`` for ones, ``max(0, 1 - s)`` for zeros."""
    bits = np.asarray(bits, dtype=np.uint8)
    return np.where(bits == 1, 1.0 + strength, max(0.0, 1.0 - strength))


def embed_frames(
    samples: NDArray[np.floating],
    bits: NDArray[np.uint8],
    frame_len: int,
    strength: float,
    start_bin: int = START_BIN,
) -> NDArray[np.float64]:
    """Embed *bits* into every frame of *samples*.

    Args:
        samples:   1-D float audio in [-1, 1].
        bits:      Full bit sequence (pilot | header | payload).
        frame_len: Samples per frame.
        strength:  Fractional scaling, already clamped by the caller.
        start_bin: First eligible rfft bin.

    Returns:
        float64 array with exactly ``len(samples)`` samples.  If the transform
        has no eligible bin at all the input is returned as a copy.
    """
    samples = np.asarray(samples, dtype=np.float64)
    fft_len = fft_size(frame_len)
    n_bins  = n_rfft_bins(fft_len)

    if start_bin >= n_bins:
        return samples.copy()

    n_embed = min(len(bits), n_bins - start_bin)
    scales  = bin_scales(bits[:n_embed], strength)
    lo, hi  = start_bin, start_bin + n_embed

    output = np.empty_like(samples)
    for i, frame in enumerate(iter_frames(samples, frame_len)):
        spectrum = np.fft.rfft(pad_frame(frame, fft_len))
        spectrum[lo:hi] *= scales
        time = np.fft.irfft(spectrum, n=fft_len)

        offset = i * frame_len
        output[offset : offset + len(frame)] = time[:len(frame)]

    return output


# ── analyze ───────────────────────────────────────────────────────────────────

@dataclass
class FrameReport:
    """Outcome of analysing one frame.  Skipped frames carry no scores."""

    index:  int
    valid:  bool
    scores: Optional[NDArray[np.float64]] = None
    votes:  Optional[NDArray[np.bool_]]   = None
    fit:    Optional[PilotFit]            = None

    @property
    def inverted(self) -> bool:
        return bool(self.fit is not None and self.fit.inverted)


def has_signal(frame: NDArray[np.floating], magnitudes: NDArray[np.floating]) -> bool:
    """False for frames with nothing to calibrate against.

    A constant frame (silence or DC) only shows the rectangular step left by
    zero padding, and an exact null on a pilot bin leaves nothing to score.
    """
    if len(frame) == 0 or np.ptp(frame) <= LOG_EPSILON:
        return False
    return bool(np.all(magnitudes[:PILOT_LEN] > LOG_EPSILON))


def analyze_frame(
    frame: NDArray[np.floating],
    index: int,
    fft_len: int,
    start_bin: int = START_BIN,
    window_radius: int = WINDOW_RADIUS,
) -> FrameReport:
    """Score one frame and calibrate it against the pilot."""
    spectrum   = np.fft.rfft(pad_frame(frame, fft_len))
    magnitudes = np.abs(spectrum[start_bin:])

    if len(magnitudes) < PILOT_LEN or not has_signal(frame, magnitudes):
        return FrameReport(index=index, valid=False)

    scores = spectral_scores(magnitudes, window_radius)
    fit    = frame_pilot_stats(scores)
    if fit is None or fit.matches < PILOT_MIN_MATCHES:
        return FrameReport(index=index, valid=False, scores=scores, fit=fit)

    votes = frame_votes(scores, fit.threshold, fit.inverted)
    return FrameReport(index=index, valid=True, scores=scores, votes=votes, fit=fit)


def analyze_frames(
    samples: NDArray[np.floating],
    frame_len: int,
    start_bin: int = START_BIN,
    window_radius: int = WINDOW_RADIUS,
) -> list[FrameReport]:
    """Analyse every frame of *samples* independently, in frame order."""
    samples = np.asarray(samples, dtype=np.float64)
    fft_len = fft_size(frame_len)
    return [
        analyze_frame(frame, i, fft_len, start_bin, window_radius)
        for i, frame in enumerate(iter_frames(samples, frame_len))
    ]
