"""SPECMARK — frame segmentation.

Audio is cut into contiguous, non-overlapping frames of a fixed duration
(rectangular window, no overlap).  Each frame is zero-padded up to the next
power of two before the rfft; the last frame may be shorter than the rest.

  frame_len = max(1, round(sample_rate × frame_ms / 1000))
  fft_len   = max(2, next_pow2(frame_len))
  n_bins    = fft_len // 2 + 1          (rfft output length)
  eligible  = bins START_BIN .. n_bins-1
"""

from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from ..profiles import START_BIN, PILOT_LEN


def frame_length_samples(sample_rate: int, frame_ms: float) -> int:
    """Samples per frame for *frame_ms* milliseconds at *sample_rate* Hz."""
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if frame_ms <= 0:
        raise ValueError(f"frame duration must be positive, got {frame_ms} ms")
    return max(1, int(round(sample_rate * frame_ms / 1000.0)))


def fft_size(frame_len: int) -> int:
    """Smallest power of two ≥ *frame_len* (never below 2)."""
    n = 2
    while n < frame_len:
        n <<= 1
    return n


def n_rfft_bins(fft_len: int) -> int:
    return fft_len // 2 + 1


def eligible_bins(fft_len: int, start_bin: int = START_BIN) -> int:
    """Number of rfft bins at index ≥ *start_bin*."""
    return max(0, n_rfft_bins(fft_len) - start_bin)


def frame_is_feasible(frame_len: int, start_bin: int = START_BIN) -> bool:
    """True when a frame of *frame_len* samples can carry the whole pilot."""
    if frame_len <= start_bin:
        return False
    return eligible_bins(fft_size(frame_len), start_bin) >= PILOT_LEN


def iter_frames(samples: NDArray, frame_len: int) -> Iterator[NDArray]:
    """Yield sequential non-overlapping slices of *frame_len* samples.

    The final slice may be shorter.  Slices are views into *samples*.
    """
    for offset in range(0, len(samples), frame_len):
        yield samples[offset : offset + frame_len]


def pad_frame(frame: NDArray, fft_len: int) -> NDArray[np.float64]:
    """Copy *frame* into a zeroed float64 buffer of length *fft_len*."""
    buf = np.zeros(fft_len, dtype=np.float64)
    buf[:len(frame)] = frame
    return buf
