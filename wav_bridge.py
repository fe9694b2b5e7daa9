"""
wav_bridge.py — Thin WAV boundary around the SPECMARK codec.

The codec itself works on float sample arrays only.  This module owns the
file side:

    load_wav(path)                          -> (float32 samples, sample_rate)
    save_wav(path, samples, sample_rate)    clamp → ×32767 → round → int16
    encode_file(in_path, out_path, message, frame_ms=32, strength=15)
    decode_file(path, frame_ms=32)          -> DecodedWatermark
    run_sweep(in_path, message, output_dir) -> list[Path]

run_sweep() writes one file per (sample rate × frame duration × strength)
grid point, named ``{sr}_{frame_ms}_{strength}.wav``.
"""
from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import scipy.io.wavfile as _wavfile

from specmark import encode_audio, decode_audio, DecodedWatermark
from specmark.modem.frames import frame_length_samples, frame_is_feasible
from specmark.profiles import (
    SAMPLE_DIVISOR, PCM_SCALE,
    DEFAULT_FRAME_MS, DEFAULT_STRENGTH_PERCENT,
    SAMPLE_RATES, FRAME_DURATIONS_MS, WATERMARK_STRENGTHS,
)


# ── PCM helpers ───────────────────────────────────────────────────────────────

def quantize_to_i16(samples: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1], scale by 32767 and round to int16."""
    pcm = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return np.round(pcm * PCM_SCALE).astype(np.int16)


def load_wav(path) -> tuple[np.ndarray, int]:
    """Read a PCM WAV file → (float32 mono samples in [-1, 1], sample_rate).

    Stereo input is averaged to mono.
    """
    rate, raw = _wavfile.read(str(path))
    if raw.dtype == np.int16:
        samples = raw.astype(np.float32) / SAMPLE_DIVISOR
    elif raw.dtype == np.int32:
        samples = raw.astype(np.float32) / 2_147_483_648.0
    elif raw.dtype == np.uint8:
        samples = (raw.astype(np.float32) - 128.0) / 128.0
    else:
        samples = raw.astype(np.float32)
    if samples.ndim == 2:
        samples = samples.mean(axis=1)
    return samples, int(rate)


def save_wav(path, samples: np.ndarray, sample_rate: int) -> Path:
    """Write *samples* as 16-bit mono PCM, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _wavfile.write(str(path), int(sample_rate), quantize_to_i16(samples))
    return path


def resample(samples: np.ndarray, original_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampler for experiment sweeps.

    Output length is ``ceil(len × target/original)``; positions past the last
    input sample repeat it.
    """
    samples = np.asarray(samples, dtype=np.float32)
    if len(samples) == 0 or original_rate == target_rate:
        return samples.copy()

    ratio   = target_rate / original_rate
    new_len = int(math.ceil(len(samples) * ratio))
    src_pos = np.arange(new_len, dtype=np.float64) / ratio
    return np.interp(src_pos, np.arange(len(samples)), samples).astype(np.float32)


# ── file-level encode / decode ────────────────────────────────────────────────

def encode_file(
    in_path,
    out_path,
    message: str,
    frame_ms: float = DEFAULT_FRAME_MS,
    strength: float = DEFAULT_STRENGTH_PERCENT,
) -> Path:
    """Watermark *in_path* with *message* and write the result to *out_path*."""
    samples, rate = load_wav(in_path)
    encoded = encode_audio(samples, rate, message, frame_ms, strength)
    return save_wav(out_path, encoded, rate)


def decode_file(path, frame_ms: float = DEFAULT_FRAME_MS) -> DecodedWatermark:
    """Decode the watermark in the WAV at *path*.

    Raises:
        NoReliableFramesError: the file carries no detectable watermark.
    """
    samples, rate = load_wav(path)
    return decode_audio(samples, rate, frame_duration_ms=frame_ms)


# ── experiment sweep ──────────────────────────────────────────────────────────

def experiment_output_path(output_dir, sample_rate: int, frame_ms: int, strength: int) -> Path:
    return Path(output_dir) / f"{sample_rate}_{frame_ms}_{strength}.wav"


def run_sweep(
    in_path,
    message: str,
    output_dir,
    *,
    sample_rates=SAMPLE_RATES,
    frame_durations_ms=FRAME_DURATIONS_MS,
    strengths=WATERMARK_STRENGTHS,
    on_skip=None,
) -> list[Path]:
    """Encode *message* over the whole experiment grid.

    Frame durations that cannot carry the pilot at a given sample rate are
    skipped (``on_skip(sample_rate, frame_ms)`` is called for each).  The
    default configuration (input rate, 32 ms, 15 %) is also written to
    ``<stem>_watermarked.wav``.

    Returns:
        Paths written, in grid order.
    """
    base, base_rate = load_wav(in_path)
    written: list[Path] = []

    for rate in sample_rates:
        samples = resample(base, base_rate, rate)

        for frame_ms in frame_durations_ms:
            if not frame_is_feasible(frame_length_samples(rate, frame_ms)):
                if on_skip is not None:
                    on_skip(rate, frame_ms)
                continue

            for strength in strengths:
                encoded = encode_audio(samples, rate, message, frame_ms, strength)
                written.append(save_wav(
                    experiment_output_path(output_dir, rate, frame_ms, strength),
                    encoded, rate,
                ))

                if (rate == base_rate and frame_ms == DEFAULT_FRAME_MS
                        and strength == DEFAULT_STRENGTH_PERCENT):
                    stem = Path(in_path).stem
                    written.append(save_wav(
                        Path(output_dir) / f"{stem}_watermarked.wav", encoded, rate,
                    ))

    return written
