#!/usr/bin/env python3
"""
test_specmark.py — SPECMARK end-to-end test suite.

Tests:
  1. Short ASCII round-trip ("hello")
  2. Capacity-filling round-trips (8 kHz and 16 kHz)
  3. Multi-tone host with hard noise
  4. Inverted polarity
  5. Encoder edge cases (infeasible frame, strength floor, lengths)
  6. Decoder edge cases (silence, constant input, narrow spectrum, no payload byte)
  7. WAV boundary + experiment sweep
  8. CLI

Most cases run on a flat comb: one tone on every bin centre of the frame
(Nyquist included), equal amplitude, random fixed phases, plus a little white
noise.  Every frame then has the same flat spectrum.  Section 3 uses a few
strong low tones plus a deterministic sawtooth-like noise instead.
"""
from __future__ import annotations

import json
import sys

import numpy as np
import pytest
import scipy.io.wavfile as wavfile

from specmark import (
    encode_audio, decode_audio, encode_with_trace, decode_with_trace,
    effective_strength, DecodedWatermark, FailureCode, NoReliableFramesError,
)
from specmark.framing import build_bit_sequence
from specmark.modem.spectral import embed_frames, bin_scales, analyze_frame, analyze_frames
from specmark.profiles import PILOT_PATTERN, START_BIN
from wav_bridge import (
    quantize_to_i16, load_wav, save_wav, resample,
    encode_file, decode_file, run_sweep, experiment_output_path,
)
import specmark_cli


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def make_host(frame_len=256, n_frames=64, rms=0.1, noise=0.001, seed=7):
    """Flat-comb host whose length is a whole number of frames."""
    rng    = np.random.default_rng(seed)
    n      = frame_len * n_frames
    t      = np.arange(n)
    ks     = np.arange(1, frame_len // 2)
    amp    = rms * np.sqrt(2.0 / len(ks))
    phases = rng.uniform(0.0, 2 * np.pi, len(ks))

    host = np.zeros(n)
    for k, phase in zip(ks, phases):
        host += amp * np.cos(2 * np.pi * k * t / frame_len + phase)
    host += 0.5 * amp * np.cos(np.pi * t)      # Nyquist, same bin magnitude
    return host + rng.normal(0.0, noise, n)


def make_tone_host(duration_s=2.0, sample_rate=8000):
    """200/440/880/1320 Hz tones plus a deterministic ±0.1 pseudo-noise."""
    i = np.arange(int(duration_s * sample_rate), dtype=np.int64)
    t = i / sample_rate
    signal = (0.15 * np.sin(2 * np.pi * 200 * t)
              + 0.15 * np.sin(2 * np.pi * 440 * t)
              + 0.10 * np.sin(2 * np.pi * 880 * t)
              + 0.08 * np.sin(2 * np.pi * 1320 * t))
    noise = ((i * 12345 + i * i) % 10000) / 10000.0 * 0.2 - 0.1
    return signal + noise


@pytest.fixture(scope='module')
def host():
    return make_host()          # 8 kHz, 32 ms → 256-sample frames


# ─────────────────────────────────────────────────────────────────────────────
# 1. Short ASCII round-trip
# ─────────────────────────────────────────────────────────────────────────────

def test_hello_round_trip(host):
    encoded = encode_audio(host, 8000, 'hello', 32, 15)
    decoded = decode_audio(encoded, 8000)
    assert decoded.message == 'hello'
    assert decoded.raw_bytes == b'hello'


def test_hello_trace(host):
    encoded, enc_trace = encode_with_trace(host, 8000, 'hello')
    assert enc_trace.failure is FailureCode.OK
    assert enc_trace.frame_len == 256
    assert enc_trace.fft_len == 256
    assert enc_trace.bits_embedded == 64
    assert enc_trace.strength == pytest.approx(0.5)
    assert len(enc_trace.watermarked_frame) == 256

    decoded, trace = decode_with_trace(encoded, 8000)
    assert decoded.message == 'hello'
    assert trace.failure is FailureCode.OK
    assert trace.frames_valid == 64
    assert trace.frames_skipped == 0
    assert not trace.inverted
    assert trace.header_hint == 5
    assert trace.chosen_length == 5
    assert tuple(trace.bit_sequence[:8]) == PILOT_PATTERN
    assert trace.avg_high > trace.threshold > trace.avg_low
    assert '[OK]' in trace.summary()


def test_embedding_scales_eligible_bins_only(host):
    encoded = encode_audio(host, 8000, 'hello')
    before  = np.fft.rfft(host[:256])
    after   = np.fft.rfft(encoded[:256])

    bits   = build_bit_sequence('hello')
    lo, hi = START_BIN, START_BIN + len(bits)
    assert np.allclose(after[lo:hi], before[lo:hi] * bin_scales(bits, 0.5), atol=1e-9)
    assert np.allclose(after[:lo], before[:lo], atol=1e-9)
    assert np.allclose(after[hi:], before[hi:], atol=1e-9)


# ─────────────────────────────────────────────────────────────────────────────
# 2. Capacity-filling round-trips
# ─────────────────────────────────────────────────────────────────────────────

def test_message_fills_frame_at_8k(host):
    # 81 eligible bins → 24 protocol bits + 7 whole bytes
    encoded = encode_audio(host, 8000, 'fourier')
    assert decode_audio(encoded, 8000).message == 'fourier'


def test_longer_message_at_16k():
    host    = make_host(frame_len=512, n_frames=32)
    message = 'Spectral marks survive,'          # 23 bytes = 209 eligible bins
    encoded = encode_audio(host, 16_000, message, 32, 15)
    decoded, trace = decode_with_trace(encoded, 16_000)
    assert decoded.message == message
    assert trace.header_hint == len(message)


# ─────────────────────────────────────────────────────────────────────────────
# 3. Multi-tone host with hard noise
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize('message, strength', [
    ('hello', 15),
    ('mister', 15),
    ('fourier', 30),
])
def test_tone_host_round_trip(message, strength):
    audio   = make_tone_host()
    encoded = encode_audio(audio, 8000, message, 32, strength)
    assert len(encoded) == len(audio)
    assert decode_audio(encoded, 8000).message == message


# ─────────────────────────────────────────────────────────────────────────────
# 4. Inverted polarity
# ─────────────────────────────────────────────────────────────────────────────

def test_inverted_polarity_round_trip(host):
    flipped = (1 - build_bit_sequence('hello')).astype(np.uint8)
    encoded = embed_frames(host, flipped, 256, effective_strength(15))

    decoded, trace = decode_with_trace(encoded, 8000)
    assert trace.inverted
    assert trace.frames_inverted == trace.frames_valid
    assert trace.header_hint == 5
    assert decoded.message == 'hello'


# ─────────────────────────────────────────────────────────────────────────────
# 5. Encoder edge cases
# ─────────────────────────────────────────────────────────────────────────────

def test_infeasible_frame_returns_input(host):
    # 1 ms at 8 kHz → 8 samples, not past the first eligible bin
    encoded, trace = encode_with_trace(host, 8000, 'hello', frame_duration_ms=1)
    assert np.array_equal(encoded, host)
    assert encoded is not host
    assert trace.failure is FailureCode.INFEASIBLE_FRAME


def test_strength_floor_and_cap(host):
    for pct in range(0, 15):
        assert effective_strength(pct) == effective_strength(15)
    assert effective_strength(15) == pytest.approx(0.5)
    assert effective_strength(100) == pytest.approx(0.5)

    weak   = encode_audio(host, 8000, 'hi', 32, 0)
    normal = encode_audio(host, 8000, 'hi', 32, 15)
    assert np.array_equal(weak, normal)


def test_output_length_matches_input(host):
    for n in (100, 257, 1000):
        assert len(encode_audio(host[:n], 8000, 'hi')) == n


def test_empty_input():
    assert len(encode_audio(np.zeros(0), 8000, 'hi')) == 0


def test_rejects_multichannel():
    with pytest.raises(ValueError):
        encode_audio(np.zeros((100, 2)), 8000, 'hi')
    with pytest.raises(ValueError):
        decode_audio(np.zeros((100, 2)), 8000)


# ─────────────────────────────────────────────────────────────────────────────
# 6. Decoder edge cases
# ─────────────────────────────────────────────────────────────────────────────

def test_silence_has_no_reliable_frames():
    with pytest.raises(NoReliableFramesError) as exc:
        decode_audio(np.zeros(8000), 8000)
    assert exc.value.code is FailureCode.NO_RELIABLE_FRAMES
    assert exc.value.frames_total == exc.value.frames_skipped > 0


@pytest.mark.parametrize('level', [0.7, -0.3, 1.0])
@pytest.mark.parametrize('n', [8000, 8100, 8192])
def test_constant_input_has_no_reliable_frames(level, n):
    # 8000 and 8100 end on a zero-padded partial frame
    with pytest.raises(NoReliableFramesError):
        decode_audio(np.full(n, level), 8000)


def test_constant_partial_frame_is_skipped():
    reports = analyze_frames(np.full(8000, 0.7), 256)
    assert len(reports) == 32
    assert not any(r.valid for r in reports)


def test_null_pilot_bin_is_skipped():
    spectrum = np.ones(129, dtype=complex)
    spectrum[START_BIN + 2] = 0.0
    frame = np.fft.irfft(spectrum, n=256)
    assert not analyze_frame(frame, 0, 256).valid

    spectrum[START_BIN + 2] = 1.0
    assert analyze_frame(np.fft.irfft(spectrum, n=256), 0, 256).scores is not None


def test_narrow_spectrum_returns_empty():
    # 4 kHz, 32 ms → 128-sample frames → 17 eligible bins: pilot fits, header doesn't
    host    = make_host(frame_len=128, n_frames=64)
    encoded = encode_audio(host, 4000, 'hi')
    decoded, trace = decode_with_trace(encoded, 4000)
    assert decoded == DecodedWatermark()
    assert trace.frames_valid == 64
    assert trace.failure is FailureCode.INSUFFICIENT_SPECTRUM


def test_no_whole_payload_byte(host):
    # 28 eligible bins: pilot + header + 4 payload bits
    encoded = encode_audio(host, 8000, 'hi', start_bin=101)
    decoded, trace = decode_with_trace(encoded, 8000, start_bin=101)
    assert decoded.message == ''
    assert decoded.raw_bytes == b''
    assert trace.failure is FailureCode.EMPTY_PAYLOAD


def test_decoded_watermark_lossy_utf8():
    decoded = DecodedWatermark.from_bytes(b'ok\xff')
    assert decoded.message == 'ok�'
    assert decoded.to_dict() == {'message': 'ok�', 'raw_bytes': [111, 107, 255]}


# ─────────────────────────────────────────────────────────────────────────────
# 7. WAV boundary + experiment sweep
# ─────────────────────────────────────────────────────────────────────────────

def test_quantize_clamps_and_rounds():
    pcm = quantize_to_i16([2.0, -2.0, 0.0, 0.25])
    assert pcm.dtype == np.int16
    assert list(pcm) == [32767, -32767, 0, 8192]


def test_wav_save_load(tmp_path, host):
    path = save_wav(tmp_path / 'nested' / 'host.wav', host, 8000)
    samples, rate = load_wav(path)
    assert rate == 8000
    assert samples.dtype == np.float32
    assert len(samples) == len(host)
    assert np.allclose(samples, host, atol=2.0 / 32768)


def test_wav_load_stereo_is_averaged(tmp_path):
    stereo = np.array([[16384, 0], [-16384, -16384]], dtype=np.int16)
    wavfile.write(str(tmp_path / 'st.wav'), 8000, stereo)
    samples, _ = load_wav(tmp_path / 'st.wav')
    assert np.allclose(samples, [0.25, -0.5])


def test_resample_linear():
    out = resample(np.array([0.0, 1.0, 2.0, 3.0]), 1, 2)
    assert np.allclose(out, [0.0, 0.5, 1.0, 1.5, 2.0, 2.5, 3.0, 3.0])
    assert len(resample(np.zeros(1000), 44_100, 16_000)) == 363
    same = np.arange(5, dtype=np.float32)
    assert np.array_equal(resample(same, 8000, 8000), same)


def test_file_round_trip(tmp_path, host):
    src = save_wav(tmp_path / 'host.wav', host, 8000)
    out = encode_file(src, tmp_path / 'marked.wav', 'hello')
    assert decode_file(out).message == 'hello'


def test_run_sweep(tmp_path, host):
    src     = save_wav(tmp_path / 'clip.wav', host, 8000)
    skipped = []
    written = run_sweep(
        src, 'hello', tmp_path / 'out',
        sample_rates=(8000,), frame_durations_ms=(1, 32), strengths=(15, 30),
        on_skip=lambda rate, ms: skipped.append((rate, ms)),
    )
    assert skipped == [(8000, 1)]
    assert [p.name for p in written] == ['8000_32_15.wav', 'clip_watermarked.wav', '8000_32_30.wav']
    assert all(p.exists() for p in written)
    assert experiment_output_path(tmp_path / 'out', 8000, 32, 30) == written[2]
    assert decode_file(written[2]).message == 'hello'


# ─────────────────────────────────────────────────────────────────────────────
# 8. CLI
# ─────────────────────────────────────────────────────────────────────────────

def test_cli_encode_decode_json(tmp_path, host, capsys):
    src = save_wav(tmp_path / 'host.wav', host, 8000)
    out = tmp_path / 'marked.wav'

    specmark_cli.main(['encode', str(src), 'hello', '-o', str(out)])
    assert out.exists()
    capsys.readouterr()

    specmark_cli.main(['decode', str(out), '--json'])
    result = json.loads(capsys.readouterr().out)
    assert result == {'message': 'hello', 'raw_bytes': list(b'hello')}


def test_cli_decode_silence_exits_2(tmp_path, capsys):
    src = save_wav(tmp_path / 'silence.wav', np.zeros(4000), 8000)
    with pytest.raises(SystemExit) as exc:
        specmark_cli.main(['decode', str(src)])
    assert exc.value.code == specmark_cli.EXIT_NO_WATERMARK
    assert 'No watermark' in capsys.readouterr().err


# ─────────────────────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == '__main__':
    sys.exit(pytest.main([__file__, '-v']))
