#!/usr/bin/env python3
"""
specmark_cli.py — SPECMARK command-line entry point.

Commands:
  encode  <wav> <message>   Embed a message into a WAV file
  decode  <wav>             Blindly recover the message from a WAV file
  sweep   <wav> <message>   Encode over the sample-rate × frame × strength grid

Run `python3 specmark_cli.py --help` for full usage.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from specmark import NoReliableFramesError, decode_with_trace
from specmark.profiles import DEFAULT_FRAME_MS, DEFAULT_STRENGTH_PERCENT
from wav_bridge import encode_file, load_wav, run_sweep

EXIT_NO_WATERMARK = 2


# ─────────────────────────────────────────────────────────────────────────────
# Sub-command handlers
# ─────────────────────────────────────────────────────────────────────────────

def cmd_encode(args: argparse.Namespace):
    out_path = args.output or Path(args.audio).with_name(
        Path(args.audio).stem + '_watermarked.wav'
    ).as_posix()

    print(f'→ Encoding {len(args.message.encode("utf-8"))} bytes  '
          f'frame={args.frame_ms}ms strength={args.strength}%', file=sys.stderr)

    path = encode_file(args.audio, out_path, args.message,
                       frame_ms=args.frame_ms, strength=args.strength)
    size_kb = os.path.getsize(path) / 1024
    print(f'✓ Saved: {path}  ({size_kb:.1f} KB)')


def cmd_decode(args: argparse.Namespace):
    samples, rate = load_wav(args.audio)
    print(f'→ Decoding {len(samples)} samples at {rate} Hz', file=sys.stderr)

    try:
        decoded, trace = decode_with_trace(samples, rate, frame_duration_ms=args.frame_ms)
    except NoReliableFramesError as e:
        print(f'✗ No watermark detected: {e}', file=sys.stderr)
        sys.exit(EXIT_NO_WATERMARK)

    if args.verbose:
        print(f'  {trace.summary()}', file=sys.stderr)

    if args.json:
        print(json.dumps(decoded.to_dict()))
    else:
        print(f'✓ Decoded message: {decoded.message!r}  (bytes: {list(decoded.raw_bytes)})')


def cmd_sweep(args: argparse.Namespace):
    def _skip(rate, frame_ms):
        print(f'⚠  Skipping {rate} Hz / {frame_ms} ms: frame length too small',
              file=sys.stderr)

    written = run_sweep(args.audio, args.message, args.output_dir, on_skip=_skip)
    for path in written:
        print(f'✓ Wrote {path}')
    print(f'✓ {len(written)} files in {args.output_dir}', file=sys.stderr)


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='specmark',
        description='Hide short text in audio by scaling spectral bins, and recover it blindly.',
    )
    sub = p.add_subparsers(dest='command', required=True)

    # ── encode ────────────────────────────────────────────────────────────────
    enc = sub.add_parser('encode', help='Embed a message into a WAV file.')
    enc.add_argument('audio', help='Input 16-bit PCM WAV')
    enc.add_argument('message', help='Text to hide')
    enc.add_argument('--output', '-o', default=None,
                     help='Output WAV path (default: <input>_watermarked.wav)')
    enc.add_argument('--frame-ms', type=float, default=DEFAULT_FRAME_MS,
                     metavar='MS', help=f'Frame duration (default: {DEFAULT_FRAME_MS})')
    enc.add_argument('--strength', type=float, default=DEFAULT_STRENGTH_PERCENT,
                     metavar='PCT',
                     help=f'Watermark strength %%, floored at 15 (default: {DEFAULT_STRENGTH_PERCENT})')
    enc.set_defaults(func=cmd_encode)

    # ── decode ────────────────────────────────────────────────────────────────
    dec = sub.add_parser('decode', help='Recover the message from a WAV file.')
    dec.add_argument('audio', help='Watermarked WAV')
    dec.add_argument('--frame-ms', type=float, default=DEFAULT_FRAME_MS,
                     metavar='MS', help='Frame duration used at encode time '
                                        f'(default: {DEFAULT_FRAME_MS})')
    dec.add_argument('--json', action='store_true',
                     help='Print {"message", "raw_bytes"} as JSON')
    dec.add_argument('--verbose', '-v', action='store_true',
                     help='Print frame counts, threshold and polarity')
    dec.set_defaults(func=cmd_decode)

    # ── sweep ─────────────────────────────────────────────────────────────────
    swp = sub.add_parser('sweep', help='Encode across the experiment grid.')
    swp.add_argument('audio', help='Clean input WAV')
    swp.add_argument('message', help='Text to hide')
    swp.add_argument('--output-dir', '-d', default='output_data',
                     metavar='DIR', help='Output directory (default: output_data)')
    swp.set_defaults(func=cmd_sweep)

    return p


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = build_parser()
    args   = parser.parse_args(argv)

    if os.environ.get('SPECMARK_DEBUG'):
        logging.basicConfig(level=logging.DEBUG, format='%(name)s: %(message)s')

    try:
        args.func(args)
    except KeyboardInterrupt:
        print('\n⚠ Interrupted.', file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f'✗ Error: {e}', file=sys.stderr)
        if os.environ.get('SPECMARK_DEBUG'):
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
