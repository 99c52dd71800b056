#!/usr/bin/env python3
"""
declick.py

Click/pop repair for a single channel of audio:
- Peak-normalize the buffer to a target level.
- Detect impulsive outliers ("clicks") with an adaptive threshold (mean |x| times a
  multiplier, floored at an absolute minimum) plus local-shape tests: the sample must
  be a local peak, jump away from its predecessor, and dominate its two neighbours.
  Transients (drum hits, plucks) change smoothly sample to sample and do not pass.
- Repair each run of flagged samples by linear interpolation between the clean
  samples on either side.
- Validate the result (peak, clipped samples, NaNs).

The core is pure: every stage returns a fresh float32 array and never touches its input.
Run as a script to repair a file:

    python declick.py input.wav output.wav --write-diff removed.wav
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np


# -----------------------------
# Parameters / results
# -----------------------------
@dataclass(frozen=True)
class Params:
    # Peak level after normalization (linear, usually 0..1)
    target_peak: float = 0.95

    # Adaptive threshold: mean |x| * multiplier, never below impulse_abs_min
    impulse_threshold_multiplier: float = 6.0
    impulse_abs_min: float = 0.25

    # Minimum jump from the previous sample for a click
    diff_threshold: float = 0.2


# A click must exceed the mean of its two neighbours' magnitudes by this factor
LOCAL_DOMINANCE = 2.5

# Full scale; anything above counts as clipped
CLIP_LEVEL = 1.0


@dataclass(frozen=True)
class ValidationResult:
    peak: float
    clipped_samples: int
    has_nan: bool


@dataclass(frozen=True)
class PipelineOutput:
    normalized: np.ndarray
    detected_impulses: List[int]
    repaired: np.ndarray
    validation: ValidationResult


def _as_mono(x) -> np.ndarray:
    x = np.asarray(x, dtype=np.float32)
    if x.ndim != 1:
        raise ValueError("buffer must be 1D (single channel)")
    return x


def _finite_peak(a: np.ndarray) -> float:
    """max |x| ignoring NaNs; 0.0 for an empty (or all-NaN) buffer."""
    return float(np.max(a, initial=0.0, where=~np.isnan(a)))


# -----------------------------
# Stages
# -----------------------------
def normalize(x: np.ndarray, target_peak: float) -> np.ndarray:
    x = _as_mono(x)
    peak = _finite_peak(np.abs(x))
    if peak <= 0.0:
        return x.copy()
    scale = np.float32(target_peak / peak)
    return x * scale


def detect_impulses(x: np.ndarray, p: Params) -> List[int]:
    """
    Return the ascending indices of samples that look like clicks.

    Index 0 and len-1 are never flagged since they lack a neighbour on one side.
    """
    x = _as_mono(x)
    if x.size < 3:
        return []

    a = np.abs(x)
    mean_abs = float(np.mean(a))
    # fmax: a NaN mean leaves the absolute floor in charge
    threshold = float(np.fmax(mean_abs * float(p.impulse_threshold_multiplier), float(p.impulse_abs_min)))

    cur = a[1:-1]
    prev = a[:-2]
    nxt = a[2:]
    diff = np.abs(x[1:-1] - x[:-2])
    local_mean = (prev + nxt) * np.float32(0.5)

    mask = (
        (cur >= threshold)
        & (cur >= p.impulse_abs_min)
        & (diff >= p.diff_threshold)
        & (cur >= local_mean * np.float32(LOCAL_DOMINANCE))
        & (cur >= prev)
        & (cur >= nxt)
    )
    return [int(i) + 1 for i in np.flatnonzero(mask)]


def _runs(indices: Sequence[int]) -> List[Tuple[int, int]]:
    """Split sorted unique indices into maximal (lo, hi) runs of consecutive integers."""
    runs: List[Tuple[int, int]] = []
    for i in indices:
        if runs and i == runs[-1][1] + 1:
            runs[-1] = (runs[-1][0], i)
        else:
            runs.append((i, i))
    return runs


def repair_impulses(x: np.ndarray, impulses: Sequence[int]) -> np.ndarray:
    x = _as_mono(x)
    y = x.copy()
    if len(impulses) == 0:
        return y

    idx = np.unique(np.asarray(impulses, dtype=np.int64))
    n = x.size
    if idx[0] < 0 or idx[-1] >= n:
        raise ValueError(f"impulse index out of range for buffer of length {n}")

    for lo, hi in _runs(idx.tolist()):
        left = max(lo - 1, 0)
        right = min(hi + 1, n - 1)
        span = right - left
        # Run covers the whole buffer: no clean anchor pair, leave it alone
        if span == 0:
            continue
        t = np.arange(1, span, dtype=np.float32) / np.float32(span)
        lv = x[left]
        rv = x[right]
        y[left + 1:right] = lv + (rv - lv) * t
    return y


def validate(x: np.ndarray) -> ValidationResult:
    x = _as_mono(x)
    a = np.abs(x)
    nan = np.isnan(x)
    return ValidationResult(
        peak=_finite_peak(a),
        clipped_samples=int(np.count_nonzero(a > CLIP_LEVEL)),
        has_nan=bool(np.any(nan)),
    )


def run_pipeline(x: np.ndarray, p: Params) -> PipelineOutput:
    """normalize -> detect -> repair -> validate (on the repaired buffer)."""
    normalized = normalize(x, p.target_peak)
    detected = detect_impulses(normalized, p)
    repaired = repair_impulses(normalized, detected)
    return PipelineOutput(
        normalized=normalized,
        detected_impulses=detected,
        repaired=repaired,
        validation=validate(repaired),
    )


# -----------------------------
# CLI
# -----------------------------
def add_params_args(ap: argparse.ArgumentParser) -> None:
    d = Params()
    ap.add_argument("--target-peak", type=float, default=d.target_peak)
    ap.add_argument("--impulse-threshold-multiplier", type=float, default=d.impulse_threshold_multiplier)
    ap.add_argument("--impulse-abs-min", type=float, default=d.impulse_abs_min)
    ap.add_argument("--diff-threshold", type=float, default=d.diff_threshold)


def params_from_args(args: argparse.Namespace) -> Params:
    return Params(
        target_peak=float(args.target_peak),
        impulse_threshold_multiplier=float(args.impulse_threshold_multiplier),
        impulse_abs_min=float(args.impulse_abs_min),
        diff_threshold=float(args.diff_threshold),
    )


def main(argv=None) -> int:
    import soundfile as sf

    from declick_api import process_audio

    ap = argparse.ArgumentParser(description="Detect and repair clicks/pops by interpolating over impulsive outliers.")
    ap.add_argument("input")
    ap.add_argument("output")
    add_params_args(ap)
    ap.add_argument("--subtype", default="PCM_24", help="soundfile subtype for written audio")
    ap.add_argument("--write-diff", type=str, default=None, help="Write removed material (normalized - repaired)")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args(argv)

    x, sr = sf.read(args.input, always_2d=True)
    x = x.astype(np.float32, copy=False)

    p = params_from_args(args)
    y, info = process_audio(x, sr, params=p, keep_normalized=bool(args.write_diff))
    y2 = y[:, None] if y.ndim == 1 else y

    sf.write(args.output, y2, sr, subtype=args.subtype)
    print(f"Wrote: {args.output}")

    if args.write_diff:
        norm = info.pop("normalized")
        norm2 = norm[:, None] if norm.ndim == 1 else norm
        sf.write(args.write_diff, (norm2 - y2).astype(np.float32), sr, subtype=args.subtype)
        print(f"Wrote: {args.write_diff}")

    for ch in info["per_channel"]:
        v = ch["validation"]
        if v["has_nan"]:
            print(f"Warning: channel {ch['channel']} contains NaN samples")
        if v["clipped_samples"]:
            print(f"Warning: channel {ch['channel']} has {v['clipped_samples']} clipped samples")

    if args.debug:
        print("=== Debug summary ===")
        print(json.dumps(info, indent=2))
    else:
        total = sum(ch["detected"] for ch in info["per_channel"])
        print(f"Repaired {total} click(s) across {info['channels']} channel(s)")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
