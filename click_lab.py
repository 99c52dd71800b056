#!/usr/bin/env python3
"""
click_lab.py

Evaluation bench for the click repair pipeline on a synthetic corpus with known
click positions and protected transient regions.

Outputs:
- metrics.csv (per-clip recall / precision / transient score / detections)
- metrics.png (bar chart of the three scores against the pass thresholds)
- optional corpus WAVs (input + repaired) for listening
- prints a per-clip table and exits non-zero if any clip misses a threshold

Corpus covers the obvious failure modes: clicks on a sine, clicks around a
decaying burst that must survive untouched, degenerate lengths (0/1/2), silence,
a constant near-zero signal, click groups, and clicks one sample from the edges.
"""

from __future__ import annotations

import argparse
import csv
import os
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import soundfile as sf
import matplotlib.pyplot as plt

from declick import Params, add_params_args, params_from_args, run_pipeline
from click_metrics import click_precision_recall, transient_preservation


@dataclass
class TestClip:
    name: str
    samples: np.ndarray
    impulses: List[int] = field(default_factory=list)
    transients: List[Tuple[int, int]] = field(default_factory=list)

    # keep pytest from collecting this as a test class
    __test__ = False


@dataclass
class ClipScore:
    name: str
    n_samples: int
    recall: float
    precision: float
    transient: float
    detected: List[int]
    expected: List[int]


@dataclass
class Thresholds:
    min_recall: float = 0.8
    min_precision: float = 0.8
    min_transient: float = 0.9


def _sine(n: int = 2048, cycles: float = 8.0, amplitude: float = 0.3) -> np.ndarray:
    phase = (np.arange(n, dtype=np.float32) / np.float32(n)) * np.float32(2.0 * np.pi * cycles)
    return (amplitude * np.sin(phase)).astype(np.float32)


def _burst(n: int = 2048, start: int = 900, length: int = 80, peak: float = 0.7) -> np.ndarray:
    x = np.zeros(n, dtype=np.float32)
    k = np.arange(length, dtype=np.float32)
    x[start:start + length] = (1.0 - k / np.float32(length)) * np.float32(peak)
    return x


def generate_corpus() -> List[TestClip]:
    clips: List[TestClip] = []

    x = _sine()
    impulses = [256, 1024, 1536]
    x[impulses] += np.float32(1.2)
    clips.append(TestClip("sine_with_clicks", x, impulses))

    x = _burst()
    impulses = [200, 1300]
    x[impulses] -= np.float32(1.0)
    clips.append(TestClip("burst_with_clicks", x, impulses, [(900, 980)]))

    clips.append(TestClip("empty_signal", np.zeros(0, dtype=np.float32)))
    # len < 3: no interior sample to test
    clips.append(TestClip("single_sample", np.array([0.5], dtype=np.float32)))
    clips.append(TestClip("two_samples", np.array([0.3, 0.8], dtype=np.float32)))
    clips.append(TestClip("all_zero", np.zeros(512, dtype=np.float32)))
    clips.append(TestClip("near_zero", np.full(512, 0.001, dtype=np.float32)))

    # Only the centre of each 0.3 / 3.0 / 0.3 group is a local peak
    x = np.full(512, 0.15, dtype=np.float32)
    for c in (100, 200):
        x[c - 1] = 0.3
        x[c] = 3.0
        x[c + 1] = 0.3
    clips.append(TestClip("consecutive_impulses", x, [100, 200]))

    # 0 and len-1 are blind spots, so stay one sample inside
    x = np.full(512, 0.15, dtype=np.float32)
    impulses = [1, 3, 508, 510]
    x[impulses] = 3.0
    clips.append(TestClip("impulses_near_edges", x, impulses))

    return clips


def evaluate_clip(clip: TestClip, p: Params, tolerance: int = 1) -> ClipScore:
    out = run_pipeline(clip.samples, p)
    m = click_precision_recall(out.detected_impulses, clip.impulses, tolerance)
    t = transient_preservation(clip.samples, out.repaired, clip.transients)
    return ClipScore(
        name=clip.name,
        n_samples=int(clip.samples.shape[0]),
        recall=float(m.recall),
        precision=float(m.precision),
        transient=float(t),
        detected=list(out.detected_impulses),
        expected=list(clip.impulses),
    )


def evaluate_corpus(corpus: List[TestClip], p: Params, tolerance: int = 1) -> List[ClipScore]:
    return [evaluate_clip(c, p, tolerance) for c in corpus]


def failures(scores: List[ClipScore], th: Thresholds) -> List[str]:
    out = []
    for s in scores:
        if s.recall < th.min_recall:
            out.append(f"{s.name} recall below threshold: {s.recall:.2f}")
        if s.precision < th.min_precision:
            out.append(f"{s.name} precision below threshold: {s.precision:.2f}")
        if s.transient < th.min_transient:
            out.append(f"{s.name} transient preservation below threshold: {s.transient:.2f}")
    return out


def write_csv(path: str, scores: List[ClipScore]) -> None:
    with open(path, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["clip", "n_samples", "recall", "precision", "transient", "detected", "expected"])
        for s in scores:
            w.writerow([
                s.name,
                s.n_samples,
                s.recall,
                s.precision,
                s.transient,
                " ".join(str(i) for i in s.detected),
                " ".join(str(i) for i in s.expected),
            ])


def plot_scores(path: str, scores: List[ClipScore], th: Thresholds) -> None:
    names = [s.name for s in scores]
    pos = np.arange(len(scores))
    w = 0.27

    plt.figure(figsize=(12, 5))
    plt.bar(pos - w, [s.recall for s in scores], width=w, label="recall")
    plt.bar(pos, [s.precision for s in scores], width=w, label="precision")
    plt.bar(pos + w, [s.transient for s in scores], width=w, label="transient")
    plt.axhline(th.min_recall, linewidth=1, linestyle="--")
    plt.axhline(th.min_transient, linewidth=1, linestyle=":")
    plt.xticks(pos, names, rotation=30, ha="right")
    plt.ylim(0.0, 1.05)
    plt.ylabel("Score")
    plt.title("Click repair scores per clip")
    plt.legend(loc="lower right")
    plt.tight_layout()
    plt.savefig(path, dpi=160)
    plt.close()


def write_corpus_wavs(outdir: str, corpus: List[TestClip], p: Params, sr: int = 44100) -> List[str]:
    """Write <clip>_in.wav / <clip>_out.wav for listening. Empty clips are skipped."""
    os.makedirs(outdir, exist_ok=True)
    written = []
    for clip in corpus:
        if clip.samples.size == 0:
            continue
        out = run_pipeline(clip.samples, p)
        for suffix, y in (("in", clip.samples), ("out", out.repaired)):
            path = os.path.join(outdir, f"{clip.name}_{suffix}.wav")
            sf.write(path, y.astype(np.float32), sr, subtype="FLOAT")
            written.append(path)
    return written


def run_lab(
    outdir: str,
    p: Params,
    tolerance: int = 1,
    th: Optional[Thresholds] = None,
    plot: bool = True,
) -> Tuple[List[ClipScore], List[str]]:
    os.makedirs(outdir, exist_ok=True)
    th = th if th is not None else Thresholds()

    scores = evaluate_corpus(generate_corpus(), p, tolerance)
    write_csv(os.path.join(outdir, "metrics.csv"), scores)
    if plot:
        plot_scores(os.path.join(outdir, "metrics.png"), scores, th)
    return scores, failures(scores, th)


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Score click detection/repair on a synthetic corpus.")
    ap.add_argument("--outdir", default="click_lab_out", help="Output directory for CSV/PNG")
    add_params_args(ap)
    ap.add_argument("--tolerance", type=int, default=1, help="Max sample distance for a detection to match")
    ap.add_argument("--min-recall", type=float, default=Thresholds.min_recall)
    ap.add_argument("--min-precision", type=float, default=Thresholds.min_precision)
    ap.add_argument("--min-transient", type=float, default=Thresholds.min_transient)
    ap.add_argument("--no-plot", action="store_true")
    ap.add_argument("--write-wavs", action="store_true", help="Also write corpus input/output WAVs")
    ap.add_argument("--sr", type=int, default=44100, help="Sample rate for --write-wavs")
    args = ap.parse_args(argv)

    p = params_from_args(args)
    th = Thresholds(
        min_recall=float(args.min_recall),
        min_precision=float(args.min_precision),
        min_transient=float(args.min_transient),
    )

    scores, failed = run_lab(args.outdir, p, tolerance=int(args.tolerance), th=th, plot=not args.no_plot)

    print(f"Params: {asdict(p)}")
    print(f"{'clip':<24}{'recall':>8}{'prec':>8}{'trans':>8}  detected")
    for s in scores:
        print(f"{s.name:<24}{s.recall:8.2f}{s.precision:8.2f}{s.transient:8.3f}  {s.detected}")

    if args.write_wavs:
        wavs = write_corpus_wavs(os.path.join(args.outdir, "wav"), generate_corpus(), p, sr=int(args.sr))
        print(f"Wrote {len(wavs)} WAVs to: {args.outdir}/wav/")

    print(f"\nWrote outputs to: {args.outdir}/")
    if failed:
        print("\nFAILED:")
        for msg in failed:
            print(f"  {msg}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
