#!/usr/bin/env python3
"""
click_probe.py

Pick a time region (ROI) of one channel, then:
- run the click repair on the whole channel (the detection threshold is global)
- plot normalized vs repaired waveform with detected clicks marked
- plot ROI spectrograms before/after repair (clicks show up as broadband vertical lines)
- write artifact-only audio (normalized - repaired) for the ROI

Uses SciPy STFT; note Zxx last axis is time by default.
"""

from __future__ import annotations

import argparse
import os
from typing import List, Tuple

import numpy as np
import soundfile as sf
import matplotlib.pyplot as plt
from scipy import signal

from declick import PipelineOutput, add_params_args, params_from_args, run_pipeline


def db(x, eps=1e-12):
    return 20.0 * np.log10(np.maximum(x, eps))


def roi_bounds(n: int, sr: int, t0: float, dur: float) -> Tuple[int, int]:
    if sr <= 0:
        raise ValueError("sr must be > 0")
    s0 = int(t0 * sr)
    s1 = int((t0 + dur) * sr)
    s0 = max(0, min(s0, n))
    s1 = max(s0, min(s1, n))
    return s0, s1


def clicks_in_roi(out: PipelineOutput, s0: int, s1: int) -> List[int]:
    return [i for i in out.detected_impulses if s0 <= i < s1]


def roi_spectrogram_db(seg: np.ndarray, sr: int, n_fft: int, hop: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    nperseg = int(max(1, min(n_fft, seg.shape[0])))
    noverlap = int(min(nperseg - 1, max(0, nperseg - hop)))
    f, t, Z = signal.stft(
        seg,
        fs=sr,
        window="hann",
        nperseg=nperseg,
        noverlap=noverlap,
        nfft=nperseg,
        boundary=None,
        padded=False,
    )
    return f, t, db(np.abs(Z))


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Inspect detected clicks in a region of a file.")
    ap.add_argument("input")
    ap.add_argument("--outdir", default="click_probe_out")
    ap.add_argument("--t0", type=float, default=0.0, help="ROI start (sec)")
    ap.add_argument("--dur", type=float, default=2.0, help="ROI duration (sec)")
    ap.add_argument("--channel", type=int, default=0)

    ap.add_argument("--n-fft", type=int, default=512)
    ap.add_argument("--hop", type=int, default=64)
    add_params_args(ap)

    ap.add_argument("--write-artifact", default="artifact.wav")
    args = ap.parse_args(argv)

    os.makedirs(args.outdir, exist_ok=True)

    x, sr = sf.read(args.input, always_2d=True)
    x = x.astype(np.float32, copy=False)
    if not 0 <= args.channel < x.shape[1]:
        raise SystemExit(f"Channel {args.channel} out of range (file has {x.shape[1]}).")

    p = params_from_args(args)
    out = run_pipeline(x[:, args.channel], p)

    s0, s1 = roi_bounds(x.shape[0], sr, args.t0, args.dur)
    if s1 - s0 < 3:
        raise SystemExit("ROI too short; check --t0/--dur against the file length.")

    norm = out.normalized[s0:s1]
    rep = out.repaired[s0:s1]
    artifact = (norm - rep).astype(np.float32)

    out_wav = os.path.join(args.outdir, args.write_artifact)
    sf.write(out_wav, artifact, sr)

    roi_clicks = clicks_in_roi(out, s0, s1)
    t = (np.arange(s0, s1) / sr).astype(np.float64)

    # Waveform
    plt.figure(figsize=(12, 4))
    plt.plot(t, norm, linewidth=0.8, label="normalized")
    plt.plot(t, rep, linewidth=0.8, label="repaired")
    if roi_clicks:
        ci = np.asarray(roi_clicks)
        plt.scatter(ci / sr, out.normalized[ci], marker="x", color="red", zorder=3, label="clicks")
    plt.title(f"ROI waveform ({len(roi_clicks)} clicks, {len(out.detected_impulses)} in channel)")
    plt.xlabel("Time (s)")
    plt.ylabel("Amplitude")
    plt.legend(loc="upper right")
    plt.tight_layout()
    plt.savefig(os.path.join(args.outdir, "roi_waveform.png"), dpi=160)
    plt.close()

    # Spectrograms before/after
    fig, axes = plt.subplots(2, 1, figsize=(12, 7), sharex=True)
    for ax, seg, title in ((axes[0], norm, "before"), (axes[1], rep, "after")):
        f, tt, S = roi_spectrogram_db(seg, sr, int(args.n_fft), int(args.hop))
        ax.imshow(
            S,
            origin="lower",
            aspect="auto",
            extent=[tt[0] + s0 / sr, tt[-1] + s0 / sr, f[0], f[-1]],
        )
        ax.set_title(f"ROI spectrogram (dB), {title} repair")
        ax.set_ylabel("Hz")
    axes[1].set_xlabel("Time (s)")
    fig.tight_layout()
    fig.savefig(os.path.join(args.outdir, "roi_spectrogram.png"), dpi=160)
    plt.close(fig)

    print(f"Clicks in ROI ({s0 / sr:.3f}s-{s1 / sr:.3f}s):")
    for i in roi_clicks:
        print(f"  {i / sr:10.5f}s  (sample {i})")
    v = out.validation
    print(f"Repaired peak {v.peak:.4f}, clipped {v.clipped_samples}, NaN {v.has_nan}")
    print(f"Wrote: {out_wav}")
    print(f"Wrote: {args.outdir}/roi_waveform.png")
    print(f"Wrote: {args.outdir}/roi_spectrogram.png")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
