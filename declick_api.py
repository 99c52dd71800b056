"""
declick_api.py

Small callable API around declick.py so other tools (lab/probe/tests) can repair
whole files' worth of audio without shelling out to the CLI.

declick.py stays the "source of truth" for the algorithm; this module only adapts
(N,) / (N, C) arrays into independent mono buffers and collects measurements.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

import numpy as np

import declick as _d


def _lin_to_db(x: float | np.ndarray, eps: float = 1e-12) -> float | np.ndarray:
    return 20.0 * np.log10(np.asarray(x) + eps)


def _as_2d(x: np.ndarray) -> np.ndarray:
    return x[:, None] if x.ndim == 1 else x


def measure_sample_peak_dbfs(x: np.ndarray) -> float:
    x2 = np.asarray(x, dtype=np.float32)
    peak = float(np.max(np.abs(x2))) if x2.size else 0.0
    return float(_lin_to_db(peak))


def measure_rms_dbfs(x: np.ndarray) -> float:
    x2 = _as_2d(np.asarray(x, dtype=np.float32))
    if x2.size == 0:
        return float(_lin_to_db(0.0))
    rms = float(np.sqrt(np.mean(x2 * x2) + 1e-12))
    return float(_lin_to_db(rms))


def _measure(x: np.ndarray) -> Dict[str, float]:
    return {
        "sample_peak_dbfs": measure_sample_peak_dbfs(x),
        "rms_dbfs": measure_rms_dbfs(x),
    }


def process_audio(
    x: np.ndarray,
    sr: int,
    *,
    params: Optional[_d.Params] = None,
    keep_normalized: bool = False,
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """
    Repair clicks and return (y_out, info).

    - x: (N,) or (N, C) float audio (expects -1..1-ish); each channel is
      normalized, detected and repaired on its own
    - sr: sample rate, only used for timestamps/durations
    - params: optional declick.Params (defaults otherwise)
    - keep_normalized: also return the normalized input under info["normalized"]
      (same shape as y_out), e.g. to write a "removed" diff

    info includes input/output measurements and, per channel, the number of
    repaired clicks, their times in seconds and the validation summary.
    """
    if sr <= 0:
        raise ValueError("sr must be > 0")

    x2 = np.asarray(x, dtype=np.float32)
    was_1d = x2.ndim == 1
    if was_1d:
        x2 = x2[:, None]
    elif x2.ndim != 2:
        raise ValueError("x must be 1D or 2D")

    p = params if params is not None else _d.Params()

    info: Dict[str, Any] = {
        "sr": int(sr),
        "channels": int(x2.shape[1]),
        "duration_s": float(x2.shape[0] / sr),
        "params": asdict(p),
        "measure_in": _measure(x2),
    }

    y = np.empty_like(x2)
    norm = np.empty_like(x2) if keep_normalized else None
    per_channel = []
    for ch in range(x2.shape[1]):
        out = _d.run_pipeline(x2[:, ch], p)
        y[:, ch] = out.repaired
        if norm is not None:
            norm[:, ch] = out.normalized
        per_channel.append({
            "channel": ch,
            "detected": len(out.detected_impulses),
            "click_times_s": [float(i / sr) for i in out.detected_impulses],
            "validation": asdict(out.validation),
        })

    info["per_channel"] = per_channel
    info["measure_out"] = _measure(y)

    if norm is not None:
        info["normalized"] = norm[:, 0] if was_1d else norm
    return (y[:, 0] if was_1d else y), info
