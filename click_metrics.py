"""
click_metrics.py

Scoring helpers for click repair against ground truth:
- click_precision_recall: how many known clicks were found / how many finds were real.
- transient_preservation: how much of the energy in protected regions (drum hits,
  plucks) survived repair untouched.

Neither is used by the repair pipeline itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class ClickMetrics:
    recall: float
    precision: float


def click_precision_recall(detected: Sequence[int], expected: Sequence[int], tolerance: int) -> ClickMetrics:
    """
    Greedy matching: each detection (in the order given) claims the first unmatched
    expected index within `tolerance` samples. Not an optimal assignment.

    Empty `expected` gives recall 1.0 (nothing to miss); empty `detected` gives
    precision 0.0, unless both are empty which scores a perfect 1.0/1.0.
    """
    if len(expected) == 0 and len(detected) == 0:
        return ClickMetrics(recall=1.0, precision=1.0)

    matched = [False] * len(expected)
    true_positive = 0
    for d in detected:
        for j, e in enumerate(expected):
            if not matched[j] and abs(int(d) - int(e)) <= tolerance:
                matched[j] = True
                true_positive += 1
                break

    recall = 1.0 if len(expected) == 0 else true_positive / len(expected)
    precision = 0.0 if len(detected) == 0 else true_positive / len(detected)
    return ClickMetrics(recall=recall, precision=precision)


def _clamp_region(start: int, end: int, n: int) -> Tuple[int, int]:
    end = max(0, min(int(end), n))
    start = max(0, min(int(start), end))
    return start, end


def transient_preservation(
    original: np.ndarray,
    repaired: np.ndarray,
    regions: Iterable[Tuple[int, int]],
) -> float:
    """
    1 - (error energy / reference energy) over the given (start, end) regions, in [0, 1].

    Regions are clamped to the original's length. Overlapping regions are counted
    once per region. No regions, or silent regions, score 1.0.
    """
    regions: List[Tuple[int, int]] = list(regions)
    if not regions:
        return 1.0

    o = np.asarray(original, dtype=np.float32)
    r = np.asarray(repaired, dtype=np.float32)
    if r.shape[0] < o.shape[0]:
        raise ValueError(
            f"repaired signal length ({r.shape[0]}) must be at least as long as "
            f"original signal length ({o.shape[0]})"
        )

    n = o.shape[0]
    err = 0.0
    ref = 0.0
    for start, end in regions:
        s, e = _clamp_region(start, end, n)
        seg = o[s:e].astype(np.float64)
        d = seg - r[s:e].astype(np.float64)
        err += float(np.sum(d * d))
        ref += float(np.sum(seg * seg))

    if ref == 0.0:
        return 1.0
    ratio = err / ref
    # non-finite samples in either buffer count as total loss
    if not np.isfinite(ratio):
        ratio = 1.0
    return float(np.clip(1.0 - min(ratio, 1.0), 0.0, 1.0))
