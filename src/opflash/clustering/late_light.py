# src/opflash/clustering/late_light.py
"""
Removal of flashes that look like the slow scintillation tail of an earlier
flash in the same frame.

For an earlier flash i and a later flash j, the tail of i predicts

    pred = pe_i * width_j / width_i * exp(-(t_j - t_i) / tau)

at j. A flash j whose PE is not significantly above that,
(pe_j - pred) / sqrt(pred) < cutoff, is attributed to i and dropped.
"""
from __future__ import annotations
from typing import List, Sequence
import math

from ..physics.flashes import OpFlash

# score for pairs that cannot be compared; never below any sane cutoff
NOT_LATE_LIGHT = 1e6


def late_light_significance(
    i_pe: float, i_time: float, i_width: float,
    j_pe: float, j_time: float, j_width: float,
    decay_constant: float,
) -> float:
    if i_time > j_time:
        return NOT_LATE_LIGHT
    if i_width <= 0:
        return NOT_LATE_LIGHT
    predicted = i_pe * j_width / i_width * math.exp(-(j_time - i_time) / decay_constant)
    if predicted <= 0:
        return NOT_LATE_LIGHT
    return (j_pe - predicted) / math.sqrt(predicted)


def mark_flashes_for_removal(
    flashes: Sequence[OpFlash],
    decay_constant: float,
    significance_cutoff: float,
) -> List[bool]:
    """flashes must already be in time order."""
    marked = [False] * len(flashes)
    for i, fi in enumerate(flashes):
        i_pe = fi.total_pe
        for j in range(i + 1, len(flashes)):
            if marked[j]:
                continue
            fj = flashes[j]
            score = late_light_significance(
                i_pe, fi.time, fi.time_width,
                fj.total_pe, fj.time, fj.time_width,
                decay_constant,
            )
            if score < significance_cutoff:
                marked[j] = True
    return marked


def remove_late_light(
    flashes: List[OpFlash],
    associations: List[List[int]],
    begin: int = 0,
    decay_constant: float = 1.6,
    significance_cutoff: float = 3.0,
) -> int:
    """
    Time-order flashes[begin:] (associations follow) and drop late light.

    Both lists are edited in place and stay index-aligned. Returns the
    number of flashes removed.
    """
    if len(flashes) != len(associations):
        raise ValueError(
            f"flashes ({len(flashes)}) and associations ({len(associations)}) are not aligned"
        )

    order = sorted(range(begin, len(flashes)), key=lambda k: flashes[k].time)
    new_flashes = [flashes[k] for k in order]
    new_assoc = [associations[k] for k in order]

    marked = mark_flashes_for_removal(new_flashes, decay_constant, significance_cutoff)

    flashes[begin:] = [f for f, m in zip(new_flashes, marked) if not m]
    associations[begin:] = [a for a, m in zip(new_assoc, marked) if not m]
    return sum(marked)
