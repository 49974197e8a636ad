# src/opflash/clustering/accumulator.py
"""
Coarse time binning of the hits in one frame.

Two accumulators cover the same window with bins of width W, the second one
shifted by W/2, so that a flash cut in two by a bin edge of one grid lands
whole in a bin of the other.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple
import math

import numpy as np

from ..physics.hits import OpHit

@dataclass
class Accumulator:
    bin_width: float
    offset: float
    binned: np.ndarray                     # (n_bins,) PE per bin
    contributors: List[List[int]]          # hit indices per bin
    triggered: List[int] = field(default_factory=list)  # bins over threshold, discovery order

    @classmethod
    def empty(cls, n_bins: int, bin_width: float, offset: float = 0.0) -> "Accumulator":
        return cls(
            bin_width=bin_width,
            offset=offset,
            binned=np.zeros(n_bins, dtype=np.float64),
            contributors=[[] for _ in range(n_bins)],
        )

    @property
    def n_bins(self) -> int:
        return int(self.binned.shape[0])

    def index_for(self, peak_time: float) -> int:
        return int(math.floor((peak_time + self.offset) / self.bin_width))

    def in_range(self, index: int) -> bool:
        return 0 <= index < self.n_bins

    def fill(self, index: int, hit_index: int, pe: float, flash_threshold: float) -> None:
        """
        Add one hit to a bin. The bin is recorded as triggered only on the
        fill that takes it from below flash_threshold to at/above it.
        """
        self.contributors[index].append(hit_index)
        before = self.binned[index]
        after = before + pe
        self.binned[index] = after
        if after >= flash_threshold and before < flash_threshold:
            self.triggered.append(index)


@dataclass
class BinnedFrame:
    grids: Tuple[Accumulator, Accumulator]
    out_of_window: List[int] = field(default_factory=list)


def make_accumulators(n_bins: int, bin_width: float) -> Tuple[Accumulator, Accumulator]:
    return (
        Accumulator.empty(n_bins, bin_width, 0.0),
        Accumulator.empty(n_bins, bin_width, 0.5 * bin_width),
    )


def bin_hits(
    hits: Sequence[OpHit],
    n_bins: int,
    bin_width: float,
    flash_threshold: float,
    indices: Optional[Iterable[int]] = None,
) -> BinnedFrame:
    """
    Fill both accumulators from hits (optionally only the given indices).

    A hit with a non-finite time, or whose bin falls outside either grid, is
    not binned at all and is reported in BinnedFrame.out_of_window.
    """
    grids = make_accumulators(n_bins, bin_width)
    out = BinnedFrame(grids=grids)
    for i in (range(len(hits)) if indices is None else indices):
        hit = hits[i]
        if not math.isfinite(hit.peak_time):
            out.out_of_window.append(i)
            continue
        bins = [g.index_for(hit.peak_time) for g in grids]
        if not all(g.in_range(b) for g, b in zip(grids, bins)):
            out.out_of_window.append(i)
            continue
        for g, b in zip(grids, bins):
            g.fill(b, i, hit.pe, flash_threshold)
    return out
