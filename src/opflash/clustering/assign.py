# src/opflash/clustering/assign.py
from __future__ import annotations
from typing import List, NamedTuple, Sequence

import numpy as np

from ..physics.hits import OpHit
from .accumulator import Accumulator

class Candidate(NamedTuple):
    grid: int
    bin: int
    pe: float


def collect_candidates(grids: Sequence[Accumulator]) -> List[Candidate]:
    """
    All triggered bins of all grids, largest bin PE first.

    Ties keep grid order, then the order in which each grid triggered the
    bins (the sort is stable).
    """
    cands = [
        Candidate(g, b, float(acc.binned[b]))
        for g, acc in enumerate(grids)
        for b in acc.triggered
    ]
    cands.sort(key=lambda c: -c.pe)
    return cands


def assign_hits_to_flashes(
    grids: Sequence[Accumulator],
    hits: Sequence[OpHit],
    flash_threshold: float,
) -> List[List[int]]:
    """
    Resolve the overlapping grids into disjoint provisional flashes.

    Walking candidates from the largest, each bin takes its still-unclaimed
    contributors; the group is kept (and its hits claimed) only if those
    hits alone reach flash_threshold. Otherwise the hits stay available for
    smaller candidates.
    """
    claimed_by = np.full(len(hits), -1, dtype=np.int64)
    groups: List[List[int]] = []

    for cand in collect_candidates(grids):
        members = [i for i in grids[cand.grid].contributors[cand.bin] if claimed_by[i] == -1]
        pe = sum(hits[i].pe for i in members)
        if pe < flash_threshold:
            continue
        groups.append(members)
        claimed_by[members] = len(groups) - 1

    return groups
