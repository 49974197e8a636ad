# src/opflash/clustering/refine.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..physics.hits import OpHit

def rank_hits_by_pe(group: Sequence[int], hits: Sequence[OpHit]) -> List[int]:
    """Hit indices by PE, largest first; equal PE falls back to hit index."""
    return sorted(group, key=lambda i: (-hits[i].pe, i))


@dataclass
class _Cluster:
    """Time window grown around a seed hit."""
    t_min: float
    t_max: float
    pe: float
    members: List[int] = field(default_factory=list)

    @classmethod
    def seeded(cls, hit_index: int, hit: OpHit) -> "_Cluster":
        half = 0.5 * hit.width
        return cls(hit.peak_time - half, hit.peak_time + half, hit.pe, [hit_index])

    @property
    def center(self) -> float:
        return 0.5 * (self.t_max + self.t_min)

    @property
    def half_width(self) -> float:
        return 0.5 * (self.t_max - self.t_min)

    def accepts(self, hit: OpHit, width_tolerance: float) -> bool:
        half = 0.5 * hit.width
        return abs(hit.peak_time - self.center) <= width_tolerance * (half + self.half_width)

    def add(self, hit_index: int, hit: OpHit) -> None:
        half = 0.5 * hit.width
        self.members.append(hit_index)
        self.t_max = max(self.t_max, hit.peak_time + half)
        self.t_min = min(self.t_min, hit.peak_time - half)
        self.pe += hit.pe


def refine_hits_in_flash(
    group: Sequence[int],
    hits: Sequence[OpHit],
    width_tolerance: float,
    flash_threshold: float,
) -> List[List[int]]:
    """
    Split one provisional flash into time-compact sub-flashes.

    1. seed on the largest unused hit
    2. sweep the unused hits (largest first), adding any within
       width_tolerance x (hit half-width + cluster half-width) of the
       cluster center; widen the window as hits join
    3. repeat the sweep until nothing joins
    4. keep the cluster if it reaches flash_threshold; otherwise free all
       hits but the seed and go back to 1
    """
    ranked = rank_hits_by_pe(group, hits)
    used: Dict[int, bool] = {i: False for i in ranked}
    refined: List[List[int]] = []

    while True:
        seed = next((i for i in ranked if not used[i]), None)
        if seed is None:
            return refined

        cluster = _Cluster.seeded(seed, hits[seed])
        used[seed] = True

        n_before = 0
        while n_before < len(cluster.members):
            n_before = len(cluster.members)
            for i in ranked:
                if used[i] or not cluster.accepts(hits[i], width_tolerance):
                    continue
                cluster.add(i, hits[i])
                used[i] = True

        if cluster.pe >= flash_threshold:
            refined.append(cluster.members)
            continue

        # below threshold: the seed is spent, the rest may join another seed
        for i in cluster.members[1:]:
            used[i] = False
