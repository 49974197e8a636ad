# src/opflash/clustering/construct.py
from __future__ import annotations
from typing import Sequence

import numpy as np

from ..geometry.channels import OpDetGeometry
from ..physics.flashes import OpFlash
from ..physics.hits import OpHit

def calculate_width(total: float, total_sq: float, weights_sum: float) -> float:
    """
    Spread of a weighted coordinate from its running sums:
    sqrt(total_sq*weights_sum + total**2) / weights_sum.

    NOTE: the sum term is added, not subtracted as a variance identity
    would have it; kept as-is so stored widths stay comparable with
    existing flash records.
    """
    return float(np.sqrt(total_sq * weights_sum + total * total) / weights_sum)


def construct_flash(
    group: Sequence[int],
    hits: Sequence[OpHit],
    geometry: OpDetGeometry,
    trigger_frame: int,
    frame: int,
    coincidence_window: float,
) -> OpFlash:
    """
    Reduce one refined hit group to an OpFlash.

    Raises
    ------
    ValueError
        If the group carries no PE; refined groups always pass the flash
        threshold, so this signals a broken upstream stage.
    """
    t_max, t_min = -1e9, 1e9
    pes = np.zeros(geometry.n_channels, dtype=np.float64)
    n_planes = geometry.n_planes
    sum_w = np.zeros(n_planes, dtype=np.float64)
    sum_w2 = np.zeros(n_planes, dtype=np.float64)

    total_pe = ave_time = ave_abs_time = fast_to_total = 0.0
    sum_y = sum_y2 = sum_z = sum_z2 = 0.0

    for hit_id in group:
        hit = hits[hit_id]
        pe = hit.pe
        t_max = max(t_max, hit.peak_time)
        t_min = min(t_min, hit.peak_time)

        ave_time += hit.peak_time * pe
        ave_abs_time += hit.peak_time_abs * pe
        fast_to_total += hit.fast_to_total * pe
        total_pe += pe
        pes[hit.channel] += pe

        xyz = geometry.center(hit.channel)
        for p in range(n_planes):
            w = geometry.nearest_wire(xyz, p)
            sum_w[p] += w * pe
            sum_w2[p] += w * w * pe
        sum_y += xyz[1] * pe
        sum_y2 += xyz[1] * xyz[1] * pe
        sum_z += xyz[2] * pe
        sum_z2 += xyz[2] * xyz[2] * pe

    if total_pe <= 0:
        raise ValueError(f"Cannot build a flash from hits {list(group)} with total PE {total_pe}")

    ave_time /= total_pe
    ave_abs_time /= total_pe
    fast_to_total /= total_pe

    wire_centers = sum_w / total_pe
    wire_widths = np.array(
        [calculate_width(sum_w[p], sum_w2[p], total_pe) for p in range(n_planes)],
        dtype=np.float64,
    )

    return OpFlash(
        time=ave_time,
        time_width=(t_max - t_min) / 2.0,
        abs_time=ave_abs_time,
        frame=frame,
        pe_per_channel=pes,
        in_beam_frame=(frame == trigger_frame),
        on_beam_time=1 if abs(ave_time) < coincidence_window else 0,
        fast_to_total=fast_to_total,
        y_center=sum_y / total_pe,
        y_width=calculate_width(sum_y, sum_y2, total_pe),
        z_center=sum_z / total_pe,
        z_width=calculate_width(sum_z, sum_z2, total_pe),
        wire_centers=wire_centers,
        wire_widths=wire_widths,
    )
