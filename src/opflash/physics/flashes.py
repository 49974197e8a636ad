from __future__ import annotations
from dataclasses import dataclass

import numpy as np

@dataclass(frozen=True)
class OpFlash:
    """
    Optical flash: a cluster of hits from one light pulse.

    time, time_width, abs_time: PE-weighted mean time, half-span, mean absolute time [us]
    pe_per_channel: (n_channels,) PE collected per optical channel
    in_beam_frame: flash lies in the trigger frame
    on_beam_time: 1 if |time| is inside the trigger coincidence window, else 0
    y/z center/width: PE-weighted transverse position and spread [cm]
    wire_centers/wire_widths: (n_planes,) PE-weighted nearest-wire number and spread
    """
    time: float
    time_width: float
    abs_time: float
    frame: int
    pe_per_channel: np.ndarray
    in_beam_frame: bool
    on_beam_time: int
    fast_to_total: float
    y_center: float
    y_width: float
    z_center: float
    z_width: float
    wire_centers: np.ndarray
    wire_widths: np.ndarray

    @property
    def total_pe(self) -> float:
        return float(np.sum(self.pe_per_channel))
