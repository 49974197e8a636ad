from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from .clock import DetectorClock

@dataclass(frozen=True)
class Pulse:
    """
    One reconstructed pulse on a digitized optical waveform.

    channel: hardware channel number (mapped to an optical channel on ingest)
    frame: readout frame the waveform belongs to
    time_slice: tick of the first sample of the waveform within the frame
    t_max, t_start, t_end: ticks relative to the waveform start
    peak: pulse height [ADC]
    area: integrated pulse [ADC x ticks]
    """
    channel: int
    frame: int
    time_slice: int
    t_max: float
    t_start: float
    t_end: float
    peak: float
    area: float = 0.0
    fast_to_total: float = 0.0

@dataclass(frozen=True)
class OpHit:
    """
    Canonical optical hit.

    channel: optical channel id (index into the geometry)
    peak_time: peak time relative to the frame start [us]
    peak_time_abs: peak time in the global timebase [us]
    frame: readout frame (processing partition)
    width: pulse width [us]
    area, amplitude: raw pulse area and peak [ADC]
    pe: calibrated amplitude [PE]
    fast_to_total: fast scintillation component fraction
    """
    channel: int
    peak_time: float
    peak_time_abs: float
    frame: int
    width: float
    area: float
    amplitude: float
    pe: float
    fast_to_total: float = 0.0


def build_hit(
    pulse: Pulse,
    channel: int,
    clock: DetectorClock,
    spe_size: float,
    hit_threshold: float,
) -> Optional[OpHit]:
    """
    Turn a reconstructed pulse into an OpHit.

    Returns None when the pulse peak is below hit_threshold.
    """
    if pulse.peak < hit_threshold:
        return None

    peak_time = clock.tick_to_frame_time(pulse.t_max, pulse.time_slice)
    return OpHit(
        channel=channel,
        peak_time=peak_time,
        peak_time_abs=clock.tick_to_abs_time(pulse.t_max, pulse.time_slice, pulse.frame),
        frame=pulse.frame,
        width=(pulse.t_end - pulse.t_start) * clock.tick_period,
        area=pulse.area,
        amplitude=pulse.peak,
        pe=pulse.peak / spe_size,
        fast_to_total=pulse.fast_to_total,
    )
