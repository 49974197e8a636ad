from __future__ import annotations
import numpy as np
from typing import List
from ..physics.clock import DetectorClock
from ..physics.hits import Pulse

# samples recorded before the pulse peak in a synthetic waveform
PRE_SAMPLES = 10

def _pulse_at(channel: int, frame: int, tick: float, peak: float, width_ticks: float) -> Pulse:
    time_slice = max(0, int(tick) - PRE_SAMPLES)
    t_max = tick - time_slice
    return Pulse(
        channel=channel,
        frame=frame,
        time_slice=time_slice,
        t_max=t_max,
        t_start=t_max - 0.5 * width_ticks,
        t_end=t_max + 0.5 * width_ticks,
        peak=peak,
        area=peak * width_ticks,
    )

def synth_pulses(
    n_frames: int,
    flashes_per_frame: int,
    n_channels: int,
    clock: DetectorClock,
    pe_per_flash: float = 300.0,
    late_fraction: float = 0.3,
    decay_constant: float = 1.6,
    spe_size: float = 20.0,
    width_ticks: float = 8.0,
    first_frame: int = 0,
    rng: np.random.Generator | None = None,
) -> List[Pulse]:
    """
    Generate reconstructed pulses for prompt flashes with a scintillation tail.

      - each flash has a Poisson(pe_per_flash) prompt yield spread uniformly
        over channels, one pulse per lit channel within ~1 tick of t0
      - Poisson(late_fraction * pe_per_flash) single-PE pulses follow at
        t0 + Exp(decay_constant), on random channels
      - peaks are in ADC (PE x spe_size)
    """
    rng = rng or np.random.default_rng()
    pulses: List[Pulse] = []
    decay_ticks = decay_constant / clock.tick_period
    # keep the tails inside the frame
    t_hi = max(1.0, clock.frame_ticks - 10.0 * decay_ticks)

    for frame in range(first_frame, first_frame + n_frames):
        for _ in range(flashes_per_frame):
            t0 = float(rng.uniform(PRE_SAMPLES, t_hi))
            n_pe = int(rng.poisson(pe_per_flash))
            per_channel = rng.multinomial(n_pe, np.full(n_channels, 1.0 / n_channels))
            for ch, pe in enumerate(per_channel):
                if pe == 0:
                    continue
                tick = t0 + float(rng.normal(0.0, 0.5))
                pulses.append(_pulse_at(ch, frame, tick, pe * spe_size, width_ticks))

            n_late = int(rng.poisson(late_fraction * pe_per_flash))
            for _ in range(n_late):
                tick = t0 + float(rng.exponential(decay_ticks))
                if tick >= clock.frame_ticks:
                    continue
                ch = int(rng.integers(n_channels))
                pulses.append(_pulse_at(ch, frame, tick, spe_size, width_ticks))

    return pulses
