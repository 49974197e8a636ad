from __future__ import annotations
from dataclasses import dataclass

@dataclass(frozen=True)
class DetectorClock:
    """
    Optical readout timing.

    frame_ticks: samples per readout frame
    tick_period: sample period [us]
    trigger_frame: frame containing the beam gate
    coincidence_window: |flash time| below this is "on beam time" [us]
    padding_ticks: slack past the frame end still binned by the accumulators
    """
    frame_ticks: int = 102400
    tick_period: float = 0.015625
    trigger_frame: int = 1
    coincidence_window: float = 3.5
    padding_ticks: int = 3000

    @classmethod
    def from_cfg(cls, cfg) -> "DetectorClock":
        return cls(
            frame_ticks=cfg.frame_ticks,
            tick_period=cfg.tick_period,
            trigger_frame=cfg.trigger_frame,
            coincidence_window=cfg.coincidence_window,
            padding_ticks=cfg.padding_ticks,
        )

    @property
    def frame_length(self) -> float:
        return self.frame_ticks * self.tick_period

    @property
    def window_length(self) -> float:
        return (self.frame_ticks + self.padding_ticks) * self.tick_period

    def tick_to_frame_time(self, tick: float, time_slice: int) -> float:
        return (time_slice + tick) * self.tick_period

    def tick_to_abs_time(self, tick: float, time_slice: int, frame: int) -> float:
        return frame * self.frame_length + self.tick_to_frame_time(tick, time_slice)

    def n_bins(self, bin_width: float) -> int:
        return int((self.window_length + bin_width) // bin_width)
