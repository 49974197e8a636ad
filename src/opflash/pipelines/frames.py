# src/opflash/pipelines/frames.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..clustering.accumulator import Accumulator, bin_hits
from ..clustering.assign import assign_hits_to_flashes
from ..clustering.construct import construct_flash
from ..clustering.late_light import remove_late_light
from ..clustering.refine import refine_hits_in_flash
from ..geometry.channels import OpDetGeometry
from ..physics.clock import DetectorClock
from ..physics.flashes import OpFlash
from ..physics.hits import OpHit, Pulse, build_hit

# per-frame cap on printed skip warnings; the counters keep the full tally
MAX_WARNINGS_PER_FRAME = 5

@dataclass(frozen=True)
class FlashParams:
    bin_width: float = 0.15625
    hit_threshold: float = 10.0
    flash_threshold: float = 7.0
    width_tolerance: float = 0.5
    decay_constant: float = 1.6
    significance_cutoff: float = 3.0

    @classmethod
    def from_cfg(cls, cfg) -> "FlashParams":
        return cls(**cfg.model_dump())

@dataclass
class FinderDiagnostics:
    frames: int = 0
    pulses_in: int = 0
    hits_in: int = 0
    hits_below_threshold: int = 0
    provisional_flashes: int = 0
    refined_flashes: int = 0
    late_light_removed: int = 0
    flashes_out: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)

    def inc(self, reason: str, n: int = 1) -> None:
        self.reasons[reason] = self.reasons.get(reason, 0) + n

    def merge(self, other: "FinderDiagnostics") -> None:
        for name in ("frames", "pulses_in", "hits_in", "hits_below_threshold",
                     "provisional_flashes", "refined_flashes",
                     "late_light_removed", "flashes_out"):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        for reason, n in other.reasons.items():
            self.inc(reason, n)

@dataclass
class FrameResult:
    frame: int
    hits: List[OpHit]
    flashes: List[OpFlash]
    associations: List[List[int]]  # frame-local hit indices
    diagnostics: FinderDiagnostics
    accumulators: Optional[Tuple[Accumulator, Accumulator]] = None


def _warn(diag: FinderDiagnostics, shown: Dict[str, int], reason: str, msg: str, level: int) -> None:
    diag.inc(reason)
    shown[reason] = shown.get(reason, 0) + 1
    if level >= 1 and shown[reason] <= MAX_WARNINGS_PER_FRAME:
        print(msg)


def hits_from_pulses(
    pulses: Iterable[Pulse],
    geometry: OpDetGeometry,
    clock: DetectorClock,
    spe_sizes: np.ndarray,
    hit_threshold: float,
    channel_map: Optional[Mapping[int, int]] = None,
    diagnostics_level: int = 1,
) -> Tuple[List[OpHit], FinderDiagnostics]:
    """
    Build hits frame by frame (ascending frame number) from reconstructed pulses.

    Pulses on unmapped or unknown channels, and pulses whose waveform starts
    past the end of the frame, are skipped with a warning.
    """
    diag = FinderDiagnostics()
    hits: List[OpHit] = []
    current_frame = None
    shown: Dict[str, int] = {}
    for pulse in sorted(pulses, key=lambda p: p.frame):
        if pulse.frame != current_frame:
            current_frame = pulse.frame
            shown = {}
        diag.pulses_in += 1
        channel = channel_map.get(pulse.channel, -1) if channel_map else pulse.channel
        if not geometry.is_valid_channel(channel):
            _warn(diag, shown, "invalid_channel",
                  f"[hits] Unrecognized channel {pulse.channel} (optical {channel}); ignoring pulse",
                  diagnostics_level)
            continue
        if pulse.time_slice > clock.frame_ticks:
            _warn(diag, shown, "time_outside_frame",
                  f"[hits] Time slice {pulse.time_slice} is outside the frame "
                  f"(frame_ticks={clock.frame_ticks}); skipping",
                  diagnostics_level)
            continue
        hit = build_hit(pulse, channel, clock, float(spe_sizes[channel]), hit_threshold)
        if hit is None:
            diag.hits_below_threshold += 1
            continue
        hits.append(hit)
    return hits, diag


def process_frame(
    frame: int,
    hits: Sequence[OpHit],
    geometry: OpDetGeometry,
    clock: DetectorClock,
    params: FlashParams,
    diagnostics_level: int = 1,
    keep_accumulators: bool = False,
) -> FrameResult:
    """
    Run binning, assignment, refinement, construction and late-light removal
    on the hits of a single frame.

    Association entries index into `hits` (frame-local); the caller adds the
    frame's offset into the global hit list.
    """
    diag = FinderDiagnostics(frames=1, hits_in=len(hits))
    shown: Dict[str, int] = {}

    valid: List[int] = []
    for i, hit in enumerate(hits):
        if hit.frame != frame:
            raise ValueError(f"Hit {i} belongs to frame {hit.frame}, not {frame}")
        if not geometry.is_valid_channel(hit.channel):
            _warn(diag, shown, "invalid_channel",
                  f"[frame {frame}] Unrecognized channel {hit.channel} on hit {i}; ignoring hit",
                  diagnostics_level)
            continue
        valid.append(i)

    binned = bin_hits(hits, clock.n_bins(params.bin_width), params.bin_width,
                      params.flash_threshold, indices=valid)
    for i in binned.out_of_window:
        _warn(diag, shown, "time_outside_window",
              f"[frame {frame}] Hit {i} at t={hits[i].peak_time:.4f} is outside the binning window; skipping",
              diagnostics_level)

    provisional = assign_hits_to_flashes(binned.grids, hits, params.flash_threshold)
    diag.provisional_flashes = len(provisional)

    refined: List[List[int]] = []
    for group in provisional:
        refined.extend(refine_hits_in_flash(group, hits, params.width_tolerance, params.flash_threshold))
    diag.refined_flashes = len(refined)

    flashes = [
        construct_flash(group, hits, geometry, clock.trigger_frame, frame, clock.coincidence_window)
        for group in refined
    ]

    diag.late_light_removed = remove_late_light(
        flashes, refined,
        decay_constant=params.decay_constant,
        significance_cutoff=params.significance_cutoff,
    )
    diag.flashes_out = len(flashes)

    if diagnostics_level >= 2:
        print(f"[frame {frame}] hits={len(hits)} provisional={diag.provisional_flashes} "
              f"refined={diag.refined_flashes} late_light={diag.late_light_removed} "
              f"flashes={diag.flashes_out}")
        for fl in flashes:
            if fl.on_beam_time == 1:
                print(f"[frame {frame}] On-beam flash at t={fl.time:.4f} with {fl.total_pe:.1f} PE")

    return FrameResult(
        frame=frame,
        hits=list(hits),
        flashes=flashes,
        associations=refined,
        diagnostics=diag,
        accumulators=binned.grids if keep_accumulators else None,
    )
