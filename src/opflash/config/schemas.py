from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, Dict, List, Union

class RunCfg(BaseModel):
    """
    Global run controls.

    TOML:

    [run]
    workers = "auto"
    diagnostics_level = 1
    """

    # Performance / execution
    workers: Union[int, Literal["auto"]] = "auto"
    progress: bool = True

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose
    dump_accumulators: bool = False  # store per-frame binned PE under /accumulators

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class IOCfg(BaseModel):
    """
    I/O paths.

    TOML:

    [io]
    input_path  = "..."
    input_kind  = "pulses"        # "pulses" | "hits"
    output_path = "..."
    """

    input_path: str
    input_kind: Literal["pulses", "hits"] = "pulses"
    output_path: str

class ClockCfg(BaseModel):
    """
    Optical readout clock. Times are in microseconds, ticks are samples.
    """

    frame_ticks: int = 102400
    tick_period: float = 0.015625
    trigger_frame: int = 1
    coincidence_window: float = 3.5
    # beam-gate slack beyond the frame that the accumulators still cover
    padding_ticks: int = 3000

    @field_validator("frame_ticks", "padding_ticks")
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("tick counts must be non-negative")
        return v

    @field_validator("tick_period")
    def _positive_period(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("tick_period must be positive")
        return v

class WirePlaneCfg(BaseModel):
    angle_deg: float = 0.0
    pitch_cm: float = 0.3
    offset_cm: float = 0.0
    n_wires: int = 1

class GeometryCfg(BaseModel):
    """
    Optical detector positions and wire planes.

    TOML:

    [geometry]
    positions = [[x, y, z], ...]      # or positions_path = "opdet.txt"
    spe_size = 1.0                    # float or one value per channel

    [geometry.channel_map]            # hardware channel -> optical channel
    36 = 0

    [[geometry.planes]]
    angle_deg = 60.0
    pitch_cm = 0.3
    n_wires = 2400
    """

    positions: List[List[float]] = []
    positions_path: Optional[str] = None
    channel_map: Dict[int, int] = Field(default_factory=dict)
    spe_size: Union[float, List[float]] = 1.0
    planes: List[WirePlaneCfg] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_positions(self) -> "GeometryCfg":
        for p in self.positions:
            if len(p) != 3:
                raise ValueError(f"geometry.positions entries must be [x, y, z], got {p!r}")
        if isinstance(self.spe_size, list) and self.positions:
            if len(self.spe_size) != len(self.positions):
                raise ValueError(
                    f"geometry.spe_size has {len(self.spe_size)} entries "
                    f"but {len(self.positions)} channels are defined"
                )
        return self

class FlashCfg(BaseModel):
    """
    Flash-finding parameters (all amplitudes in PE, times in microseconds
    except hit_threshold, which is in ADC counts of the pulse peak).
    """

    bin_width: float = 0.15625
    hit_threshold: float = 10.0
    flash_threshold: float = 7.0
    width_tolerance: float = 0.5
    # late-light suppression: scintillation slow-component time constant
    decay_constant: float = 1.6
    significance_cutoff: float = 3.0

    @field_validator("bin_width", "flash_threshold", "decay_constant")
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    clock: ClockCfg = Field(default_factory=ClockCfg)
    geometry: GeometryCfg
    flash: FlashCfg = Field(default_factory=FlashCfg)
