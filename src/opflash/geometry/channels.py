from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import List
import numpy as np

@dataclass(frozen=True)
class WirePlane:
    """
    One readout wire plane. Wires run at angle_rad from vertical; the wire
    coordinate u = z*cos(angle) + y*sin(angle) is measured across them.
    """
    angle_rad: float
    pitch_cm: float
    offset_cm: float = 0.0
    n_wires: int = 1

    def wire_coordinate(self, xyz: np.ndarray) -> float:
        return float(xyz[2] * np.cos(self.angle_rad) + xyz[1] * np.sin(self.angle_rad))

    def nearest_wire(self, xyz: np.ndarray) -> int:
        w = int(np.rint((self.wire_coordinate(xyz) - self.offset_cm) / self.pitch_cm))
        return int(np.clip(w, 0, self.n_wires - 1))

@dataclass
class OpDetGeometry:
    positions: np.ndarray  # (N, 3) optical detector centers [cm]
    planes: List[WirePlane] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)

    @classmethod
    def from_cfg(cls, cfg) -> "OpDetGeometry":
        if cfg.positions_path:
            positions = load_positions(cfg.positions_path)
        else:
            positions = np.asarray(cfg.positions, dtype=np.float64)
        if positions.size == 0:
            raise ValueError("Geometry defines no optical channels (positions is empty)")
        planes = [
            WirePlane(
                angle_rad=float(np.radians(p.angle_deg)),
                pitch_cm=p.pitch_cm,
                offset_cm=p.offset_cm,
                n_wires=p.n_wires,
            )
            for p in cfg.planes
        ]
        return cls(positions, planes)

    @property
    def n_channels(self) -> int:
        return int(self.positions.shape[0])

    @property
    def n_planes(self) -> int:
        return len(self.planes)

    def is_valid_channel(self, channel: int) -> bool:
        return 0 <= channel < self.n_channels

    def center(self, channel: int) -> np.ndarray:
        return self.positions[channel]

    def nearest_wire(self, xyz: np.ndarray, plane: int) -> int:
        return self.planes[plane].nearest_wire(xyz)


def spe_sizes_for(geometry: OpDetGeometry, spe_size) -> np.ndarray:
    """Broadcast a scalar or per-channel SPE calibration to (n_channels,)."""
    arr = np.asarray(spe_size, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(geometry.n_channels, float(arr))
    if arr.shape != (geometry.n_channels,):
        raise ValueError(
            f"spe_size has {arr.size} entries for {geometry.n_channels} channels"
        )
    return arr


def load_positions(path: str | Path) -> np.ndarray:
    return np.loadtxt(path, dtype=np.float64, ndmin=2)
