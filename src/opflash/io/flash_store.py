from __future__ import annotations
from dataclasses import asdict
from typing import List, Sequence, Tuple
import h5py
import numpy as np
from datetime import datetime, timezone
from pathlib import Path
from opflash.clustering.accumulator import Accumulator
from opflash.config.load import json_dumps, snapshot_config_toml
from opflash.io.pulse_store import create_dataset, write_hits
from opflash.physics.flashes import OpFlash

FORMAT_VERSION = "1.0"

_SCALAR_FLASH_COLUMNS = {
    "time": "f8",
    "time_width": "f8",
    "abs_time": "f8",
    "frame": "i4",
    "in_beam_frame": "u1",
    "on_beam_time": "i1",
    "fast_to_total": "f8",
    "y_center": "f8",
    "y_width": "f8",
    "z_center": "f8",
    "z_width": "f8",
}


def write_init(path: str, cfg_path: str | None = None) -> h5py.File:
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = "opflash 0.1.0"
    if cfg_path is not None:
        f.attrs["config_text"] = snapshot_config_toml(cfg_path)
    return f


def write_flashes(
    f: h5py.File,
    flashes: Sequence[OpFlash],
    n_channels: int,
    n_planes: int,
) -> None:
    """
    Store flashes as columns under /flashes.

    /flashes/<field>          (N,)              scalar fields of OpFlash
    /flashes/total_pe         (N,)   float64
    /flashes/pe_per_channel   (N, n_channels) float64
    /flashes/wire_centers     (N, n_planes)   float64
    /flashes/wire_widths      (N, n_planes)   float64
    """
    grp = f.require_group("flashes")
    N = len(flashes)
    for key, dtype in _SCALAR_FLASH_COLUMNS.items():
        create_dataset(grp, key, np.array([getattr(fl, key) for fl in flashes], dtype=dtype))
    create_dataset(grp, "total_pe", np.array([fl.total_pe for fl in flashes], dtype="f8"))

    pes = np.zeros((N, n_channels), dtype=np.float64)
    centers = np.zeros((N, n_planes), dtype=np.float64)
    widths = np.zeros((N, n_planes), dtype=np.float64)
    for i, fl in enumerate(flashes):
        pes[i] = fl.pe_per_channel
        centers[i] = fl.wire_centers
        widths[i] = fl.wire_widths
    create_dataset(grp, "pe_per_channel", pes)
    create_dataset(grp, "wire_centers", centers)
    create_dataset(grp, "wire_widths", widths)
    grp.attrs["n_channels"] = n_channels
    grp.attrs["n_planes"] = n_planes


def write_associations(f: h5py.File, associations: Sequence[Sequence[int]]) -> None:
    """
    Flash -> hit associations in CSR form:

      /assoc/flash_ptr  (N_flashes+1,) int64  pointers into hit_index
      /assoc/hit_index  (M,)           int64  global hit indices (rows of /hits)
    """
    grp = f.require_group("assoc")
    ptr = np.zeros(len(associations) + 1, dtype=np.int64)
    for i, a in enumerate(associations):
        ptr[i + 1] = ptr[i] + len(a)
    flat = np.fromiter((h for a in associations for h in a), dtype=np.int64, count=int(ptr[-1]))
    create_dataset(grp, "flash_ptr", ptr)
    create_dataset(grp, "hit_index", flat)


def write_accumulators(f: h5py.File, frame: int, grids: Tuple[Accumulator, Accumulator]) -> None:
    """Dump the coarse binned PE of one frame under /accumulators/frame_<k>."""
    grp = f.require_group("accumulators").require_group(f"frame_{frame}")
    for k, acc in enumerate(grids):
        create_dataset(grp, f"binned_{k}", acc.binned.astype(np.float64))
        create_dataset(grp, f"triggered_{k}", np.asarray(acc.triggered, dtype=np.int64))
        grp.attrs[f"offset_{k}"] = acc.offset
    grp.attrs["bin_width"] = grids[0].bin_width


def write_diagnostics(f: h5py.File, diagnostics) -> None:
    f.attrs["diagnostics"] = json_dumps(asdict(diagnostics))


def write_results(f: h5py.File, result, n_channels: int, n_planes: int) -> None:
    write_hits(f, result.hits)
    write_flashes(f, result.flashes, n_channels, n_planes)
    write_associations(f, result.associations)
    write_diagnostics(f, result.diagnostics)


def read_flashes(path: str | Path) -> Tuple[List[OpFlash], List[List[int]]]:
    path = str(path)
    with h5py.File(path, "r") as f:
        if "flashes" not in f or "assoc" not in f:
            raise KeyError(f"/flashes or /assoc not found in {path}")
        grp = f["flashes"]
        cols = {key: np.asarray(grp[key]) for key in _SCALAR_FLASH_COLUMNS}
        pes = np.asarray(grp["pe_per_channel"], dtype=np.float64)
        centers = np.asarray(grp["wire_centers"], dtype=np.float64)
        widths = np.asarray(grp["wire_widths"], dtype=np.float64)
        ptr = np.asarray(f["assoc"]["flash_ptr"], dtype=np.int64)
        flat = np.asarray(f["assoc"]["hit_index"], dtype=np.int64)

    flashes = [
        OpFlash(
            time=float(cols["time"][i]),
            time_width=float(cols["time_width"][i]),
            abs_time=float(cols["abs_time"][i]),
            frame=int(cols["frame"][i]),
            pe_per_channel=pes[i].copy(),
            in_beam_frame=bool(cols["in_beam_frame"][i]),
            on_beam_time=int(cols["on_beam_time"][i]),
            fast_to_total=float(cols["fast_to_total"][i]),
            y_center=float(cols["y_center"][i]),
            y_width=float(cols["y_width"][i]),
            z_center=float(cols["z_center"][i]),
            z_width=float(cols["z_width"][i]),
            wire_centers=centers[i].copy(),
            wire_widths=widths[i].copy(),
        )
        for i in range(len(cols["time"]))
    ]
    associations = [flat[ptr[i]:ptr[i + 1]].tolist() for i in range(len(flashes))]
    return flashes, associations


def read_accumulator(path: str | Path, frame: int) -> Tuple[np.ndarray, np.ndarray, float]:
    """Return (binned_0, binned_1, bin_width) for one dumped frame."""
    path = str(path)
    name = f"accumulators/frame_{frame}"
    with h5py.File(path, "r") as f:
        if name not in f:
            raise KeyError(f"/{name} not found in {path}")
        grp = f[name]
        return (
            np.asarray(grp["binned_0"], dtype=np.float64),
            np.asarray(grp["binned_1"], dtype=np.float64),
            float(grp.attrs["bin_width"]),
        )
