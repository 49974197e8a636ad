"""
opflash.io.pulse_store

Readers (and a writer, for synthetic data) for the flash finder inputs.

Layout
------
/pulses/channel     (M,) int32    hardware channel
/pulses/frame       (M,) int32
/pulses/time_slice  (M,) int64    waveform start tick within the frame
/pulses/t_max       (M,) float64  ticks relative to the waveform start
/pulses/t_start     (M,) float64
/pulses/t_end       (M,) float64
/pulses/peak        (M,) float64  ADC
/pulses/area        (M,) float64
/pulses/fast_to_total (M,) float64  optional, 0 if missing

/hits/*  one column per OpHit field (see flash_store.HIT_COLUMNS); lets a
run start from hits built elsewhere.
"""
from __future__ import annotations
from pathlib import Path
from typing import List, Sequence

import h5py
import numpy as np

from ..physics.hits import OpHit, Pulse

PULSE_COLUMNS = {
    "channel": "i4",
    "frame": "i4",
    "time_slice": "i8",
    "t_max": "f8",
    "t_start": "f8",
    "t_end": "f8",
    "peak": "f8",
    "area": "f8",
    "fast_to_total": "f8",
}

HIT_COLUMNS = {
    "channel": "i4",
    "peak_time": "f8",
    "peak_time_abs": "f8",
    "frame": "i4",
    "width": "f8",
    "area": "f8",
    "amplitude": "f8",
    "pe": "f8",
    "fast_to_total": "f8",
}

_OPTIONAL = ("area", "fast_to_total")


def _read_columns(path: str | Path, group: str, columns: dict) -> dict:
    path = str(path)
    with h5py.File(path, "r") as f:
        if group not in f:
            raise KeyError(f"/{group} not found in {path}")
        grp = f[group]
        n = None
        cols = {}
        for key, dtype in columns.items():
            if key not in grp:
                if key in _OPTIONAL:
                    continue
                raise KeyError(f"/{group}/{key} not found in {path}")
            cols[key] = np.asarray(grp[key], dtype=dtype)
            if n is None:
                n = cols[key].shape[0]
            elif cols[key].shape[0] != n:
                raise ValueError(f"/{group}/{key} has {cols[key].shape[0]} rows, expected {n}")
    n = n or 0
    for key in _OPTIONAL:
        if key in columns and key not in cols:
            cols[key] = np.zeros(n, dtype=columns[key])
    return cols


def read_pulses(path: str | Path) -> List[Pulse]:
    cols = _read_columns(path, "pulses", PULSE_COLUMNS)
    n = cols["channel"].shape[0]
    return [
        Pulse(
            channel=int(cols["channel"][i]),
            frame=int(cols["frame"][i]),
            time_slice=int(cols["time_slice"][i]),
            t_max=float(cols["t_max"][i]),
            t_start=float(cols["t_start"][i]),
            t_end=float(cols["t_end"][i]),
            peak=float(cols["peak"][i]),
            area=float(cols["area"][i]),
            fast_to_total=float(cols["fast_to_total"][i]),
        )
        for i in range(n)
    ]


def read_hits(path: str | Path) -> List[OpHit]:
    cols = _read_columns(path, "hits", HIT_COLUMNS)
    n = cols["channel"].shape[0]
    return [
        OpHit(
            channel=int(cols["channel"][i]),
            peak_time=float(cols["peak_time"][i]),
            peak_time_abs=float(cols["peak_time_abs"][i]),
            frame=int(cols["frame"][i]),
            width=float(cols["width"][i]),
            area=float(cols["area"][i]),
            amplitude=float(cols["amplitude"][i]),
            pe=float(cols["pe"][i]),
            fast_to_total=float(cols["fast_to_total"][i]),
        )
        for i in range(n)
    ]


def create_dataset(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    # gzip needs a chunked layout, which empty datasets cannot have
    grp.create_dataset(name, data=data, compression="gzip" if data.size else None)


def _write_columns(f: h5py.File, group: str, rows: Sequence, columns: dict) -> None:
    grp = f.require_group(group)
    for key, dtype in columns.items():
        data = np.array([getattr(r, key) for r in rows], dtype=dtype)
        create_dataset(grp, key, data)


def write_pulses(path: str | Path, pulses: Sequence[Pulse]) -> None:
    with h5py.File(str(path), "w") as f:
        _write_columns(f, "pulses", pulses, PULSE_COLUMNS)


def write_hits(f: h5py.File, hits: Sequence[OpHit]) -> None:
    _write_columns(f, "hits", hits, HIT_COLUMNS)
