from __future__ import annotations

import os
from dataclasses import dataclass, field
from itertools import groupby
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union, Literal
from concurrent.futures import ProcessPoolExecutor
import typer

from tqdm import tqdm

from opflash.clustering.accumulator import Accumulator
from opflash.config.load import load_config
from opflash.geometry.channels import OpDetGeometry, spe_sizes_for
from opflash.io.flash_store import write_init, write_results, write_accumulators
from opflash.io.pulse_store import read_hits, read_pulses
from opflash.physics.clock import DetectorClock
from opflash.physics.flashes import OpFlash
from opflash.physics.hits import OpHit
from opflash.pipelines.frames import (
    FinderDiagnostics,
    FlashParams,
    FrameResult,
    hits_from_pulses,
    process_frame,
)


@dataclass
class FlashFinderResult:
    """
    Flashes of all frames with their hit associations.

    hits is the frame-ordered hit list; associations[i] holds the indices
    (into hits) of the hits that built flashes[i].
    """
    hits: List[OpHit] = field(default_factory=list)
    flashes: List[OpFlash] = field(default_factory=list)
    associations: List[List[int]] = field(default_factory=list)
    diagnostics: FinderDiagnostics = field(default_factory=FinderDiagnostics)
    accumulators: Dict[int, Tuple[Accumulator, Accumulator]] = field(default_factory=dict)

    def append_frame(self, fr: FrameResult) -> None:
        offset = len(self.hits)
        self.hits.extend(fr.hits)
        self.flashes.extend(fr.flashes)
        self.associations.extend([h + offset for h in a] for a in fr.associations)
        self.diagnostics.merge(fr.diagnostics)
        if fr.accumulators is not None:
            self.accumulators[fr.frame] = fr.accumulators


def _split_frames(hits: Sequence[OpHit]) -> List[Tuple[int, List[OpHit]]]:
    ordered = sorted(hits, key=lambda h: h.frame)
    return [(frame, list(grp)) for frame, grp in groupby(ordered, key=lambda h: h.frame)]


def _resolve_workers(workers: Union[int, str]) -> int:
    if workers == "auto":
        return max(1, os.cpu_count() or 1)
    if isinstance(workers, int):
        return max(0, workers)
    raise ValueError("workers must be int or 'auto'")


def run_flash_finder(
    hits: Sequence[OpHit],
    geometry: OpDetGeometry,
    clock: DetectorClock,
    params: FlashParams,
    *,
    workers: Union[int, Literal["auto"]] = 0,
    progress: bool = False,
    diagnostics_level: int = 1,
    keep_accumulators: bool = False,
) -> FlashFinderResult:
    """
    Find flashes in every frame present in hits.

    Frames share no state, so with workers > 0 they are farmed out to a
    process pool. Results are always merged in ascending frame order, so
    the output does not depend on the number of workers.
    """
    frames = _split_frames(hits)
    n_workers = _resolve_workers(workers)
    result = FlashFinderResult()

    def _args(frame, frame_hits):
        return (frame, frame_hits, geometry, clock, params, diagnostics_level, keep_accumulators)

    pbar = tqdm(total=len(frames), desc="frames", unit="frame") if progress else None

    if n_workers == 0 or len(frames) < 2:
        for frame, frame_hits in frames:
            result.append_frame(process_frame(*_args(frame, frame_hits)))
            if pbar:
                pbar.update(1)
    else:
        with ProcessPoolExecutor(max_workers=n_workers) as ex:
            futs = [ex.submit(process_frame, *_args(frame, frame_hits)) for frame, frame_hits in frames]
            # submission order == frame order
            for fut in futs:
                result.append_frame(fut.result())
                if pbar:
                    pbar.update(1)
    if pbar:
        pbar.close()

    return result


def run_pipeline(
    cfg_path: str,
    *,
    workers: Optional[Union[int, str]] = None,
    diagnostics_level: Optional[int] = None,
) -> Path:
    """
    Orchestrate a full run from a TOML config file.

    Reads pulses (or pre-built hits), finds flashes frame by frame and
    writes hits, flashes and associations to the configured HDF5 output.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if workers is not None:
        cfg.run.workers = workers
    if diagnostics_level is not None:
        cfg.run.diagnostics_level = diagnostics_level

    diag_level = cfg.run.diagnostics_level

    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] input={cfg.io.input_path} ({cfg.io.input_kind}) -> output={cfg.io.output_path}")

    geometry = OpDetGeometry.from_cfg(cfg.geometry)
    clock = DetectorClock.from_cfg(cfg.clock)
    params = FlashParams.from_cfg(cfg.flash)

    ingest_diag = FinderDiagnostics()
    if cfg.io.input_kind == "pulses":
        pulses = read_pulses(cfg.io.input_path)
        hits, ingest_diag = hits_from_pulses(
            pulses,
            geometry,
            clock,
            spe_sizes_for(geometry, cfg.geometry.spe_size),
            params.hit_threshold,
            channel_map=cfg.geometry.channel_map,
            diagnostics_level=diag_level,
        )
        if diag_level >= 1:
            print(f"[pipeline] Built {len(hits)} hits from {len(pulses)} pulses "
                  f"({ingest_diag.hits_below_threshold} below threshold)")
    else:
        hits = read_hits(cfg.io.input_path)
        if diag_level >= 1:
            print(f"[pipeline] Read {len(hits)} hits")

    result = run_flash_finder(
        hits,
        geometry,
        clock,
        params,
        workers=cfg.run.workers,
        progress=cfg.run.progress,
        diagnostics_level=diag_level,
        keep_accumulators=cfg.run.dump_accumulators,
    )
    result.diagnostics.merge(ingest_diag)

    if diag_level >= 1:
        d = result.diagnostics
        print(f"[pipeline] {d.frames} frames: {d.provisional_flashes} provisional, "
              f"{d.refined_flashes} refined, {d.late_light_removed} late-light removed, "
              f"{d.flashes_out} flashes")
        if d.reasons:
            print(f"[pipeline] Skipped: {d.reasons}")

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    f = write_init(str(out_path), cfg_path)
    write_results(f, result, geometry.n_channels, geometry.n_planes)
    for frame, grids in result.accumulators.items():
        write_accumulators(f, frame, grids)
    f.close()

    return out_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Optical flash finder (opflash.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-j",
        help="Override [run].workers (0 = single process)",
    ),
    diagnostics: Optional[int] = typer.Option(
        None,
        "--diagnostics",
        "-d",
        help="Override [run].diagnostics_level (0, 1 or 2)",
    ),
):
    """
    Run the flash finder for a single config.
    """
    out_path = run_pipeline(cfg_path, workers=workers, diagnostics_level=diagnostics)
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
