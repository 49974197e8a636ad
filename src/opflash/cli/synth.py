from __future__ import annotations

import typer
import numpy as np

from opflash.io.pulse_store import write_pulses
from opflash.physics.clock import DetectorClock
from opflash.sim.synth import synth_pulses

app = typer.Typer(help="Synthetic optical pulse generator")

@app.command()
def main(
    out: str = typer.Argument(..., help="Output HDF5 file (pulse-store layout)"),
    frames: int = typer.Option(3, "--frames", help="Number of frames"),
    flashes: int = typer.Option(4, "--flashes", help="Prompt flashes per frame"),
    channels: int = typer.Option(32, "--channels", help="Number of optical channels"),
    pe: float = typer.Option(300.0, "--pe", help="Mean prompt PE per flash"),
    spe_size: float = typer.Option(20.0, "--spe-size", help="ADC counts per PE"),
    seed: int = typer.Option(0, "--seed", help="RNG seed"),
):
    """Write synthetic pulses (prompt flashes + late-light tails) for smoke runs."""
    pulses = synth_pulses(
        frames,
        flashes,
        channels,
        DetectorClock(),
        pe_per_flash=pe,
        spe_size=spe_size,
        rng=np.random.default_rng(seed),
    )
    write_pulses(out, pulses)
    typer.echo(f"Wrote {len(pulses)} pulses to {out}")

if __name__ == "__main__":
    app()
