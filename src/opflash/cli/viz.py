from __future__ import annotations

import typer
from typing import Optional

from opflash.vis.hdf import save_accumulator_png

app = typer.Typer(help="Flash finder visualization tools")

@app.command("accum-to-png")
def accum_to_png(
    h5_path: str = typer.Argument(..., help="Output HDF5 file written with [run].dump_accumulators = true"),
    frame: int = typer.Option(..., "--frame", "-f", help="Frame whose accumulators to draw"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to <file>_frame<k>.png)"),
):
    """Render the two coarse accumulators of one frame to a PNG."""
    out_png = save_accumulator_png(h5_path, frame, out_png=out)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
