import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from pathlib import Path

from opflash.io.flash_store import read_accumulator

def save_accumulator_png(h5_path: str, frame: int, out_png: str | None = None):
    """Render both coarse accumulators of one frame as PE-vs-time step histograms."""
    h5_path = str(h5_path)
    binned_0, binned_1, bin_width = read_accumulator(h5_path, frame)

    if out_png is None:
        out_png = str(Path(h5_path).with_name(f"{Path(h5_path).stem}_frame{frame}.png"))

    edges_0 = np.arange(binned_0.size + 1) * bin_width
    edges_1 = edges_0 - 0.5 * bin_width

    plt.figure()
    plt.stairs(binned_0, edges_0, label="offset 0")
    plt.stairs(binned_1, edges_1, label="offset W/2")
    plt.xlabel("Time (us)")
    plt.ylabel("PE")
    plt.legend()
    plt.title(Path(h5_path).name + f" : frame {frame}")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png
