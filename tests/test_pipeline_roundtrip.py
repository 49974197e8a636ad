from pathlib import Path

import h5py
import numpy as np
import pytest
from pydantic import ValidationError

from opflash.config.load import load_config
from opflash.clustering.accumulator import make_accumulators
from opflash.io.flash_store import read_accumulator, read_flashes, write_accumulators
from opflash.io.pulse_store import read_hits, read_pulses, write_pulses
from opflash.physics.clock import DetectorClock
from opflash.pipelines.core import run_pipeline
from opflash.sim.synth import synth_pulses
from opflash.vis.hdf import save_accumulator_png

N_CHANNELS = 8

CONFIG = """
[run]
workers = 0
progress = false
diagnostics_level = 0
dump_accumulators = true

[io]
input_path = "{inp}"
output_path = "{out}"

[clock]
frame_ticks = 6400
tick_period = 0.015625
trigger_frame = 1

[geometry]
positions = {positions}
spe_size = 20.0

[[geometry.planes]]
angle_deg = 0.0
pitch_cm = 0.3
n_wires = 2400

[[geometry.planes]]
angle_deg = 60.0
pitch_cm = 0.3
n_wires = 2400

[flash]
bin_width = 0.15625
hit_threshold = 10.0
flash_threshold = 7.0
"""


def _write_config(tmp_path: Path, **overrides) -> Path:
    positions = [[0.0, 5.0 * (k % 2), 20.0 * k] for k in range(N_CHANNELS)]
    text = CONFIG.format(
        inp=(tmp_path / "pulses.h5").as_posix(),
        out=(tmp_path / "out" / "flashes.h5").as_posix(),
        positions=positions,
    )
    for old, new in overrides.items():
        text = text.replace(old, new)
    cfg_path = tmp_path / "run.toml"
    cfg_path.write_text(text)
    return cfg_path


def test_load_config_defaults(tmp_path):
    cfg = load_config(_write_config(tmp_path))
    assert cfg.io.input_kind == "pulses"
    assert cfg.clock.padding_ticks == 3000
    assert cfg.flash.width_tolerance == 0.5
    assert cfg.flash.decay_constant == 1.6
    assert len(cfg.geometry.positions) == N_CHANNELS
    assert len(cfg.geometry.planes) == 2


def test_relative_paths_follow_config_dir(tmp_path):
    cfg_path = _write_config(
        tmp_path,
        **{'input_path = "' + (tmp_path / "pulses.h5").as_posix() + '"': 'input_path = "data/pulses.h5"'},
    )
    cfg = load_config(cfg_path)
    assert Path(cfg.io.input_path) == tmp_path.resolve() / "data" / "pulses.h5"
    assert Path(cfg.io.output_path) == tmp_path / "out" / "flashes.h5"


def test_bad_config_is_rejected(tmp_path):
    with pytest.raises(ValidationError):
        load_config(_write_config(tmp_path, **{"bin_width = 0.15625": "bin_width = 0.0"}))
    with pytest.raises(ValidationError):
        load_config(_write_config(tmp_path, **{"diagnostics_level = 0": "diagnostics_level = 5"}))


def test_pulse_store_roundtrip(tmp_path):
    pulses = synth_pulses(1, 2, N_CHANNELS, DetectorClock(), rng=np.random.default_rng(1))
    write_pulses(tmp_path / "p.h5", pulses)
    assert read_pulses(tmp_path / "p.h5") == pulses


def test_run_pipeline_end_to_end(tmp_path):
    cfg_path = _write_config(tmp_path)
    clock = DetectorClock(frame_ticks=6400, tick_period=0.015625, trigger_frame=1)
    pulses = synth_pulses(3, 2, N_CHANNELS, clock, pe_per_flash=250.0, spe_size=20.0,
                          rng=np.random.default_rng(3))
    write_pulses(tmp_path / "pulses.h5", pulses)

    out = run_pipeline(str(cfg_path))
    assert out.exists()

    flashes, assoc = read_flashes(out)
    hits = read_hits(out)
    assert len(flashes) == len(assoc) > 0
    seen = [i for a in assoc for i in a]
    assert len(seen) == len(set(seen))
    assert max(seen) < len(hits)
    for fl, a in zip(flashes, assoc):
        assert fl.pe_per_channel.shape == (N_CHANNELS,)
        assert fl.wire_centers.shape == (2,)
        assert fl.total_pe == pytest.approx(sum(hits[i].pe for i in a))
        assert fl.in_beam_frame == (fl.frame == 1)

    with h5py.File(out, "r") as f:
        assert f.attrs["format_version"] == "1.0"
        assert "diagnostics" in f.attrs
        assert "accumulators/frame_0" in f

    b0, b1, width = read_accumulator(out, 0)
    assert width == pytest.approx(0.15625)
    assert b0.sum() == pytest.approx(b1.sum())

    png = save_accumulator_png(str(out), 0)
    assert Path(png).exists()


def test_run_pipeline_from_hits(tmp_path):
    cfg_path = _write_config(tmp_path)
    clock = DetectorClock(frame_ticks=6400, tick_period=0.015625, trigger_frame=1)
    write_pulses(tmp_path / "pulses.h5",
                 synth_pulses(2, 2, N_CHANNELS, clock, spe_size=20.0, rng=np.random.default_rng(5)))
    first = run_pipeline(str(cfg_path))
    flashes_a, assoc_a = read_flashes(first)

    # feed the stored hits back in
    hits_cfg = _write_config(
        tmp_path,
        **{
            'input_path = "' + (tmp_path / "pulses.h5").as_posix() + '"':
                'input_path = "' + first.as_posix() + '"\ninput_kind = "hits"',
            'output_path = "' + (tmp_path / "out" / "flashes.h5").as_posix() + '"':
                'output_path = "' + (tmp_path / "out" / "from_hits.h5").as_posix() + '"',
        },
    )
    second = run_pipeline(str(hits_cfg))
    assert second.name == "from_hits.h5"
    assert read_hits(second) == read_hits(first)
    flashes_b, assoc_b = read_flashes(second)
    assert assoc_b == assoc_a
    assert [f.time for f in flashes_b] == pytest.approx([f.time for f in flashes_a])


def test_accumulator_dump_keeps_full_precision(tmp_path):
    grids = make_accumulators(4, 0.15625)
    grids[0].fill(1, 0, 0.1 + 1e-12, 7.0)
    grids[1].fill(2, 0, 7.000000001, 7.0)
    path = tmp_path / "acc.h5"
    with h5py.File(path, "w") as f:
        write_accumulators(f, 3, grids)
    with h5py.File(path, "r") as f:
        assert f["accumulators/frame_3/binned_0"].dtype == np.float64
    b0, b1, _ = read_accumulator(path, 3)
    assert b0[1] == 0.1 + 1e-12
    assert b1[2] == 7.000000001
