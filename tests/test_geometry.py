import math

import numpy as np
import pytest

from opflash.config.schemas import GeometryCfg
from opflash.geometry.channels import OpDetGeometry, WirePlane, spe_sizes_for

def test_nearest_wire_and_clipping():
    pl = WirePlane(angle_rad=0.0, pitch_cm=0.5, offset_cm=1.0, n_wires=10)
    assert pl.nearest_wire(np.array([0.0, 3.0, 3.1])) == 4
    assert pl.nearest_wire(np.array([0.0, 0.0, -20.0])) == 0
    assert pl.nearest_wire(np.array([0.0, 0.0, 500.0])) == 9

def test_inclined_plane_uses_y():
    pl = WirePlane(angle_rad=math.pi / 2, pitch_cm=1.0, n_wires=100)
    assert pl.nearest_wire(np.array([0.0, 7.2, 40.0])) == 7

def test_geometry_from_cfg_file(tmp_path):
    p = tmp_path / "opdet.txt"
    p.write_text("0 0 0\n0 10 20\n0 -10 40\n")
    cfg = GeometryCfg(positions_path=str(p), planes=[{"angle_deg": 90.0, "pitch_cm": 1.0, "n_wires": 50}])
    geom = OpDetGeometry.from_cfg(cfg)
    assert geom.n_channels == 3 and geom.n_planes == 1
    assert geom.is_valid_channel(2) and not geom.is_valid_channel(3) and not geom.is_valid_channel(-1)
    np.testing.assert_allclose(geom.center(1), [0, 10, 20])
    assert geom.nearest_wire(geom.center(1), 0) == 10

def test_spe_sizes():
    geom = OpDetGeometry([[0, 0, 0], [0, 0, 1]])
    np.testing.assert_allclose(spe_sizes_for(geom, 20.0), [20.0, 20.0])
    np.testing.assert_allclose(spe_sizes_for(geom, [18.0, 22.0]), [18.0, 22.0])
    with pytest.raises(ValueError):
        spe_sizes_for(geom, [1.0, 2.0, 3.0])

def test_empty_geometry_rejected():
    with pytest.raises(ValueError):
        OpDetGeometry.from_cfg(GeometryCfg())
