import math

import numpy as np
import pytest

from opflash.clustering.construct import calculate_width, construct_flash
from opflash.geometry.channels import OpDetGeometry, WirePlane
from opflash.physics.hits import OpHit


def _geometry():
    positions = [[0.0, 0.0, 0.0], [0.0, 10.0, 20.0], [0.0, -10.0, 40.0]]
    return OpDetGeometry(positions, [WirePlane(angle_rad=0.0, pitch_cm=1.0, n_wires=100)])


def _hit(channel, t, pe, frame=1):
    return OpHit(channel=channel, peak_time=t, peak_time_abs=100.0 + t, frame=frame,
                 width=0.5, area=0.0, amplitude=pe, pe=pe, fast_to_total=0.25)


def test_calculate_width_keeps_summed_form():
    assert calculate_width(2.0, 3.0, 4.0) == pytest.approx(1.0)
    assert calculate_width(60.0, 600.0, 10.0) == pytest.approx(math.sqrt(9600.0) / 10.0)


def test_construct_flash_weighted_quantities():
    hits = [_hit(0, 1.0, 4.0), _hit(1, 1.5, 6.0)]
    fl = construct_flash([0, 1], hits, _geometry(), trigger_frame=1, frame=1, coincidence_window=3.5)

    assert fl.total_pe == pytest.approx(10.0)
    np.testing.assert_allclose(fl.pe_per_channel, [4.0, 6.0, 0.0])
    assert fl.time == pytest.approx(1.3)
    assert fl.time_width == pytest.approx(0.25)
    assert fl.abs_time == pytest.approx(101.3)
    assert fl.fast_to_total == pytest.approx(0.25)
    assert fl.y_center == pytest.approx(6.0)
    assert fl.y_width == pytest.approx(math.sqrt(9600.0) / 10.0)
    assert fl.z_center == pytest.approx(12.0)
    assert fl.z_width == pytest.approx(calculate_width(120.0, 2400.0, 10.0))
    np.testing.assert_allclose(fl.wire_centers, [12.0])
    assert fl.frame == 1
    assert fl.in_beam_frame is True
    assert fl.on_beam_time == 1


def test_beam_flags():
    hits = [_hit(0, 5.0, 12.0, frame=2)]
    fl = construct_flash([0], hits, _geometry(), trigger_frame=1, frame=2, coincidence_window=3.5)
    assert fl.in_beam_frame is False
    assert fl.on_beam_time == 0
    assert fl.time_width == 0.0


def test_pe_per_channel_sums_to_total():
    hits = [_hit(k % 3, 0.1 * k, 1.0 + k) for k in range(9)]
    fl = construct_flash(list(range(9)), hits, _geometry(), 1, 1, 3.5)
    assert fl.pe_per_channel.sum() == pytest.approx(sum(h.pe for h in hits))


def test_zero_pe_group_is_an_error():
    hits = [_hit(0, 1.0, 0.0)]
    with pytest.raises(ValueError):
        construct_flash([0], hits, _geometry(), 1, 1, 3.5)
