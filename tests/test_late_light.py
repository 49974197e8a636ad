import math

import numpy as np
import pytest

from opflash.clustering.late_light import (
    NOT_LATE_LIGHT,
    late_light_significance,
    mark_flashes_for_removal,
    remove_late_light,
)
from opflash.physics.flashes import OpFlash

# tau chosen so that a 100 PE flash predicts 6 PE two time units later
TAU = 2.0 / math.log(100.0 / 6.0)


def _flash(pe, t, width=1.0):
    return OpFlash(
        time=t, time_width=width, abs_time=t, frame=0,
        pe_per_channel=np.array([pe], dtype=float),
        in_beam_frame=False, on_beam_time=0, fast_to_total=0.0,
        y_center=0.0, y_width=0.0, z_center=0.0, z_width=0.0,
        wire_centers=np.zeros(0), wire_widths=np.zeros(0),
    )


def test_significance_of_afterglow():
    score = late_light_significance(100.0, 0.0, 1.0, 5.0, 2.0, 1.0, TAU)
    assert score == pytest.approx((5.0 - 6.0) / math.sqrt(6.0))


def test_earlier_j_is_not_comparable():
    assert late_light_significance(100.0, 3.0, 1.0, 5.0, 2.0, 1.0, TAU) == NOT_LATE_LIGHT


def test_degenerate_widths_never_remove():
    assert late_light_significance(100.0, 0.0, 0.0, 5.0, 2.0, 1.0, TAU) == NOT_LATE_LIGHT
    assert late_light_significance(100.0, 0.0, 1.0, 5.0, 2.0, 0.0, TAU) == NOT_LATE_LIGHT


def test_afterglow_flash_is_removed():
    flashes = [_flash(100.0, 0.0), _flash(5.0, 2.0)]
    assoc = [[0, 1], [2]]
    removed = remove_late_light(flashes, assoc, decay_constant=TAU, significance_cutoff=3.0)
    assert removed == 1
    assert [f.total_pe for f in flashes] == [100.0]
    assert assoc == [[0, 1]]


def test_bright_later_flash_survives():
    flashes = [_flash(100.0, 0.0), _flash(50.0, 2.0)]
    assoc = [[0], [1]]
    assert remove_late_light(flashes, assoc, decay_constant=TAU) == 0
    assert len(flashes) == len(assoc) == 2


def test_associations_follow_time_sort():
    flashes = [_flash(5.0, 2.0), _flash(100.0, 0.0), _flash(80.0, 50.0)]
    assoc = [[7], [3, 4], [9]]
    remove_late_light(flashes, assoc, decay_constant=TAU)
    assert [f.time for f in flashes] == [0.0, 50.0]
    assert assoc == [[3, 4], [9]]


def test_only_suffix_is_considered():
    flashes = [_flash(100.0, 0.0), _flash(5.0, 2.0)]
    assoc = [[0], [1]]
    assert remove_late_light(flashes, assoc, begin=1, decay_constant=TAU) == 0
    assert len(flashes) == 2


def test_suppression_is_idempotent():
    flashes = [_flash(100.0, 0.0), _flash(5.0, 2.0), _flash(40.0, 1.0), _flash(2.0, 6.0), _flash(90.0, 30.0)]
    assoc = [[k] for k in range(len(flashes))]
    remove_late_light(flashes, assoc, decay_constant=TAU)
    kept = list(flashes)
    assert remove_late_light(flashes, assoc, decay_constant=TAU) == 0
    assert [f.time for f in flashes] == [f.time for f in kept]
    assert len(flashes) == len(assoc)


def test_every_afterglow_of_a_flash_is_marked():
    flashes = [_flash(100.0, 0.0), _flash(5.0, 2.0), _flash(5.0, 2.5)]
    marked = mark_flashes_for_removal(flashes, TAU, 3.0)
    assert marked == [False, True, True]


def test_misaligned_lists_raise():
    with pytest.raises(ValueError):
        remove_late_light([_flash(1.0, 0.0)], [])
