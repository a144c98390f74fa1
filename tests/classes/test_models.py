from decimal import Decimal

import pytest

from jackpot_sync.classes.models import ProgressProjection, clamp, to_base_units, to_decimal_amount


def test_projection_advances_with_wall_clock():
    projection = ProgressProjection(anchor_timestamp=1000, anchor_progress=100, last_poll_time=50.0)

    assert projection.project(50.0, 600) == 100
    assert projection.project(62.9, 600) == 112
    assert projection.project(10_000.0, 600) == 600


def test_projection_ignores_clock_moving_backwards():
    projection = ProgressProjection(anchor_timestamp=1000, anchor_progress=100, last_poll_time=50.0)

    assert projection.project(40.0, 600) == 100


def test_clamp():
    assert clamp(-1, 0, 10) == 0
    assert clamp(5, 0, 10) == 5
    assert clamp(11, 0, 10) == 10


def test_to_decimal_amount():
    assert to_decimal_amount(15 * 10**17) == Decimal("1.5")
    assert to_decimal_amount(2_500_000, 6) == Decimal("2.5")
    assert to_decimal_amount(Decimal("3")) == Decimal(3)


@pytest.mark.parametrize("raw", ["100", 1.5, True, None])
def test_to_decimal_amount_rejects_non_integers(raw):
    with pytest.raises(TypeError):
        to_decimal_amount(raw)


def test_to_base_units():
    assert to_base_units("0.01") == 10**16
    assert to_base_units(Decimal("2.5"), 6) == 2_500_000
    assert to_base_units(1) == 10**18


def test_to_base_units_rejects_excess_precision():
    with pytest.raises(ValueError):
        to_base_units("0.0000001", 6)
