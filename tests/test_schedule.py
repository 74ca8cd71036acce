from datetime import datetime

import pytest

from backlightd.domain.models import CircadianCurve
from backlightd.domain.schedule import CircadianBias


def _bias(**kw) -> CircadianBias:
    base = dict(enabled=True, day_boost=1.1, night_dim=0.9, day_start_hour=7, night_start_hour=20)
    base.update(kw)
    return CircadianBias(CircadianCurve(**base))


def test_disabled_is_neutral_at_every_hour():
    bias = _bias(enabled=False)
    assert all(bias.bias(h) == 1.0 for h in range(24))


@pytest.mark.parametrize("hour,expected", [(6, 0.9), (7, 1.1), (12, 1.1), (19, 1.1), (20, 0.9), (23, 0.9), (0, 0.9)])
def test_day_window(hour, expected):
    assert _bias().bias(hour) == expected


@pytest.mark.parametrize("hour,expected", [(17, 0.9), (18, 1.1), (23, 1.1), (0, 1.1), (3, 1.1), (4, 0.9), (10, 0.9)])
def test_day_window_wrapping_midnight(hour, expected):
    bias = _bias(day_start_hour=18, night_start_hour=4)
    assert bias.bias(hour) == expected


def test_day_is_complement_of_night():
    bias = _bias(day_start_hour=22, night_start_hour=6)
    days = {h for h in range(24) if bias.is_day(h)}
    assert days == {22, 23, 0, 1, 2, 3, 4, 5}


def test_equal_hours_mean_no_day():
    bias = _bias(day_start_hour=9, night_start_hour=9)
    assert all(bias.bias(h) == 0.9 for h in range(24))


def test_bias_at_uses_local_hour():
    bias = _bias()
    assert bias.bias_at(datetime(2024, 1, 1, 13, 30)) == 1.1
    assert bias.bias_at(datetime(2024, 1, 1, 2, 0)) == 0.9
