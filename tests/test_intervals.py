from __future__ import annotations

import math
from datetime import datetime, timedelta

import numpy as np
import pytest

from forecast_engine.intervals import build_confidence_interval, half_widths, residual_std, z_score


def test_z_score_for_common_levels():
  assert z_score(0.95) == pytest.approx(1.959964, abs=1e-6)
  assert z_score(0.8) == pytest.approx(1.281552, abs=1e-6)


@pytest.mark.parametrize("level", [0.0, 1.0, -0.5, 1.5])
def test_z_score_rejects_levels_outside_unit_interval(level):
  with pytest.raises(ValueError):
    z_score(level)


def test_residual_std_is_root_mean_square():
  assert residual_std([2.0, -2.0, 2.0, -2.0]) == pytest.approx(2.0)
  assert residual_std([]) == 0.0


def test_residual_std_does_not_overflow_for_huge_residuals():
  assert residual_std([3e200, -4e200]) == pytest.approx(math.sqrt(12.5) * 1e200)
  assert np.all(np.isfinite(half_widths([3e300, -4e300], 3, 0.95)))


def test_half_width_for_unit_step():
  widths = half_widths([2.0, -2.0], 1, 0.95)
  assert widths[0] == pytest.approx(3.92, abs=0.001)


def test_half_widths_grow_with_sqrt_of_step():
  widths = half_widths([1.0, -1.0], 4, 0.95)
  assert np.all(np.diff(widths) >= 0)
  assert widths[3] == pytest.approx(2.0 * widths[0])


def test_interval_brackets_forecast():
  start = datetime(2024, 1, 1)
  timestamps = [start + timedelta(days=k) for k in range(3)]
  interval = build_confidence_interval([5.0, 6.0, 7.0], timestamps, [1.0, -1.0, 0.5], 0.9)
  assert interval.confidence == 0.9
  for upper, lower, value, ts in zip(interval.upper, interval.lower, [5.0, 6.0, 7.0], timestamps):
    assert upper.timestamp == lower.timestamp == ts
    assert upper.value >= value >= lower.value


def test_zero_residuals_give_degenerate_interval():
  interval = build_confidence_interval([5.0], [datetime(2024, 1, 1)], [0.0, 0.0], 0.95)
  assert interval.upper[0].value == interval.lower[0].value == 5.0


def test_misaligned_timestamps_are_rejected():
  with pytest.raises(ValueError):
    build_confidence_interval([1.0, 2.0], [datetime(2024, 1, 1)], [0.1], 0.95)
