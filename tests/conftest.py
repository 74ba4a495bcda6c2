"""Shared fixtures: date ranges and synthetic series."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

import numpy as np
import pandas as pd
import pytest

from forecast_engine import TimeSeriesPoint


def make_points(values, start: datetime = datetime(2024, 1, 1), step: timedelta = timedelta(days=1)) -> List[TimeSeriesPoint]:
  return [TimeSeriesPoint(start + step * idx, float(value)) for idx, value in enumerate(values)]


def make_monthly_points(values, start: str = "2021-01-01") -> List[TimeSeriesPoint]:
  dates = pd.date_range(start=start, periods=len(values), freq="MS")
  return [TimeSeriesPoint(ts.to_pydatetime(), float(value)) for ts, value in zip(dates, values)]


@pytest.fixture
def rng():
  return np.random.default_rng(42)


@pytest.fixture
def linear_values():
  return 10.0 + 2.5 * np.arange(24, dtype=np.float64)


@pytest.fixture
def constant_values():
  return np.full(12, 5.0)


@pytest.fixture
def seasonal_values(rng):
  """Four years of monthly data: trend, period-12 seasonality and mild noise."""
  t = np.arange(48, dtype=np.float64)
  return 100.0 + 0.5 * t + 20.0 * np.sin(2.0 * np.pi * t / 12.0) + rng.normal(0.0, 1.0, size=48)


@pytest.fixture
def noisy_values(rng):
  return 50.0 + rng.normal(0.0, 3.0, size=40)


@pytest.fixture
def ar_values(rng):
  """AR(1) with phi = 0.7 around a mean of 20."""
  shocks = rng.normal(0.0, 1.0, size=200)
  series = np.zeros(200)
  for t in range(1, 200):
    series[t] = 0.7 * series[t - 1] + shocks[t]
  return series + 20.0


@pytest.fixture
def daily_points(linear_values):
  return make_points(linear_values)


@pytest.fixture
def monthly_seasonal_points(seasonal_values):
  return make_monthly_points(seasonal_values)
