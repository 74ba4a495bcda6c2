"""Symmetric prediction intervals around a point forecast."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import numpy as np
from scipy import stats

from .base import ConfidenceInterval, TimeSeriesPoint
from .evaluation import calculate_rmse


def z_score(level: float) -> float:
  """Two-sided standard normal quantile for a confidence level in (0, 1)."""
  if not 0.0 < level < 1.0:
    raise ValueError(f"Confidence level must lie strictly between 0 and 1; got {level}.")
  return float(stats.norm.ppf((1.0 + level) / 2.0))


def residual_std(residuals: Sequence[float]) -> float:
  """Root mean square of the residuals; 0 for an empty sequence."""
  return calculate_rmse(residuals)


def half_widths(residuals: Sequence[float], horizon: int, level: float) -> np.ndarray:
  """Interval half-width for steps 1..horizon, growing with sqrt(step)."""
  steps = np.arange(1, horizon + 1, dtype=np.float64)
  return z_score(level) * residual_std(residuals) * np.sqrt(steps)


def build_confidence_interval(
    forecast_values: Sequence[float],
    timestamps: Sequence[datetime],
    residuals: Sequence[float],
    level: float,
) -> ConfidenceInterval:
  forecast_values = np.asarray(forecast_values, dtype=np.float64)
  if len(forecast_values) != len(timestamps):
    raise ValueError("Forecast values and timestamps must be aligned.")
  widths = half_widths(residuals, len(forecast_values), level)
  upper = tuple(
      TimeSeriesPoint(ts, float(value + width))
      for ts, value, width in zip(timestamps, forecast_values, widths)
  )
  lower = tuple(
      TimeSeriesPoint(ts, float(value - width))
      for ts, value, width in zip(timestamps, forecast_values, widths)
  )
  return ConfidenceInterval(upper=upper, lower=lower, confidence=float(level))
