"""Ordinary least squares trend line over the observation index."""

from __future__ import annotations

import numpy as np

from .base import LinearParameters, ModelFit, ModelTag

LINEAR_TAG = ModelTag("linear")


def _check_inputs(values: np.ndarray, horizon: int) -> np.ndarray:
  values = np.asarray(values, dtype=np.float64)
  if len(values) < 2:
    raise ValueError("At least two values are required for forecasting.")
  if horizon <= 0:
    raise ValueError("Horizon must be positive for forecasting.")
  return values


def fit_linear(values: np.ndarray, horizon: int) -> ModelFit:
  """Fits y = intercept + slope * t with t = 0..n-1 and extends it `horizon` steps.

  Irregular gaps between timestamps are not rescaled; the index is the clock.
  """
  values = _check_inputs(values, horizon)
  n = len(values)
  t = np.arange(n, dtype=np.float64)
  t_mean = t.mean()
  y_mean = values.mean()
  slope = float(np.sum((t - t_mean) * (values - y_mean)) / np.sum((t - t_mean) ** 2))
  intercept = float(y_mean - slope * t_mean)

  fitted = intercept + slope * t
  residuals = values - fitted
  ss_res = float(np.sum(residuals**2))
  ss_tot = float(np.sum((values - y_mean) ** 2))
  if ss_tot > 0:
    r_squared = 1.0 - ss_res / ss_tot
  else:
    r_squared = 1.0 if ss_res == 0 else 0.0

  future_index = np.arange(n, n + horizon, dtype=np.float64)
  forecast = intercept + slope * future_index
  return ModelFit(
      tag=LINEAR_TAG,
      parameters=LinearParameters(slope=slope, intercept=intercept, r_squared=r_squared),
      fitted_values=fitted,
      forecast_values=forecast,
      residuals=residuals,
  )
