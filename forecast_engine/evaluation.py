"""Accuracy scoring for fitted candidates.

Series with at least `min_holdout_length` points are scored out of sample:
the trailing holdout is withheld, the candidate is refitted on the prefix and
accuracy is 1 - MAPE on the withheld points. Shorter series (or candidates
that cannot be refitted on the shorter prefix) fall back to in-sample fit
quality, 1 - NRMSE. The two scores are not strictly comparable; the strategy
used is recorded on every AccuracyReport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np

from .base import ModelFit
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ModelNotViableError

logger = logging.getLogger(__name__)

HOLDOUT = "holdout"
IN_SAMPLE = "in_sample"
IN_SAMPLE_FALLBACK = "in_sample_fallback"

# Refits a candidate on `values` and forecasts `horizon` steps.
Refitter = Callable[[np.ndarray, int], ModelFit]


@dataclass(frozen=True)
class ForecastErrors:
  mse: float
  mae: float
  rmse: float
  mape: float


@dataclass(frozen=True)
class AccuracyReport:
  accuracy: float
  strategy: str
  holdout_length: int
  error: float


def calculate_mape(actual: np.ndarray, predicted: np.ndarray, epsilon: float = DEFAULT_CONFIG.epsilon) -> float:
  """Mean absolute percentage error as a fraction, with |actual| floored at epsilon."""
  actual = np.asarray(actual, dtype=np.float64)
  predicted = np.asarray(predicted, dtype=np.float64)
  denominator = np.maximum(np.abs(actual), epsilon)
  return float(np.mean(np.abs(actual - predicted) / denominator))


def calculate_rmse(residuals: np.ndarray) -> float:
  """Root mean square, scaled by the largest magnitude so huge residuals do not overflow."""
  residuals = np.asarray(residuals, dtype=np.float64)
  if residuals.size == 0:
    return 0.0
  scale = float(np.max(np.abs(residuals)))
  if scale == 0.0 or not np.isfinite(scale):
    return scale
  return scale * float(np.sqrt(np.mean((residuals / scale) ** 2)))


def calculate_nrmse(values: np.ndarray, residuals: np.ndarray, epsilon: float = DEFAULT_CONFIG.epsilon) -> float:
  """RMSE of the residuals divided by the range of the observed values."""
  values = np.asarray(values, dtype=np.float64)
  spread = float(np.max(values) - np.min(values))
  return calculate_rmse(residuals) / (spread + epsilon)


def calculate_errors(actual: np.ndarray, predicted: np.ndarray, epsilon: float = DEFAULT_CONFIG.epsilon) -> ForecastErrors:
  """MSE, MAE, RMSE and MAPE (as a fraction) for aligned sequences."""
  actual = np.asarray(actual, dtype=np.float64)
  predicted = np.asarray(predicted, dtype=np.float64)
  if actual.shape != predicted.shape:
    raise ValueError("Actual and predicted values must have the same length.")
  errors = actual - predicted
  mse = float(np.mean(errors**2))
  return ForecastErrors(
      mse=mse,
      mae=float(np.mean(np.abs(errors))),
      rmse=float(np.sqrt(mse)),
      mape=calculate_mape(actual, predicted, epsilon),
  )


def holdout_length(n: int, periods: int, config: EngineConfig = DEFAULT_CONFIG) -> int:
  """Number of trailing points withheld for scoring, or 0 for in-sample scoring."""
  if n < config.min_holdout_length:
    return 0
  return max(1, min(periods, int(n * config.holdout_fraction)))


def _clip(score: float) -> float:
  if not np.isfinite(score):
    return 0.0
  return float(min(1.0, max(0.0, score)))


def in_sample_accuracy(values: np.ndarray, fit: ModelFit, config: EngineConfig = DEFAULT_CONFIG) -> float:
  return _clip(1.0 - calculate_nrmse(values, fit.residuals, config.epsilon))


def score_candidate(
    values: np.ndarray,
    fit: ModelFit,
    refit: Refitter,
    periods: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> AccuracyReport:
  """Scores a candidate already fitted on the full `values`."""
  values = np.asarray(values, dtype=np.float64)
  horizon = holdout_length(len(values), periods, config)
  if horizon == 0:
    nrmse = calculate_nrmse(values, fit.residuals, config.epsilon)
    return AccuracyReport(_clip(1.0 - nrmse), IN_SAMPLE, 0, nrmse)

  training, actual = values[:-horizon], values[-horizon:]
  try:
    backtest = refit(training, horizon)
  except ModelNotViableError as exc:
    logger.debug("%s could not be refitted for the holdout (%s); scoring in sample.", fit.tag.label, exc)
    nrmse = calculate_nrmse(values, fit.residuals, config.epsilon)
    return AccuracyReport(_clip(1.0 - nrmse), IN_SAMPLE_FALLBACK, 0, nrmse)

  mape = calculate_mape(actual, backtest.forecast_values[:horizon], config.epsilon)
  return AccuracyReport(_clip(1.0 - mape), HOLDOUT, horizon, mape)
