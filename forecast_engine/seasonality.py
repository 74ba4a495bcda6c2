"""Seasonal period detection from sample autocorrelation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from statsmodels.tsa.stattools import acf

from .config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

_FLAT_VARIANCE = 1e-10


@dataclass(frozen=True)
class SeasonalityResult:
  has_seasonality: bool
  period: Optional[int] = None
  autocorrelation: Optional[float] = None
  source: str = "none"


def autocorrelation(values: np.ndarray, max_lag: int) -> np.ndarray:
  """Biased sample autocorrelation for lags 0..max_lag.

  Series with (near) zero variance have no defined autocorrelation; all lags
  are reported as zero so callers treat them as structureless.
  """
  values = np.asarray(values, dtype=np.float64)
  max_lag = max(0, min(int(max_lag), len(values) - 1))
  if len(values) == 0 or np.var(values) < _FLAT_VARIANCE:
    return np.zeros(max_lag + 1, dtype=np.float64)
  return np.asarray(acf(values, adjusted=False, nlags=max_lag, fft=False), dtype=np.float64)


def _local_maxima(correlations: np.ndarray, max_lag: int):
  for lag in range(2, max_lag + 1):
    right = correlations[lag + 1] if lag + 1 < len(correlations) else -np.inf
    if correlations[lag] > correlations[lag - 1] and correlations[lag] >= right:
      yield lag


def detect_seasonality(
    values: np.ndarray,
    hint: Optional[bool] = None,
    *,
    period: Optional[int] = None,
    threshold: float = DEFAULT_CONFIG.seasonality_threshold,
) -> SeasonalityResult:
  """Returns whether the series repeats and, if so, its period.

  `hint=False` skips detection entirely. An explicit `period` is trusted as
  long as the series spans two full cycles. This function never raises.
  """
  if hint is False:
    return SeasonalityResult(False, source="disabled")

  n = len(values)
  if period is not None:
    if n >= 2 * period:
      correlations = autocorrelation(values, period)
      value = float(correlations[period]) if len(correlations) > period else None
      return SeasonalityResult(True, period, value, "configured")
    logger.info("Configured seasonal period %d needs %d points; series has %d.", period, 2 * period, n)
    return SeasonalityResult(False, source="none")

  max_lag = n // 2
  if max_lag < 2:
    return SeasonalityResult(False, source="none")

  correlations = autocorrelation(values, max_lag + 1)
  maxima = list(_local_maxima(correlations, max_lag))
  chosen = next((lag for lag in maxima if correlations[lag] > threshold), None)

  if chosen is None and hint is True:
    positive = [lag for lag in maxima if correlations[lag] > 0]
    if positive:
      chosen = max(positive, key=lambda lag: correlations[lag])

  if chosen is None or n < 2 * chosen:
    return SeasonalityResult(False, source="none")

  logger.debug("Detected seasonal period %d (acf=%.3f).", chosen, correlations[chosen])
  return SeasonalityResult(True, chosen, float(correlations[chosen]), "detected")
