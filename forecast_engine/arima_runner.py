"""Approximate ARIMA(p, d, q) fitting and recursive forecasting.

Estimation is deliberately lightweight: AR coefficients come from the
Yule-Walker equations on the differenced series and MA coefficients from a
bounded number of innovations refinement rounds on the AR residuals. These are
approximations, not exact maximum-likelihood estimates, so accuracy scores are
not directly comparable with a full state-space ARIMA fit.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import linalg, signal
from statsmodels.tsa.stattools import pacf

from .base import ArimaParameters, ModelFit, ModelTag
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ModelNotViableError
from .seasonality import autocorrelation

logger = logging.getLogger(__name__)

ARIMA_TAG = ModelTag("arima")

_FLAT_VARIANCE = 1e-10


@dataclass(frozen=True)
class _ArmaFit:
  """ARMA estimate on the (already differenced) series."""

  mean: float
  ar: np.ndarray
  ma: np.ndarray
  innovations: np.ndarray


def difference(values: np.ndarray, order: int = 1) -> np.ndarray:
  values = np.asarray(values, dtype=np.float64)
  if order <= 0:
    return values.copy()
  if len(values) <= order:
    raise ValueError(f"Series length must exceed the differencing order ({order}).")
  return np.diff(values, n=order)


def integrate(forecast: np.ndarray, levels: Sequence[np.ndarray]) -> np.ndarray:
  """Undoes `len(levels) - 1` differences using the last value of each level as anchor."""
  result = np.asarray(forecast, dtype=np.float64)
  for k in range(len(levels) - 1, 0, -1):
    result = levels[k - 1][-1] + np.cumsum(result)
  return result


def choose_differencing(values: np.ndarray) -> int:
  """0 when differencing does not reduce variance (already stationary), else 1."""
  values = np.asarray(values, dtype=np.float64)
  if len(values) < 2:
    return 0
  return 0 if np.var(np.diff(values)) >= np.var(values) else 1


def _solve_yule_walker(
    correlations: np.ndarray, order: int, config: EngineConfig
) -> Optional[np.ndarray]:
  if order == 0:
    return np.zeros(0)
  if len(correlations) < order + 1:
    return None
  matrix = linalg.toeplitz(correlations[:order])
  if not np.all(np.isfinite(matrix)):
    return None
  with np.errstate(divide="ignore", invalid="ignore"):
    condition = np.linalg.cond(matrix)
  if not np.isfinite(condition) or condition > config.max_condition_number:
    return None
  try:
    phi = linalg.solve(matrix, correlations[1 : order + 1], assume_a="sym")
  except linalg.LinAlgError:
    return None
  return phi if np.all(np.isfinite(phi)) else None


def yule_walker(
    values: np.ndarray, p: int, config: EngineConfig = DEFAULT_CONFIG
) -> Tuple[np.ndarray, int]:
  """AR coefficients for the highest solvable order <= p, and that order."""
  centered = np.asarray(values, dtype=np.float64) - np.mean(values)
  for order in range(p, -1, -1):
    if order >= len(centered):
      continue
    phi = _solve_yule_walker(autocorrelation(centered, order), order, config)
    if phi is not None:
      if order < p:
        logger.debug("Yule-Walker order reduced from %d to %d.", p, order)
      return phi, order
  return np.zeros(0), 0


def partial_autocorrelation(values: np.ndarray, max_lag: int) -> np.ndarray:
  """PACF from statsmodels' Yule-Walker estimator.

  Lags statsmodels cannot estimate (beyond n // 2 - 1) and every lag of a flat
  series report 0.
  """
  values = np.asarray(values, dtype=np.float64)
  max_lag = max(0, min(int(max_lag), len(values) - 1))
  result = np.zeros(max_lag + 1)
  result[0] = 1.0
  usable = min(max_lag, len(values) // 2 - 1)
  if usable < 1 or np.var(values) < _FLAT_VARIANCE:
    return result
  estimate = pacf(values, nlags=usable, method="ywm")
  result[: usable + 1] = np.nan_to_num(estimate, nan=0.0)
  return result


def _ar_residuals(centered: np.ndarray, ar: np.ndarray) -> np.ndarray:
  residuals = centered.copy()
  for i, phi in enumerate(ar, start=1):
    residuals[i:] -= phi * centered[:-i]
  return residuals


def _innovations(ar_residuals: np.ndarray, ma: np.ndarray) -> np.ndarray:
  """Inverts r_t = e_t + sum(theta_j * e_{t-j}) with zero pre-sample shocks."""
  if len(ma) == 0:
    return np.asarray(ar_residuals, dtype=np.float64).copy()
  with np.errstate(over="ignore", invalid="ignore"):
    return signal.lfilter([1.0], np.concatenate(([1.0], ma)), ar_residuals)


def enforce_invertibility(theta: np.ndarray, bound: float) -> np.ndarray:
  """Moves the roots of the MA polynomial inside |z| <= bound.

  Roots of z^q + theta_1 z^(q-1) + ... + theta_q outside the unit circle are
  reflected to their reciprocal conjugate; any root still beyond `bound` is
  shrunk radially onto it.
  """
  theta = np.asarray(theta, dtype=np.float64)
  roots = np.roots(np.concatenate(([1.0], theta)))
  if np.all(np.abs(roots) <= bound):
    return theta
  adjusted = []
  for root in roots:
    modulus = abs(root)
    if modulus > 1.0:
      root = 1.0 / np.conj(root)
      modulus = 1.0 / modulus
    if modulus > bound:
      root = root * (bound / modulus)
    adjusted.append(root)
  coefficients = np.real(np.poly(adjusted))[1:]
  return np.concatenate((coefficients, np.zeros(len(theta) - len(coefficients))))


def _refine_ma(ar_residuals: np.ndarray, q: int, config: EngineConfig) -> Optional[np.ndarray]:
  """Iteratively regresses AR residuals on lagged innovations.

  Returns None when the regression is rank deficient or numerically unstable
  for this order.
  """
  if q == 0:
    return np.zeros(0)
  rows = len(ar_residuals) - q
  if rows < q or np.var(ar_residuals) < _FLAT_VARIANCE:
    return None
  theta = np.zeros(q)
  for _ in range(config.ma_iterations):
    innovations = _innovations(ar_residuals, theta)
    if not np.all(np.isfinite(innovations)):
      return None
    design = np.column_stack([innovations[q - j : len(innovations) - j] for j in range(1, q + 1)])
    target = ar_residuals[q:]
    try:
      coefficients, _, rank, _ = np.linalg.lstsq(design, target, rcond=None)
    except np.linalg.LinAlgError:
      return None
    if rank < q or not np.all(np.isfinite(coefficients)):
      return None
    updated = enforce_invertibility(coefficients, config.ma_root_bound)
    converged = float(np.linalg.norm(updated - theta)) < config.ma_tolerance
    theta = updated
    if converged:
      break
  if not np.all(np.isfinite(_innovations(ar_residuals, theta))):
    return None
  return theta


def _fit_arma(
    series: np.ndarray, p: int, q: int, config: EngineConfig
) -> Tuple[_ArmaFit, int, int]:
  mean = float(np.mean(series))
  centered = series - mean
  ar, p_used = yule_walker(series, p, config)
  residuals = _ar_residuals(centered, ar)

  ma = np.zeros(0)
  q_used = 0
  for order in range(q, -1, -1):
    estimate = _refine_ma(residuals, order, config)
    if estimate is not None:
      ma, q_used = estimate, order
      break
  if q_used < q:
    logger.debug("MA order reduced from %d to %d.", q, q_used)

  innovations = _innovations(residuals, ma)
  return _ArmaFit(mean=mean, ar=ar, ma=ma, innovations=innovations), p_used, q_used


def gaussian_log_likelihood(innovations: np.ndarray) -> float:
  n = len(innovations)
  if n == 0:
    return 0.0
  variance = max(float(np.mean(innovations**2)), 1e-12)
  return -n / 2.0 * math.log(2.0 * math.pi * variance) - n / 2.0


def information_criteria(innovations: np.ndarray, parameter_count: int) -> Tuple[float, float]:
  """(AIC, BIC) from the Gaussian log-likelihood of the innovations."""
  log_likelihood = gaussian_log_likelihood(innovations)
  n = max(len(innovations), 1)
  aic = 2.0 * parameter_count - 2.0 * log_likelihood
  bic = parameter_count * math.log(n) - 2.0 * log_likelihood
  return aic, bic


def _forecast_differenced(fit: _ArmaFit, centered: np.ndarray, horizon: int) -> np.ndarray:
  history: List[float] = centered.tolist()
  shocks: List[float] = fit.innovations.tolist()
  predictions = []
  for _ in range(horizon):
    value = 0.0
    for i, phi in enumerate(fit.ar, start=1):
      if len(history) - i >= 0:
        value += phi * history[-i]
    for j, theta in enumerate(fit.ma, start=1):
      if len(shocks) - j >= 0:
        value += theta * shocks[-j]
    history.append(value)
    shocks.append(0.0)
    predictions.append(value)
  return fit.mean + np.asarray(predictions, dtype=np.float64)


def _stationarity_depth(values: np.ndarray, max_d: int) -> int:
  current = np.asarray(values, dtype=np.float64)
  d = 0
  while d < max_d and len(current) > 3:
    lags = min(10, len(current) - 1)
    correlations = autocorrelation(current, lags)
    bound = 2.0 / math.sqrt(len(current))
    if np.all(np.abs(correlations[1:]) <= bound):
      break
    current = np.diff(current)
    d += 1
  return d


def select_arima_order(
    values: np.ndarray,
    max_p: Optional[int] = None,
    max_d: Optional[int] = None,
    max_q: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Tuple[int, int, int]:
  """Lowest-AIC (p, d, q) over a small grid.

  `d` is the number of differences needed before the first ten
  autocorrelations fall inside +-2/sqrt(n); the pure-constant (0, d, 0) model
  is not a candidate unless nothing else can be fitted.
  """
  max_p = config.auto_arima_max_p if max_p is None else max_p
  max_d = config.auto_arima_max_d if max_d is None else max_d
  max_q = config.auto_arima_max_q if max_q is None else max_q
  values = np.asarray(values, dtype=np.float64)

  d = min(_stationarity_depth(values, max_d), max(len(values) - 2, 0))
  series = difference(values, d)
  best: Optional[Tuple[float, Tuple[int, int, int]]] = None
  for p in range(max_p + 1):
    for q in range(max_q + 1):
      if p == 0 and q == 0:
        continue
      fit, p_used, q_used = _fit_arma(series, p, q, config)
      if p_used == 0 and q_used == 0:
        continue
      aic, _ = information_criteria(fit.innovations, p_used + q_used + 1)
      if best is None or aic < best[0]:
        best = (aic, (p_used, d, q_used))
  order = best[1] if best is not None else (0, d, 0)
  logger.debug("Selected ARIMA order %s.", order)
  return order


def fit_arima(
    values: np.ndarray,
    horizon: int,
    *,
    order: Optional[Tuple[int, int, int]] = None,
    auto_order: bool = False,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ModelFit:
  """Fits ARIMA and forecasts `horizon` steps on the original scale.

  Without an explicit order, p and q default to the configured order and d is
  0 for an already stationary series, 1 otherwise. Orders that cannot be
  estimated are reduced rather than raising.
  """
  values = np.asarray(values, dtype=np.float64)
  if len(values) < 2:
    raise ValueError("At least two values are required for ARIMA forecasting.")
  if horizon <= 0:
    raise ValueError("Horizon must be positive for forecasting.")

  if order is not None:
    p, d, q = order
  elif auto_order:
    p, d, q = select_arima_order(values, config=config)
  else:
    p, _, q = config.default_arima_order
    d = choose_differencing(values)

  if d >= len(values):
    logger.warning("Differencing order %d reduced to %d for a %d-point series.", d, len(values) - 1, len(values))
    d = len(values) - 1

  levels = [values]
  for _ in range(d):
    levels.append(np.diff(levels[-1]))
  series = levels[-1]

  fit, p_used, q_used = _fit_arma(series, p, q, config)
  forecast = integrate(_forecast_differenced(fit, series - fit.mean, horizon), levels)

  residuals = np.concatenate([np.zeros(d), fit.innovations])
  fitted = values - residuals
  if not (np.all(np.isfinite(forecast)) and np.all(np.isfinite(fitted))):
    raise ModelNotViableError(f"ARIMA({p},{d},{q}) produced non-finite values.")

  aic, bic = information_criteria(fit.innovations, p_used + q_used + 1)
  parameters = ArimaParameters(
      p=p_used,
      d=d,
      q=q_used,
      ar_coefficients=tuple(float(c) for c in fit.ar),
      ma_coefficients=tuple(float(c) for c in fit.ma),
      constant=fit.mean,
      aic=aic,
      bic=bic,
  )
  logger.debug("Fitted ARIMA%s (requested %s).", (p_used, d, q_used), (p, d, q))
  return ModelFit(
      tag=ARIMA_TAG,
      parameters=parameters,
      fitted_values=fitted,
      forecast_values=forecast,
      residuals=residuals,
      collapsed=p_used == 0 and q_used == 0,
      metadata={"requested_order": (p, d, q), "approximate": True},
  )
