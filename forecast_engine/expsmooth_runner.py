"""Simple, Holt and additive Holt-Winters exponential smoothing."""

from __future__ import annotations

import itertools
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .base import ModelFit, ModelTag, SmoothingParameters
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ModelNotViableError

logger = logging.getLogger(__name__)

SIMPLE_TAG = ModelTag("exp_smoothing", "simple")
HOLT_TAG = ModelTag("exp_smoothing", "holt")
HOLT_WINTERS_TAG = ModelTag("exp_smoothing", "holt_winters")


def simple_exponential_smoothing(values: Sequence[float], alpha: float) -> Tuple[np.ndarray, float]:
  """Returns one-step-ahead fitted values and the final level."""
  level = float(values[0])
  fitted = [level]
  for y in values[1:]:
    fitted.append(level)
    level = alpha * y + (1.0 - alpha) * level
  return np.asarray(fitted, dtype=np.float64), level


def holt_exponential_smoothing(
    values: Sequence[float], alpha: float, beta: float
) -> Tuple[np.ndarray, float, float, float]:
  """Returns fitted values, final level, final trend and the largest |trend| seen."""
  level = float(values[0])
  trend = float(values[1]) - float(values[0])
  peak_trend = abs(trend)
  fitted = [level]
  for y in values[1:]:
    fitted.append(level + trend)
    previous = level
    level = alpha * y + (1.0 - alpha) * (level + trend)
    trend = beta * (level - previous) + (1.0 - beta) * trend
    peak_trend = max(peak_trend, abs(trend))
  return np.asarray(fitted, dtype=np.float64), level, trend, peak_trend


def initial_seasonal_state(values: Sequence[float], period: int) -> Tuple[float, float, List[float]]:
  """Level, trend and seasonal indices estimated from the first two cycles.

  The level is expressed one step before the first observation so that the
  first update consumes values[0].
  """
  first = np.asarray(values[:period], dtype=np.float64)
  second = np.asarray(values[period : 2 * period], dtype=np.float64)
  trend = float(second.mean() - first.mean()) / period
  level = float(first.mean()) - trend * (period + 1) / 2.0
  baseline = level + trend * np.arange(1, 2 * period + 1)
  deviations = np.concatenate([first, second]) - baseline
  seasonals = (deviations[:period] + deviations[period:]) / 2.0
  seasonals -= seasonals.mean()
  return level, trend, seasonals.tolist()


def holt_winters_exponential_smoothing(
    values: Sequence[float], alpha: float, beta: float, gamma: float, period: int
) -> Tuple[np.ndarray, float, float, List[float]]:
  """Additive Holt-Winters pass; returns fitted values and the final state."""
  level, trend, seasonals = initial_seasonal_state(values, period)
  fitted = []
  for t, y in enumerate(values):
    phase = t % period
    season = seasonals[phase]
    fitted.append(level + trend + season)
    previous = level
    level = alpha * (y - season) + (1.0 - alpha) * (level + trend)
    trend = beta * (level - previous) + (1.0 - beta) * trend
    seasonals[phase] = gamma * (y - level) + (1.0 - gamma) * season
  return np.asarray(fitted, dtype=np.float64), level, trend, seasonals


def _grid(low: float, high: float, step: float) -> np.ndarray:
  return np.round(np.arange(low, high + step / 2.0, step), 10)


def _refined_axis(center: float, config: EngineConfig) -> np.ndarray:
  low = max(config.grid_min, center - config.refine_span)
  high = min(config.grid_max, center + config.refine_span)
  return _grid(low, high, config.refine_step)


def _sse(values: np.ndarray, fitted: np.ndarray) -> float:
  return float(np.sum((values - fitted) ** 2))


def _search(
    values: np.ndarray,
    evaluate,
    axes: Sequence[np.ndarray],
    incumbent: Optional[Tuple[Tuple[float, ...], float]] = None,
) -> Tuple[Tuple[float, ...], float]:
  """Exhaustive grid search; only strictly better points replace the incumbent."""
  best = incumbent
  for combo in itertools.product(*axes):
    combo = tuple(float(c) for c in combo)
    sse = _sse(values, evaluate(*combo))
    if not np.isfinite(sse):
      continue
    if best is None or sse < best[1] - 1e-12 * max(1.0, best[1]):
      best = (combo, sse)
  if best is None:
    raise ModelNotViableError("Smoothing grid search produced no finite fit.")
  return best


def _coarse_then_refine(
    values: np.ndarray, evaluate, dimensions: int, config: EngineConfig
) -> Tuple[float, ...]:
  coarse = _grid(config.coarse_grid_step, 1.0 - config.coarse_grid_step / 2.0, config.coarse_grid_step)
  best = _search(values, evaluate, [coarse] * dimensions)
  refined_axes = [_refined_axis(center, config) for center in best[0]]
  return _search(values, evaluate, refined_axes, incumbent=best)[0]


def optimize_alpha(values: np.ndarray, config: EngineConfig = DEFAULT_CONFIG) -> float:
  """Grid-searches alpha for simple smoothing by in-sample squared error.

  Flat error surfaces (e.g. constant series) resolve to the configured
  default alpha, or to the smallest minimizer when the default is not one.
  """
  grid = _grid(config.grid_min, config.grid_max, config.alpha_grid_step)
  series = np.asarray(values, dtype=np.float64).tolist()
  errors = np.asarray([_sse(values, simple_exponential_smoothing(series, a)[0]) for a in grid])
  best = float(np.min(errors))
  minimizers = grid[errors <= best + 1e-12 * max(1.0, best)]
  if np.any(np.isclose(minimizers, config.default_alpha)):
    return float(config.default_alpha)
  return float(minimizers[0])


def fit_simple(
    values: np.ndarray,
    horizon: int,
    *,
    alpha: Optional[float] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ModelFit:
  values = _check_inputs(values, horizon)
  series = values.tolist()
  if alpha is None:
    alpha = optimize_alpha(values, config)
  fitted, level = simple_exponential_smoothing(series, alpha)
  return ModelFit(
      tag=SIMPLE_TAG,
      parameters=SmoothingParameters(variant="simple", alpha=alpha),
      fitted_values=fitted,
      forecast_values=np.full(horizon, level, dtype=np.float64),
      residuals=values - fitted,
  )


def fit_holt(
    values: np.ndarray,
    horizon: int,
    *,
    alpha: Optional[float] = None,
    beta: Optional[float] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ModelFit:
  values = _check_inputs(values, horizon)
  series = values.tolist()
  if alpha is None or beta is None:
    fixed_alpha, fixed_beta = alpha, beta

    def evaluate(*params):
      a = fixed_alpha if fixed_alpha is not None else params[0]
      b = fixed_beta if fixed_beta is not None else params[-1]
      return holt_exponential_smoothing(series, a, b)[0]

    free = int(alpha is None) + int(beta is None)
    found = _coarse_then_refine(values, evaluate, free, config)
    alpha = alpha if alpha is not None else found[0]
    beta = beta if beta is not None else found[-1]

  fitted, level, trend, peak_trend = holt_exponential_smoothing(series, alpha, beta)
  steps = np.arange(1, horizon + 1, dtype=np.float64)
  scale = max(1.0, float(np.max(np.abs(values))))
  return ModelFit(
      tag=HOLT_TAG,
      parameters=SmoothingParameters(variant="holt", alpha=alpha, beta=beta),
      fitted_values=fitted,
      forecast_values=level + steps * trend,
      residuals=values - fitted,
      collapsed=peak_trend <= 1e-12 * scale,
  )


def fit_holt_winters(
    values: np.ndarray,
    horizon: int,
    *,
    seasonal_period: Optional[int],
    alpha: Optional[float] = None,
    beta: Optional[float] = None,
    gamma: Optional[float] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ModelFit:
  values = _check_inputs(values, horizon)
  series = values.tolist()
  if seasonal_period is None or seasonal_period < 2:
    raise ModelNotViableError("Holt-Winters requires a seasonal period of at least 2.")
  if len(values) < 2 * seasonal_period:
    raise ModelNotViableError(
        f"Holt-Winters needs {2 * seasonal_period} points for period {seasonal_period}; got {len(values)}."
    )

  fixed = (alpha, beta, gamma)
  if any(param is None for param in fixed):
    free_slots = [idx for idx, param in enumerate(fixed) if param is None]

    def evaluate(*params):
      merged = list(fixed)
      for slot, value in zip(free_slots, params):
        merged[slot] = value
      return holt_winters_exponential_smoothing(series, *merged, seasonal_period)[0]

    found = _coarse_then_refine(values, evaluate, len(free_slots), config)
    merged = list(fixed)
    for slot, value in zip(free_slots, found):
      merged[slot] = value
    alpha, beta, gamma = merged

  fitted, level, trend, seasonals = holt_winters_exponential_smoothing(
      series, alpha, beta, gamma, seasonal_period
  )
  n = len(values)
  forecast = np.asarray(
      [
          level + k * trend + seasonals[(n - 1 + k) % seasonal_period]
          for k in range(1, horizon + 1)
      ],
      dtype=np.float64,
  )
  return ModelFit(
      tag=HOLT_WINTERS_TAG,
      parameters=SmoothingParameters(
          variant="holt_winters",
          alpha=alpha,
          beta=beta,
          gamma=gamma,
          seasonal_period=seasonal_period,
      ),
      fitted_values=fitted,
      forecast_values=forecast,
      residuals=values - fitted,
  )


def fit_exponential_smoothing(
    values: np.ndarray,
    horizon: int,
    *,
    variant: str = "simple",
    seasonal_period: Optional[int] = None,
    alpha: Optional[float] = None,
    beta: Optional[float] = None,
    gamma: Optional[float] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ModelFit:
  """Dispatches to the requested smoothing variant."""
  if variant == "simple":
    fit = fit_simple(values, horizon, alpha=alpha, config=config)
  elif variant == "holt":
    fit = fit_holt(values, horizon, alpha=alpha, beta=beta, config=config)
  elif variant == "holt_winters":
    fit = fit_holt_winters(
        values,
        horizon,
        seasonal_period=seasonal_period,
        alpha=alpha,
        beta=beta,
        gamma=gamma,
        config=config,
    )
  else:
    raise ValueError(f"Unknown exponential smoothing variant '{variant}'.")

  if not (np.all(np.isfinite(fit.forecast_values)) and np.all(np.isfinite(fit.fitted_values))):
    raise ModelNotViableError(f"{fit.tag.label} produced non-finite values.")
  logger.debug("Fitted %s with %s.", fit.tag.label, fit.parameters)
  return fit


def _check_inputs(values: Iterable[float], horizon: int) -> np.ndarray:
  values = np.asarray(values, dtype=np.float64)
  if len(values) < 2:
    raise ValueError("At least two values are required for exponential smoothing.")
  if horizon <= 0:
    raise ValueError("Horizon must be positive for forecasting.")
  return values
