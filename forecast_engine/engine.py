"""Forecast orchestration: preparation, candidate fitting, selection and intervals."""

from __future__ import annotations

import enum
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .arima_runner import ARIMA_TAG, fit_arima
from .base import ForecastOptions, ForecastResult, ModelFit, ModelTag, PreparedSeries, TimeSeriesPoint
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ModelNotViableError, NoViableModelError
from .evaluation import AccuracyReport, score_candidate
from .expsmooth_runner import HOLT_TAG, HOLT_WINTERS_TAG, SIMPLE_TAG, fit_exponential_smoothing
from .intervals import build_confidence_interval
from .linear_runner import LINEAR_TAG, fit_linear
from .preparation import prepare_series
from .seasonality import SeasonalityResult, detect_seasonality

logger = logging.getLogger(__name__)

Fitter = Callable[[np.ndarray, int], ModelFit]
OptionsLike = Union[ForecastOptions, Mapping[str, object]]


class Stage(str, enum.Enum):
  IDLE = "idle"
  PREPARING = "preparing"
  FITTING = "fitting"
  SCORING = "scoring"
  BUILDING_INTERVALS = "building_intervals"
  DONE = "done"
  FAILED = "failed"


@dataclass(frozen=True)
class CandidateScore:
  """Accuracy of one candidate and how it was measured."""

  tag: ModelTag
  accuracy: float
  strategy: str
  holdout_length: int
  error: float
  collapsed: bool = False


@dataclass(frozen=True)
class ForecastDiagnostics:
  stages: Tuple[Stage, ...]
  seasonality: Optional[SeasonalityResult]
  candidates: Tuple[CandidateScore, ...] = ()
  rejected: Dict[str, str] = field(default_factory=dict)
  selected: Optional[ModelTag] = None


@dataclass(frozen=True)
class ForecastRun:
  result: ForecastResult
  diagnostics: ForecastDiagnostics


@dataclass(frozen=True)
class _Candidate:
  tag: ModelTag
  fit: Fitter


@dataclass(frozen=True)
class _Outcome:
  fit: ModelFit
  report: AccuracyReport


class ForecastOrchestrator:
  """Runs one forecast request end to end.

  Instances hold only configuration, so a single orchestrator can serve
  concurrent callers.
  """

  def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
    self.config = config

  def run(self, points: Iterable, options: OptionsLike) -> ForecastRun:
    stages: List[Stage] = [Stage.IDLE]
    seasonality: Optional[SeasonalityResult] = None
    try:
      if not isinstance(options, ForecastOptions):
        options = ForecastOptions.from_mapping(options)
      else:
        options.validate()

      stages.append(Stage.PREPARING)
      series = prepare_series(points)
      seasonality = detect_seasonality(
          series.values,
          options.seasonality,
          period=options.seasonal_period,
          threshold=self.config.seasonality_threshold,
      )

      stages.append(Stage.FITTING)
      candidates = self._candidates(options, seasonality)
      if options.method == "auto" or len(candidates) > 1:
        stages.append(Stage.SCORING)
      outcomes, rejected = self._evaluate(series.values, options.periods, candidates)
      if not outcomes:
        raise NoViableModelError(
            f"No viable model for method '{options.method}': "
            + "; ".join(f"{label}: {reason}" for label, reason in rejected.items())
        )
      tag, outcome = self._select(outcomes)

      stages.append(Stage.BUILDING_INTERVALS)
      result = self._assemble(series, options, outcome)
    except Exception:
      stages.append(Stage.FAILED)
      logger.debug("Forecast failed after stages %s.", [stage.value for stage in stages])
      raise

    stages.append(Stage.DONE)
    scores = tuple(
        CandidateScore(
            tag=candidate_tag,
            accuracy=item.report.accuracy,
            strategy=item.report.strategy,
            holdout_length=item.report.holdout_length,
            error=item.report.error,
            collapsed=item.fit.collapsed,
        )
        for candidate_tag, item in outcomes.items()
    )
    logger.info(
        "Selected %s (accuracy %.4f, %s scoring) from %d candidate(s).",
        tag.label,
        outcome.report.accuracy,
        outcome.report.strategy,
        len(outcomes),
    )
    diagnostics = ForecastDiagnostics(
        stages=tuple(stages),
        seasonality=seasonality,
        candidates=scores,
        rejected=rejected,
        selected=tag,
    )
    return ForecastRun(result=result, diagnostics=diagnostics)

  def _candidates(self, options: ForecastOptions, seasonality: SeasonalityResult) -> List[_Candidate]:
    config = self.config
    period = seasonality.period if seasonality.has_seasonality else None
    smoothing = dict(alpha=options.alpha, beta=options.beta, gamma=options.gamma, config=config)

    linear = _Candidate(LINEAR_TAG, fit_linear)
    simple = _Candidate(
        SIMPLE_TAG,
        functools.partial(fit_exponential_smoothing, variant="simple", alpha=options.alpha, config=config),
    )
    holt = _Candidate(
        HOLT_TAG,
        functools.partial(
            fit_exponential_smoothing, variant="holt", alpha=options.alpha, beta=options.beta, config=config
        ),
    )
    holt_winters = _Candidate(
        HOLT_WINTERS_TAG,
        functools.partial(fit_exponential_smoothing, variant="holt_winters", seasonal_period=period, **smoothing),
    )
    arima = _Candidate(
        ARIMA_TAG,
        functools.partial(fit_arima, order=options.arima_order, auto_order=options.auto_arima, config=config),
    )

    if options.method == "linear":
      return [linear]
    if options.method == "arima":
      return [arima]
    if options.method == "exp_smoothing":
      if options.seasonality is False:
        return [simple]
      if period is not None:
        return [holt_winters]
      return [simple, holt]

    candidates = [linear, simple, holt]
    if period is not None:
      candidates.append(holt_winters)
    candidates.append(arima)
    return candidates

  def _evaluate_one(self, candidate: _Candidate, values: np.ndarray, periods: int) -> Union[_Outcome, str]:
    try:
      fit = candidate.fit(values, periods)
      report = score_candidate(values, fit, candidate.fit, periods, self.config)
    except ModelNotViableError as exc:
      logger.debug("Candidate %s is not viable: %s", candidate.tag.label, exc)
      return str(exc)
    logger.debug(
        "Candidate %s scored %.6f (%s).", candidate.tag.label, report.accuracy, report.strategy
    )
    return _Outcome(fit=fit, report=report)

  def _evaluate(
      self, values: np.ndarray, periods: int, candidates: Sequence[_Candidate]
  ) -> Tuple[Dict[ModelTag, _Outcome], Dict[str, str]]:
    task = functools.partial(self._evaluate_one, values=values, periods=periods)
    if self.config.parallel and len(candidates) > 1:
      with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
        results = list(pool.map(task, candidates))
    else:
      results = [task(candidate) for candidate in candidates]

    outcomes: Dict[ModelTag, _Outcome] = {}
    rejected: Dict[str, str] = {}
    for candidate, result in zip(candidates, results):
      if isinstance(result, _Outcome):
        outcomes[candidate.tag] = result
      else:
        rejected[candidate.tag.label] = result
    return outcomes, rejected

  def _select(self, outcomes: Mapping[ModelTag, _Outcome]) -> Tuple[ModelTag, _Outcome]:
    """Highest accuracy wins; exact ties go to the preferred, non-collapsed model."""
    preference = self.config.preference

    def rank(item: Tuple[ModelTag, _Outcome]):
      tag, outcome = item
      position = preference.index(tag.label) if tag.label in preference else len(preference)
      return (-round(outcome.report.accuracy, self.config.tie_decimals), outcome.fit.collapsed, position)

    return min(outcomes.items(), key=rank)

  def _assemble(self, series: PreparedSeries, options: ForecastOptions, outcome: _Outcome) -> ForecastResult:
    fit = outcome.fit
    timestamps = series.future_timestamps(options.periods)
    forecast_values = fit.forecast_values[: options.periods]
    forecast = tuple(
        TimeSeriesPoint(ts, float(value)) for ts, value in zip(timestamps, forecast_values)
    )
    interval = None
    if options.confidence_interval:
      interval = build_confidence_interval(
          forecast_values, timestamps, fit.residuals, options.confidence_level
      )
    return ForecastResult(
        method=fit.tag,
        accuracy=outcome.report.accuracy,
        parameters=fit.parameters,
        original_data=series.points,
        forecast_data=forecast,
        confidence_interval=interval,
    )


def forecast_time_series(
    points: Iterable,
    options: Optional[OptionsLike] = None,
    config: Optional[EngineConfig] = None,
    **option_kwargs,
) -> ForecastResult:
  """Forecasts `points` and returns only the result.

  Options may be given as a ForecastOptions, a camelCase/snake_case mapping,
  or as keyword arguments (e.g. `periods=12, method="linear"`).
  """
  if options is None:
    options = ForecastOptions.from_mapping(option_kwargs)
  elif option_kwargs:
    raise TypeError("Pass forecast options either as `options` or as keyword arguments, not both.")
  orchestrator = ForecastOrchestrator(config or DEFAULT_CONFIG)
  return orchestrator.run(points, options).result
