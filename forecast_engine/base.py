"""Shared forecasting datatypes for model orchestration."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InvalidOptionsError

METHODS: Tuple[str, ...] = ("auto", "linear", "exp_smoothing", "arima")
SMOOTHING_VARIANTS: Tuple[str, ...] = ("simple", "holt", "holt_winters")


@dataclass(frozen=True)
class TimeSeriesPoint:
  timestamp: datetime
  value: float


@dataclass(frozen=True)
class ModelTag:
  """Resolved model identity, kept as {family, variant} instead of a joined string."""

  family: str
  variant: Optional[str] = None

  @property
  def label(self) -> str:
    return self.family if self.variant is None else f"{self.family}_{self.variant}"

  @classmethod
  def from_label(cls, label: str) -> "ModelTag":
    for variant in SMOOTHING_VARIANTS:
      if label == f"exp_smoothing_{variant}":
        return cls("exp_smoothing", variant)
    if label in ("linear", "arima"):
      return cls(label)
    raise ValueError(f"Unknown model label '{label}'.")

  def __str__(self) -> str:
    return self.label


@dataclass(frozen=True)
class LinearParameters:
  slope: float
  intercept: float
  r_squared: float


@dataclass(frozen=True)
class SmoothingParameters:
  variant: str
  alpha: float
  beta: Optional[float] = None
  gamma: Optional[float] = None
  seasonal_period: Optional[int] = None


@dataclass(frozen=True)
class ArimaParameters:
  """ARIMA orders and coefficients.

  Coefficients come from Yule-Walker (AR) and iterative innovations
  refinement (MA); they approximate, but are not, maximum-likelihood estimates.
  """

  p: int
  d: int
  q: int
  ar_coefficients: Tuple[float, ...] = ()
  ma_coefficients: Tuple[float, ...] = ()
  constant: float = 0.0
  aic: float = math.nan
  bic: float = math.nan


ModelParameters = Union[LinearParameters, SmoothingParameters, ArimaParameters]


@dataclass(frozen=True)
class ModelFit:
  """Standardized outputs produced by a fitter on one series."""

  tag: ModelTag
  parameters: ModelParameters
  fitted_values: np.ndarray
  forecast_values: np.ndarray
  residuals: np.ndarray
  collapsed: bool = False
  metadata: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class PreparedSeries:
  """Clean, strictly ordered series handed to every downstream step."""

  timestamps: Tuple[datetime, ...]
  values: np.ndarray
  step: timedelta
  frequency: Optional[str] = None
  dropped: int = 0

  def __len__(self) -> int:
    return len(self.timestamps)

  @property
  def points(self) -> Tuple[TimeSeriesPoint, ...]:
    return tuple(
        TimeSeriesPoint(ts, float(value)) for ts, value in zip(self.timestamps, self.values)
    )

  def future_timestamps(self, count: int) -> List[datetime]:
    """Timestamps for the next `count` steps after the last observation."""
    if count <= 0:
      return []
    last = self.timestamps[-1]
    if self.frequency:
      future = pd.date_range(start=last, periods=count + 1, freq=self.frequency)[1:]
      if len(future) == count and future[0] > pd.Timestamp(last):
        return [ts.to_pydatetime() for ts in future]
    return [last + self.step * (idx + 1) for idx in range(count)]


def _is_integer(value) -> bool:
  return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_open_unit(value) -> bool:
  return (
      isinstance(value, numbers.Real)
      and not isinstance(value, bool)
      and math.isfinite(float(value))
      and 0.0 < float(value) < 1.0
  )


_OPTION_ALIASES = {
    "method": "method",
    "periods": "periods",
    "confidenceInterval": "confidence_interval",
    "confidence_interval": "confidence_interval",
    "confidenceLevel": "confidence_level",
    "confidence_level": "confidence_level",
    "seasonality": "seasonality",
    "seasonalPeriod": "seasonal_period",
    "seasonal_period": "seasonal_period",
    "alpha": "alpha",
    "beta": "beta",
    "gamma": "gamma",
    "arimaOrder": "arima_order",
    "arima_order": "arima_order",
    "autoArima": "auto_arima",
    "auto_arima": "auto_arima",
}

_SEASONALITY_WORDS = {"yes": True, "true": True, "no": False, "false": False, "auto": None, "": None}


@dataclass(frozen=True)
class ForecastOptions:
  """Per-call forecast request; validated on construction."""

  periods: int
  method: str = "auto"
  confidence_interval: bool = True
  confidence_level: float = 0.95
  seasonality: Optional[bool] = None
  seasonal_period: Optional[int] = None
  alpha: Optional[float] = None
  beta: Optional[float] = None
  gamma: Optional[float] = None
  arima_order: Optional[Tuple[int, int, int]] = None
  auto_arima: bool = False

  def __post_init__(self):
    if self.arima_order is not None and not isinstance(self.arima_order, tuple):
      try:
        object.__setattr__(self, "arima_order", tuple(self.arima_order))
      except TypeError as exc:
        raise InvalidOptionsError("arima_order must be a (p, d, q) sequence.") from exc
    self.validate()

  def validate(self) -> None:
    if self.method not in METHODS:
      raise InvalidOptionsError(
          f"Unknown forecast method '{self.method}'; expected one of {', '.join(METHODS)}."
      )
    if not _is_integer(self.periods) or self.periods <= 0:
      raise InvalidOptionsError(f"periods must be a positive integer; got {self.periods!r}.")
    if not isinstance(self.confidence_interval, bool):
      raise InvalidOptionsError("confidence_interval must be a boolean.")
    if not _is_open_unit(self.confidence_level):
      raise InvalidOptionsError(
          f"confidence_level must lie strictly between 0 and 1; got {self.confidence_level!r}."
      )
    if self.seasonality is not None and not isinstance(self.seasonality, bool):
      raise InvalidOptionsError("seasonality must be True, False or None.")
    if self.seasonal_period is not None and (
        not _is_integer(self.seasonal_period) or self.seasonal_period < 2
    ):
      raise InvalidOptionsError("seasonal_period must be an integer of at least 2.")
    for name in ("alpha", "beta", "gamma"):
      value = getattr(self, name)
      if value is not None and not _is_open_unit(value):
        raise InvalidOptionsError(f"{name} must lie strictly between 0 and 1; got {value!r}.")
    if self.arima_order is not None:
      if len(self.arima_order) != 3 or not all(
          _is_integer(order) and order >= 0 for order in self.arima_order
      ):
        raise InvalidOptionsError(
            f"arima_order must be three non-negative integers; got {self.arima_order!r}."
        )
    if not isinstance(self.auto_arima, bool):
      raise InvalidOptionsError("auto_arima must be a boolean.")

  @classmethod
  def from_mapping(cls, payload: Mapping[str, object]) -> "ForecastOptions":
    """Builds options from collaborator payloads using camelCase or snake_case keys."""
    kwargs: Dict[str, object] = {}
    for key, value in payload.items():
      name = _OPTION_ALIASES.get(key)
      if name is None:
        raise InvalidOptionsError(f"Unknown forecast option '{key}'.")
      kwargs[name] = value
    if "periods" not in kwargs:
      raise InvalidOptionsError("periods is required.")
    seasonality = kwargs.get("seasonality")
    if isinstance(seasonality, str):
      word = seasonality.strip().lower()
      if word not in _SEASONALITY_WORDS:
        raise InvalidOptionsError(f"Unrecognized seasonality hint '{seasonality}'.")
      kwargs["seasonality"] = _SEASONALITY_WORDS[word]
    return cls(**kwargs)


@dataclass(frozen=True)
class ConfidenceInterval:
  upper: Tuple[TimeSeriesPoint, ...]
  lower: Tuple[TimeSeriesPoint, ...]
  confidence: float


@dataclass(frozen=True)
class ForecastResult:
  """Complete, immutable outcome of one forecast call."""

  method: ModelTag
  accuracy: float
  parameters: ModelParameters
  original_data: Tuple[TimeSeriesPoint, ...]
  forecast_data: Tuple[TimeSeriesPoint, ...]
  confidence_interval: Optional[ConfidenceInterval] = None

  @property
  def forecast_values(self) -> np.ndarray:
    return np.asarray([point.value for point in self.forecast_data], dtype=np.float64)

  @property
  def forecast_timestamps(self) -> Sequence[datetime]:
    return [point.timestamp for point in self.forecast_data]
