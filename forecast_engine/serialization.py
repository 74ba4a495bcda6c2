"""Persisted representation of forecast results.

Results are written with the camelCase keys collaborators already consume
(`originalData`, `forecastData`, `confidenceInterval`) and ISO-8601
timestamps, and read back into the same frozen dataclasses.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .base import (
    ArimaParameters,
    ConfidenceInterval,
    ForecastResult,
    LinearParameters,
    ModelParameters,
    ModelTag,
    SmoothingParameters,
    TimeSeriesPoint,
)

_PARAMETER_KEYS = {
    "linear": (("slope", "slope"), ("intercept", "intercept"), ("r_squared", "rSquared")),
    "exp_smoothing": (
        ("variant", "variant"),
        ("alpha", "alpha"),
        ("beta", "beta"),
        ("gamma", "gamma"),
        ("seasonal_period", "seasonalPeriod"),
    ),
    "arima": (
        ("p", "p"),
        ("d", "d"),
        ("q", "q"),
        ("ar_coefficients", "arCoefficients"),
        ("ma_coefficients", "maCoefficients"),
        ("constant", "constant"),
        ("aic", "aic"),
        ("bic", "bic"),
    ),
}
_PARAMETER_TYPES = {
    "linear": LinearParameters,
    "exp_smoothing": SmoothingParameters,
    "arima": ArimaParameters,
}


def _family(parameters: ModelParameters) -> str:
  for family, kind in _PARAMETER_TYPES.items():
    if isinstance(parameters, kind):
      return family
  raise TypeError(f"Unsupported parameter type {type(parameters).__name__}.")


def _encode_number(value):
  if isinstance(value, float) and not math.isfinite(value):
    return None
  return value


def _points_to_list(points: Sequence[TimeSeriesPoint]) -> List[Dict[str, Any]]:
  return [{"timestamp": point.timestamp.isoformat(), "value": float(point.value)} for point in points]


def _points_from_list(items: Sequence[Mapping[str, Any]]) -> tuple:
  return tuple(
      TimeSeriesPoint(datetime.fromisoformat(item["timestamp"]), float(item["value"])) for item in items
  )


def parameters_to_dict(parameters: ModelParameters) -> Dict[str, Any]:
  family = _family(parameters)
  payload: Dict[str, Any] = {"family": family}
  for attribute, key in _PARAMETER_KEYS[family]:
    value = getattr(parameters, attribute)
    if isinstance(value, tuple):
      value = [float(item) for item in value]
    payload[key] = _encode_number(value)
  return payload


def parameters_from_dict(payload: Mapping[str, Any]) -> ModelParameters:
  family = payload.get("family")
  if family not in _PARAMETER_TYPES:
    raise ValueError(f"Unknown parameter family '{family}'.")
  kwargs: Dict[str, Any] = {}
  for attribute, key in _PARAMETER_KEYS[family]:
    if key not in payload:
      continue
    value = payload[key]
    if attribute in ("ar_coefficients", "ma_coefficients"):
      value = tuple(float(item) for item in value)
    elif attribute in ("aic", "bic") and value is None:
      value = math.nan
    kwargs[attribute] = value
  return _PARAMETER_TYPES[family](**kwargs)


def result_to_dict(result: ForecastResult) -> Dict[str, Any]:
  payload: Dict[str, Any] = {
      "method": result.method.label,
      "methodTag": {"family": result.method.family, "variant": result.method.variant},
      "accuracy": float(result.accuracy),
      "parameters": parameters_to_dict(result.parameters),
      "originalData": _points_to_list(result.original_data),
      "forecastData": _points_to_list(result.forecast_data),
  }
  if result.confidence_interval is not None:
    payload["confidenceInterval"] = {
        "upper": _points_to_list(result.confidence_interval.upper),
        "lower": _points_to_list(result.confidence_interval.lower),
        "confidence": float(result.confidence_interval.confidence),
    }
  return payload


def result_from_dict(payload: Mapping[str, Any]) -> ForecastResult:
  tag_payload = payload.get("methodTag")
  if tag_payload:
    method = ModelTag(tag_payload["family"], tag_payload.get("variant"))
  else:
    method = ModelTag.from_label(payload["method"])

  interval = None
  interval_payload = payload.get("confidenceInterval")
  if interval_payload:
    interval = ConfidenceInterval(
        upper=_points_from_list(interval_payload["upper"]),
        lower=_points_from_list(interval_payload["lower"]),
        confidence=float(interval_payload["confidence"]),
    )

  return ForecastResult(
      method=method,
      accuracy=float(payload["accuracy"]),
      parameters=parameters_from_dict(payload["parameters"]),
      original_data=_points_from_list(payload.get("originalData", [])),
      forecast_data=_points_from_list(payload["forecastData"]),
      confidence_interval=interval,
  )


def result_to_json(result: ForecastResult, *, indent: Optional[int] = 2) -> str:
  return json.dumps(result_to_dict(result), indent=indent)


def result_from_json(text: str) -> ForecastResult:
  return result_from_dict(json.loads(text))


def describe_values(values: Sequence[float]) -> Optional[Dict[str, float]]:
  """count/sum/avg/min/max/median of a sequence, or None when it is empty."""
  values = np.asarray(values, dtype=np.float64)
  if values.size == 0:
    return None
  return {
      "count": int(values.size),
      "sum": float(values.sum()),
      "avg": float(values.mean()),
      "min": float(values.min()),
      "max": float(values.max()),
      "median": float(np.median(values)),
  }


def growth_rate(historical: Sequence[float], forecast: Sequence[float]) -> Optional[Dict[str, Any]]:
  """Change of the forecast mean against the historical mean."""
  historical = np.asarray(historical, dtype=np.float64)
  forecast = np.asarray(forecast, dtype=np.float64)
  if historical.size == 0 or forecast.size == 0:
    return None
  absolute = float(forecast.mean() - historical.mean())
  baseline = float(historical.mean())
  relative = absolute / baseline * 100.0 if baseline != 0 else None
  if absolute > 0:
    trend = "growth"
  elif absolute < 0:
    trend = "decline"
  else:
    trend = "stable"
  return {"absoluteChange": absolute, "relativeChange": relative, "trend": trend}


def build_report(
    result: ForecastResult,
    *,
    date_field: Optional[str] = None,
    value_field: Optional[str] = None,
    include_history: bool = True,
    include_analytics: bool = True,
    created: Optional[datetime] = None,
) -> Dict[str, Any]:
  """Export document: metadata, forecast and optionally history and summary statistics."""
  created = created or datetime.now()
  payload = result_to_dict(result)
  report: Dict[str, Any] = {
      "metadata": {
          "dateCreated": created.isoformat(),
          "dateField": date_field,
          "valueField": value_field,
          "method": result.method.label,
          "accuracy": float(result.accuracy),
          "periods": len(result.forecast_data),
      }
  }
  if include_history:
    report["historicalData"] = payload["originalData"]
  report["forecastData"] = payload["forecastData"]
  if include_analytics:
    history = [point.value for point in result.original_data]
    forecast = [point.value for point in result.forecast_data]
    report["confidenceInterval"] = payload.get("confidenceInterval")
    report["parameters"] = payload["parameters"]
    report["analytics"] = {
        "historicalStats": describe_values(history),
        "forecastStats": describe_values(forecast),
        "growthRate": growth_rate(history, forecast),
    }
  return report


def result_to_frame(result: ForecastResult) -> pd.DataFrame:
  """One row per observed or forecast point with interval bounds on forecast rows."""
  rows = [
      {"timestamp": point.timestamp, "value": point.value, "kind": "history", "lower": np.nan, "upper": np.nan}
      for point in result.original_data
  ]
  interval = result.confidence_interval
  for idx, point in enumerate(result.forecast_data):
    rows.append(
        {
            "timestamp": point.timestamp,
            "value": point.value,
            "kind": "forecast",
            "lower": interval.lower[idx].value if interval is not None else np.nan,
            "upper": interval.upper[idx].value if interval is not None else np.nan,
        }
    )
  frame = pd.DataFrame(rows, columns=["timestamp", "value", "kind", "lower", "upper"])
  frame["timestamp"] = pd.to_datetime(frame["timestamp"])
  return frame
