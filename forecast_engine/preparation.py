"""Validation and normalization of raw (timestamp, value) pairs."""

from __future__ import annotations

import logging
import math
import numbers
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset

from .base import PreparedSeries, TimeSeriesPoint
from .errors import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_POINTS = 2

_AGGREGATION_RULES = {
    "day": "D",
    "week": "W-MON",
    "month": "MS",
    "quarter": "QS",
    "year": "YS",
}
_AGGREGATION_FUNCS = {"sum": "sum", "avg": "mean", "max": "max", "min": "min"}
_CALENDAR_OFFSETS = (
    pd.offsets.MonthBegin,
    pd.offsets.MonthEnd,
    pd.offsets.QuarterBegin,
    pd.offsets.QuarterEnd,
    pd.offsets.YearBegin,
    pd.offsets.YearEnd,
)


def _to_naive_utc(value: datetime) -> datetime:
  if value.tzinfo is not None:
    value = value.astimezone(timezone.utc).replace(tzinfo=None)
  return value


def coerce_timestamp(raw) -> Optional[datetime]:
  """Returns a naive UTC datetime for any date-like input, or None."""
  if raw is None or raw is pd.NaT or isinstance(raw, bool):
    return None
  if isinstance(raw, pd.Timestamp):
    if pd.isna(raw):
      return None
    return _to_naive_utc(raw.to_pydatetime())
  if isinstance(raw, datetime):
    return _to_naive_utc(raw)
  if isinstance(raw, date):
    return datetime(raw.year, raw.month, raw.day)
  if isinstance(raw, np.datetime64):
    if np.isnat(raw):
      return None
    return pd.Timestamp(raw).to_pydatetime()
  if isinstance(raw, numbers.Real):
    seconds = float(raw)
    if not math.isfinite(seconds):
      return None
    try:
      return pd.Timestamp(seconds, unit="s").to_pydatetime()
    except (ValueError, OverflowError):
      return None
  if isinstance(raw, str):
    text = raw.strip()
    if not text:
      return None
    try:
      parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
      return None
    if parsed is None or pd.isna(parsed):
      return None
    return _to_naive_utc(parsed.to_pydatetime())
  return None


def coerce_value(raw) -> Optional[float]:
  """Returns a finite float for any numeric-like input, or None."""
  if raw is None or isinstance(raw, bool):
    return None
  if isinstance(raw, str):
    text = raw.strip().replace(",", "").replace("_", "").replace(" ", "")
    if not text:
      return None
    try:
      number = float(text)
    except ValueError:
      return None
  else:
    try:
      number = float(raw)
    except (TypeError, ValueError):
      return None
  return number if math.isfinite(number) else None


def _unpack(item) -> Tuple[object, object]:
  if isinstance(item, TimeSeriesPoint):
    return item.timestamp, item.value
  if isinstance(item, Mapping):
    raw_time = item.get("timestamp", item.get("date"))
    return raw_time, item.get("value")
  if isinstance(item, (tuple, list)) and len(item) == 2:
    return item[0], item[1]
  return None, None


def _dominant_step(timestamps: List[datetime]) -> timedelta:
  gaps = Counter(b - a for a, b in zip(timestamps, timestamps[1:]))
  best_count = max(gaps.values())
  return min(gap for gap, count in gaps.items() if count == best_count)


def _infer_frequency(timestamps: List[datetime]) -> Optional[str]:
  """Calendar alias (month, quarter or year based) for the timestamps, if any.

  Fixed-length cadences, including business days, are left to the dominant step.
  """
  if len(timestamps) < 3:
    return None
  try:
    alias = pd.infer_freq(pd.DatetimeIndex(timestamps))
  except (TypeError, ValueError):
    return None
  if alias is None or not isinstance(to_offset(alias), _CALENDAR_OFFSETS):
    return None
  return alias


def prepare_series(raw_points: Iterable) -> PreparedSeries:
  """Coerces, de-duplicates and orders raw pairs into a PreparedSeries.

  Pairs whose timestamp or value cannot be coerced are dropped. Duplicate
  timestamps keep the value that appeared last in the input.
  """
  by_time = {}
  dropped = 0
  for item in raw_points:
    raw_time, raw_value = _unpack(item)
    timestamp = coerce_timestamp(raw_time)
    value = coerce_value(raw_value)
    if timestamp is None or value is None:
      dropped += 1
      continue
    by_time[timestamp] = value

  if dropped:
    logger.warning("Dropped %d input pairs with unusable timestamps or values.", dropped)
  if len(by_time) < MIN_POINTS:
    raise InsufficientDataError(len(by_time), MIN_POINTS)

  timestamps = sorted(by_time)
  values = np.asarray([by_time[ts] for ts in timestamps], dtype=np.float64)
  step = _dominant_step(timestamps)
  frequency = _infer_frequency(timestamps)
  logger.debug(
      "Prepared %d points from %s to %s (step=%s, frequency=%s).",
      len(timestamps),
      timestamps[0].isoformat(),
      timestamps[-1].isoformat(),
      step,
      frequency,
  )
  return PreparedSeries(
      timestamps=tuple(timestamps),
      values=values,
      step=step,
      frequency=frequency,
      dropped=dropped,
  )


def remove_outliers(raw_points: Iterable, threshold: float = 2.0) -> List[TimeSeriesPoint]:
  """Drops points further than `threshold` standard deviations from the mean."""
  series = prepare_series(raw_points)
  if len(series) < 3:
    return list(series.points)
  mean = float(np.mean(series.values))
  std = float(np.std(series.values))
  keep = np.abs(series.values - mean) <= threshold * std
  removed = int(np.count_nonzero(~keep))
  if removed:
    logger.info("Removed %d outliers beyond %.2f standard deviations.", removed, threshold)
  return [point for point, kept in zip(series.points, keep) if kept]


FILL_METHODS = ("mean", "median", "previous", "next")


def fill_missing_values(raw_points: Iterable, method: str = "mean") -> List[TimeSeriesPoint]:
  """Fills unusable values of dated pairs instead of dropping them.

  `mean` and `median` use the statistic of the usable values; `previous` and
  `next` carry the nearest usable value forward or backward in time. Pairs
  without a usable timestamp, or leading/trailing gaps a carry cannot reach,
  are dropped.
  """
  if method not in FILL_METHODS:
    raise ValueError(f"Unsupported fill method '{method}'; expected one of {', '.join(FILL_METHODS)}.")

  by_time = {}
  for item in raw_points:
    raw_time, raw_value = _unpack(item)
    timestamp = coerce_timestamp(raw_time)
    if timestamp is not None:
      by_time[timestamp] = coerce_value(raw_value)
  if not by_time:
    return []

  timestamps = sorted(by_time)
  frame = pd.Series([by_time[ts] for ts in timestamps], index=pd.DatetimeIndex(timestamps), dtype="float64")
  missing = int(frame.isna().sum())
  if missing == len(frame):
    return []

  if method == "mean":
    filled = frame.fillna(frame.mean())
  elif method == "median":
    filled = frame.fillna(frame.median())
  elif method == "previous":
    filled = frame.ffill()
  else:
    filled = frame.bfill()
  filled = filled.dropna()
  if missing:
    unfilled = len(frame) - len(filled)
    logger.info("Filled %d missing values using '%s'; dropped %d out of reach.", missing - unfilled, method, unfilled)
  return [TimeSeriesPoint(ts.to_pydatetime(), float(value)) for ts, value in filled.items()]


def normalize_values(raw_points: Iterable, low: float = 0.0, high: float = 1.0) -> List[TimeSeriesPoint]:
  """Min-max scales values into [low, high]; a flat series maps to the midpoint."""
  if not low < high:
    raise ValueError(f"Normalization range must satisfy low < high; got [{low}, {high}].")
  series = prepare_series(raw_points)
  smallest = float(np.min(series.values))
  largest = float(np.max(series.values))
  if largest == smallest:
    scaled = np.full(len(series), (low + high) / 2.0)
  else:
    scaled = (series.values - smallest) / (largest - smallest) * (high - low) + low
  return [TimeSeriesPoint(ts, float(value)) for ts, value in zip(series.timestamps, scaled)]


def aggregate_series(
    raw_points: Iterable,
    interval: str = "month",
    how: str = "sum",
) -> List[TimeSeriesPoint]:
  """Buckets a series by calendar interval; empty buckets are omitted."""
  if interval not in _AGGREGATION_RULES:
    raise ValueError(
        f"Unsupported interval '{interval}'; expected one of {', '.join(_AGGREGATION_RULES)}."
    )
  if how not in _AGGREGATION_FUNCS:
    raise ValueError(f"Unsupported aggregation '{how}'; expected one of {', '.join(_AGGREGATION_FUNCS)}.")

  series = prepare_series(raw_points)
  frame = pd.Series(series.values, index=pd.DatetimeIndex(series.timestamps))
  grouped = frame.resample(_AGGREGATION_RULES[interval], label="left", closed="left")
  aggregated = grouped.agg(_AGGREGATION_FUNCS[how])
  counts = grouped.count()
  aggregated = aggregated[counts > 0]
  return [
      TimeSeriesPoint(ts.to_pydatetime(), float(value)) for ts, value in aggregated.items()
  ]
