from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from forecast_engine import InsufficientDataError, TimeSeriesPoint
from forecast_engine.preparation import (
    aggregate_series,
    coerce_timestamp,
    coerce_value,
    fill_missing_values,
    normalize_values,
    prepare_series,
    remove_outliers,
)

from .conftest import make_monthly_points, make_points


def test_coerce_timestamp_variants():
  expected = datetime(2024, 3, 1)
  assert coerce_timestamp(expected) == expected
  assert coerce_timestamp(date(2024, 3, 1)) == expected
  assert coerce_timestamp("2024-03-01") == expected
  assert coerce_timestamp(pd.Timestamp("2024-03-01")) == expected
  assert coerce_timestamp(np.datetime64("2024-03-01")) == expected
  assert coerce_timestamp(0) == datetime(1970, 1, 1)


def test_coerce_timestamp_normalizes_timezones_to_utc():
  aware = datetime(2024, 3, 1, 12, tzinfo=timezone(timedelta(hours=2)))
  assert coerce_timestamp(aware) == datetime(2024, 3, 1, 10)


@pytest.mark.parametrize("raw", [None, "", "not a date", True, float("nan"), pd.NaT])
def test_coerce_timestamp_rejects_garbage(raw):
  assert coerce_timestamp(raw) is None


def test_coerce_value_variants():
  assert coerce_value(3) == 3.0
  assert coerce_value(np.float32(1.5)) == 1.5
  assert coerce_value(" 1,234.5 ") == 1234.5
  assert coerce_value("1_000") == 1000.0


@pytest.mark.parametrize("raw", [None, "", "abc", True, float("inf"), float("nan"), object()])
def test_coerce_value_rejects_garbage(raw):
  assert coerce_value(raw) is None


def test_prepare_series_sorts_and_keeps_last_duplicate():
  raw = [
      ("2024-01-03", 30),
      ("2024-01-01", 10),
      ("2024-01-02", 20),
      ("2024-01-01", 11),
  ]
  series = prepare_series(raw)
  assert [ts.day for ts in series.timestamps] == [1, 2, 3]
  np.testing.assert_allclose(series.values, [11.0, 20.0, 30.0])
  assert series.step == timedelta(days=1)


def test_prepare_series_drops_invalid_pairs(caplog):
  raw = [
      {"date": "2024-01-01", "value": 1},
      {"timestamp": "2024-01-02", "value": "n/a"},
      {"timestamp": "garbage", "value": 3},
      TimeSeriesPoint(datetime(2024, 1, 4), 4.0),
      ("2024-01-05", "5"),
      "not a pair",
  ]
  with caplog.at_level("WARNING"):
    series = prepare_series(raw)
  assert len(series) == 3
  assert series.dropped == 3
  assert "Dropped 3" in caplog.text


@pytest.mark.parametrize("raw", [[], [("2024-01-01", 1)], [("2024-01-01", 1), ("2024-01-01", 2)]])
def test_prepare_series_requires_two_points(raw):
  with pytest.raises(InsufficientDataError) as excinfo:
    prepare_series(raw)
  assert excinfo.value.minimum == 2


def test_insufficient_data_is_a_value_error():
  with pytest.raises(ValueError):
    prepare_series([("2024-01-01", 1)])


def test_dominant_step_prefers_most_frequent_gap():
  start = datetime(2024, 1, 1)
  offsets = [0, 1, 2, 3, 5, 6]
  series = prepare_series([(start + timedelta(days=d), d) for d in offsets])
  assert series.step == timedelta(days=1)


def test_future_timestamps_follow_daily_spacing():
  series = prepare_series(make_points([1, 2, 3], step=timedelta(hours=6)))
  future = series.future_timestamps(2)
  assert future == [datetime(2024, 1, 1, 18), datetime(2024, 1, 2, 0)]


def test_future_timestamps_keep_calendar_months():
  series = prepare_series(make_monthly_points([1, 2, 3, 4], start="2023-10-01"))
  assert series.frequency == "MS"
  assert series.future_timestamps(3) == [datetime(2024, 2, 1), datetime(2024, 3, 1), datetime(2024, 4, 1)]


def test_business_day_input_continues_the_dominant_daily_step():
  days = pd.bdate_range("2024-01-01", "2024-01-26")
  series = prepare_series([(ts, float(idx)) for idx, ts in enumerate(days)])
  assert series.frequency is None
  assert series.step == timedelta(days=1)
  assert series.future_timestamps(3) == [datetime(2024, 1, 27), datetime(2024, 1, 28), datetime(2024, 1, 29)]


def test_future_timestamps_for_two_points_use_the_gap():
  series = prepare_series([("2024-01-01", 1), ("2024-01-08", 2)])
  assert series.future_timestamps(1) == [datetime(2024, 1, 15)]
  assert series.future_timestamps(0) == []


def test_remove_outliers_drops_extreme_points():
  values = [10, 11, 9, 10, 12, 10, 11, 200, 9, 10]
  kept = remove_outliers(make_points(values))
  assert len(kept) == 9
  assert all(point.value < 100 for point in kept)


def test_remove_outliers_is_noop_for_short_series():
  points = make_points([1, 1000])
  assert len(remove_outliers(points)) == 2


def test_aggregate_series_by_month_and_week():
  points = make_points(np.ones(62), start=datetime(2024, 1, 1))
  monthly = aggregate_series(points, "month", "sum")
  assert [point.timestamp for point in monthly] == [datetime(2024, 1, 1), datetime(2024, 2, 1), datetime(2024, 3, 1)]
  assert [point.value for point in monthly] == [31.0, 29.0, 2.0]

  weekly = aggregate_series(points, "week", "max")
  # 2024-01-01 is a Monday; buckets are labelled with their start.
  assert weekly[0].timestamp == datetime(2024, 1, 1)
  assert weekly[1].timestamp == datetime(2024, 1, 8)


def test_aggregate_series_average_and_empty_buckets():
  points = [("2024-01-10", 2), ("2024-01-20", 4), ("2024-04-05", 9)]
  averaged = aggregate_series(points, "month", "avg")
  assert [(point.timestamp.month, point.value) for point in averaged] == [(1, 3.0), (4, 9.0)]


def test_aggregate_series_rejects_unknown_interval():
  with pytest.raises(ValueError):
    aggregate_series(make_points([1, 2]), "fortnight")
  with pytest.raises(ValueError):
    aggregate_series(make_points([1, 2]), "month", "median")


@pytest.mark.parametrize(
    "method, expected",
    [
        ("mean", [2.0, 4.0, 4.0, 6.0, 4.0]),
        ("median", [2.0, 4.0, 4.0, 6.0, 4.0]),
        ("previous", [2.0, 4.0, 4.0, 6.0, 6.0]),
        ("next", [2.0, 4.0, 6.0, 6.0]),
    ],
)
def test_fill_missing_values(method, expected):
  raw = [
      ("2024-01-01", "2"),
      ("2024-01-02", "4"),
      ("2024-01-03", ""),
      ("2024-01-04", "6"),
      ("2024-01-05", "n/a"),
      ("not a date", "9"),
  ]
  filled = fill_missing_values(raw, method)
  assert [point.value for point in filled] == expected
  assert all(isinstance(point.timestamp, datetime) for point in filled)


def test_fill_missing_values_edge_cases():
  assert fill_missing_values([("2024-01-01", None), ("2024-01-02", "x")]) == []
  assert fill_missing_values([]) == []
  with pytest.raises(ValueError):
    fill_missing_values(make_points([1, 2]), "interpolate")


def test_normalize_values():
  scaled = normalize_values(make_points([10, 20, 15, 30]))
  assert [point.value for point in scaled] == pytest.approx([0.0, 0.5, 0.25, 1.0])
  flat = normalize_values(make_points([7, 7, 7]), low=-1.0, high=3.0)
  assert [point.value for point in flat] == [1.0, 1.0, 1.0]
  with pytest.raises(ValueError):
    normalize_values(make_points([1, 2]), low=1.0, high=1.0)
