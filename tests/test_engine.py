from __future__ import annotations

from datetime import datetime, timedelta

import numpy as np
import pandas as pd
import pytest

from forecast_engine import (
    EngineConfig,
    ForecastError,
    ForecastOptions,
    ForecastOrchestrator,
    InsufficientDataError,
    InvalidOptionsError,
    ModelTag,
    NoViableModelError,
    Stage,
    forecast_time_series,
)
from forecast_engine import engine as engine_module
from forecast_engine.errors import ModelNotViableError
from forecast_engine.serialization import result_to_dict

from .conftest import make_points

METHODS = ["auto", "linear", "exp_smoothing", "arima"]


def test_linear_scenario():
  points = [(datetime(2024, 1, d), v) for d, v in ((1, 10), (2, 20), (3, 30))]
  result = forecast_time_series(points, method="linear", periods=2)
  assert result.method == ModelTag("linear")
  assert result.parameters.slope == pytest.approx(10.0)
  assert result.parameters.intercept == pytest.approx(10.0)
  np.testing.assert_allclose(result.forecast_values, [40.0, 50.0])
  assert result.forecast_timestamps == [datetime(2024, 1, 4), datetime(2024, 1, 5)]
  assert result.accuracy == pytest.approx(1.0)


def test_constant_scenario_selects_simple_smoothing():
  points = make_points([5, 5, 5, 5])
  result = forecast_time_series(points, periods=3)
  assert result.method.label == "exp_smoothing_simple"
  assert result.accuracy == pytest.approx(1.0)
  np.testing.assert_allclose(result.forecast_values, 5.0)


def test_constant_series_ties_rank_collapsed_models_last():
  run = ForecastOrchestrator().run(make_points([5] * 10), ForecastOptions(periods=2))
  collapsed = {score.tag.label for score in run.diagnostics.candidates if score.collapsed}
  assert {"exp_smoothing_holt", "arima"} <= collapsed
  assert run.diagnostics.selected == ModelTag("exp_smoothing", "simple")


def test_noiseless_line_round_trip(linear_values):
  result = forecast_time_series(make_points(linear_values), method="linear", periods=4)
  assert result.parameters.slope == pytest.approx(2.5)
  assert result.parameters.intercept == pytest.approx(10.0)
  assert result.accuracy == pytest.approx(1.0)


@pytest.mark.parametrize("method", METHODS)
def test_forecast_length_and_monthly_spacing(method, monthly_seasonal_points):
  result = forecast_time_series(monthly_seasonal_points, method=method, periods=5)
  assert len(result.forecast_data) == 5
  last = monthly_seasonal_points[-1].timestamp
  expected = list(pd.date_range(start=last, periods=6, freq="MS")[1:].to_pydatetime())
  assert result.forecast_timestamps == expected
  assert 0.0 <= result.accuracy <= 1.0


@pytest.mark.parametrize("method", METHODS)
def test_forecast_spacing_follows_dominant_gap(method, noisy_values):
  points = make_points(noisy_values, step=timedelta(hours=3))
  result = forecast_time_series(points, method=method, periods=4)
  timestamps = [points[-1].timestamp] + list(result.forecast_timestamps)
  assert all(b - a == timedelta(hours=3) for a, b in zip(timestamps, timestamps[1:]))


@pytest.mark.parametrize("method", METHODS)
def test_single_period_and_two_point_input(method):
  result = forecast_time_series(make_points([3.0, 4.0]), method=method, periods=1)
  assert len(result.forecast_data) == 1
  assert result.forecast_data[0].timestamp == datetime(2024, 1, 3)
  assert np.isfinite(result.forecast_data[0].value)


@pytest.mark.parametrize("method", METHODS)
def test_interval_brackets_forecast(method, noisy_values):
  result = forecast_time_series(make_points(noisy_values), method=method, periods=6, confidence_level=0.9)
  interval = result.confidence_interval
  assert interval is not None and interval.confidence == 0.9
  widths = [upper.value - point.value for upper, point in zip(interval.upper, result.forecast_data)]
  assert all(b >= a - 1e-12 for a, b in zip(widths, widths[1:]))
  for upper, lower, point in zip(interval.upper, interval.lower, result.forecast_data):
    assert upper.value >= point.value >= lower.value
    assert upper.timestamp == point.timestamp


def test_interval_can_be_disabled(noisy_values):
  result = forecast_time_series(make_points(noisy_values), periods=3, confidence_interval=False)
  assert result.confidence_interval is None


def test_auto_selection_is_deterministic(monthly_seasonal_points):
  first = forecast_time_series(monthly_seasonal_points, periods=6)
  second = forecast_time_series(monthly_seasonal_points, periods=6)
  assert result_to_dict(first) == result_to_dict(second)


def test_parallel_matches_serial(monthly_seasonal_points):
  options = ForecastOptions(periods=6)
  serial = ForecastOrchestrator().run(monthly_seasonal_points, options)
  parallel = ForecastOrchestrator(EngineConfig(parallel=True, max_workers=4)).run(monthly_seasonal_points, options)
  assert result_to_dict(serial.result) == result_to_dict(parallel.result)
  assert [c.tag for c in serial.diagnostics.candidates] == [c.tag for c in parallel.diagnostics.candidates]


def test_auto_diagnostics_on_seasonal_series(monthly_seasonal_points):
  run = ForecastOrchestrator().run(monthly_seasonal_points, ForecastOptions(periods=6))
  diagnostics = run.diagnostics
  assert diagnostics.stages == (
      Stage.IDLE,
      Stage.PREPARING,
      Stage.FITTING,
      Stage.SCORING,
      Stage.BUILDING_INTERVALS,
      Stage.DONE,
  )
  assert diagnostics.seasonality.period == 12
  labels = [score.tag.label for score in diagnostics.candidates]
  assert labels == ["linear", "exp_smoothing_simple", "exp_smoothing_holt", "exp_smoothing_holt_winters", "arima"]
  assert all(score.strategy == "holdout" for score in diagnostics.candidates)
  best = max(score.accuracy for score in diagnostics.candidates)
  assert run.result.accuracy == best
  assert diagnostics.selected == run.result.method


def test_auto_skips_holt_winters_without_seasonality(noisy_values):
  run = ForecastOrchestrator().run(make_points(noisy_values), ForecastOptions(periods=3, seasonality=False))
  labels = [score.tag.label for score in run.diagnostics.candidates]
  assert "exp_smoothing_holt_winters" not in labels
  assert run.diagnostics.seasonality.source == "disabled"


def test_explicit_method_stages(linear_values):
  run = ForecastOrchestrator().run(make_points(linear_values), ForecastOptions(periods=2, method="linear"))
  assert run.diagnostics.stages == (
      Stage.IDLE,
      Stage.PREPARING,
      Stage.FITTING,
      Stage.BUILDING_INTERVALS,
      Stage.DONE,
  )
  assert len(run.diagnostics.candidates) == 1


def test_exp_smoothing_variant_selection(linear_values, monthly_seasonal_points):
  forced_simple = forecast_time_series(
      monthly_seasonal_points, method="exp_smoothing", seasonality=False, periods=2
  )
  assert forced_simple.method == ModelTag("exp_smoothing", "simple")

  seasonal = forecast_time_series(monthly_seasonal_points, method="exp_smoothing", periods=2)
  assert seasonal.method == ModelTag("exp_smoothing", "holt_winters")
  assert seasonal.parameters.seasonal_period == 12

  trending = forecast_time_series(make_points(linear_values), method="exp_smoothing", periods=2)
  assert trending.method == ModelTag("exp_smoothing", "holt")


def test_supplied_smoothing_constants_bypass_search(noisy_values):
  result = forecast_time_series(
      make_points(noisy_values), method="exp_smoothing", seasonality=False, alpha=0.45, periods=2
  )
  assert result.parameters.alpha == 0.45


def test_configured_seasonal_period(monthly_seasonal_points):
  result = forecast_time_series(
      monthly_seasonal_points, method="exp_smoothing", seasonal_period=6, periods=2
  )
  assert result.parameters.seasonal_period == 6


def test_explicit_arima_order(noisy_values):
  result = forecast_time_series(make_points(noisy_values), method="arima", arima_order=(2, 0, 1), periods=3)
  assert (result.parameters.p, result.parameters.d) == (2, 0)


def test_options_mapping_with_camel_case(noisy_values):
  payload = {"method": "linear", "periods": 2, "confidenceInterval": True, "confidenceLevel": 0.8}
  run = ForecastOrchestrator().run(make_points(noisy_values), payload)
  assert run.result.confidence_interval.confidence == 0.8


def test_invalid_options_are_rejected_before_preparation():
  with pytest.raises(InvalidOptionsError):
    forecast_time_series([], method="prophet", periods=2)
  with pytest.raises(InvalidOptionsError):
    forecast_time_series([], periods=0)
  with pytest.raises(InvalidOptionsError):
    ForecastOrchestrator().run([], {"periods": 2, "horizon": 3})


def test_options_and_keywords_are_exclusive():
  with pytest.raises(TypeError):
    forecast_time_series([], ForecastOptions(periods=1), periods=2)


def test_insufficient_data():
  with pytest.raises(InsufficientDataError):
    forecast_time_series(make_points([1.0]), periods=2)


def test_no_viable_model(monkeypatch, noisy_values):
  def refuse(values, horizon):
    raise ModelNotViableError("refused")

  monkeypatch.setattr(engine_module, "fit_linear", refuse)
  with pytest.raises(NoViableModelError) as excinfo:
    forecast_time_series(make_points(noisy_values), method="linear", periods=2)
  assert isinstance(excinfo.value, RuntimeError)
  assert isinstance(excinfo.value, ForecastError)
  assert "refused" in str(excinfo.value)


def test_non_viable_candidate_is_dropped_from_auto(monkeypatch, noisy_values):
  def refuse(values, horizon, **kwargs):
    raise ModelNotViableError("refused")

  monkeypatch.setattr(engine_module, "fit_arima", refuse)
  run = ForecastOrchestrator().run(make_points(noisy_values), ForecastOptions(periods=2))
  assert "arima" in run.diagnostics.rejected
  assert all(score.tag.label != "arima" for score in run.diagnostics.candidates)


def test_interval_stays_finite_for_huge_values(noisy_values):
  result = forecast_time_series(make_points(noisy_values * 1e200), method="linear", periods=3)
  interval = result.confidence_interval
  assert all(np.isfinite(point.value) for point in interval.upper)
  assert all(np.isfinite(point.value) for point in interval.lower)
