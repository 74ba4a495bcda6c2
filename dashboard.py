"""Streamlit dashboard for interactive sales forecasting."""

from __future__ import annotations

import json
from typing import List, Optional

import pandas as pd
import streamlit as st

from forecast_engine import (
    EngineConfig,
    ForecastError,
    ForecastOptions,
    ForecastOrchestrator,
    TimeSeriesPoint,
    aggregate_series,
    build_report,
    remove_outliers,
    result_to_frame,
)
from forecast_engine.charts import build_forecast_figure, method_display_name
from forecast_engine.preparation import coerce_timestamp, coerce_value

st.set_page_config(page_title="Sales Forecast Explorer", layout="wide", page_icon="📈")

st.title("Sales Forecast Explorer")
st.write(
    "Upload historical sales as CSV, pick the date and value columns, then forecast future demand with linear "
    "regression, exponential smoothing or ARIMA. In auto mode every model is scored on a recent holdout and the "
    "most accurate one is kept."
)

METHOD_OPTIONS = {
    "Auto (best accuracy)": "auto",
    "Linear regression": "linear",
    "Exponential smoothing": "exp_smoothing",
    "ARIMA": "arima",
}
SEASONALITY_OPTIONS = {"Detect": None, "Yes": True, "No": False}
AGGREGATE_OPTIONS = ["None", "day", "week", "month", "quarter", "year"]


def _frame_to_points(frame: pd.DataFrame, date_column: str, value_column: str) -> List[TimeSeriesPoint]:
  points = []
  for raw_time, raw_value in zip(frame[date_column], frame[value_column]):
    timestamp = coerce_timestamp(raw_time)
    value = coerce_value(raw_value)
    if timestamp is not None and value is not None:
      points.append(TimeSeriesPoint(timestamp, value))
  return points


def _optional_float(text: str, name: str) -> Optional[float]:
  text = text.strip()
  if not text:
    return None
  try:
    return float(text)
  except ValueError as exc:
    raise ForecastError(f"{name} must be a number between 0 and 1.") from exc


st.markdown("### Step 1: Upload data")
uploaded = st.file_uploader("CSV file", type=["csv"])

if uploaded is None:
  st.info("Upload a CSV with at least a date column and a numeric column to get started.")
  st.stop()

try:
  frame = pd.read_csv(uploaded, dtype=str, keep_default_na=False)
except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as exc:
  st.error(f"Could not read the CSV file: {exc}")
  st.stop()

if frame.empty or len(frame.columns) < 2:
  st.error("The file needs at least two columns and one row.")
  st.stop()

st.dataframe(frame.head(50), use_container_width=True)

col_date, col_value = st.columns(2)
with col_date:
  date_column = st.selectbox("Date column", options=list(frame.columns), index=0)
with col_value:
  value_column = st.selectbox("Value column", options=list(frame.columns), index=min(1, len(frame.columns) - 1))

st.markdown("---")
st.markdown("### Step 2: Forecast")

col_method, col_periods, col_level, col_season = st.columns([1.6, 1, 1, 1])
with col_method:
  method_label = st.selectbox("Method", options=list(METHOD_OPTIONS), index=0)
with col_periods:
  periods = st.number_input("Periods", min_value=1, max_value=500, value=12, step=1)
with col_level:
  confidence_level = st.slider("Confidence level", min_value=0.5, max_value=0.99, value=0.95, step=0.01)
with col_season:
  seasonality_label = st.selectbox("Seasonality", options=list(SEASONALITY_OPTIONS), index=0)

with st.expander("Advanced settings"):
  col_a, col_b, col_c, col_period = st.columns(4)
  with col_a:
    alpha_text = st.text_input("Alpha", value="", help="Level smoothing constant; blank to optimize.")
  with col_b:
    beta_text = st.text_input("Beta", value="", help="Trend smoothing constant; blank to optimize.")
  with col_c:
    gamma_text = st.text_input("Gamma", value="", help="Seasonal smoothing constant; blank to optimize.")
  with col_period:
    seasonal_period = st.number_input("Seasonal period (0 = detect)", min_value=0, max_value=366, value=0, step=1)

  col_p, col_d, col_q, col_auto = st.columns(4)
  with col_p:
    arima_p = st.number_input("ARIMA p", min_value=0, max_value=5, value=1, step=1)
  with col_d:
    arima_d = st.number_input("ARIMA d", min_value=0, max_value=2, value=1, step=1)
  with col_q:
    arima_q = st.number_input("ARIMA q", min_value=0, max_value=5, value=1, step=1)
  with col_auto:
    auto_arima = st.checkbox("Select ARIMA order automatically", value=False)
  custom_arima = st.checkbox("Use the ARIMA order above", value=False)

  col_agg, col_how, col_outliers = st.columns(3)
  with col_agg:
    aggregate = st.selectbox("Aggregate by", options=AGGREGATE_OPTIONS, index=0)
  with col_how:
    aggregate_how = st.selectbox("Aggregation", options=["sum", "avg", "max", "min"], index=0)
  with col_outliers:
    drop_outliers = st.checkbox("Remove outliers (2σ)", value=False)

show_interval = st.checkbox("Show confidence interval", value=True)
run_forecast = st.button("Run forecast", type="primary", use_container_width=True)

if run_forecast:
  try:
    points = _frame_to_points(frame, date_column, value_column)
    if drop_outliers:
      points = remove_outliers(points)
    if aggregate != "None":
      points = aggregate_series(points, aggregate, aggregate_how)
    options = ForecastOptions(
        periods=int(periods),
        method=METHOD_OPTIONS[method_label],
        confidence_interval=show_interval,
        confidence_level=float(confidence_level),
        seasonality=SEASONALITY_OPTIONS[seasonality_label],
        seasonal_period=int(seasonal_period) or None,
        alpha=_optional_float(alpha_text, "Alpha"),
        beta=_optional_float(beta_text, "Beta"),
        gamma=_optional_float(gamma_text, "Gamma"),
        arima_order=(int(arima_p), int(arima_d), int(arima_q)) if custom_arima else None,
        auto_arima=auto_arima,
    )
    with st.spinner("Fitting models..."):
      run = ForecastOrchestrator(EngineConfig(parallel=True)).run(points, options)
  except ForecastError as exc:
    st.error(str(exc))
  else:
    result = run.result
    col_m, col_acc, col_n = st.columns(3)
    col_m.metric("Method", method_display_name(result))
    col_acc.metric("Accuracy", f"{result.accuracy:.1%}")
    col_n.metric("Observations", len(result.original_data))
    st.plotly_chart(build_forecast_figure(result, value_label=value_column), use_container_width=True)

    if len(run.diagnostics.candidates) > 1:
      st.markdown("#### Candidates")
      st.dataframe(
          pd.DataFrame(
              [
                  {
                      "model": score.tag.label,
                      "accuracy": score.accuracy,
                      "scoring": score.strategy,
                      "selected": score.tag == run.diagnostics.selected,
                  }
                  for score in run.diagnostics.candidates
              ]
          ),
          use_container_width=True,
      )

    export_frame = result_to_frame(result)
    st.dataframe(export_frame[export_frame["kind"] == "forecast"], use_container_width=True)
    col_csv, col_json = st.columns(2)
    with col_csv:
      st.download_button(
          "Download CSV",
          data=export_frame.to_csv(index=False),
          file_name="forecast.csv",
          mime="text/csv",
      )
    with col_json:
      report = build_report(result, date_field=date_column, value_field=value_column)
      st.download_button(
          "Download JSON",
          data=json.dumps(report, indent=2),
          file_name="forecast.json",
          mime="application/json",
      )

with st.expander("Implementation details & methodology"):
  st.markdown(
      """
      **Preparation** – Rows with unparseable dates or values are skipped, duplicates keep the last value and the
      series is sorted by date. Forecast dates continue the dominant spacing of the input (calendar months stay
      calendar months).

      **Scoring** – Series with at least six points reserve their most recent 20% (capped at the forecast horizon)
      as a holdout; each model is refit on the rest and scored as 1 − MAPE on the holdout. Shorter series are scored
      on in-sample fit (1 − NRMSE).

      **ARIMA** – Coefficients are estimated with Yule-Walker and iterative innovations refinement. They approximate,
      but are not, maximum-likelihood estimates.

      **Intervals** – The band is ± z · σ · √k around the forecast, where σ is the root mean square of the
      selected model's in-sample residuals.
      """
  )
