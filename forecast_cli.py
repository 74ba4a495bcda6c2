"""Command line forecasting over a CSV of historical sales."""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from forecast_engine import (
    EngineConfig,
    ForecastError,
    ForecastOptions,
    ForecastOrchestrator,
    ForecastRun,
    TimeSeriesPoint,
    aggregate_series,
    build_report,
    fill_missing_values,
    remove_outliers,
    result_to_frame,
)
from forecast_engine.charts import method_display_name, render_forecast_chart
from forecast_engine.preparation import FILL_METHODS, coerce_timestamp, coerce_value

AGGREGATE_INTERVALS = ("day", "week", "month", "quarter", "year")
AGGREGATE_FUNCS = ("sum", "avg", "max", "min")
SEASONALITY_CHOICES = {"yes": True, "no": False, "auto": None}


def _parse_arima_order(raw_value: Optional[str]) -> Optional[Tuple[int, int, int]]:
  """Parses 'p,d,q' (commas or spaces) into three non-negative integers."""

  if raw_value is None:
    return None
  match = re.fullmatch(r"\s*(\d+)\s*[,\s]\s*(\d+)\s*[,\s]\s*(\d+)\s*", raw_value)
  if not match:
    raise SystemExit(f"arima-order must look like 'p,d,q' (e.g. '1,1,1'); got '{raw_value}'.")
  return int(match.group(1)), int(match.group(2)), int(match.group(3))


def load_points(
    csv_path: str, date_column: str, value_column: str, fill_method: Optional[str] = None
) -> List[TimeSeriesPoint]:
  """Reads two CSV columns into points.

  Rows with unparseable dates are skipped. Rows with unparseable values are
  skipped too, unless `fill_method` names a fill strategy.
  """

  path = Path(csv_path)
  if not path.exists():
    raise SystemExit(f"Input file not found: {csv_path}")
  frame = pd.read_csv(path, dtype=str, keep_default_na=False)
  missing = [column for column in (date_column, value_column) if column not in frame.columns]
  if missing:
    raise SystemExit(
        f"Column(s) {', '.join(missing)} not found; available columns: {', '.join(frame.columns)}."
    )

  rows: List[Tuple[datetime, Optional[float]]] = []
  skipped = 0
  for raw_time, raw_value in zip(frame[date_column], frame[value_column]):
    timestamp = coerce_timestamp(raw_time)
    value = coerce_value(raw_value)
    if timestamp is None or (value is None and fill_method is None):
      skipped += 1
      continue
    rows.append((timestamp, value))
  if skipped:
    print(f"Warning: skipped {skipped} row(s) with unparseable dates or values.", file=sys.stderr)

  if fill_method is None:
    return [TimeSeriesPoint(timestamp, value) for timestamp, value in rows]
  blanks = sum(1 for _, value in rows if value is None)
  if blanks:
    print(f"Filling {blanks} missing value(s) using {fill_method}.")
  return fill_missing_values(rows, fill_method)


def build_options(args: argparse.Namespace) -> ForecastOptions:
  return ForecastOptions(
      periods=args.periods,
      method=args.method,
      confidence_interval=not args.no_interval,
      confidence_level=args.confidence_level,
      seasonality=SEASONALITY_CHOICES[args.seasonality],
      seasonal_period=args.seasonal_period,
      alpha=args.alpha,
      beta=args.beta,
      gamma=args.gamma,
      arima_order=_parse_arima_order(args.arima_order),
      auto_arima=args.auto_arima,
  )


def print_summary(run: ForecastRun) -> None:
  result = run.result
  diagnostics = run.diagnostics
  print(f"Method: {method_display_name(result)} ({result.method.label})")
  print(f"Accuracy: {result.accuracy:.2%}")
  print(f"Parameters: {result.parameters}")
  seasonality = diagnostics.seasonality
  if seasonality is not None and seasonality.has_seasonality:
    print(f"Seasonality: period {seasonality.period} ({seasonality.source})")
  else:
    print("Seasonality: none")

  if len(diagnostics.candidates) > 1:
    print("\nCandidates:")
    for score in diagnostics.candidates:
      marker = "*" if score.tag == diagnostics.selected else " "
      print(f" {marker} {score.tag.label:<28} accuracy={score.accuracy:.4f} ({score.strategy})")
  for label, reason in diagnostics.rejected.items():
    print(f"Warning: {label} was not viable: {reason}", file=sys.stderr)

  interval = result.confidence_interval
  print("\nForecast:")
  for idx, point in enumerate(result.forecast_data):
    line = f"  {point.timestamp.isoformat()}  {point.value:.4f}"
    if interval is not None:
      line += f"  [{interval.lower[idx].value:.4f}, {interval.upper[idx].value:.4f}]"
    print(line)


def main(argv: Optional[Sequence[str]] = None) -> int:
  parser = argparse.ArgumentParser(description="Forecast a sales time series from a CSV file.")
  parser.add_argument("csv_path", help="CSV file with a date column and a numeric value column.")
  parser.add_argument("--date-column", default="date", help="Column holding timestamps (default: date).")
  parser.add_argument("--value-column", default="value", help="Column holding values (default: value).")
  parser.add_argument(
      "--method",
      default="auto",
      choices=("auto", "linear", "exp_smoothing", "arima"),
      help="Forecasting method; auto scores every candidate and keeps the best (default: auto).",
  )
  parser.add_argument("--periods", type=int, default=12, help="Number of future steps to forecast (default: 12).")
  parser.add_argument(
      "--confidence-level",
      type=float,
      default=0.95,
      help="Confidence level of the forecast interval, strictly between 0 and 1 (default: 0.95).",
  )
  parser.add_argument("--no-interval", action="store_true", help="Skip the confidence interval.")
  parser.add_argument(
      "--seasonality",
      default="auto",
      choices=sorted(SEASONALITY_CHOICES),
      help="Force seasonality on or off, or detect it from autocorrelation (default: auto).",
  )
  parser.add_argument("--seasonal-period", type=int, help="Explicit seasonal period in steps (e.g. 12 for monthly data).")
  parser.add_argument("--alpha", type=float, help="Fixed level smoothing constant; optimized when omitted.")
  parser.add_argument("--beta", type=float, help="Fixed trend smoothing constant; optimized when omitted.")
  parser.add_argument("--gamma", type=float, help="Fixed seasonal smoothing constant; optimized when omitted.")
  parser.add_argument("--arima-order", metavar="P,D,Q", help="Explicit ARIMA order, e.g. 2,1,1.")
  parser.add_argument("--auto-arima", action="store_true", help="Select the ARIMA order by AIC.")
  parser.add_argument(
      "--aggregate",
      choices=AGGREGATE_INTERVALS,
      help="Aggregate the series into calendar buckets before forecasting.",
  )
  parser.add_argument(
      "--aggregate-how",
      default="sum",
      choices=AGGREGATE_FUNCS,
      help="Aggregation applied within each bucket (default: sum).",
  )
  parser.add_argument(
      "--fill-missing",
      choices=FILL_METHODS,
      help="Fill unparseable values (mean, median, previous or next) instead of skipping those rows.",
  )
  parser.add_argument(
      "--remove-outliers",
      action="store_true",
      help="Drop points more than two standard deviations from the mean before forecasting.",
  )
  parser.add_argument("--json-out", help="Write the forecast report as JSON to this path.")
  parser.add_argument("--csv-out", help="Write history and forecast rows as CSV to this path.")
  parser.add_argument("--chart-path", help="Write a Plotly chart (.png/.svg or .html) to this path.")
  parser.add_argument("--parallel", action="store_true", help="Fit auto candidates on a thread pool.")
  parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

  args = parser.parse_args(argv)
  logging.basicConfig(
      level=logging.DEBUG if args.verbose else logging.WARNING,
      format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )

  points = load_points(args.csv_path, args.date_column, args.value_column, args.fill_missing)
  try:
    options = build_options(args)
    if args.remove_outliers:
      before = len(points)
      points = remove_outliers(points)
      if len(points) < before:
        print(f"Removed {before - len(points)} outlier(s).")
    if args.aggregate:
      points = aggregate_series(points, args.aggregate, args.aggregate_how)
      print(f"Aggregated into {len(points)} {args.aggregate} bucket(s) using {args.aggregate_how}.")

    orchestrator = ForecastOrchestrator(EngineConfig(parallel=args.parallel))
    run = orchestrator.run(points, options)
  except ForecastError as exc:
    print(f"Forecast failed: {exc}", file=sys.stderr)
    return 1

  print_summary(run)

  if args.json_out:
    report = build_report(run.result, date_field=args.date_column, value_field=args.value_column)
    Path(args.json_out).write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(f"Saved JSON report to {args.json_out}")
  if args.csv_out:
    result_to_frame(run.result).to_csv(args.csv_out, index=False)
    print(f"Saved CSV to {args.csv_out}")
  if args.chart_path:
    written = render_forecast_chart(run.result, args.chart_path, value_label=args.value_column)
    if str(written) != args.chart_path:
      print(f"Plotly static export failed. Saved interactive HTML to {written}", file=sys.stderr)
    else:
      print(f"Saved chart to {written}")

  return 0


if __name__ == "__main__":
  raise SystemExit(main())
