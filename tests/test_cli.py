from __future__ import annotations

import json

import pandas as pd
import pytest

import forecast_cli


@pytest.fixture
def sales_csv(tmp_path, seasonal_values):
  frame = pd.DataFrame(
      {
          "date": pd.date_range("2020-01-01", periods=len(seasonal_values), freq="MS").strftime("%Y-%m-%d"),
          "sales": [f"{value:,.2f}" for value in seasonal_values],
      }
  )
  path = tmp_path / "sales.csv"
  frame.to_csv(path, index=False)
  return path


def test_main_writes_outputs(tmp_path, sales_csv, capsys):
  json_out = tmp_path / "forecast.json"
  csv_out = tmp_path / "forecast.csv"
  exit_code = forecast_cli.main(
      [
          str(sales_csv),
          "--value-column",
          "sales",
          "--periods",
          "6",
          "--json-out",
          str(json_out),
          "--csv-out",
          str(csv_out),
      ]
  )
  assert exit_code == 0
  output = capsys.readouterr().out
  assert "Method:" in output
  assert "Candidates:" in output

  report = json.loads(json_out.read_text(encoding="utf-8"))
  assert report["metadata"]["valueField"] == "sales"
  assert len(report["forecastData"]) == 6

  frame = pd.read_csv(csv_out)
  assert (frame["kind"] == "forecast").sum() == 6


def test_main_explicit_method_options(sales_csv, capsys):
  exit_code = forecast_cli.main(
      [
          str(sales_csv),
          "--value-column",
          "sales",
          "--method",
          "arima",
          "--arima-order",
          "1,1,0",
          "--no-interval",
          "--periods",
          "2",
      ]
  )
  assert exit_code == 0
  output = capsys.readouterr().out
  assert "ARIMA" in output
  assert "[" not in output.split("Forecast:")[1]


def test_main_aggregates_before_forecasting(tmp_path, capsys):
  dates = pd.date_range("2024-01-01", periods=90, freq="D")
  path = tmp_path / "daily.csv"
  pd.DataFrame({"date": dates.strftime("%Y-%m-%d"), "value": range(90)}).to_csv(path, index=False)
  exit_code = forecast_cli.main([str(path), "--aggregate", "month", "--periods", "1", "--remove-outliers"])
  assert exit_code == 0
  assert "Aggregated into 3 month bucket(s)" in capsys.readouterr().out


def test_main_reports_engine_errors(tmp_path, capsys):
  path = tmp_path / "tiny.csv"
  path.write_text("date,value\n2024-01-01,5\n2024-01-02,oops\n", encoding="utf-8")
  assert forecast_cli.main([str(path)]) == 1
  err = capsys.readouterr().err
  assert "Forecast failed" in err
  assert "skipped 1 row" in err


def test_main_rejects_invalid_options(sales_csv):
  assert forecast_cli.main([str(sales_csv), "--value-column", "sales", "--confidence-level", "1.5"]) == 1


def test_missing_column_exits(sales_csv):
  with pytest.raises(SystemExit):
    forecast_cli.main([str(sales_csv), "--value-column", "revenue"])


def test_parse_arima_order():
  assert forecast_cli._parse_arima_order("2, 1, 0") == (2, 1, 0)
  assert forecast_cli._parse_arima_order(None) is None
  with pytest.raises(SystemExit):
    forecast_cli._parse_arima_order("2-1")


def test_main_fills_missing_values(tmp_path, capsys):
  path = tmp_path / "gaps.csv"
  path.write_text(
      "date,value\n2024-01-01,5\n2024-01-02,\n2024-01-03,7\n2024-01-04,oops\n2024-01-05,9\n",
      encoding="utf-8",
  )
  exit_code = forecast_cli.main([str(path), "--fill-missing", "previous", "--method", "linear", "--periods", "1"])
  assert exit_code == 0
  captured = capsys.readouterr()
  assert "Filling 2 missing value(s) using previous." in captured.out
  assert "skipped" not in captured.err


def test_load_points_with_fill_method(tmp_path):
  path = tmp_path / "gaps.csv"
  path.write_text("date,value\n2024-01-01,2\n2024-01-02,\n2024-01-03,4\n", encoding="utf-8")
  assert [point.value for point in forecast_cli.load_points(str(path), "date", "value")] == [2.0, 4.0]
  filled = forecast_cli.load_points(str(path), "date", "value", fill_method="mean")
  assert [point.value for point in filled] == [2.0, 3.0, 4.0]
