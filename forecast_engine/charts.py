"""Plotly rendering of a forecast result."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import plotly.graph_objects as go

from .base import ForecastResult

logger = logging.getLogger(__name__)

_METHOD_LABELS = {
    "linear": "Linear regression",
    "exp_smoothing_simple": "Simple exponential smoothing",
    "exp_smoothing_holt": "Holt exponential smoothing",
    "exp_smoothing_holt_winters": "Holt-Winters exponential smoothing",
    "arima": "ARIMA",
}


def method_display_name(result: ForecastResult) -> str:
  return _METHOD_LABELS.get(result.method.label, result.method.label)


def build_forecast_figure(
    result: ForecastResult,
    *,
    title: Optional[str] = None,
    value_label: str = "Value",
) -> go.Figure:
  """History, forecast and (when present) the shaded confidence band."""
  history_times = [point.timestamp for point in result.original_data]
  history_values = [point.value for point in result.original_data]
  future_times = list(result.forecast_timestamps)
  future_values = result.forecast_values

  fig = go.Figure()
  fig.add_trace(
      go.Scatter(
          x=history_times,
          y=history_values,
          mode="lines+markers" if len(history_times) <= 60 else "lines",
          name="history",
          line=dict(color="#1f77b4", width=2.0),
          marker=dict(size=5),
          legendgroup="history",
      )
  )

  interval = result.confidence_interval
  if interval is not None and interval.upper:
    fig.add_trace(
        go.Scatter(
            x=future_times,
            y=[point.value for point in interval.upper],
            mode="lines",
            line=dict(color="rgba(255,127,14,0)"),
            showlegend=False,
            hoverinfo="skip",
        )
    )
    fig.add_trace(
        go.Scatter(
            x=future_times,
            y=[point.value for point in interval.lower],
            mode="lines",
            line=dict(color="rgba(255,127,14,0)"),
            fill="tonexty",
            fillcolor="rgba(255,127,14,0.18)",
            name=f"{interval.confidence:.0%} interval",
            hoverinfo="skip",
            legendgroup="interval",
        )
    )

  # Bridge the last observation to the first forecast so the lines join.
  bridge_times = history_times[-1:] + future_times
  bridge_values = history_values[-1:] + list(future_values)
  fig.add_trace(
      go.Scatter(
          x=bridge_times,
          y=bridge_values,
          mode="lines+markers",
          name="forecast",
          line=dict(color="#ff7f0e", width=2.0, dash="dash"),
          marker=dict(color="#ff7f0e", size=6, line=dict(color="white", width=0.5)),
          legendgroup="forecast",
      )
  )

  fig.add_annotation(
      text=f"{method_display_name(result)}<br>Accuracy: {result.accuracy:.1%}",
      xref="x domain",
      yref="y domain",
      x=0.02,
      y=0.98,
      showarrow=False,
      font=dict(size=12),
      align="left",
      bgcolor="rgba(255,255,255,0.85)",
      bordercolor="rgba(0,0,0,0.15)",
      borderwidth=1,
      borderpad=4,
  )

  fig.update_layout(
      template="simple_white",
      title=dict(text=title or "Demand forecast", x=0.5, xanchor="center"),
      legend=dict(
          orientation="h",
          yanchor="bottom",
          y=-0.25,
          x=0.5,
          xanchor="center",
          font=dict(size=11),
          bgcolor="rgba(255,255,255,0.9)",
          bordercolor="rgba(0,0,0,0.15)",
          borderwidth=1,
      ),
      margin=dict(l=50, r=20, t=70, b=110),
      hovermode="x unified",
      font=dict(family="Helvetica, Arial, sans-serif", size=12, color="#222222"),
      plot_bgcolor="white",
      paper_bgcolor="white",
      height=460,
  )
  fig.update_yaxes(
      title_text=value_label,
      showgrid=True,
      gridcolor="rgba(0,0,0,0.08)",
      zeroline=False,
  )
  return fig


def render_forecast_chart(
    result: ForecastResult,
    chart_path: str,
    *,
    title: Optional[str] = None,
    value_label: str = "Value",
) -> Path:
  """Writes the chart and returns the path actually written.

  `.html`/`.htm` paths are written as interactive HTML. Other suffixes go
  through Plotly's static export; when that is unavailable (no kaleido), an
  HTML file is written next to the requested path instead.
  """
  fig = build_forecast_figure(result, title=title, value_label=value_label)
  output_path = Path(chart_path)
  suffix = output_path.suffix.lower()
  try:
    if suffix in {".html", ".htm"}:
      fig.write_html(str(output_path), include_plotlyjs="cdn")
    else:
      fig.write_image(str(output_path), scale=2)
  except (ValueError, ImportError, RuntimeError) as exc:
    fallback = output_path.with_suffix(output_path.suffix + ".html" if suffix else ".html")
    fig.write_html(str(fallback), include_plotlyjs="cdn")
    logger.warning("Plotly static export failed (%s). Saved interactive HTML to %s", exc, fallback)
    return fallback
  return output_path
