"""Demand forecasting engine: series preparation, model fitting and selection."""

from .arima_runner import fit_arima, partial_autocorrelation, select_arima_order
from .base import (
    ArimaParameters,
    ConfidenceInterval,
    ForecastOptions,
    ForecastResult,
    LinearParameters,
    ModelFit,
    ModelTag,
    PreparedSeries,
    SmoothingParameters,
    TimeSeriesPoint,
)
from .config import DEFAULT_CONFIG, EngineConfig
from .engine import (
    CandidateScore,
    ForecastDiagnostics,
    ForecastOrchestrator,
    ForecastRun,
    Stage,
    forecast_time_series,
)
from .errors import ForecastError, InsufficientDataError, InvalidOptionsError, NoViableModelError
from .evaluation import ForecastErrors, calculate_errors
from .expsmooth_runner import fit_exponential_smoothing
from .linear_runner import fit_linear
from .preparation import aggregate_series, fill_missing_values, normalize_values, prepare_series, remove_outliers
from .seasonality import SeasonalityResult, detect_seasonality
from .serialization import build_report, result_from_dict, result_from_json, result_to_dict, result_to_frame, result_to_json

__all__ = [
    "TimeSeriesPoint",
    "ForecastOptions",
    "ForecastResult",
    "ConfidenceInterval",
    "ModelTag",
    "ModelFit",
    "PreparedSeries",
    "LinearParameters",
    "SmoothingParameters",
    "ArimaParameters",
    "EngineConfig",
    "DEFAULT_CONFIG",
    "ForecastOrchestrator",
    "ForecastRun",
    "ForecastDiagnostics",
    "CandidateScore",
    "Stage",
    "forecast_time_series",
    "ForecastError",
    "InsufficientDataError",
    "InvalidOptionsError",
    "NoViableModelError",
    "ForecastErrors",
    "calculate_errors",
    "prepare_series",
    "remove_outliers",
    "aggregate_series",
    "fill_missing_values",
    "normalize_values",
    "SeasonalityResult",
    "detect_seasonality",
    "fit_linear",
    "fit_exponential_smoothing",
    "fit_arima",
    "select_arima_order",
    "partial_autocorrelation",
    "result_to_dict",
    "result_from_dict",
    "result_to_json",
    "result_from_json",
    "result_to_frame",
    "build_report",
]
