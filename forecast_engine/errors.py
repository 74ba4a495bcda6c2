"""Error taxonomy raised by the forecasting engine."""

from __future__ import annotations


class ForecastError(ValueError):
  """Base class for every error the engine surfaces to callers."""


class InsufficientDataError(ForecastError):
  """Fewer than two usable points remained after cleaning the input."""

  def __init__(self, valid_points: int, minimum: int = 2):
    super().__init__(
        f"At least {minimum} valid data points are required for forecasting; got {valid_points}."
    )
    self.valid_points = valid_points
    self.minimum = minimum


class InvalidOptionsError(ForecastError):
  """Forecast options failed validation before any fitting started."""


class NoViableModelError(ForecastError, RuntimeError):
  """No candidate model could be fitted to a prepared series."""


class ModelNotViableError(Exception):
  """Raised by a single fitter that cannot produce a usable fit.

  The orchestrator catches this to drop the candidate from automatic
  selection; it only surfaces (as NoViableModelError) for explicit requests.
  """
