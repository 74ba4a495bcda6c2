"""Engine-wide defaults shared by every fitter and by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

# Tie-break preference for automatic selection, most preferred first.
DEFAULT_PREFERENCE: Tuple[str, ...] = (
    "exp_smoothing_holt_winters",
    "arima",
    "exp_smoothing_holt",
    "exp_smoothing_simple",
    "linear",
)


@dataclass(frozen=True)
class EngineConfig:
  """Tunable constants for preparation, fitting, scoring and selection."""

  # Exponential smoothing.
  default_alpha: float = 0.2
  grid_min: float = 0.01
  grid_max: float = 0.99
  alpha_grid_step: float = 0.01
  coarse_grid_step: float = 0.1
  refine_span: float = 0.1
  refine_step: float = 0.02

  # ARIMA.
  default_arima_order: Tuple[int, int, int] = (1, 1, 1)
  ma_iterations: int = 50
  ma_tolerance: float = 1e-6
  # Largest modulus allowed for a root of the MA polynomial.
  ma_root_bound: float = 0.99
  max_condition_number: float = 1e10
  auto_arima_max_p: int = 3
  auto_arima_max_d: int = 2
  auto_arima_max_q: int = 3

  # Seasonality.
  seasonality_threshold: float = 0.3

  # Accuracy scoring.
  holdout_fraction: float = 0.2
  min_holdout_length: int = 6
  epsilon: float = 1e-8

  # Selection.
  preference: Tuple[str, ...] = DEFAULT_PREFERENCE
  tie_decimals: int = 12
  parallel: bool = False
  max_workers: Optional[int] = None

  def with_overrides(self, **changes) -> "EngineConfig":
    return replace(self, **changes)


DEFAULT_CONFIG = EngineConfig()
