"""
Portfolio Risk - Portfolio Optimization and Risk Analytics Engine.

Mean-variance optimization with realism constraints, consistency checks,
drawdown decomposition, forward-looking (VIX-regime) risk, Monte Carlo goal
simulation and scenario stress testing.
"""

from __future__ import annotations

__version__ = "0.1.0"

# =============================================================================
# CORE MODELS
# =============================================================================

from .errors import (
    AllocationIntegrityError,
    DuplicateSymbolError,
    ExtremeCorrelationError,
    IdenticalMetricsError,
    InvalidAssetError,
    NumericDegeneracyError,
    PortfolioEngineError,
    SimulationCancelledError,
    SingularMatrixError,
)
from .models import Asset, Portfolio, StressScenario, ValidationIssue, ValidationReport, VixData
from .result import Err, ErrorKind, Ok, Result
from .settings import DEFAULT_SETTINGS, EngineSettings, load_engine_settings

# =============================================================================
# ENTRY POINTS
# =============================================================================

from .api import (
    calculate_forward_looking_risk,
    calculate_stress_impact,
    monte_carlo_goal_probability,
    optimize_all_portfolios,
    run_goal_simulation,
)

# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Entry points
    "optimize_all_portfolios",
    "calculate_forward_looking_risk",
    "monte_carlo_goal_probability",
    "run_goal_simulation",
    "calculate_stress_impact",
    # Models
    "Asset",
    "Portfolio",
    "StressScenario",
    "ValidationIssue",
    "ValidationReport",
    "VixData",
    # Results & errors
    "Ok",
    "Err",
    "ErrorKind",
    "Result",
    "PortfolioEngineError",
    "NumericDegeneracyError",
    "SingularMatrixError",
    "AllocationIntegrityError",
    "IdenticalMetricsError",
    "ExtremeCorrelationError",
    "InvalidAssetError",
    "DuplicateSymbolError",
    "SimulationCancelledError",
    # Configuration
    "EngineSettings",
    "DEFAULT_SETTINGS",
    "load_engine_settings",
]
