from __future__ import annotations


class PortfolioEngineError(RuntimeError):
    """Base class for library-level portfolio engine errors."""

    code = "ENGINE_ERROR"
    kind: str | None = None

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class NumericDegeneracyError(PortfolioEngineError):
    code = "NUMERIC_DEGENERACY"
    kind = "numeric_degeneracy"


class SingularMatrixError(PortfolioEngineError):
    code = "SINGULAR_MATRIX"
    kind = "singular_matrix"


class AllocationIntegrityError(PortfolioEngineError):
    code = "ALLOCATION_INTEGRITY"
    kind = "allocation_integrity"


class IdenticalMetricsError(PortfolioEngineError):
    code = "IDENTICAL_METRICS"
    kind = "identical_metrics"


class ExtremeCorrelationError(PortfolioEngineError):
    code = "EXTREME_CORRELATION"
    kind = "extreme_correlation"


class InvalidAssetError(PortfolioEngineError, ValueError):
    """Raised when an asset record fails boundary validation."""

    code = "INVALID_ASSET"


class SimulationCancelledError(PortfolioEngineError):
    """Raised when a simulation is cancelled before any batch completes."""

    code = "SIMULATION_CANCELLED"


class DuplicateSymbolError(InvalidAssetError):
    """Raised when two asset records resolve to the same upper-cased symbol."""

    code = "DUPLICATE_SYMBOL"
    kind = "invalid_input"
