"""
Core statistics and linear-algebra kernel.

Pure-Python helpers shared by every analytics module: descriptive statistics,
small dense-matrix operations (transpose, multiply, Gauss-Jordan inversion),
portfolio arithmetic and the sanitizers that keep NaN/Infinity from ever
reaching a caller.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from portfolio_risk.errors import SingularMatrixError

logger = logging.getLogger(__name__)

Matrix = list[list[float]]

RISK_FREE_RATE = 4.5
MARKET_RISK_PREMIUM = 8.0
MARKET_VOLATILITY = 18.0
PIVOT_EPSILON = 1e-10


# ---------------------------------------------------------------------------
# Sanitizers
# ---------------------------------------------------------------------------


def sanitize(value: Any, fallback: float = 0.0) -> float:
    """Return ``value`` as a float, or ``fallback`` for None/NaN/Infinity/non-numeric."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return number


def safe_divide(numerator: Any, denominator: Any, fallback: float = 0.0) -> float:
    """Divide, returning ``fallback`` when ``|denominator| < 1e-10``."""
    num = sanitize(numerator, 0.0)
    den = sanitize(denominator, 0.0)
    if abs(den) < PIVOT_EPSILON:
        return fallback
    return sanitize(num / den, fallback)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_to(value: Any, decimals: int = 2) -> float:
    """Round half away from zero; non-finite input rounds to 0."""
    number = sanitize(value, 0.0)
    factor = 10 ** decimals
    scaled = abs(number) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, number) if rounded else 0.0


# ---------------------------------------------------------------------------
# Descriptive Statistics
# ---------------------------------------------------------------------------


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean."""
    if not values:
        return 0.0
    return sanitize(sum(values) / len(values))


def variance(values: Sequence[float]) -> float:
    """Population variance (divides by n)."""
    if not values:
        return 0.0
    m = mean(values)
    return sanitize(sum((v - m) ** 2 for v in values) / len(values))


def stddev(values: Sequence[float]) -> float:
    return math.sqrt(max(variance(values), 0.0))


def covariance(a: Sequence[float], b: Sequence[float]) -> float:
    """Population covariance between two equal-length arrays."""
    if not a or len(a) != len(b):
        return 0.0
    mean_a = mean(a)
    mean_b = mean(b)
    total = sum((a[i] - mean_a) * (b[i] - mean_b) for i in range(len(a)))
    return sanitize(total / len(a))


def correlation(a: Sequence[float], b: Sequence[float]) -> float:
    """Pearson correlation; 0 when either series has zero dispersion."""
    std_a = stddev(a)
    std_b = stddev(b)
    if std_a <= 0 or std_b <= 0:
        return 0.0
    return safe_divide(covariance(a, b), std_a * std_b, 0.0)


def quantile(values: Sequence[float], q: float) -> float:
    """Linear-interpolation quantile."""
    if not values:
        return 0.0
    if q <= 0:
        return min(values)
    if q >= 1:
        return max(values)
    ordered = sorted(values)
    index = (len(ordered) - 1) * q
    lower = int(math.floor(index))
    upper = int(math.ceil(index))
    if lower == upper:
        return ordered[lower]
    weight = index - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def normal_cdf(x: float) -> float:
    """Cumulative distribution function of the standard normal."""
    sign = -1 if x < 0 else 1
    abs_x = abs(x) / math.sqrt(2)
    t = 1.0 / (1.0 + 0.3275911 * abs_x)
    a1, a2, a3, a4, a5 = 0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429
    erf = 1.0 - (((((a5 * t + a4) * t + a3) * t + a2) * t + a1) * t * math.exp(-abs_x * abs_x))
    return 0.5 * (1.0 + sign * erf)


# ---------------------------------------------------------------------------
# Matrix Operations
# ---------------------------------------------------------------------------


def identity(n: int) -> Matrix:
    return [[1.0 if i == j else 0.0 for j in range(n)] for i in range(n)]


def transpose(matrix: Matrix) -> Matrix:
    if not matrix:
        return []
    return [list(column) for column in zip(*matrix)]


def matrix_multiply(a: Matrix, b: Matrix) -> Matrix:
    """Dense product ``a @ b``."""
    if not a or not b:
        return []
    if len(a[0]) != len(b):
        raise ValueError(f"Incompatible shapes: {len(a)}x{len(a[0])} and {len(b)}x{len(b[0])}")
    cols = transpose(b)
    return [[sum(x * y for x, y in zip(row, col)) for col in cols] for row in a]


def matrix_vector_multiply(matrix: Matrix, vector: Sequence[float]) -> list[float]:
    return [sum(value * vector[j] for j, value in enumerate(row)) for row in matrix]


def invert_matrix(matrix: Matrix, *, strict: bool = False) -> Matrix:
    """
    Invert a square matrix with Gauss-Jordan elimination and partial pivoting.

    Rows are swapped so the largest absolute value in each column becomes the
    pivot. Pivots with ``|pivot| < 1e-10`` are skipped, leaving that column
    unreduced. With ``strict=True`` a skipped pivot raises
    :class:`SingularMatrixError` instead.
    """
    n = len(matrix)
    if any(len(row) != n for row in matrix):
        raise ValueError("Matrix must be square")

    augmented = [
        [float(v) for v in row] + [1.0 if i == j else 0.0 for j in range(n)]
        for i, row in enumerate(matrix)
    ]

    for col in range(n):
        pivot_row = max(range(col, n), key=lambda r: abs(augmented[r][col]))
        augmented[col], augmented[pivot_row] = augmented[pivot_row], augmented[col]

        pivot = augmented[col][col]
        if not math.isfinite(pivot) or abs(pivot) < PIVOT_EPSILON:
            if strict:
                raise SingularMatrixError(
                    f"Near-singular pivot {pivot!r} in column {col}",
                    user_message="Covariance matrix is singular or ill-conditioned",
                )
            logger.debug("Skipping near-singular pivot in column %d", col)
            continue

        augmented[col] = [v / pivot for v in augmented[col]]
        for row in range(n):
            if row == col:
                continue
            factor = augmented[row][col]
            if factor == 0.0:
                continue
            augmented[row] = [v - factor * p for v, p in zip(augmented[row], augmented[col])]

    inverse = [row[n:] for row in augmented]
    if any(not math.isfinite(v) for row in inverse for v in row):
        raise SingularMatrixError("Matrix inversion produced non-finite values")
    return inverse


# ---------------------------------------------------------------------------
# Portfolio Arithmetic
# ---------------------------------------------------------------------------


def portfolio_expected_return(weights: Sequence[float], expected_returns: Sequence[float]) -> float:
    """Weighted expected return in the units of ``expected_returns``."""
    if len(weights) != len(expected_returns):
        raise ValueError("Weights and returns must have the same length")
    total = sum(sanitize(w, 0.0) * sanitize(r, 0.0) for w, r in zip(weights, expected_returns))
    return sanitize(total, 0.0)


def portfolio_variance(
    weights: Sequence[float],
    risks: Sequence[float],
    correlation_matrix: Matrix,
) -> float:
    """``Σ_i Σ_j w_i w_j σ_i σ_j ρ_ij`` with risks in percent."""
    n = len(weights)
    total = 0.0
    for i in range(n):
        w_i = sanitize(weights[i], 0.0)
        r_i = sanitize(risks[i], 1.0)
        for j in range(n):
            w_j = sanitize(weights[j], 0.0)
            r_j = sanitize(risks[j], 1.0)
            rho = sanitize(correlation_matrix[i][j] if i < len(correlation_matrix) else None, 0.0)
            total += w_i * w_j * r_i * r_j * rho
    return sanitize(total, 0.0)


def portfolio_risk(weights: Sequence[float], risks: Sequence[float], correlation_matrix: Matrix) -> float:
    var = portfolio_variance(weights, risks, correlation_matrix)
    return sanitize(math.sqrt(max(0.0, var)), 1.0)


def sharpe_ratio(
    portfolio_return: float,
    portfolio_risk: float,
    risk_free_rate: float = RISK_FREE_RATE,
) -> float:
    return safe_divide(
        sanitize(portfolio_return, 0.0) - sanitize(risk_free_rate, RISK_FREE_RATE),
        sanitize(portfolio_risk, 1.0),
        0.0,
    )


def capm_expected_return(
    beta: float,
    risk_free_rate: float = RISK_FREE_RATE,
    market_risk_premium: float = MARKET_RISK_PREMIUM,
) -> float:
    """CAPM: ``Rf + β·(Rm − Rf)``."""
    return sanitize(risk_free_rate + sanitize(beta, 1.0) * market_risk_premium, risk_free_rate)


def average_correlation(correlation_matrix: Matrix) -> float:
    """Mean of the strict upper triangle."""
    n = len(correlation_matrix)
    if n <= 1:
        return 0.0
    values = [correlation_matrix[i][j] for i in range(n) for j in range(i + 1, n)]
    return mean([sanitize(v, 0.0) for v in values])


def herfindahl_index(weights: Sequence[float]) -> float:
    return sum(sanitize(w, 0.0) ** 2 for w in weights)


def validate_weights(weights: Sequence[float], tolerance: float = 0.001) -> bool:
    return abs(sum(weights) - 1.0) < tolerance


def normalize_weights(weights: Sequence[float]) -> list[float]:
    """Clip negatives and rescale to sum 1; equal weights when nothing is left."""
    clipped = [max(0.0, sanitize(w, 0.0)) for w in weights]
    total = sum(clipped)
    if total <= 0:
        n = len(clipped)
        return [1.0 / n] * n if n else []
    return [w / total for w in clipped]


# ---------------------------------------------------------------------------
# Growth Projections
# ---------------------------------------------------------------------------


def drawdown_delta(current_drawdown: float, new_drawdown: float) -> float:
    """Improvement in percentage points between two (negative) drawdowns."""
    return sanitize(new_drawdown, 0.0) - sanitize(current_drawdown, 0.0)


def future_value(principal: float, monthly_contribution: float, annual_return: float, years: float) -> float:
    """Future value with monthly compounding; ``annual_return`` in percent."""
    monthly_rate = sanitize(annual_return, 0.0) / 100 / 12
    months = sanitize(years, 0.0) * 12
    if monthly_rate == 0:
        return principal + monthly_contribution * months
    growth = math.pow(1 + monthly_rate, months)
    fv_contributions = monthly_contribution * ((growth - 1) / monthly_rate) if monthly_contribution > 0 else 0.0
    return sanitize(principal * growth + fv_contributions, principal)


def time_to_goal(
    principal: float,
    monthly_contribution: float,
    annual_return: float,
    goal_amount: float,
    max_months: int = 600,
) -> float | None:
    """Years until ``goal_amount`` is reached, or ``None`` if never within ``max_months``."""
    if principal >= goal_amount:
        return 0.0
    if annual_return <= 0 and monthly_contribution == 0:
        return None

    monthly_rate = annual_return / 100 / 12
    if monthly_contribution == 0 and principal > 0:
        months = math.log(goal_amount / principal) / math.log(1 + monthly_rate)
        return months / 12

    balance = principal
    months = 0
    while balance < goal_amount and months < max_months:
        balance = balance * (1 + monthly_rate) + monthly_contribution
        months += 1
    return months / 12 if balance >= goal_amount else None


__all__ = [
    # Constants
    "RISK_FREE_RATE",
    "MARKET_RISK_PREMIUM",
    "MARKET_VOLATILITY",
    "PIVOT_EPSILON",
    "Matrix",
    # Sanitizers
    "sanitize",
    "safe_divide",
    "clamp",
    "round_to",
    # Statistics
    "mean",
    "variance",
    "stddev",
    "covariance",
    "correlation",
    "quantile",
    "normal_cdf",
    # Matrices
    "identity",
    "transpose",
    "matrix_multiply",
    "matrix_vector_multiply",
    "invert_matrix",
    # Portfolio arithmetic
    "portfolio_expected_return",
    "portfolio_variance",
    "portfolio_risk",
    "sharpe_ratio",
    "capm_expected_return",
    "average_correlation",
    "herfindahl_index",
    "validate_weights",
    "normalize_weights",
    # Projections
    "drawdown_delta",
    "future_value",
    "time_to_goal",
]
