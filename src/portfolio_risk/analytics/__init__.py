"""
Portfolio Risk Analytics.

Optimization, validation, drawdown, forward-looking risk, simulation and
stress-testing calculations.
"""

from __future__ import annotations

from .constraints import *
from .core_metrics import *
from .correlation import *
from .drawdown import *
from .forward_risk import *
from .heuristics import *
from .monte_carlo import *
from .optimizer import *
from .quality import *
from .stress import *
from .validation import *

__all__ = [name for name in globals() if not name.startswith("_")]
