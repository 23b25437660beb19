"""SumBench core type definitions and shared column names.

Examples
--------
>>> import numpy as np
>>> from sumbench.core.types import MetricFunction
>>>
>>> def rejections(query: np.ndarray, truth: np.ndarray, alpha: float = 0.1) -> float:
...     return float(np.sum(query < alpha))
>>>
>>> func: MetricFunction = rejections
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import numpy as np
import polars as pl

# =============================================================================
# Column names
# =============================================================================

LABEL_COL = "label"
"""Column of the method metadata table holding method labels."""

ROW_ID_COL = "_index"
"""Column of the row table holding feature identifiers."""

# =============================================================================
# Type aliases
# =============================================================================

type Dataset = pl.DataFrame | Mapping[str, Any]
"""Data bound to a design: a table or a mapping of named fields."""

type ResultMatrix = np.ndarray
"""2-D float64 matrix of shape (n_features, n_methods); NaN marks NA."""

type MetricFunction = Callable[..., float]
"""Metric called as ``func(query, truth, **params)`` returning a scalar."""

type PostFunction = Callable[[Any], Any]
"""Post-processing step applied to a method's raw return value."""

__all__ = [
    "LABEL_COL",
    "ROW_ID_COL",
    "Dataset",
    "ResultMatrix",
    "MetricFunction",
    "PostFunction",
]
