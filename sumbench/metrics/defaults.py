"""Built-in performance metrics for significance-calling benchmarks.

All metrics treat ``query`` as a vector of p-values (or any score where
smaller means "called") and call a feature positive when ``query < alpha``.
``truth`` is a binary vector (1 = true positive case). NaN entries in
``query`` are never called and never counted as not called.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import polars as pl

from sumbench.core.types import MetricFunction

__all__ = [
    "rejections",
    "true_positive_rate",
    "true_negative_rate",
    "false_positive_rate",
    "false_negative_rate",
    "false_discovery_rate",
    "BuiltinMetric",
    "DEFAULT_METRICS",
    "available_metrics",
]

DEFAULT_ALPHA = 0.1


def _calls(query, truth, alpha: float) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Return masks (called, not called, truly positive, truly negative)."""
    q = np.asarray(query, dtype=np.float64)
    called = q < alpha
    not_called = q >= alpha
    if truth is None:
        empty = np.zeros_like(called)
        return called, not_called, empty, empty
    t = np.asarray(truth, dtype=np.float64)
    return called, not_called, t == 1, t == 0


def _ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return float("nan")
    return numerator / denominator


def rejections(query, truth, alpha: float = DEFAULT_ALPHA) -> float:
    """Number of features called at threshold ``alpha``."""
    called, _, _, _ = _calls(query, None, alpha)
    return float(np.sum(called))


def true_positive_rate(query, truth, alpha: float = DEFAULT_ALPHA) -> float:
    """Fraction of true positives that are called (sensitivity)."""
    called, _, pos, _ = _calls(query, truth, alpha)
    return _ratio(int(np.sum(called & pos)), int(np.sum(pos)))


def true_negative_rate(query, truth, alpha: float = DEFAULT_ALPHA) -> float:
    """Fraction of true negatives that are not called (specificity)."""
    _, not_called, _, neg = _calls(query, truth, alpha)
    return _ratio(int(np.sum(not_called & neg)), int(np.sum(neg)))


def false_positive_rate(query, truth, alpha: float = DEFAULT_ALPHA) -> float:
    """Fraction of true negatives that are called."""
    called, _, _, neg = _calls(query, truth, alpha)
    return _ratio(int(np.sum(called & neg)), int(np.sum(neg)))


def false_negative_rate(query, truth, alpha: float = DEFAULT_ALPHA) -> float:
    """Fraction of true positives that are not called."""
    _, not_called, pos, _ = _calls(query, truth, alpha)
    return _ratio(int(np.sum(not_called & pos)), int(np.sum(pos)))


def false_discovery_rate(query, truth, alpha: float = DEFAULT_ALPHA) -> float:
    """Fraction of called features that are true negatives."""
    called, _, _, neg = _calls(query, truth, alpha)
    return _ratio(int(np.sum(called & neg)), int(np.sum(called)))


@dataclass(frozen=True)
class BuiltinMetric:
    """Static description of a built-in metric."""

    func: MetricFunction
    description: str


DEFAULT_METRICS: dict[str, BuiltinMetric] = {
    "rejections": BuiltinMetric(rejections, "Number of rejections"),
    "TPR": BuiltinMetric(true_positive_rate, "True Positive Rate"),
    "TNR": BuiltinMetric(true_negative_rate, "True Negative Rate"),
    "FPR": BuiltinMetric(false_positive_rate, "False Positive Rate"),
    "FNR": BuiltinMetric(false_negative_rate, "False Negative Rate"),
    "FDR": BuiltinMetric(false_discovery_rate, "False Discovery Rate"),
}


def available_metrics() -> pl.DataFrame:
    """
    Describe the built-in metrics.

    Returns
    -------
    pl.DataFrame
        Columns ``name``, ``function``, ``description`` and ``parameters``
        (extra parameters with their defaults).
    """
    return pl.DataFrame(
        {
            "name": list(DEFAULT_METRICS),
            "function": [m.func.__name__ for m in DEFAULT_METRICS.values()],
            "description": [m.description for m in DEFAULT_METRICS.values()],
            "parameters": [f"alpha={DEFAULT_ALPHA}" for _ in DEFAULT_METRICS],
        }
    )
