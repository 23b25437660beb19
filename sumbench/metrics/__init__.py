"""Performance metrics: registry, built-in metrics and evaluation."""

from .defaults import (
    DEFAULT_METRICS,
    BuiltinMetric,
    available_metrics,
    false_discovery_rate,
    false_negative_rate,
    false_positive_rate,
    rejections,
    true_negative_rate,
    true_positive_rate,
)
from .evaluator import estimate_metrics, metric_column_name
from .grid import ParameterGrid
from .registry import (
    MetricEntry,
    MetricRegistry,
    add_default_metrics,
    add_metric,
    performance_metrics,
    validate_metric_function,
)

__all__ = [
    "MetricEntry",
    "MetricRegistry",
    "validate_metric_function",
    "add_metric",
    "add_default_metrics",
    "performance_metrics",
    "BuiltinMetric",
    "DEFAULT_METRICS",
    "available_metrics",
    "rejections",
    "true_positive_rate",
    "true_negative_rate",
    "false_positive_rate",
    "false_negative_rate",
    "false_discovery_rate",
    "ParameterGrid",
    "estimate_metrics",
    "metric_column_name",
]
