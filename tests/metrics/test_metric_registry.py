"""Tests for metric registration."""

import numpy as np
import pytest

from sumbench.core.exceptions import ConfigurationError, DuplicateLabelError, NotFoundError
from sumbench.metrics import (
    MetricRegistry,
    add_default_metrics,
    add_metric,
    performance_metrics,
    validate_metric_function,
)


def mean_query(query, truth):
    return float(np.mean(query))


def below(query, truth, alpha=0.1, strict=True):
    return float(np.sum(query < alpha))


def needs_k(query, truth, k):
    return float(k)


class TestValidateMetricFunction:
    """Test signature checks."""

    def test_valid_signatures(self):
        assert validate_metric_function(mean_query) == ((), False)
        assert validate_metric_function(below) == (("alpha", "strict"), False)
        assert validate_metric_function(lambda query, truth, **kw: 0.0) == ((), True)

    def test_wrong_argument_names(self):
        with pytest.raises(ConfigurationError, match="query"):
            validate_metric_function(lambda x, y: 0.0)

    def test_swapped_arguments(self):
        with pytest.raises(ConfigurationError):
            validate_metric_function(lambda truth, query: 0.0)

    def test_too_few_arguments(self):
        with pytest.raises(ConfigurationError):
            validate_metric_function(lambda query: 0.0)

    def test_extra_parameter_without_default(self):
        with pytest.raises(ConfigurationError, match="'k'"):
            validate_metric_function(needs_k)

    def test_default_supplied_at_registration(self):
        assert validate_metric_function(needs_k, {"k": 3}) == (("k",), False)

    def test_unknown_default(self):
        with pytest.raises(ConfigurationError, match="beta"):
            validate_metric_function(below, {"beta": 1})

    def test_not_callable(self):
        with pytest.raises(ConfigurationError):
            validate_metric_function(42)


class TestMetricRegistry:
    """Test the per-assay registry."""

    def test_register_and_list(self):
        registry = MetricRegistry(["a", "b"])
        registry.register("a", "mean", mean_query)
        registry.register("a", "below", below, alpha=0.05)
        assert registry.list_metrics() == {"a": ["mean", "below"], "b": []}
        assert registry.assays_with_metrics() == ["a"]
        assert len(registry) == 2

    def test_entry_call_filters_params(self):
        registry = MetricRegistry(["a"])
        entry = registry.register("a", "below", below, alpha=0.05)
        query = np.array([0.01, 0.07, 0.5])
        assert entry(query, None) == 1.0
        assert entry(query, None, alpha=0.1) == 2.0
        assert entry(query, None, unrelated=1) == 1.0

    def test_unknown_assay(self):
        with pytest.raises(ConfigurationError, match="not found"):
            MetricRegistry(["a"]).register("b", "mean", mean_query)

    def test_duplicate_name(self):
        registry = MetricRegistry(["a"])
        registry.register("a", "mean", mean_query)
        with pytest.raises(DuplicateLabelError):
            registry.register("a", "mean", below)
        registry.register("a", "mean", below, overwrite=True)
        assert registry.get("a", "mean").func is below

    @pytest.mark.parametrize("name", ["label", "assay", "metric", "value"])
    def test_reserved_column_names_rejected(self, name):
        registry = MetricRegistry(["a"])
        with pytest.raises(ConfigurationError, match="reserved"):
            registry.register("a", name, mean_query)
        assert registry.list_metrics("a") == {"a": []}

    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            MetricRegistry(["a"]).get("a", "nope")

    def test_copy_is_independent(self):
        registry = MetricRegistry(["a"])
        registry.register("a", "mean", mean_query)
        other = registry.copy()
        other.remove("a", "mean")
        assert registry.has("a", "mean")
        assert not other.has("a", "mean")


class TestResultLevelRegistration:
    """Test add_metric and add_default_metrics on built results."""

    def test_add_metric(self, built_result):
        add_metric(built_result, "default", "mean", mean_query)
        assert performance_metrics(built_result) == {"default": ["mean"]}
        assert built_result.history[-1].action == "add_metric"

    def test_add_metric_method(self, built_result):
        built_result.add_metric("default", "below", below, alpha=0.2)
        assert built_result.metrics.get("default", "below").defaults == {"alpha": 0.2}

    def test_add_metric_unknown_assay(self, built_result):
        with pytest.raises(ConfigurationError):
            add_metric(built_result, "nope", "mean", mean_query)

    def test_bad_arity_rejected_before_evaluation(self, built_result):
        with pytest.raises(ConfigurationError):
            add_metric(built_result, "default", "bad", lambda a, b: 0.0)
        assert performance_metrics(built_result) == {"default": []}

    def test_add_default_metrics_all(self, built_result):
        add_default_metrics(built_result, "default")
        assert built_result.performance_metrics("default") == {
            "default": ["rejections", "TPR", "TNR", "FPR", "FNR", "FDR"]
        }

    def test_add_default_metrics_subset_with_defaults(self, built_result):
        add_default_metrics(built_result, "default", metrics=["TPR"], alpha=0.05)
        assert built_result.metrics.get("default", "TPR").defaults == {"alpha": 0.05}

    def test_add_default_metrics_unknown(self, built_result):
        with pytest.raises(NotFoundError, match="AUC"):
            add_default_metrics(built_result, "default", metrics=["AUC"])
