"""End-to-end benchmark workflows.

Design -> build -> metrics, on the 50-case fixture and on simulated data
with real p-value adjustment methods from scipy.
"""

import numpy as np
import polars as pl
import pytest
from scipy.stats import false_discovery_control

from sumbench import (
    BenchDesign,
    add_default_metrics,
    add_metric,
    build_bench,
    estimate_metrics,
    ref,
)
from sumbench.datasets import load_pvalue_example


def unadjusted(p):
    return np.asarray(p)


def bonferroni(p):
    return np.minimum(np.asarray(p) * len(p), 1.0)


def test_fifty_case_scenario(pvalue_df, fixed_lookup):
    bd = BenchDesign(pvalue_df)
    bd.add_method("m1", lambda p: p, p=ref("p"))
    bd.add_method("m2", lambda p: p / 2, p=ref("p"))
    result = build_bench(bd, truth_cols="label", package_lookup=fixed_lookup)

    p = pvalue_df["p"].to_numpy()
    matrix = result.assay("default")
    assert matrix.shape == (50, 2)
    assert result.method_labels == ["m1", "m2"]
    np.testing.assert_allclose(matrix[:, 0], p)
    np.testing.assert_allclose(matrix[:, 1], p / 2)

    add_metric(result, "default", "rejections", lambda query, truth, alpha=0.1: float(np.sum(query < alpha)))
    table = estimate_metrics(result, {"alpha": [0.1]}, tidy=True)
    values = dict(zip(table["label"].to_list(), table["value"].to_list()))
    assert values == {"m1": float(np.sum(p < 0.1)), "m2": float(np.sum(p / 2 < 0.1))}


class TestAdjustmentBenchmark:
    """Benchmark multiple-testing corrections on simulated data."""

    @pytest.fixture
    def result(self, fixed_lookup):
        df = load_pvalue_example(n_features=500)
        bd = BenchDesign(df)
        bd.add_method("unadjusted", unadjusted, p=ref("p"))
        bd.add_method("bonferroni", bonferroni, p=ref("p"))
        bd.add_method("bh", false_discovery_control, ps=ref("p"), method="bh")
        bd.expand_method("bh", {"by": "by"}, param="method")
        return build_bench(
            bd, truth_cols="label", feature_id_col="feature_id", package_lookup=fixed_lookup
        )

    def test_layout(self, result):
        assert result.method_labels == ["unadjusted", "bonferroni", "bh", "by"]
        assert result.col_data["param.method"].to_list() == [None, None, "'bh'", "'by'"]
        assert result.feature_ids[0] == "H00000"

    def test_adjustments_are_conservative(self, result):
        add_default_metrics(result, "default", metrics=["rejections", "FDR", "TPR"])
        table = estimate_metrics(result, {"alpha": [0.05, 0.1]})
        at_05 = table.filter(pl.col("alpha") == 0.05)
        rej = dict(zip(at_05["label"].to_list(), at_05["rejections"].to_list()))

        assert rej["bonferroni"] <= rej["bh"] <= rej["unadjusted"]
        assert rej["by"] <= rej["bh"]

    def test_merged_metrics_survive_subset(self, result):
        add_default_metrics(result, "default", metrics=["FDR"])
        estimate_metrics(result, add_col_data=True)
        sub = result.subset(methods=["bh"])
        assert sub.col_data.columns == result.col_data.columns
        assert sub.col_data["default.FDR"].item() == result.col_data["default.FDR"][2]
