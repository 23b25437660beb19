"""Tests for build_bench: execution, assembly, failures and metadata."""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import polars as pl
import pytest

from sumbench import BenchDesign, BuildConfig, build_bench, ref
from sumbench.core.exceptions import (
    AssemblyError,
    ConfigurationError,
    UnresolvedReferenceError,
)


def identity(x):
    return x


def halve(x):
    return x / 2


def explode(x):
    raise RuntimeError("boom")


class TestBuildBasics:
    """Test the shape and content of a serial build."""

    def test_matrix_layout(self, built_result, pvalue_df):
        matrix = built_result.assay("default")
        assert matrix.shape == (50, 2)
        assert built_result.method_labels == ["m1", "m2"]
        np.testing.assert_allclose(matrix[:, 0], pvalue_df["p"].to_numpy())
        np.testing.assert_allclose(matrix[:, 1], pvalue_df["p"].to_numpy() / 2)

    def test_truth_in_row_data(self, built_result, pvalue_df):
        assert built_result.row_data.columns == ["_index", "default"]
        np.testing.assert_array_equal(
            built_result.ground_truth("default"), pvalue_df["label"].to_numpy()
        )

    def test_col_data_columns(self, built_result):
        col = built_result.col_data
        assert col.columns[:7] == ["label", "func", "post", "pkg_name", "pkg_vers", "vers_src", "error"]
        assert col["func"].to_list() == ["identity", "halve"]
        assert col["param.x"].to_list() == ["p", "p"]
        assert col["pkg_name"].to_list() == ["testpkg", "testpkg"]
        assert col["vers_src"].to_list() == ["bfunc", "bfunc"]
        assert col["error"].to_list() == [None, None]
        assert all(dtype == pl.Utf8 for dtype in col.dtypes)

    def test_design_and_history_recorded(self, built_result, two_method_design):
        assert built_result.design.labels == two_method_design.labels
        assert built_result.design is not two_method_design
        log = built_result.history[-1]
        assert log.action == "build_bench"
        assert log.params["methods"] == ["m1", "m2"]
        assert log.software_version == "0.1.0"

    def test_deterministic(self, two_method_design, fixed_lookup):
        a = build_bench(two_method_design, truth_cols="label", package_lookup=fixed_lookup)
        b = build_bench(two_method_design, truth_cols="label", package_lookup=fixed_lookup)
        np.testing.assert_array_equal(a.assay("default"), b.assay("default"))
        assert a.col_data.equals(b.col_data)
        assert a.row_data.equals(b.row_data)

    def test_literal_and_mapping_dataset(self, fixed_lookup):
        bd = BenchDesign({"values": np.array([1.0, 2.0, 3.0]), "truth": [0, 1, 1]})
        bd.add_method("scaled", lambda v, k: v * k, v=ref("values"), k=10)
        result = build_bench(bd, truth_cols="truth", package_lookup=fixed_lookup)
        np.testing.assert_allclose(result.assay("default")[:, 0], [10.0, 20.0, 30.0])
        assert result.ground_truth("default").tolist() == [0, 1, 1]

    def test_scalar_output_becomes_one_row(self, fixed_lookup):
        bd = BenchDesign({"x": 3})
        bd.add_method("m", identity, x=ref("x"))
        result = build_bench(bd, package_lookup=fixed_lookup)
        assert result.assay("default").shape == (1, 1)

    def test_default_assay_from_config(self, two_method_design, fixed_lookup):
        config = BuildConfig(default_assay="pvalue")
        result = build_bench(two_method_design, truth_cols="label", config=config, package_lookup=fixed_lookup)
        assert result.assay_names == ["pvalue"]
        assert result.has_ground_truth("pvalue")

    def test_empty_design(self, small_df):
        with pytest.raises(ConfigurationError, match="no methods"):
            build_bench(BenchDesign(small_df))


class TestRowData:
    """Test feature ids and feature columns."""

    def test_feature_id_and_feature_cols(self, two_method_design, fixed_lookup, pvalue_df):
        result = build_bench(
            two_method_design,
            truth_cols="label",
            feature_cols=["p"],
            feature_id_col="gene",
            package_lookup=fixed_lookup,
        )
        assert result.row_data.columns == ["_index", "default", "p"]
        assert result.feature_ids.to_list() == pvalue_df["gene"].to_list()

    def test_feature_id_must_be_unique(self, small_df, fixed_lookup):
        bd = BenchDesign(small_df).add_method("m", identity, x=ref("p"))
        with pytest.raises(ConfigurationError, match="not unique"):
            build_bench(bd, feature_id_col="q", package_lookup=fixed_lookup)

    def test_feature_col_clashes_with_assay(self, small_df, fixed_lookup):
        bd = BenchDesign(small_df).add_method("m", identity, x=ref("p"))
        config = BuildConfig(default_assay="p")
        with pytest.raises(ConfigurationError, match="clashes"):
            build_bench(bd, feature_cols=["p"], config=config, package_lookup=fixed_lookup)


class TestTruthColumns:
    """Test truth column mapping rules."""

    def test_single_name_needs_single_assay(self, named_design):
        with pytest.raises(ConfigurationError, match="mapping"):
            build_bench(named_design, truth_cols="label")

    def test_mapping_per_assay(self, named_design, fixed_lookup):
        result = build_bench(named_design, truth_cols={"pv": "label"}, package_lookup=fixed_lookup)
        assert result.has_ground_truth("pv")
        assert not result.has_ground_truth("adj")
        assert result.ground_truth("adj") is None

    def test_unknown_assay_in_mapping(self, named_design):
        with pytest.raises(ConfigurationError, match="unknown assays"):
            build_bench(named_design, truth_cols={"nope": "label"})

    def test_missing_truth_column(self, two_method_design):
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            build_bench(two_method_design, truth_cols="truth")
        assert exc_info.value.field == "truth"

    def test_truth_length_mismatch(self, fixed_lookup):
        bd = BenchDesign({"x": [1.0, 2.0], "truth": [1, 0, 1]})
        bd.add_method("m", identity, x=ref("x"))
        with pytest.raises(AssemblyError):
            build_bench(bd, truth_cols="truth", package_lookup=fixed_lookup)


class TestNamedPostProcessing:
    """Test builds producing several assays."""

    def test_one_matrix_per_output(self, named_design, small_df, fixed_lookup):
        result = build_bench(named_design, package_lookup=fixed_lookup)
        assert result.assay_names == ["pv", "adj"]
        np.testing.assert_allclose(result.assay("pv")[:, 0], small_df["p"].to_numpy())
        np.testing.assert_allclose(
            result.assay("adj")[:, 0], np.minimum(small_df["p"].to_numpy() * 5, 1.0)
        )
        assert result.assay("pv").shape == result.assay("adj").shape

    def test_mixed_styles_rejected(self, named_design):
        named_design.add_method("plain", identity, x=ref("p"))
        with pytest.raises(ConfigurationError, match="named post-processing"):
            build_bench(named_design)

    def test_differing_outputs_filled_with_na(self, small_df, fixed_lookup):
        bd = BenchDesign(small_df)
        bd.add_method("a", identity, x=ref("p"), post={"pv": identity, "extra": identity})
        bd.add_method("b", identity, x=ref("p"), post={"pv": identity})
        result = build_bench(bd, package_lookup=fixed_lookup)
        assert result.assay_names == ["pv", "extra"]
        assert np.isnan(result.assay("extra")[:, 1]).all()
        assert not np.isnan(result.assay("extra")[:, 0]).any()

    def test_differing_outputs_strict(self, small_df):
        bd = BenchDesign(small_df)
        bd.add_method("a", identity, x=ref("p"), post={"pv": identity, "extra": identity})
        bd.add_method("b", identity, x=ref("p"), post={"pv": identity})
        with pytest.raises(ConfigurationError, match="declares outputs"):
            build_bench(bd, config=BuildConfig(strict_assays=True))

    def test_single_post(self, small_df, fixed_lookup):
        bd = BenchDesign(small_df).add_method("m", identity, x=ref("p"), post=lambda v: 1 - v)
        result = build_bench(bd, package_lookup=fixed_lookup)
        np.testing.assert_allclose(result.assay("default")[:, 0], 1 - small_df["p"].to_numpy())


class TestFailures:
    """Test failure isolation and structural errors."""

    def test_failing_method_isolated(self, two_method_design, pvalue_df, fixed_lookup):
        two_method_design.add_method("bad", explode, x=ref("p"))
        with pytest.warns(RuntimeWarning, match="bad"):
            result = build_bench(two_method_design, truth_cols="label", package_lookup=fixed_lookup)

        matrix = result.assay("default")
        assert matrix.shape == (50, 3)
        assert np.isnan(matrix[:, 2]).all()
        np.testing.assert_allclose(matrix[:, 0], pvalue_df["p"].to_numpy())
        assert result.col_data["error"].to_list() == [None, None, "RuntimeError: boom"]
        assert result.history[-1].params["failed"] == ["bad"]

    def test_failure_na_in_every_assay(self, named_design, fixed_lookup):
        named_design.add_method("bad", explode, x=ref("p"), post={"pv": identity, "adj": identity})
        with pytest.warns(RuntimeWarning):
            result = build_bench(named_design, package_lookup=fixed_lookup)
        assert np.isnan(result.assay("pv")[:, 2]).all()
        assert np.isnan(result.assay("adj")[:, 2]).all()

    def test_failing_post_processing_is_captured(self, small_df, fixed_lookup):
        bd = BenchDesign(small_df).add_method("m", identity, x=ref("p"), post=explode)
        with pytest.warns(RuntimeWarning):
            result = build_bench(bd, package_lookup=fixed_lookup)
        assert np.isnan(result.assay("default")).all()

    def test_all_failed_uses_dataset_height(self, small_df, fixed_lookup):
        bd = BenchDesign(small_df).add_method("bad", explode, x=ref("p"))
        with pytest.warns(RuntimeWarning):
            result = build_bench(bd, truth_cols="label", package_lookup=fixed_lookup)
        assert result.assay("default").shape == (5, 1)

    def test_catch_errors_false_propagates(self, two_method_design):
        two_method_design.add_method("bad", explode, x=ref("p"))
        with pytest.raises(RuntimeError, match="boom"):
            build_bench(two_method_design, catch_errors=False)

    def test_unresolved_reference_before_running(self, small_df):
        calls = []

        def record(x):
            calls.append(x)
            return x

        bd = BenchDesign(small_df)
        bd.add_method("ok", record, x=ref("p"))
        bd.add_method("broken", record, x=ref("P"))
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            build_bench(bd)
        assert exc_info.value.label == "broken"
        assert exc_info.value.field == "P"
        assert calls == []

    def test_length_mismatch(self, small_df):
        bd = BenchDesign(small_df)
        bd.add_method("full", identity, x=ref("p"))
        bd.add_method("short", lambda x: x[:3], x=ref("p"))
        with pytest.raises(AssemblyError) as exc_info:
            build_bench(bd)
        assert exc_info.value.label == "short"

    def test_non_vector_output(self, small_df):
        bd = BenchDesign(small_df).add_method("matrix", lambda x: np.ones((5, 2)), x=ref("p"))
        with pytest.raises(AssemblyError, match="matrix"):
            build_bench(bd)

    def test_non_numeric_output(self, small_df):
        bd = BenchDesign(small_df).add_method("words", lambda x: ["a", "b"], x=ref("p"))
        with pytest.raises(AssemblyError, match="words"):
            build_bench(bd)


class TestParallel:
    """Test parallel builds."""

    def test_parallel_matches_serial(self, two_method_design, fixed_lookup):
        two_method_design.add_method("bad", explode, x=ref("p"))
        two_method_design.add_method("m3", lambda x: x**2, x=ref("p"))
        with pytest.warns(RuntimeWarning):
            serial = build_bench(two_method_design, truth_cols="label", package_lookup=fixed_lookup)
        with pytest.warns(RuntimeWarning):
            parallel = build_bench(
                two_method_design,
                truth_cols="label",
                parallel=True,
                max_workers=3,
                package_lookup=fixed_lookup,
            )
        np.testing.assert_array_equal(serial.assay("default"), parallel.assay("default"))
        assert serial.col_data.equals(parallel.col_data)

    def test_external_executor(self, two_method_design, fixed_lookup):
        with ThreadPoolExecutor(max_workers=2) as pool:
            result = build_bench(
                two_method_design, parallel=True, executor=pool, package_lookup=fixed_lookup
            )
            # The caller's executor stays usable.
            assert pool.submit(lambda: 1).result() == 1
        assert result.method_labels == ["m1", "m2"]

    def test_parallel_from_config(self, two_method_design, fixed_lookup):
        config = BuildConfig(parallel=True, max_workers=2)
        result = build_bench(two_method_design, config=config, package_lookup=fixed_lookup)
        assert result.history[-1].params["parallel"] is True

    def test_invalid_max_workers(self, two_method_design):
        with pytest.raises(ConfigurationError):
            build_bench(two_method_design, parallel=True, max_workers=0)
