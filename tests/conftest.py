"""Shared pytest fixtures for SumBench tests.

Fixtures are organized by stage: datasets, designs and built results.
"""

import numpy as np
import polars as pl
import pytest

from sumbench import BenchDesign, build_bench, ref
from sumbench.build import PackageInfo


def identity(x):
    return x


def halve(x):
    return x / 2


def _fixed_lookup(func) -> PackageInfo:
    return PackageInfo("testpkg", "1.0")


@pytest.fixture
def fixed_lookup():
    """Provenance lookup that does not depend on installed distributions."""
    return _fixed_lookup


@pytest.fixture
def pvalue_df() -> pl.DataFrame:
    """Create a dataset of 50 labeled cases.

    Returns
    -------
    pl.DataFrame
        Columns ``p`` (uniform p-values), ``label`` (binary truth) and
        ``gene`` (unique case ids), seeded for reproducibility.
    """
    rng = np.random.default_rng(42)
    return pl.DataFrame(
        {
            "gene": [f"g{i:02d}" for i in range(50)],
            "p": rng.uniform(0.0, 1.0, 50),
            "label": rng.integers(0, 2, 50),
        }
    )


@pytest.fixture
def small_df() -> pl.DataFrame:
    """Create a 5-row dataset with hand-picked p-values."""
    return pl.DataFrame(
        {
            "p": [0.01, 0.04, 0.2, 0.6, 0.09],
            "q": [0.5, 0.5, 0.5, 0.5, 0.5],
            "label": [1, 1, 0, 0, 0],
        }
    )


@pytest.fixture
def two_method_design(pvalue_df) -> BenchDesign:
    """Design with ``m1`` (identity on p) and ``m2`` (p halved)."""
    bd = BenchDesign(pvalue_df)
    bd.add_method("m1", identity, params={"x": ref("p")})
    bd.add_method("m2", halve, params={"x": ref("p")})
    return bd


@pytest.fixture
def built_result(two_method_design, fixed_lookup):
    """Serial build of ``two_method_design`` with ``label`` as truth."""
    return build_bench(two_method_design, truth_cols="label", package_lookup=fixed_lookup)


@pytest.fixture
def named_design(small_df) -> BenchDesign:
    """Design whose methods produce two assays, ``pv`` and ``adj``."""
    bd = BenchDesign(small_df)
    bd.add_method(
        "raw",
        identity,
        params={"x": ref("p")},
        post={"pv": identity, "adj": lambda x: np.minimum(x * 5, 1.0)},
    )
    bd.add_method(
        "flat",
        identity,
        params={"x": ref("q")},
        post={"pv": identity, "adj": identity},
    )
    return bd
