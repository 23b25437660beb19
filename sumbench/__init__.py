"""SumBench: bookkeeping for method benchmarks.

Record candidate methods against a dataset, run them all at once, and keep
their outputs together with ground truth, method metadata and performance
metrics in one container.

Key Features:
    - Declarative designs: methods are recorded with their arguments and
      run only at build time
    - Symbolic arguments: ``ref("p")`` binds an argument to a dataset column
    - Failure isolation: a failing method yields NA, the build continues
    - Provenance: package name and version recorded per method
    - Metrics: built-in error rates and custom metrics over parameter grids
    - Incremental rebuilds of changed methods with ``update_bench``

Quick Start:
    >>> from sumbench import BenchDesign, build_bench, ref, add_default_metrics
    >>> from sumbench.datasets import load_pvalue_example
    >>> bd = BenchDesign(load_pvalue_example())
    >>> bd.add_method("raw", lambda p: p, p=ref("p"))
    >>> result = build_bench(bd, truth_cols="label")
    >>> add_default_metrics(result, "default", metrics=["rejections", "FDR"])
    >>> result.estimate_metrics({"alpha": [0.01, 0.05, 0.1]}, tidy=True)

Version: v0.1.0-alpha
"""

from __future__ import annotations

__version__ = "0.1.0"
__author__ = "SumBench Team"

# Building
from sumbench.build import (
    BuildConfig,
    PackageInfo,
    build_bench,
    get_default_config,
    load_config,
    save_config,
    update_bench,
)

# Core data structures and exceptions
from sumbench.core import (
    AssemblyError,
    BenchmarkResult,
    ConfigurationError,
    DuplicateLabelError,
    ExecutionFailure,
    NotFoundError,
    ProvenanceLog,
    SumBenchError,
    UnresolvedReferenceError,
)

# Designs
from sumbench.design import (
    BenchDesign,
    FieldRef,
    Literal,
    MethodSpec,
    NamedPost,
    NoPost,
    SinglePost,
    compare_designs,
    compare_methods,
    ref,
    tidy_methods,
)

# Metrics
from sumbench.metrics import (
    DEFAULT_METRICS,
    ParameterGrid,
    add_default_metrics,
    add_metric,
    available_metrics,
    estimate_metrics,
    performance_metrics,
)

__all__ = [
    # Version
    "__version__",
    # Designs
    "BenchDesign",
    "MethodSpec",
    "Literal",
    "FieldRef",
    "ref",
    "NoPost",
    "SinglePost",
    "NamedPost",
    "compare_methods",
    "compare_designs",
    "tidy_methods",
    # Building
    "build_bench",
    "update_bench",
    "BuildConfig",
    "load_config",
    "save_config",
    "get_default_config",
    "PackageInfo",
    # Core
    "BenchmarkResult",
    "ProvenanceLog",
    "SumBenchError",
    "ConfigurationError",
    "DuplicateLabelError",
    "NotFoundError",
    "UnresolvedReferenceError",
    "AssemblyError",
    "ExecutionFailure",
    # Metrics
    "add_metric",
    "add_default_metrics",
    "available_metrics",
    "performance_metrics",
    "estimate_metrics",
    "ParameterGrid",
    "DEFAULT_METRICS",
]
