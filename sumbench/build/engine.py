"""Execution of benchmark designs.

:func:`build_bench` runs every method recorded in a
:class:`~sumbench.design.BenchDesign`, aligns the outputs into result
matrices (features x methods) and attaches method metadata and ground
truth. :func:`update_bench` re-runs only the methods of a design that
changed since a result was built.

Method failures are isolated: a method that raises gets NA in every assay
and an ``error`` entry in the method metadata, and the build continues.
Structural problems (inconsistent post-processing, unresolved field
references, outputs that cannot be aligned) abort the build.
"""

from __future__ import annotations

import time
import warnings
from collections.abc import Mapping, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

import numpy as np
import polars as pl

from sumbench.build.config import BuildConfig
from sumbench.build.provenance import PackageLookup, module_package_info, resolve_provenance
from sumbench.core.exceptions import (
    AssemblyError,
    ConfigurationError,
    ExecutionFailure,
    UnresolvedReferenceError,
)
from sumbench.core.structures import BenchmarkResult
from sumbench.core.types import LABEL_COL, ROW_ID_COL
from sumbench.design.bench_design import BenchDesign
from sumbench.design.compare import compare_methods, records_to_frame
from sumbench.design.method import FieldRef, MethodSpec, NamedPost
from sumbench.metrics.registry import MetricRegistry

__all__ = ["build_bench", "update_bench", "output_names"]


# =============================================================================
# Per-method tasks
# =============================================================================


@dataclass(frozen=True)
class _MethodTask:
    """Self-contained unit of work: one spec with its resolved arguments."""

    spec: MethodSpec
    args: dict[str, Any]
    default_assay: str
    catch_errors: bool


@dataclass(frozen=True)
class _MethodRun:
    label: str
    outputs: dict[str, Any] | None
    failure: ExecutionFailure | None
    seconds: float


def _run_method(task: _MethodTask) -> _MethodRun:
    """Call one method and its post-processing; capture failures if allowed."""
    label = task.spec.label
    start = time.perf_counter()
    try:
        raw = task.spec.func(**task.args)
        outputs = task.spec.post.apply(raw, task.default_assay)
    except Exception as e:
        if not task.catch_errors:
            raise
        return _MethodRun(label, None, ExecutionFailure.from_exception(label, e), time.perf_counter() - start)
    return _MethodRun(label, outputs, None, time.perf_counter() - start)


def _resolve_args(design: BenchDesign, spec: MethodSpec) -> dict[str, Any]:
    args: dict[str, Any] = {}
    for name, param in spec.params.items():
        if isinstance(param, FieldRef):
            if not design.has_field(param.name):
                raise UnresolvedReferenceError(
                    f"Method '{spec.label}': argument '{name}' refers to field "
                    f"'{param.name}', which is not in the dataset. "
                    f"Available: {design.field_names}",
                    label=spec.label,
                    field=param.name,
                )
            args[name] = design.get_field(param.name)
        else:
            args[name] = param.value
    return args


def _execute(
    tasks: list[_MethodTask],
    parallel: bool,
    max_workers: int,
    executor: Executor | None,
) -> list[_MethodRun]:
    """Run tasks serially or in a pool; results keep the task order."""
    if not parallel or not tasks:
        return [_run_method(task) for task in tasks]

    runs: list[_MethodRun | None] = [None] * len(tasks)

    def _collect(pool: Executor) -> None:
        fut_map = {pool.submit(_run_method, task): i for i, task in enumerate(tasks)}
        for fut in as_completed(fut_map):
            runs[fut_map[fut]] = fut.result()

    if executor is not None:
        _collect(executor)
    else:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(tasks))) as pool:
            _collect(pool)
    return [run for run in runs if run is not None]


# =============================================================================
# Consistency checks and assembly
# =============================================================================


def output_names(design: BenchDesign, config: BuildConfig | None = None) -> list[str]:
    """Names of the assays a build of ``design`` produces.

    Raises
    ------
    ConfigurationError
        If named post-processing is mixed with other styles, or (with
        ``config.strict_assays``) if methods declare different output names.
    """
    config = config or BuildConfig()
    named = [label for label, spec in design.methods.items() if isinstance(spec.post, NamedPost)]
    if named and len(named) != len(design):
        others = [label for label in design.labels if label not in named]
        raise ConfigurationError(
            "If any method uses named post-processing, all methods must. "
            f"Named: {named}; not named: {others}"
        )

    names: list[str] = []
    for spec in design.methods.values():
        names.extend(n for n in spec.output_names(config.default_assay) if n not in names)

    if config.strict_assays:
        for label, spec in design.methods.items():
            if set(spec.output_names(config.default_assay)) != set(names):
                raise ConfigurationError(
                    f"Method '{label}' declares outputs {list(spec.output_names(config.default_assay))}, "
                    f"expected {names}"
                )
    return names


def _as_vector(value: Any, label: str, assay: str) -> np.ndarray:
    try:
        vector = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise AssemblyError(
            f"Method '{label}' returned output for assay '{assay}' that cannot be "
            f"converted to numbers ({type(value).__name__})",
            label=label,
        ) from e
    if vector.ndim == 0:
        vector = vector.reshape(1)
    if vector.ndim != 1:
        raise AssemblyError(
            f"Method '{label}' returned a {vector.ndim}-D output for assay '{assay}'; "
            "expected a vector",
            label=label,
        )
    return vector


def _field_length(design: BenchDesign, name: str) -> int:
    return len(design.get_field(name))


def _assemble(
    design: BenchDesign,
    runs: Sequence[_MethodRun],
    assay_names: Sequence[str],
    fallback_rows: int,
) -> dict[str, np.ndarray]:
    """Column-bind per-method vectors into one matrix per assay."""
    vectors: dict[str, dict[str, np.ndarray]] = {name: {} for name in assay_names}
    n_rows: int | None = None
    first_label = ""
    for run in runs:
        if run.outputs is None:
            continue
        for assay, value in run.outputs.items():
            vector = _as_vector(value, run.label, assay)
            if n_rows is None:
                n_rows, first_label = len(vector), run.label
            elif len(vector) != n_rows:
                raise AssemblyError(
                    f"Method '{run.label}' returned {len(vector)} values for assay "
                    f"'{assay}', but method '{first_label}' returned {n_rows}",
                    label=run.label,
                )
            vectors[assay][run.label] = vector

    if n_rows is None:
        n_rows = fallback_rows
    assays = {}
    for assay in assay_names:
        columns = [
            vectors[assay].get(label, np.full(n_rows, np.nan)) for label in design.labels
        ]
        assays[assay] = np.column_stack(columns) if columns else np.empty((n_rows, 0))
    return assays


def _truth_mapping(
    truth_cols: str | Mapping[str, str] | None, assay_names: Sequence[str]
) -> dict[str, str]:
    if truth_cols is None:
        return {}
    if isinstance(truth_cols, str):
        if len(assay_names) != 1:
            raise ConfigurationError(
                f"The build produces several assays {list(assay_names)}; give truth_cols "
                "as a mapping of assay name to column name."
            )
        return {assay_names[0]: truth_cols}
    if isinstance(truth_cols, Mapping):
        unknown = [a for a in truth_cols if a not in assay_names]
        if unknown:
            raise ConfigurationError(
                f"truth_cols names unknown assays {unknown}. Assays: {list(assay_names)}"
            )
        return dict(truth_cols)
    raise ConfigurationError(
        f"truth_cols must be a column name or a mapping, got {type(truth_cols).__name__}"
    )


def _dataset_column(design: BenchDesign, name: str, alias: str, n_rows: int, role: str) -> pl.Series:
    if not design.has_field(name):
        raise UnresolvedReferenceError(
            f"{role} column '{name}' not found in dataset. Available: {design.field_names}",
            field=name,
        )
    value = design.get_field(name)
    series = value.alias(alias) if isinstance(value, pl.Series) else pl.Series(alias, value)
    if len(series) != n_rows:
        raise AssemblyError(
            f"{role} column '{name}' has {len(series)} values, results have {n_rows} rows"
        )
    return series


def _row_data(
    design: BenchDesign,
    n_rows: int,
    assay_names: Sequence[str],
    truth_cols: str | Mapping[str, str] | None,
    feature_cols: Sequence[str] | None,
    feature_id_col: str | None,
) -> pl.DataFrame:
    if feature_id_col is not None:
        ids = _dataset_column(design, feature_id_col, ROW_ID_COL, n_rows, "Feature id")
        if ids.n_unique() != len(ids):
            raise ConfigurationError(f"Feature id column '{feature_id_col}' is not unique.")
    else:
        ids = pl.Series(ROW_ID_COL, np.arange(n_rows))
    columns = [ids]

    for assay, col in _truth_mapping(truth_cols, assay_names).items():
        columns.append(_dataset_column(design, col, assay, n_rows, "Truth"))

    for col in feature_cols or []:
        if col in assay_names or col == ROW_ID_COL:
            raise ConfigurationError(
                f"Feature column '{col}' clashes with an assay name or the row id column."
            )
        columns.append(_dataset_column(design, col, col, n_rows, "Feature"))
    return pl.DataFrame(columns)


def _col_data(
    design: BenchDesign, runs: Sequence[_MethodRun], lookup: PackageLookup
) -> pl.DataFrame:
    failures = {run.label: run.failure for run in runs}
    records = []
    for label, spec in design.methods.items():
        record = spec.to_record()
        record.update(resolve_provenance(spec, lookup))
        failure = failures.get(label)
        record["error"] = None if failure is None else str(failure)
        records.append(record)
    frame = records_to_frame(records)
    leading = [LABEL_COL, "func", "post", "pkg_name", "pkg_vers", "vers_src", "error"]
    return frame.select(leading + [c for c in frame.columns if c not in leading])


def _fallback_rows(design: BenchDesign, truth: dict[str, str]) -> int:
    """Row count when no method produced output."""
    if isinstance(design.dataset, pl.DataFrame):
        return design.dataset.height
    for col in truth.values():
        if design.has_field(col):
            return _field_length(design, col)
    return 0


def _warn_failures(runs: Sequence[_MethodRun]) -> list[str]:
    failed = []
    for run in runs:
        if run.failure is not None:
            failed.append(run.label)
            warnings.warn(
                f"Method '{run.label}' failed ({run.failure}); its results are set to NA.",
                RuntimeWarning,
                stacklevel=4,
            )
    return failed


def _software_version() -> str:
    from sumbench import __version__

    return __version__


# =============================================================================
# Public API
# =============================================================================


def _run_design(
    design: BenchDesign,
    config: BuildConfig,
    parallel: bool,
    max_workers: int,
    executor: Executor | None,
    catch_errors: bool,
) -> list[_MethodRun]:
    # Every reference is resolved before any method runs.
    tasks = [
        _MethodTask(
            spec=spec,
            args=_resolve_args(design, spec),
            default_assay=config.default_assay,
            catch_errors=catch_errors,
        )
        for spec in design.methods.values()
    ]
    return _execute(tasks, parallel, max_workers, executor)


def build_bench(
    design: BenchDesign,
    truth_cols: str | Mapping[str, str] | None = None,
    feature_cols: Sequence[str] | None = None,
    feature_id_col: str | None = None,
    parallel: bool | None = None,
    max_workers: int | None = None,
    executor: Executor | None = None,
    catch_errors: bool | None = None,
    config: BuildConfig | None = None,
    package_lookup: PackageLookup = module_package_info,
) -> BenchmarkResult:
    """
    Run every method of a design and collect the results.

    Parameters
    ----------
    design : BenchDesign
        Design to build.
    truth_cols : str | Mapping[str, str], optional
        Dataset column holding the ground truth. A single name is only
        allowed when the build produces one assay; otherwise map assay
        names to column names.
    feature_cols : Sequence[str], optional
        Dataset columns copied into the row table.
    feature_id_col : str, optional
        Dataset column used as row identifiers (must be unique).
    parallel : bool, optional
        Run methods in a worker pool. Defaults to ``config.parallel``.
    max_workers : int, optional
        Pool size cap. Defaults to ``config.max_workers``; never more than
        the number of methods.
    executor : concurrent.futures.Executor, optional
        Pool to submit method tasks to when ``parallel`` is True, instead of
        a private thread pool. It is not shut down.
    catch_errors : bool, optional
        Record method failures as NA (default) instead of raising.
    config : BuildConfig, optional
        Build defaults.
    package_lookup : Callable, optional
        ``lookup(func) -> PackageInfo`` used for provenance metadata.

    Returns
    -------
    BenchmarkResult
        Result matrices (features x methods) in design order, method
        metadata, row data with ground truth, and an empty metric registry.

    Raises
    ------
    ConfigurationError
        Empty design, inconsistent post-processing or invalid ``truth_cols``.
    UnresolvedReferenceError
        A method argument or requested column refers to a missing field.
    AssemblyError
        Outputs are not numeric vectors of one common length.

    Examples
    --------
    >>> import polars as pl
    >>> from sumbench import BenchDesign, build_bench, ref
    >>> df = pl.DataFrame({"p": [0.01, 0.2, 0.04], "label": [1, 0, 1]})
    >>> bd = BenchDesign(df).add_method("m1", lambda x: x, x=ref("p"))
    >>> result = build_bench(bd, truth_cols="label")
    >>> result.assay("default").shape
    (3, 1)
    """
    return _build(
        design,
        truth_cols,
        feature_cols,
        feature_id_col,
        parallel,
        max_workers,
        executor,
        catch_errors,
        config,
        package_lookup,
    )


def _build(
    design: BenchDesign,
    truth_cols: str | Mapping[str, str] | None,
    feature_cols: Sequence[str] | None,
    feature_id_col: str | None,
    parallel: bool | None,
    max_workers: int | None,
    executor: Executor | None,
    catch_errors: bool | None,
    config: BuildConfig | None,
    package_lookup: PackageLookup,
    fallback_rows: int | None = None,
) -> BenchmarkResult:
    # fallback_rows fixes the row count when no method produces output.
    config = config or BuildConfig()
    parallel = config.parallel if parallel is None else parallel
    max_workers = config.max_workers if max_workers is None else max_workers
    catch_errors = config.catch_errors if catch_errors is None else catch_errors
    if max_workers < 1:
        raise ConfigurationError(f"max_workers must be positive, got {max_workers}")
    if len(design) == 0:
        raise ConfigurationError("The design has no methods to build.")

    assay_names = output_names(design, config)
    truth = _truth_mapping(truth_cols, assay_names)

    start = time.perf_counter()
    runs = _run_design(design, config, parallel, max_workers, executor, catch_errors)
    failed = _warn_failures(runs)

    if fallback_rows is None:
        fallback_rows = _fallback_rows(design, truth)
    assays = _assemble(design, runs, assay_names, fallback_rows)
    n_rows = next(iter(assays.values())).shape[0]
    result = BenchmarkResult(
        assays=assays,
        col_data=_col_data(design, runs, package_lookup),
        row_data=_row_data(design, n_rows, assay_names, truth_cols, feature_cols, feature_id_col),
        design=design.copy(),
    )
    result.log_operation(
        action="build_bench",
        params={
            "methods": design.labels,
            "truth_cols": truth,
            "feature_cols": list(feature_cols or []),
            "feature_id_col": feature_id_col,
            "parallel": parallel,
            "failed": failed,
            "seconds": {run.label: run.seconds for run in runs},
        },
        description=f"Built {len(design)} methods in {time.perf_counter() - start:.3f}s.",
        software_version=_software_version(),
    )
    return result


def _same_dataset(a: BenchDesign, b: BenchDesign) -> bool:
    """Identity of the bound data; mappings compare field by field."""
    if a.dataset is b.dataset:
        return True
    if a.is_tabular or b.is_tabular:
        return False
    return a.dataset.keys() == b.dataset.keys() and all(
        a.dataset[k] is b.dataset[k] for k in a.dataset
    )


def _last_build_params(result: BenchmarkResult) -> dict[str, Any]:
    for log in reversed(result.history):
        if log.action == "build_bench":
            return log.params
    return {}


def _carry_metrics(source: MetricRegistry, target: MetricRegistry) -> MetricRegistry:
    """Copy metric definitions for the assays both registries share."""
    for assay in target.assay_names:
        if assay in source.assay_names:
            for entry in source.entries(assay):
                target.register(assay, entry.name, entry.func, overwrite=True, **entry.defaults)
    return target


def _update_plan(result: BenchmarkResult, design: BenchDesign) -> pl.DataFrame:
    old = result.design
    same_data = old is not None and _same_dataset(old, design)
    rows = []
    for label in design.labels:
        if old is None or label not in old or label not in result.method_labels:
            action = "new"
        elif not same_data:
            action = "rerun"
        elif all(compare_methods(old.get_method(label), design.get_method(label)).values()):
            action = "keep"
        else:
            action = "rerun"
        rows.append({LABEL_COL: label, "action": action})
    rows.extend(
        {LABEL_COL: label, "action": "drop"}
        for label in result.method_labels
        if label not in design
    )
    return pl.DataFrame(rows, schema={LABEL_COL: pl.Utf8, "action": pl.Utf8})


def update_bench(
    result: BenchmarkResult,
    design: BenchDesign | None = None,
    dry_run: bool = False,
    parallel: bool | None = None,
    max_workers: int | None = None,
    executor: Executor | None = None,
    catch_errors: bool | None = None,
    config: BuildConfig | None = None,
    package_lookup: PackageLookup = module_package_info,
) -> BenchmarkResult | pl.DataFrame:
    """
    Bring a result up to date with a (modified) design.

    Methods that are new or whose definition changed are run; unchanged
    methods keep their columns; methods no longer in the design are dropped.
    Row data and registered metrics are carried over (metrics of assays
    that disappear are dropped). If ``design`` is bound to different data
    than the result was built from, every method is re-run and the row data
    is rebuilt with the truth and feature columns of the last build.

    Parameters
    ----------
    result : BenchmarkResult
        Previously built result (it must store its design).
    design : BenchDesign, optional
        New design. Defaults to the design stored in ``result``.
    dry_run : bool, default=False
        Only return the plan: a table with ``label`` and ``action``
        (``keep``, ``rerun``, ``new`` or ``drop``).

    Returns
    -------
    BenchmarkResult | pl.DataFrame
        Updated result (a new object), or the plan when ``dry_run`` is True.

    Raises
    ------
    ConfigurationError
        If ``result`` carries no design or the new design is empty or inconsistent.
    AssemblyError
        If re-run methods return a different number of rows.
    """
    if result.design is None:
        raise ConfigurationError("The result does not store its design; use build_bench instead.")
    if design is None:
        design = result.design
    config = config or BuildConfig()
    plan = _update_plan(result, design)
    if dry_run:
        return plan
    if len(design) == 0:
        raise ConfigurationError("The design has no methods to build.")

    assay_names = output_names(design, config)
    actions = dict(zip(plan[LABEL_COL].to_list(), plan["action"].to_list()))
    if not _same_dataset(result.design, design):
        # New data: rebuild everything with the row layout of the last build.
        build = _last_build_params(result)
        truth = {a: c for a, c in (build.get("truth_cols") or {}).items() if a in assay_names}
        rebuilt = _build(
            design,
            truth or None,
            build.get("feature_cols") or None,
            build.get("feature_id_col"),
            parallel,
            max_workers,
            executor,
            catch_errors,
            config,
            package_lookup,
        )
        _carry_metrics(result.metrics, rebuilt.metrics)
        rebuilt.history = list(result.history) + rebuilt.history
        rebuilt.log_operation(
            action="update_bench",
            params={"plan": actions},
            description=f"Dataset changed; re-ran all {len(design)} methods.",
            software_version=_software_version(),
        )
        return rebuilt

    to_run = [label for label in design.labels if actions[label] in ("new", "rerun")]

    partial = None
    if to_run:
        sub_design = BenchDesign(design.dataset, {label: design.get_method(label) for label in to_run})
        partial = _build(
            sub_design,
            None,
            None,
            None,
            parallel,
            max_workers,
            executor,
            catch_errors,
            config,
            package_lookup,
            fallback_rows=result.n_features,
        )
        if partial.n_features != result.n_features:
            raise AssemblyError(
                f"Re-run methods returned {partial.n_features} rows, "
                f"the existing result has {result.n_features}",
                label=to_run[0],
            )

    old_labels = result.method_labels
    assays: dict[str, np.ndarray] = {}
    for assay in assay_names:
        columns = []
        for label in design.labels:
            source, labels = (
                (result, old_labels) if actions[label] == "keep" else (partial, partial.method_labels)
            )
            if assay in source.assays:
                columns.append(source.assays[assay][:, labels.index(label)])
            else:
                columns.append(np.full(result.n_features, np.nan))
        assays[assay] = np.column_stack(columns)

    frames = []
    for label in design.labels:
        source = result.col_data if actions[label] == "keep" else partial.col_data
        frames.append(source.filter(pl.col(LABEL_COL) == label))
    col_data = pl.concat(frames, how="diagonal")

    metrics = _carry_metrics(result.metrics, MetricRegistry(assay_names))

    updated = BenchmarkResult(
        assays=assays,
        col_data=col_data,
        row_data=result.row_data.clone(),
        metrics=metrics,
        design=design.copy(),
        history=list(result.history),
    )
    updated.log_operation(
        action="update_bench",
        params={"plan": actions},
        description=f"Re-ran {len(to_run)} of {len(design)} methods.",
        software_version=_software_version(),
    )
    return updated
