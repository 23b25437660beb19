"""Evaluation of registered performance metrics.

:func:`estimate_metrics` applies every metric registered on a
:class:`~sumbench.core.structures.BenchmarkResult` to every method column of
its assay, once per combination of an optional parameter grid.

Examples
--------
>>> from sumbench.metrics import add_default_metrics, estimate_metrics
>>> add_default_metrics(result, "default", metrics=["rejections", "TPR"])
>>> estimate_metrics(result, {"alpha": [0.01, 0.05, 0.1]}, tidy=True)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import polars as pl

from sumbench.core.exceptions import ConfigurationError
from sumbench.core.types import LABEL_COL
from sumbench.metrics.grid import ParameterGrid
from sumbench.metrics.registry import RESERVED_COLUMNS

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sumbench.core.structures import BenchmarkResult

__all__ = ["estimate_metrics", "metric_column_name"]

type _Key = tuple[str, str, str, tuple[tuple[str, int], ...]]


def metric_column_name(assay: str, metric: str, params: Mapping[str, Any] | None = None) -> str:
    """Name of the method-metadata column holding one metric evaluation."""
    name = f"{assay}.{metric}"
    if params:
        name += "[" + ",".join(f"{k}={v}" for k, v in params.items()) + "]"
    return name


def _as_scalar(value: Any, metric: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Metric '{metric}' must return a scalar, got {type(value).__name__}"
        ) from e


def _compute(
    result: BenchmarkResult, grid: ParameterGrid, assays: Sequence[str]
) -> dict[_Key, float]:
    """Evaluate every (method, assay, metric, accepted grid combination)."""
    values: dict[_Key, float] = {}
    labels = result.method_labels
    for assay in assays:
        matrix = result.assay(assay)
        truth = result.ground_truth(assay)
        for entry in result.metrics.entries(assay):
            accepted = [n for n in grid.names if entry.accepts(n)]
            combos = grid.index_combinations(accepted)
            for j, label in enumerate(labels):
                for combo in combos:
                    if truth is None:
                        value = np.nan
                    else:
                        raw = entry(matrix[:, j], truth, **grid.values_of(combo))
                        value = _as_scalar(raw, entry.name)
                    values[(label, assay, entry.name, combo)] = value
    return values


def _tidy_table(values: dict[_Key, float], grid: ParameterGrid) -> pl.DataFrame:
    rows = []
    for (label, assay, metric, combo), value in values.items():
        row: dict[str, Any] = {LABEL_COL: label, "assay": assay, "metric": metric}
        params = grid.values_of(combo)
        row.update({name: params.get(name) for name in grid.names})
        row["value"] = value
        rows.append(row)
    columns = [LABEL_COL, "assay", "metric", *grid.names, "value"]
    if not rows:
        return pl.DataFrame(schema={c: pl.Float64 if c == "value" else pl.Utf8 for c in columns})
    return (
        pl.DataFrame(rows, infer_schema_length=None)
        .select(columns)
        .with_columns(pl.col("value").cast(pl.Float64))
    )


def _wide_table(
    result: BenchmarkResult,
    values: dict[_Key, float],
    grid: ParameterGrid,
    assays: Sequence[str],
) -> pl.DataFrame:
    metric_names: list[str] = []
    for assay in assays:
        metric_names.extend(
            e.name for e in result.metrics.entries(assay) if e.name not in metric_names
        )

    rows = []
    for label in result.method_labels:
        for assay in assays:
            entries = result.metrics.entries(assay)
            for combo in grid.index_combinations():
                row: dict[str, Any] = {LABEL_COL: label, "assay": assay}
                row.update(grid.values_of(combo))
                row.update({name: None for name in metric_names})
                for entry in entries:
                    sub = tuple((n, i) for n, i in combo if entry.accepts(n))
                    row[entry.name] = values[(label, assay, entry.name, sub)]
                rows.append(row)
    columns = [LABEL_COL, "assay", *grid.names, *metric_names]
    if not rows:
        return pl.DataFrame(schema={c: pl.Utf8 for c in columns})
    return pl.DataFrame(rows, infer_schema_length=None).select(columns).with_columns(
        [pl.col(name).cast(pl.Float64) for name in metric_names]
    )


def _merge_into_col_data(
    result: BenchmarkResult, values: dict[_Key, float], grid: ParameterGrid
) -> pl.DataFrame:
    columns: dict[str, dict[str, float]] = {}
    for (label, assay, metric, combo), value in values.items():
        name = metric_column_name(assay, metric, grid.values_of(combo))
        columns.setdefault(name, {})[label] = value
    if not columns:
        return result.col_data

    labels = result.method_labels
    new = pl.DataFrame(
        {name: [by_label[label] for label in labels] for name, by_label in columns.items()},
        schema={name: pl.Float64 for name in columns},
    )
    col_data = result.col_data
    stale = [c for c in new.columns if c in col_data.columns]
    return col_data.drop(stale).hstack(new)


def estimate_metrics(
    result: BenchmarkResult,
    grid: Mapping[str, Any] | None = None,
    assays: Sequence[str] | None = None,
    add_col_data: bool = False,
    tidy: bool = False,
) -> pl.DataFrame | BenchmarkResult:
    """
    Evaluate registered performance metrics.

    Parameters
    ----------
    result : BenchmarkResult
        Built benchmark with registered metrics.
    grid : Mapping[str, Any], optional
        Parameter name -> candidate values. Metrics are evaluated for every
        combination (Cartesian product) of the parameters they accept;
        parameters a metric does not accept are not passed to it.
    assays : Sequence[str], optional
        Assays to evaluate. Defaults to all assays with registered metrics.
    add_col_data : bool, default=False
        Add one column per (assay, metric, combination) to the method
        metadata of ``result`` and return ``result`` instead of a table.
    tidy : bool, default=False
        Return one row per method x metric x combination.

    Returns
    -------
    pl.DataFrame | BenchmarkResult
        Wide table (``label``, ``assay``, grid columns, one column per metric),
        tidy table (``label``, ``assay``, ``metric``, grid columns, ``value``),
        or the updated result when ``add_col_data`` is True.

    Raises
    ------
    ConfigurationError
        If an assay is unknown or a grid parameter clashes with an output column.

    Notes
    -----
    Assays without ground truth yield NaN for every method instead of failing.
    """
    param_grid = ParameterGrid(grid)
    clashes = [n for n in param_grid.names if n in RESERVED_COLUMNS]
    if clashes:
        raise ConfigurationError(f"Grid parameter names clash with output columns: {clashes}")

    if assays is None:
        target = result.metrics.assays_with_metrics()
    else:
        target = list(assays)
        unknown = [a for a in target if a not in result.assays]
        if unknown:
            raise ConfigurationError(
                f"Assays not found: {unknown}. Available: {result.assay_names}"
            )

    metric_names = {e.name for assay in target for e in result.metrics.entries(assay)}
    shadowed = [n for n in param_grid.names if n in metric_names]
    if shadowed:
        raise ConfigurationError(
            f"Grid parameter names clash with registered metric names: {shadowed}"
        )

    values = _compute(result, param_grid, target)
    result.log_operation(
        action="estimate_metrics",
        params={
            "assays": target,
            "grid": param_grid.param_dict,
            "add_col_data": add_col_data,
            "tidy": tidy,
        },
        description=f"Evaluated {len(values)} metric values.",
    )

    if add_col_data:
        result.col_data = _merge_into_col_data(result, values, param_grid)
        return result
    if tidy:
        return _tidy_table(values, param_grid)
    return _wide_table(result, values, param_grid, target)
