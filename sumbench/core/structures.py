"""Result container for built benchmarks.

:class:`BenchmarkResult` holds one or more equally shaped result matrices
(features x methods), a method metadata table aligned with the matrix
columns, a row table aligned with the matrix rows (feature ids, ground
truth and feature columns) and the metric registry of the benchmark.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import numpy as np
import polars as pl

from sumbench.core.exceptions import ConfigurationError, NotFoundError
from sumbench.core.types import LABEL_COL, ROW_ID_COL, ResultMatrix
from sumbench.metrics.registry import MetricRegistry, add_metric

if TYPE_CHECKING:
    from sumbench.design.bench_design import BenchDesign

__all__ = ["ProvenanceLog", "BenchmarkResult"]


@dataclass
class ProvenanceLog:
    """
    Record of an operation performed on a benchmark result.
    """

    timestamp: str
    action: str
    params: dict[str, Any]
    software_version: str | None = None
    description: str | None = None


class BenchmarkResult:
    """
    Top-level container of a built benchmark.

    Parameters
    ----------
    assays : Mapping[str, ResultMatrix]
        Assay name -> 2-D float matrix of shape (n_features, n_methods).
        All matrices must share the same shape.
    col_data : pl.DataFrame
        Method metadata, one row per matrix column. Must contain a unique
        ``label`` column.
    row_data : pl.DataFrame, optional
        Feature table, one row per matrix row. Must contain a unique
        ``_index`` column when given; a positional index is created otherwise.
        Columns named after an assay hold that assay's ground truth.
    metrics : MetricRegistry, optional
        Registered performance metrics. An empty registry is created if omitted.
    design : BenchDesign, optional
        The design the result was built from.
    history : list[ProvenanceLog], optional
        Provenance records.
    """

    def __init__(
        self,
        assays: Mapping[str, ResultMatrix],
        col_data: pl.DataFrame,
        row_data: pl.DataFrame | None = None,
        metrics: MetricRegistry | None = None,
        design: BenchDesign | None = None,
        history: list[ProvenanceLog] | None = None,
    ):
        if not assays:
            raise ConfigurationError("A benchmark result needs at least one assay.")

        self.assays: dict[str, ResultMatrix] = {}
        shape: tuple[int, ...] | None = None
        for name, matrix in assays.items():
            matrix = np.asarray(matrix, dtype=np.float64)
            if matrix.ndim != 2:
                raise ValueError(f"Assay '{name}' must be 2-D, got shape {matrix.shape}")
            if shape is None:
                shape = matrix.shape
            elif matrix.shape != shape:
                raise ValueError(
                    f"Shape mismatch in assay '{name}': {matrix.shape} != {shape}"
                )
            self.assays[name] = matrix

        if row_data is None:
            row_data = pl.DataFrame({ROW_ID_COL: np.arange(self.n_features)})
        self._row_data = self._validate_row_data(row_data)
        self._col_data = self._validate_col_data(col_data)

        self.metrics = metrics if metrics is not None else MetricRegistry(list(self.assays))
        self.design = design
        self.history: list[ProvenanceLog] = history if history is not None else []

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_col_data(self, col_data: pl.DataFrame) -> pl.DataFrame:
        if LABEL_COL not in col_data.columns:
            raise ValueError(f"Method label column '{LABEL_COL}' not found in col_data.")
        if col_data.height != self.n_methods:
            raise ValueError(
                f"col_data has {col_data.height} rows, result matrices have "
                f"{self.n_methods} columns"
            )
        if col_data[LABEL_COL].n_unique() != col_data.height:
            raise ValueError(f"Method label column '{LABEL_COL}' is not unique.")
        return col_data

    def _validate_row_data(self, row_data: pl.DataFrame) -> pl.DataFrame:
        if ROW_ID_COL not in row_data.columns:
            raise ValueError(f"Row ID column '{ROW_ID_COL}' not found in row_data.")
        if row_data.height != self.n_features:
            raise ValueError(
                f"row_data has {row_data.height} rows, result matrices have "
                f"{self.n_features} rows"
            )
        if row_data[ROW_ID_COL].n_unique() != row_data.height:
            raise ValueError(f"Row ID column '{ROW_ID_COL}' is not unique.")
        return row_data

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def _shape(self) -> tuple[int, int]:
        return next(iter(self.assays.values())).shape

    @property
    def n_features(self) -> int:
        return self._shape[0]

    @property
    def n_methods(self) -> int:
        return self._shape[1]

    @property
    def assay_names(self) -> list[str]:
        return list(self.assays)

    @property
    def col_data(self) -> pl.DataFrame:
        return self._col_data

    @col_data.setter
    def col_data(self, value: pl.DataFrame) -> None:
        value = self._validate_col_data(value)
        if value[LABEL_COL].to_list() != self.method_labels:
            raise ValueError("New col_data must keep the method labels and their order.")
        self._col_data = value

    @property
    def row_data(self) -> pl.DataFrame:
        return self._row_data

    @property
    def method_labels(self) -> list[str]:
        return self._col_data[LABEL_COL].to_list()

    @property
    def feature_ids(self) -> pl.Series:
        return self._row_data[ROW_ID_COL]

    def assay(self, name: str) -> ResultMatrix:
        """Return the result matrix of one assay."""
        if name not in self.assays:
            raise NotFoundError(f"Assay '{name}' not found. Available: {self.assay_names}")
        return self.assays[name]

    def has_ground_truth(self, assay: str) -> bool:
        return assay in self._row_data.columns

    def ground_truth(self, assay: str) -> np.ndarray | None:
        """Ground-truth vector of an assay, or None if it has none."""
        self.assay(assay)
        if not self.has_ground_truth(assay):
            return None
        return self._row_data[assay].to_numpy()

    def performance_metrics(self, assay: str | None = None) -> dict[str, list[str]]:
        """Names of registered metrics per assay."""
        return self.metrics.list_metrics(assay)

    # ------------------------------------------------------------------
    # Metric shortcuts
    # ------------------------------------------------------------------

    def add_metric(self, assay: str, name: str, func, overwrite: bool = False, **defaults):
        """Register a performance metric. See :func:`sumbench.metrics.add_metric`."""
        return add_metric(self, assay, name, func, overwrite=overwrite, **defaults)

    def estimate_metrics(self, grid=None, **kwargs):
        """Evaluate registered metrics. See :func:`sumbench.metrics.estimate_metrics`."""
        from sumbench.metrics.evaluator import estimate_metrics

        return estimate_metrics(self, grid, **kwargs)

    # ------------------------------------------------------------------
    # Provenance
    # ------------------------------------------------------------------

    def log_operation(
        self,
        action: str,
        params: dict[str, Any],
        description: str | None = None,
        software_version: str | None = None,
    ):
        """
        Log an operation to the history.
        """
        log = ProvenanceLog(
            timestamp=datetime.now().isoformat(),
            action=action,
            params=params,
            software_version=software_version,
            description=description,
        )
        self.history.append(log)

    # ------------------------------------------------------------------
    # Subsetting and copying
    # ------------------------------------------------------------------

    def _method_positions(self, methods: Sequence[str | int]) -> list[int]:
        labels = self.method_labels
        positions = []
        for m in methods:
            if isinstance(m, str):
                if m not in labels:
                    raise NotFoundError(f"Method '{m}' not found in result.", label=m)
                positions.append(labels.index(m))
            else:
                positions.append(int(m))
        return positions

    def subset(
        self,
        methods: Sequence[str | int] | str | None = None,
        features: Sequence[int] | np.ndarray | slice | None = None,
    ) -> BenchmarkResult:
        """
        Return a new result restricted to some methods and/or features.

        Method metadata, row data, metrics and the stored design follow the
        selection, so rows and columns stay aligned.

        Args:
            methods: Method labels (or column positions) to keep, in the
                     requested order. None keeps all methods.
            features: Row positions, boolean mask or slice. None keeps all rows.
        """
        if isinstance(methods, str):
            methods = [methods]
        col_idx = (
            np.arange(self.n_methods) if methods is None else np.asarray(self._method_positions(methods), dtype=np.int64)
        )
        if features is None:
            row_idx = np.arange(self.n_features)
        elif isinstance(features, slice):
            row_idx = np.arange(self.n_features)[features]
        else:
            row_idx = np.asarray(features)
            if row_idx.dtype == bool:
                row_idx = np.flatnonzero(row_idx)

        new_assays = {name: m[np.ix_(row_idx, col_idx)].copy() for name, m in self.assays.items()}
        new_col = self._col_data[col_idx.tolist(), :]
        new_row = self._row_data[row_idx.tolist(), :]

        new_design = None
        if self.design is not None:
            from sumbench.design.bench_design import BenchDesign

            kept = new_col[LABEL_COL].to_list()
            new_design = BenchDesign(
                self.design.dataset,
                methods={l: self.design.methods[l] for l in kept if l in self.design},
            )

        result = BenchmarkResult(
            assays=new_assays,
            col_data=new_col,
            row_data=new_row,
            metrics=self.metrics.copy(),
            design=new_design,
            history=[copy.deepcopy(log) for log in self.history],
        )
        result.log_operation(
            "subset",
            {"methods": new_col[LABEL_COL].to_list(), "n_features": len(row_idx)},
        )
        return result

    def __getitem__(self, key) -> BenchmarkResult:
        # result["m1"] and result[["m1", "m2"]] select methods.
        if isinstance(key, str) or (
            isinstance(key, list) and key and all(isinstance(k, str) for k in key)
        ):
            return self.subset(methods=key)
        if isinstance(key, tuple):
            if len(key) != 2:
                raise IndexError("Index with result[features, methods].")
            rows, cols = key
        else:
            rows, cols = key, None
        if isinstance(rows, slice) and rows == slice(None):
            rows = None
        if isinstance(cols, slice):
            cols = None if cols == slice(None) else self.method_labels[cols]
        return self.subset(methods=cols, features=rows)

    def copy(self) -> BenchmarkResult:
        """Deep copy of the result (the design and its dataset are shared)."""
        return BenchmarkResult(
            assays={name: m.copy() for name, m in self.assays.items()},
            col_data=self._col_data.clone(),
            row_data=self._row_data.clone(),
            metrics=self.metrics.copy(),
            design=self.design,
            history=[copy.deepcopy(log) for log in self.history],
        )

    def __repr__(self) -> str:
        return (
            f"<BenchmarkResult n_features={self.n_features}, n_methods={self.n_methods}, "
            f"assays={self.assay_names}, methods={self.method_labels}>"
        )
