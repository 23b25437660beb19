"""Tabular views and comparisons of benchmark designs."""

from __future__ import annotations

import polars as pl

from sumbench.design.bench_design import BenchDesign
from sumbench.design.method import MethodSpec, values_equal

__all__ = ["compare_methods", "compare_designs", "tidy_methods", "records_to_frame"]


def compare_methods(a: MethodSpec, b: MethodSpec) -> dict[str, bool]:
    """Field-by-field equality of two method specifications.

    Parameters
    ----------
    a, b : MethodSpec
        Specifications to compare. Labels are not compared.

    Returns
    -------
    dict[str, bool]
        Keys ``func``, ``params``, ``post``, ``meta``.
    """
    same_meta = a.meta.keys() == b.meta.keys() and all(
        values_equal(a.meta[k], b.meta[k]) for k in a.meta
    )
    return {
        "func": a.func is b.func,
        "params": a.params == b.params,
        "post": a.post == b.post,
        "meta": same_meta,
    }


def compare_designs(a: BenchDesign, b: BenchDesign) -> pl.DataFrame:
    """Compare two designs method by method.

    Returns
    -------
    pl.DataFrame
        One row per label present in either design with columns ``label``,
        ``status`` (``"same"``, ``"changed"``, ``"only_a"``, ``"only_b"``)
        and the per-field flags of :func:`compare_methods` (null when the
        label is missing from one side).
    """
    labels = a.labels + [label for label in b.labels if label not in a]
    rows = []
    for label in labels:
        row: dict[str, object] = {"label": label}
        if label not in b:
            row.update(status="only_a", func=None, params=None, post=None, meta=None)
        elif label not in a:
            row.update(status="only_b", func=None, params=None, post=None, meta=None)
        else:
            flags = compare_methods(a.get_method(label), b.get_method(label))
            row.update(status="same" if all(flags.values()) else "changed", **flags)
        rows.append(row)

    schema = {
        "label": pl.Utf8,
        "status": pl.Utf8,
        "func": pl.Boolean,
        "params": pl.Boolean,
        "post": pl.Boolean,
        "meta": pl.Boolean,
    }
    return pl.DataFrame(rows, schema=schema)


def records_to_frame(records: list[dict[str, str | None]]) -> pl.DataFrame:
    """Stack string records into a table; missing entries become null."""
    columns: list[str] = []
    for record in records:
        columns.extend(c for c in record if c not in columns)
    return pl.DataFrame(
        [{c: record.get(c) for c in columns} for record in records],
        schema={c: pl.Utf8 for c in columns},
    )


def tidy_methods(design: BenchDesign) -> pl.DataFrame:
    """One row per method describing the recorded call.

    Columns are ``label``, ``func``, ``post`` and one ``param.<name>`` /
    ``meta.<key>`` column per argument / meta key used by any method.
    """
    if not len(design):
        return pl.DataFrame(schema={c: pl.Utf8 for c in ("label", "func", "post")})
    return records_to_frame([spec.to_record() for spec in design.methods.values()])
