"""Benchmark design: an ordered set of method specifications bound to data.

The design is purely declarative. Adding, modifying, expanding or removing
methods never calls any of them; execution happens in
:func:`sumbench.build.build_bench`.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

import polars as pl

from sumbench.core.exceptions import (
    ConfigurationError,
    DuplicateLabelError,
    NotFoundError,
)
from sumbench.core.types import Dataset
from sumbench.design.method import MethodSpec, as_param

__all__ = ["BenchDesign"]

# Marks "argument not supplied" where None is a meaningful value.
_UNSET: Any = object()


class BenchDesign:
    """Ordered collection of :class:`MethodSpec` bound to one dataset.

    Parameters
    ----------
    dataset : pl.DataFrame | Mapping[str, Any]
        Data the methods are run against. Field references in method
        arguments resolve to columns of a DataFrame or keys of a mapping.
    methods : Mapping[str, MethodSpec], optional
        Initial method specifications.

    Raises
    ------
    ConfigurationError
        If ``dataset`` is neither a DataFrame nor a mapping.

    Examples
    --------
    >>> import polars as pl
    >>> from sumbench import BenchDesign, ref
    >>> bd = BenchDesign(pl.DataFrame({"p": [0.01, 0.2, 0.5]}))
    >>> bd = bd.add_method("m1", lambda x: x, params={"x": ref("p")})
    >>> bd.labels
    ['m1']
    """

    def __init__(self, dataset: Dataset, methods: Mapping[str, MethodSpec] | None = None):
        if isinstance(dataset, pl.DataFrame):
            self._dataset: Dataset = dataset
        elif isinstance(dataset, MappingProxyType):
            self._dataset = dataset
        elif isinstance(dataset, Mapping):
            self._dataset = MappingProxyType(dict(dataset))
        else:
            raise ConfigurationError(
                "Dataset must be a polars DataFrame or a mapping of named fields, "
                f"got {type(dataset).__name__}"
            )
        self._methods: dict[str, MethodSpec] = {}
        for label, spec in (methods or {}).items():
            if label != spec.label:
                raise ConfigurationError(
                    f"Method key '{label}' does not match its label '{spec.label}'"
                )
            self._methods[label] = spec

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def dataset(self) -> Dataset:
        return self._dataset

    @property
    def is_tabular(self) -> bool:
        return isinstance(self._dataset, pl.DataFrame)

    @property
    def field_names(self) -> list[str]:
        """Names that field references may resolve to."""
        if isinstance(self._dataset, pl.DataFrame):
            return list(self._dataset.columns)
        return list(self._dataset.keys())

    def has_field(self, name: str) -> bool:
        if isinstance(self._dataset, pl.DataFrame):
            return name in self._dataset.columns
        return name in self._dataset

    def get_field(self, name: str) -> Any:
        """Look up one dataset field by exact name.

        Raises
        ------
        NotFoundError
            If the field does not exist.
        """
        if not self.has_field(name):
            raise NotFoundError(
                f"Field '{name}' not found in dataset. Available: {self.field_names}"
            )
        return self._dataset[name]

    @property
    def methods(self) -> Mapping[str, MethodSpec]:
        return MappingProxyType(self._methods)

    @property
    def labels(self) -> list[str]:
        return list(self._methods)

    def get_method(self, label: str) -> MethodSpec:
        if label not in self._methods:
            raise NotFoundError(f"Method '{label}' not found in design.", label=label)
        return self._methods[label]

    def __len__(self) -> int:
        return len(self._methods)

    def __contains__(self, label: object) -> bool:
        return label in self._methods

    def __iter__(self) -> Iterator[str]:
        return iter(self._methods)

    def __repr__(self) -> str:
        if isinstance(self._dataset, pl.DataFrame):
            data_desc = f"DataFrame{self._dataset.shape}"
        else:
            data_desc = f"fields={list(self._dataset.keys())}"
        return f"<BenchDesign n_methods={len(self)}, methods={self.labels}, data={data_desc}>"

    def copy(self) -> BenchDesign:
        """Copy the design. The dataset is shared, method specs are immutable."""
        return BenchDesign(self._dataset, methods=self._methods)

    # Mapping proxies cannot be pickled; store the plain dict instead.
    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        if isinstance(self._dataset, MappingProxyType):
            state["_dataset"] = dict(self._dataset)
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        if not isinstance(state["_dataset"], pl.DataFrame):
            state["_dataset"] = MappingProxyType(state["_dataset"])
        self.__dict__.update(state)

    def list_methods(self) -> dict[str, str]:
        """Labels with a one-line summary of each recorded call."""
        return {label: spec.summary() for label, spec in self._methods.items()}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_method(
        self,
        label: str,
        func: Callable[..., Any],
        params: Mapping[str, Any] | None = None,
        post: Any = None,
        meta: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> BenchDesign:
        """Record a new method without running it.

        Parameters
        ----------
        label : str
            Unique method label.
        func : Callable
            Primary callable.
        params : Mapping[str, Any], optional
            Arguments; use :func:`~sumbench.design.method.ref` for dataset fields.
        post : None | Callable | Mapping[str, Callable], optional
            Post-processing applied to the return value.
        meta : Mapping[str, Any], optional
            Free-form metadata (``pkg_name``, ``pkg_vers``, ``pkg_func`` are reserved).
        **kwargs
            Additional arguments merged into ``params``.

        Returns
        -------
        BenchDesign
            The design itself, for chaining.

        Raises
        ------
        DuplicateLabelError
            If ``label`` is already used.
        """
        if label in self._methods:
            raise DuplicateLabelError(f"Method '{label}' already exists in design.", label=label)
        all_params = {**dict(params or {}), **kwargs}
        self._methods[label] = MethodSpec(
            label=label, func=func, params=all_params, post=post, meta=dict(meta or {})
        )
        return self

    def modify_method(
        self,
        label: str,
        params: Mapping[str, Any] | None = None,
        func: Callable[..., Any] = _UNSET,
        post: Any = _UNSET,
        meta: Mapping[str, Any] | None = None,
        overwrite: bool = False,
        **kwargs: Any,
    ) -> BenchDesign:
        """Change an existing method in place.

        By default new arguments and meta entries are merged into the existing
        ones. With ``overwrite=True`` the argument set and meta are replaced by
        exactly what is supplied here. ``func`` and ``post`` are only changed
        when passed (``post=None`` removes post-processing).

        Raises
        ------
        NotFoundError
            If ``label`` is not in the design.
        """
        spec = self.get_method(label)
        new_params = {**dict(params or {}), **kwargs}
        new_meta = dict(meta or {})
        if not overwrite:
            new_params = {**spec.params, **{k: as_param(v) for k, v in new_params.items()}}
            new_meta = {**spec.meta, **new_meta}

        changes: dict[str, Any] = {"params": new_params, "meta": new_meta}
        if func is not _UNSET:
            changes["func"] = func
        if post is not _UNSET:
            changes["post"] = post
        self._methods[label] = spec.replace(**changes)
        return self

    def expand_method(
        self,
        label: str,
        variants: Mapping[str, Any],
        param: str | None = None,
        replace: bool = False,
    ) -> BenchDesign:
        """Duplicate a method once per variant with overridden arguments.

        Parameters
        ----------
        label : str
            Method to duplicate.
        variants : Mapping[str, Any]
            New label -> mapping of argument overrides. When ``param`` is
            given, new label -> single value for that argument.
        param : str, optional
            Name of the single argument each variant overrides.
        replace : bool, default=False
            Remove the source method after expanding.

        Raises
        ------
        NotFoundError
            If ``label`` is not in the design.
        DuplicateLabelError
            If any new label collides with an existing method.
        ConfigurationError
            If a variant is not a mapping while ``param`` is not given.
        """
        spec = self.get_method(label)
        if not variants:
            raise ConfigurationError(f"No variants given to expand method '{label}'.")

        taken = set(self._methods)
        if replace:
            taken.discard(label)
        collisions = [new for new in variants if new in taken]
        if collisions:
            raise DuplicateLabelError(
                f"Expanding '{label}' would overwrite existing methods: {collisions}",
                label=collisions[0],
            )

        expanded: dict[str, MethodSpec] = {}
        for new_label, override in variants.items():
            if param is not None:
                override = {param: override}
            elif not isinstance(override, Mapping):
                raise ConfigurationError(
                    f"Variant '{new_label}' must be a mapping of overrides "
                    "(or pass param= for single-value variants)."
                )
            expanded[new_label] = spec.replace(
                label=new_label,
                params={**spec.params, **{k: as_param(v) for k, v in override.items()}},
            )

        if replace:
            # Variants take the source method's position.
            rebuilt: dict[str, MethodSpec] = {}
            for existing, existing_spec in self._methods.items():
                if existing == label:
                    rebuilt.update(expanded)
                else:
                    rebuilt[existing] = existing_spec
            self._methods = rebuilt
        else:
            self._methods.update(expanded)
        return self

    def remove_method(self, label: str) -> BenchDesign:
        """Remove a method.

        Raises
        ------
        NotFoundError
            If ``label`` is not in the design.
        """
        if label not in self._methods:
            raise NotFoundError(f"Method '{label}' not found in design.", label=label)
        del self._methods[label]
        return self
