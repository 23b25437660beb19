"""Method specifications for benchmark designs.

A :class:`MethodSpec` records everything needed to run one candidate method
later: the primary callable, its arguments, an optional post-processing
step and free-form metadata. Nothing is executed when a spec is created.

Arguments are stored as tagged values. :class:`Literal` wraps a plain value
that is passed through unchanged; :class:`FieldRef` names a column (or
field) of the dataset bound to the design and is looked up at build time.

Examples
--------
>>> from sumbench.design.method import MethodSpec, ref
>>> spec = MethodSpec("m1", lambda p, scale: p * scale, params={"p": ref("p"), "scale": 2})
>>> spec.params["p"]
FieldRef(name='p')
>>> spec.params["scale"]
Literal(value=2)
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import polars as pl

from sumbench.core.exceptions import ConfigurationError
from sumbench.core.types import PostFunction

__all__ = [
    "DEFAULT_ASSAY",
    "RESERVED_META_KEYS",
    "Literal",
    "FieldRef",
    "ref",
    "as_param",
    "NoPost",
    "SinglePost",
    "NamedPost",
    "PostProcess",
    "as_post",
    "MethodSpec",
    "callable_name",
    "values_equal",
]

DEFAULT_ASSAY = "default"
RESERVED_META_KEYS = ("pkg_name", "pkg_vers", "pkg_func")

_SUMMARY_WIDTH = 40


# =============================================================================
# Helpers
# =============================================================================


def callable_name(func: Callable[..., Any] | None) -> str:
    """Return a readable name for a callable."""
    if func is None:
        return ""
    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", None)
    if name is None:
        return type(func).__name__
    return name


def values_equal(a: Any, b: Any) -> bool:
    """Compare two argument values, tolerating arrays and frames."""
    if a is b:
        return True
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        if not (isinstance(a, np.ndarray) and isinstance(b, np.ndarray)):
            return False
        return a.shape == b.shape and bool(np.array_equal(a, b))
    if isinstance(a, (pl.Series, pl.DataFrame)) or isinstance(b, (pl.Series, pl.DataFrame)):
        if type(a) is not type(b):
            return False
        return a.equals(b)
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


def _short_repr(value: Any) -> str:
    text = repr(value)
    if len(text) > _SUMMARY_WIDTH:
        text = text[: _SUMMARY_WIDTH - 3] + "..."
    return text


# =============================================================================
# Argument values
# =============================================================================


@dataclass(frozen=True, eq=False)
class Literal:
    """A literal argument value passed to the method unchanged."""

    value: Any

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Literal):
            return NotImplemented
        return values_equal(self.value, other.value)

    __hash__ = None  # type: ignore[assignment]

    def describe(self) -> str:
        return _short_repr(self.value)


@dataclass(frozen=True)
class FieldRef:
    """A reference to a named column or field of the bound dataset."""

    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(
                f"Field reference name must be a non-empty string, got {self.name!r}"
            )

    def describe(self) -> str:
        return self.name


type Param = Literal | FieldRef


def ref(name: str) -> FieldRef:
    """Reference the dataset field ``name`` in a method argument."""
    return FieldRef(name)


def as_param(value: Any) -> Param:
    """Wrap a plain value as :class:`Literal`; tagged values pass through."""
    if isinstance(value, (Literal, FieldRef)):
        return value
    return Literal(value)


# =============================================================================
# Post-processing variants
# =============================================================================


@dataclass(frozen=True)
class NoPost:
    """No post-processing: the raw return value is the method output."""

    def output_names(self, default: str = DEFAULT_ASSAY) -> tuple[str, ...]:
        return (default,)

    def apply(self, raw: Any, default: str = DEFAULT_ASSAY) -> dict[str, Any]:
        return {default: raw}

    def describe(self) -> str:
        return ""


@dataclass(frozen=True)
class SinglePost:
    """A single callable applied to the raw return value."""

    func: PostFunction

    def __post_init__(self):
        if not callable(self.func):
            raise ConfigurationError(f"Post-processing step must be callable, got {self.func!r}")

    def output_names(self, default: str = DEFAULT_ASSAY) -> tuple[str, ...]:
        return (default,)

    def apply(self, raw: Any, default: str = DEFAULT_ASSAY) -> dict[str, Any]:
        return {default: self.func(raw)}

    def describe(self) -> str:
        return callable_name(self.func)


@dataclass(frozen=True)
class NamedPost:
    """Named post-processing: one callable per output (assay) name."""

    funcs: dict[str, PostFunction]

    def __post_init__(self):
        if not self.funcs:
            raise ConfigurationError("Named post-processing mapping must not be empty")
        for name, func in self.funcs.items():
            if not isinstance(name, str) or not name:
                raise ConfigurationError(
                    f"Post-processing output names must be non-empty strings, got {name!r}"
                )
            if not callable(func):
                raise ConfigurationError(
                    f"Post-processing step for output '{name}' must be callable, got {func!r}"
                )
        object.__setattr__(self, "funcs", dict(self.funcs))

    def output_names(self, default: str = DEFAULT_ASSAY) -> tuple[str, ...]:
        return tuple(self.funcs)

    def apply(self, raw: Any, default: str = DEFAULT_ASSAY) -> dict[str, Any]:
        return {name: func(raw) for name, func in self.funcs.items()}

    def describe(self) -> str:
        return ", ".join(f"{name}={callable_name(func)}" for name, func in self.funcs.items())


type PostProcess = NoPost | SinglePost | NamedPost


def as_post(value: Any) -> PostProcess:
    """Normalize ``None``, a callable or a mapping into a post-processing variant."""
    if isinstance(value, (NoPost, SinglePost, NamedPost)):
        return value
    if value is None:
        return NoPost()
    if isinstance(value, Mapping):
        return NamedPost(dict(value))
    if callable(value):
        return SinglePost(value)
    raise ConfigurationError(
        f"post must be None, a callable or a mapping of callables, got {type(value).__name__}"
    )


# =============================================================================
# Method specification
# =============================================================================


@dataclass(frozen=True)
class MethodSpec:
    """Immutable description of one benchmarked method.

    Attributes
    ----------
    label : str
        Unique identifier of the method within a design.
    func : Callable
        Primary callable doing the actual work.
    params : dict[str, Literal | FieldRef]
        Named arguments. Plain values are wrapped in :class:`Literal`.
    post : NoPost | SinglePost | NamedPost
        Post-processing applied to the return value of ``func``.
    meta : dict[str, Any]
        Free-form metadata. ``pkg_name``, ``pkg_vers`` and ``pkg_func``
        override the provenance recorded at build time.
    """

    label: str
    func: Callable[..., Any]
    params: dict[str, Param] = field(default_factory=dict)
    post: PostProcess = field(default_factory=NoPost)
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.label, str) or not self.label:
            raise ConfigurationError(f"Method label must be a non-empty string, got {self.label!r}")
        if not callable(self.func):
            raise ConfigurationError(
                f"Method '{self.label}': primary function must be callable, got {self.func!r}"
            )
        params = self.params if self.params is not None else {}
        if not isinstance(params, Mapping):
            raise ConfigurationError(f"Method '{self.label}': params must be a mapping")
        meta = self.meta if self.meta is not None else {}
        if not isinstance(meta, Mapping):
            raise ConfigurationError(f"Method '{self.label}': meta must be a mapping")
        if "pkg_func" in meta and not callable(meta["pkg_func"]):
            raise ConfigurationError(f"Method '{self.label}': meta['pkg_func'] must be callable")

        object.__setattr__(self, "params", {name: as_param(v) for name, v in params.items()})
        object.__setattr__(self, "post", as_post(self.post))
        object.__setattr__(self, "meta", dict(meta))

    __hash__ = None  # type: ignore[assignment]

    def replace(self, **changes: Any) -> MethodSpec:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    def field_refs(self) -> list[str]:
        """Names of all dataset fields this method reads."""
        return [p.name for p in self.params.values() if isinstance(p, FieldRef)]

    def output_names(self, default: str = DEFAULT_ASSAY) -> tuple[str, ...]:
        return self.post.output_names(default)

    def param_strings(self) -> dict[str, str]:
        """Describe every argument as a string (field name or literal repr)."""
        return {name: p.describe() for name, p in self.params.items()}

    def summary(self) -> str:
        """One-line description of the call, without running anything."""
        args = ", ".join(
            f"{name}={'ref(' + p.name + ')' if isinstance(p, FieldRef) else p.describe()}"
            for name, p in self.params.items()
        )
        text = f"{callable_name(self.func)}({args})"
        post = self.post.describe()
        if post:
            text += f" -> post[{post}]"
        return text

    def to_record(self) -> dict[str, str | None]:
        """Flat string record: label, func, post, ``param.*`` and ``meta.*``."""
        record: dict[str, str | None] = {
            "label": self.label,
            "func": callable_name(self.func),
            "post": self.post.describe() or None,
        }
        record.update({f"param.{k}": v for k, v in self.param_strings().items()})
        record.update(
            {f"meta.{k}": str(v) for k, v in self.meta.items() if k not in RESERVED_META_KEYS}
        )
        return record
