"""Per-result registry of performance metrics.

Every :class:`~sumbench.core.structures.BenchmarkResult` owns one
:class:`MetricRegistry`. Metrics are registered per assay under a name and
are called as ``func(query, truth, **params)``, where ``query`` is one
method's column of the assay and ``truth`` the assay's ground truth.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sumbench.core.exceptions import ConfigurationError, DuplicateLabelError, NotFoundError
from sumbench.core.types import LABEL_COL, MetricFunction
from sumbench.metrics.defaults import DEFAULT_METRICS

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sumbench.core.structures import BenchmarkResult

__all__ = [
    "RESERVED_COLUMNS",
    "MetricEntry",
    "MetricRegistry",
    "validate_metric_function",
    "add_metric",
    "add_default_metrics",
    "performance_metrics",
]

_REQUIRED_ARGS = ("query", "truth")

# Column names of the evaluation tables; metric names must not collide with them.
RESERVED_COLUMNS = (LABEL_COL, "assay", "metric", "value")


# =============================================================================
# Signature validation
# =============================================================================


def validate_metric_function(
    func: MetricFunction, defaults: Mapping[str, Any] | None = None
) -> tuple[tuple[str, ...], bool]:
    """Check that ``func`` can be called as ``func(query, truth)``.

    Parameters
    ----------
    func : Callable
        Candidate metric function.
    defaults : Mapping[str, Any], optional
        Default values for parameters beyond ``query`` and ``truth``.

    Returns
    -------
    tuple[tuple[str, ...], bool]
        Names of the extra parameters and whether ``func`` takes ``**kwargs``.

    Raises
    ------
    ConfigurationError
        If the first two parameters are not ``query`` and ``truth``, if an
        extra parameter has no default, or if ``defaults`` names a parameter
        the function does not accept.
    """
    defaults = dict(defaults or {})
    if not callable(func):
        raise ConfigurationError(f"Metric function must be callable, got {func!r}")
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Cannot inspect metric function signature: {e}") from e

    params = list(sig.parameters.values())
    positional = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    head = params[:2]
    if len(head) < 2 or any(
        p.name != want or p.kind not in positional for p, want in zip(head, _REQUIRED_ARGS)
    ):
        got = [p.name for p in head]
        raise ConfigurationError(
            f"Metric function must take 'query' and 'truth' as its first two "
            f"positional parameters, got {got}"
        )

    extra: list[str] = []
    var_kwargs = False
    for p in params[2:]:
        if p.kind is inspect.Parameter.VAR_KEYWORD:
            var_kwargs = True
            continue
        if p.kind is inspect.Parameter.VAR_POSITIONAL:
            continue
        if p.default is inspect.Parameter.empty and p.name not in defaults:
            raise ConfigurationError(
                f"Metric parameter '{p.name}' needs a default value so the metric "
                "is callable with only query and truth."
            )
        extra.append(p.name)

    unknown = [k for k in defaults if k in _REQUIRED_ARGS or (k not in extra and not var_kwargs)]
    if unknown:
        raise ConfigurationError(f"Defaults given for parameters the metric does not accept: {unknown}")
    return tuple(extra), var_kwargs


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class MetricEntry:
    """A registered metric: function plus default parameter values."""

    name: str
    func: MetricFunction
    defaults: dict[str, Any] = field(default_factory=dict)
    parameters: tuple[str, ...] = ()
    var_kwargs: bool = False

    def accepts(self, param: str) -> bool:
        return self.var_kwargs or param in self.parameters

    def __call__(self, query, truth, **params: Any) -> Any:
        kwargs = dict(self.defaults)
        kwargs.update({k: v for k, v in params.items() if self.accepts(k)})
        return self.func(query, truth, **kwargs)


class MetricRegistry:
    """
    Named collections of metric functions, one collection per assay.

    Parameters
    ----------
    assay_names : Iterable[str]
        Assays metrics may be registered for.
    """

    def __init__(self, assay_names: Iterable[str]):
        self._metrics: dict[str, dict[str, MetricEntry]] = {name: {} for name in assay_names}

    @property
    def assay_names(self) -> list[str]:
        return list(self._metrics)

    def _check_assay(self, assay: str) -> None:
        if assay not in self._metrics:
            raise ConfigurationError(
                f"Assay '{assay}' not found. Available: {self.assay_names}"
            )

    def register(
        self,
        assay: str,
        name: str,
        func: MetricFunction,
        overwrite: bool = False,
        **defaults: Any,
    ) -> MetricEntry:
        """Validate and register a metric for one assay.

        Raises
        ------
        ConfigurationError
            If the assay is unknown or the function signature is invalid.
        DuplicateLabelError
            If ``name`` is already registered for the assay and ``overwrite`` is False.
        """
        self._check_assay(assay)
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Metric name must be a non-empty string, got {name!r}")
        if name in RESERVED_COLUMNS:
            raise ConfigurationError(
                f"Metric name '{name}' is reserved for evaluation table columns {RESERVED_COLUMNS}"
            )
        parameters, var_kwargs = validate_metric_function(func, defaults)
        if name in self._metrics[assay] and not overwrite:
            raise DuplicateLabelError(
                f"Metric '{name}' is already registered for assay '{assay}'.", label=name
            )
        entry = MetricEntry(
            name=name,
            func=func,
            defaults=dict(defaults),
            parameters=parameters,
            var_kwargs=var_kwargs,
        )
        self._metrics[assay][name] = entry
        return entry

    def get(self, assay: str, name: str) -> MetricEntry:
        self._check_assay(assay)
        if name not in self._metrics[assay]:
            raise NotFoundError(f"Metric '{name}' not registered for assay '{assay}'.", label=name)
        return self._metrics[assay][name]

    def has(self, assay: str, name: str) -> bool:
        return name in self._metrics.get(assay, {})

    def remove(self, assay: str, name: str) -> None:
        self.get(assay, name)
        del self._metrics[assay][name]

    def entries(self, assay: str) -> list[MetricEntry]:
        self._check_assay(assay)
        return list(self._metrics[assay].values())

    def list_metrics(self, assay: str | None = None) -> dict[str, list[str]]:
        """Registered metric names per assay (only ``assay`` if given)."""
        if assay is not None:
            self._check_assay(assay)
            return {assay: list(self._metrics[assay])}
        return {a: list(m) for a, m in self._metrics.items()}

    def assays_with_metrics(self) -> list[str]:
        return [a for a, m in self._metrics.items() if m]

    def copy(self) -> MetricRegistry:
        new = MetricRegistry(self.assay_names)
        new._metrics = {a: dict(m) for a, m in self._metrics.items()}
        return new

    def __len__(self) -> int:
        return sum(len(m) for m in self._metrics.values())

    def __repr__(self) -> str:
        return f"<MetricRegistry {self.list_metrics()}>"


# =============================================================================
# Result-level functions
# =============================================================================


def add_metric(
    result: BenchmarkResult,
    assay: str,
    name: str,
    func: MetricFunction,
    overwrite: bool = False,
    **defaults: Any,
) -> BenchmarkResult:
    """
    Register a performance metric on a benchmark result.

    Parameters
    ----------
    result : BenchmarkResult
        Built benchmark.
    assay : str
        Assay the metric is evaluated on.
    name : str
        Metric name, unique within the assay.
    func : Callable
        ``func(query, truth, **params) -> float``.
    overwrite : bool, default=False
        Replace an existing metric of the same name.
    **defaults
        Default values for extra parameters of ``func``.

    Returns
    -------
    BenchmarkResult
        The same result, for chaining.

    Raises
    ------
    ConfigurationError
        If ``assay`` does not exist or ``func`` has an invalid signature.
    """
    if assay not in result.assays:
        raise ConfigurationError(
            f"Assay '{assay}' not found. Available: {result.assay_names}"
        )
    result.metrics.register(assay, name, func, overwrite=overwrite, **defaults)
    result.log_operation(
        action="add_metric",
        params={"assay": assay, "name": name, "defaults": dict(defaults)},
    )
    return result


def add_default_metrics(
    result: BenchmarkResult,
    assay: str,
    metrics: Iterable[str] | None = None,
    overwrite: bool = False,
    **defaults: Any,
) -> BenchmarkResult:
    """
    Register built-in metrics (see :func:`sumbench.metrics.available_metrics`).

    Parameters
    ----------
    result : BenchmarkResult
        Built benchmark.
    assay : str
        Assay to register the metrics for.
    metrics : Iterable[str], optional
        Names of built-in metrics; all of them if None.
    overwrite : bool, default=False
        Replace metrics already registered under the same names.
    **defaults
        Default parameter values applied to every metric (e.g. ``alpha=0.05``).

    Raises
    ------
    NotFoundError
        If a requested name is not a built-in metric.
    """
    names = list(DEFAULT_METRICS) if metrics is None else list(metrics)
    unknown = [n for n in names if n not in DEFAULT_METRICS]
    if unknown:
        raise NotFoundError(
            f"Unknown default metrics: {unknown}. Available: {list(DEFAULT_METRICS)}",
            label=unknown[0],
        )
    for name in names:
        add_metric(result, assay, name, DEFAULT_METRICS[name].func, overwrite=overwrite, **defaults)
    return result


def performance_metrics(result: BenchmarkResult, assay: str | None = None) -> dict[str, list[str]]:
    """Names of the metrics registered on ``result``, per assay."""
    return result.metrics.list_metrics(assay)
