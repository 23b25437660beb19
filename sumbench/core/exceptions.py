"""Exception hierarchy for SumBench.

Configuration-level problems are raised immediately. Failures of the
benchmarked methods themselves are never raised during a build; they are
recorded as :class:`ExecutionFailure` values instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class SumBenchError(Exception):
    """Base class for exceptions in SumBench."""

    pass


class ConfigurationError(SumBenchError):
    """Malformed or inconsistent design, build request or metric definition.

    Attributes
    ----------
    config_path : Path | None
        Configuration file involved, if the error came from a config file.
    """

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        super().__init__(message)
        self.config_path = config_path


class DuplicateLabelError(SumBenchError):
    """A method or metric label collides with an existing one."""

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


class NotFoundError(SumBenchError):
    """A referenced method label or dataset field does not exist."""

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


class UnresolvedReferenceError(NotFoundError):
    """A field reference cannot be bound to the dataset at build time.

    Attributes
    ----------
    label : str | None
        Method whose argument could not be resolved.
    field : str | None
        Name of the missing dataset field.
    """

    def __init__(
        self, message: str, label: str | None = None, field: str | None = None
    ) -> None:
        super().__init__(message, label=label)
        self.field = field


class AssemblyError(SumBenchError):
    """Per-method outputs cannot be combined into a uniform result matrix."""

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


@dataclass(frozen=True)
class ExecutionFailure:
    """Captured failure of one method during a build.

    Attributes
    ----------
    label : str
        Label of the failing method.
    error_type : str
        Class name of the raised exception.
    message : str
        Exception message.
    """

    label: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, label: str, exc: BaseException) -> ExecutionFailure:
        return cls(label=label, error_type=type(exc).__name__, message=str(exc))

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"
