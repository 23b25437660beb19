"""
Parameter grids for metric evaluation.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sumbench.core.exceptions import ConfigurationError


class ParameterGrid:
    """
    Cartesian product of candidate parameter values.

    Args:
        param_dict: Dictionary of parameter_name -> candidate values. A scalar
                    is treated as a single candidate.

    Examples:
        >>> grid = ParameterGrid({"alpha": [0.01, 0.05, 0.1]})
        >>> len(grid)
        3
        >>> grid.combinations()[0]
        {'alpha': 0.01}
    """

    def __init__(self, param_dict: Mapping[str, Any] | None = None):
        self.param_dict: dict[str, list[Any]] = {}
        for name, values in (param_dict or {}).items():
            if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
                values = [values]
            values = list(values)
            if not values:
                raise ConfigurationError(f"Parameter grid entry '{name}' has no values.")
            self.param_dict[name] = values

    @property
    def names(self) -> list[str]:
        return list(self.param_dict)

    def __len__(self) -> int:
        n = 1
        for values in self.param_dict.values():
            n *= len(values)
        return n

    def index_combinations(self, names: Sequence[str] | None = None) -> list[tuple[tuple[str, int], ...]]:
        """
        All combinations as ``((name, value_index), ...)`` tuples.

        Args:
            names: Restrict the product to these parameters (grid order is kept).
        """
        keys = [n for n in self.param_dict if names is None or n in names]
        ranges = [range(len(self.param_dict[k])) for k in keys]
        return [tuple(zip(keys, idx)) for idx in itertools.product(*ranges)]

    def values_of(self, index_combo: Iterable[tuple[str, int]]) -> dict[str, Any]:
        """Translate an index combination into parameter values."""
        return {name: self.param_dict[name][i] for name, i in index_combo}

    def combinations(self, names: Sequence[str] | None = None) -> list[dict[str, Any]]:
        """Generate exhaustive grid combinations."""
        return [self.values_of(c) for c in self.index_combinations(names)]
