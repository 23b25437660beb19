"""Example datasets for SumBench.

Simulated multiple-testing data: each row is one hypothesis with a known
truth label, a test statistic and its p-value. Suitable for benchmarking
p-value adjustment methods against the built-in error-rate metrics.
"""

from __future__ import annotations

import numpy as np
import polars as pl
from scipy.stats import norm

# =============================================================================
# Internal Dataset Generation
# =============================================================================


def _generate_pvalues(
    n_features: int,
    null_fraction: float,
    effect_size: float,
    informative_covariate: bool,
    random_seed: int,
) -> pl.DataFrame:
    """
    Simulate one-sided z-tests under a two-group model.

    Parameters
    ----------
    n_features : int
        Number of hypotheses.
    null_fraction : float
        Expected proportion of true nulls (0.0-1.0).
    effect_size : float
        Mean of the test statistic under the alternative.
    informative_covariate : bool
        Whether the ``covariate`` column shifts the prior probability of
        being non-null. If False it is pure noise.
    random_seed : int
        Random seed for reproducibility.

    Returns
    -------
    pl.DataFrame
        Columns ``feature_id``, ``label``, ``effect``, ``covariate``,
        ``statistic`` and ``p``.
    """
    if n_features < 1:
        raise ValueError("n_features must be positive")
    if not (0.0 <= null_fraction <= 1.0):
        raise ValueError("null_fraction must be between 0.0 and 1.0")

    rng = np.random.default_rng(seed=random_seed)
    covariate = rng.uniform(0.0, 1.0, n_features)

    # Prior non-null probability; averages to 1 - null_fraction either way
    prior = np.full(n_features, 1.0 - null_fraction)
    if informative_covariate:
        prior = np.clip(2.0 * (1.0 - null_fraction) * covariate, 0.0, 1.0)

    label = (rng.uniform(0.0, 1.0, n_features) < prior).astype(np.int64)
    effect = np.where(label == 1, effect_size, 0.0)
    statistic = rng.normal(effect, 1.0)

    return pl.DataFrame(
        {
            "feature_id": [f"H{i:05d}" for i in range(n_features)],
            "label": label,
            "effect": effect,
            "covariate": covariate,
            "statistic": statistic,
            "p": norm.sf(statistic),
        }
    )


# =============================================================================
# Public API
# =============================================================================


def load_pvalue_example(
    n_features: int = 1000,
    null_fraction: float = 0.8,
    effect_size: float = 2.5,
    informative_covariate: bool = True,
    random_seed: int = 42,
) -> pl.DataFrame:
    """
    Load a simulated multiple-testing dataset.

    Dataset Specifications:
    -----------------------
    - **Hypotheses:** 1000 (default)
    - **True nulls:** about 80%
    - **Alternative:** z-statistic with mean 2.5
    - **Random Seed:** 42 (reproducible)

    Columns:
    --------
    - feature_id: Unique hypothesis identifier (H00000, ...)
    - label: 1 for a true non-null, 0 for a true null
    - effect: Simulated effect (0 under the null)
    - covariate: Uniform covariate, informative about ``label`` by default
    - statistic: Observed z-statistic
    - p: One-sided p-value of ``statistic``

    Returns
    -------
    pl.DataFrame
        Simulated dataset, ready to bind to a
        :class:`~sumbench.design.BenchDesign`.

    Examples
    --------
    >>> from sumbench.datasets import load_pvalue_example
    >>> df = load_pvalue_example(n_features=50)
    >>> df.shape
    (50, 6)
    """
    return _generate_pvalues(
        n_features=n_features,
        null_fraction=null_fraction,
        effect_size=effect_size,
        informative_covariate=informative_covariate,
        random_seed=random_seed,
    )
