"""Example datasets for SumBench tutorials and testing.

Available Datasets:
-------------------

1. **load_pvalue_example()** - Simulated multiple-testing data (1000 hypotheses)
   - Known truth labels (about 20% non-null)
   - One-sided z-test p-values
   - Covariate informative about the truth

Example Usage:
--------------
>>> from sumbench.datasets import load_pvalue_example
>>> df = load_pvalue_example()
"""

from sumbench.datasets._example import load_pvalue_example

__all__ = ["load_pvalue_example"]
