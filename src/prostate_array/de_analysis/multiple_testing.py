"""
Multiple-Comparison Correction
==============================

Family-wise and false-discovery-rate corrections of per-gene p-values
(Bonferroni, Holm, Hochberg, Benjamini-Hochberg, Benjamini-Yekutieli) via
statsmodels, plus the Westfall-Young single-step minP permutation
adjustment as a comparison baseline.

Benjamini-Hochberg is the production correction: it controls the false
discovery rate at the lowest cost in discoveries among the methods
computed here. Genes whose test was not computable carry NaN p-values;
they are left out of the family and stay NaN after adjustment.
"""

import pandas as pd
import numpy as np
from statsmodels.stats.multitest import multipletests
from joblib import Parallel, delayed
from typing import Callable, List
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# name -> statsmodels method
CORRECTION_METHODS = {
    'bonferroni': 'bonferroni',
    'holm': 'holm',
    'hochberg': 'simes-hochberg',
    'BH': 'fdr_bh',
    'BY': 'fdr_by'
}

PRODUCTION_METHOD = 'BH'


def adjust_pvalues(pvalues: pd.Series, method: str = PRODUCTION_METHOD) -> pd.Series:
    """
    Adjust p-values for multiple comparisons.

    Parameters
    ----------
    pvalues : pd.Series
        Raw p-values indexed by gene (NaN = not computable)
    method : str
        One of CORRECTION_METHODS

    Returns
    -------
    pd.Series
        Adjusted p-values, NaN where the raw value is NaN
    """
    if method not in CORRECTION_METHODS:
        raise ValueError(f"Unknown correction method: {method}")

    pvalues = pd.Series(pvalues, dtype=float)
    adjusted = pd.Series(np.nan, index=pvalues.index, name=f'padj_{method}')

    mask = pvalues.notna().values
    if mask.any():
        _, padj, _, _ = multipletests(pvalues.values[mask], method=CORRECTION_METHODS[method])
        adjusted[mask] = padj

    return adjusted


def adjust_all_methods(pvalues: pd.Series) -> pd.DataFrame:
    """One adjusted p-value column per correction method."""
    return pd.concat(
        [adjust_pvalues(pvalues, method) for method in CORRECTION_METHODS],
        axis=1
    )


def _min_pvalue(
    matrix: np.ndarray,
    labels: np.ndarray,
    pvalue_fn: Callable[[np.ndarray, np.ndarray], np.ndarray]
) -> float:
    pvalues = np.asarray(pvalue_fn(matrix, labels), dtype=float)
    finite = pvalues[np.isfinite(pvalues)]
    return float(finite.min()) if len(finite) else 1.0


def permutation_minp(
    pvalues: pd.Series,
    expression: pd.DataFrame,
    labels: np.ndarray,
    pvalue_fn: Callable[[np.ndarray, np.ndarray], np.ndarray],
    n_permutations: int = 1000,
    random_state: int = 42,
    n_jobs: int = 1
) -> pd.Series:
    """
    Westfall-Young single-step minP adjustment.

    The adjusted p-value of a gene is the fraction of label permutations
    whose smallest p-value over all genes is at most the gene's observed
    p-value.

    Parameters
    ----------
    pvalues : pd.Series
        Observed raw p-values indexed by gene
    expression : pd.DataFrame
        Expression matrix (genes x samples) the p-values came from
    labels : np.ndarray
        Covariate values aligned with the expression columns
    pvalue_fn : Callable
        Maps (genes x samples matrix, labels) to one p-value per gene
    n_permutations : int
        Number of label permutations
    random_state : int
        Seed for the permutations
    n_jobs : int
        Parallel jobs over permutations

    Returns
    -------
    pd.Series
        minP-adjusted p-values indexed by gene
    """
    if n_permutations < 1:
        raise ValueError("n_permutations must be positive")

    logger.info(f"Running minP adjustment ({n_permutations} permutations)")

    observed = pd.Series(pvalues, dtype=float).reindex(expression.index)
    tested = observed.notna().values
    matrix = expression.values[tested]

    rng = np.random.default_rng(random_state)
    permutations: List[np.ndarray] = [
        rng.permutation(labels) for _ in range(n_permutations)
    ]

    min_pvalues = np.array(Parallel(n_jobs=n_jobs)(
        delayed(_min_pvalue)(matrix, permuted, pvalue_fn) for permuted in permutations
    ))

    adjusted = pd.Series(np.nan, index=expression.index, name='padj_minP')
    obs = observed.values[tested]
    adjusted[tested] = (min_pvalues[np.newaxis, :] <= obs[:, np.newaxis]).mean(axis=1)

    return adjusted


def significant_genes(
    table: pd.DataFrame,
    column: str = f'padj_{PRODUCTION_METHOD}',
    alpha: float = 0.05
) -> List[str]:
    """Genes with adjusted p-value strictly below alpha, sorted by gene id."""
    if column not in table.columns:
        raise ValueError(f"Column '{column}' not in statistics table")

    significant = table.index[table[column] < alpha]
    return sorted(str(g) for g in significant)
