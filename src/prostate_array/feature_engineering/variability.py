"""
Variability Filtering
=====================

Coefficient-of-variation based gene filtering. Genes whose mean is zero
or numerically indistinguishable from zero have an undefined CV and are
dropped rather than divided by.
"""

import pandas as pd
import numpy as np
from typing import Tuple
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def coefficient_of_variation(
    expression: pd.DataFrame,
    min_abs_mean: float = 1e-8
) -> pd.Series:
    """
    Coefficient of variation per gene across samples.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples)
    min_abs_mean : float
        Genes with |mean| <= this value get NaN

    Returns
    -------
    pd.Series
        CV (sample standard deviation / mean) indexed by gene
    """
    means = expression.mean(axis=1)
    sds = expression.std(axis=1, ddof=1)

    defined = means.abs() > min_abs_mean
    cv = pd.Series(np.nan, index=expression.index, name='cv')
    cv[defined] = sds[defined] / means[defined]

    n_undefined = int((~defined).sum())
    if n_undefined:
        logger.warning(f"{n_undefined} genes have near-zero mean; CV undefined")

    return cv


def filter_by_cv(
    expression: pd.DataFrame,
    quantile: float = 0.75,
    min_abs_mean: float = 1e-8
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Keep the most variable genes.

    Genes are retained when their CV is strictly greater than the
    `quantile` of all defined CVs, so genes sitting exactly on the
    threshold are excluded.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples)
    quantile : float
        Quantile of the CV distribution used as threshold
    min_abs_mean : float
        Near-zero mean cutoff passed to `coefficient_of_variation`

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        Filtered expression matrix and a per-gene table with `cv`,
        `mean`, `sd` and `retained`
    """
    if not 0 < quantile < 1:
        raise ValueError(f"quantile must lie in (0, 1), got {quantile}")

    cv = coefficient_of_variation(expression, min_abs_mean=min_abs_mean)
    defined = cv.dropna()
    if defined.empty:
        raise ValueError("No gene has a defined coefficient of variation")

    threshold = float(np.quantile(defined.values, quantile))
    keep = cv > threshold  # NaN compares False

    cv_table = pd.DataFrame({
        'mean': expression.mean(axis=1),
        'sd': expression.std(axis=1, ddof=1),
        'cv': cv,
        'retained': keep
    })
    cv_table.attrs['threshold'] = threshold

    filtered = expression.loc[keep]
    logger.info(f"CV filter (q={quantile}, threshold={threshold:.4g}): "
                f"{expression.shape[0]} -> {filtered.shape[0]} genes")

    return filtered, cv_table
