"""
Gene Set Intersection and ML Data Preparation
=============================================

Combines the significant gene sets of several covariates into the reduced
feature set used for classification, and shapes expression data for
scikit-learn.
"""

import pandas as pd
from typing import Iterable, List, Mapping, Tuple, Union
import logging

from ..preprocessing.data_loader import align_samples

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class EmptyFeatureSetError(ValueError):
    """A downstream stage was asked to work on zero genes."""


def intersect_gene_sets(
    gene_sets: Union[Mapping[str, Iterable[str]], Iterable[Iterable[str]]]
) -> List[str]:
    """
    Intersect significant gene sets.

    Parameters
    ----------
    gene_sets : Mapping or Iterable
        Either {covariate: genes} or a sequence of gene collections

    Returns
    -------
    List[str]
        Genes present in every set, sorted by gene id
    """
    if isinstance(gene_sets, Mapping):
        named = {name: set(genes) for name, genes in gene_sets.items()}
    else:
        named = {f"set_{i}": set(genes) for i, genes in enumerate(gene_sets)}

    if not named:
        raise ValueError("At least one gene set is required")

    common = set.intersection(*named.values())
    sizes = ", ".join(f"{name}={len(genes)}" for name, genes in named.items())
    logger.info(f"Intersection of ({sizes}): {len(common)} genes")

    return sorted(common)


def prepare_ml_data(
    expression: pd.DataFrame,
    annotation: pd.DataFrame,
    target: str
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Prepare data for ML: transpose and align with labels.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples)
    annotation : pd.DataFrame
        Sample annotation indexed by sample id
    target : str
        Column with class labels

    Returns
    -------
    Tuple[pd.DataFrame, pd.Series]
        X (samples x genes) and y (labels)
    """
    if expression.shape[0] == 0:
        raise EmptyFeatureSetError(
            f"Cannot build a '{target}' classifier: the reduced gene set is empty. "
            "Relax the significance threshold or change the intersected covariates."
        )
    if target not in annotation.columns:
        raise ValueError(f"Unknown classification target: {target}")

    aligned = align_samples(expression, annotation)

    # Transpose: samples as rows, genes as columns
    X = expression.T
    y = aligned.loc[X.index, target]

    return X, y
