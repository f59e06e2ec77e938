"""
Feature Engineering module for microarray ML.
"""

from .variability import coefficient_of_variation, filter_by_cv
from .gene_sets import EmptyFeatureSetError, intersect_gene_sets, prepare_ml_data

__all__ = [
    'coefficient_of_variation',
    'filter_by_cv',
    'EmptyFeatureSetError',
    'intersect_gene_sets',
    'prepare_ml_data'
]
