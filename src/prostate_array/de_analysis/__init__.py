"""
Covariate testing and multiple-comparison correction module.
"""

from .hypothesis_tests import (
    GeneTestResult,
    CovariateTester,
    normality_test,
    variance_homogeneity_test,
    rank_correlation_test,
    rank_sum_test,
    kruskal_test,
    covariate_pvalues,
    pvalue_function
)
from .multiple_testing import (
    CORRECTION_METHODS,
    PRODUCTION_METHOD,
    adjust_pvalues,
    adjust_all_methods,
    permutation_minp,
    significant_genes
)

__all__ = [
    'GeneTestResult',
    'CovariateTester',
    'normality_test',
    'variance_homogeneity_test',
    'rank_correlation_test',
    'rank_sum_test',
    'kruskal_test',
    'covariate_pvalues',
    'pvalue_function',
    'CORRECTION_METHODS',
    'PRODUCTION_METHOD',
    'adjust_pvalues',
    'adjust_all_methods',
    'permutation_minp',
    'significant_genes'
]
