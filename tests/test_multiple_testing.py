"""
Tests for p-value adjustment and the permutation minP baseline.
"""

import numpy as np
import pandas as pd
import pytest

from prostate_array.de_analysis.hypothesis_tests import (
    CovariateTester,
    pvalue_function,
    rank_sum_test,
)
from prostate_array.de_analysis.multiple_testing import (
    CORRECTION_METHODS,
    PRODUCTION_METHOD,
    adjust_all_methods,
    adjust_pvalues,
    permutation_minp,
    significant_genes,
)

from conftest import INFORMATIVE_GENES


@pytest.fixture
def raw_pvalues():
    rng = np.random.default_rng(3)
    values = np.concatenate([rng.uniform(0, 1, 40), rng.uniform(0, 1e-3, 10)])
    return pd.Series(values, index=[f"g{i:02d}" for i in range(len(values))])


class TestAdjustPvalues:

    def test_production_method_is_bh(self):
        assert PRODUCTION_METHOD == 'BH'
        assert set(CORRECTION_METHODS) == {'bonferroni', 'holm', 'hochberg', 'BH', 'BY'}

    @pytest.mark.parametrize("method", list(CORRECTION_METHODS))
    def test_adjusted_not_below_raw(self, raw_pvalues, method):
        adjusted = adjust_pvalues(raw_pvalues, method)
        assert (adjusted >= raw_pvalues - 1e-12).all()
        assert (adjusted <= 1).all()

    @pytest.mark.parametrize("method", list(CORRECTION_METHODS))
    def test_monotone_in_raw_pvalue(self, raw_pvalues, method):
        adjusted = adjust_pvalues(raw_pvalues, method)
        order = np.argsort(raw_pvalues.values)
        assert np.all(np.diff(adjusted.values[order]) >= -1e-12)

    def test_bonferroni_values(self):
        adjusted = adjust_pvalues(pd.Series([0.01, 0.02, 0.5]), 'bonferroni')
        assert np.allclose(adjusted, [0.03, 0.06, 1.0])

    def test_bh_values(self):
        adjusted = adjust_pvalues(pd.Series([0.01, 0.02, 0.03, 0.5]), 'BH')
        assert np.allclose(adjusted, [0.04, 0.04, 0.04, 0.5])

    def test_not_computable_genes_leave_the_family(self):
        pvalues = pd.Series([0.01, np.nan, 0.02], index=['a', 'b', 'c'])
        adjusted = adjust_pvalues(pvalues, 'bonferroni')

        assert np.isnan(adjusted['b'])
        assert adjusted['a'] == pytest.approx(0.02)
        assert adjusted['c'] == pytest.approx(0.04)

    def test_unknown_method(self, raw_pvalues):
        with pytest.raises(ValueError):
            adjust_pvalues(raw_pvalues, 'sidak')

    def test_all_methods(self, raw_pvalues):
        table = adjust_all_methods(raw_pvalues)
        assert list(table.columns) == [f"padj_{m}" for m in CORRECTION_METHODS]
        # Bonferroni is the most conservative
        assert (table['padj_bonferroni'] >= table['padj_BH'] - 1e-12).all()


class TestSignificantGenes:

    def test_tied_rank_sum_gene_is_significant(self):
        result = rank_sum_test([10.0, 10.0, 10.0], [1.0, 1.0, 1.0])
        table = pd.DataFrame({'pvalue': [result.pvalue]}, index=['GENE1'])
        table['padj_BH'] = adjust_pvalues(table['pvalue'], 'BH')

        assert significant_genes(table, 'padj_BH', alpha=0.05) == ['GENE1']

    def test_strictly_below_alpha(self):
        table = pd.DataFrame({'padj_BH': [0.05, 0.049, np.nan]}, index=['b', 'a', 'c'])
        assert significant_genes(table, alpha=0.05) == ['a']

    def test_missing_column(self):
        with pytest.raises(ValueError):
            significant_genes(pd.DataFrame({'pvalue': [0.01]}), 'padj_BH')


class TestPermutationMinP:

    @pytest.fixture
    def disease_inputs(self, expression, annotation):
        tester = CovariateTester(expression, annotation)
        contrast = ['Disease', 'Normal']
        table = tester.run('disease', 'disease_status', 'rank_sum', contrast=contrast)
        labels = tester.labels_for('disease_status', 'rank_sum', contrast)
        pvalue_fn = pvalue_function('rank_sum', contrast)
        return table['pvalue'], labels, pvalue_fn

    def test_informative_genes_survive(self, expression, disease_inputs):
        pvalues, labels, pvalue_fn = disease_inputs
        adjusted = permutation_minp(pvalues, expression, labels, pvalue_fn, n_permutations=25)

        assert adjusted.name == 'padj_minP'
        assert adjusted.between(0, 1).all()
        assert (adjusted.loc[INFORMATIVE_GENES] < 0.05).all()

    def test_monotone_and_reproducible(self, expression, disease_inputs):
        pvalues, labels, pvalue_fn = disease_inputs
        first = permutation_minp(pvalues, expression, labels, pvalue_fn,
                                 n_permutations=15, random_state=1)
        second = permutation_minp(pvalues, expression, labels, pvalue_fn,
                                  n_permutations=15, random_state=1)

        pd.testing.assert_series_equal(first, second)
        order = np.argsort(pvalues.values)
        assert np.all(np.diff(first.values[order]) >= 0)

    def test_invalid_permutation_count(self, expression, disease_inputs):
        pvalues, labels, pvalue_fn = disease_inputs
        with pytest.raises(ValueError):
            permutation_minp(pvalues, expression, labels, pvalue_fn, n_permutations=0)
