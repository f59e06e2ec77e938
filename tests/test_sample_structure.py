"""
Tests for PCA, clustering and sample correlation.
"""

import numpy as np
import pandas as pd
import pytest

from prostate_array.exploration.sample_structure import SampleStructureExplorer

from conftest import INFORMATIVE_GENES, SAMPLES


@pytest.fixture
def explorer(expression, annotation):
    return SampleStructureExplorer(expression, annotation)


class TestPCA:

    def test_scores_and_variance(self, explorer):
        scores, percent_variance = explorer.pca_analysis(n_components=5)

        assert scores.shape == (len(SAMPLES), 5)
        assert list(scores.columns) == ['PC1', 'PC2', 'PC3', 'PC4', 'PC5']
        assert np.all(np.diff(percent_variance) <= 1e-9)
        assert percent_variance.sum() <= 100 + 1e-9

    def test_components_are_capped(self, expression):
        small = SampleStructureExplorer(expression.loc[INFORMATIVE_GENES[:3]])
        scores, _ = small.pca_analysis(n_components=5)
        assert scores.shape[1] == 3

    def test_pc1_separates_disease(self, expression, annotation):
        # informative genes plus four noise genes, as left by the CV filter
        scores, _ = SampleStructureExplorer(expression.iloc[:10], annotation).pca_analysis()
        tumor = annotation['disease_status'] == 'Disease'
        pc1 = scores['PC1']
        assert pc1[tumor].max() < pc1[~tumor].min() or pc1[tumor].min() > pc1[~tumor].max()


class TestClustering:

    def test_hierarchical_clusters(self, explorer, annotation):
        linkage_matrix, clusters = explorer.hierarchical_clustering(n_clusters=2)

        assert linkage_matrix.shape == (len(SAMPLES) - 1, 4)
        assert clusters.nunique() == 2
        # each cluster is pure in disease status
        purity = pd.crosstab(clusters, annotation.loc[clusters.index, 'disease_status'])
        assert ((purity > 0).sum(axis=1) == 1).all()

    def test_kmeans_is_deterministic(self, expression):
        first = SampleStructureExplorer(expression).kmeans_clustering(n_clusters=2, random_state=42)
        second = SampleStructureExplorer(expression).kmeans_clustering(n_clusters=2, random_state=42)

        pd.testing.assert_series_equal(first, second)

    def test_kmeans_uses_two_components(self, explorer):
        explorer.pca_analysis(n_components=5)
        clusters = explorer.kmeans_clustering(n_clusters=3)
        assert clusters.nunique() == 3
        assert list(clusters.index) == SAMPLES


class TestCorrelation:

    def test_mean_pairwise_correlation(self, explorer):
        mean_corr = explorer.mean_pairwise_correlation()

        assert mean_corr.is_monotonic_increasing
        assert set(mean_corr.index) == set(SAMPLES)
        assert mean_corr.between(-1, 1).all()

    def test_suggest_outliers_does_not_remove(self, explorer, expression):
        distorted = expression.copy()
        distorted['S05'] = distorted['S05'].values[::-1]
        candidates = SampleStructureExplorer(distorted).suggest_outliers(threshold=0.5)

        assert candidates == ['S05']
        assert explorer.expression.shape[1] == len(SAMPLES)

    def test_silhouette_by_disease(self, expression, annotation):
        explorer = SampleStructureExplorer(expression.iloc[:10], annotation)
        assert explorer.silhouette('disease_status') > 0.2


def test_empty_gene_set_fails(expression):
    with pytest.raises(ValueError, match="empty"):
        SampleStructureExplorer(expression.iloc[:0])
