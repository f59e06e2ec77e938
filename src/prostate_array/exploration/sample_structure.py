"""
Sample Structure Exploration
============================

Projection and clustering of samples:
1. PCA on variance-scaled data with percent variance explained
2. Hierarchical clustering (Euclidean distance, complete linkage)
3. K-means on the first two principal components
4. Sample-to-sample correlation for manual outlier review
"""

import pandas as pd
import numpy as np
from scipy.cluster.hierarchy import linkage, fcluster
from scipy.spatial.distance import pdist
from sklearn.preprocessing import StandardScaler
from sklearn.decomposition import PCA
from sklearn.cluster import KMeans
from sklearn.metrics import silhouette_score
from typing import List, Optional, Tuple
import logging

from ..preprocessing.data_loader import align_samples

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SampleStructureExplorer:
    """Explore how samples group together."""

    def __init__(self, expression: pd.DataFrame, annotation: Optional[pd.DataFrame] = None):
        """
        Initialize explorer.

        Parameters
        ----------
        expression : pd.DataFrame
            Expression matrix (genes x samples)
        annotation : pd.DataFrame, optional
            Sample annotation indexed by sample id
        """
        if expression.shape[0] == 0:
            raise ValueError("Cannot explore sample structure of an empty gene set")

        self.expression = expression
        self.annotation = align_samples(expression, annotation) if annotation is not None else None
        self._pca_scores: Optional[pd.DataFrame] = None

    def pca_analysis(self, n_components: int = 5) -> Tuple[pd.DataFrame, np.ndarray]:
        """
        Perform PCA on the data.

        Parameters
        ----------
        n_components : int
            Number of components to keep (capped by the data shape)

        Returns
        -------
        Tuple[pd.DataFrame, np.ndarray]
            PCA scores (samples x components) and percent variance
            explained per component
        """
        # Transpose: samples as rows, genes as columns
        X = self.expression.T.values

        # Standardize
        scaler = StandardScaler()
        X_scaled = scaler.fit_transform(X)

        n_components = min(n_components, *X_scaled.shape)
        pca = PCA(n_components=n_components)
        scores = pca.fit_transform(X_scaled)

        scores_df = pd.DataFrame(
            scores,
            index=self.expression.columns,
            columns=[f'PC{i+1}' for i in range(n_components)]
        )
        percent_variance = pca.explained_variance_ratio_ * 100

        self._pca_scores = scores_df
        logger.info(f"PCA variance explained (%): {np.round(percent_variance[:3], 2).tolist()}")

        return scores_df, percent_variance

    def hierarchical_clustering(
        self,
        n_clusters: int = 2,
        method: str = 'complete',
        metric: str = 'euclidean'
    ) -> Tuple[np.ndarray, pd.Series]:
        """
        Hierarchical clustering of samples.

        Parameters
        ----------
        n_clusters : int
            Number of flat clusters to cut the tree into
        method : str
            Linkage method
        metric : str
            Distance metric between samples

        Returns
        -------
        Tuple[np.ndarray, pd.Series]
            Linkage matrix and cluster label per sample
        """
        distances = pdist(self.expression.T.values, metric=metric)
        linkage_matrix = linkage(distances, method=method)

        labels = fcluster(linkage_matrix, t=n_clusters, criterion='maxclust')
        clusters = pd.Series(labels, index=self.expression.columns, name='hclust')

        logger.info(f"Hierarchical clustering ({method}, {metric}): "
                    f"{clusters.value_counts().sort_index().to_dict()}")
        return linkage_matrix, clusters

    def kmeans_clustering(
        self,
        n_clusters: int = 2,
        random_state: int = 42
    ) -> pd.Series:
        """
        K-means on the first two principal components.

        Parameters
        ----------
        n_clusters : int
            Number of clusters
        random_state : int
            Seed; identical seeds give identical assignments

        Returns
        -------
        pd.Series
            Cluster label per sample
        """
        if self._pca_scores is None or self._pca_scores.shape[1] < 2:
            self.pca_analysis(n_components=2)
        if self._pca_scores.shape[1] < 2:
            raise ValueError("K-means on PC1/PC2 needs at least two components")

        top_two = self._pca_scores[['PC1', 'PC2']].values

        kmeans = KMeans(n_clusters=n_clusters, random_state=random_state, n_init=10)
        labels = kmeans.fit_predict(top_two)

        clusters = pd.Series(labels, index=self._pca_scores.index, name='kmeans')
        logger.info(f"K-means (k={n_clusters}): {clusters.value_counts().sort_index().to_dict()}")
        return clusters

    def sample_correlation(self) -> pd.DataFrame:
        """Pearson correlation between samples."""
        return self.expression.corr(method='pearson')

    def mean_pairwise_correlation(self) -> pd.Series:
        """Mean correlation of each sample with every other sample."""
        corr = self.sample_correlation()
        n = corr.shape[0]
        if n < 2:
            raise ValueError("Mean pairwise correlation needs at least two samples")

        mean_corr = (corr.sum(axis=1) - 1) / (n - 1)
        mean_corr.name = 'mean_correlation'
        return mean_corr.sort_values()

    def suggest_outliers(self, threshold: float) -> List[str]:
        """
        List samples with a low mean pairwise correlation.

        Nothing is removed here: exclusion is a manual decision made
        through the configured outlier list.
        """
        mean_corr = self.mean_pairwise_correlation()
        candidates = mean_corr[mean_corr < threshold].index.tolist()
        if candidates:
            logger.info(f"Samples with mean correlation < {threshold}: {candidates}")
        return candidates

    def silhouette(self, group_col: str, n_components: int = 5) -> float:
        """
        Silhouette score of a covariate grouping in PCA space.

        Higher score = better separation by the grouping variable.
        """
        if self.annotation is None:
            raise ValueError("Silhouette needs a sample annotation")

        scores_df, _ = self.pca_analysis(n_components)
        labels = self.annotation.loc[scores_df.index, group_col]

        if labels.nunique() < 2 or labels.nunique() >= len(labels):
            raise ValueError(f"'{group_col}' needs between 2 and n_samples - 1 groups")

        return float(silhouette_score(scores_df.values, labels))
