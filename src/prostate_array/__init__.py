"""
Prostate Microarray Analysis
============================

Exploratory and confirmatory analysis of gene-expression microarrays:

1. RMA-style normalization of raw probe intensities
2. Coefficient-of-variation filtering
3. Sample structure exploration (PCA, hierarchical clustering, k-means)
4. Per-gene tests against clinical covariates
5. Multiple-comparison correction
6. Gene set intersection and SVM classification

Modules:
- preprocessing: raw intensity / annotation loading and normalization
- exploration: projection and clustering of samples
- de_analysis: univariate tests and p-value adjustment
- feature_engineering: variability filtering and gene set intersection
- ml_models: linear SVM classifiers
- validation: confusion-matrix evaluation
- reporting: tables, reports and plots
"""

__version__ = "1.0.0"
__author__ = "Prostate Microarray Analysis"
