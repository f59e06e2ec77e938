"""
Analysis Report Generator
=========================

Writes the pipeline outputs:
1. Normalized expression matrix (genes x samples, tab-separated)
2. Per-gene statistics table for each covariate
3. Confusion-matrix report for each classifier
4. Visualizations (PCA, dendrogram, correlation heatmap, histograms)
5. Markdown and JSON run summaries
"""

import json
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
import logging

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.cluster.hierarchy import dendrogram

from ..validation.model_evaluation import ConfusionReport

logger = logging.getLogger(__name__)


class AnalysisReportGenerator:
    """Write tables, reports and plots for one pipeline run."""

    def __init__(self, output_dir: Union[str, Path] = "results", make_plots: bool = True):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.plots_dir = self.output_dir / "plots"
        self.make_plots = make_plots
        if make_plots:
            self.plots_dir.mkdir(exist_ok=True)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def save_expression_matrix(self, expression: pd.DataFrame, name: str = "normalized_expression") -> Path:
        """Save a genes x samples matrix as TSV."""
        path = self.output_dir / f"{name}.tsv"
        expression.to_csv(path, sep='\t', index_label='gene_id')
        logger.info(f"Saved {name} ({expression.shape[0]} x {expression.shape[1]}) to {path}")
        return path

    def save_gene_statistics(self, covariate: str, table: pd.DataFrame) -> Path:
        """Save the per-gene statistics of one covariate as TSV."""
        path = self.output_dir / f"gene_statistics_{covariate}.tsv"
        table.to_csv(path, sep='\t', index_label='gene_id')
        return path

    def save_gene_list(self, name: str, genes: List[str]) -> Path:
        path = self.output_dir / f"{name}.txt"
        path.write_text("\n".join(genes) + ("\n" if genes else ""))
        return path

    def save_feature_weights(self, target: str, weights: pd.DataFrame) -> Path:
        """Save the linear SVM weight of every gene for one target."""
        path = self.output_dir / f"svm_weights_{target}.tsv"
        weights.to_csv(path, sep='\t', index=False)
        return path

    def save_confusion_report(self, report: ConfusionReport) -> Path:
        """Save one classifier's confusion report as text and JSON."""
        stem = self.output_dir / f"confusion_{report.target}"

        text_path = stem.with_suffix('.txt')
        text_path.write_text(report.format_text() + "\n")

        with open(stem.with_suffix('.json'), 'w') as f:
            json.dump(report.to_dict(), f, indent=2)

        return text_path

    # ------------------------------------------------------------------
    # Plots
    # ------------------------------------------------------------------

    def _save_figure(self, fig, name: str) -> Path:
        path = self.plots_dir / f"{name}.png"
        fig.tight_layout()
        fig.savefig(path, dpi=150)
        plt.close(fig)
        return path

    def plot_pca(
        self,
        scores: pd.DataFrame,
        percent_variance: np.ndarray,
        annotation: Optional[pd.DataFrame] = None,
        color_by: Optional[str] = None,
        name: str = "pca"
    ) -> Optional[Path]:
        """Scatter of PC1 vs PC2, optionally colored by a covariate."""
        if not self.make_plots:
            return None

        fig, ax = plt.subplots(figsize=(7, 6))
        hue = annotation.loc[scores.index, color_by] if (annotation is not None and color_by) else None
        sns.scatterplot(x=scores['PC1'], y=scores['PC2'], hue=hue, s=70, ax=ax)
        ax.set_xlabel(f"PC1 ({percent_variance[0]:.1f}%)")
        ax.set_ylabel(f"PC2 ({percent_variance[1]:.1f}%)")
        ax.set_title('Principal Component Analysis' + (f' by {color_by}' if color_by else ''))
        return self._save_figure(fig, name)

    def plot_dendrogram(self, linkage_matrix: np.ndarray, labels: List[str]) -> Optional[Path]:
        if not self.make_plots:
            return None

        fig, ax = plt.subplots(figsize=(max(8, len(labels) * 0.25), 6))
        dendrogram(linkage_matrix, labels=labels, leaf_rotation=90, ax=ax)
        ax.set_title('Sample Clustering (complete linkage, Euclidean distance)')
        ax.set_ylabel('Height')
        return self._save_figure(fig, "dendrogram")

    def plot_correlation_heatmap(self, correlation: pd.DataFrame) -> Optional[Path]:
        if not self.make_plots:
            return None

        fig, ax = plt.subplots(figsize=(9, 8))
        sns.heatmap(correlation, cmap='RdBu_r', center=correlation.values.mean(), ax=ax)
        ax.set_title('Sample-to-Sample Correlation')
        return self._save_figure(fig, "sample_correlation")

    def plot_cv_histogram(self, cv_table: pd.DataFrame) -> Optional[Path]:
        if not self.make_plots:
            return None

        fig, ax = plt.subplots(figsize=(7, 5))
        sns.histplot(cv_table['cv'].dropna(), bins=50, ax=ax)
        threshold = cv_table.attrs.get('threshold')
        if threshold is not None:
            ax.axvline(threshold, color='red', linestyle='--', label=f'threshold = {threshold:.3g}')
            ax.legend()
        ax.set_xlabel('Coefficient of variation')
        ax.set_title('Gene Variability')
        return self._save_figure(fig, "cv_histogram")

    def plot_pvalue_histograms(self, gene_statistics: Dict[str, pd.DataFrame]) -> Optional[Path]:
        if not self.make_plots or not gene_statistics:
            return None

        n = len(gene_statistics)
        fig, axes = plt.subplots(1, n, figsize=(5 * n, 4), squeeze=False)
        for ax, (covariate, table) in zip(axes[0], gene_statistics.items()):
            sns.histplot(table['pvalue'].dropna(), bins=20, binrange=(0, 1), ax=ax)
            ax.set_title(f'{covariate}')
            ax.set_xlabel('Raw p-value')
        return self._save_figure(fig, "pvalue_histograms")

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def save_summary(self, summary: Dict[str, Any]) -> Path:
        """Save JSON summary for programmatic access."""
        path = self.output_dir / "pipeline_summary.json"
        with open(path, 'w') as f:
            json.dump(summary, f, indent=2, default=str)
        return path

    def generate_report(self, summary: Dict[str, Any]) -> Path:
        """Markdown report of one run."""
        report_time = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        data = summary.get('data', {})
        testing = summary.get('testing', {})
        classification = summary.get('classification', {})
        silhouette = summary.get('exploration', {}).get('disease_silhouette')
        silhouette_text = 'n/a' if silhouette is None else f"{silhouette:.3f}"

        sections = [f"""# Microarray Analysis Report

**Project:** {summary.get('project', '')}
**Analysis Date:** {report_time}

---
""", f"""## Data

- Samples: {data.get('samples')}
- Excluded outliers: {', '.join(data.get('excluded_samples', [])) or 'none'}
- Genes after normalization: {data.get('normalized_genes')}
- Genes after CV filtering: {data.get('filtered_genes')}
- Disease status silhouette (PCA): {silhouette_text}
"""]

        lines = ["## Covariate Tests", "",
                 f"Production correction: **{testing.get('production_method')}**, "
                 f"alpha = {testing.get('alpha')}", "",
                 "| Covariate | Test | Not computable | Significant |",
                 "|---|---|---|---|"]
        for covariate, info in testing.get('covariates', {}).items():
            lines.append(f"| {covariate} | {info.get('test')} | "
                         f"{info.get('not_computable')} | {info.get('significant')} |")
        lines += ["", f"Reduced gene set ({', '.join(testing.get('intersection', []))}): "
                      f"{len(testing.get('reduced_genes', []))} genes"]
        sections.append("\n".join(lines))

        lines = ["## Classification", "", "| Target | Genes | Test samples | Accuracy | Kappa |",
                 "|---|---|---|---|---|"]
        for target, info in classification.items():
            lines.append(f"| {target} | {info.get('n_features')} | {info.get('n_test')} | "
                         f"{info.get('accuracy', float('nan')):.3f} | "
                         f"{info.get('kappa', float('nan')):.3f} |")
        sections.append("\n".join(lines))

        path = self.output_dir / "analysis_report.md"
        path.write_text("\n\n".join(sections) + "\n")
        logger.info(f"Report saved to: {path}")
        return path
