"""
Microarray Analysis Pipeline
============================

Main pipeline that orchestrates:
1. Loading raw intensities and sample annotations
2. RMA normalization
3. Manual outlier exclusion and sample QC
4. Coefficient-of-variation filtering
5. Sample structure exploration
6. Per-gene covariate tests with multiple-comparison correction
7. Intersection of significant gene sets
8. SVM classification on the reduced gene set

Every stage stores its output under its own name, so no stage can pick up
a stale matrix from an earlier one.

Usage:
    prostate-array --config configs/config.yaml
    prostate-array --config configs/config.yaml --step tests
"""

import argparse
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
from datetime import datetime

from .config import PipelineConfig, load_config
from .preprocessing.data_loader import (
    MicroarrayDataLoader,
    align_samples,
    exclude_samples,
    calculate_qc_metrics
)
from .preprocessing.normalization import MicroarrayNormalizer
from .feature_engineering.variability import filter_by_cv
from .feature_engineering.gene_sets import (
    EmptyFeatureSetError,
    intersect_gene_sets,
    prepare_ml_data
)
from .exploration.sample_structure import SampleStructureExplorer
from .de_analysis.hypothesis_tests import CovariateTester, pvalue_function
from .de_analysis.multiple_testing import (
    adjust_all_methods,
    permutation_minp,
    significant_genes
)
from .ml_models.classifiers import CovariateClassifier
from .reporting.report_generator import AnalysisReportGenerator

logger = logging.getLogger(__name__)


class MicroarrayPipeline:
    """Complete microarray analysis pipeline."""

    def __init__(self, config: PipelineConfig):
        """
        Initialize pipeline with configuration.

        Parameters
        ----------
        config : PipelineConfig
            Validated pipeline settings
        """
        self.config = config
        self.results_dir = Path(config.data.output_dir)
        self.reporter = AnalysisReportGenerator(self.results_dir, make_plots=config.output.make_plots)

        # Stage outputs
        self.probe_intensities: Optional[pd.DataFrame] = None
        self.annotation: Optional[pd.DataFrame] = None
        self.expression_normalized: Optional[pd.DataFrame] = None
        self.expression_curated: Optional[pd.DataFrame] = None
        self.annotation_curated: Optional[pd.DataFrame] = None
        self.qc_metrics: Optional[pd.DataFrame] = None
        self.expression_filtered: Optional[pd.DataFrame] = None
        self.cv_table: Optional[pd.DataFrame] = None
        self.exploration: Dict[str, Any] = {}
        self.gene_statistics: Dict[str, pd.DataFrame] = {}
        self.significant_sets: Dict[str, List[str]] = {}
        self.reduced_genes: Optional[List[str]] = None
        self.expression_reduced: Optional[pd.DataFrame] = None
        self.classification_results: Dict[str, Dict[str, Any]] = {}

        self.summary: Dict[str, Any] = {'project': config.project_name, 'data': {},
                                        'testing': {}, 'classification': {}}

        logger.info(f"Initialized pipeline for: {config.project_name}")

    @classmethod
    def from_yaml(cls, config_path: str) -> "MicroarrayPipeline":
        return cls(load_config(config_path))

    def step1_load_data(self):
        """Load raw intensities and sample annotations."""
        logger.info("=== Step 1: Loading Data ===")

        ann = self.config.annotation
        loader = MicroarrayDataLoader(
            raw_dir=self.config.data.raw_dir,
            annotation_file=self.config.data.annotation_file,
            sample_id_column=ann.sample_id_column,
            age_column=ann.age_column,
            tissue_column=ann.tissue_column,
            categorical_columns=[ann.margin_column, ann.recurrence_column],
            age_threshold=ann.age_threshold,
            normal_tissue_labels=ann.normal_tissue_labels,
            missing_label=ann.missing_label
        )
        self.probe_intensities = loader.load_intensities()
        self.annotation = align_samples(self.probe_intensities, loader.load_annotations())

        self.summary['data']['samples'] = self.probe_intensities.shape[1]
        self.summary['data']['probes'] = self.probe_intensities.shape[0]

        return self.probe_intensities, self.annotation

    def step2_normalize(self):
        """RMA normalization of the probe intensities."""
        logger.info("=== Step 2: Normalization ===")

        if self.probe_intensities is None:
            self.step1_load_data()

        normalizer = MicroarrayNormalizer(self.probe_intensities)
        self.expression_normalized = normalizer.rma(
            background=self.config.normalization.background_correction
        )
        logger.info(f"\nNormalization Summary:\n{normalizer.get_summary_stats()}")

        self.reporter.save_expression_matrix(self.expression_normalized, "normalized_expression")
        self.summary['data']['normalized_genes'] = self.expression_normalized.shape[0]

        return self.expression_normalized

    def step3_curate_samples(self):
        """Sample QC and removal of the configured outliers."""
        logger.info("=== Step 3: Sample QC and Outlier Exclusion ===")

        if self.expression_normalized is None:
            self.step2_normalize()

        self.qc_metrics = calculate_qc_metrics(self.expression_normalized)
        self.qc_metrics.to_csv(self.results_dir / "sample_qc.tsv", sep='\t', index=False)

        outliers = self.config.exploration.outlier_samples
        self.expression_curated, self.annotation_curated = exclude_samples(
            self.expression_normalized, self.annotation, outliers
        )
        self.summary['data']['excluded_samples'] = list(outliers)

        logger.info(f"Samples after exclusion: {self.expression_curated.shape[1]}")
        return self.expression_curated, self.annotation_curated

    def step4_filter_genes(self):
        """Keep the top genes by coefficient of variation."""
        logger.info("=== Step 4: Variability Filtering ===")

        if self.expression_curated is None:
            self.step3_curate_samples()

        filtering = self.config.filtering
        self.expression_filtered, self.cv_table = filter_by_cv(
            self.expression_curated,
            quantile=filtering.cv_quantile,
            min_abs_mean=filtering.min_abs_mean
        )
        self.cv_table.to_csv(self.results_dir / "gene_variability.tsv", sep='\t', index_label='gene_id')
        self.reporter.plot_cv_histogram(self.cv_table)

        self.summary['data']['filtered_genes'] = self.expression_filtered.shape[0]
        return self.expression_filtered

    def step5_explore(self):
        """PCA, hierarchical clustering, k-means and sample correlation."""
        logger.info("=== Step 5: Sample Structure Exploration ===")

        if self.expression_filtered is None:
            self.step4_filter_genes()

        settings = self.config.exploration
        explorer = SampleStructureExplorer(self.expression_filtered, self.annotation_curated)

        scores, percent_variance = explorer.pca_analysis(settings.n_components)
        linkage_matrix, hclust = explorer.hierarchical_clustering(
            n_clusters=settings.n_clusters,
            method=settings.linkage_method,
            metric=settings.distance_metric
        )
        kmeans = explorer.kmeans_clustering(
            n_clusters=settings.n_clusters,
            random_state=self.config.random_state
        )
        mean_corr = explorer.mean_pairwise_correlation()

        try:
            silhouette = explorer.silhouette('disease_status', settings.n_components)
            logger.info(f"Disease status silhouette in PCA space: {silhouette:.3f}")
        except ValueError as e:
            silhouette = None
            logger.warning(f"Disease status silhouette not computed: {e}")
        self.summary['exploration'] = {'disease_silhouette': silhouette}

        if settings.outlier_correlation_threshold is not None:
            self.exploration['outlier_candidates'] = explorer.suggest_outliers(
                settings.outlier_correlation_threshold
            )

        clusters = pd.concat([scores, hclust, kmeans, mean_corr], axis=1)
        clusters.to_csv(self.results_dir / "sample_structure.tsv", sep='\t', index_label='sample_id')

        self.exploration.update({
            'pca_scores': scores,
            'percent_variance': percent_variance,
            'linkage': linkage_matrix,
            'hclust': hclust,
            'kmeans': kmeans,
            'mean_correlation': mean_corr,
            'disease_silhouette': silhouette
        })

        for column in ('disease_status', 'age_group'):
            self.reporter.plot_pca(scores, percent_variance, self.annotation_curated,
                                   color_by=column, name=f"pca_{column}")
        self.reporter.plot_dendrogram(linkage_matrix, self.expression_filtered.columns.tolist())
        self.reporter.plot_correlation_heatmap(explorer.sample_correlation())

        return self.exploration

    def step6_covariate_tests(self):
        """Per-gene tests against each covariate and p-value adjustment."""
        logger.info("=== Step 6: Covariate Tests ===")

        if self.expression_filtered is None:
            self.step4_filter_genes()

        stats_config = self.config.statistics
        tester = CovariateTester(
            self.expression_filtered,
            self.annotation_curated,
            n_jobs=stats_config.n_jobs,
            min_unique_normality=stats_config.min_unique_normality
        )
        production_column = f"padj_{stats_config.correction_method}"

        self.summary['testing'] = {
            'production_method': stats_config.correction_method,
            'alpha': stats_config.alpha,
            'covariates': {}
        }

        for covariate in stats_config.covariates:
            table = tester.run(
                name=covariate.name,
                column=covariate.column,
                test=covariate.test,
                group_column=covariate.group_column,
                contrast=covariate.contrast
            )
            table = pd.concat([table, adjust_all_methods(table['pvalue'])], axis=1)

            if stats_config.n_permutations > 0:
                contrast = tester.resolve_contrast(covariate.column, covariate.test, covariate.contrast)
                labels = tester.labels_for(covariate.column, covariate.test, contrast)
                table['padj_minP'] = permutation_minp(
                    table['pvalue'],
                    self.expression_filtered,
                    labels,
                    pvalue_function(covariate.test, contrast),
                    n_permutations=stats_config.n_permutations,
                    random_state=self.config.random_state,
                    n_jobs=stats_config.n_jobs
                )

            significant = significant_genes(table, production_column, stats_config.alpha)
            table['significant'] = table.index.isin(significant)

            self.gene_statistics[covariate.name] = table
            self.significant_sets[covariate.name] = significant
            self.reporter.save_gene_statistics(covariate.name, table)

            counts = {
                column: int((table[column] < stats_config.alpha).sum())
                for column in table.columns if column.startswith('padj_')
            }
            logger.info(f"'{covariate.name}' significant genes by method: {counts}")

            self.summary['testing']['covariates'][covariate.name] = {
                'test': covariate.test,
                'not_computable': int((~table['computable']).sum()),
                'significant': len(significant),
                'significant_by_method': counts
            }

        self.reporter.plot_pvalue_histograms(self.gene_statistics)
        return self.gene_statistics

    def step7_intersect(self):
        """Intersect the significant gene sets into the reduced feature set."""
        logger.info("=== Step 7: Gene Set Intersection ===")

        if not self.gene_statistics:
            self.step6_covariate_tests()

        names = self.config.statistics.intersection
        self.reduced_genes = intersect_gene_sets({name: self.significant_sets[name] for name in names})
        self.expression_reduced = self.expression_filtered.loc[self.reduced_genes]

        self.reporter.save_gene_list("reduced_genes", self.reduced_genes)
        self.summary['testing']['intersection'] = list(names)
        self.summary['testing']['reduced_genes'] = self.reduced_genes

        if not self.reduced_genes:
            logger.warning("The reduced gene set is empty; classification cannot run")

        return self.reduced_genes

    def step8_classification(self):
        """Train and evaluate one linear SVM per target."""
        logger.info("=== Step 8: Classification ===")

        if self.reduced_genes is None:
            self.step7_intersect()

        if not self.reduced_genes:
            raise EmptyFeatureSetError(
                "Classification needs a non-empty reduced gene set, but the intersection of "
                f"{self.config.statistics.intersection} is empty at "
                f"{self.config.statistics.correction_method} < {self.config.statistics.alpha}"
            )

        explorer = SampleStructureExplorer(self.expression_reduced, self.annotation_curated)
        if self.expression_reduced.shape[0] >= 2:
            scores, percent_variance = explorer.pca_analysis(self.config.exploration.n_components)
            self.reporter.plot_pca(scores, percent_variance, self.annotation_curated,
                                   color_by='disease_status', name="pca_reduced_genes")

        settings = self.config.classification
        for target in settings.targets:
            X, y = prepare_ml_data(self.expression_reduced, self.annotation_curated, target)

            classifier = CovariateClassifier(
                X, y,
                test_size=settings.test_size,
                random_state=self.config.random_state,
                kernel=settings.kernel
            )
            results = classifier.train()
            report = results['report']

            print(f"\n{report.format_text()}\n")
            self.reporter.save_confusion_report(report)
            if settings.kernel == 'linear':
                self.reporter.save_feature_weights(target, classifier.get_feature_weights())
            if settings.save_models:
                classifier.save_model(str(self.results_dir / f"svm_{target}.joblib"))

            self.classification_results[target] = results
            self.summary['classification'][target] = {
                'n_features': results['n_features'],
                'n_train': len(results['train_samples']),
                'n_test': len(results['test_samples']),
                'accuracy': report.accuracy,
                'kappa': report.kappa
            }

        return self.classification_results

    def run_full_pipeline(self):
        """Run the complete analysis pipeline."""
        logger.info("=" * 60)
        logger.info("Starting Full Microarray Analysis Pipeline")
        logger.info("=" * 60)

        start_time = datetime.now()

        self.step1_load_data()
        self.step2_normalize()
        self.step3_curate_samples()
        self.step4_filter_genes()
        self.step5_explore()
        self.step6_covariate_tests()
        self.step7_intersect()
        self.step8_classification()

        duration = datetime.now() - start_time

        logger.info("=" * 60)
        logger.info(f"Pipeline completed in {duration}")
        logger.info(f"Results saved to: {self.results_dir}")
        logger.info("=" * 60)

        self._generate_summary_report()
        return self.classification_results

    def _generate_summary_report(self):
        """Generate a summary report of the analysis."""
        self.summary['date'] = datetime.now().isoformat()
        self.reporter.save_summary(self.summary)
        self.reporter.generate_report(self.summary)


STEPS = {
    'load': 'step1_load_data',
    'normalize': 'step2_normalize',
    'curate': 'step3_curate_samples',
    'filter': 'step4_filter_genes',
    'explore': 'step5_explore',
    'tests': 'step6_covariate_tests',
    'intersect': 'step7_intersect',
    'classify': 'step8_classification'
}


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Microarray Analysis Pipeline')
    parser.add_argument(
        '--config',
        type=str,
        default='configs/config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--step',
        type=str,
        choices=['all'] + list(STEPS),
        default='all',
        help='Pipeline step to run (earlier steps run as needed)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # module-level basicConfig calls may already have configured the root logger
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    pipeline = MicroarrayPipeline.from_yaml(args.config)

    if args.step == 'all':
        pipeline.run_full_pipeline()
    else:
        getattr(pipeline, STEPS[args.step])()


if __name__ == "__main__":
    main()
