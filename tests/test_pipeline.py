"""
End-to-end tests of the analysis pipeline on the simulated study.
"""

import json

import pandas as pd
import pytest

from prostate_array.config import load_config
from prostate_array.feature_engineering.gene_sets import EmptyFeatureSetError
from prostate_array.pipeline import MicroarrayPipeline, main

from conftest import GENES, INFORMATIVE_GENES, SAMPLES


@pytest.fixture
def config(config_file):
    return load_config(config_file)


class TestFullPipeline:

    @pytest.fixture
    def pipeline(self, config):
        pipeline = MicroarrayPipeline(config)
        pipeline.run_full_pipeline()
        return pipeline

    def test_stage_outputs_are_distinct(self, pipeline):
        assert pipeline.expression_normalized.shape == (len(GENES), len(SAMPLES))
        assert pipeline.expression_filtered.shape[0] < pipeline.expression_normalized.shape[0]
        assert set(pipeline.expression_reduced.index) <= set(pipeline.expression_filtered.index)
        assert list(pipeline.annotation_curated.index) == list(pipeline.expression_curated.columns)

    def test_informative_genes_reach_the_classifier(self, pipeline):
        assert set(INFORMATIVE_GENES) <= set(pipeline.reduced_genes)
        for name in ('disease', 'margin', 'recurrence'):
            assert set(pipeline.reduced_genes) <= set(pipeline.significant_sets[name])

    def test_statistics_tables(self, pipeline):
        assert set(pipeline.gene_statistics) == {'age', 'disease', 'margin', 'recurrence'}
        for table in pipeline.gene_statistics.values():
            for column in ('pvalue', 'padj_bonferroni', 'padj_holm', 'padj_hochberg',
                           'padj_BH', 'padj_BY', 'padj_minP', 'significant'):
                assert column in table.columns

    def test_classification_reports(self, pipeline):
        assert set(pipeline.classification_results) == {'disease_status', 'margin_status', 'bcr_status'}
        disease = pipeline.classification_results['disease_status']
        assert len(disease['test_samples']) == 6
        assert disease['report'].accuracy >= 0.8

    def test_files_written(self, pipeline, config):
        out = config.data.output_dir
        expected = [
            "normalized_expression.tsv",
            "sample_qc.tsv",
            "gene_variability.tsv",
            "sample_structure.tsv",
            "gene_statistics_disease.tsv",
            "gene_statistics_age.tsv",
            "reduced_genes.txt",
            "confusion_disease_status.txt",
            "confusion_bcr_status.json",
            "svm_weights_disease_status.tsv",
            "pipeline_summary.json",
            "analysis_report.md",
        ]
        for name in expected:
            assert (out / name).exists(), name

        summary = json.loads((out / "pipeline_summary.json").read_text())
        assert summary['testing']['production_method'] == 'BH'
        assert summary['data']['samples'] == len(SAMPLES)
        assert summary['exploration']['disease_silhouette'] > 0


def test_outlier_exclusion(config):
    config.exploration.outlier_samples = ['S05']
    pipeline = MicroarrayPipeline(config)
    pipeline.step3_curate_samples()

    assert 'S05' in pipeline.expression_normalized.columns
    assert 'S05' not in pipeline.expression_curated.columns
    assert 'S05' not in pipeline.annotation_curated.index


def test_empty_intersection_stops_classification(config):
    config.statistics.alpha = 1e-12
    config.statistics.n_permutations = 0
    pipeline = MicroarrayPipeline(config)

    with pytest.raises(EmptyFeatureSetError, match="empty"):
        pipeline.step8_classification()
    assert pipeline.reduced_genes == []


def test_cli_single_step(config_file, config):
    main(['--config', str(config_file), '--step', 'filter'])

    assert (config.data.output_dir / "gene_variability.tsv").exists()
    assert not (config.data.output_dir / "pipeline_summary.json").exists()


def test_svm_weights_cover_reduced_genes(config):
    pipeline = MicroarrayPipeline(config)
    pipeline.step8_classification()

    weights = pd.read_csv(config.data.output_dir / "svm_weights_disease_status.tsv", sep='\t')
    assert sorted(weights['feature']) == pipeline.reduced_genes
    assert (weights['importance'] >= 0).all()
    assert set(INFORMATIVE_GENES) & set(weights['feature'].head(len(INFORMATIVE_GENES)))
