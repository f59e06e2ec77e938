"""
Tests for the confusion-matrix report.
"""

import json

import numpy as np
import pytest

from prostate_array.validation.model_evaluation import evaluate_predictions


class TestEvaluatePredictions:

    def test_binary_statistics(self):
        y_true = ['Disease', 'Disease', 'Disease', 'Normal', 'Normal', 'Normal']
        y_pred = ['Disease', 'Disease', 'Normal', 'Normal', 'Normal', 'Normal']
        report = evaluate_predictions(y_true, y_pred, target='disease_status')

        assert report.labels == ['Disease', 'Normal']
        assert report.matrix.loc['Disease', 'Disease'] == 2
        assert report.matrix.loc['Disease', 'Normal'] == 1
        assert report.accuracy == pytest.approx(5 / 6)
        assert report.per_class.loc['Disease', 'sensitivity'] == pytest.approx(2 / 3)
        assert report.per_class.loc['Disease', 'specificity'] == pytest.approx(1.0)
        assert report.per_class.loc['Normal', 'precision'] == pytest.approx(3 / 4)
        assert report.kappa == pytest.approx(2 / 3)
        assert report.n_samples == 6

    def test_label_order_is_respected(self):
        report = evaluate_predictions(['a', 'b'], ['a', 'b'], labels=['b', 'a'])
        assert list(report.matrix.index) == ['b', 'a']
        assert report.accuracy == 1.0

    def test_unpredicted_class_has_undefined_precision(self):
        report = evaluate_predictions(['a', 'b', 'c'], ['a', 'a', 'b'], labels=['a', 'b', 'c'])
        assert np.isnan(report.per_class.loc['c', 'precision'])
        assert report.per_class.loc['c', 'support'] == 1

    def test_single_class_kappa_is_nan(self):
        report = evaluate_predictions(['a', 'a'], ['a', 'a'])
        assert np.isnan(report.kappa)

    def test_text_and_dict(self):
        report = evaluate_predictions(['x', 'y', 'y'], ['x', 'y', 'x'], target='bcr_status')

        text = report.format_text()
        assert "Confusion Matrix and Statistics (bcr_status)" in text
        assert "Accuracy" in text and "Kappa" in text

        payload = report.to_dict()
        assert payload['confusion_matrix'] == [[1, 0], [1, 1]]
        json.dumps(payload)
