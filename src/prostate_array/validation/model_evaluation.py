"""
Model Evaluation
================

Confusion-matrix evaluation of a single held-out test partition:
accuracy, Cohen's kappa and, per class (one-vs-rest), sensitivity,
specificity, precision and balanced accuracy.
"""

import pandas as pd
import numpy as np
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float) -> float:
    return float(numerator / denominator) if denominator > 0 else float('nan')


@dataclass
class ConfusionReport:
    """Confusion matrix and derived statistics for one classifier."""
    target: Optional[str]
    labels: List[str]
    matrix: pd.DataFrame
    accuracy: float
    kappa: float
    per_class: pd.DataFrame
    n_samples: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'labels': self.labels,
            'n_samples': self.n_samples,
            'accuracy': self.accuracy,
            'kappa': self.kappa,
            'confusion_matrix': self.matrix.values.tolist(),
            'per_class': {
                label: {k: (None if pd.isna(v) else float(v)) for k, v in row.items()}
                for label, row in self.per_class.to_dict(orient='index').items()
            },
        }

    def format_text(self) -> str:
        """Plain-text report: rows are predictions, columns the reference."""
        lines = [
            f"Confusion Matrix and Statistics ({self.target})",
            "",
            "          Reference",
            self.matrix.T.to_string(),
            "",
            f"Accuracy : {self.accuracy:.4f}",
            f"Kappa    : {self.kappa:.4f}",
            f"Samples  : {self.n_samples}",
            "",
            "Statistics by Class:",
            self.per_class.round(4).T.to_string()
        ]
        return "\n".join(lines)


def evaluate_predictions(
    y_true: Sequence,
    y_pred: Sequence,
    labels: Optional[Sequence[str]] = None,
    target: Optional[str] = None
) -> ConfusionReport:
    """
    Compute the confusion matrix report.

    Parameters
    ----------
    y_true : Sequence
        Reference labels
    y_pred : Sequence
        Predicted labels
    labels : Sequence[str], optional
        Class order (defaults to the sorted union of both)
    target : str, optional
        Name of the predicted covariate

    Returns
    -------
    ConfusionReport
        Evaluation metrics
    """
    y_true = np.asarray(y_true).astype(str)
    y_pred = np.asarray(y_pred).astype(str)
    if labels is None:
        labels = sorted(set(y_true) | set(y_pred))
    labels = [str(label) for label in labels]

    cm = confusion_matrix(y_true, y_pred, labels=labels)
    matrix = pd.DataFrame(cm, index=pd.Index(labels, name='reference'),
                          columns=pd.Index(labels, name='prediction'))

    total = cm.sum()
    per_class = {}
    for i, label in enumerate(labels):
        tp = cm[i, i]
        fn = cm[i, :].sum() - tp
        fp = cm[:, i].sum() - tp
        tn = total - tp - fn - fp

        sensitivity = _ratio(tp, tp + fn)
        specificity = _ratio(tn, tn + fp)
        per_class[label] = {
            'sensitivity': sensitivity,
            'specificity': specificity,
            'precision': _ratio(tp, tp + fp),
            'balanced_accuracy': (sensitivity + specificity) / 2,
            'support': float(tp + fn)
        }

    if len(set(y_true) | set(y_pred)) > 1:
        kappa = float(cohen_kappa_score(y_true, y_pred, labels=labels))
    else:
        kappa = float('nan')

    report = ConfusionReport(
        target=target,
        labels=labels,
        matrix=matrix,
        accuracy=float(accuracy_score(y_true, y_pred)) if len(y_true) else float('nan'),
        kappa=kappa,
        per_class=pd.DataFrame(per_class).T,
        n_samples=int(total)
    )
    logger.info(f"Evaluated {report.n_samples} predictions for '{target}': "
                f"accuracy={report.accuracy:.4f}")
    return report
