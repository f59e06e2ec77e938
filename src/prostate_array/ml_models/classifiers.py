"""
Support Vector Classification of Clinical Covariates
====================================================

Trains a linear-kernel SVM on the reduced gene set for one target label,
using a single stratified, seeded train/test split. No cross-validation
or hyperparameter search is performed.
"""

import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler, LabelEncoder
from sklearn.svm import SVC
from sklearn.pipeline import Pipeline
from typing import Any, Dict, Optional
import logging
import joblib

from ..feature_engineering.gene_sets import EmptyFeatureSetError
from ..validation.model_evaluation import evaluate_predictions

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class CovariateClassifier:
    """Linear SVM classifier for one clinical target."""

    def __init__(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        test_size: float = 0.25,
        random_state: int = 42,
        kernel: str = 'linear'
    ):
        """
        Initialize classifier.

        Parameters
        ----------
        X : pd.DataFrame
            Feature matrix (samples x genes)
        y : pd.Series
            Labels indexed like X
        test_size : float
            Fraction of samples held out for testing
        random_state : int
            Random seed for the split
        kernel : str
            SVM kernel
        """
        if X.shape[1] == 0:
            raise EmptyFeatureSetError(
                f"Cannot train a classifier for '{y.name}' on zero features"
            )
        if not X.index.equals(y.index):
            raise ValueError("Feature matrix and labels are not aligned by sample id")

        # Stratification needs at least two samples per class
        counts = y.value_counts()
        rare = counts[counts < 2].index.tolist()
        if rare:
            logger.warning(f"Dropping classes with fewer than two samples: {rare}")
            keep = ~y.isin(rare)
            X, y = X.loc[keep], y.loc[keep]
        if y.nunique() < 2:
            raise ValueError(f"Target '{y.name}' needs at least two classes")

        self.X = X
        self.y = y
        self.test_size = test_size
        self.random_state = random_state
        self.kernel = kernel
        self.target = y.name

        # Encode labels
        self.le = LabelEncoder()
        self.y_encoded = self.le.fit_transform(y)

        # Split data
        self.X_train, self.X_test, self.y_train, self.y_test = train_test_split(
            X, self.y_encoded,
            test_size=test_size,
            stratify=self.y_encoded,
            random_state=random_state
        )

        logger.info(f"[{self.target}] Train set: {len(self.X_train)} samples, "
                    f"test set: {len(self.X_test)} samples, {X.shape[1]} genes")

        self.model: Optional[Pipeline] = None
        self.results: Dict[str, Any] = {}

    def create_pipeline(self) -> Pipeline:
        """Create sklearn pipeline with scaling."""
        return Pipeline([
            ('scaler', StandardScaler()),
            ('classifier', SVC(kernel=self.kernel, random_state=self.random_state))
        ])

    def train(self) -> Dict[str, Any]:
        """
        Fit on the training partition and evaluate on the test partition.

        Returns
        -------
        Dict[str, Any]
            Split membership, predictions and the confusion report
        """
        logger.info(f"Training {self.kernel} SVM for '{self.target}'")

        self.model = self.create_pipeline()
        self.model.fit(self.X_train, self.y_train)

        y_pred = self.le.inverse_transform(self.model.predict(self.X_test))
        y_true = self.le.inverse_transform(self.y_test)

        report = evaluate_predictions(
            y_true, y_pred, labels=list(self.le.classes_), target=self.target
        )

        self.results = {
            'target': self.target,
            'kernel': self.kernel,
            'n_features': self.X.shape[1],
            'train_samples': self.X_train.index.tolist(),
            'test_samples': self.X_test.index.tolist(),
            'predictions': pd.Series(y_pred, index=self.X_test.index, name='predicted'),
            'report': report
        }

        logger.info(f"'{self.target}' - Test Accuracy: {report.accuracy:.4f}")
        return self.results

    def get_feature_weights(self) -> pd.DataFrame:
        """Absolute linear SVM weights per gene (linear kernel only)."""
        if self.model is None:
            raise ValueError("Model not trained")

        classifier = self.model.named_steps['classifier']
        if not hasattr(classifier, 'coef_'):
            raise ValueError(f"Kernel '{self.kernel}' has no feature weights")

        # one row per class pair; aggregate by mean absolute weight
        importance = np.abs(classifier.coef_).mean(axis=0)

        return pd.DataFrame({
            'feature': self.X.columns,
            'importance': importance
        }).sort_values('importance', ascending=False)

    def predict(self, X_new: pd.DataFrame) -> np.ndarray:
        """
        Make predictions on new data.

        Parameters
        ----------
        X_new : pd.DataFrame
            New samples with the training genes as columns

        Returns
        -------
        np.ndarray
            Predicted labels
        """
        if self.model is None:
            raise ValueError("Model not trained")

        predictions = self.model.predict(X_new[self.X.columns])
        return self.le.inverse_transform(predictions)

    def save_model(self, filepath: str):
        """Save trained model and label encoder to file."""
        if self.model is None:
            raise ValueError("Model not trained")

        joblib.dump({'model': self.model, 'label_encoder': self.le}, filepath)
        logger.info(f"Saved '{self.target}' classifier to {filepath}")

    def load_model(self, filepath: str):
        """Load model from file."""
        bundle = joblib.load(filepath)
        self.model = bundle['model']
        self.le = bundle['label_encoder']
        logger.info(f"Loaded '{self.target}' classifier from {filepath}")
