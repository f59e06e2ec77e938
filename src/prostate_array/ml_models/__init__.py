"""
Machine Learning Models module.
"""

from .classifiers import CovariateClassifier

__all__ = ['CovariateClassifier']
