"""
Model validation module.
"""

from .model_evaluation import ConfusionReport, evaluate_predictions

__all__ = ['ConfusionReport', 'evaluate_predictions']
