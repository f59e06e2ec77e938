"""
Preprocessing module for microarray analysis.
"""

from .data_loader import (
    MicroarrayDataLoader,
    SampleAlignmentError,
    align_samples,
    exclude_samples,
    calculate_qc_metrics
)
from .normalization import MicroarrayNormalizer, median_polish, rma_background_correct

__all__ = [
    'MicroarrayDataLoader',
    'SampleAlignmentError',
    'align_samples',
    'exclude_samples',
    'calculate_qc_metrics',
    'MicroarrayNormalizer',
    'median_polish',
    'rma_background_correct'
]
