"""
Reporting module: tables, plots and run summaries.
"""

from .report_generator import AnalysisReportGenerator

__all__ = ['AnalysisReportGenerator']
