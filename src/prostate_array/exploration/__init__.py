"""
Sample structure exploration module.
"""

from .sample_structure import SampleStructureExplorer

__all__ = ['SampleStructureExplorer']
