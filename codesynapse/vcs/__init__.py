"""
Version control integration.
"""

from .diff_cache import GitDiffCache

__all__ = ['GitDiffCache']
