"""
Dependency extraction and import specifier resolution.
"""

from .path_resolver import PathResolver
from .dependency_extractor import DependencyExtractor

__all__ = ['PathResolver', 'DependencyExtractor']
