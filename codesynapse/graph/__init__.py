"""
Graph module holding the file dependency graph.
"""

from .graph_store import GraphStore

__all__ = ['GraphStore']
