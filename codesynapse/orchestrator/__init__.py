"""
Keeps the graph in step with the watched directory.
"""

from .debounce import StatsDebouncer
from .update_orchestrator import UpdateOrchestrator

__all__ = ['StatsDebouncer', 'UpdateOrchestrator']
