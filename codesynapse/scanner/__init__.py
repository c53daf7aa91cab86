"""
Filesystem watching with ignore rules.
"""

from .ignore_rules import IgnoreRules
from .change_watcher import ChangeWatcher

__all__ = ['IgnoreRules', 'ChangeWatcher']
