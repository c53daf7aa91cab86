"""
CodeSynapse: a live file dependency graph of a codebase.
"""

__version__ = "1.0.0"
