"""
Repository Package

Local git working copy used as the source of truth for code context.
"""

from orchestrator.repository.mirror import RepositoryMirror, RepositoryError

__all__ = ["RepositoryMirror", "RepositoryError"]
