"""Lightweight in-repo task runner for confetti.

Provides Task and Pipeline primitives, the Fileset handed between tasks, and a Typer CLI.
"""

from .core import TaskSpec, Pipeline, task  # re-export for convenience
from .fileset import Fileset

__all__ = ["TaskSpec", "Pipeline", "task", "Fileset"]
