"""Error hierarchy for confetti tasks and their AWS collaborators.

Errors carry metadata so the CLI and the pipeline run record can report them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConfettiError(RuntimeError):
    """Base error. `retryable` tells the pipeline whether a retry can help."""

    category: str = "runtime"
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


class MissingOptionError(ConfettiError, ValueError):
    """Raised when a required task option is absent."""

    category = "validation"
    retryable = False


class ConfigError(ConfettiError):
    """Raised when the YAML config cannot be used."""

    category = "config"
    retryable = False


class StackCreationError(ConfettiError):
    """Raised when a stack ends in a status other than CREATE_COMPLETE."""

    category = "cloudformation"
    retryable = False


class StackTimeoutError(ConfettiError):
    """Raised when stack events never reach a terminal status."""

    category = "cloudformation"
    retryable = False


class SyncError(ConfettiError):
    """Raised when an S3 write fails during a bucket sync."""

    category = "s3"
