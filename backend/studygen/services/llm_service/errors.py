"""Error taxonomy for generation stages.

``ServiceUnavailable`` and ``SchemaViolation`` are failures.  A provider that
declines to produce content ("not applicable") is *not* an error: that comes
back as an empty value and is classified as ``StageStatus.EMPTY`` by the
stage runner.
"""

from __future__ import annotations

from typing import Optional


class GenerationError(Exception):
    """Base class for failures of a structured generation call."""

    def __init__(self, message: str, *, task: Optional[str] = None):
        self.task = task
        super().__init__(f"[{task}] {message}" if task else message)


class ServiceUnavailable(GenerationError):
    """Provider unreachable, overloaded, rate-limited or timed out."""


class SchemaViolation(GenerationError):
    """Provider returned content that does not fit the output schema."""

    def __init__(self, message: str, *, task: Optional[str] = None, raw: str = ""):
        self.raw = raw[:1000]
        super().__init__(message, task=task)
