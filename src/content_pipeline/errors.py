"""Custom exception hierarchy for content-pipeline.

All exceptions inherit from PipelineError so callers can catch broadly
or narrowly as needed.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base for all content-pipeline errors."""


class ConfigurationError(PipelineError):
    """Models or pipeline configuration is missing, malformed or inconsistent."""


class UnknownStepError(ConfigurationError):
    """A step id does not exist in the pipeline configuration."""

    def __init__(self, step_id: str, available: list[str] | None = None) -> None:
        self.step_id = step_id
        self.available = available or []
        hint = f" (available: {', '.join(self.available)})" if self.available else ""
        super().__init__(f"Pipeline step not found: '{step_id}'{hint}")


class UnsupportedConfigurationError(ConfigurationError):
    """The step's implementation cannot process the given file."""


class ValidationError(PipelineError):
    """Invalid parameters or an unsafe vault path."""


class FileSystemError(PipelineError):
    """Reading, writing, moving or listing vault files failed."""


class EmptyPipelineError(PipelineError):
    """The pipeline configuration has no steps."""


class ConcurrencyError(PipelineError):
    """Another file is currently being processed."""


class ChainError(PipelineError):
    """A chain cannot continue to its next step."""


class ParsingError(PipelineError):
    """A model response could not be interpreted into sections."""


class LLMError(PipelineError):
    """Model call failed (network, error response, empty reply)."""


class StepExecutionError(PipelineError):
    """A step failed during execution."""

    def __init__(
        self,
        step_name: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"Step '{step_name}' failed: {message}")
