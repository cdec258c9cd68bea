"""content-pipeline: model-driven processing of vault notes and audio."""

# Patch the SDK before anything imports query(). See sdk_patch.py for why.
from content_pipeline.sdk_patch import apply as _apply_sdk_patch

_apply_sdk_patch()

from content_pipeline.chain import ChainExecutor
from content_pipeline.clients import (
    ChatClient,
    ClaudeChatClient,
    ClientFactory,
    OpenAIChatClient,
    TranscriptionClient,
    WhisperClient,
)
from content_pipeline.config import (
    ConfigurationResolver,
    ConfigValidationResult,
    load_models_config,
    load_pipeline_config,
)
from content_pipeline.discovery import FileDiscovery, find_entry_points
from content_pipeline.errors import (
    ChainError,
    ConcurrencyError,
    ConfigurationError,
    EmptyPipelineError,
    FileSystemError,
    LLMError,
    ParsingError,
    PipelineError,
    StepExecutionError,
    UnknownStepError,
    UnsupportedConfigurationError,
    ValidationError,
)
from content_pipeline.executor import PipelineExecutor
from content_pipeline.models import (
    FileInfo,
    ModelConfig,
    PipelineConfiguration,
    PipelineStep,
    ProcessedResponse,
    ProcessingResult,
    ProcessingStatus,
    ResolvedPipelineStep,
    ResponseSection,
    RoutingDecision,
)
from content_pipeline.pipeline_logger import configure_logging
from content_pipeline.state import ExecutionState
from content_pipeline.step_executor import StepExecutor
from content_pipeline.storage import Storage, VaultStorage

__all__ = [
    "configure_logging",
    "find_entry_points",
    "load_models_config",
    "load_pipeline_config",
    "ChainExecutor",
    "ChatClient",
    "ClaudeChatClient",
    "ClientFactory",
    "ConfigurationResolver",
    "ConfigValidationResult",
    "ExecutionState",
    "FileDiscovery",
    "FileInfo",
    "ModelConfig",
    "OpenAIChatClient",
    "PipelineConfiguration",
    "PipelineExecutor",
    "PipelineStep",
    "ProcessedResponse",
    "ProcessingResult",
    "ProcessingStatus",
    "ResolvedPipelineStep",
    "ResponseSection",
    "RoutingDecision",
    "StepExecutor",
    "Storage",
    "TranscriptionClient",
    "VaultStorage",
    "WhisperClient",
    "ChainError",
    "ConcurrencyError",
    "ConfigurationError",
    "EmptyPipelineError",
    "FileSystemError",
    "LLMError",
    "ParsingError",
    "PipelineError",
    "StepExecutionError",
    "UnknownStepError",
    "UnsupportedConfigurationError",
    "ValidationError",
]
