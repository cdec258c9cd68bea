"""Pydantic models for pipeline configuration and processing results.

All data structures live here. No business logic, just shapes.
Step outputs use a discriminated union on the ``kind`` field so a
plain output directory and a routing map are never confused at
runtime; raw configuration (a string or a mapping) is coerced into
the right variant when a step is parsed.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    field_validator,
)

AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {".mp3", ".wav", ".m4a", ".mp4", ".webm", ".ogg"}
)
PROCESSABLE_EXTENSIONS: tuple[str, ...] = (".mp3", ".wav", ".m4a", ".mp4", ".md", ".txt")
DEFAULT_ROUTE = "default"

_MIME_OVERRIDES = {
    ".md": "text/markdown",
    ".txt": "text/plain",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".webm": "audio/webm",
}


# ── Models configuration ─────────────────────────────────────────


class ExecutionKind(str, Enum):
    TRANSCRIPTION = "transcription"
    CHAT = "chat"


class Implementation(str, Enum):
    WHISPER = "whisper"
    CHATGPT = "chatgpt"
    CLAUDE = "claude"

    @property
    def kind(self) -> ExecutionKind:
        match self:
            case Implementation.WHISPER:
                return ExecutionKind.TRANSCRIPTION
            case Implementation.CHATGPT | Implementation.CLAUDE:
                return ExecutionKind.CHAT


class ModelConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    model: str
    api_key: str = Field(default="", alias="apiKey")
    base_url: str | None = Field(default=None, alias="baseUrl")
    organization: str | None = None
    implementation: Implementation


class ModelsConfig(RootModel[dict[str, ModelConfig]]):
    def __getitem__(self, key: str) -> ModelConfig:
        return self.root[key]

    def __contains__(self, key: object) -> bool:
        return key in self.root

    def __iter__(self):  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def get(self, key: str) -> ModelConfig | None:
        return self.root.get(key)


# ── Pipeline configuration ───────────────────────────────────────


class SimpleOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["simple"] = "simple"
    pattern: str


class RoutedOutput(BaseModel):
    """Output directories keyed by next-step id, plus a ``default`` fallback."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["routed"] = "routed"
    routes: dict[str, str]
    default: str | None = None

    @property
    def next_steps(self) -> list[str]:
        return list(self.routes)

    def pattern_for(self, next_step: str | None) -> str | None:
        """Directory for *next_step*, or the default when it is not routable."""
        if next_step and next_step in self.routes:
            return self.routes[next_step]
        return self.default


StepOutput = Annotated[SimpleOutput | RoutedOutput, Field(discriminator="kind")]


def _coerce_output(value: Any) -> Any:
    if isinstance(value, str):
        return {"kind": "simple", "pattern": value}
    if isinstance(value, (SimpleOutput, RoutedOutput)):
        return value
    if isinstance(value, dict):
        if value.get("kind") == "simple" and "pattern" in value:
            return value
        if value.get("kind") == "routed" and "routes" in value:
            return value
        routes = {k: v for k, v in value.items() if k != DEFAULT_ROUTE}
        return {"kind": "routed", "routes": routes, "default": value.get(DEFAULT_ROUTE)}
    return value


class PipelineStep(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, protected_namespaces=(), frozen=True
    )

    input: str
    output: StepOutput
    archive: str
    model_ref: str = Field(
        validation_alias=AliasChoices("modelConfig", "model_config", "model_ref"),
        serialization_alias="modelConfig",
    )
    prompts: list[str] = Field(default_factory=list)
    context: list[str] = Field(default_factory=list)
    description: str | None = None

    @field_validator("output", mode="before")
    @classmethod
    def _output_shape(cls, value: Any) -> Any:
        return _coerce_output(value)

    @property
    def is_routed(self) -> bool:
        return isinstance(self.output, RoutedOutput)

    @property
    def next_steps(self) -> list[str]:
        if isinstance(self.output, RoutedOutput):
            return self.output.next_steps
        return []

    def export(self) -> dict[str, Any]:
        """Plain mapping in the on-disk configuration format."""
        match self.output:
            case SimpleOutput(pattern=pattern):
                output: Any = pattern
            case RoutedOutput(routes=routes, default=default):
                output = dict(routes)
                if default is not None:
                    output[DEFAULT_ROUTE] = default
        data: dict[str, Any] = {
            "input": self.input,
            "output": output,
            "archive": self.archive,
            "modelConfig": self.model_ref,
            "prompts": list(self.prompts),
            "context": list(self.context),
        }
        if self.description is not None:
            data["description"] = self.description
        return data


class PipelineConfiguration(RootModel[dict[str, PipelineStep]]):
    """Step id -> step. Key order is the iteration order everywhere."""

    def __getitem__(self, key: str) -> PipelineStep:
        return self.root[key]

    def __contains__(self, key: object) -> bool:
        return key in self.root

    def __iter__(self):  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def get(self, key: str) -> PipelineStep | None:
        return self.root.get(key)

    def step_ids(self) -> list[str]:
        return list(self.root)

    def items(self):
        return self.root.items()


@dataclass(frozen=True)
class ResolvedPipelineStep:
    """A pipeline step with its model reference dereferenced."""

    step_id: str
    step: PipelineStep
    model_config: ModelConfig

    @property
    def input(self) -> str:
        return self.step.input

    @property
    def output(self) -> SimpleOutput | RoutedOutput:
        return self.step.output

    @property
    def archive(self) -> str:
        return self.step.archive

    @property
    def prompts(self) -> list[str]:
        return self.step.prompts

    @property
    def context(self) -> list[str]:
        return self.step.context

    @property
    def description(self) -> str | None:
        return self.step.description

    @property
    def available_next_steps(self) -> list[str]:
        return self.step.next_steps

    def is_valid_next_step(self, next_step: str | None) -> bool:
        return bool(next_step) and next_step in self.available_next_steps


# ── Files ────────────────────────────────────────────────────────


def guess_mime_type(ext: str) -> str:
    if ext in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[ext]
    guessed, _ = mimetypes.guess_type(f"file{ext}")
    return guessed or "application/octet-stream"


class FileInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    size: int
    extension: str
    is_processable: bool
    is_audio: bool
    last_modified: datetime
    mime_type: str

    @classmethod
    def build(cls, path: str, size: int, mtime_ms: float) -> FileInfo:
        name = path.rsplit("/", 1)[-1]
        dot = name.rfind(".")
        ext = name[dot:].lower() if dot > 0 else ""
        return cls(
            name=name,
            path=path,
            size=size,
            extension=ext,
            is_processable=ext in PROCESSABLE_EXTENSIONS,
            is_audio=ext in AUDIO_EXTENSIONS,
            last_modified=datetime.fromtimestamp(mtime_ms / 1000, tz=timezone.utc),
            mime_type=guess_mime_type(ext),
        )


class DiscoveryOptions(BaseModel):
    extensions: list[str] = Field(default_factory=lambda: list(PROCESSABLE_EXTENSIONS))
    recursive: bool = True
    include_hidden: bool = False
    sort_by: Literal["name", "modified", "size"] = "name"
    sort_order: Literal["asc", "desc"] = "asc"
    limit: int = 100


@dataclass(frozen=True)
class FileDiscoveryResult:
    file: FileInfo
    step_id: str


# ── Model responses ──────────────────────────────────────────────


class ResponseSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = "response.md"
    content: str
    next_step: str | None = Field(default=None, alias="nextStep")
    category: str | None = None


class ProcessedResponse(BaseModel):
    is_multi_file: bool
    sections: list[ResponseSection]
    raw_response: str | None = None


# ── Runtime results ──────────────────────────────────────────────


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RoutingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    available_options: list[str] = Field(default_factory=list)
    chosen_option: str | None = None
    used_default_fallback: bool = False
    resolved_output_path: str = ""


@dataclass
class ProcessingContext:
    """Per-execution scratch record, mutated as archiving and routing complete."""

    filename: str
    timestamp: str
    date: str
    step_id: str
    input_path: str
    archive_path: str = ""
    output_path: str = ""
    routing_decision: RoutingDecision | None = None
    written: set[str] = field(default_factory=set)

    @classmethod
    def start(cls, file: FileInfo, step_id: str) -> ProcessingContext:
        now = datetime.now(timezone.utc)
        name = file.name
        dot = name.rfind(".")
        return cls(
            filename=name[:dot] if dot > 0 else name,
            timestamp=now.isoformat(),
            date=now.date().isoformat(),
            step_id=step_id,
            input_path=file.path,
        )


class ProcessingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_file: FileInfo | None
    status: ProcessingStatus
    output_files: list[str] = Field(default_factory=list)
    archive_path: str | None = None
    start_time: datetime
    end_time: datetime
    step_id: str
    next_step: str | None = None
    error: str | None = None
    routing_decision: RoutingDecision | None = None

    @classmethod
    def skipped(cls, reason: str | None = None, step_id: str = "none") -> ProcessingResult:
        now = datetime.now(timezone.utc)
        return cls(
            input_file=None,
            status=ProcessingStatus.SKIPPED,
            start_time=now,
            end_time=now,
            step_id=step_id,
            error=reason,
        )

    @classmethod
    def failed(
        cls,
        file: FileInfo | None,
        step_id: str,
        error: str,
        start_time: datetime | None = None,
    ) -> ProcessingResult:
        now = datetime.now(timezone.utc)
        return cls(
            input_file=file,
            status=ProcessingStatus.FAILED,
            start_time=start_time or now,
            end_time=now,
            step_id=step_id,
            error=error,
        )
