"""Configuration loading and the configuration resolver.

Two documents are kept apart: the *models* config (credentials, model
names) and the *pipeline* config (steps, directories, routing). A
pipeline can be shared without leaking secrets; ``ConfigurationResolver``
is the single place where the two are joined and cross-checked.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from content_pipeline import paths
from content_pipeline.discovery import find_entry_points
from content_pipeline.errors import ConfigurationError, UnknownStepError, ValidationError
from content_pipeline.models import (
    DEFAULT_ROUTE,
    ExecutionKind,
    ModelsConfig,
    PipelineConfiguration,
    PipelineStep,
    ResolvedPipelineStep,
    RoutedOutput,
    SimpleOutput,
)

_log = logging.getLogger("content_pipeline")

_ENV_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_API_KEY_FIELDS = ("apiKey", "api_key")


def _expand_env(value: str) -> str:
    return _ENV_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _read_document(source: str | Path | Mapping[str, Any], label: str) -> dict[str, Any]:
    if isinstance(source, Mapping):
        return dict(source)

    path = Path(source)
    if not path.is_file():
        raise ConfigurationError(f"{label} file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"{label} must be a mapping, got {type(raw).__name__}"
        )
    return raw


def load_models_config(source: str | Path | Mapping[str, Any]) -> ModelsConfig:
    """Load the models config from a YAML/JSON file or a parsed mapping.

    ``${NAME}`` inside an API key is replaced by the environment variable
    ``NAME`` (empty when unset).

    Raises:
        ConfigurationError: If the document is missing, unparsable or
            does not match the expected structure.
    """
    raw = _read_document(source, "Models config")
    expanded: dict[str, Any] = {}
    for model_id, entry in raw.items():
        if isinstance(entry, dict):
            entry = dict(entry)
            for key in _API_KEY_FIELDS:
                if isinstance(entry.get(key), str):
                    entry[key] = _expand_env(entry[key])
        expanded[str(model_id)] = entry

    try:
        return ModelsConfig.model_validate(expanded)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Models config invalid: {e}") from e


def load_pipeline_config(source: str | Path | Mapping[str, Any]) -> PipelineConfiguration:
    """Load the pipeline config from a YAML/JSON file or a parsed mapping.

    Raises:
        ConfigurationError: If the document is missing, unparsable or
            does not match the expected structure.
    """
    raw = _read_document(source, "Pipeline config")
    try:
        return PipelineConfiguration.model_validate(
            {str(k): v for k, v in raw.items()}
        )
    except PydanticValidationError as e:
        raise ConfigurationError(f"Pipeline config invalid: {e}") from e


class ConfigValidationResult(BaseModel):
    models_errors: list[str] = Field(default_factory=list)
    pipeline_errors: list[str] = Field(default_factory=list)
    cross_ref_errors: list[str] = Field(default_factory=list)
    output_routing_errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    entry_points: list[str] = Field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return (
            self.models_errors
            + self.pipeline_errors
            + self.cross_ref_errors
            + self.output_routing_errors
        )

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _output_patterns(step: PipelineStep) -> list[tuple[str, str]]:
    """``(label, pattern)`` for every output destination of *step*."""
    match step.output:
        case SimpleOutput(pattern=pattern):
            return [("output", pattern)]
        case RoutedOutput(routes=routes, default=default):
            found = [(f"output route '{k}'", v) for k, v in routes.items()]
            if default is not None:
                found.append(("output route 'default'", default))
            return found
    return []


def _output_directory(pattern: str) -> str:
    if paths.is_directory_pattern(pattern):
        return paths.normalize_directory(pattern)
    directory, _ = paths.split(pattern)
    return directory


def find_routing_cycles(config: PipelineConfiguration) -> list[list[str]]:
    """Cycles in the step graph formed by routing keys, each listed once."""
    edges = {
        step_id: [k for k in step.next_steps if k in config]
        for step_id, step in config.items()
    }
    cycles: list[list[str]] = []
    seen: set[frozenset[str]] = set()
    done: set[str] = set()

    def visit(node: str, stack: list[str]) -> None:
        stack.append(node)
        for target in edges[node]:
            if target in stack:
                cycle = stack[stack.index(target):]
                key = frozenset(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle + [target])
            elif target not in done:
                visit(target, stack)
        stack.pop()
        done.add(node)

    for step_id in config:
        if step_id not in done:
            visit(step_id, [])
    return cycles


class ConfigurationResolver:
    """Joins models and pipeline configuration into resolved steps."""

    def __init__(self, models: ModelsConfig, pipeline: PipelineConfiguration) -> None:
        self.models = models
        self.pipeline = pipeline

    @classmethod
    def from_files(
        cls,
        models_path: str | Path | Mapping[str, Any],
        pipeline_path: str | Path | Mapping[str, Any],
    ) -> ConfigurationResolver:
        return cls(load_models_config(models_path), load_pipeline_config(pipeline_path))

    def resolve_step(self, step_id: str) -> ResolvedPipelineStep:
        """Dereference the step's model config.

        Raises:
            UnknownStepError: If *step_id* is not in the pipeline.
            ConfigurationError: If its model reference does not resolve.
        """
        step = self.pipeline.get(step_id)
        if step is None:
            raise UnknownStepError(step_id, self.pipeline.step_ids())
        if not step.model_ref.strip():
            raise ConfigurationError(f"Step '{step_id}' has no model config reference")
        model = self.models.get(step.model_ref)
        if model is None:
            raise ConfigurationError(
                f"Step '{step_id}' references unknown model config '{step.model_ref}'"
            )
        return ResolvedPipelineStep(step_id=step_id, step=step, model_config=model)

    def available_next_steps(self, step_id: str) -> list[str]:
        step = self.pipeline.get(step_id)
        if step is None:
            raise UnknownStepError(step_id, self.pipeline.step_ids())
        return step.next_steps

    def resolve_output_directory(self, step_id: str, next_step: str | None = None) -> str:
        """Output pattern used by *step_id* when routing to *next_step*.

        Raises:
            ConfigurationError: If a routed output has neither a matching
                route nor a default.
        """
        step = self.pipeline.get(step_id)
        if step is None:
            raise UnknownStepError(step_id, self.pipeline.step_ids())
        match step.output:
            case SimpleOutput(pattern=pattern):
                return pattern
            case RoutedOutput() as routed:
                pattern = routed.pattern_for(next_step)
                if pattern is None:
                    raise ConfigurationError(
                        f"Step '{step_id}' has no output route for "
                        f"'{next_step}' and no default route"
                    )
                return pattern

    def find_entry_points(self) -> list[str]:
        return find_entry_points(self.pipeline)

    def export_pipeline_config(self) -> dict[str, Any]:
        return {step_id: step.export() for step_id, step in self.pipeline.items()}

    def validate(self) -> ConfigValidationResult:
        """Check both configs and their cross-references. Never mutates either."""
        result = ConfigValidationResult()
        referenced_models: set[str] = set()

        if not len(self.pipeline):
            result.pipeline_errors.append("Pipeline configuration has no steps")

        for step_id, step in self.pipeline.items():
            referenced_models.add(step.model_ref)
            self._check_paths(step_id, step, result)
            self._check_model_ref(step_id, step, result)
            self._check_routing(step_id, step, result)

        for model_id, model in self.models.root.items():
            if not model.model.strip():
                result.models_errors.append(f"Model config '{model_id}' has no model name")
            if model_id not in referenced_models:
                result.warnings.append(f"Model config '{model_id}' is not used by any step")
            elif not model.api_key.strip():
                result.models_errors.append(f"Model config '{model_id}' has no API key")

        for cycle in find_routing_cycles(self.pipeline):
            result.pipeline_errors.append(
                "Routing cycle detected: " + " -> ".join(cycle)
            )

        self._check_shared_outputs(result)

        if result.is_valid:
            result.entry_points = find_entry_points(self.pipeline)
        else:
            _log.debug("Configuration invalid: %d errors", len(result.errors))
        return result

    def _check_paths(
        self, step_id: str, step: PipelineStep, result: ConfigValidationResult
    ) -> None:
        checks = [("input", step.input), ("archive", step.archive)]
        checks += [
            (label, pattern)
            for label, pattern in _output_patterns(step)
            if pattern or isinstance(step.output, SimpleOutput)
        ]
        checks += [("prompt", p) for p in step.prompts]
        checks += [("context", c) for c in step.context]
        for label, value in checks:
            try:
                paths.validate_path(value, f"{label} of step '{step_id}'")
            except ValidationError as e:
                result.pipeline_errors.append(str(e))

    def _check_model_ref(
        self, step_id: str, step: PipelineStep, result: ConfigValidationResult
    ) -> None:
        if not step.model_ref.strip():
            result.cross_ref_errors.append(f"Step '{step_id}' has no model config reference")
            return
        model = self.models.get(step.model_ref)
        if model is None:
            result.cross_ref_errors.append(
                f"Step '{step_id}' references unknown model config '{step.model_ref}'"
            )
            return
        if model.implementation.kind == ExecutionKind.CHAT and not step.prompts:
            result.warnings.append(f"Step '{step_id}' uses a chat model but has no prompts")

    def _check_routing(
        self, step_id: str, step: PipelineStep, result: ConfigValidationResult
    ) -> None:
        if not isinstance(step.output, RoutedOutput):
            return
        routed = step.output
        for target, pattern in routed.routes.items():
            if target not in self.pipeline:
                result.cross_ref_errors.append(
                    f"Step '{step_id}' routes to unknown step '{target}'"
                )
            if not pattern.strip():
                result.output_routing_errors.append(
                    f"Step '{step_id}' has an empty output directory for route '{target}'"
                )
        if routed.default is None:
            result.output_routing_errors.append(
                f"Step '{step_id}' routing output has no '{DEFAULT_ROUTE}' route"
            )
        elif not routed.default.strip():
            result.output_routing_errors.append(
                f"Step '{step_id}' has an empty '{DEFAULT_ROUTE}' output directory"
            )
        if not routed.routes:
            result.warnings.append(
                f"Step '{step_id}' routing output has only a '{DEFAULT_ROUTE}' route"
            )

    def _check_shared_outputs(self, result: ConfigValidationResult) -> None:
        owners: dict[str, list[str]] = {}
        for step_id, step in self.pipeline.items():
            for _, pattern in _output_patterns(step):
                try:
                    directory = _output_directory(pattern)
                except ValidationError:
                    continue
                if step_id not in owners.setdefault(directory, []):
                    owners[directory].append(step_id)
        for directory, step_ids in owners.items():
            if len(step_ids) > 1:
                result.warnings.append(
                    f"Steps {', '.join(step_ids)} write to the same output directory '{directory}'"
                )
