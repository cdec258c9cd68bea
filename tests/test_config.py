"""Tests for configuration loading, resolution and validation."""

from __future__ import annotations

import copy
import json

import pytest

from content_pipeline.config import (
    ConfigurationResolver,
    find_routing_cycles,
    load_models_config,
    load_pipeline_config,
)
from content_pipeline.errors import ConfigurationError, UnknownStepError
from content_pipeline.models import Implementation, PipelineConfiguration

from conftest import MODELS, PIPELINE


def _resolver(models=None, pipeline=None) -> ConfigurationResolver:
    return ConfigurationResolver.from_files(
        MODELS if models is None else models,
        PIPELINE if pipeline is None else pipeline,
    )


# ── Loading ──────────────────────────────────────────────────────


def test_load_yaml_files(tmp_path):
    models = tmp_path / "models.yaml"
    models.write_text(
        "gpt:\n  model: gpt-4o\n  api_key: sk-1\n  implementation: chatgpt\n"
    )
    pipeline = tmp_path / "pipeline.json"
    pipeline.write_text(json.dumps(PIPELINE))

    resolver = ConfigurationResolver.from_files(models, pipeline)
    assert resolver.models["gpt"].api_key == "sk-1"
    assert resolver.pipeline.step_ids() == ["transcribe", "process-thoughts", "summarize"]


def test_api_key_env_expansion(monkeypatch):
    monkeypatch.setenv("CP_TEST_KEY", "sk-env")
    monkeypatch.delenv("CP_MISSING_KEY", raising=False)
    models = load_models_config({
        "a": {"model": "m", "apiKey": "${CP_TEST_KEY}", "implementation": "claude"},
        "b": {"model": "m", "apiKey": "${CP_MISSING_KEY}", "implementation": "claude"},
    })
    assert models["a"].api_key == "sk-env"
    assert models["b"].api_key == ""
    assert models["a"].implementation is Implementation.CLAUDE


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_models_config(tmp_path / "nope.yaml")


def test_non_mapping_document(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        load_pipeline_config(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text("step: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_pipeline_config(path)


def test_structure_errors_are_configuration_errors():
    with pytest.raises(ConfigurationError, match="Pipeline config invalid"):
        load_pipeline_config({"a": {"input": "in/"}})
    with pytest.raises(ConfigurationError, match="Models config invalid"):
        load_models_config({"a": {"model": "m", "implementation": "nope"}})


# ── Resolution ───────────────────────────────────────────────────


def test_resolve_step():
    resolved = _resolver().resolve_step("process-thoughts")
    assert resolved.step_id == "process-thoughts"
    assert resolved.model_config.model == "gpt-4o-mini"
    assert resolved.available_next_steps == ["summarize"]


def test_resolve_unknown_step():
    with pytest.raises(UnknownStepError, match="available: transcribe"):
        _resolver().resolve_step("nope")


def test_resolve_unknown_model():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["summarize"]["modelConfig"] = "missing"
    with pytest.raises(ConfigurationError, match="unknown model config 'missing'"):
        _resolver(pipeline=pipeline).resolve_step("summarize")


def test_resolve_output_directory():
    resolver = _resolver()
    assert resolver.resolve_output_directory("process-thoughts", "summarize") == "inbox/results/summarize/"
    assert resolver.resolve_output_directory("process-thoughts", "bogus") == "inbox/results/misc/"
    assert resolver.resolve_output_directory("summarize") == "inbox/summaries/"


def test_export_round_trips():
    resolver = _resolver()
    exported = resolver.export_pipeline_config()
    assert PipelineConfiguration.model_validate(exported) == resolver.pipeline


# ── Validation ───────────────────────────────────────────────────


def test_valid_configuration():
    result = _resolver().validate()
    assert result.is_valid, result.errors
    assert result.entry_points == ["transcribe"]
    assert result.warnings == []


def test_validate_does_not_mutate():
    resolver = _resolver()
    before = resolver.export_pipeline_config()
    resolver.validate()
    resolver.validate()
    assert resolver.export_pipeline_config() == before


def test_missing_api_key():
    models = copy.deepcopy(MODELS)
    models["gpt"]["apiKey"] = ""
    result = _resolver(models=models).validate()
    assert not result.is_valid
    assert result.models_errors == ["Model config 'gpt' has no API key"]
    assert result.entry_points == []


def test_unused_model_is_a_warning():
    models = copy.deepcopy(MODELS)
    models["spare"] = {"model": "x", "apiKey": "", "implementation": "claude"}
    result = _resolver(models=models).validate()
    assert result.is_valid
    assert "Model config 'spare' is not used by any step" in result.warnings


def test_unknown_model_reference():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["summarize"]["modelConfig"] = "missing"
    result = _resolver(pipeline=pipeline).validate()
    assert any("unknown model config 'missing'" in e for e in result.cross_ref_errors)


def test_unknown_routing_target():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["process-thoughts"]["output"]["tasks"] = "inbox/results/tasks/"
    result = _resolver(pipeline=pipeline).validate()
    assert result.cross_ref_errors == ["Step 'process-thoughts' routes to unknown step 'tasks'"]


def test_routing_without_default():
    pipeline = copy.deepcopy(PIPELINE)
    del pipeline["process-thoughts"]["output"]["default"]
    result = _resolver(pipeline=pipeline).validate()
    assert result.output_routing_errors == [
        "Step 'process-thoughts' routing output has no 'default' route"
    ]


def test_empty_route_directory():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["process-thoughts"]["output"]["summarize"] = ""
    result = _resolver(pipeline=pipeline).validate()
    assert any("empty output directory" in e for e in result.output_routing_errors)


def test_unsafe_paths():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["summarize"]["archive"] = "/tmp/archive"
    pipeline["summarize"]["input"] = "../outside/"
    result = _resolver(pipeline=pipeline).validate()
    assert len(result.pipeline_errors) == 2


def test_empty_pipeline():
    result = _resolver(models={}, pipeline={}).validate()
    assert result.pipeline_errors == ["Pipeline configuration has no steps"]


def test_shared_output_directory_warning():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["summarize"]["output"] = "inbox/results/misc"
    result = _resolver(pipeline=pipeline).validate()
    assert any("same output directory 'inbox/results/misc/'" in w for w in result.warnings)


def test_chat_step_without_prompts_warns():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["summarize"]["prompts"] = []
    result = _resolver(pipeline=pipeline).validate()
    assert "Step 'summarize' uses a chat model but has no prompts" in result.warnings


def test_routing_cycle_is_an_error():
    pipeline = copy.deepcopy(PIPELINE)
    pipeline["summarize"]["output"] = {
        "process-thoughts": "inbox/transcripts/",
        "default": "inbox/summaries/",
    }
    result = _resolver(pipeline=pipeline).validate()
    assert result.pipeline_errors == [
        "Routing cycle detected: process-thoughts -> summarize -> process-thoughts"
    ]


def test_find_routing_cycles_self_loop():
    config = PipelineConfiguration.model_validate({
        "loop": {
            "input": "a/",
            "output": {"loop": "a/", "default": "b/"},
            "archive": "c/",
            "modelConfig": "gpt",
        }
    })
    assert find_routing_cycles(config) == [["loop", "loop"]]


def test_acyclic_pipeline_has_no_cycles():
    assert find_routing_cycles(_resolver().pipeline) == []
