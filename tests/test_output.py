"""Tests for output filename/path resolution and output writing."""

from __future__ import annotations

import pytest

from content_pipeline import frontmatter
from content_pipeline.errors import ConfigurationError
from content_pipeline.models import (
    FileInfo,
    ModelConfig,
    PipelineStep,
    ProcessingContext,
    ResolvedPipelineStep,
    ResponseSection,
)
from content_pipeline.output import resolve_output_filename, resolve_output_path, write_output

MODEL = ModelConfig(model="gpt-4o-mini", api_key="sk", implementation="chatgpt")


def _resolved(output, step_id="route") -> ResolvedPipelineStep:
    step = PipelineStep.model_validate(
        {"input": "inbox/in/", "output": output, "archive": "inbox/archive/", "modelConfig": "gpt"}
    )
    return ResolvedPipelineStep(step_id, step, MODEL)


ROUTED = {"summarize": "inbox/results/summarize/", "default": "inbox/results/misc/"}


# ── Filenames ────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "suggested",
    [
        "response.md",
        "response",
        "Output.md",
        "untitled",
        "RESULT.md",
        "document.md",
        "output.json",
        "Result.HTML",
        "",
        None,
    ],
)
def test_generic_filename_falls_back_to_input(suggested):
    assert resolve_output_filename(suggested, "meeting-notes.mp3") == "meeting-notes"


def test_specific_filename_is_kept():
    assert (
        resolve_output_filename("Buy 3x Tomatoes at Supermarket.md", "meeting.mp3")
        == "Buy 3x Tomatoes at Supermarket"
    )


def test_filename_keeps_inner_dots_and_drops_directories():
    assert resolve_output_filename("v1.2 release notes", "a.md") == "v1.2 release notes"
    assert resolve_output_filename("../../etc/Plan.md", "a.md") == "Plan"


def test_filename_is_sanitized():
    assert resolve_output_filename("Q3: Budget?.md", "a.md") == "Q3- Budget"


# ── Paths ────────────────────────────────────────────────────────


def test_routed_valid_next_step():
    section = ResponseSection(filename="Plan.md", content="x", next_step="summarize")
    path, decision = resolve_output_path(_resolved(ROUTED), section, "meeting.md")
    assert path == "inbox/results/summarize/Plan.md"
    assert decision.chosen_option == "summarize"
    assert not decision.used_default_fallback
    assert decision.available_options == ["summarize"]


@pytest.mark.parametrize("next_step", ["bogus", None, "default"])
def test_routed_invalid_next_step_uses_default(next_step):
    section = ResponseSection(filename="Plan.md", content="x", next_step=next_step)
    resolved = _resolved(ROUTED)
    path, decision = resolve_output_path(resolved, section, "meeting.md")
    default_path, _ = resolve_output_path(
        resolved, section.model_copy(update={"next_step": None}), "meeting.md"
    )
    assert path == default_path == "inbox/results/misc/Plan.md"
    assert decision.chosen_option is None
    assert decision.used_default_fallback
    assert decision.resolved_output_path == path


def test_routed_without_default_is_configuration_error():
    section = ResponseSection(content="x", next_step="bogus")
    with pytest.raises(ConfigurationError, match="no 'default' route"):
        resolve_output_path(_resolved({"summarize": "out/"}), section, "meeting.md")


def test_simple_directory_pattern():
    section = ResponseSection(filename="response.md", content="x")
    path, decision = resolve_output_path(_resolved("inbox/transcripts"), section, "meeting.mp3")
    assert path == "inbox/transcripts/meeting.md"
    assert decision is None


def test_simple_file_pattern_single_section():
    section = ResponseSection(filename="Plan.md", content="x")
    path, _ = resolve_output_path(_resolved("notes/summary.md"), section, "meeting.md")
    assert path == "notes/summary.md"


def test_simple_file_pattern_multi_section_uses_directory():
    section = ResponseSection(filename="Plan.md", content="x")
    path, _ = resolve_output_path(
        _resolved("notes/summary.md"), section, "meeting.md", multi_section=True
    )
    assert path == "notes/Plan.md"


# ── Writing ──────────────────────────────────────────────────────


def _context() -> ProcessingContext:
    info = FileInfo.build("inbox/in/meeting.md", 1, 0)
    context = ProcessingContext.start(info, "route")
    context.archive_path = "inbox/archive/meeting.md"
    return context


@pytest.mark.asyncio
async def test_write_output_frontmatter_round_trip(storage):
    context = _context()
    content = "# Plan\n\nBuy tomatoes.\n"
    written = await write_output(storage, context, "out/Plan.md", content, "summarize")

    meta, body = frontmatter.split(await storage.read_file(written))
    assert meta == {
        "source": "inbox/archive/meeting.md",
        "processed": context.timestamp,
        "step": "route",
        "nextStep": "summarize",
        "pipeline": frontmatter.PIPELINE_TAG,
    }
    assert body == content


@pytest.mark.asyncio
async def test_write_output_uniquifies_within_execution(storage):
    context = _context()
    first = await write_output(storage, context, "out/Plan.md", "one")
    second = await write_output(storage, context, "out/Plan.md", "two")
    assert (first, second) == ("out/Plan.md", "out/Plan-1.md")


@pytest.mark.asyncio
async def test_write_output_overwrites_across_executions(storage):
    await write_output(storage, _context(), "out/Plan.md", "old")
    written = await write_output(storage, _context(), "out/Plan.md", "new")
    assert written == "out/Plan.md"
    assert frontmatter.strip(await storage.read_file(written)) == "new"
