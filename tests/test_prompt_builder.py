"""Tests for chat prompt construction."""

from __future__ import annotations

import pytest

from content_pipeline.errors import FileSystemError
from content_pipeline.prompt_builder import build_prompt

from conftest import write


@pytest.fixture
def transcript(tmp_path, storage):
    write(tmp_path, "prompts/process.md", "You sort thoughts.")
    write(
        tmp_path,
        "inbox/transcripts/meeting.md",
        "---\nsource: inbox/archive/meeting.mp3\nstep: transcribe\n---\n\nWe should buy tomatoes.\n",
    )
    return storage


@pytest.mark.asyncio
async def test_prompt_sections_in_order(tmp_path, transcript, resolver):
    write(tmp_path, "context/people.md", "John is the accountant.")
    resolved = resolver.resolve_step("process-thoughts")
    resolved = type(resolved)(
        resolved.step_id,
        resolved.step.model_copy(update={"context": ["context/people.md"]}),
        resolved.model_config,
    )
    info = await transcript.file_info("inbox/transcripts/meeting.md")

    prompt = await build_prompt(transcript, info, resolved)

    order = [
        prompt.index("<system_instructions>"),
        prompt.index("<reference_context>"),
        prompt.index("<input_content>"),
        prompt.index("<routing_instructions>"),
        prompt.index("IMPORTANT:"),
    ]
    assert order == sorted(order)
    assert "You sort thoughts." in prompt
    assert "=== people.md ===\nJohn is the accountant." in prompt
    assert "Available routing options: summarize" in prompt


@pytest.mark.asyncio
async def test_input_frontmatter_is_stripped(transcript, resolver):
    info = await transcript.file_info("inbox/transcripts/meeting.md")
    prompt = await build_prompt(transcript, info, resolver.resolve_step("process-thoughts"))
    assert "We should buy tomatoes." in prompt
    assert "source: inbox/archive/meeting.mp3" not in prompt


@pytest.mark.asyncio
async def test_simple_output_has_no_routing_block(tmp_path, storage, resolver):
    write(tmp_path, "prompts/summarize.md", "Summarize.")
    write(tmp_path, "inbox/results/summarize/a.md", "Text")
    info = await storage.file_info("inbox/results/summarize/a.md")
    prompt = await build_prompt(storage, info, resolver.resolve_step("summarize"))
    assert "<routing_instructions>" not in prompt
    assert "<reference_context>" not in prompt


@pytest.mark.asyncio
async def test_missing_prompt_file_uses_placeholder(tmp_path, storage, resolver):
    write(tmp_path, "inbox/results/summarize/a.md", "Text")
    info = await storage.file_info("inbox/results/summarize/a.md")
    prompt = await build_prompt(storage, info, resolver.resolve_step("summarize"))
    assert "[File not found: prompts/summarize.md]" in prompt


@pytest.mark.asyncio
async def test_missing_input_is_an_error(tmp_path, storage, resolver):
    write(tmp_path, "inbox/results/summarize/a.md", "Text")
    info = await storage.file_info("inbox/results/summarize/a.md")
    (tmp_path / "inbox/results/summarize/a.md").unlink()
    with pytest.raises(FileSystemError):
        await build_prompt(storage, info, resolver.resolve_step("summarize"))
