"""Chat request construction.

Combines a step's prompt files (system instructions), context files
(reference material), the input file's content without frontmatter,
and routing instructions when the step has routing-aware output.
"""

from __future__ import annotations

import logging

import jinja2

from content_pipeline import frontmatter, paths
from content_pipeline.errors import FileSystemError, ParsingError
from content_pipeline.models import FileInfo, ResolvedPipelineStep
from content_pipeline.storage import Storage
from content_pipeline.templates import PROMPT_TEMPLATE, render_template

_log = logging.getLogger("content_pipeline")


async def _read_or_placeholder(storage: Storage, path: str) -> str:
    try:
        return await storage.read_file(path)
    except FileSystemError as e:
        _log.warning("Could not read file %s: %s", path, e)
        return f"[File not found: {path}]"


async def build_prompt(
    storage: Storage,
    file: FileInfo,
    resolved: ResolvedPipelineStep,
) -> str:
    """Render the full prompt for one chat step execution.

    Missing prompt or context files are replaced by a placeholder line;
    a missing input file is an error.

    Raises:
        FileSystemError: If the input file cannot be read.
        ParsingError: If the prompt template fails to render.
    """
    instructions = [await _read_or_placeholder(storage, p) for p in resolved.prompts]
    references = [
        {"name": paths.filename(p), "content": await _read_or_placeholder(storage, p)}
        for p in resolved.context
    ]
    raw_input = await storage.read_file(file.path)

    try:
        prompt = render_template(
            PROMPT_TEMPLATE,
            {
                "instructions": instructions,
                "references": references,
                "input": frontmatter.strip(raw_input),
                "next_steps": resolved.available_next_steps,
            },
        )
    except jinja2.TemplateError as e:
        raise ParsingError(f"Failed to build prompt: {e}") from e

    _log.debug(
        "Prompt built for step '%s': %d prompts, %d context files, %d chars",
        resolved.step_id,
        len(instructions),
        len(references),
        len(prompt),
    )
    return prompt
