"""Output filename and path resolution, and output file writing."""

from __future__ import annotations

import logging

from content_pipeline import frontmatter, paths
from content_pipeline.errors import ConfigurationError
from content_pipeline.models import (
    DEFAULT_ROUTE,
    ProcessingContext,
    ResolvedPipelineStep,
    ResponseSection,
    RoutedOutput,
    RoutingDecision,
    SimpleOutput,
)
from content_pipeline.storage import Storage, unique_path

_log = logging.getLogger("content_pipeline")

GENERIC_FILENAMES: frozenset[str] = frozenset(
    {"response", "output", "untitled", "result", "document"}
)
_TEXT_EXTENSIONS = (".md", ".markdown", ".txt")


def resolve_output_filename(suggested: str | None, original_name: str) -> str:
    """Filename stem for an output file.

    The model's suggestion wins unless it is empty or one of the generic
    placeholders, in which case the input file's own name is reused.

    >>> resolve_output_filename("response.md", "meeting-notes.mp3")
    'meeting-notes'
    """
    fallback = paths.sanitize_filename(paths.basename(original_name)) or "untitled"
    if not suggested or not suggested.strip():
        return fallback

    name = suggested.strip().replace("\\", "/").rsplit("/", 1)[-1]
    # placeholders count with any extension: "output.json" is still generic
    if paths.basename(name).strip().lower() in GENERIC_FILENAMES:
        return fallback
    if paths.extension(name) in _TEXT_EXTENSIONS:
        name = name[: name.rfind(".")]
    return paths.sanitize_filename(name) or fallback


def _place(pattern: str, name: str, multi_section: bool) -> str:
    if not paths.is_directory_pattern(pattern):
        if not multi_section:
            return paths.normalize_path(pattern)
        pattern = paths.split(pattern)[0]
    if not pattern.strip("/"):
        return f"{name}.md"
    return paths.build_output_path(pattern, name)


def resolve_output_path(
    resolved: ResolvedPipelineStep,
    section: ResponseSection,
    original_name: str,
    *,
    multi_section: bool = False,
) -> tuple[str, RoutingDecision | None]:
    """Where *section* is written, and the routing decision behind it.

    Routed outputs use the route keyed by the section's ``nextStep`` when
    that is a valid next step, else the ``default`` route. Simple outputs
    use the pattern as-is: a directory gets ``<name>.md`` inside it, a
    file pattern is the exact path for single-section responses.

    Raises:
        ConfigurationError: If a routed output has no usable route.
    """
    name = resolve_output_filename(section.filename, original_name)

    match resolved.output:
        case SimpleOutput(pattern=pattern):
            return _place(pattern, name, multi_section), None
        case RoutedOutput() as routed:
            valid = resolved.is_valid_next_step(section.next_step)
            pattern = routed.routes[section.next_step] if valid else routed.default
            if not pattern:
                raise ConfigurationError(
                    f"Step '{resolved.step_id}' has no output route for "
                    f"'{section.next_step}' and no '{DEFAULT_ROUTE}' route"
                )
            path = _place(pattern, name, multi_section=True)
            return path, RoutingDecision(
                available_options=resolved.available_next_steps,
                chosen_option=section.next_step if valid else None,
                used_default_fallback=not valid,
                resolved_output_path=path,
            )
    raise ConfigurationError(f"Step '{resolved.step_id}' has an unknown output shape")


async def write_output(
    storage: Storage,
    context: ProcessingContext,
    path: str,
    content: str,
    next_step: str | None = None,
) -> str:
    """Write *content* under frontmatter to *path*, returning the written path.

    A path already written in this execution gets a numbered variant;
    files left by earlier executions are overwritten.

    Raises:
        FileSystemError: If the write fails.
    """
    target = await unique_path(storage, path, context.written, avoid_existing=False)
    metadata = frontmatter.output_metadata(
        source=context.archive_path or context.input_path,
        processed=context.timestamp,
        step=context.step_id,
        next_step=next_step,
    )
    written = await storage.write_file(
        target,
        frontmatter.render(metadata, content),
        create_directories=True,
        overwrite=True,
    )
    context.written.add(written)
    _log.debug("Wrote output %s", written)
    return written
