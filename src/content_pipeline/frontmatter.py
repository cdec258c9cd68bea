"""YAML frontmatter for pipeline output files.

Every output file starts with a frontmatter block whose keys are written
in a fixed order (``source``, ``processed``, ``step``, optional
``nextStep``, ``pipeline``), then a blank line, then the section content
verbatim.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

from content_pipeline.errors import ParsingError

PIPELINE_TAG = "content-pipeline"

_FRONTMATTER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(?:(?P<yaml>.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)


def output_metadata(
    source: str,
    processed: str,
    step: str,
    next_step: str | None = None,
    pipeline: str = PIPELINE_TAG,
) -> dict[str, str]:
    """Build the frontmatter mapping in its fixed key order."""
    metadata = {"source": source, "processed": processed, "step": step}
    if next_step:
        metadata["nextStep"] = next_step
    metadata["pipeline"] = pipeline
    return metadata


def render(metadata: dict[str, Any], content: str) -> str:
    """Serialize *metadata* as frontmatter followed by *content*."""
    block = yaml.safe_dump(
        metadata,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=10_000,
    )
    return f"---\n{block}---\n\n{content}"


def split(text: str) -> tuple[dict[str, Any] | None, str]:
    """Split a document into ``(frontmatter, body)``.

    Returns ``(None, text)`` when the document has no frontmatter. The
    single blank line written by ``render`` is removed from the body.

    Raises:
        ParsingError: If the frontmatter block is not a YAML mapping.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return None, text

    raw = match.group("yaml") or ""
    try:
        data = yaml.safe_load(raw) if raw.strip() else {}
    except yaml.YAMLError as e:
        raise ParsingError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(data, dict):
        raise ParsingError(
            f"Frontmatter must be a mapping, got {type(data).__name__}"
        )

    body = text[match.end():]
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return data, body


def strip(text: str) -> str:
    """Drop a leading frontmatter block and surrounding blank lines.

    Used on input content so re-processed outputs do not carry their old
    metadata into the next prompt. Malformed frontmatter is still removed.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return text
    return text[match.end():].strip()
