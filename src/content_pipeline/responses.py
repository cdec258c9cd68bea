"""Model response interpretation.

A model reply becomes one or more ``ResponseSection`` objects. Two
reply shapes are understood:

1. Structured JSON: ``{"sections": [{"filename", "content", "nextStep",
   "category"}, ...]}`` (also a bare list of sections, or one section
   object). Validated against ``sections_schema`` with jsonschema.
2. Plain text: one or more YAML-frontmatter documents concatenated.
   Each ``---`` frontmatter block opens a new section; text without
   frontmatter is a single ``response.md`` section.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import jsonschema

from content_pipeline import frontmatter
from content_pipeline.errors import ParsingError
from content_pipeline.models import ProcessedResponse, ResponseSection

_log = logging.getLogger("content_pipeline")

MAX_RESPONSE_SIZE = 1024 * 1024
DEFAULT_FILENAME = "response.md"

_FENCE_RE = re.compile(r"\A```(?:json)?\s*\n(?P<body>.*?)\n```\s*\Z", re.DOTALL)


def sections_schema(available_next_steps: list[str] | None = None) -> dict[str, Any]:
    """JSON Schema for a structured multi-section reply.

    ``nextStep`` is deliberately not restricted to *available_next_steps*:
    an unknown value is tolerated here and handled by routing fallback.
    """
    next_step: dict[str, Any] = {"type": ["string", "null"]}
    if available_next_steps:
        next_step["description"] = (
            "One of: " + ", ".join(available_next_steps)
        )
    return {
        "type": "object",
        "properties": {
            "sections": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "properties": {
                        "filename": {"type": "string"},
                        "content": {"type": "string"},
                        "nextStep": next_step,
                        "category": {"type": ["string", "null"]},
                    },
                    "required": ["content"],
                },
            }
        },
        "required": ["sections"],
    }


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _section_from_mapping(data: dict[str, Any]) -> ResponseSection:
    filename = _optional_str(data.get("filename")) or DEFAULT_FILENAME
    next_step = _optional_str(data.get("nextStep", data.get("next_step")))
    return ResponseSection(
        filename=filename,
        content=str(data.get("content", "")),
        next_step=next_step,
        category=_optional_str(data.get("category")),
    )


def _build(sections: list[ResponseSection], raw: str | None) -> ProcessedResponse:
    if not sections:
        raise ParsingError("Model response contained no sections")
    return ProcessedResponse(
        is_multi_file=len(sections) > 1,
        sections=sections,
        raw_response=raw,
    )


def parse_structured_payload(payload: Any, raw: str | None = None) -> ProcessedResponse:
    """Normalize a structured (already decoded) reply into sections.

    Raises:
        ParsingError: If the payload does not match ``sections_schema``.
    """
    if isinstance(payload, list):
        payload = {"sections": payload}
    elif isinstance(payload, dict) and "sections" not in payload and "content" in payload:
        payload = {"sections": [payload]}

    try:
        jsonschema.validate(instance=payload, schema=sections_schema())
    except jsonschema.ValidationError as e:
        raise ParsingError(f"Structured response invalid: {e.message}") from e

    sections = [_section_from_mapping(item) for item in payload["sections"]]
    return _build(sections, raw)


def _split_documents(text: str) -> list[str]:
    """Cut concatenated frontmatter documents apart."""
    chunks: list[str] = []
    current: list[str] = []
    in_frontmatter = False
    frontmatter_seen = 0
    found_content = False

    for line in text.split("\n"):
        if line.strip() == "---":
            if in_frontmatter:
                in_frontmatter = False
                frontmatter_seen += 1
                current.append(line)
                continue
            if found_content and frontmatter_seen > 0:
                chunks.append("\n".join(current).strip())
                current = []
                found_content = False
            in_frontmatter = True
            current.append(line)
        else:
            current.append(line)
            if not in_frontmatter and line.strip():
                found_content = True

    tail = "\n".join(current).strip()
    if tail:
        chunks.append(tail)
    return [c for c in chunks if c]


def _section_from_document(chunk: str, index: int) -> ResponseSection:
    try:
        meta, body = frontmatter.split(chunk)
    except ParsingError:
        _log.debug("Section %d has malformed frontmatter, keeping raw text", index)
        return ResponseSection(filename=f"section-{index}.md", content=chunk)

    if meta is None:
        return ResponseSection(filename="untitled.md", content=chunk)
    return _section_from_mapping({**meta, "content": body.strip()})


def parse_text_response(text: str) -> ProcessedResponse:
    """Parse a plain-text (frontmatter documents) reply."""
    trimmed = text.strip()
    if not trimmed.startswith("---"):
        return _build([ResponseSection(filename=DEFAULT_FILENAME, content=trimmed)], text)

    sections = [
        _section_from_document(chunk, i)
        for i, chunk in enumerate(_split_documents(trimmed), start=1)
    ]
    return _build(sections, text)


def parse_response(text: str | None) -> ProcessedResponse:
    """Interpret raw model output, JSON first, frontmatter text second.

    Raises:
        ParsingError: On an empty or oversized reply, or a JSON reply
            that does not describe sections.
    """
    if text is None or not text.strip():
        raise ParsingError("Model returned an empty response")
    if len(text) > MAX_RESPONSE_SIZE:
        raise ParsingError(
            f"Response too large: {len(text)} characters (max {MAX_RESPONSE_SIZE})"
        )

    candidate = text.strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group("body").strip()

    if candidate.startswith(("{", "[")):
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            _log.debug("Reply looked like JSON but did not parse, reading as text")
        else:
            return parse_structured_payload(payload, raw=text)

    return parse_text_response(text)
