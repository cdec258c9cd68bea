"""Tests for output frontmatter rendering and parsing."""

from __future__ import annotations

import pytest

from content_pipeline import frontmatter
from content_pipeline.errors import ParsingError


def test_output_metadata_key_order():
    meta = frontmatter.output_metadata(
        source="inbox/archive/a.mp3",
        processed="2024-05-01T10:00:00+00:00",
        step="transcribe",
        next_step="summarize",
    )
    assert list(meta) == ["source", "processed", "step", "nextStep", "pipeline"]
    assert meta["pipeline"] == frontmatter.PIPELINE_TAG


def test_output_metadata_omits_missing_next_step():
    meta = frontmatter.output_metadata("s", "p", "step")
    assert "nextStep" not in meta


def test_render_layout():
    text = frontmatter.render({"source": "a.md", "step": "x"}, "# Body\n")
    assert text == "---\nsource: a.md\nstep: x\n---\n\n# Body\n"


def test_round_trip_preserves_fields_and_content():
    meta = frontmatter.output_metadata(
        source="inbox/archive/transcribe/meeting: notes.mp3",
        processed="2024-05-01T10:00:00.123456+00:00",
        step="transcribe",
        next_step="process-thoughts",
    )
    content = "# Transcript: meeting\n\n---\nnot frontmatter\n"
    parsed, body = frontmatter.split(frontmatter.render(meta, content))
    assert parsed == meta
    assert list(parsed) == list(meta)
    assert body == content


def test_split_without_frontmatter():
    assert frontmatter.split("plain text") == (None, "plain text")


def test_split_empty_block():
    assert frontmatter.split("---\n---\nbody") == ({}, "body")


def test_split_rejects_non_mapping():
    with pytest.raises(ParsingError, match="mapping"):
        frontmatter.split("---\n- a\n- b\n---\nbody")


def test_split_rejects_invalid_yaml():
    with pytest.raises(ParsingError):
        frontmatter.split("---\nkey: [unclosed\n---\nbody")


def test_strip_removes_block():
    assert frontmatter.strip("---\nsource: a\n---\n\n  Body text\n") == "Body text"
    assert frontmatter.strip("No frontmatter\n") == "No frontmatter\n"


def test_strip_tolerates_malformed_yaml():
    assert frontmatter.strip("---\nkey: [unclosed\n---\nBody") == "Body"
