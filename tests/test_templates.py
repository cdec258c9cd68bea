"""Tests for Jinja2 prompt rendering.

StrictUndefined ensures missing variables fail loudly.
"""

from __future__ import annotations

import pytest
from jinja2 import UndefinedError

from content_pipeline.templates import PROMPT_TEMPLATE, render_template


def _prompt(**overrides) -> str:
    variables = {"instructions": [], "references": [], "input": "Body", "next_steps": []}
    variables.update(overrides)
    return render_template(PROMPT_TEMPLATE, variables)


def test_simple_variable():
    assert render_template("Hello {{ args.name }}", {"name": "World"}) == "Hello World"


def test_missing_variable_raises():
    with pytest.raises(UndefinedError):
        render_template("{{ args.missing }}", {})


def test_preserves_trailing_newline():
    assert render_template("line one\n", {}) == "line one\n"


def test_minimal_prompt_has_only_input():
    prompt = _prompt()
    assert "<input_content>\nBody\n</input_content>" in prompt
    assert "<system_instructions>" not in prompt
    assert "<reference_context>" not in prompt
    assert "<routing_instructions>" not in prompt
    assert prompt.rstrip().endswith("Do not create separate outputs for system instructions or reference context.")


def test_instructions_are_joined():
    prompt = _prompt(instructions=["Be brief.", "Use bullets."])
    assert "<system_instructions>\nBe brief.\n\nUse bullets.\n</system_instructions>" in prompt


def test_references_are_labelled():
    prompt = _prompt(references=[
        {"name": "people.md", "content": "Alice is the CFO."},
        {"name": "projects.md", "content": "Apollo"},
    ])
    assert "=== people.md ===\nAlice is the CFO." in prompt
    assert "=== projects.md ===\nApollo" in prompt


def test_routing_options_listed():
    prompt = _prompt(next_steps=["summarize", "tasks"])
    assert "Available routing options: summarize, tasks" in prompt
    assert prompt.index("</input_content>") < prompt.index("<routing_instructions>")
