"""Tests for the execution state guard."""

from __future__ import annotations

import pytest

from content_pipeline.errors import ConcurrencyError
from content_pipeline.state import ExecutionState


def test_start_and_end():
    state = ExecutionState()
    assert not state.is_processing()
    state.start_processing()
    assert state.is_processing()
    state.end_processing()
    assert not state.is_processing()


def test_second_start_is_rejected():
    state = ExecutionState()
    state.start_processing()
    with pytest.raises(ConcurrencyError, match="currently being processed"):
        state.start_processing()
    assert state.is_processing()


def test_active_files_cleared_at_end():
    state = ExecutionState()
    state.start_processing()
    state.add_active_file("inbox/a.md")
    state.add_active_file("inbox/b.md")
    state.remove_active_file("inbox/a.md")
    state.remove_active_file("inbox/never-added.md")
    assert state.get_active_files() == {"inbox/b.md"}

    status = state.get_status()
    assert status.is_processing
    assert status.active_files == ["inbox/b.md"]

    state.end_processing()
    assert state.get_active_files() == set()


def test_active_files_copy_is_detached():
    state = ExecutionState()
    state.add_active_file("a.md")
    state.get_active_files().add("b.md")
    assert state.get_active_files() == {"a.md"}


def test_instances_do_not_share_state():
    first, second = ExecutionState(), ExecutionState()
    first.start_processing()
    second.start_processing()
    first.add_active_file("a.md")
    assert second.get_active_files() == set()


def test_reset():
    state = ExecutionState()
    state.start_processing()
    state.add_active_file("a.md")
    state.reset()
    assert not state.is_processing()
    assert state.get_active_files() == set()
