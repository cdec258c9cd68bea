"""Execution state guarding one pipeline executor against re-entry."""

from __future__ import annotations

from dataclasses import dataclass, field

from content_pipeline.errors import ConcurrencyError


@dataclass
class ExecutionStatus:
    is_processing: bool
    active_files: list[str]


@dataclass
class ExecutionState:
    """In-flight flag plus the paths claimed during the current cycle.

    ``start_processing`` checks and sets the flag without awaiting, so two
    coroutines on one event loop cannot both get past it.
    """

    processing: bool = False
    active_files: set[str] = field(default_factory=set)

    def start_processing(self) -> None:
        """Raises ConcurrencyError if a cycle is already running."""
        if self.processing:
            raise ConcurrencyError("Another file is currently being processed")
        self.processing = True

    def end_processing(self) -> None:
        self.processing = False
        self.active_files.clear()

    def is_processing(self) -> bool:
        return self.processing

    def add_active_file(self, path: str) -> None:
        self.active_files.add(path)

    def remove_active_file(self, path: str) -> None:
        self.active_files.discard(path)

    def get_active_files(self) -> set[str]:
        return set(self.active_files)

    def get_status(self) -> ExecutionStatus:
        return ExecutionStatus(
            is_processing=self.processing,
            active_files=sorted(self.active_files),
        )

    def reset(self) -> None:
        self.end_processing()
