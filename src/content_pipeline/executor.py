"""Pipeline executor: the main orchestrator.

Ties discovery, execution state and chain execution together behind
three entry points: process the next file, process a specific file,
and drain every step's input with a bounded iterator.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from content_pipeline import pipeline_logger
from content_pipeline.chain import ChainExecutor
from content_pipeline.clients import ClientFactory
from content_pipeline.config import ConfigurationResolver
from content_pipeline.discovery import FileDiscovery
from content_pipeline.errors import (
    ConfigurationError,
    EmptyPipelineError,
    StepExecutionError,
)
from content_pipeline.models import FileInfo, ProcessingResult, ProcessingStatus
from content_pipeline.state import ExecutionState
from content_pipeline.step_executor import StepExecutor
from content_pipeline.storage import Storage

_log = logging.getLogger("content_pipeline")

DEFAULT_MAX_ITERATIONS = 100


class PipelineExecutor:
    def __init__(
        self,
        resolver: ConfigurationResolver,
        storage: Storage,
        client_factory: ClientFactory | None = None,
        state: ExecutionState | None = None,
    ) -> None:
        self.resolver = resolver
        self.storage = storage
        self.state = state if state is not None else ExecutionState()
        self.discovery = FileDiscovery(storage)
        self.step_executor = StepExecutor(resolver, storage, client_factory)
        self.chain_executor = ChainExecutor(self.step_executor, storage)
        self._last_execution: datetime | None = None

    async def process_next_file(self) -> ProcessingResult:
        """Process the next available file through its whole chain.

        Returns a SKIPPED result (no error) when no step has input waiting.

        Raises:
            ConcurrencyError: If another call is still in flight.
            EmptyPipelineError: If the pipeline has no steps.
            ConfigurationError: If the configuration does not validate.
        """
        self.state.start_processing()
        try:
            self._ensure_valid()
            found = await self.discovery.find_next_available_file(
                self.resolver.pipeline, self.state.get_active_files()
            )
            if found is None:
                _log.info("No files to process")
                return ProcessingResult.skipped()

            self.state.add_active_file(found.file.path)
            return await self.chain_executor.execute_chain(found.step_id, found.file)
        finally:
            self._finish()

    async def process_file(self, path: str) -> ProcessingResult:
        """Process one specific file, starting at the step whose input holds it.

        Raises:
            ConcurrencyError: If another call is still in flight.
            ConfigurationError: If the configuration does not validate.
        """
        self.state.start_processing()
        try:
            self._ensure_valid()
            step_id = await self.discovery.find_step_for_file(path, self.resolver.pipeline)
            if step_id is None:
                return ProcessingResult.skipped(
                    f"No pipeline step processes {path}: it is not a supported "
                    "file inside any step's input directory"
                )

            file = await self.storage.file_info(path)
            self.state.add_active_file(file.path)
            return await self.chain_executor.execute_chain(step_id, file)
        finally:
            self._finish()

    async def process_all_files(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        continue_on_error: bool = True,
    ) -> AsyncIterator[ProcessingResult]:
        """Yield one result per processed file until every input is drained.

        Each pull holds the processing guard while it re-discovers the next
        file and runs its chain, skipping everything this iterator has
        already picked. The guard is released between pulls, so other
        calls may run while the consumer handles a result. Stops when
        nothing is left or after *max_iterations* files.

        Raises:
            ConcurrencyError: If another call is in flight when a pull starts.
            ConfigurationError: If the configuration does not validate.
            StepExecutionError: On the first FAILED result when
                *continue_on_error* is false.
        """
        self._ensure_valid()
        picked: set[str] = set()
        processed = failed = 0
        started = time.monotonic()

        try:
            for _ in range(max_iterations):
                self.state.start_processing()
                try:
                    found = await self.discovery.find_next_available_file(
                        self.resolver.pipeline, picked | self.state.get_active_files()
                    )
                    if found is None:
                        break

                    picked.add(found.file.path)
                    self.state.add_active_file(found.file.path)
                    result = await self.chain_executor.execute_chain(
                        found.step_id, found.file
                    )
                finally:
                    self._finish()
                processed += 1

                if result.status == ProcessingStatus.FAILED:
                    failed += 1
                    if not continue_on_error:
                        raise StepExecutionError(
                            result.step_id, result.error or "unknown error"
                        )
                yield result
            else:
                _log.warning(
                    "Stopped after %d iterations; files may remain unprocessed",
                    max_iterations,
                )
        finally:
            duration_ms = (time.monotonic() - started) * 1000
            pipeline_logger.log_pipeline_complete(processed, failed, duration_ms)

    async def execute_step(self, step_id: str, file: FileInfo) -> ProcessingResult:
        """Run a single step on *file* without following its next step."""
        return await self.step_executor.execute(step_id, file)

    async def can_file_be_processed(self, path: str) -> bool:
        return await self.discovery.can_file_be_processed(path, self.resolver.pipeline)

    def can_file_be_processed_sync(self, path: str) -> bool:
        return self.discovery.can_file_be_processed_sync(path, self.resolver.pipeline)

    def get_execution_status(self) -> dict[str, Any]:
        status = self.state.get_status()
        return {
            "is_processing": status.is_processing,
            "active_file_count": len(status.active_files),
            "last_execution": self._last_execution,
        }

    def _finish(self) -> None:
        self._last_execution = datetime.now(timezone.utc)
        self.state.end_processing()

    def _ensure_valid(self) -> None:
        """Refuse to touch the vault when the configuration does not validate."""
        if not len(self.resolver.pipeline):
            raise EmptyPipelineError("Pipeline configuration has no steps")
        result = self.resolver.validate()
        for warning in result.warnings:
            _log.warning("Configuration warning: %s", warning)
        if not result.is_valid:
            raise ConfigurationError(
                "Pipeline configuration is invalid: " + "; ".join(result.errors)
            )
