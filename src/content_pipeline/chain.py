"""Chain executor: follow ``nextStep`` from one step's output into the next."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from content_pipeline import pipeline_logger
from content_pipeline.errors import PipelineError
from content_pipeline.models import FileInfo, ProcessingResult, ProcessingStatus
from content_pipeline.step_executor import StepExecutor
from content_pipeline.storage import Storage

_log = logging.getLogger("content_pipeline")


class ChainExecutor:
    """Runs a step, then keeps feeding its first output to the chosen next step.

    The chain ends at the first step that fails or picks no next step, or
    that writes no output. Routing cycles are not bounded here:
    ``PipelineExecutor`` runs ``ConfigurationResolver.validate`` before it
    processes anything and refuses a configuration that has one.
    """

    def __init__(self, step_executor: StepExecutor, storage: Storage) -> None:
        self.step_executor = step_executor
        self.storage = storage

    async def execute_chain(self, step_id: str, file: FileInfo) -> ProcessingResult:
        """Execute from *step_id* on *file* and return the last step's result."""
        current_step, current_file = step_id, file
        hops = 0

        while True:
            result = await self.step_executor.execute(current_step, current_file)
            if result.status == ProcessingStatus.FAILED:
                return result
            if not result.next_step or not result.output_files:
                _log.debug(
                    "Chain from '%s' ended at '%s' after %d hop(s)",
                    step_id,
                    current_step,
                    hops,
                )
                return result

            next_path = result.output_files[0]
            try:
                next_file = await self.storage.file_info(next_path)
            except PipelineError as e:
                message = f"Chain cannot continue: output {next_path} is not readable: {e}"
                _log.error("Chain from %r stopped: %s", step_id, message)
                return result.model_copy(
                    update={
                        "status": ProcessingStatus.FAILED,
                        "error": message,
                        "end_time": datetime.now(timezone.utc),
                    }
                )

            pipeline_logger.log_chain_hop(current_step, result.next_step, next_path)
            current_step, current_file = result.next_step, next_file
            hops += 1
