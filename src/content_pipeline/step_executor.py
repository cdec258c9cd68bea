"""Step executor: one step applied to one file.

Dispatches on the step's execution kind (chat or transcription), writes
the output file(s), archives the input and decides the next step. Any
error while executing becomes a FAILED ``ProcessingResult``; archive
failures alone are logged and tolerated, with the input's own path
standing in for the archive path.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from content_pipeline import paths, pipeline_logger
from content_pipeline.clients import ClientFactory
from content_pipeline.config import ConfigurationResolver
from content_pipeline.errors import (
    ConfigurationError,
    PipelineError,
    UnsupportedConfigurationError,
    ValidationError,
)
from content_pipeline.models import (
    ExecutionKind,
    FileInfo,
    ProcessedResponse,
    ProcessingContext,
    ProcessingResult,
    ProcessingStatus,
    ResolvedPipelineStep,
    ResponseSection,
    RoutedOutput,
    RoutingDecision,
)
from content_pipeline.output import resolve_output_path, write_output
from content_pipeline.prompt_builder import build_prompt
from content_pipeline.storage import Storage, unique_path

_log = logging.getLogger("content_pipeline")

CHAT_TEMPERATURE = 0.1


class StepExecutor:
    def __init__(
        self,
        resolver: ConfigurationResolver,
        storage: Storage,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.resolver = resolver
        self.storage = storage
        self.client_factory = client_factory or ClientFactory()

    async def execute(self, step_id: str, file: FileInfo | None) -> ProcessingResult:
        """Run *step_id* on *file*. Never raises for processing errors."""
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        path = file.path if file is not None else ""

        try:
            if not step_id:
                raise ValidationError("A step id is required")
            if file is None:
                raise ValidationError("An input file is required")

            resolved = self.resolver.resolve_step(step_id)
            model = resolved.model_config
            if not model.api_key.strip():
                raise ConfigurationError(
                    f"API key missing for model config '{resolved.step.model_ref}' "
                    f"used by step '{step_id}'"
                )

            kind = model.implementation.kind
            pipeline_logger.log_step_start(step_id, path, kind.value)
            context = ProcessingContext.start(file, step_id)

            match kind:
                case ExecutionKind.TRANSCRIPTION:
                    if not file.is_audio:
                        raise UnsupportedConfigurationError(
                            f"Step '{step_id}' uses {model.implementation.value}, "
                            f"which cannot process {file.extension or 'extensionless'} files"
                        )
                    outputs, next_step = await self._transcribe(resolved, file, context)
                case ExecutionKind.CHAT:
                    outputs, next_step = await self._chat(resolved, file, context)
        except Exception as e:
            message = str(e) or type(e).__name__
            _log.error(
                "Step '%s' failed for %s: %s",
                step_id,
                path,
                message,
                exc_info=not isinstance(e, PipelineError),
            )
            pipeline_logger.log_step_failed(step_id, path, message)
            return ProcessingResult.failed(file, step_id or "none", message, start_time)

        duration_ms = (time.monotonic() - started) * 1000
        pipeline_logger.log_step_complete(step_id, duration_ms, outputs, next_step)
        return ProcessingResult(
            input_file=file,
            status=ProcessingStatus.COMPLETED,
            output_files=outputs,
            archive_path=context.archive_path,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            step_id=step_id,
            next_step=next_step,
            routing_decision=context.routing_decision,
        )

    # ── Chat ─────────────────────────────────────────────────────

    async def _chat(
        self,
        resolved: ResolvedPipelineStep,
        file: FileInfo,
        context: ProcessingContext,
    ) -> tuple[list[str], str | None]:
        prompt = await build_prompt(self.storage, file, resolved)
        client = self.client_factory.chat_client(resolved.model_config)
        response = await client.process_structured_request(
            prompt,
            resolved.available_next_steps,
            model=resolved.model_config.model,
            temperature=CHAT_TEMPERATURE,
        )
        return await self._write_response(resolved, file, context, response)

    async def _write_response(
        self,
        resolved: ResolvedPipelineStep,
        file: FileInfo,
        context: ProcessingContext,
        response: ProcessedResponse,
    ) -> tuple[list[str], str | None]:
        multi_section = response.is_multi_file or len(response.sections) > 1

        planned: list[tuple[ResponseSection, str, RoutingDecision | None]] = []
        for section in response.sections:
            target, decision = resolve_output_path(
                resolved, section, file.name, multi_section=multi_section
            )
            planned.append((section, target, decision))

        await self._archive(resolved, file, context)

        outputs: list[str] = []
        next_step: str | None = None
        for section, target, decision in planned:
            section_next = (
                section.next_step if resolved.is_valid_next_step(section.next_step) else None
            )
            written = await write_output(
                self.storage, context, target, section.content, section_next
            )
            outputs.append(written)

            if decision is not None:
                decision = decision.model_copy(update={"resolved_output_path": written})
                if context.routing_decision is None or (section_next and next_step is None):
                    context.routing_decision = decision
            if section_next and next_step is None:
                next_step = section_next

        context.output_path = outputs[0] if outputs else ""
        if resolved.step.is_routed:
            self._log_routing(resolved, next_step)
        return outputs, next_step

    def _log_routing(self, resolved: ResolvedPipelineStep, next_step: str | None) -> None:
        if next_step is None:
            _log.info(
                "Step '%s': no valid nextStep in response, used default fallback",
                resolved.step_id,
            )
        pipeline_logger.log_routing_decision(
            resolved.step_id,
            next_step,
            next_step is None,
            resolved.available_next_steps,
        )

    # ── Transcription ────────────────────────────────────────────

    async def _transcribe(
        self,
        resolved: ResolvedPipelineStep,
        file: FileInfo,
        context: ProcessingContext,
    ) -> tuple[list[str], str | None]:
        audio = await self.storage.read_bytes(file.path)
        client = self.client_factory.transcription_client(resolved.model_config)
        text = await client.transcribe(audio, file.name, model=resolved.model_config.model)

        section = ResponseSection(
            filename=f"{context.filename}.md",
            content=f"# Transcript: {context.filename}\n\n{text}\n",
            next_step=self._transcription_route(resolved),
        )
        return await self._write_response(
            resolved,
            file,
            context,
            ProcessedResponse(is_multi_file=False, sections=[section], raw_response=text),
        )

    @staticmethod
    def _transcription_route(resolved: ResolvedPipelineStep) -> str | None:
        """The sole non-default route of a routed output, if there is exactly one."""
        output = resolved.output
        if isinstance(output, RoutedOutput) and len(output.routes) == 1:
            return output.next_steps[0]
        return None

    # ── Archive ──────────────────────────────────────────────────

    async def _archive(
        self,
        resolved: ResolvedPipelineStep,
        file: FileInfo,
        context: ProcessingContext,
    ) -> None:
        try:
            target = paths.build_archive_path(resolved.archive, file.name)
            target = await unique_path(self.storage, target)
            context.archive_path = await self.storage.move_file(file.path, target)
        except PipelineError as e:
            _log.warning(
                "Archiving %s for step '%s' failed, keeping original path: %s",
                file.path,
                resolved.step_id,
                e,
            )
            pipeline_logger.log_archive_failed(resolved.step_id, file.path, str(e))
            context.archive_path = file.path
