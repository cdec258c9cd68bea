"""Model clients: chat (structured sections) and audio transcription.

The engine only depends on the ``ChatClient`` and ``TranscriptionClient``
protocols. ``ClientFactory`` picks the concrete adapter from a step's
``ModelConfig.implementation``:

    chatgpt -> OpenAIChatClient   (openai chat completions, JSON object mode)
    claude  -> ClaudeChatClient   (claude-agent-sdk query, JSON schema output)
    whisper -> WhisperClient      (openai audio transcriptions)
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

import openai
from claude_agent_sdk import ClaudeAgentOptions, ResultMessage, query
from claude_agent_sdk.types import AssistantMessage, TextBlock, ToolUseBlock

from content_pipeline import pipeline_logger
from content_pipeline.errors import LLMError, ParsingError, UnsupportedConfigurationError
from content_pipeline.models import Implementation, ModelConfig, ProcessedResponse
from content_pipeline.responses import (
    parse_response,
    parse_structured_payload,
    sections_schema,
)

_log = logging.getLogger("content_pipeline")

RESPONSE_FORMAT_INSTRUCTIONS = """\
Reply with a single JSON object of the form:
{"sections": [{"filename": "<specific, content-derived name>.md",
               "content": "<markdown body>",
               "nextStep": "<routing option or null>",
               "category": "<optional category or null>"}]}
Use one section per output file. Use several sections only when the input
clearly contains several independent items."""


class ChatClient(Protocol):
    async def process_structured_request(
        self,
        prompt: str,
        available_next_steps: list[str],
        *,
        model: str | None = None,
        temperature: float = 0.1,
    ) -> ProcessedResponse: ...


class TranscriptionClient(Protocol):
    async def transcribe(
        self, audio: bytes, filename: str, *, model: str | None = None
    ) -> str: ...


def _openai_client(config: ModelConfig) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(
        api_key=config.api_key,
        base_url=config.base_url or None,
        organization=config.organization or None,
    )


class OpenAIChatClient:
    def __init__(
        self, config: ModelConfig, *, client: openai.AsyncOpenAI | None = None
    ) -> None:
        if not config.api_key:
            raise LLMError("API key required for chat client")
        self.config = config
        self._client = client or _openai_client(config)

    async def process_structured_request(
        self,
        prompt: str,
        available_next_steps: list[str],
        *,
        model: str | None = None,
        temperature: float = 0.1,
    ) -> ProcessedResponse:
        model = model or self.config.model
        system = RESPONSE_FORMAT_INSTRUCTIONS
        if available_next_steps:
            system += (
                "\nValid nextStep values: " + ", ".join(available_next_steps) + "."
            )

        try:
            completion = await self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.OpenAIError as e:
            raise LLMError(f"Chat request failed: {e}") from e

        if not completion.choices or not completion.choices[0].message.content:
            raise LLMError("Empty response: no content in chat completion")

        text = completion.choices[0].message.content
        pipeline_logger.log_llm_call(model, prompt, len(text))
        return parse_response(text)


class ClaudeChatClient:
    """Chat client over claude-agent-sdk with JSON-schema structured output."""

    def __init__(
        self,
        config: ModelConfig,
        *,
        llm_fn: Callable[..., AsyncIterator[Any]] | None = None,
    ) -> None:
        if not config.api_key:
            raise LLMError("API key required for chat client")
        self.config = config
        self._llm_fn = llm_fn

    def _options(self, model: str, available_next_steps: list[str]) -> ClaudeAgentOptions:
        env = {"ANTHROPIC_API_KEY": self.config.api_key}
        if self.config.base_url:
            env["ANTHROPIC_BASE_URL"] = self.config.base_url
        return ClaudeAgentOptions(
            model=model,
            system_prompt=RESPONSE_FORMAT_INSTRUCTIONS,
            max_turns=1,
            env=env,
            output_format={
                "type": "json_schema",
                "schema": sections_schema(available_next_steps),
            },
        )

    async def process_structured_request(
        self,
        prompt: str,
        available_next_steps: list[str],
        *,
        model: str | None = None,
        temperature: float = 0.1,
    ) -> ProcessedResponse:
        model = model or self.config.model
        options = self._options(model, available_next_steps)

        _query = self._llm_fn or query
        result_text: str | None = None
        structured_output: Any = None
        tool_use_structured: Any = None
        text_parts: list[str] = []

        # The SDK delivers structured output via a StructuredOutput tool call
        # in AssistantMessage content blocks; with max_turns=1 the
        # ResultMessage may not carry it.
        async for message in _query(prompt=prompt, options=options):
            if message is None:
                continue

            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        text_parts.append(block.text)
                    elif (
                        isinstance(block, ToolUseBlock)
                        and block.name == "StructuredOutput"
                    ):
                        tool_use_structured = block.input

            if isinstance(message, ResultMessage):
                result_text = message.result
                structured_output = message.structured_output
                if message.is_error:
                    raise LLMError(f"LLM returned error: {result_text}")

        if not structured_output and tool_use_structured is not None:
            structured_output = tool_use_structured
        if isinstance(structured_output, str):
            try:
                structured_output = json.loads(structured_output)
            except json.JSONDecodeError:
                _log.warning("structured_output was a string but not valid JSON")
                structured_output = None

        text = result_text or "".join(text_parts)
        pipeline_logger.log_llm_call(model, prompt, len(text or ""))

        if structured_output:
            return parse_structured_payload(structured_output, raw=text)
        try:
            return parse_response(text)
        except ParsingError as e:
            raise LLMError(f"Model reply could not be used: {e}") from e


class WhisperClient:
    def __init__(
        self, config: ModelConfig, *, client: openai.AsyncOpenAI | None = None
    ) -> None:
        if not config.api_key:
            raise LLMError("API key required for transcription client")
        self.config = config
        self._client = client or _openai_client(config)

    async def transcribe(
        self, audio: bytes, filename: str, *, model: str | None = None
    ) -> str:
        model = model or self.config.model
        try:
            response = await self._client.audio.transcriptions.create(
                model=model,
                file=(filename, audio),
                response_format="text",
            )
        except openai.OpenAIError as e:
            raise LLMError(f"Transcription failed for {filename}: {e}") from e

        text = response if isinstance(response, str) else getattr(response, "text", "")
        if not text or not text.strip():
            raise LLMError(f"Transcription returned no text for {filename}")
        pipeline_logger.log_llm_call(model, filename, len(text))
        return text.strip()


class ClientFactory:
    """Build model clients for a resolved step's model configuration.

    *llm_fn* replaces ``claude_agent_sdk.query`` and *openai_client* replaces
    the ``AsyncOpenAI`` instance of every client built, for tests.
    """

    def __init__(
        self,
        *,
        llm_fn: Callable[..., AsyncIterator[Any]] | None = None,
        openai_client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self.llm_fn = llm_fn
        self.openai_client = openai_client

    def chat_client(self, config: ModelConfig) -> ChatClient:
        match config.implementation:
            case Implementation.CHATGPT:
                return OpenAIChatClient(config, client=self.openai_client)
            case Implementation.CLAUDE:
                return ClaudeChatClient(config, llm_fn=self.llm_fn)
            case _:
                raise UnsupportedConfigurationError(
                    f"Implementation '{config.implementation.value}' has no chat client"
                )

    def transcription_client(self, config: ModelConfig) -> TranscriptionClient:
        match config.implementation:
            case Implementation.WHISPER:
                return WhisperClient(config, client=self.openai_client)
            case _:
                raise UnsupportedConfigurationError(
                    f"Implementation '{config.implementation.value}' cannot transcribe audio"
                )
