"""Shared fixtures: a temporary vault and fake model clients.

The fakes stand in for the network clients the same way a fake
``llm_fn`` stands in for ``claude_agent_sdk.query``: deterministic
responses, every call recorded.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from content_pipeline.clients import ClientFactory
from content_pipeline.config import ConfigurationResolver
from content_pipeline.models import ModelConfig, ProcessedResponse, ResponseSection
from content_pipeline.storage import VaultStorage

MODELS: dict[str, Any] = {
    "gpt": {"model": "gpt-4o-mini", "apiKey": "sk-test", "implementation": "chatgpt"},
    "whisper": {"model": "whisper-1", "apiKey": "sk-test", "implementation": "whisper"},
}

PIPELINE: dict[str, Any] = {
    "transcribe": {
        "input": "inbox/audio/",
        "output": {
            "process-thoughts": "inbox/transcripts/",
            "default": "inbox/transcripts/",
        },
        "archive": "inbox/archive/transcribe/",
        "modelConfig": "whisper",
    },
    "process-thoughts": {
        "input": "inbox/transcripts/",
        "output": {
            "summarize": "inbox/results/summarize/",
            "default": "inbox/results/misc/",
        },
        "archive": "inbox/archive/process-thoughts/",
        "modelConfig": "gpt",
        "prompts": ["prompts/process.md"],
    },
    "summarize": {
        "input": "inbox/results/summarize/",
        "output": "inbox/summaries/",
        "archive": "inbox/archive/summarize/",
        "modelConfig": "gpt",
        "prompts": ["prompts/summarize.md"],
    },
}


def response(*sections: dict[str, Any]) -> ProcessedResponse:
    """Build a ProcessedResponse from section dicts (nextStep keys allowed)."""
    parsed = [ResponseSection.model_validate(s) for s in sections]
    return ProcessedResponse(is_multi_file=len(parsed) > 1, sections=parsed)


class FakeChatClient:
    def __init__(self, *responses: ProcessedResponse | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def process_structured_request(
        self,
        prompt: str,
        available_next_steps: list[str],
        *,
        model: str | None = None,
        temperature: float = 0.1,
    ) -> ProcessedResponse:
        self.calls.append({
            "prompt": prompt,
            "available_next_steps": list(available_next_steps),
            "model": model,
            "temperature": temperature,
        })
        reply = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeTranscriptionClient:
    def __init__(self, text: str = "Hello from the meeting.") -> None:
        self.text = text
        self.calls: list[tuple[bytes, str, str | None]] = []

    async def transcribe(self, audio: bytes, filename: str, *, model: str | None = None) -> str:
        self.calls.append((audio, filename, model))
        return self.text


class FakeClientFactory(ClientFactory):
    def __init__(
        self,
        chat: FakeChatClient | None = None,
        transcription: FakeTranscriptionClient | None = None,
    ) -> None:
        self.chat = chat or FakeChatClient(response({"filename": "note.md", "content": "ok"}))
        self.transcription = transcription or FakeTranscriptionClient()

    def chat_client(self, config: ModelConfig) -> FakeChatClient:
        return self.chat

    def transcription_client(self, config: ModelConfig) -> FakeTranscriptionClient:
        return self.transcription


def write(root: Path, rel: str, content: str | bytes = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def storage(tmp_path: Path) -> VaultStorage:
    return VaultStorage(tmp_path)


@pytest.fixture
def resolver() -> ConfigurationResolver:
    return ConfigurationResolver.from_files(MODELS, PIPELINE)


@pytest.fixture
def restore_logging():
    """Detach handlers that ``configure_logging`` adds during a test."""
    logger = logging.getLogger("content_pipeline")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers[:]:
        if handler not in handlers:
            handler.close()
            logger.removeHandler(handler)
    logger.setLevel(level)
