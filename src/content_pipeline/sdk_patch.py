"""Keep a Claude step alive when the CLI streams message types the SDK does not know.

A chat step backed by ``implementation: claude`` reads its sections from
the ``StructuredOutput`` tool call or the final ``ResultMessage`` of one
``query()`` stream. Recent Claude CLI builds interleave extra message
types (``rate_limit_event`` and others) that ``parse_message`` rejects
with ``MessageParseError``. The error is raised inside the SDK's own
async generator, so without this patch the whole step fails with a
FAILED result and the input file is never archived, even though the
model answered.

``apply()`` runs once when ``content_pipeline`` is imported. Unknown
messages then arrive as ``None`` and ``ClaudeChatClient`` skips them.
OpenAI-backed chat and whisper steps do not go through the SDK and are
unaffected.
"""

from __future__ import annotations

import logging
from typing import Any

_log = logging.getLogger("content_pipeline")
_applied = False


def _tolerant(parse: Any) -> Any:
    from claude_agent_sdk._errors import MessageParseError

    def parse_message(data: dict) -> object:
        try:
            return parse(data)
        except MessageParseError as e:
            _log.debug("Ignoring SDK message the parser does not know: %s", e)
            return None

    return parse_message


def apply() -> None:
    """Install the tolerant parser. Idempotent."""
    global _applied  # noqa: PLW0603
    if _applied:
        return

    import claude_agent_sdk._internal.client as sdk_client
    import claude_agent_sdk._internal.message_parser as sdk_parser

    tolerant = _tolerant(sdk_parser.parse_message)
    # the client module holds its own reference from a from-import
    sdk_parser.parse_message = tolerant  # type: ignore[assignment]
    sdk_client.parse_message = tolerant  # type: ignore[assignment]
    _applied = True
