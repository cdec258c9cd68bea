"""Structured JSON logging for pipeline execution.

Writes JSON-lines to disk so agents and humans can debug pipeline
runs after the fact. Each log entry is a single JSON object on one line.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

_logger = logging.getLogger("content_pipeline")


def configure_logging(
    log_dir: str | Path, level: int = logging.DEBUG
) -> None:
    """Set up pipeline logging to write JSON-lines to a file.

    Args:
        log_dir: Directory to write ``pipeline.log`` into.
        level: Logging level (default: DEBUG).
    """
    log_path = Path(log_dir) / "pipeline.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(str(log_path))
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    _logger.addHandler(handler)
    _logger.setLevel(level)


def _log(event: dict[str, Any]) -> None:
    _logger.info(json.dumps(event, default=str))


def log_step_start(step_id: str, path: str, kind: str) -> None:
    _log({"event": "step_start", "step_id": step_id, "path": path, "kind": kind})


def log_step_complete(
    step_id: str, duration_ms: float, output_files: list[str], next_step: str | None
) -> None:
    _log({
        "event": "step_complete",
        "step_id": step_id,
        "duration_ms": round(duration_ms, 2),
        "output_files": output_files,
        "next_step": next_step,
    })


def log_step_failed(step_id: str, path: str, error: str) -> None:
    _log({"event": "step_failed", "step_id": step_id, "path": path, "error": error})


def log_llm_call(model: str, prompt_preview: str, response_chars: int) -> None:
    _log({
        "event": "llm_call",
        "model": model,
        "prompt_preview": prompt_preview[:200],
        "response_chars": response_chars,
    })


def log_routing_decision(
    step_id: str,
    chosen: str | None,
    used_default_fallback: bool,
    available: list[str],
) -> None:
    _log({
        "event": "routing_decision",
        "step_id": step_id,
        "chosen": chosen,
        "used_default_fallback": used_default_fallback,
        "available": available,
    })


def log_archive_failed(step_id: str, path: str, error: str) -> None:
    _log({"event": "archive_failed", "step_id": step_id, "path": path, "error": error})


def log_chain_hop(from_step: str, to_step: str, path: str) -> None:
    _log({"event": "chain_hop", "from_step": from_step, "to_step": to_step, "path": path})


def log_file_discovered(step_id: str, path: str) -> None:
    _log({"event": "file_discovered", "step_id": step_id, "path": path})


def log_pipeline_complete(processed: int, failed: int, duration_ms: float) -> None:
    _log({
        "event": "pipeline_complete",
        "processed": processed,
        "failed": failed,
        "duration_ms": round(duration_ms, 2),
    })
