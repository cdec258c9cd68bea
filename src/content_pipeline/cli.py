"""Command-line interface for content-pipeline.

Installed as the ``content-pipeline`` command.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from content_pipeline.errors import PipelineError

# ── Human-readable help strings ──────────────────────────────────────────────

_TOP_DESCRIPTION = """\
Configurable content-processing pipeline for a folder of notes and audio.

Each pipeline step watches an input directory inside the vault, sends
every file it finds to a model (audio to a transcription model, text to a
chat model), writes the model's output as markdown with frontmatter,
archives the input, and may hand the output to a next step chosen by the
model.

Configuration is split in two files: a models file (model names, API
keys) and a pipeline file (steps, directories, routing), so a pipeline
can be shared without leaking secrets.
"""

_TOP_EPILOG = """\
Quick examples:
  content-pipeline validate --vault ~/notes
  content-pipeline process-next --vault ~/notes
  content-pipeline process-file inbox/audio/meeting.mp3 --vault ~/notes
  content-pipeline process-all --vault ~/notes --max-iterations 20
"""

_PROCESS_FILE_DESCRIPTION = """\
Process one specific file and follow its chain of next steps.

The file must lie inside some step's input directory and have a supported
extension (.mp3 .wav .m4a .mp4 .md .txt). Otherwise the result is SKIPPED.
"""

_PROCESS_NEXT_DESCRIPTION = """\
Pick the next waiting file (entry-point steps first) and process it
through its whole chain. Prints a SKIPPED result when nothing is waiting.
"""

_PROCESS_ALL_DESCRIPTION = """\
Process waiting files until every step's input is drained or the
iteration limit is hit. Prints one JSON result per line on stdout and a
summary on stderr.
"""

_RESULT_EPILOG = """\
Result schema (JSON on stdout):

  {
    "input_file": {"path": <str>, ...} | null,
    "status": "completed" | "failed" | "skipped",
    "output_files": [<str>, ...],  -- vault-relative paths written
    "archive_path": <str> | null,  -- where the input was moved
    "step_id": <str>,              -- last step executed
    "next_step": <str> | null,
    "error": <str> | null,
    "routing_decision": {...} | null
  }

Exit codes:
  0 -- completed or skipped
  1 -- failed, or a configuration/concurrency error
"""

_VALIDATE_DESCRIPTION = """\
Check the models and pipeline configuration without processing anything.

Checks that every step's model config exists and has an API key, that
routing keys name existing steps, that routing maps have a default route,
that all paths are safe vault-relative paths, and that routing has no
cycles.
"""

_VALIDATE_EPILOG = """\
Diagnostic output format (written to stderr):
  [error]   message  -- must be fixed before processing
  [warning] message  -- may cause surprises at runtime

Exit codes:
  0 -- configuration is valid
  1 -- one or more errors found
"""


# ── Argument parser ───────────────────────────────────────────────────────────

def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--vault",
        type=Path,
        default=Path("."),
        metavar="DIR",
        help="Vault root directory. All configured paths are relative to it (default: .)",
    )
    common.add_argument(
        "--models",
        type=Path,
        metavar="FILE",
        help="Models config (YAML or JSON). Default: VAULT/models.yaml",
    )
    common.add_argument(
        "--pipeline",
        type=Path,
        metavar="FILE",
        help="Pipeline config (YAML or JSON). Default: VAULT/pipeline.yaml",
    )
    common.add_argument(
        "--log-dir",
        type=Path,
        metavar="DIR",
        help=(
            "Write JSONL execution logs to DIR/pipeline.log. Each line is a "
            "JSON event such as step_start, routing_decision or chain_hop."
        ),
    )
    return common


def _build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="content-pipeline",
        description=_TOP_DESCRIPTION,
        epilog=_TOP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    file_p = sub.add_parser(
        "process-file",
        help="Process one specific file through its chain",
        description=_PROCESS_FILE_DESCRIPTION,
        epilog=_RESULT_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
    )
    file_p.add_argument("path", help="Vault-relative path of the file to process")

    sub.add_parser(
        "process-next",
        help="Process the next waiting file",
        description=_PROCESS_NEXT_DESCRIPTION,
        epilog=_RESULT_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
    )

    all_p = sub.add_parser(
        "process-all",
        help="Process waiting files until the pipeline is drained",
        description=_PROCESS_ALL_DESCRIPTION,
        epilog=_RESULT_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
    )
    all_p.add_argument(
        "--max-iterations",
        type=int,
        default=100,
        metavar="N",
        help="Stop after N files (default: 100)",
    )
    all_p.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Stop at the first failed file instead of continuing",
    )

    sub.add_parser(
        "validate",
        help="Validate the models and pipeline configuration",
        description=_VALIDATE_DESCRIPTION,
        epilog=_VALIDATE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
    )

    sub.add_parser(
        "entry-points",
        help="List steps that no other step routes to",
        parents=[common],
    )

    return parser


# ── Command handlers ──────────────────────────────────────────────────────────

def _resolver(args: argparse.Namespace):
    from content_pipeline.config import ConfigurationResolver

    models = args.models or args.vault / "models.yaml"
    pipeline = args.pipeline or args.vault / "pipeline.yaml"
    return ConfigurationResolver.from_files(models, pipeline)


def _executor(args: argparse.Namespace):
    from content_pipeline import PipelineExecutor, VaultStorage, configure_logging

    if args.log_dir:
        configure_logging(args.log_dir)
    return PipelineExecutor(_resolver(args), VaultStorage(args.vault))


def _result_json(result: Any, indent: int | None = 2) -> str:
    return json.dumps(result.model_dump(mode="json"), indent=indent)


def _exit_code(result: Any) -> int:
    from content_pipeline.models import ProcessingStatus

    return 1 if result.status == ProcessingStatus.FAILED else 0


async def _cmd_process_file(args: argparse.Namespace) -> int:
    result = await _executor(args).process_file(args.path)
    print(_result_json(result))
    return _exit_code(result)


async def _cmd_process_next(args: argparse.Namespace) -> int:
    result = await _executor(args).process_next_file()
    print(_result_json(result))
    return _exit_code(result)


async def _cmd_process_all(args: argparse.Namespace) -> int:
    from content_pipeline.models import ProcessingStatus

    executor = _executor(args)
    counts = {status: 0 for status in ProcessingStatus}
    async for result in executor.process_all_files(
        max_iterations=args.max_iterations,
        continue_on_error=not args.stop_on_error,
    ):
        counts[result.status] += 1
        print(_result_json(result, indent=None))

    print(
        f"{counts[ProcessingStatus.COMPLETED]} completed, "
        f"{counts[ProcessingStatus.FAILED]} failed, "
        f"{counts[ProcessingStatus.SKIPPED]} skipped",
        file=sys.stderr,
    )
    return 1 if counts[ProcessingStatus.FAILED] else 0


def _cmd_validate(args: argparse.Namespace) -> int:
    result = _resolver(args).validate()

    for message in result.errors:
        print(f"[error]   {message}", file=sys.stderr)
    for message in result.warnings:
        print(f"[warning] {message}", file=sys.stderr)

    if result.is_valid:
        print(f"Configuration is valid (entry points: {', '.join(result.entry_points)})")
        return 0

    print(
        f"\n{len(result.errors)} error(s), {len(result.warnings)} warning(s)",
        file=sys.stderr,
    )
    return 1


def _cmd_entry_points(args: argparse.Namespace) -> int:
    for step_id in _resolver(args).find_entry_points():
        print(step_id)
    return 0


# ── Entry point ───────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        match args.command:
            case "process-file":
                code = asyncio.run(_cmd_process_file(args))
            case "process-next":
                code = asyncio.run(_cmd_process_next(args))
            case "process-all":
                code = asyncio.run(_cmd_process_all(args))
            case "validate":
                code = _cmd_validate(args)
            case "entry-points":
                code = _cmd_entry_points(args)
            case _:
                parser.print_help()
                code = 2
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
