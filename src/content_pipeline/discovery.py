"""File discovery across step input directories.

Every call lists the vault afresh; nothing is cached, so the results
always reflect the file system at the moment of listing.
"""

from __future__ import annotations

import logging

from content_pipeline import paths, pipeline_logger
from content_pipeline.errors import EmptyPipelineError, FileSystemError, PipelineError
from content_pipeline.models import (
    PROCESSABLE_EXTENSIONS,
    DiscoveryOptions,
    FileDiscoveryResult,
    FileInfo,
    PipelineConfiguration,
    RoutedOutput,
)
from content_pipeline.storage import Storage

_log = logging.getLogger("content_pipeline")


def find_entry_points(config: PipelineConfiguration) -> list[str]:
    """Steps that no other step routes to, in configuration order."""
    referenced: set[str] = set()
    for step_id, step in config.items():
        if isinstance(step.output, RoutedOutput):
            referenced.update(k for k in step.output.routes if k != step_id)
    return [step_id for step_id in config if step_id not in referenced]


def _is_hidden(path: str, directory: str) -> bool:
    relative = path[len(directory):] if path.startswith(directory) else path
    return any(part.startswith(".") for part in relative.split("/") if part)


def _input_directory(pattern: str) -> str:
    return paths.normalize_directory(paths.validate_path(pattern, "input directory"))


class FileDiscovery:
    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def discover_files(
        self, pattern: str, options: DiscoveryOptions | None = None
    ) -> list[FileInfo]:
        """List candidate files under the directory *pattern*.

        A missing or empty directory yields ``[]``.

        Raises:
            ValidationError: If *pattern* is not a safe vault-relative path.
        """
        options = options or DiscoveryOptions()
        directory = _input_directory(pattern)
        extensions = {
            e.lower() if e.startswith(".") else f".{e.lower()}"
            for e in options.extensions
        }

        files: list[FileInfo] = []
        for path in await self.storage.list_files(directory.rstrip("/"), options.recursive):
            if not options.include_hidden and _is_hidden(path, directory):
                continue
            if paths.extension(path) not in extensions:
                continue
            try:
                files.append(await self.storage.file_info(path))
            except FileSystemError as e:
                # listed, then removed before stat
                _log.debug("Skipping vanished file %s: %s", path, e)

        match options.sort_by:
            case "modified":
                files.sort(key=lambda f: (f.last_modified, f.path))
            case "size":
                files.sort(key=lambda f: (f.size, f.path))
            case _:
                files.sort(key=lambda f: (f.name, f.path))
        if options.sort_order == "desc":
            files.reverse()

        if options.limit > 0:
            files = files[: options.limit]
        return files

    def find_entry_points(self, config: PipelineConfiguration) -> list[str]:
        return find_entry_points(config)

    async def find_next_available_file(
        self,
        config: PipelineConfiguration,
        exclude: set[str] | None = None,
    ) -> FileDiscoveryResult | None:
        """Next unprocessed file, entry-point steps first.

        At most one file is taken from each step; paths in *exclude* are
        never returned. A step whose input cannot be listed is logged and
        skipped.

        Raises:
            EmptyPipelineError: If *config* has no steps.
        """
        if not len(config):
            raise EmptyPipelineError("Pipeline configuration has no steps")
        exclude = exclude or set()

        entry_points = find_entry_points(config)
        order = entry_points + [s for s in config if s not in entry_points]

        for step_id in order:
            step = config[step_id]
            # sorted listing: len(exclude) + 1 candidates always reach a fresh file
            options = DiscoveryOptions(limit=len(exclude) + 1)
            try:
                candidates = await self.discover_files(step.input, options)
            except PipelineError as e:
                _log.warning("Cannot scan input of step '%s': %s", step_id, e)
                continue

            for file in candidates:
                if file.path in exclude:
                    continue
                pipeline_logger.log_file_discovered(step_id, file.path)
                return FileDiscoveryResult(file=file, step_id=step_id)

        _log.debug("No files available in any step input")
        return None

    async def find_step_for_file(
        self, path: str, config: PipelineConfiguration
    ) -> str | None:
        """First step whose input directory holds *path* as a discoverable file.

        Steps are tried in configuration order; a step whose input contains
        *path* but would not discover it (a hidden segment below its input
        directory) does not stop the search.
        """
        for step_id in self._steps_containing(path, config):
            directory = _input_directory(config[step_id].input)
            if _is_hidden(path, directory):
                continue
            if await self.storage.exists(path):
                return step_id
            return None
        return None

    def find_step_for_file_sync(
        self, path: str, config: PipelineConfiguration
    ) -> str | None:
        """Like ``find_step_for_file`` without I/O: extension and prefix checks only."""
        return next(iter(self._steps_containing(path, config)), None)

    @staticmethod
    def _steps_containing(path: str, config: PipelineConfiguration) -> list[str]:
        """Steps whose input directory holds *path*, for a processable extension."""
        try:
            paths.validate_path(path)
        except PipelineError:
            return []
        if paths.extension(path) not in PROCESSABLE_EXTENSIONS:
            return []
        matches = []
        for step_id, step in config.items():
            try:
                directory = _input_directory(step.input)
            except PipelineError:
                continue
            if paths.is_within(path, directory):
                matches.append(step_id)
        return matches

    async def can_file_be_processed(self, path: str, config: PipelineConfiguration) -> bool:
        return await self.find_step_for_file(path, config) is not None

    def can_file_be_processed_sync(self, path: str, config: PipelineConfiguration) -> bool:
        return self.find_step_for_file_sync(path, config) is not None
