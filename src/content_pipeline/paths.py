"""Vault-relative path helpers.

Every path the engine handles is a POSIX-style string relative to the
vault root: no leading ``/``, no drive letter, no ``..`` segments.
Directory paths are normalized to end with ``/`` so that joining is
plain concatenation and prefix checks cannot match sibling folders
(``inbox/audio`` must not contain ``inbox/audio-old/x.mp3``).
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from content_pipeline.errors import ValidationError

_INVALID_CHARS = ("<", ">", ":", '"', "|", "?")
_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")
_FILENAME_UNSAFE_RE = re.compile(r'[<>:"|?*\\/\x00]+')
MAX_PATH_LENGTH = 260


def validate_path(path: str, context: str = "path", allow_globs: bool = False) -> str:
    """Check that *path* is a safe vault-relative path.

    Args:
        path: Candidate path.
        context: Human label used in error messages ("input directory").
        allow_globs: Whether ``*`` is accepted.

    Returns:
        The stripped path.

    Raises:
        ValidationError: If the path is empty, absolute, traverses upward,
            contains invalid characters or is too long.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError(f"{context} cannot be empty")

    candidate = path.strip().replace("\\", "/")

    if candidate.startswith("/") or _DRIVE_RE.match(path.strip()):
        raise ValidationError(
            f"Absolute path not allowed for {context}: {path!r} "
            "(paths must be relative to the vault root)"
        )
    if ".." in candidate.split("/"):
        raise ValidationError(f"Path traversal not allowed in {context}: {path!r}")
    if "\x00" in candidate:
        raise ValidationError(f"{context} contains a null character")

    invalid = [c for c in _INVALID_CHARS if c in candidate]
    if not allow_globs and "*" in candidate:
        invalid.append("*")
    if invalid:
        raise ValidationError(
            f"Invalid characters in {context} {path!r}: {', '.join(invalid)}"
        )
    if len(candidate) > MAX_PATH_LENGTH:
        raise ValidationError(
            f"{context} is too long ({len(candidate)} characters, max {MAX_PATH_LENGTH})"
        )
    return path.strip()


def normalize_path(path: str) -> str:
    """Normalize a file path: forward slashes, no duplicate or edge slashes."""
    validate_path(path)
    normalized = re.sub(r"/+", "/", path.strip().replace("\\", "/"))
    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    return "/".join(parts)


def normalize_directory(path: str) -> str:
    """Normalize a directory path so it ends with exactly one ``/``."""
    return normalize_path(path) + "/"


def join(*parts: str) -> str:
    """Join vault-relative segments with ``/``."""
    return normalize_path("/".join(p.strip("/") for p in parts if p and p.strip("/")))


def split(path: str) -> tuple[str, str]:
    """Split a path into ``(directory, filename)``.

    The directory keeps its trailing slash; it is ``""`` at the vault root.
    """
    normalized = normalize_path(path)
    if "/" not in normalized:
        return "", normalized
    directory, _, name = normalized.rpartition("/")
    return directory + "/", name


def filename(path: str) -> str:
    """Last path segment, extension included."""
    return split(path)[1]


def basename(path: str) -> str:
    """Last path segment without its extension."""
    name = path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    stem, dot, _ = name.rpartition(".")
    return stem if dot and stem else name


def extension(path: str) -> str:
    """Lower-cased extension including the dot, or ``""``."""
    suffix = PurePosixPath(path.replace("\\", "/")).suffix
    return suffix.lower()


def is_directory_pattern(pattern: str) -> bool:
    """True when an output pattern names a directory rather than a file."""
    cleaned = pattern.strip().replace("\\", "/")
    if cleaned.endswith("/"):
        return True
    return extension(cleaned) == ""


def build_output_path(directory: str, name: str, ext: str = ".md") -> str:
    """``<directory>/<name><ext>`` with a normalized directory."""
    if not name:
        raise ValidationError("Output filename cannot be empty")
    suffix = ext if ext.startswith(".") else f".{ext}"
    return normalize_directory(directory) + name + suffix


def build_archive_path(directory: str, name: str) -> str:
    """``<directory>/<name>`` keeping the original filename and extension."""
    if not name:
        raise ValidationError("Archive filename cannot be empty")
    return normalize_directory(directory) + name


def numbered(path: str, counter: int) -> str:
    """``dir/name.ext`` -> ``dir/name-<counter>.ext``."""
    directory, name = split(path)
    ext = extension(name)
    stem = name[: -len(ext)] if ext else name
    return f"{directory}{stem}-{counter}{name[len(stem):]}"


def is_within(path: str, directory: str) -> bool:
    """True when *directory* is a strict ancestor of *path*."""
    file_path = path.replace("\\", "/")
    dir_path = directory.strip().replace("\\", "/").rstrip("/")
    if not dir_path:
        return False
    return file_path.startswith(dir_path + "/")


def sanitize_filename(name: str) -> str:
    """Make a model-suggested filename stem safe to use as one path segment."""
    cleaned = _FILENAME_UNSAFE_RE.sub("-", name).strip().strip(".-").strip()
    return re.sub(r"\s+", " ", cleaned)
