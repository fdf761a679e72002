"""File discovery and glob matching."""

import glob
import logging
import os
from fnmatch import fnmatchcase
from pathlib import Path

import click

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATTERNS = [
    "**/node_modules/**",
    "**/dist/**",
    "**/.git/**",
    "**/build/**",
    "**/coverage/**",
    "**/.next/**",
    "**/.nuxt/**",
    "**/vendor/**",
]

DEFAULT_EXTENSIONS = (
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".go",
    ".rb",
    ".php",
    ".c",
    ".cpp",
    ".cs",
)

_GLOB_CHARS = ("*", "?", "[")


def matches_pattern(path: str, pattern: str) -> bool:
    """Match a slash-separated path against a glob.

    ``*`` also matches ``/``, and a leading ``**/`` may match zero directories,
    so ``**/*.ts`` matches both ``a.ts`` and ``src/a.ts``.
    """
    path = path.replace(os.sep, "/")
    if fnmatchcase(path, pattern):
        return True
    return pattern.startswith("**/") and fnmatchcase(path, pattern[3:])


def matches_any(path: str, patterns: list[str]) -> bool:
    return any(matches_pattern(path, pattern) for pattern in patterns)


def has_default_extension(path: str) -> bool:
    return path.endswith(DEFAULT_EXTENSIONS)


def is_glob(path: str) -> bool:
    return any(char in path for char in _GLOB_CHARS)


def _walk(directory: Path, include: list[str], exclude: list[str]) -> list[Path]:
    found = []
    for root, dirs, files in os.walk(directory):
        root_path = Path(root)
        dirs[:] = sorted(d for d in dirs if not matches_any(f"{display_path(str(root_path / d))}/", exclude))
        for name in files:
            file_path = root_path / name
            if matches_any(display_path(str(file_path)), exclude):
                continue
            relative = file_path.relative_to(directory).as_posix()
            if include:
                if not matches_any(relative, include):
                    continue
            elif not has_default_extension(name):
                continue
            found.append(file_path)
    return found


def get_file_paths(
    paths: list[str],
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> list[str]:
    """Resolve files, directories and glob patterns to a sorted list of files.

    Args:
        paths: Files, directories or glob patterns
        include: Globs applied to files found under directories; empty means
            the default extension allowlist
        exclude: Globs of paths to skip (defaults to DEFAULT_EXCLUDE_PATTERNS)

    Returns:
        Sorted, de-duplicated absolute paths
    """
    include = include or []
    exclude = DEFAULT_EXCLUDE_PATTERNS if exclude is None else exclude
    found: set[str] = set()

    for raw in paths:
        if is_glob(raw):
            for match in glob.glob(raw, recursive=True):
                match_path = Path(match).resolve()
                if match_path.is_file() and not matches_any(display_path(str(match_path)), exclude):
                    found.add(str(match_path))
            continue

        path = Path(raw).resolve()
        if path.is_file():
            found.add(str(path))
        elif path.is_dir():
            found.update(str(p) for p in _walk(path, include, exclude))
        else:
            logger.warning(f"Path not found: {raw}")

    return sorted(found)


def display_path(path: str) -> str:
    """Path relative to the working directory when it lies beneath it."""
    try:
        return Path(path).resolve().relative_to(Path.cwd().resolve()).as_posix()
    except ValueError:
        return path


def read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def read_stdin() -> str:
    """Read all of standard input as text."""
    return click.get_text_stream("stdin").read()
