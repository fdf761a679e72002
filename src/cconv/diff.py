"""Unified diff parsing and rendering for review."""

import re
from dataclasses import dataclass, field

from cconv.files import DEFAULT_EXCLUDE_PATTERNS, has_default_extension, matches_any

DIFF_FILE_HEADER_RE = re.compile(r"^diff --git a/(.+) b/(.+)$")
DIFF_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
DEV_NULL = "/dev/null"


@dataclass
class DiffLine:
    """A single line of a hunk."""

    type: str  # "add", "delete" or "context"
    content: str
    old_line: int | None = None
    new_line: int | None = None


@dataclass
class DiffHunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class DiffFile:
    """Changes to one file."""

    path: str
    old_path: str | None = None
    additions: int = 0
    deletions: int = 0
    hunks: list[DiffHunk] = field(default_factory=list)


@dataclass
class _PendingFile:
    path: str = ""
    old_path: str = ""
    binary: bool = False
    deleted: bool = False
    hunks: list[DiffHunk] = field(default_factory=list)

    def build(self) -> DiffFile | None:
        if self.binary or self.deleted or not self.hunks or not self.path:
            return None
        lines = [line for hunk in self.hunks for line in hunk.lines]
        return DiffFile(
            path=self.path,
            old_path=self.old_path if self.old_path and self.old_path != self.path else None,
            additions=sum(1 for line in lines if line.type == "add"),
            deletions=sum(1 for line in lines if line.type == "delete"),
            hunks=self.hunks,
        )


def _header_path(value: str) -> str:
    path = value.split("\t", 1)[0].strip()
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    if path != DEV_NULL and path[:2] in ("a/", "b/"):
        path = path[2:]
    return path


def parse_diff(diff_text: str) -> list[DiffFile]:
    """Parse unified diff text into per-file change sets.

    Binary files, deleted files and files without hunks are skipped.
    """
    files: list[DiffFile] = []
    current: _PendingFile | None = None
    hunk: DiffHunk | None = None
    old_line = new_line = 0
    old_remaining = new_remaining = 0

    def finish() -> None:
        if current is not None:
            built = current.build()
            if built is not None:
                files.append(built)

    # Only "\n" ends a diff line; form feeds and the like are line content
    lines = diff_text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    for line in lines:
        line = line.removesuffix("\r")
        if hunk is not None and (old_remaining > 0 or new_remaining > 0):
            if line.startswith("\\"):
                continue
            marker, content = line[:1], line[1:]
            if marker == "+":
                hunk.lines.append(DiffLine("add", content, new_line=new_line))
                new_line += 1
                new_remaining -= 1
                continue
            if marker == "-":
                hunk.lines.append(DiffLine("delete", content, old_line=old_line))
                old_line += 1
                old_remaining -= 1
                continue
            if marker in (" ", ""):
                hunk.lines.append(DiffLine("context", content, old_line=old_line, new_line=new_line))
                old_line += 1
                new_line += 1
                old_remaining -= 1
                new_remaining -= 1
                continue
            # Malformed hunk; fall through to header handling
            hunk = None

        file_match = DIFF_FILE_HEADER_RE.match(line)
        if file_match:
            finish()
            current = _PendingFile(path=file_match.group(2), old_path=file_match.group(1))
            hunk = None
            continue

        if line.startswith("--- "):
            if current is None or current.hunks:
                finish()
                current = _PendingFile()
            path = _header_path(line[4:])
            if path != DEV_NULL:
                current.old_path = path
            hunk = None
            continue

        if current is None:
            continue

        if line.startswith("+++ "):
            path = _header_path(line[4:])
            if path == DEV_NULL:
                current.deleted = True
            else:
                current.path = path
        elif line.startswith("rename from "):
            current.old_path = line[len("rename from ") :]
        elif line.startswith("rename to "):
            current.path = line[len("rename to ") :]
        elif line.startswith("deleted file mode"):
            current.deleted = True
        elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            current.binary = True
        else:
            hunk_match = DIFF_HUNK_HEADER_RE.match(line)
            if hunk_match:
                old_start = int(hunk_match.group(1))
                old_count = int(hunk_match.group(2)) if hunk_match.group(2) is not None else 1
                new_start = int(hunk_match.group(3))
                new_count = int(hunk_match.group(4)) if hunk_match.group(4) is not None else 1
                hunk = DiffHunk(old_start, old_count, new_start, new_count)
                current.hunks.append(hunk)
                old_line, new_line = old_start, new_start
                old_remaining, new_remaining = old_count, new_count

    finish()
    return files


def format_diff_for_review(files: list[DiffFile]) -> str:
    """Render diff files as compact, line-numbered text for the agent."""
    parts: list[str] = []
    for diff_file in files:
        parts.append(f"File: {diff_file.path}")
        if diff_file.old_path and diff_file.old_path != diff_file.path:
            parts.append(f"Renamed from: {diff_file.old_path}")
        parts.append(f"Changes: +{diff_file.additions} -{diff_file.deletions}\n")

        for hunk in diff_file.hunks:
            parts.append(f"Lines {hunk.new_start}-{hunk.new_start + hunk.new_lines - 1}:")
            for line in hunk.lines:
                number = line.old_line if line.type == "delete" else line.new_line
                marker = {"add": "+", "delete": "-"}.get(line.type, " ")
                parts.append(f"{number or 0:4d} {marker} {line.content}")
            parts.append("")

    return "\n".join(parts)


def filter_diff_files(
    files: list[DiffFile],
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> list[DiffFile]:
    """Drop excluded files, then keep included ones.

    Default excludes always apply. Without include patterns, files are kept
    when their extension is in the default allowlist.
    """
    excludes = list(DEFAULT_EXCLUDE_PATTERNS)
    excludes += [pattern for pattern in exclude or [] if pattern not in excludes]

    kept = []
    for diff_file in files:
        if matches_any(diff_file.path, excludes):
            continue
        if include:
            if not matches_any(diff_file.path, include):
                continue
        elif not has_default_extension(diff_file.path):
            continue
        kept.append(diff_file)
    return kept
