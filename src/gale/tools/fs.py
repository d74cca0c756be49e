"""Workspace file tools: ls, read_file, read_many_files, write_file, edit, glob, grep."""

from __future__ import annotations

import difflib
import fnmatch
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePath

from pydantic import BaseModel, Field

from gale.tools.base import BaseTool, CancellationToken, ProgressCallback, ToolErrorType, ToolResult

MAX_READ_LINES = 1000
MAX_GREP_MATCHES = 500
MAX_READ_MANY_BYTES = 512 * 1024
SKIPPED_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv"})


class PathOutsideWorkspaceError(ValueError):
    """Raised when a tool path escapes the workspace root."""


def resolve_workspace_path(workspace: Path, raw: str | None) -> Path:
    """Resolve ``raw`` against the workspace and keep it inside."""
    root = workspace.expanduser().resolve()
    if not raw:
        return root
    path = Path(raw).expanduser()
    resolved = (path if path.is_absolute() else root / path).resolve()
    if resolved != root and root not in resolved.parents:
        raise PathOutsideWorkspaceError(f"Path is outside the workspace: {raw}")
    return resolved


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.1f} KB"
    mb = kb / 1024
    if mb < 1024:
        return f"{mb:.1f} MB"
    return f"{mb / 1024:.2f} GB"


def check_glob_pattern(pattern: str) -> None:
    """Reject glob patterns that could walk out of the search root."""
    parts = PurePath(pattern).parts
    if PurePath(pattern).is_absolute() or ".." in parts:
        raise PathOutsideWorkspaceError(f"Pattern must be relative to the workspace: {pattern}")


def is_inside(workspace: Path, path: Path) -> bool:
    """True when ``path`` resolves (symlinks included) inside ``workspace``."""
    try:
        resolved = path.resolve()
    except OSError:
        return False
    return resolved == workspace or workspace in resolved.parents


@dataclass(frozen=True)
class DiffStat:
    added_lines: int = 0
    removed_lines: int = 0

    def __str__(self) -> str:
        return f"+{self.added_lines} -{self.removed_lines}"


def file_diff(name: str, old: str, new: str) -> tuple[str, DiffStat]:
    """Unified diff of one file plus its line counts."""
    lines = list(
        difflib.unified_diff(
            old.splitlines(keepends=True),
            new.splitlines(keepends=True),
            fromfile=f"{name} (original)",
            tofile=f"{name} (updated)",
        )
    )
    added = sum(1 for line in lines if line.startswith("+") and not line.startswith("+++"))
    removed = sum(1 for line in lines if line.startswith("-") and not line.startswith("---"))
    text = "".join(line if line.endswith("\n") else f"{line}\n" for line in lines)
    return text, DiffStat(added_lines=added, removed_lines=removed)


def _relative(workspace: Path, path: Path) -> str:
    try:
        return str(path.relative_to(workspace.resolve())) or "."
    except ValueError:
        return str(path)


class WorkspaceTool(BaseTool):
    """Base for tools that operate on paths inside one workspace root."""

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace.expanduser().resolve()

    def resolve(self, raw: str | None) -> Path:
        return resolve_workspace_path(self.workspace, raw)

    @staticmethod
    def outside(exc: PathOutsideWorkspaceError) -> ToolResult:
        return ToolResult.failure(str(exc), ToolErrorType.PERMISSION_DENIED, display="Error: Permission denied")


class LsInput(BaseModel):
    dir_path: str = Field(..., min_length=1, description="The path to the directory to list.")
    ignore: list[str] | None = Field(default=None, description="Optional glob patterns of entry names to ignore.")


class LsTool(WorkspaceTool):
    name = "ls"
    display_name = "ListDirectory"
    description = "Lists the contents of a directory, showing files and subdirectories with their metadata."
    params_model = LsInput
    cancel_label = "Directory listing"

    async def invoke(
        self, params: LsInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            directory = self.resolve(params.dir_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)
        if not directory.exists():
            return ToolResult.failure(
                f"Directory not found: {params.dir_path}",
                ToolErrorType.FILE_NOT_FOUND,
                display="Error: Directory not found",
            )
        if not directory.is_dir():
            return ToolResult.failure(
                f"Path is not a directory: {params.dir_path}",
                ToolErrorType.INVALID_PARAMETERS,
                display="Error: Not a directory",
            )

        ignore = params.ignore or []
        entries = [
            entry for entry in directory.iterdir() if not any(fnmatch.fnmatch(entry.name, pat) for pat in ignore)
        ]
        entries.sort(key=lambda entry: (not entry.is_dir(), entry.name.lower()))

        lines = [f"Directory: {params.dir_path}", f"Total: {len(entries)} items", ""]
        for entry in entries:
            try:
                stat = entry.stat()
            except OSError:
                # dangling symlink or entry removed mid-listing
                lines.append(f"FILE  {entry.name:<40} {'?':>10}  ?")
                continue
            modified = datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
            if entry.is_dir():
                lines.append(f"DIR   {entry.name:<40} {'':>10}  {modified}")
            else:
                lines.append(f"FILE  {entry.name:<40} {_format_size(stat.st_size):>10}  {modified}")
        output = "\n".join(lines)
        if progress is not None:
            progress(output)
        return ToolResult.success(output, display=f"Listed {len(entries)} items")


class ReadFileInput(BaseModel):
    file_path: str = Field(..., min_length=1, description="The path to the file to read.")
    offset: int | None = Field(default=None, ge=0, description="Optional 0-based line number to start reading from.")
    limit: int | None = Field(default=None, ge=1, description="Optional maximum number of lines to read.")


class ReadFileTool(WorkspaceTool):
    name = "read_file"
    display_name = "ReadFile"
    description = (
        "Reads and returns the content of a specified file. If the file is large, the content will be truncated. "
        "The response says when truncation happened and how to read more with the 'offset' and 'limit' parameters."
    )
    params_model = ReadFileInput
    cancel_label = "File read"

    async def invoke(
        self, params: ReadFileInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            path = self.resolve(params.file_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)
        if not path.exists():
            return ToolResult.failure(
                f"File not found: {params.file_path}", ToolErrorType.FILE_NOT_FOUND, display="Error: File not found"
            )
        if path.is_dir():
            return ToolResult.failure(
                f"Path is a directory, not a file: {params.file_path}",
                ToolErrorType.INVALID_PARAMETERS,
                display="Error: Not a file",
            )
        try:
            text = path.read_text(encoding="utf-8")
        except PermissionError:
            return ToolResult.failure(
                f"Permission denied: {params.file_path}",
                ToolErrorType.PERMISSION_DENIED,
                display="Error: Permission denied",
            )
        except (OSError, UnicodeDecodeError) as exc:
            return ToolResult.failure(f"Error reading file: {exc}", ToolErrorType.READ_CONTENT_FAILURE)

        return ToolResult.success(_slice_lines(text.splitlines(), params.offset, params.limit), display=f"Read {path.name}")


def _slice_lines(lines: list[str], offset: int | None, limit: int | None) -> str:
    total = len(lines)
    start = min(offset or 0, total)
    if limit is None and offset is None and total > MAX_READ_LINES:
        body = "\n".join(lines[:MAX_READ_LINES])
        return (
            f"IMPORTANT: File truncated (showing first {MAX_READ_LINES} of {total} lines).\n"
            "Use offset and limit parameters to read specific sections.\n"
            f"--- FILE CONTENT (truncated) ---\n{body}"
        )
    end = total if limit is None else min(total, start + limit)
    body = "\n".join(lines[start:end])
    if end < total:
        return (
            "IMPORTANT: The file content has been truncated.\n"
            f"Status: Showing lines {start + 1}-{end} of {total} total lines.\n"
            f"Action: To read more, use offset: {end} with limit parameter.\n"
            f"--- FILE CONTENT (truncated) ---\n{body}"
        )
    return body


class ReadManyFilesInput(BaseModel):
    include: list[str] = Field(
        ..., min_length=1, description="Glob patterns of files to read, relative to the workspace (e.g. 'src/**/*.py')."
    )
    exclude: list[str] | None = Field(default=None, description="Optional glob patterns of files to skip.")
    use_default_excludes: bool = Field(
        default=True, description="Skip version control, dependency and cache directories."
    )


class ReadManyFilesTool(WorkspaceTool):
    name = "read_many_files"
    display_name = "ReadManyFiles"
    description = (
        "Reads and concatenates multiple files matching glob patterns. Useful for reading multiple related files at once."
    )
    params_model = ReadManyFilesInput
    cancel_label = "File read"

    def _collect(self, params: ReadManyFilesInput) -> list[Path]:
        exclude = params.exclude or []
        found: set[Path] = set()
        for pattern in params.include:
            for path in self.workspace.glob(pattern):
                if not path.is_file() or not is_inside(self.workspace, path):
                    continue
                relative = path.relative_to(self.workspace)
                if params.use_default_excludes and SKIPPED_DIRS.intersection(relative.parts):
                    continue
                if any(fnmatch.fnmatch(relative.as_posix(), pat) for pat in exclude):
                    continue
                found.add(path)
        return sorted(found)

    async def invoke(
        self, params: ReadManyFilesInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            for pattern in [*params.include, *(params.exclude or [])]:
                check_glob_pattern(pattern)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)

        files = self._collect(params)
        if not files:
            return ToolResult.success("No files found matching the include patterns.", display="No files found")

        parts: list[str] = []
        read = errors = 0
        budget = MAX_READ_MANY_BYTES
        for path in files:
            if cancel.cancelled:
                return ToolResult.cancelled(self.cancel_label)
            relative = _relative(self.workspace, path)
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                errors += 1
                continue
            if len(content) > budget:
                parts.append(f"--- {relative} ---\n(skipped, output limit of {MAX_READ_MANY_BYTES} bytes reached)")
                break
            budget -= len(content)
            parts.append(f"--- {relative} ---\n{content}\n--- End of content ---")
            read += 1

        summary = f"Read {read} file(s)."
        if errors:
            summary += f" {errors} file(s) had errors."
        output = "\n\n".join(parts)
        if progress is not None:
            progress(summary)
        return ToolResult.success(output, display=summary)


class WriteFileInput(BaseModel):
    file_path: str = Field(..., min_length=1, description="The path to the file to write to.")
    content: str = Field(..., description="The content to write to the file.")


class WriteFileTool(WorkspaceTool):
    name = "write_file"
    display_name = "WriteFile"
    description = "Writes content to a file. Creates the file if it doesn't exist, and overwrites it if it does."
    params_model = WriteFileInput
    cancel_label = "File write"

    async def invoke(
        self, params: WriteFileInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            path = self.resolve(params.file_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)
        try:
            previous = path.read_text(encoding="utf-8") if path.is_file() else ""
        except (OSError, UnicodeDecodeError):
            previous = ""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(params.content, encoding="utf-8")
        except OSError as exc:
            return ToolResult.failure(f"Error writing file: {exc}", ToolErrorType.FILE_WRITE_FAILURE)
        diff, stat = file_diff(path.name, previous, params.content)
        return ToolResult.success(
            f"File written successfully: {params.file_path}", display=f"Wrote {path.name} ({stat})\n{diff}".rstrip()
        )


class EditInput(BaseModel):
    file_path: str = Field(..., min_length=1, description="The path to the file to modify.")
    old_string: str = Field(
        ...,
        description="The exact literal text to replace. Use an empty string to create a new file.",
    )
    new_string: str = Field(..., description="The exact literal text to replace old_string with.")
    expected_replacements: int | None = Field(
        default=None, ge=1, description="Number of replacements expected. Defaults to 1."
    )


class EditTool(WorkspaceTool):
    name = "edit"
    display_name = "Edit"
    description = (
        "Replaces text within a file. By default replaces a single occurrence; set expected_replacements "
        "to replace several. Always read the file first to get the exact text, including whitespace."
    )
    params_model = EditInput
    cancel_label = "Edit"

    async def invoke(
        self, params: EditInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            path = self.resolve(params.file_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)

        exists = path.exists()
        if not params.old_string:
            if exists:
                return ToolResult.failure(
                    f"File already exists: {params.file_path}. Attempted to create a file that already exists.",
                    ToolErrorType.ATTEMPT_TO_CREATE_EXISTING_FILE,
                    display="Error: File already exists",
                )
            return self._write(
                path, "", params.new_string, f"Created new file: {params.file_path} with provided content."
            )
        if not exists:
            return ToolResult.failure(
                f"File not found: {params.file_path}. Use an empty old_string to create a new file.",
                ToolErrorType.FILE_NOT_FOUND,
                display="Error: File not found",
            )

        try:
            raw = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return ToolResult.failure(f"Error reading file: {exc}", ToolErrorType.READ_CONTENT_FAILURE)
        current = raw.replace("\r\n", "\n")

        expected = params.expected_replacements or 1
        occurrences = current.count(params.old_string)
        if occurrences == 0:
            return ToolResult.failure(
                "Failed to edit, could not find the string to replace. Check whitespace, indentation and context, "
                "and use read_file to verify.",
                ToolErrorType.EDIT_NO_OCCURRENCE_FOUND,
                display="Error: String not found",
            )
        if occurrences != expected:
            return ToolResult.failure(
                f"Failed to edit, expected {expected} occurrence(s) but found {occurrences}.",
                ToolErrorType.EDIT_EXPECTED_OCCURRENCE_MISMATCH,
                display="Error: Occurrence mismatch",
            )

        updated = current.replace(params.old_string, params.new_string)
        if updated == current:
            return ToolResult.failure(
                "No changes to apply. The new content is identical to the current content.",
                ToolErrorType.EDIT_NO_CHANGE,
                display="No changes",
            )
        return self._write(
            path,
            current,
            updated,
            f"Successfully modified file: {params.file_path} ({occurrences} replacements).",
            newline="\r\n" if "\r\n" in raw else "\n",
        )

    @staticmethod
    def _write(path: Path, old: str, new: str, message: str, *, newline: str = "\n") -> ToolResult:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(new, encoding="utf-8", newline=newline)
        except OSError as exc:
            return ToolResult.failure(f"Error writing file: {exc}", ToolErrorType.FILE_WRITE_FAILURE)
        diff, stat = file_diff(path.name, old, new)
        return ToolResult.success(message, display=f"Edited {path.name} ({stat})\n{diff}".rstrip())


class GlobInput(BaseModel):
    pattern: str = Field(..., min_length=1, description="The glob pattern to match against (e.g. '**/*.py').")
    dir_path: str | None = Field(default=None, description="Optional directory to search within.")
    case_sensitive: bool = Field(default=False, description="Whether the search is case-sensitive.")


class GlobTool(WorkspaceTool):
    name = "glob"
    display_name = "FindFiles"
    description = (
        "Finds files matching a glob pattern (e.g. src/**/*.py, **/*.md), returning absolute paths sorted by "
        "modification time, newest first."
    )
    params_model = GlobInput
    cancel_label = "Search"

    async def invoke(
        self, params: GlobInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            check_glob_pattern(params.pattern)
            base = self.resolve(params.dir_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)
        if not base.is_dir():
            return ToolResult.failure(
                f"Search path does not exist or is not a directory: {params.dir_path or base}",
                ToolErrorType.FILE_NOT_FOUND,
                display="Error: Directory not found",
            )

        matches: list[Path] = []
        for path in base.glob(params.pattern, case_sensitive=params.case_sensitive):
            if cancel.cancelled:
                return ToolResult.cancelled(self.cancel_label)
            if not path.is_file() or SKIPPED_DIRS.intersection(path.relative_to(base).parts):
                continue
            if is_inside(self.workspace, path):
                matches.append(path)
        if not matches:
            return ToolResult.success(
                f'No files found matching pattern "{params.pattern}"', display="No files found"
            )
        matches.sort(key=lambda path: path.stat().st_mtime, reverse=True)
        header = f'Found {len(matches)} file(s) matching "{params.pattern}", sorted by modification time (newest first):'
        return ToolResult.success(
            "\n".join([header, *(str(path) for path in matches)]), display=f"Found {len(matches)} matching file(s)"
        )


class GrepInput(BaseModel):
    pattern: str = Field(..., min_length=1, description="The regular expression pattern to search for.")
    dir_path: str | None = Field(default=None, description="Optional directory to search in. Defaults to the workspace root.")
    include: str | None = Field(default=None, description="Optional file name pattern to include (e.g. '*.py').")


class GrepTool(WorkspaceTool):
    name = "grep"
    display_name = "SearchText"
    description = "Searches for a regular expression in files within a directory. Returns matching lines with file paths and line numbers."
    params_model = GrepInput
    cancel_label = "Search"

    async def invoke(
        self, params: GrepInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            base = self.resolve(params.dir_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)
        if not base.is_dir():
            return ToolResult.failure(
                f"Directory not found: {params.dir_path or 'root'}",
                ToolErrorType.FILE_NOT_FOUND,
                display="Error: Directory not found",
            )
        try:
            regex = re.compile(params.pattern)
        except re.error as exc:
            return ToolResult.failure(f"Invalid regex pattern: {exc}", ToolErrorType.INVALID_PARAMETERS)

        rows: list[str] = []
        for path in sorted(base.rglob("*")):
            if cancel.cancelled:
                return ToolResult.cancelled(self.cancel_label)
            if not path.is_file() or SKIPPED_DIRS.intersection(path.relative_to(base).parts):
                continue
            if not is_inside(self.workspace, path):
                continue
            if params.include and not fnmatch.fnmatch(path.name, params.include):
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            for idx, line in enumerate(content.splitlines(), start=1):
                if regex.search(line):
                    rows.append(f"{_relative(self.workspace, path)}:{idx}: {line}")
            if len(rows) >= MAX_GREP_MATCHES:
                break

        if not rows:
            return ToolResult.success(f'No matches found for pattern "{params.pattern}"', display="No matches")
        shown = rows[:MAX_GREP_MATCHES]
        output = "\n".join([f"Found {len(shown)} match(es):", *shown])
        return ToolResult.success(output, display=f"Found {len(shown)} match(es)")
