from pathlib import Path
from typing import Any

import pytest

from gale.errors import InvalidToolParametersError
from gale.tools.base import BaseTool, CancellationToken, ToolErrorType, ToolResult
from gale.tools.fs import (
    EditTool,
    GlobTool,
    GrepTool,
    LsTool,
    PathOutsideWorkspaceError,
    ReadFileTool,
    ReadManyFilesTool,
    WriteFileTool,
    resolve_workspace_path,
)


async def _run(tool: BaseTool, **args: Any) -> ToolResult:
    return await tool.run(tool.validate(args), CancellationToken())


def test_resolve_workspace_path_rejects_escape(tmp_path: Path) -> None:
    assert resolve_workspace_path(tmp_path, None) == tmp_path.resolve()
    assert resolve_workspace_path(tmp_path, "a/b.txt") == tmp_path.resolve() / "a" / "b.txt"
    with pytest.raises(PathOutsideWorkspaceError):
        resolve_workspace_path(tmp_path, "../outside.txt")
    with pytest.raises(PathOutsideWorkspaceError):
        resolve_workspace_path(tmp_path, "/etc/passwd")


@pytest.mark.asyncio
async def test_ls_lists_directories_first(tmp_path: Path) -> None:
    (tmp_path / "b.txt").write_text("hello", encoding="utf-8")
    (tmp_path / "a_dir").mkdir()
    (tmp_path / "skip.log").write_text("", encoding="utf-8")

    result = await _run(LsTool(tmp_path), dir_path=".", ignore=["*.log"])

    assert not result.is_error
    lines = result.llm_content.splitlines()
    assert lines[1] == "Total: 2 items"
    assert lines[3].startswith("DIR   a_dir")
    assert lines[4].startswith("FILE  b.txt")
    assert "5 B" in lines[4]
    assert result.return_display == "Listed 2 items"


@pytest.mark.asyncio
async def test_ls_missing_directory(tmp_path: Path) -> None:
    result = await _run(LsTool(tmp_path), dir_path="nope")

    assert result.error is not None
    assert result.error.kind is ToolErrorType.FILE_NOT_FOUND


@pytest.mark.asyncio
async def test_path_outside_workspace_is_permission_denied(tmp_path: Path) -> None:
    result = await _run(ReadFileTool(tmp_path / "ws"), file_path="../secret.txt")

    assert result.error is not None
    assert result.error.kind is ToolErrorType.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_read_file_with_offset_and_limit(tmp_path: Path) -> None:
    (tmp_path / "f.txt").write_text("\n".join(f"line{i}" for i in range(10)), encoding="utf-8")
    tool = ReadFileTool(tmp_path)

    full = await _run(tool, file_path="f.txt")
    window = await _run(tool, file_path="f.txt", offset=2, limit=3)

    assert full.llm_content.splitlines()[0] == "line0"
    assert "Showing lines 3-5 of 10 total lines." in window.llm_content
    assert window.llm_content.endswith("line2\nline3\nline4")


def test_read_file_rejects_invalid_limit(tmp_path: Path) -> None:
    with pytest.raises(InvalidToolParametersError):
        ReadFileTool(tmp_path).validate({"file_path": "f.txt", "limit": 0})


@pytest.mark.asyncio
async def test_read_missing_file(tmp_path: Path) -> None:
    result = await _run(ReadFileTool(tmp_path), file_path="missing.txt")

    assert result.error is not None
    assert result.error.kind is ToolErrorType.FILE_NOT_FOUND


@pytest.mark.asyncio
async def test_write_file_creates_parents(tmp_path: Path) -> None:
    result = await _run(WriteFileTool(tmp_path), file_path="a/b/c.txt", content="data")

    assert not result.is_error
    assert (tmp_path / "a" / "b" / "c.txt").read_text(encoding="utf-8") == "data"


@pytest.mark.asyncio
async def test_edit_replaces_expected_occurrences(tmp_path: Path) -> None:
    target = tmp_path / "code.py"
    target.write_text("x = 1\ny = 1\n", encoding="utf-8")
    tool = EditTool(tmp_path)

    mismatch = await _run(tool, file_path="code.py", old_string="1", new_string="2")
    assert mismatch.error is not None
    assert mismatch.error.kind is ToolErrorType.EDIT_EXPECTED_OCCURRENCE_MISMATCH

    ok = await _run(tool, file_path="code.py", old_string="1", new_string="2", expected_replacements=2)
    assert not ok.is_error
    assert target.read_text(encoding="utf-8") == "x = 2\ny = 2\n"


@pytest.mark.asyncio
async def test_edit_error_kinds(tmp_path: Path) -> None:
    (tmp_path / "f.txt").write_text("abc", encoding="utf-8")
    tool = EditTool(tmp_path)

    missing = await _run(tool, file_path="f.txt", old_string="zzz", new_string="y")
    same = await _run(tool, file_path="f.txt", old_string="abc", new_string="abc")
    exists = await _run(tool, file_path="f.txt", old_string="", new_string="new")
    absent = await _run(tool, file_path="other.txt", old_string="a", new_string="b")

    assert missing.error is not None and missing.error.kind is ToolErrorType.EDIT_NO_OCCURRENCE_FOUND
    assert same.error is not None and same.error.kind is ToolErrorType.EDIT_NO_CHANGE
    assert exists.error is not None and exists.error.kind is ToolErrorType.ATTEMPT_TO_CREATE_EXISTING_FILE
    assert absent.error is not None and absent.error.kind is ToolErrorType.FILE_NOT_FOUND


@pytest.mark.asyncio
async def test_edit_with_empty_old_string_creates_file(tmp_path: Path) -> None:
    result = await _run(EditTool(tmp_path), file_path="new.txt", old_string="", new_string="hello")

    assert not result.is_error
    assert (tmp_path / "new.txt").read_text(encoding="utf-8") == "hello"


@pytest.mark.asyncio
async def test_glob_matches_files(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("", encoding="utf-8")
    (tmp_path / "src" / "B.PY").write_text("", encoding="utf-8")
    (tmp_path / "readme.md").write_text("", encoding="utf-8")
    tool = GlobTool(tmp_path)

    insensitive = await _run(tool, pattern="**/*.py")
    sensitive = await _run(tool, pattern="**/*.py", case_sensitive=True)
    none = await _run(tool, pattern="*.rs")

    assert insensitive.llm_content.startswith("Found 2 file(s)")
    assert sensitive.llm_content.startswith("Found 1 file(s)")
    assert none.llm_content == 'No files found matching pattern "*.rs"'


@pytest.mark.asyncio
async def test_grep_reports_relative_paths_and_lines(tmp_path: Path) -> None:
    (tmp_path / "a.py").write_text("import os\nprint('hi')\n", encoding="utf-8")
    (tmp_path / "b.txt").write_text("print later\n", encoding="utf-8")
    tool = GrepTool(tmp_path)

    result = await _run(tool, pattern=r"print\(", include="*.py")
    invalid = await _run(tool, pattern="(")

    assert result.llm_content.splitlines() == ["Found 1 match(es):", "a.py:2: print('hi')"]
    assert invalid.error is not None
    assert invalid.error.kind is ToolErrorType.INVALID_PARAMETERS


@pytest.mark.asyncio
async def test_ls_lists_dangling_symlink(tmp_path: Path) -> None:
    (tmp_path / "ok.txt").write_text("ok", encoding="utf-8")
    (tmp_path / "broken").symlink_to(tmp_path / "missing")

    result = await _run(LsTool(tmp_path), dir_path=".")

    assert not result.is_error
    lines = result.llm_content.splitlines()
    assert lines[1] == "Total: 2 items"
    broken = next(line for line in lines if line.startswith("FILE  broken"))
    assert broken.split()[-2:] == ["?", "?"]


@pytest.fixture
def workspace_with_secret(tmp_path: Path) -> Path:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (workspace / "notes.txt").write_text("public\n", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("TOKEN=hunter2\n", encoding="utf-8")
    (workspace / "link.txt").symlink_to(tmp_path / "secret.txt")
    return workspace


@pytest.mark.asyncio
@pytest.mark.parametrize("pattern", ["../*.txt", "sub/../../*.txt", "/etc/*"])
async def test_glob_rejects_patterns_leaving_workspace(workspace_with_secret: Path, pattern: str) -> None:
    result = await _run(GlobTool(workspace_with_secret), pattern=pattern)

    assert result.error is not None
    assert result.error.kind is ToolErrorType.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_glob_skips_symlinks_resolving_outside(workspace_with_secret: Path) -> None:
    result = await _run(GlobTool(workspace_with_secret), pattern="*.txt")

    assert result.llm_content.startswith("Found 1 file(s)")
    assert "notes.txt" in result.llm_content
    assert "link.txt" not in result.llm_content


@pytest.mark.asyncio
async def test_grep_skips_symlinks_resolving_outside(workspace_with_secret: Path) -> None:
    tool = GrepTool(workspace_with_secret)

    secret = await _run(tool, pattern="TOKEN")
    public = await _run(tool, pattern="public")

    assert secret.llm_content == 'No matches found for pattern "TOKEN"'
    assert public.llm_content.splitlines() == ["Found 1 match(es):", "notes.txt:1: public"]


@pytest.mark.asyncio
async def test_read_many_files_concatenates_matches(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("A", encoding="utf-8")
    (tmp_path / "src" / "b.py").write_text("B", encoding="utf-8")
    (tmp_path / "src" / "skip.py").write_text("S", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.py").write_text("D", encoding="utf-8")
    tool = ReadManyFilesTool(tmp_path)

    result = await _run(tool, include=["**/*.py", "src/a.py"], exclude=["src/skip.py"])
    everything = await _run(tool, include=["**/*.py"], use_default_excludes=False)

    assert result.llm_content == (
        "--- src/a.py ---\nA\n--- End of content ---\n\n--- src/b.py ---\nB\n--- End of content ---"
    )
    assert result.return_display == "Read 2 file(s)."
    assert "--- node_modules/dep.py ---" in everything.llm_content
    assert everything.return_display == "Read 4 file(s)."


@pytest.mark.asyncio
async def test_read_many_files_counts_unreadable_files(tmp_path: Path) -> None:
    (tmp_path / "ok.dat").write_text("fine", encoding="utf-8")
    (tmp_path / "bad.dat").write_bytes(b"\xff\xfe\x00")

    result = await _run(ReadManyFilesTool(tmp_path), include=["*.dat"])

    assert result.return_display == "Read 1 file(s). 1 file(s) had errors."
    assert "--- ok.dat ---" in result.llm_content
    assert "bad.dat" not in result.llm_content


@pytest.mark.asyncio
async def test_read_many_files_boundaries(workspace_with_secret: Path) -> None:
    tool = ReadManyFilesTool(workspace_with_secret)

    escaped = await _run(tool, include=["../*.txt"])
    linked = await _run(tool, include=["*.txt"])
    none = await _run(tool, include=["*.rs"])

    assert escaped.error is not None
    assert escaped.error.kind is ToolErrorType.PERMISSION_DENIED
    assert "hunter2" not in linked.llm_content
    assert linked.return_display == "Read 1 file(s)."
    assert none.llm_content == "No files found matching the include patterns."
    assert none.return_display == "No files found"


def test_read_many_files_requires_include(tmp_path: Path) -> None:
    with pytest.raises(InvalidToolParametersError):
        ReadManyFilesTool(tmp_path).validate({"include": []})


@pytest.mark.asyncio
async def test_edit_display_shows_unified_diff(tmp_path: Path) -> None:
    (tmp_path / "code.py").write_text("x = 1\ny = 1\n", encoding="utf-8")

    result = await _run(EditTool(tmp_path), file_path="code.py", old_string="x = 1", new_string="x = 2")

    lines = result.return_display.splitlines()
    assert lines[0] == "Edited code.py (+1 -1)"
    assert "--- code.py (original)" in lines
    assert "+++ code.py (updated)" in lines
    assert "-x = 1" in lines
    assert "+x = 2" in lines
    assert " y = 1" in lines


@pytest.mark.asyncio
async def test_write_file_display_shows_unified_diff(tmp_path: Path) -> None:
    (tmp_path / "notes.md").write_text("old\n", encoding="utf-8")

    result = await _run(WriteFileTool(tmp_path), file_path="notes.md", content="new\nmore\n")

    lines = result.return_display.splitlines()
    assert lines[0] == "Wrote notes.md (+2 -1)"
    assert "-old" in lines
    assert "+more" in lines


@pytest.mark.asyncio
async def test_edit_preserves_crlf_line_endings(tmp_path: Path) -> None:
    target = tmp_path / "win.txt"
    target.write_bytes(b"alpha\r\nbeta\r\n")
    unix = tmp_path / "unix.txt"
    unix.write_bytes(b"alpha\nbeta\n")
    tool = EditTool(tmp_path)

    crlf = await _run(tool, file_path="win.txt", old_string="beta", new_string="gamma\ndelta")
    lf = await _run(tool, file_path="unix.txt", old_string="beta", new_string="gamma")

    assert not crlf.is_error and not lf.is_error
    assert target.read_bytes() == b"alpha\r\ngamma\r\ndelta\r\n"
    assert unix.read_bytes() == b"alpha\ngamma\n"
