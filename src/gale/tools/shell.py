"""Shell command tool."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from gale.tools.base import CancellationToken, ProgressCallback, ToolError, ToolErrorType, ToolResult
from gale.tools.fs import PathOutsideWorkspaceError, WorkspaceTool

CANCEL_POLL_SECONDS = 0.1
MAX_OUTPUT_CHARS = 50_000


class ShellInput(BaseModel):
    command: str = Field(..., description="The shell command to execute.")
    description: str | None = Field(default=None, description="Optional description of what the command does.")
    dir_path: str | None = Field(default=None, description="Optional directory to execute the command in.")

    @field_validator("command")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must be non-empty")
        return value


class ShellTool(WorkspaceTool):
    name = "shell"
    display_name = "Shell"
    description = (
        "Executes a shell command and returns its combined output. Use this to run terminal commands, "
        "scripts, builds and tests."
    )
    params_model = ShellInput
    cancel_label = "Command"

    def __init__(self, workspace: Path, *, timeout_seconds: float | None = None) -> None:
        super().__init__(workspace)
        self.timeout_seconds = timeout_seconds

    async def invoke(
        self, params: ShellInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            cwd = self.resolve(params.dir_path)
        except PathOutsideWorkspaceError as exc:
            return self.outside(exc)
        if not cwd.is_dir():
            return ToolResult.failure(
                f"Directory not found: {params.dir_path}", ToolErrorType.FILE_NOT_FOUND, display="Error: Directory not found"
            )

        executable = shutil.which("bash") or shutil.which("sh") or "sh"
        process = await asyncio.create_subprocess_exec(
            executable,
            "-c",
            params.command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        communicate = asyncio.ensure_future(process.communicate())
        loop = asyncio.get_running_loop()
        deadline = None if self.timeout_seconds is None else loop.time() + self.timeout_seconds
        while not communicate.done():
            if cancel.cancelled or (deadline is not None and loop.time() >= deadline):
                reason = "cancelled" if cancel.cancelled else "timeout"
                logger.info("tool.shell.kill pid={} reason={}", process.pid, reason)
                process.kill()
                await communicate
                if reason == "cancelled":
                    return ToolResult.cancelled(self.cancel_label)
                return ToolResult.failure(
                    f"Command timed out after {self.timeout_seconds} seconds", ToolErrorType.EXECUTION_ERROR
                )
            await asyncio.wait({communicate}, timeout=CANCEL_POLL_SECONDS)

        stdout, _ = communicate.result()
        output = (stdout or b"").decode("utf-8", errors="replace")
        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + "\n[output truncated]"
        exit_code = process.returncode
        if exit_code != 0:
            return ToolResult(
                llm_content=f"Command failed with exit code {exit_code}:\n{output}",
                return_display=f"Error: Exit code {exit_code}",
                error=ToolError(message=f"Command failed with exit code {exit_code}", kind=ToolErrorType.EXECUTION_ERROR),
            )
        if progress is not None:
            progress(output)
        return ToolResult.success(output or "(no output)", display="Command executed successfully")
