import importlib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from gale.core.events import TurnCallbacks, TurnErrorKind, TurnOutcome, TurnStatus

cli_module = importlib.import_module("gale.cli")


class DummyService:
    outcome = TurnOutcome(status=TurnStatus.DONE, finish_reason="STOP", iterations=1)

    def __init__(self, settings) -> None:
        self.settings = settings
        self.messages: list[str] = []
        self.closed = False
        DummyService.last = self

    async def send_message(self, message: str, *, callbacks: TurnCallbacks | None = None, cancel=None) -> TurnOutcome:
        self.messages.append(message)
        if callbacks is not None:
            callbacks.chunk("hello from gale")
        return self.outcome

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner(env={"COLUMNS": "200"})


def test_tools_command_lists_builtin_tools(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli_module.app, ["tools", "--workspace", str(tmp_path)])

    assert result.exit_code == 0
    for name in ("ls", "read_file", "edit", "shell", "write_todos", "web_fetch", "web_search", "memory"):
        assert name in result.output
    assert "file_path*" in result.output


def test_run_command_streams_reply(monkeypatch: pytest.MonkeyPatch, runner: CliRunner, tmp_path: Path) -> None:
    monkeypatch.setattr(cli_module, "AgentService", DummyService)

    result = runner.invoke(cli_module.app, ["run", "hi there", "--workspace", str(tmp_path), "--model", "gemini-x"])

    assert result.exit_code == 0
    assert "hello from gale" in result.output
    assert DummyService.last.messages == ["hi there"]
    assert DummyService.last.settings.model == "gemini-x"
    assert DummyService.last.closed


@pytest.mark.parametrize(
    ("outcome", "exit_code"),
    [
        (TurnOutcome(status=TurnStatus.KEYS_EXHAUSTED, message="All API keys are exhausted"), 2),
        (
            TurnOutcome(status=TurnStatus.ERROR, message="bad", error_kind=TurnErrorKind.REQUEST_FAILED),
            1,
        ),
    ],
)
def test_run_command_exit_codes(
    monkeypatch: pytest.MonkeyPatch, runner: CliRunner, tmp_path: Path, outcome: TurnOutcome, exit_code: int
) -> None:
    monkeypatch.setattr(DummyService, "outcome", outcome)
    monkeypatch.setattr(cli_module, "AgentService", DummyService)

    result = runner.invoke(cli_module.app, ["run", "hi", "--workspace", str(tmp_path)])

    assert result.exit_code == exit_code
