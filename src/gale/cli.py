"""Command line interface for Gale."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gale.config import Settings, get_settings
from gale.core.content import FunctionCall
from gale.core.events import TurnCallbacks, TurnOutcome, TurnStatus
from gale.logging_utils import configure_logging
from gale.service import AgentService
from gale.tools.base import ToolResult

EXIT_ERROR = 1
EXIT_KEYS_EXHAUSTED = 2

app = typer.Typer(
    name="gale",
    help="Tool-calling agent for your workspace.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


class Renderer:
    """Rich terminal output for one session."""

    def __init__(self, console: Console) -> None:
        self.console = console
        self._streaming = False

    def welcome(self, service: AgentService) -> None:
        self.console.print("[bold blue]Gale[/bold blue] - type [bold]exit[/bold] to quit, [bold]reset[/bold] to clear")
        self.console.print(f"[bold]Working directory:[/bold] [cyan]{service.workspace}[/cyan]")
        self.console.print(f"[bold]Model:[/bold] [magenta]{service.model}[/magenta]")
        self.console.print(f"[bold]Available tools:[/bold] [green]{', '.join(service.registry.names())}[/green]")

    def chunk(self, text: str) -> None:
        self._streaming = True
        self.console.print(text, end="", markup=False, highlight=False)

    def tool_call(self, call: FunctionCall) -> None:
        self._end_stream()
        args = ", ".join(f"{key}={value!r}" for key, value in call.args.items())
        self.console.print(f"[dim]-> {call.name}({args})[/dim]")

    def tool_result(self, name: str, result: ToolResult) -> None:
        if result.is_error:
            self.console.print(f"[red]<- {name}: {escape(result.return_display)}[/red]")
        else:
            self.console.print(f"[dim]<- {name}: {escape(result.return_display)}[/dim]")

    def outcome(self, outcome: TurnOutcome) -> None:
        self._end_stream()
        if outcome.status is TurnStatus.KEYS_EXHAUSTED:
            self.console.print(f"[bold yellow]Keys exhausted:[/bold yellow] {outcome.message}")
        elif not outcome.ok:
            self.console.print(f"[bold red]Error ({outcome.error_kind}):[/bold red] {outcome.message}")

    def callbacks(self) -> TurnCallbacks:
        return TurnCallbacks(on_chunk=self.chunk, on_tool_call=self.tool_call, on_tool_result=self.tool_result)

    def _end_stream(self) -> None:
        if self._streaming:
            self.console.print()
            self._streaming = False


def _load_settings(workspace: Path | None, model: str | None, ollama: bool) -> Settings:
    overrides: dict[str, object] = {}
    if model:
        overrides["model"] = model
    if ollama:
        overrides["use_ollama"] = True
    return get_settings(workspace, **overrides)


async def _run_once(service: AgentService, message: str, renderer: Renderer) -> TurnOutcome:
    try:
        outcome = await service.send_message(message, callbacks=renderer.callbacks())
    finally:
        await service.close()
    renderer.outcome(outcome)
    return outcome


@app.command()
def run(
    message: str = typer.Argument(..., help="Message to send"),
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    model: str | None = typer.Option(None, "--model", "-m", help="Model name"),
    ollama: bool = typer.Option(False, "--ollama", help="Use the local Ollama backend"),
) -> None:
    """Run one message through the agent and exit."""
    settings = _load_settings(workspace, model, ollama)
    configure_logging(level=settings.log_level)
    renderer = Renderer(console)
    outcome = asyncio.run(_run_once(AgentService(settings), message, renderer))
    if outcome.status is TurnStatus.KEYS_EXHAUSTED:
        raise typer.Exit(EXIT_KEYS_EXHAUSTED)
    if not outcome.ok:
        raise typer.Exit(EXIT_ERROR)


async def _chat_loop(service: AgentService, renderer: Renderer) -> None:
    session: PromptSession[str] = PromptSession()
    try:
        while True:
            try:
                with patch_stdout(raw=True):
                    user_input = (await session.prompt_async("> ")).strip()
            except (KeyboardInterrupt, EOFError):
                renderer.console.print("\nGoodbye!")
                return
            if not user_input:
                continue
            command = user_input.lower()
            if command in {"exit", "quit", "q"}:
                return
            if command == "reset":
                service.reset()
                renderer.console.print("[dim]Conversation cleared[/dim]")
                continue

            outcome = await service.send_message(user_input, callbacks=renderer.callbacks())
            renderer.outcome(outcome)
    finally:
        await service.close()


@app.command()
def chat(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    model: str | None = typer.Option(None, "--model", "-m", help="Model name"),
    ollama: bool = typer.Option(False, "--ollama", help="Use the local Ollama backend"),
) -> None:
    """Start an interactive chat."""
    settings = _load_settings(workspace, model, ollama)
    configure_logging(profile="chat", level=settings.log_level)
    service = AgentService(settings)
    renderer = Renderer(console)
    renderer.welcome(service)
    asyncio.run(_chat_loop(service, renderer))


@app.command()
def tools(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
) -> None:
    """List the tools advertised to the model."""
    service = AgentService(_load_settings(workspace, None, False))
    table = Table("Name", "Parameters", "Description")
    for declaration in service.declarations():
        params = ", ".join(
            f"{name}*" if name in declaration.parameters.required else name
            for name in declaration.parameters.properties
        )
        table.add_row(declaration.name, params, declaration.description.splitlines()[0])
    console.print(table)
    asyncio.run(service.close())
