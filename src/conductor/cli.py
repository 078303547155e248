"""CLI entry point for conductor."""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from conductor.agent.models import AgentType
from conductor.agent.orchestrator import AgentOrchestrator
from conductor.config import ConductorConfig
from conductor.errors import ConductorError
from conductor.session.bus import MessageType, Subscription

app = typer.Typer(
    name="conductor",
    help="Run several agent CLIs side by side in supervised terminals.",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Type a line to broadcast it to every agent, '@<id> <text>' to send to one.\n"
    "Commands: /list, /kill <id>, /export [path], /quit"
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@dataclass(frozen=True)
class InputAction:
    """One parsed line of interactive input."""

    kind: str  # "broadcast" | "send" | "list" | "kill" | "export" | "quit" | "help" | "noop"
    target: str = ""
    text: str = ""


def parse_input(line: str) -> InputAction:
    """Turn a line typed at the prompt into an action."""
    stripped = line.strip()
    if not stripped:
        return InputAction("noop")
    if stripped.startswith("@"):
        target, _, text = stripped[1:].partition(" ")
        if not target or not text.strip():
            return InputAction("help")
        return InputAction("send", target=target, text=text.strip())
    if stripped.startswith("/"):
        parts = shlex.split(stripped[1:]) or [""]
        name, args = parts[0].lower(), parts[1:]
        if name == "list":
            return InputAction("list")
        if name == "kill" and len(args) == 1:
            return InputAction("kill", target=args[0])
        if name == "export":
            return InputAction("export", text=args[0] if args else "")
        if name in ("quit", "exit"):
            return InputAction("quit")
        return InputAction("help")
    return InputAction("broadcast", text=stripped)


def render_status_table(orchestrator: AgentOrchestrator) -> Table:
    table = Table(title="Agents")
    table.add_column("ID")
    table.add_column("Type")
    table.add_column("Running")
    table.add_column("Commands", justify="right")
    table.add_column("Last activity")
    for status in sorted(orchestrator.list_agents(), key=lambda s: s.start_time):
        table.add_row(
            status.id,
            status.agent_type.value,
            "yes" if status.running else "no",
            str(status.commands_sent),
            status.last_activity.strftime("%H:%M:%S"),
        )
    return table


def write_export(orchestrator: AgentOrchestrator, path: Path) -> None:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(orchestrator.export_session(), indent=2), encoding="utf-8")
    console.print(f"[dim]Session exported to {escape(str(path))}[/dim]")


async def handle_input(orchestrator: AgentOrchestrator, action: InputAction) -> bool:
    """Apply one action. Returns False when the session should end."""
    if action.kind == "quit":
        return False
    if action.kind == "noop":
        return True
    if action.kind == "help":
        console.print(HELP_TEXT)
    elif action.kind == "list":
        console.print(render_status_table(orchestrator))
    elif action.kind == "kill":
        await orchestrator.kill_agent(action.target)
    elif action.kind == "export":
        target = Path(action.text or f"conductor-session-{orchestrator.session.id}.json")
        write_export(orchestrator, target)
    elif action.kind == "send":
        try:
            await orchestrator.send_command(action.target, action.text)
        except ConductorError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
    elif action.kind == "broadcast":
        failures = await orchestrator.broadcast_to_strategy(action.text)
        for agent_id, error in failures.items():
            console.print(f"[red]{escape(agent_id)}: {escape(error)}[/red]")
    return True


async def _print_messages(sub: Subscription) -> None:
    async for message in sub:
        label = Text(f"[{message.agent_id[:8]}] ", style="cyan")
        if message.message_type is MessageType.OUTPUT:
            console.print(label + Text.from_ansi(message.payload.get("text", "")), end="")
        elif message.message_type is MessageType.ERROR:
            console.print(label + Text(str(message.payload.get("error", "")), style="red"))
        elif message.message_type is MessageType.SYSTEM_EVENT:
            console.print(label + Text(str(message.payload.get("event", "")), style="dim"))
        elif message.message_type is MessageType.STATUS:
            if message.payload.get("stream") == "closed":
                console.print(label + Text("output closed", style="yellow"))
    if sub.missed:
        logger.warning("Console fell behind; %d messages skipped", sub.missed)


async def _read_commands(orchestrator: AgentOrchestrator) -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    while True:
        line = await reader.readline()
        if not line:
            return
        action = parse_input(line.decode("utf-8", errors="replace"))
        if not await handle_input(orchestrator, action):
            return


async def _run(
    agent_types: list[AgentType],
    workspace: str | None,
    config: ConductorConfig,
    export_path: Path | None,
) -> None:
    async with AgentOrchestrator(config) as orchestrator:
        orchestrator.install_signal_handlers()
        printer = asyncio.create_task(_print_messages(orchestrator.bus.subscribe()))
        try:
            for agent_type in agent_types:
                agent_id = await orchestrator.spawn(agent_type, workspace_path=workspace)
                console.print(f"[green]Spawned {agent_type.value} agent {agent_id}[/green]")
            console.print(HELP_TEXT)

            commands = asyncio.create_task(_read_commands(orchestrator))
            closed = asyncio.create_task(orchestrator.wait_closed())
            await asyncio.wait({commands, closed}, return_when=asyncio.FIRST_COMPLETED)
            commands.cancel()
            closed.cancel()
        finally:
            # Closing the bus ends the printer once it has flushed
            await orchestrator.shutdown()
            await printer
        if export_path is not None:
            write_export(orchestrator, export_path)


@app.command()
def run(
    agents: list[str] = typer.Argument(..., help="Agent types to spawn: claude, gemini"),
    workspace: Optional[str] = typer.Option(
        None, "--workspace", "-w", help="Directory the agents run in"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file"
    ),
    export: Optional[Path] = typer.Option(
        None, "--export", "-e", help="Write the session ledger here on exit"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Spawn agents and route typed commands to them until EOF or Ctrl-C."""
    setup_logging(verbose)
    try:
        agent_types = [AgentType.parse(a) for a in agents]
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="AGENTS") from exc

    config = ConductorConfig.load(config_path)
    try:
        asyncio.run(_run(agent_types, workspace, config, export))
    except ConductorError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


@app.command("config")
def show_config(
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file"
    ),
) -> None:
    """Print the resolved configuration as JSON."""
    config = ConductorConfig.load(config_path)
    typer.echo(config.model_dump_json(indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
