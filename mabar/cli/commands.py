"""MaBar CLI — Typer-based command-line interface."""

from __future__ import annotations

import asyncio
import json

import typer
from rich.console import Console
from rich.table import Table

from mabar import __version__

app = typer.Typer(
    name="mabar",
    help="mabar - padel matchmaking assistant",
    no_args_is_help=True,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mabar v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """mabar - padel matchmaking assistant."""


def _print_cards(cards) -> None:
    for card in cards:
        data = card.data
        title = data.get("venue") or data.get("message") or ""
        console.print(f"  [magenta]\\[{card.type}][/magenta] {title}")
        for key in ("date", "time", "address", "cost", "skillLevel", "openSlots", "status"):
            if data.get(key) not in (None, ""):
                console.print(f"    [dim]{key}:[/dim] {data[key]}")


# ════════════════════════════════════════════════════════════
# run — start API server
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int = typer.Option(8000, "--port", "-p", help="Port number"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host address"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server (uvicorn)."""
    import uvicorn

    console.print(f"[green]Starting mabar API on {host}:{port}[/green]")
    uvicorn.run("mabar.api.app:app", host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# chat — terminal chat
# ════════════════════════════════════════════════════════════


@app.command()
def chat(
    message: str | None = typer.Option(None, "--message", "-m", help="Single message to send"),
    session: str | None = typer.Option(None, "--session", "-s", help="Session ID"),
    token: str | None = typer.Option(
        None, "--token", "-t", envvar="MABAR_SESSION_TOKEN", help="Parse session token"
    ),
) -> None:
    """Chat with the assistant from the terminal."""
    from mabar.agent.coordinator import MatchmakingCoordinator
    from mabar.core.config.loader import load_config
    from mabar.memory.store import MemoryStore

    config = load_config()
    db = MemoryStore(config.database.path)
    coordinator = MatchmakingCoordinator(config, db)
    user_id = "cli_user"

    if message:
        # Single message mode
        response, _ = asyncio.run(
            coordinator.process(user_id, message, session, session_token=token)
        )
        console.print(f"\n[bold cyan]mabar:[/bold cyan] {response.text}\n")
        _print_cards(response.session_cards)
        return

    console.print("[bold]mabar interactive mode[/bold] (type 'exit' or 'quit' to leave)\n")

    async def _interactive() -> None:
        sid = session
        while True:
            try:
                user_input = console.input("[bold blue]You:[/bold blue] ")
            except (KeyboardInterrupt, EOFError):
                console.print("\nBye!")
                break

            text = user_input.strip()
            if not text:
                continue
            if text.lower() in ("exit", "quit"):
                console.print("Bye!")
                break
            if text.lower() == "/reset" and sid:
                coordinator.reset_conversation(sid)
                console.print("[dim]Conversation reset.[/dim]\n")
                continue

            response, sid = await coordinator.process(user_id, text, sid, session_token=token)
            console.print(f"\n[bold cyan]mabar:[/bold cyan] {response.text}\n")
            _print_cards(response.session_cards)

    asyncio.run(_interactive())


# ════════════════════════════════════════════════════════════
# analyze — regex input analyzer (no LLM)
# ════════════════════════════════════════════════════════════


@app.command()
def analyze(
    text: str = typer.Argument(help="Message to analyze"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Run the input analyzer on a message."""
    from mabar.agent.analyzer import analyze_input, to_slots

    analysis = analyze_input(text)
    slots = to_slots(analysis)
    if as_json:
        console.print_json(json.dumps({"analysis": analysis.model_dump(), "slots": slots}))
        return

    table = Table(title="Input analysis")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Confidence", style="yellow")

    table.add_row("Time slot", analysis.time.time_slot or "-", f"{analysis.time.confidence:.2f}")
    table.add_row("Location", analysis.location.location, f"{analysis.location.confidence:.2f}")
    table.add_row(
        "Skill level", analysis.skill_level.skill_level, f"{analysis.skill_level.confidence:.2f}"
    )
    table.add_row("Search intent", analysis.intent, "")
    table.add_row("Players", str(analysis.player_count or "-"), "")
    table.add_row("Urgency", analysis.urgency, "")
    table.add_row("Price", analysis.pricing.sensitivity, "")
    console.print(table)
    console.print(f"[dim]slots:[/dim] {slots}")


# ════════════════════════════════════════════════════════════
# tools — toolbox catalog
# ════════════════════════════════════════════════════════════


@app.command()
def tools() -> None:
    """List toolbox actions."""
    from mabar.agent.tools import make_tools
    from mabar.core.config.loader import load_config

    registry = make_tools(load_config())

    table = Table(title="Toolbox")
    table.add_column("Action", style="cyan", no_wrap=True)
    table.add_column("Group", style="blue")
    table.add_column("Description", style="white")
    for item in registry.get_catalog():
        table.add_row(item["name"], item["group"], item["description"].split("\n")[0])
    console.print(table)


# ════════════════════════════════════════════════════════════
# status — config + DB info
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show configuration and database status."""
    from mabar.core.config.loader import load_config
    from mabar.memory.store import MemoryStore

    config = load_config()
    db = MemoryStore(config.database.path)

    with db._get_conn() as conn:
        user_count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        session_count = conn.execute(
            "SELECT COUNT(*) FROM sessions WHERE ended_at IS NULL"
        ).fetchone()[0]

    table = Table(title="mabar status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("Logic model", config.assistant.model)
    table.add_row("Presenter model", config.presenter_model)
    table.add_row("API key", "set" if config.get_api_key() else "missing")
    table.add_row("Parse", config.parse.server_url if config.parse_enabled else "not configured")
    table.add_row("DB Path", config.database.path)
    table.add_row("Users", str(user_count))
    table.add_row("Open Sessions", str(session_count))

    console.print(table)


# ════════════════════════════════════════════════════════════
# init — write a default config.yaml
# ════════════════════════════════════════════════════════════


@app.command()
def init(
    path: str = typer.Option("config.yaml", "--path", help="Target file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing file"),
) -> None:
    """Write a default config.yaml."""
    from mabar.core.config.loader import write_default_config

    try:
        target = write_default_config(path, overwrite=force)
    except FileExistsError as e:
        console.print(f"[yellow]{e}[/yellow] (use --force to overwrite)")
        raise typer.Exit(code=1)
    console.print(f"[green]Config written:[/green] {target}")
