"""Session Cloner CLI with Rich output.

Usage:
    session-cloner list                          # List Claude Code projects
    session-cloner list -- -Users-dev-app        # List sessions of a project
    session-cloner stats <session-id>            # Turns and token breakdown
    session-cloner clone <session-id> --profile heavy-trim
    session-cloner clone <session-id> --band 0-30:heavy-compress --band 30-70:compress
    session-cloner profiles                      # Show built-in profiles
"""

import asyncio
from typing import Optional

import orjson
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from session_cloner.classifier import calculate_cumulative_tokens, extract_turn_content
from session_cloner.cloner import SessionCloner
from session_cloner.config import Config
from session_cloner.errors import SessionClonerError, ValidationError
from session_cloner.log_config import set_console_level
from session_cloner.profiles import get_profile, list_profiles
from session_cloner.schemas import CloneResponse, parse_clone_request
from session_cloner.session_io import load_jsonl
from session_cloner.sources import get_session_source
from session_cloner.turns import identify_turns

app = typer.Typer(
    name="session-cloner",
    help="Session Cloner - smaller copies of AI coding-assistant sessions",
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()


def _print_json(data) -> None:
    console.print_json(orjson.dumps(data).decode("utf-8"))


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(1)


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs on stderr"),
):
    if verbose:
        set_console_level("DEBUG")


def parse_band_option(value: str) -> dict:
    """Parse "START-END:LEVEL" (e.g. "0-30:heavy-compress") into band fields."""
    try:
        span, level = value.split(":", 1)
        start, end = span.split("-", 1)
        return {"start": float(start), "end": float(end), "level": level.strip()}
    except ValueError:
        raise ValidationError(f"Invalid band {value!r}; expected START-END:LEVEL") from None


@app.command()
def clone(
    session_id: str = typer.Argument(..., help="Session UUID"),
    source: str = typer.Option("claude", "--source", "-s", help="Session source: claude or copilot"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Built-in removal profile"),
    tool_removal: Optional[int] = typer.Option(None, "--tool-removal", help="Percent of oldest turns losing tool calls (0-100)"),
    tool_mode: Optional[str] = typer.Option(None, "--tool-mode", help="remove or truncate"),
    thinking_removal: Optional[int] = typer.Option(None, "--thinking-removal", help="Percent of oldest turns losing thinking (0-100)"),
    band: list[str] = typer.Option([], "--band", "-b", help="Compression band START-END:LEVEL (repeatable)"),
    drop_percent: int = typer.Option(0, "--drop-percent", help="Copilot: drop this percent of oldest turns"),
    skip_user: bool = typer.Option(False, "--skip-user", help="Only compress assistant text"),
    debug_log: bool = typer.Option(False, "--debug-log", help="Write a compression debug report"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Clone a session, trimming tool calls and thinking from the oldest turns.

    Examples:
        session-cloner clone abc123 --profile heavy-trim
        session-cloner clone abc123 --tool-removal 100 --thinking-removal 100
        session-cloner clone abc123 --band 0-50:heavy-compress
    """
    try:
        data: dict = {"session_id": session_id, "source": source}
        if profile:
            preset = get_profile(profile)
            data.update(
                tool_removal=preset.tool_removal,
                tool_handling_mode=preset.tool_handling_mode,
                thinking_removal=preset.thinking_removal,
            )
        if tool_removal is not None:
            data["tool_removal"] = tool_removal
        if tool_mode is not None:
            data["tool_handling_mode"] = tool_mode
        if thinking_removal is not None:
            data["thinking_removal"] = thinking_removal
        if band:
            data["compression_bands"] = [parse_band_option(b) for b in band]
        data.update(drop_percent=drop_percent, include_user_messages=not skip_user, debug_log=debug_log)

        request = parse_clone_request(data)
        result = asyncio.run(SessionCloner().clone(request))
    except SessionClonerError as e:
        _fail(e)

    response = CloneResponse.from_result(result)
    if as_json:
        _print_json(response.model_dump())
        return

    console.print(f"[green]Cloned[/green] {session_id} -> [cyan]{response.session_id}[/cyan]")
    console.print(f"[dim]{response.output_path}[/dim]")

    table = Table(title="Clone Stats", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in response.stats.items():
        if key == "compression":
            continue
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)

    compression = response.stats.get("compression")
    if compression:
        console.print(
            f"[bold]Compression:[/bold] {compression['messages_compressed']} compressed, "
            f"{compression['messages_skipped']} skipped, {compression['messages_failed']} failed, "
            f"{compression['reduction_percent']}% reduction"
        )
    if response.debug_log_path:
        console.print(f"[dim]Debug log: {response.debug_log_path}[/dim]")


@app.command("list")
def list_command(
    folder: Optional[str] = typer.Argument(None, help="Project folder (Claude) or workspace hash (Copilot)"),
    source: str = typer.Option("claude", "--source", "-s", help="Session source: claude or copilot"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum sessions to show"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List projects, or the sessions of one project."""
    try:
        adapter = get_session_source(source)
        if not adapter.is_available():
            console.print(f"[yellow]No {source} session storage found[/yellow]")
            raise typer.Exit(1)

        if folder is None:
            projects = adapter.list_projects()
            if as_json:
                _print_json([{"folder": p.folder, "path": p.path} for p in projects])
                return
            table = Table(title=f"{source.title()} Projects", box=box.ROUNDED)
            table.add_column("Folder", style="cyan")
            table.add_column("Path")
            for p in projects:
                table.add_row(p.folder, p.path)
            console.print(table)
            return

        sessions = adapter.list_sessions(folder)[:limit]
    except (SessionClonerError, OSError) as e:
        _fail(e)

    if as_json:
        _print_json([s.to_dict() for s in sessions])
        return

    table = Table(title=f"Sessions in {folder}", box=box.ROUNDED)
    table.add_column("Session", style="cyan", no_wrap=True)
    table.add_column("Turns", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim")
    table.add_column("First message")
    for s in sessions:
        table.add_row(
            s.session_id,
            str(s.turn_count),
            f"{s.size_bytes / 1024:.0f} KB",
            s.last_modified_at.strftime("%Y-%m-%d %H:%M"),
            s.first_message[:60],
        )
    console.print(table)


@app.command()
def stats(
    session_id: str = typer.Argument(..., help="Claude Code session UUID"),
    turn: Optional[int] = typer.Option(None, "--turn", "-t", help="Show the content digest of one turn"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show turn count and token breakdown of a Claude Code session."""
    cloner = SessionCloner()
    try:
        path = cloner.locate(cloner.source("claude"), session_id)
        entries = load_jsonl(path)
    except SessionClonerError as e:
        _fail(e)

    turns = identify_turns(entries)
    tokens = calculate_cumulative_tokens(entries, turns, len(turns) - 1)
    tool_calls = sum(
        1
        for e in entries
        if e.get("type") == "assistant" and isinstance((e.get("message") or {}).get("content"), list)
        for b in e["message"]["content"]
        if isinstance(b, dict) and b.get("type") == "tool_use"
    )

    if turn is not None and not 0 <= turn < len(turns):
        _fail(ValidationError(f"Turn {turn} out of range (0-{len(turns) - 1})"))

    if as_json:
        data = {
            "session_id": session_id,
            "path": str(path),
            "entries": len(entries),
            "turns": len(turns),
            "tool_calls": tool_calls,
            "tokens": tokens.to_dict(),
        }
        if turn is not None:
            digest = extract_turn_content(entries, turns[turn])
            data["turn"] = {
                "index": turn,
                "user_prompt": digest.user_prompt,
                "assistant_response": digest.assistant_response,
                "tool_blocks": [{"name": n, "input": i} for n, i in digest.tool_blocks],
            }
        _print_json(data)
        return

    table = Table(title=f"Session {session_id}", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Entries", str(len(entries)))
    table.add_row("Turns", str(len(turns)))
    table.add_row("Tool calls", str(tool_calls))
    for bucket, count in tokens.to_dict().items():
        table.add_row(f"{bucket} tokens", f"{count:,}")
    console.print(table)

    if turn is not None:
        digest = extract_turn_content(entries, turns[turn])
        console.print(f"\n[bold]Turn {turn}[/bold]")
        console.print(f"[cyan]User:[/cyan] {digest.user_prompt[:500]}")
        for name, tool_input in digest.tool_blocks:
            console.print(f"[yellow]Tool {name}:[/yellow] [dim]{tool_input[:200]}[/dim]")
        console.print(f"[green]Assistant:[/green] {digest.assistant_response[:500]}")


@app.command()
def profiles():
    """Show built-in removal profiles."""
    table = Table(title="Clone Profiles", box=box.ROUNDED)
    table.add_column("Profile", style="cyan")
    table.add_column("Tool removal", justify="right")
    table.add_column("Tool mode")
    table.add_column("Thinking removal", justify="right")
    for name, options in list_profiles().items():
        table.add_row(
            name,
            f"{options.tool_removal}%",
            options.tool_handling_mode.value,
            f"{options.thinking_removal}%",
        )
    console.print(table)


@app.command()
def config():
    """Show resolved configuration."""
    cfg = Config()
    table = Table(title="Configuration", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("claude_dir", str(cfg.claude_dir))
    table.add_row("vscode_storage_path", str(cfg.vscode_storage_path))
    table.add_row("llm_provider", cfg.llm_provider)
    table.add_row("openrouter_api_key", "set" if cfg.openrouter_api_key else "[yellow]not set[/yellow]")
    table.add_row("debug_log_dir", str(cfg.debug_log_dir))
    table.add_row("compression.concurrency", str(cfg.compression.concurrency))
    table.add_row("compression.max_attempts", str(cfg.compression.max_attempts))
    table.add_row("compression.min_tokens", str(cfg.compression.min_tokens))
    console.print(table)


@app.command()
def version():
    """Show Session Cloner version."""
    from session_cloner import __version__

    console.print(f"Session Cloner [cyan]{__version__}[/cyan]")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
