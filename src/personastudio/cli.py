"""Persona Studio CLI using typer."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Optional, Tuple

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from personastudio.config import Config, get_config
from personastudio.errors import PersonaStudioError
from personastudio.importer import PersonaRecordImporter, RecordImportError
from personastudio.log import setup_logging
from personastudio.schemas import Persona, RefinementReply
from personastudio.services import AIGateway, RefinementChat, SyncEngine, SyncTrigger, TestChat
from personastudio.storage import Database, PersonaStore, SQLiteKeyValueStore

app = typer.Typer(
    name="personastudio",
    help="AI-assisted character authoring with versioned persona edits.",
    no_args_is_help=True,
)

console = Console()


def get_db_and_store(config: Config) -> Tuple[Database, PersonaStore]:
    """Initialize database and load the persona store."""
    db = Database(config.db_path)
    db.connect()
    db.initialize()
    store = PersonaStore(
        gateway=AIGateway.from_config(config),
        backend=SQLiteKeyValueStore(db),
        key=config.storage_key,
        history_limit=config.history_limit,
        seed=True,
    )
    store.load()
    return db, store


def new_engine(config: Config, store: PersonaStore) -> SyncEngine:
    return SyncEngine(
        gateway=store.gateway,
        debounce_seconds=config.debounce_seconds,
        history_limit=config.history_limit,
    )


def require_persona(store: PersonaStore, persona_id: str) -> Persona:
    """Find a persona by full id or unique id prefix."""
    matches = [p for p in store.list() if p.id.startswith(persona_id)]
    if len(matches) != 1:
        console.print(f"[red]No unique persona matches '{persona_id}'.[/red]")
        raise typer.Exit(1)
    return matches[0]


def print_persona(persona: Persona) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key in ("id", "name", "role", "tone", "personality", "worldview", "experience", "other"):
        table.add_row(key, getattr(persona, key) or "-")
    if persona.short_summary:
        table.add_row("short summary", persona.short_summary)
    if persona.short_tone:
        table.add_row("short tone", persona.short_tone)
    if persona.mbti_profile:
        profile = persona.mbti_profile
        scores = profile.scores
        table.add_row(
            "personality",
            f"{profile.type} {profile.type_name} "
            f"(mind {scores.mind:.0f}, energy {scores.energy:.0f}, "
            f"nature {scores.nature:.0f}, tactics {scores.tactics:.0f})",
        )
    console.print(table)
    if persona.summary:
        console.print(Panel(persona.summary, title="Summary"))
    for source in persona.sources:
        console.print(f"  [dim]{source.title} - {source.uri}[/dim]")


@app.callback()
def main() -> None:
    """Configure logging for every command."""
    setup_logging(get_config().log_level)


@app.command("list")
def list_personas() -> None:
    """List saved personas."""
    config = get_config()
    db, store = get_db_and_store(config)

    try:
        personas = store.list()
        if not personas:
            console.print("[yellow]No personas yet. Create one with 'personastudio create'.[/yellow]")
            return

        table = Table(title="Personas")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="bold")
        table.add_column("Role")
        table.add_column("Type", justify="center")
        table.add_column("Versions", justify="right")

        for p in personas:
            table.add_row(
                p.id[:8],
                p.name,
                p.role or "-",
                p.mbti_profile.type if p.mbti_profile else "-",
                str(len(p.history)),
            )
        console.print(table)
    finally:
        db.close()


@app.command()
def show(persona_id: str = typer.Argument(..., help="Persona id or id prefix")) -> None:
    """Show one persona in full."""
    config = get_config()
    db, store = get_db_and_store(config)
    try:
        print_persona(require_persona(store, persona_id))
    finally:
        db.close()


def _field_options(
    name: Optional[str],
    role: Optional[str],
    tone: Optional[str],
    personality: Optional[str],
    worldview: Optional[str],
    experience: Optional[str],
    other: Optional[str],
) -> Dict[str, str]:
    values = {
        "name": name,
        "role": role,
        "tone": tone,
        "personality": personality,
        "worldview": worldview,
        "experience": experience,
        "other": other,
    }
    return {k: v for k, v in values.items() if v is not None}


async def _edit_and_save(
    engine: SyncEngine,
    store: PersonaStore,
    fields: Dict[str, str],
    summary: Optional[str],
    document: Optional[Path],
    topic: Optional[str],
    refresh_summary: bool,
    sync_from_summary: bool,
) -> Persona:
    if topic:
        await engine.request_web_generation(topic)
    if document:
        await engine.request_extraction_from_document(document.read_text(encoding="utf-8"))

    for key, value in fields.items():
        engine.edit_field(key, value)
    # Let the debounced summary refresh for the edits above land first
    await engine.wait_idle()

    if summary is not None:
        engine.edit_summary(summary)
    if sync_from_summary:
        await engine.request_extraction_from_summary()
    if refresh_summary:
        await engine.request_summary_regeneration(SyncTrigger.EXPLICIT)

    return await engine.save(store)


async def _refine_turn(session: RefinementChat, text: str) -> RefinementReply:
    reply = await session.send(text)
    # The passive summary refresh has to finish inside this event loop
    await session.engine.wait_idle()
    return reply


async def _save_when_idle(engine: SyncEngine, store: PersonaStore) -> Persona:
    await engine.wait_idle()
    return await engine.save(store)


@app.command()
def create(
    name: Optional[str] = typer.Option(None, "--name", help="Character name"),
    role: Optional[str] = typer.Option(None, "--role"),
    tone: Optional[str] = typer.Option(None, "--tone"),
    personality: Optional[str] = typer.Option(None, "--personality"),
    worldview: Optional[str] = typer.Option(None, "--worldview"),
    experience: Optional[str] = typer.Option(None, "--experience"),
    other: Optional[str] = typer.Option(None, "--other"),
    summary: Optional[str] = typer.Option(None, "--summary", help="Narrative summary text"),
    document: Optional[Path] = typer.Option(None, "--from-doc", help="Extract fields from a .txt reference document"),
    topic: Optional[str] = typer.Option(None, "--from-web", help="Research a topic on the web and extract fields"),
    refresh_summary: bool = typer.Option(False, "--refresh-summary", help="Generate the summary before saving"),
) -> None:
    """Create a new persona."""
    config = get_config()
    db, store = get_db_and_store(config)
    engine = new_engine(config, store)
    engine.open(None)

    try:
        fields = _field_options(name, role, tone, personality, worldview, experience, other)
        with console.status("[bold green]Creating persona..."):
            persona = asyncio.run(_edit_and_save(
                engine, store, fields, summary, document, topic, refresh_summary, False,
            ))
        console.print(f"[green]Created persona {persona.name} ({persona.id[:8]}).[/green]")
        print_persona(persona)
    except PersonaStudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def edit(
    persona_id: str = typer.Argument(..., help="Persona id or id prefix"),
    name: Optional[str] = typer.Option(None, "--name"),
    role: Optional[str] = typer.Option(None, "--role"),
    tone: Optional[str] = typer.Option(None, "--tone"),
    personality: Optional[str] = typer.Option(None, "--personality"),
    worldview: Optional[str] = typer.Option(None, "--worldview"),
    experience: Optional[str] = typer.Option(None, "--experience"),
    other: Optional[str] = typer.Option(None, "--other"),
    summary: Optional[str] = typer.Option(None, "--summary", help="Replace the summary text"),
    document: Optional[Path] = typer.Option(None, "--from-doc", help="Extract fields from a .txt reference document"),
    refresh_summary: bool = typer.Option(False, "--refresh-summary", help="Regenerate the summary before saving"),
    sync_from_summary: bool = typer.Option(False, "--sync-from-summary", help="Update fields from the summary"),
) -> None:
    """Edit a persona and save a new version."""
    config = get_config()
    db, store = get_db_and_store(config)
    engine = new_engine(config, store)
    engine.open(require_persona(store, persona_id))

    try:
        fields = _field_options(name, role, tone, personality, worldview, experience, other)
        with console.status("[bold green]Saving and analyzing changes..."):
            persona = asyncio.run(_edit_and_save(
                engine, store, fields, summary, document, None, refresh_summary, sync_from_summary,
            ))
        latest = persona.history[0].change_summary if persona.history else "saved"
        console.print(f"[green]{persona.name}: {latest}[/green]")
    except PersonaStudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def delete(
    persona_id: str = typer.Argument(..., help="Persona id or id prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a persona."""
    config = get_config()
    db, store = get_db_and_store(config)
    try:
        persona = require_persona(store, persona_id)
        if not yes and not typer.confirm(f"Delete {persona.name}?"):
            raise typer.Abort()
        store.delete(persona.id)
        console.print(f"[green]Deleted {persona.name}.[/green]")
    finally:
        db.close()


@app.command()
def history(persona_id: str = typer.Argument(..., help="Persona id or id prefix")) -> None:
    """Show the saved versions of a persona, newest first."""
    config = get_config()
    db, store = get_db_and_store(config)
    try:
        persona = require_persona(store, persona_id)
        if not persona.history:
            console.print("[yellow]No previous versions saved.[/yellow]")
            return

        table = Table(title=f"Version history: {persona.name}")
        table.add_column("#", justify="right")
        table.add_column("Saved", style="dim")
        table.add_column("Change")
        for index, entry in enumerate(persona.history):
            table.add_row(str(index), entry.timestamp.strftime("%Y-%m-%d %H:%M"), entry.change_summary)
        console.print(table)
    finally:
        db.close()


@app.command()
def revert(
    persona_id: str = typer.Argument(..., help="Persona id or id prefix"),
    index: int = typer.Argument(..., help="History entry number (see 'history')"),
) -> None:
    """Restore a saved version and save it as the current one."""
    config = get_config()
    db, store = get_db_and_store(config)
    engine = new_engine(config, store)

    try:
        persona = require_persona(store, persona_id)
        if not 0 <= index < len(persona.history):
            console.print(f"[red]No history entry {index}.[/red]")
            raise typer.Exit(1)

        engine.open(persona)
        engine.revert(persona.history[index])
        with console.status("[bold green]Saving reverted version..."):
            saved = asyncio.run(engine.save(store))
        console.print(f"[green]Reverted {saved.name} to version {index}.[/green]")
    except PersonaStudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def analyze(persona_id: str = typer.Argument(..., help="Persona id or id prefix")) -> None:
    """Run MBTI personality analysis and save it on the persona."""
    config = get_config()
    db, store = get_db_and_store(config)
    engine = new_engine(config, store)

    async def run() -> Persona:
        await engine.request_personality_analysis()
        return await engine.save(store)

    try:
        engine.open(require_persona(store, persona_id))
        with console.status("[bold green]Analyzing personality..."):
            persona = asyncio.run(run())
        print_persona(persona)
    except PersonaStudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command("export")
def export_persona(
    persona_id: str = typer.Argument(..., help="Persona id or id prefix"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Output file (.json or .jsonl)"),
) -> None:
    """Export a persona record to a file."""
    config = get_config()
    db, store = get_db_and_store(config)
    try:
        persona = require_persona(store, persona_id)
        if path is None:
            path = Path(f"{asyncio.run(store.gateway.filename_slug(persona.name))}.json")
        PersonaRecordImporter(store).export_file([persona.id], path)
        console.print(f"[green]Exported {persona.name} to {path}.[/green]")
    finally:
        db.close()


@app.command("import")
def import_personas(
    path: Path = typer.Argument(..., help="Record file (JSON or JSONL)"),
    validate_only: bool = typer.Option(False, "--validate", help="Validate file without importing"),
) -> None:
    """Import persona records from a file."""
    config = get_config()
    db, store = get_db_and_store(config)

    try:
        importer = PersonaRecordImporter(store)

        if validate_only:
            is_valid, message = importer.validate_file(path)
            if is_valid:
                console.print(f"[green]{message}[/green]")
            else:
                console.print(f"[red]{message}[/red]")
                raise typer.Exit(1)
            return

        imported, skipped = importer.import_file(path)
        console.print("[green]Import complete.[/green]")
        console.print(f"  Imported: {len(imported)}")
        console.print(f"  Skipped (no name): {skipped}")
    except RecordImportError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def chat(persona_id: str = typer.Argument(..., help="Persona id or id prefix")) -> None:
    """Test-chat with a persona. Send an empty line to stop."""
    config = get_config()
    db, store = get_db_and_store(config)
    engine = new_engine(config, store)

    try:
        persona = require_persona(store, persona_id)
        engine.open(persona)
        session = TestChat(store.gateway, engine)
        console.print(f"[dim]Chatting with {persona.name}. Empty line to quit.[/dim]")

        while True:
            text = typer.prompt("you", default="", show_default=False)
            if not text.strip():
                break
            try:
                with console.status("[dim]...[/dim]"):
                    reply = asyncio.run(session.send(text))
            except PersonaStudioError as e:
                console.print(f"[red]Error: {e}[/red]")
                continue
            console.print(f"[bold magenta]{persona.name}[/bold magenta]: {reply.text}")
    finally:
        db.close()


@app.command()
def refine(persona_id: str = typer.Argument(..., help="Persona id or id prefix")) -> None:
    """Refine a persona by conversation, then optionally save."""
    config = get_config()
    db, store = get_db_and_store(config)
    engine = new_engine(config, store)

    try:
        engine.open(require_persona(store, persona_id))
        session = RefinementChat(store.gateway, engine)
        greeting = asyncio.run(session.start())
        console.print(f"[bold magenta]{engine.state.name}[/bold magenta]: {greeting.text}")

        while True:
            text = typer.prompt("you", default="", show_default=False)
            if not text.strip():
                break
            try:
                with console.status("[dim]Refining...[/dim]"):
                    reply = asyncio.run(_refine_turn(session, text))
            except PersonaStudioError as e:
                console.print(f"[red]Error: {e}[/red]")
                continue
            console.print(f"[bold magenta]{engine.state.name}[/bold magenta]: {reply.response_text}")
            for key, value in reply.updated_parameters.items():
                console.print(f"  [dim]{key} -> {value}[/dim]")

        if typer.confirm("Save changes?", default=True):
            persona = asyncio.run(_save_when_idle(engine, store))
            console.print(f"[green]Saved {persona.name}.[/green]")
    except PersonaStudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command("api")
def run_api(
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8765, "--port", help="Port to bind to"),
) -> None:
    """Run the local FastAPI server."""
    import uvicorn

    console.print(f"[green]Starting Persona Studio API at http://{host}:{port}[/green]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    uvicorn.run(
        "personastudio.api.main:app",
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    app()
