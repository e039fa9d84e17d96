"""CLI for transcript normalization and correction."""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from scribe import __version__
from scribe.config import load_config, save_config
from scribe.corrections import CorrectionOrchestrator
from scribe.diarization.normalizer import normalize as normalize_payload
from scribe.errors import NotFound, ScribeError
from scribe.logging import analyze_logs
from scribe.models.transcript import Transcript
from scribe.nlp.replacer import find_matches
from scribe.output.formatters import FORMATTERS, format_time, format_transcript
from scribe.store.sqlite import SqliteTranscriptStore

app = typer.Typer(
    name="scribe",
    help="Speaker-segmented transcript normalization and correction.",
    no_args_is_help=True,
)
console = Console()

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="Transcript database (default: from config)"),
]
UserOption = Annotated[str, typer.Option("--user", "-u", help="Owner of the transcript")]


# =============================================================================
# CLI Helpers
# =============================================================================

def _cli_error(message: str, detail: str | None = None) -> None:
    """Print formatted error message to console."""
    if detail:
        console.print(f"[red]Error:[/red] {message}: {detail}")
    else:
        console.print(f"[red]Error:[/red] {message}")


def _safe_write_file(path: Path, content: str, description: str = "file") -> bool:
    """Write file atomically. Returns True on success."""
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        temp_path.write_text(content, encoding="utf-8")
        temp_path.replace(path)
        return True
    except OSError as e:
        _cli_error(f"Failed to write {description}", str(e))
        if temp_path.exists():
            temp_path.unlink()
        return False


def _open_store(db: Path | None) -> SqliteTranscriptStore:
    return SqliteTranscriptStore(db or load_config().store.db_path)


def _load_owned(store: SqliteTranscriptStore, transcript_id: str, user: str | None = None) -> Transcript:
    transcript = store.get_transcript(transcript_id)
    if transcript is None or (user is not None and transcript.user_id != user):
        raise NotFound()
    return transcript


def _fail(error: ScribeError) -> None:
    _cli_error(error.message)
    if error.retryable:
        console.print("[dim]This may succeed if you try again.[/dim]")
    raise typer.Exit(1)


def _print_diff(diff) -> None:
    table = Table(show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Speaker")
    table.add_column("Time", style="dim")
    table.add_column("Before", style="red")
    table.add_column("After", style="green")
    for entry in diff:
        table.add_row(
            str(entry.segment_index), entry.speaker_tag, entry.timestamp,
            entry.old_text, entry.new_text,
        )
    console.print(table)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def version():
    """Show version."""
    console.print(f"scribe {__version__}")


@app.command()
def normalize(
    payload: Annotated[Path, typer.Argument(help="Provider JSON payload")],
    user: UserOption,
    transcript_id: Annotated[
        Optional[str],
        typer.Option("--id", help="Transcript id (default: payload id or file name)"),
    ] = None,
    db: DbOption = None,
):
    """Normalize a raw ASR payload into speaker segments and store it."""
    if not payload.exists():
        _cli_error("File not found", str(payload))
        raise typer.Exit(1)

    try:
        raw = json.loads(payload.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        _cli_error("Invalid JSON file", str(e))
        raise typer.Exit(1)

    config = load_config()
    try:
        result = normalize_payload(raw, config.diarization)
    except ScribeError as e:
        _fail(e)

    tid = transcript_id or (raw.get("id") if isinstance(raw, dict) else None) or payload.stem
    transcript = Transcript(
        id=str(tid),
        user_id=user,
        status="completed",
        transcript_text=result.text,
        transcript_with_speakers=result.transcript_with_speakers,
        speakers=result.speakers,
        speaker_segments=result.speaker_segments,
        language=result.language,
        duration_seconds=result.duration_seconds,
    )
    _open_store(db).save_transcript(transcript)

    console.print(f"[green]Stored transcript[/green] {transcript.id}")
    table = Table()
    table.add_column("Speaker")
    table.add_column("Id", justify="right")
    table.add_column("Words", justify="right")
    table.add_column("Speaking time", justify="right")
    table.add_column("First seen", justify="right")
    for speaker in result.speakers:
        table.add_row(
            speaker.speaker_tag,
            str(speaker.speaker_id),
            str(speaker.word_count),
            format_time(speaker.total_speaking_time),
            format_time(speaker.first_appearance),
        )
    console.print(table)
    duration = format_time(result.duration_seconds) if result.duration_seconds is not None else "?"
    console.print(
        f"[dim]{len(result.speaker_segments)} segments, duration {duration}, "
        f"language {result.language or 'unknown'}[/dim]"
    )


@app.command()
def preview(
    transcript_id: Annotated[str, typer.Argument(help="Transcript id")],
    instruction: Annotated[str, typer.Argument(help="Correction instruction, e.g. 'Change John to Jon'")],
    user: UserOption,
    as_json: Annotated[bool, typer.Option("--json", help="Print the preview as JSON")] = False,
    db: DbOption = None,
):
    """Show what a correction would change without saving it."""
    orchestrator = CorrectionOrchestrator(_open_store(db))
    try:
        result = orchestrator.preview_correction(user, transcript_id, instruction)
    except ScribeError as e:
        _fail(e)

    if as_json:
        typer.echo(result.model_dump_json(indent=2, by_alias=True))
        return

    if result.plan:
        for rule in result.plan.simple_replacements:
            console.print(
                f"  [cyan]{rule.find}[/cyan] -> [cyan]{rule.replace}[/cyan] "
                f"[dim]({rule.estimated_matches} matches, {rule.confidence} confidence)[/dim]"
            )
        for text in result.plan.complex_corrections:
            console.print(f"  [magenta]rewrite:[/magenta] {text}")
        for miss in result.plan.unmatched:
            hint = f", did you mean [cyan]{miss.suggestion}[/cyan]?" if miss.suggestion else ""
            console.print(f"  [yellow]no match:[/yellow] {miss.find}{hint}")

    if not result.diff:
        console.print("[yellow]No changes.[/yellow]")
        return

    _print_diff(result.diff)
    console.print(
        f"[bold]{result.summary.total_changes}[/bold] changes in "
        f"{result.summary.affected_segments} segments"
    )


@app.command()
def apply(
    transcript_id: Annotated[str, typer.Argument(help="Transcript id")],
    instruction: Annotated[str, typer.Argument(help="Correction instruction")],
    user: UserOption,
    db: DbOption = None,
):
    """Apply a correction and invalidate derived analyses and translations."""
    store = _open_store(db)
    orchestrator = CorrectionOrchestrator(store)
    try:
        before = _load_owned(store, transcript_id, user)
        result = orchestrator.apply_correction(user, transcript_id, instruction)
    except ScribeError as e:
        _fail(e)

    changed = sum(
        1 for a, b in zip(before.speaker_segments, result.transcription.speaker_segments)
        if a.text != b.text
    )
    console.print(f"[green]Correction applied:[/green] {changed} segments changed")
    if result.deleted_analysis_ids:
        console.print(f"[dim]Deleted {len(result.deleted_analysis_ids)} analyses[/dim]")
    if result.cleared_translations:
        console.print(f"[dim]Cleared translations: {', '.join(result.cleared_translations)}[/dim]")


@app.command()
def find(
    transcript_id: Annotated[str, typer.Argument(help="Transcript id")],
    text: Annotated[str, typer.Argument(help="Text to search for")],
    case_sensitive: Annotated[bool, typer.Option("--case-sensitive", help="Match case exactly")] = False,
    whole_word: Annotated[bool, typer.Option("--whole-word", help="Match whole words only")] = False,
    db: DbOption = None,
):
    """Find occurrences of text in a transcript, with context."""
    store = _open_store(db)
    try:
        transcript = _load_owned(store, transcript_id)
    except ScribeError as e:
        _fail(e)

    matches = find_matches(transcript.speaker_segments, text, case_sensitive, whole_word)
    if not matches:
        console.print("[yellow]No matches.[/yellow]")
        return

    segments = transcript.speaker_segments
    for match in matches:
        segment = segments[match.segment_index]
        console.print(
            f"[dim]{format_time(segment.start_time)}[/dim] {segment.speaker_tag}: {match.context}",
            highlight=False,
        )
    console.print(f"[bold]{len(matches)}[/bold] matches")


@app.command(name="rename-speaker")
def rename_speaker(
    transcript_id: Annotated[str, typer.Argument(help="Transcript id")],
    speaker_id: Annotated[int, typer.Argument(help="Numeric speaker id")],
    name: Annotated[str, typer.Argument(help="Display name (empty to clear)")],
    user: UserOption,
    db: DbOption = None,
):
    """Give a speaker a display name."""
    try:
        transcript = _open_store(db).rename_speaker(transcript_id, user, speaker_id, name)
    except ScribeError as e:
        _fail(e)

    speaker = next(s for s in transcript.speakers if s.speaker_id == speaker_id)
    if speaker.custom_name:
        console.print(f"[green]{speaker.speaker_tag}[/green] is now [bold]{speaker.custom_name}[/bold]")
    else:
        console.print(f"[green]Cleared name for {speaker.speaker_tag}[/green]")


@app.command()
def export(
    transcript_id: Annotated[str, typer.Argument(help="Transcript id")],
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help=f"Output format: {', '.join(sorted(FORMATTERS))}"),
    ] = "txt",
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output file (default: stdout)"),
    ] = None,
    db: DbOption = None,
):
    """Export a transcript as JSON, SRT, VTT or plain text."""
    try:
        transcript = _load_owned(_open_store(db), transcript_id)
    except ScribeError as e:
        _fail(e)

    try:
        content = format_transcript(transcript, output_format)
    except ValueError as e:
        _cli_error("Invalid format", str(e))
        raise typer.Exit(1)

    if output is None:
        typer.echo(content)
        return
    if not _safe_write_file(output, content, f"transcript to {output}"):
        raise typer.Exit(1)
    console.print(f"[green]Saved:[/green] {output}")


@app.command(name="config")
def config_cmd(
    show: Annotated[bool, typer.Option("--show", help="Show current configuration")] = False,
    reset: Annotated[bool, typer.Option("--reset", help="Reset to default configuration")] = False,
):
    """Manage scribe configuration."""
    from scribe.config import CONFIG_FILE, ScribeConfig

    if reset:
        save_config(ScribeConfig())
        console.print("[green]Configuration reset to defaults.[/green]")

    if show or reset:
        config = load_config()
        console.print(f"[bold]Configuration:[/bold] {CONFIG_FILE}")
        console.print()
        for section, values in config.model_dump().items():
            for key, value in values.items():
                console.print(f"  [dim]{section}.{key}:[/dim] {value}")


@app.command()
def logs(
    sessions: Annotated[
        int,
        typer.Option("-n", "--sessions", help="Number of recent sessions to analyze"),
    ] = 10,
):
    """Summarize recent correction sessions.

    Examples:
        scribe logs              # Analyze last 10 sessions
        scribe logs -n 50        # Analyze last 50 sessions
    """
    stats = analyze_logs(limit=sessions)
    if "error" in stats:
        console.print(f"[dim]{stats['error']}. Run a correction first.[/dim]")
        return

    console.print(f"[bold]Sessions analyzed:[/bold] {stats['sessions_analyzed']}")
    console.print(f"  Previews: {stats['previews']}  Applies: {stats['applies']}")
    console.print(f"  Applied: {stats['total_applied']}  Rejected: {stats['total_rejected']}")
    if stats["acceptance_rate"] is not None:
        console.print(f"  Acceptance rate: {stats['acceptance_rate']}%")
    for reason, count in stats["rejection_reasons"].items():
        console.print(f"  [yellow]{reason}[/yellow]: {count}")
    if stats["common_rule_terms"]:
        console.print("[bold]Most corrected terms:[/bold]")
        for term, count in stats["common_rule_terms"]:
            console.print(f"  {term} ({count})")


if __name__ == "__main__":
    app()
