"""Typer CLI entry point for soapscribe."""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
from typing import List, Optional

import typer

from .config import (
    EnvironmentSettingError,
    Settings,
    clear_environment_setting,
    get_settings,
    list_environment_settings,
    update_environment_setting,
)
from .core.audio.devices import format_device_table
from .core.pipeline.orchestrator import ScribeSession
from .core.pipeline.state import TranscriptUpdated
from .data.models import EncounterDetails
from .errors import AudioResourceError
from .logging import configure_logging, get_logger
from .services.factory import ServiceConfigurationError

app = typer.Typer(help="soapscribe live clinical scribe")
settings_app = typer.Typer(help="Inspect and persist configuration in the .env file")
app.add_typer(settings_app, name="settings")
LOGGER = get_logger(__name__)


@app.command()
def devices() -> None:
    """List available audio input devices."""

    configure_logging()
    typer.echo(format_device_table())


async def _run_session(
    session: ScribeSession,
    metadata: Optional[EncounterDetails],
    duration: Optional[float],
    echo_transcript: bool,
) -> None:
    updates = session.subscribe()
    await session.start_session(metadata)
    typer.echo("Recording... press Ctrl+C to stop.")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, stop.set)

    async def _echo() -> None:
        while True:
            event = await updates.get()
            if echo_transcript and isinstance(event, TranscriptUpdated):
                typer.echo(f"> {event.text}")

    printer = asyncio.create_task(_echo())
    try:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=duration)
        typer.echo("Stopping; waiting for the final note...")
        note = await session.stop_session()
    finally:
        printer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await printer
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        session.unsubscribe(updates)
        await session.aclose()

    typer.echo("")
    typer.echo("Transcript:")
    typer.echo(session.state.transcript_text or "(empty)")
    typer.echo("")
    if note is None:
        typer.echo("No note was generated.")
    else:
        typer.echo(json.dumps(note.to_wire(), indent=2))


@app.command()
def record(
    device: Optional[str] = typer.Option(None, help="Input device id/name for the microphone"),
    duration: Optional[float] = typer.Option(None, help="Duration in seconds; default waits for Ctrl+C"),
    transcription_backend: Optional[str] = typer.Option(
        None, help="Transcription backend: dummy/deepgram/openai"
    ),
    notes_backend: Optional[str] = typer.Option(None, help="Notes backend: none/dummy/openai"),
    patient_name: Optional[str] = typer.Option(None, help="Patient name seeded into the note"),
    clinician_name: Optional[str] = typer.Option(None, help="Clinician name seeded into the note"),
    chief_complaint: Optional[str] = typer.Option(None, help="Chief complaint seeded into the note"),
    medication: List[str] = typer.Option([], help="Current medication; repeat for several"),
    chunk_seconds: Optional[float] = typer.Option(None, help="Override chunk length in seconds"),
    quiet: bool = typer.Option(False, "--quiet", help="Do not echo the transcript while recording"),
) -> None:
    """Record an encounter and keep a SOAP note up to date while it runs."""

    configure_logging()
    overrides = {
        "transcription_backend": transcription_backend,
        "notes_backend": notes_backend,
        "chunk_seconds": chunk_seconds,
    }
    settings = get_settings().model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )

    metadata = None
    if patient_name or clinician_name or chief_complaint or medication:
        metadata = EncounterDetails(
            patient_name=patient_name,
            clinician_name=clinician_name,
            chief_complaint=chief_complaint,
            medications=list(medication),
        )

    try:
        session = ScribeSession.from_settings(settings, device=device)
    except (RuntimeError, ServiceConfigurationError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        asyncio.run(_run_session(session, metadata, duration, echo_transcript=not quiet))
    except AudioResourceError as exc:
        typer.echo(f"Audio input unavailable: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
) -> None:
    """Serve the HTTP/SSE API with uvicorn."""

    import uvicorn

    from .api.app import create_app

    configure_logging()
    settings = get_settings()
    uvicorn.run(create_app(settings), host=host or settings.host, port=port or settings.port)


@settings_app.command("list")
def settings_list() -> None:
    """Show every setting with its environment variable and current value."""

    for item in list_environment_settings():
        typer.echo(f"{item.env_name:<45} {item.display_value}")


@settings_app.command("set")
def settings_set(field: str, value: str) -> None:
    """Persist FIELD=VALUE to the .env file."""

    try:
        update_environment_setting(field, value)
    except EnvironmentSettingError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Updated {field}")


@settings_app.command("unset")
def settings_unset(field: str) -> None:
    """Drop FIELD from the .env file and fall back to its default."""

    try:
        settings: Settings = clear_environment_setting(field)
    except EnvironmentSettingError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Cleared {field} (now {getattr(settings, field)!r})")


def main() -> None:  # pragma: no cover - CLI entry point
    app()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
