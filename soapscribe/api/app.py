"""FastAPI application exposing the scribe pipeline over HTTP and SSE."""

from __future__ import annotations

import uuid
import wave
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..config import Settings, get_settings
from ..core.pipeline.assembler import DocumentCandidate, GenerationOutcome, assemble
from ..core.pipeline.orchestrator import ScribeSession
from ..core.pipeline.reconciler import NoteReconciler
from ..data.models import AudioChunk, EncounterDetails, Note, RegenerationRequest
from ..errors import AudioResourceError, ReconciliationInvariantError, SessionStateError
from ..logging import get_logger
from ..services.factory import (
    ServiceConfigurationError,
    resolve_notes_backend,
    resolve_transcription_backend,
)
from ..services.notes.base import NotesService
from ..services.transcription.base import TranscriptionService
from ..services.transcription.client import TranscriptionClient
from ..utils.audio import decode_wav, sniff_encoding
from .sse import format_sse, session_event_stream

LOGGER = get_logger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"}

_FAILURE_STATUS = {
    "auth_error": status.HTTP_401_UNAUTHORIZED,
    "invalid_audio": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "service_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


class SoapRequest(BaseModel):
    transcript: Optional[str] = None
    previous_note: Optional[Dict[str, Any]] = None
    metadata: Optional[EncounterDetails] = None


class _Services:
    """Backends resolved on first use so a missing key only fails its own route."""

    def __init__(
        self,
        settings: Settings,
        transcription: Optional[TranscriptionService],
        notes: Optional[NotesService],
        session_factory: Optional[Callable[[], ScribeSession]],
    ) -> None:
        self.settings = settings
        self._transcription = transcription
        self._notes = notes
        self._session_factory = session_factory or (lambda: ScribeSession.from_settings(settings))
        self._session: Optional[ScribeSession] = None

    def _unavailable(self, what: str, exc: Exception) -> HTTPException:
        LOGGER.error("%s backend unavailable: %s", what, exc)
        return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{what} unavailable: {exc}")

    def transcription(self) -> TranscriptionService:
        if self._transcription is None:
            try:
                self._transcription = resolve_transcription_backend(
                    self.settings.transcription_backend, self.settings
                )
            except (RuntimeError, ServiceConfigurationError) as exc:
                raise self._unavailable("Transcription", exc) from exc
            if self._transcription is None:
                raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Transcription is disabled")
        return self._transcription

    def notes(self) -> NotesService:
        if self._notes is None:
            try:
                self._notes = resolve_notes_backend(self.settings.notes_backend, self.settings)
            except (RuntimeError, ServiceConfigurationError) as exc:
                raise self._unavailable("Note generation", exc) from exc
            if self._notes is None:
                raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Note generation is disabled")
        return self._notes

    def session(self) -> ScribeSession:
        if self._session is None:
            try:
                self._session = self._session_factory()
            except (RuntimeError, ServiceConfigurationError) as exc:
                raise self._unavailable("Session", exc) from exc
        return self._session

    @property
    def active_session(self) -> Optional[ScribeSession]:
        return self._session

    async def aclose(self) -> None:
        if self._session is not None:
            await self._session.aclose()
        if self._transcription is not None:
            await self._transcription.aclose()
        if self._notes is not None:
            await self._notes.aclose()


def _previous_note(raw: Optional[Dict[str, Any]], reconciler: NoteReconciler) -> Optional[Note]:
    if raw is None:
        return None
    try:
        return reconciler.reconcile(raw)
    except ReconciliationInvariantError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=f"Invalid previous_note: {exc}") from exc


async def stream_soap_events(
    notes: NotesService,
    request: RegenerationRequest,
    reconciler: NoteReconciler,
    token_timeout: float,
) -> AsyncIterator[str]:
    """One ``data`` event per normalized candidate note, then ``done``."""

    outcome: Optional[GenerationOutcome] = None
    emitted = 0
    rejection: Optional[str] = None
    async for item in assemble(notes.stream_note(request), token_timeout):
        if isinstance(item, DocumentCandidate):
            try:
                note = reconciler.reconcile(item.document, request.previous_note)
            except ReconciliationInvariantError as exc:
                LOGGER.warning("Skipping generated document: %s", exc)
                rejection = str(exc)
                continue
            emitted += 1
            yield format_sse(note.to_wire())
        else:
            outcome = item

    if outcome is not None and not outcome.succeeded:
        yield format_sse({"detail": outcome.detail}, event="error")
        yield format_sse("failed", event="done")
    elif not emitted:
        detail = f"generated document was rejected: {rejection}" if rejection else "no note generated"
        yield format_sse({"detail": detail}, event="error")
        yield format_sse("failed", event="done")
    else:
        yield format_sse("completed", event="done")


def create_app(
    settings: Optional[Settings] = None,
    transcription: Optional[TranscriptionService] = None,
    notes: Optional[NotesService] = None,
    session_factory: Optional[Callable[[], ScribeSession]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    services = _Services(settings, transcription, notes, session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await services.aclose()

    app = FastAPI(title="soapscribe", lifespan=lifespan)
    app.state.services = services

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        return {"status": "ok"}

    @app.post("/soap", tags=["notes"])
    async def generate_soap(body: SoapRequest) -> StreamingResponse:
        if not body.transcript or not body.transcript.strip():
            raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Missing transcript")
        notes_service = services.notes()
        reconciler = NoteReconciler(body.metadata)
        request = RegenerationRequest(
            token=uuid.uuid4().hex,
            input_transcript=body.transcript,
            previous_note=_previous_note(body.previous_note, reconciler),
            details=body.metadata,
        )
        LOGGER.info("Streaming note for %d transcript chars", len(request.input_transcript))
        return StreamingResponse(
            stream_soap_events(
                notes_service, request, reconciler, settings.generation_token_timeout_seconds
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/audio", tags=["transcription"])
    async def transcribe_audio(request: Request) -> dict:
        payload = await request.body()
        if not payload:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="No audio data received")
        try:
            encoding = sniff_encoding(payload)
            samples, _ = decode_wav(payload)
        except (wave.Error, EOFError, ValueError) as exc:
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unsupported audio payload: {exc}"
            ) from exc

        client = TranscriptionClient(services.transcription(), timeout=settings.transcription_timeout_seconds)
        chunk = AudioChunk(sequence_index=0, data=payload, encoding=encoding, frames=samples.shape[0])
        result = await client.transcribe(chunk)
        if not result.ok:
            raise HTTPException(_FAILURE_STATUS.get(result.failure, 503), detail=result.detail)
        return {"transcript": result.text}

    @app.post("/session/start", tags=["session"])
    async def start_session(metadata: Optional[EncounterDetails] = Body(default=None)) -> dict:
        session = services.session()
        try:
            await session.start_session(metadata)
        except SessionStateError as exc:
            raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except AudioResourceError as exc:
            raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return session.state.snapshot()

    @app.post("/session/stop", tags=["session"])
    async def stop_session() -> dict:
        session = services.active_session
        if session is None:
            raise HTTPException(status.HTTP_409_CONFLICT, detail="No session has been started")
        try:
            await session.stop_session()
        except SessionStateError as exc:
            raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return session.state.snapshot()

    @app.get("/session", tags=["session"])
    async def session_snapshot() -> dict:
        session = services.active_session
        if session is None:
            return {"phase": "idle", "transcript": "", "note": None}
        return session.state.snapshot()

    @app.get("/session/events", tags=["session"])
    async def session_events() -> StreamingResponse:
        session = services.session()
        queue = session.subscribe()

        async def relay() -> AsyncIterator[str]:
            try:
                async for message in session_event_stream(queue):
                    yield message
            finally:
                session.unsubscribe(queue)

        return StreamingResponse(relay(), media_type="text/event-stream", headers=SSE_HEADERS)

    return app


__all__ = ["SoapRequest", "create_app", "stream_soap_events"]
