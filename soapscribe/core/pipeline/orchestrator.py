"""Session orchestrator coordinating capture, transcription and note regeneration."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Callable, Optional, Set

from ...config import Settings, get_settings
from ...data.models import (
    EncounterDetails,
    Note,
    RegenerationRequest,
    SessionPhase,
    TranscriptResult,
    TranscriptSegment,
)
from ...errors import ReconciliationInvariantError, SessionStateError
from ...logging import get_logger
from ...services.notes.base import NotesService
from ...services.transcription.client import TranscriptionClient
from ..audio.base import AudioCapture
from ..audio.chunker import AudioChunker
from .accumulator import TranscriptAccumulator
from .assembler import DocumentCandidate, GenerationOutcome, assemble
from .messages import (
    DebounceElapsed,
    NoteCandidate,
    RegenerationCompleted,
    SegmentTranscribed,
    StopRequested,
)
from .reconciler import NoteReconciler
from .scheduler import RegenerationScheduler
from .state import SessionState

LOGGER = get_logger(__name__)


class ScribeSession:
    """Capture control surface for one live encounter.

    Producers (the capture loop, one task per chunk transcription, the
    regeneration stream and debounce timers) only post messages to a single
    channel. One consumer task applies them, so every change to
    :class:`SessionState` happens on one control path.
    """

    def __init__(
        self,
        transcription: TranscriptionClient,
        notes: Optional[NotesService],
        capture_factory: Callable[[], AudioCapture],
        settings: Optional[Settings] = None,
        state: Optional[SessionState] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        self.transcription = transcription
        self.notes = notes
        self.capture_factory = capture_factory
        self.chunk_seconds = settings.chunk_seconds
        self.poll_interval = settings.capture_poll_seconds
        self.debounce_seconds = settings.debounce_seconds
        self.token_timeout = settings.generation_token_timeout_seconds
        self.max_out_of_order = settings.max_out_of_order
        self.state = state or SessionState()
        self._clock = clock

        self.details: Optional[EncounterDetails] = None
        self.accumulator: Optional[TranscriptAccumulator] = None
        self.scheduler: Optional[RegenerationScheduler] = None
        self.reconciler: Optional[NoteReconciler] = None
        self._chunker: Optional[AudioChunker] = None
        self._channel: Optional[asyncio.Queue] = None
        self._stopped: Optional[asyncio.Future] = None
        self._capture_task: Optional[asyncio.Task] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._generation_task: Optional[asyncio.Task] = None
        self._transcription_tasks: Set[asyncio.Task] = set()
        self._wake_handle: Optional[asyncio.TimerHandle] = None
        self._round_committed = False
        self._stopping = False

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, device: Optional[str] = None
    ) -> "ScribeSession":
        """Build a session wired to the configured microphone and backends."""

        from ...services.factory import (
            ServiceConfigurationError,
            resolve_notes_backend,
            resolve_transcription_backend,
        )
        from ..audio.factory import CaptureRequest, create_capture

        settings = settings or get_settings()
        service = resolve_transcription_backend(settings.transcription_backend, settings)
        if service is None:
            raise ServiceConfigurationError("A transcription backend is required for live sessions")
        notes = resolve_notes_backend(settings.notes_backend, settings)
        request = CaptureRequest.from_settings(settings, device)
        return cls(
            TranscriptionClient(service, timeout=settings.transcription_timeout_seconds),
            notes,
            lambda: create_capture(request),
            settings=settings,
        )

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    def subscribe(self) -> asyncio.Queue:
        return self.state.subscribe()

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self.state.unsubscribe(queue)

    async def start_session(self, metadata: Optional[EncounterDetails] = None) -> None:
        if self.state.phase not in (SessionPhase.IDLE, SessionPhase.STOPPED):
            raise SessionStateError(f"Cannot start a session while {self.state.phase.value}")

        chunker = AudioChunker(self.capture_factory(), self.chunk_seconds, self.poll_interval)
        try:
            chunker.open()
        except Exception:
            self.state.reset()
            raise

        self.state.begin()
        self.details = metadata
        self._chunker = chunker
        self._stopping = False
        self._transcription_tasks = set()
        self.accumulator = TranscriptAccumulator(self.state, self.max_out_of_order)
        self.reconciler = NoteReconciler(metadata, visit_timestamp=self.state.started_at)
        self.scheduler = RegenerationScheduler(
            self.state,
            self._dispatch,
            debounce_seconds=self.debounce_seconds,
            wake=self._schedule_wake,
            clock=self._clock,
            details=metadata,
        )

        loop = asyncio.get_running_loop()
        self._channel = asyncio.Queue()
        self._stopped = loop.create_future()
        self._consumer_task = asyncio.create_task(self._consume())
        self._capture_task = asyncio.create_task(self._capture(chunker))
        LOGGER.info("Session started")

    async def stop_session(self) -> Optional[Note]:
        """Stop capture and wait for every pending result, then return the final note.

        In-flight transcriptions and the in-flight regeneration are awaited,
        never cancelled.
        """

        if self.state.phase is not SessionPhase.RECORDING:
            raise SessionStateError(f"Cannot stop a session while {self.state.phase.value}")
        assert self._chunker is not None and self._channel is not None and self._stopped is not None

        self.state.transition(SessionPhase.STOPPING)
        self._chunker.stop()
        try:
            if self._capture_task is not None:
                await self._capture_task
            if self._transcription_tasks:
                await asyncio.gather(*list(self._transcription_tasks))
            self._channel.put_nowait(StopRequested())
            await self._stopped
        finally:
            self._cancel_wake()
            if self._generation_task is not None and not self._generation_task.done():
                self._generation_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._generation_task
            if self._consumer_task is not None and not self._consumer_task.done():
                self._consumer_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._consumer_task
            self.state.transition(SessionPhase.STOPPED)
        LOGGER.info("Session stopped with %d transcript chars", len(self.state.transcript_text))
        return self.state.current_note

    async def aclose(self) -> None:
        if self.state.phase is SessionPhase.RECORDING:
            await self.stop_session()
        await self.transcription.aclose()
        if self.notes is not None:
            await self.notes.aclose()

    async def _capture(self, chunker: AudioChunker) -> None:
        try:
            async for chunk in chunker.chunks():
                task = asyncio.create_task(self._transcribe(chunk))
                self._transcription_tasks.add(task)
                task.add_done_callback(self._transcription_tasks.discard)
        except Exception:
            LOGGER.exception("Audio capture ended unexpectedly")

    async def _transcribe(self, chunk) -> None:
        result = await self.transcription.transcribe(chunk)
        self._post(SegmentTranscribed(result))

    def _dispatch(self, request: RegenerationRequest) -> None:
        self._round_committed = False
        self._generation_task = asyncio.create_task(self._generate(request))

    async def _generate(self, request: RegenerationRequest) -> None:
        assert self.notes is not None
        succeeded = False
        error: Optional[str] = None
        try:
            async for item in assemble(self.notes.stream_note(request), self.token_timeout):
                if isinstance(item, DocumentCandidate):
                    self._post(NoteCandidate(request.token, item.document))
                elif isinstance(item, GenerationOutcome):
                    succeeded = item.succeeded
                    error = item.detail
        except Exception as exc:
            LOGGER.exception("Regeneration %s crashed", request.token)
            error = str(exc)
        self._post(RegenerationCompleted(request.token, succeeded, error))

    def _post(self, message: object) -> None:
        if self._channel is not None:
            self._channel.put_nowait(message)

    def _schedule_wake(self, delay: float) -> None:
        self._cancel_wake()
        loop = asyncio.get_running_loop()
        self._wake_handle = loop.call_later(delay, self._post, DebounceElapsed())

    def _cancel_wake(self) -> None:
        if self._wake_handle is not None:
            self._wake_handle.cancel()
            self._wake_handle = None

    async def _consume(self) -> None:
        assert self._channel is not None and self._stopped is not None
        try:
            while True:
                message = await self._channel.get()
                if isinstance(message, SegmentTranscribed):
                    self._on_segment(message.result)
                elif isinstance(message, NoteCandidate):
                    self._on_candidate(message)
                elif isinstance(message, RegenerationCompleted):
                    self._on_completed(message)
                elif isinstance(message, DebounceElapsed):
                    if self.notes is not None and not self._stopping:
                        self.scheduler.on_debounce_elapsed()
                elif isinstance(message, StopRequested):
                    self._on_stop_requested()
                if self._stopping and (self.notes is None or self.scheduler.done):
                    break
        except Exception as exc:
            LOGGER.exception("Session consumer failed")
            if not self._stopped.done():
                self._stopped.set_exception(exc)
            return
        if not self._stopped.done():
            self._stopped.set_result(None)

    def _on_segment(self, result: TranscriptResult) -> None:
        if result.ok and result.text:
            grew = self.accumulator.apply(
                TranscriptSegment(sequence_index=result.sequence_index, text=result.text)
            )
        else:
            grew = self.accumulator.skip(result.sequence_index)
        if grew and self.notes is not None and not self._stopping:
            self.scheduler.on_transcript_growth()

    def _on_candidate(self, message: NoteCandidate) -> None:
        request = self.scheduler.in_flight
        if request is None or request.token != message.token:
            LOGGER.debug("Discarding candidate from stale regeneration %s", message.token)
            return
        try:
            self.reconciler.commit(
                self.state, message.document, request.previous_note, request.input_transcript
            )
        except ReconciliationInvariantError as exc:
            LOGGER.error("Rejected generated note: %s", exc)
            self._round_committed = False
        else:
            self._round_committed = True

    def _on_completed(self, message: RegenerationCompleted) -> None:
        succeeded = message.succeeded and self._round_committed
        error = message.error
        if message.succeeded and not self._round_committed:
            error = "generated document was rejected"
        self.state.regeneration_finished(message.token, succeeded, error)
        self.scheduler.on_request_finished(message.token, succeeded)

    def _on_stop_requested(self) -> None:
        self._stopping = True
        self._cancel_wake()
        grew = self.accumulator.flush()
        if grew:
            LOGGER.debug("Flushed buffered segments at stop")
        if self.notes is not None:
            self.scheduler.finalize()


__all__ = ["ScribeSession"]
