"""Pace note regeneration against the generation oracle."""

from __future__ import annotations

import time
import uuid
from typing import Callable, Optional

from ...data.models import EncounterDetails, RegenerationRequest
from ...logging import get_logger
from .state import SessionState

LOGGER = get_logger(__name__)


class RegenerationScheduler:
    """Decide when a :class:`RegenerationRequest` is issued.

    At most one request is in flight (tracked by ``state.pending_token``) and
    two unforced requests are never issued less than ``debounce_seconds``
    apart. Requests always carry the transcript as it is when they are issued.

    ``dispatch`` starts the request; ``wake`` is asked to call
    :meth:`on_debounce_elapsed` after the given delay whenever work is waiting
    only on the debounce window.
    """

    def __init__(
        self,
        state: SessionState,
        dispatch: Callable[[RegenerationRequest], None],
        debounce_seconds: float = 5.0,
        wake: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        details: Optional[EncounterDetails] = None,
    ) -> None:
        self.state = state
        self.debounce_seconds = debounce_seconds
        self.details = details
        self._dispatch = dispatch
        self._wake = wake
        self._clock = clock
        self.in_flight: Optional[RegenerationRequest] = None
        self.issued = 0
        self.reset()

    def reset(self) -> None:
        """Start a new debounce window at the current time."""

        self._last_issued = self._clock()
        self._desired = False
        self._wake_pending = False
        self._finalizing = False
        self._final_issued = False
        self.in_flight = None

    @property
    def desired(self) -> bool:
        return self._desired

    @property
    def needs_final(self) -> bool:
        text = self.state.transcript_text
        return bool(text) and text != self.state.reflected_transcript

    @property
    def done(self) -> bool:
        """True once finalization has nothing left to issue or await."""

        if not self._finalizing or self.in_flight is not None:
            return False
        return self._final_issued or not self.needs_final

    def on_transcript_growth(self) -> Optional[RegenerationRequest]:
        if not self.state.transcript_text:
            return None
        self._desired = True
        return self._maybe_issue()

    def on_debounce_elapsed(self) -> Optional[RegenerationRequest]:
        self._wake_pending = False
        return self._maybe_issue()

    def on_request_finished(self, token: str, succeeded: bool) -> Optional[RegenerationRequest]:
        if self.in_flight is None or self.in_flight.token != token:
            LOGGER.debug("Ignoring completion of stale regeneration %s", token)
            return None
        self.state.clear_in_flight(token)
        self.in_flight = None
        if not succeeded:
            LOGGER.warning("Regeneration %s failed; keeping the previous note", token)
            self._desired = True
        elif self.state.transcript_text != self.state.reflected_transcript:
            self._desired = True
        return self._maybe_issue()

    def finalize(self) -> Optional[RegenerationRequest]:
        """Switch to stop mode: one forced request if the note lags the transcript."""

        self._finalizing = True
        return self._maybe_issue()

    def _maybe_issue(self) -> Optional[RegenerationRequest]:
        if self.in_flight is not None:
            return None
        if self._finalizing:
            if self._final_issued or not self.needs_final:
                return None
            self._final_issued = True
            return self._issue(forced=True)
        if not self._desired:
            return None
        remaining = self._last_issued + self.debounce_seconds - self._clock()
        if remaining > 0:
            if self._wake is not None and not self._wake_pending:
                self._wake_pending = True
                self._wake(remaining)
            return None
        return self._issue(forced=False)

    def _issue(self, forced: bool) -> RegenerationRequest:
        now = self._clock()
        request = RegenerationRequest(
            token=uuid.uuid4().hex,
            input_transcript=self.state.transcript_text,
            previous_note=self.state.current_note,
            details=self.details,
            forced=forced,
            issued_at=now,
        )
        self.state.mark_in_flight(request.token)
        self.in_flight = request
        self._last_issued = now
        self._desired = False
        self.issued += 1
        LOGGER.info(
            "Issuing %sregeneration %s (%d transcript chars)",
            "forced " if forced else "",
            request.token,
            len(request.input_transcript),
        )
        self._dispatch(request)
        return request


__all__ = ["RegenerationScheduler"]
