"""Restore capture order over transcription results that resolve out of order."""

from __future__ import annotations

from typing import Dict, Optional

from ...data.models import OrderingViolation, TranscriptSegment
from ...errors import TranscriptConflictError
from ...logging import get_logger
from .state import SessionState

LOGGER = get_logger(__name__)


class TranscriptAccumulator:
    """Apply transcript segments to a :class:`SessionState` in ``sequence_index`` order.

    Segments ahead of the next expected index are held back until the gap is
    filled. Chunks that produced no text (silence or a failed call) must be
    reported through :meth:`skip` so the gap they leave can close. When more
    than ``max_out_of_order`` segments are waiting, they are flushed in arrival
    order and an :class:`OrderingViolation` is recorded on the state.
    """

    def __init__(self, state: SessionState, max_out_of_order: int = 8) -> None:
        if max_out_of_order < 1:
            raise ValueError("max_out_of_order must be at least 1")
        self.state = state
        self.max_out_of_order = max_out_of_order
        self.next_expected = 0
        self._seen: Dict[int, str] = {}
        # Insertion order is arrival order; ``None`` marks a skipped index.
        self._pending: Dict[int, Optional[TranscriptSegment]] = {}

    def current_text(self) -> str:
        return self.state.transcript_text

    @property
    def buffered(self) -> int:
        return len(self._pending)

    def apply(self, segment: TranscriptSegment) -> bool:
        """Record ``segment``; return ``True`` when the visible transcript grew."""

        index = segment.sequence_index
        text = segment.text.strip()
        if not text:
            return self.skip(index)
        if text != segment.text:
            segment = segment.model_copy(update={"text": text})
        if not self._remember(index, text):
            return False
        if index < self.next_expected:
            LOGGER.warning("Segment %s arrived after its position was flushed; appending", index)
            self.state.record_violation(OrderingViolation(missing=[], flushed=[index]))
            self.state.append_segment(segment)
            return True
        self._pending[index] = segment
        return self._advance()

    def skip(self, index: int) -> bool:
        """Mark ``index`` as contributing no text."""

        if not self._remember(index, ""):
            return False
        if index < self.next_expected:
            return False
        self._pending[index] = None
        return self._advance()

    def flush(self) -> bool:
        """Apply everything still buffered in index order. Used once capture has ended."""

        if not self._pending:
            return False
        ordered = sorted(self._pending)
        return self._release(ordered)

    def _remember(self, index: int, text: str) -> bool:
        if index in self._seen:
            if self._seen[index] != text:
                raise TranscriptConflictError(
                    f"Segment {index} re-applied with different text "
                    f"({self._seen[index]!r} != {text!r})"
                )
            return False
        self._seen[index] = text
        return True

    def _advance(self) -> bool:
        grew = False
        while self.next_expected in self._pending:
            segment = self._pending.pop(self.next_expected)
            if segment is not None:
                self.state.append_segment(segment)
                grew = True
            self.next_expected += 1
        if len(self._pending) > self.max_out_of_order:
            grew = self._release(list(self._pending)) or grew
        return grew

    def _release(self, indices: list) -> bool:
        highest = max(indices)
        missing = [
            index for index in range(self.next_expected, highest) if index not in self._pending
        ]
        flushed = [index for index in indices if self._pending[index] is not None]
        if missing:
            LOGGER.warning(
                "Flushing %d buffered segment(s) past missing index(es) %s",
                len(flushed),
                missing,
            )
            self.state.record_violation(OrderingViolation(missing=missing, flushed=flushed))
        grew = False
        for index in indices:
            segment = self._pending.pop(index)
            if segment is not None:
                self.state.append_segment(segment)
                grew = True
        self.next_expected = highest + 1
        return grew


__all__ = ["TranscriptAccumulator"]
