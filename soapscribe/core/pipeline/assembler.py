"""Speculative JSON assembly over a streamed token sequence."""

from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional, Union

from ...errors import GenerationError, GenerationParseError, GenerationTransportError
from ...logging import get_logger

LOGGER = get_logger(__name__)

_NOTHING = object()


@dataclass(frozen=True)
class DocumentCandidate:
    document: Any
    position: int


@dataclass
class GenerationOutcome:
    succeeded: bool
    document: Any = None
    error: Optional[GenerationError] = None
    candidates: int = 0

    @property
    def detail(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


class StreamingDocumentAssembler:
    """Accumulate tokens and try to decode the whole buffer after each one.

    A failed decode just means the document is not finished yet. A successful
    decode is returned as a new candidate unless it equals the previous one
    (trailing whitespace after the closing brace decodes to the same value).
    """

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._last: Any = _NOTHING
        self.candidates = 0

    @property
    def buffer(self) -> str:
        return "".join(self._parts)

    @property
    def last_document(self) -> Any:
        return None if self._last is _NOTHING else self._last

    def feed(self, token: str) -> Optional[DocumentCandidate]:
        if not token:
            return None
        self._parts.append(token)
        text = self.buffer
        try:
            document = json.loads(text)
        except ValueError:
            LOGGER.debug("Buffer of %d chars is not a complete document yet", len(text))
            return None
        if self._last is not _NOTHING and document == self._last:
            return None
        self._last = document
        self.candidates += 1
        return DocumentCandidate(document=document, position=len(text))

    def finish(self, error: Optional[GenerationError] = None) -> GenerationOutcome:
        if error is not None:
            return GenerationOutcome(succeeded=False, error=error, candidates=self.candidates)
        if self._last is _NOTHING:
            return GenerationOutcome(
                succeeded=False,
                error=GenerationParseError(
                    f"stream ended after {len(self.buffer)} chars without a complete JSON document"
                ),
            )
        return GenerationOutcome(succeeded=True, document=self._last, candidates=self.candidates)


async def assemble(
    tokens: AsyncIterator[str], token_timeout: float = 30.0
) -> AsyncIterator[Union[DocumentCandidate, GenerationOutcome]]:
    """Yield each new candidate, then exactly one :class:`GenerationOutcome`.

    A gap of more than ``token_timeout`` seconds between tokens fails the
    round. Transport errors raised by the token source are reported in the
    outcome rather than propagated.
    """

    assembler = StreamingDocumentAssembler()
    iterator = tokens.__aiter__()
    error: Optional[GenerationError] = None
    try:
        while True:
            try:
                token = await asyncio.wait_for(iterator.__anext__(), timeout=token_timeout)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                error = GenerationTransportError(f"no token received within {token_timeout:.1f}s")
                break
            except GenerationError as exc:
                error = exc
                break
            candidate = assembler.feed(token)
            if candidate is not None:
                yield candidate
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            with contextlib.suppress(Exception):
                await aclose()

    outcome = assembler.finish(error)
    if not outcome.succeeded:
        LOGGER.warning("Note generation failed: %s", outcome.detail)
    yield outcome


__all__ = [
    "DocumentCandidate",
    "GenerationOutcome",
    "StreamingDocumentAssembler",
    "assemble",
]
