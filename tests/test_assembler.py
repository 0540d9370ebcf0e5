"""Tests for speculative document assembly."""

from __future__ import annotations

import asyncio
import json
import random
from typing import AsyncIterator, Iterable, List

import pytest

from soapscribe.core.pipeline.assembler import (
    DocumentCandidate,
    GenerationOutcome,
    StreamingDocumentAssembler,
    assemble,
)
from soapscribe.errors import GenerationParseError, GenerationTransportError

DOCUMENT = {
    "metadata": {"patient_name": "Jane Doe", "medications_list": ["ibuprofen"]},
    "subjective": "a",
    "objective": "b",
    "assessment": "c",
    "plan": "d",
}
TEXT = json.dumps(DOCUMENT)


def _random_split(text: str, seed: int) -> List[str]:
    rng = random.Random(seed)
    pieces, start = [], 0
    while start < len(text):
        size = rng.randint(1, 7)
        pieces.append(text[start : start + size])
        start += size
    return pieces


async def _tokens(pieces: Iterable[str], error: Exception | None = None) -> AsyncIterator[str]:
    for piece in pieces:
        await asyncio.sleep(0)
        yield piece
    if error is not None:
        raise error


def _run(source, token_timeout: float = 1.0) -> list:
    async def _collect() -> list:
        return [item async for item in assemble(source, token_timeout)]

    return asyncio.run(_collect())


@pytest.mark.parametrize("seed", range(5))
def test_arbitrary_split_yields_exactly_one_candidate(seed) -> None:
    assembler = StreamingDocumentAssembler()
    pieces = _random_split(TEXT, seed)

    candidates = [c for c in (assembler.feed(piece) for piece in pieces) if c is not None]

    assert len(candidates) == 1
    assert candidates[0].document == DOCUMENT
    assert candidates[0].position == len(TEXT)


def test_strict_prefixes_never_yield_candidates() -> None:
    assembler = StreamingDocumentAssembler()

    for char in TEXT[:-1]:
        assert assembler.feed(char) is None

    assert assembler.feed(TEXT[-1]).document == DOCUMENT


def test_trailing_whitespace_does_not_duplicate_candidate() -> None:
    assembler = StreamingDocumentAssembler()
    assembler.feed(TEXT)

    assert assembler.feed("\n  ") is None
    assert assembler.candidates == 1


def test_trailing_garbage_keeps_last_candidate_authoritative() -> None:
    items = _run(_tokens([TEXT[:10], TEXT[10:], "\n```"]))

    assert isinstance(items[0], DocumentCandidate)
    outcome = items[-1]
    assert isinstance(outcome, GenerationOutcome)
    assert outcome.succeeded
    assert outcome.document == DOCUMENT
    assert outcome.candidates == 1


def test_stream_without_document_is_parse_failure() -> None:
    items = _run(_tokens(['{"subjective": "a"', ", "]))

    assert len(items) == 1
    outcome = items[0]
    assert not outcome.succeeded
    assert outcome.document is None
    assert isinstance(outcome.error, GenerationParseError)


def test_transport_error_is_reported_with_detail() -> None:
    items = _run(_tokens(['{"sub'], GenerationTransportError("HTTP 502 from oracle")))

    outcome = items[-1]
    assert not outcome.succeeded
    assert isinstance(outcome.error, GenerationTransportError)
    assert "502" in outcome.detail


def test_token_gap_longer_than_timeout_fails_the_round() -> None:
    async def _stalled() -> AsyncIterator[str]:
        yield '{"subjective": '
        await asyncio.sleep(1.0)
        yield '"a"}'

    items = _run(_stalled(), token_timeout=0.02)

    assert len(items) == 1
    assert not items[0].succeeded
    assert "no token" in items[0].detail
