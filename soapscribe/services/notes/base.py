"""Notes generation service abstractions."""

from __future__ import annotations

import abc
from typing import AsyncIterator

from ...data.models import RegenerationRequest


class NotesService(abc.ABC):
    """Stream the tokens of a complete SOAP note document.

    Each call is one regeneration round. Transport failures before or during
    the stream surface as :class:`~soapscribe.errors.GenerationTransportError`.
    """

    name = "notes"

    @abc.abstractmethod
    def stream_note(self, request: RegenerationRequest) -> AsyncIterator[str]:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network clients held by the service."""


__all__ = ["NotesService"]
