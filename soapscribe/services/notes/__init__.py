"""SOAP note generation services."""

from .base import NotesService
from .dummy import DummyNotesService

__all__ = ["DummyNotesService", "NotesService"]
