"""Turn decoded generation output into a valid :class:`Note` and diff it."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ...data.models import SOAP_SECTIONS, EncounterDetails, Note, NoteMetadata
from ...errors import ReconciliationInvariantError
from ...logging import get_logger
from .state import SessionState

LOGGER = get_logger(__name__)

PLACEHOLDER = "[no information]"
INITIAL_DIFF = "Initial SOAP note generated"
_TEXT_METADATA = ("patient_name", "clinician_name", "chief_complaint")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def note_lines(note: Note) -> Dict[str, List[str]]:
    """Split a note into comparable lines keyed by wire field name."""

    metadata = note.metadata
    lines: Dict[str, List[str]] = {}
    for name in _TEXT_METADATA:
        value = getattr(metadata, name)
        lines[name] = [value] if value else []
    lines["visit_datetime"] = [metadata.visit_timestamp.isoformat()]
    lines["medications_list"] = list(metadata.medications)
    for section in SOAP_SECTIONS:
        lines[section] = getattr(note, section).split("\n")
    return lines


def compute_diff(new: Note, previous: Optional[Note]) -> List[str]:
    """List lines present in ``new`` but absent from the same field of ``previous``.

    Removed and unchanged lines produce no entries.
    """

    if previous is None:
        return [INITIAL_DIFF]
    old_lines = note_lines(previous)
    entries: List[str] = []
    for name, lines in note_lines(new).items():
        known = set(old_lines.get(name, []))
        for line in lines:
            if line.strip() and line not in known:
                entries.append(f"{name}: {line}")
    return entries


class NoteReconciler:
    """Fill in whatever the generation oracle left out and commit the result.

    Metadata falls back to the clinician-entered ``details`` and then to
    ``None``/``[]``; sections fall back to :data:`PLACEHOLDER`; the visit time
    falls back to the previous note's and then to ``visit_timestamp``.
    """

    def __init__(
        self,
        details: Optional[EncounterDetails] = None,
        visit_timestamp: Optional[datetime] = None,
    ) -> None:
        self.details = details or EncounterDetails()
        self.visit_timestamp = visit_timestamp

    def normalize(self, raw: Any, previous: Optional[Note] = None) -> Note:
        if not isinstance(raw, dict):
            raise ReconciliationInvariantError(
                f"Generated document must be a JSON object, got {type(raw).__name__}"
            )
        raw_metadata = raw.get("metadata")
        if raw_metadata is None:
            raw_metadata = {}
        if not isinstance(raw_metadata, dict):
            raise ReconciliationInvariantError("Generated metadata must be a JSON object")

        metadata: Dict[str, Any] = {}
        for name in _TEXT_METADATA:
            metadata[name] = self._text_field(name, raw_metadata.get(name), getattr(self.details, name))
        metadata["medications_list"] = self._medications(raw_metadata.get("medications_list"))
        metadata["visit_datetime"] = self._visit_timestamp(raw_metadata.get("visit_datetime"), previous)

        sections = {section: self._section(section, raw.get(section)) for section in SOAP_SECTIONS}
        try:
            return Note(metadata=NoteMetadata(**metadata), **sections)
        except ValidationError as exc:
            raise ReconciliationInvariantError(f"Note failed validation: {exc}") from exc

    def reconcile(self, raw: Any, previous: Optional[Note] = None) -> Note:
        note = self.normalize(raw, previous)
        return note.model_copy(update={"diff": compute_diff(note, previous)})

    def commit(self, state: SessionState, raw: Any, baseline: Optional[Note], transcript: str) -> Note:
        """Replace ``state.current_note`` with the reconciled ``raw`` document.

        ``baseline`` is the note the generation request was built from; the
        diff is computed against it. On failure the state is left untouched.
        """

        note = self.reconcile(raw, baseline)
        state.commit_note(note, transcript)
        LOGGER.info("Committed note with %d diff entr%s", len(note.diff), "y" if len(note.diff) == 1 else "ies")
        return note

    def _text_field(self, name: str, value: Any, fallback: Optional[str]) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return fallback
        if not isinstance(value, str):
            raise ReconciliationInvariantError(f"metadata.{name} must be a string or null")
        return value.strip()

    def _medications(self, value: Any) -> List[str]:
        if not isinstance(value, list):
            if value is not None:
                LOGGER.warning("Ignoring medications_list of type %s", type(value).__name__)
            return list(self.details.medications)
        medications: List[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ReconciliationInvariantError("medications_list entries must be strings")
            if item.strip():
                medications.append(item.strip())
        return medications

    def _visit_timestamp(self, value: Any, previous: Optional[Note]) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed
        if value not in (None, ""):
            LOGGER.warning("Unparseable visit_datetime %r; using session start", value)
        if previous is not None:
            return previous.metadata.visit_timestamp
        return self.visit_timestamp or datetime.now(timezone.utc)

    def _section(self, name: str, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return PLACEHOLDER
        if not isinstance(value, str):
            raise ReconciliationInvariantError(f"{name} must be a string")
        return value


__all__ = [
    "INITIAL_DIFF",
    "NoteReconciler",
    "PLACEHOLDER",
    "compute_diff",
    "note_lines",
    "parse_timestamp",
]
