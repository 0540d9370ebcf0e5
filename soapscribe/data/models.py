"""Data models used by soapscribe."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

SOAP_SECTIONS = ("subjective", "objective", "assessment", "plan")


class SessionPhase(str, enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AudioEncoding:
    """Encoding tag sent alongside every chunk."""

    sample_rate: int
    channels: int
    codec: str = "linear16"
    container: str = "wav"

    @property
    def mime_type(self) -> str:
        return f"audio/{self.container}"


@dataclass(frozen=True)
class AudioChunk:
    """One bounded window of captured audio, encoded and ready to upload."""

    sequence_index: int
    data: bytes
    encoding: AudioEncoding
    frames: int

    @property
    def duration(self) -> float:
        if self.encoding.sample_rate <= 0:
            return 0.0
        return self.frames / float(self.encoding.sample_rate)

    @property
    def filename(self) -> str:
        return f"chunk-{self.sequence_index:05d}.{self.encoding.container}"


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence_index: int = Field(ge=0)
    text: str = Field(min_length=1)


class TranscriptResult(BaseModel):
    """Outcome of transcribing one chunk: recognized text or a typed failure."""

    sequence_index: int
    text: str = ""
    failure: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class EncounterDetails(BaseModel):
    """Clinician-entered metadata seeded into every regeneration."""

    model_config = ConfigDict(populate_by_name=True)

    patient_name: Optional[str] = None
    clinician_name: Optional[str] = None
    chief_complaint: Optional[str] = None
    medications: List[str] = Field(default_factory=list, alias="medications_list")


class NoteMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    patient_name: Optional[str] = None
    clinician_name: Optional[str] = None
    visit_timestamp: datetime = Field(alias="visit_datetime")
    chief_complaint: Optional[str] = None
    medications: List[str] = Field(default_factory=list, alias="medications_list")


class Note(BaseModel):
    """A complete SOAP note. Always replaced as a whole, never patched."""

    model_config = ConfigDict(frozen=True)

    metadata: NoteMetadata
    subjective: str = Field(min_length=1)
    objective: str = Field(min_length=1)
    assessment: str = Field(min_length=1)
    plan: str = Field(min_length=1)
    diff: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class RegenerationRequest:
    token: str
    input_transcript: str
    previous_note: Optional[Note] = None
    details: Optional[EncounterDetails] = None
    forced: bool = False
    issued_at: float = 0.0

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "transcript": self.input_transcript,
            "previous_note": self.previous_note.to_wire() if self.previous_note else None,
        }
        if self.details is not None:
            body["metadata"] = self.details.model_dump(mode="json", by_alias=True)
        return body


@dataclass
class OrderingViolation:
    """Recorded when buffered segments are flushed past missing indices."""

    missing: List[int]
    flushed: List[int] = field(default_factory=list)


__all__ = [
    "AudioChunk",
    "AudioEncoding",
    "EncounterDetails",
    "Note",
    "NoteMetadata",
    "OrderingViolation",
    "RegenerationRequest",
    "SOAP_SECTIONS",
    "SessionPhase",
    "TranscriptResult",
    "TranscriptSegment",
]
