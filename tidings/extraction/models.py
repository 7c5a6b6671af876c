"""
Tidings Classification Models
-----------------------------
Pydantic schemas for AI classification of ingested records.

``RawClassification`` is the response schema handed to Instructor (the LLM
sees the Field descriptions). ``to_classification`` turns that loose
string-typed response into a closed tagged union, one variant per entity
kind, which the router matches exhaustively.
"""

import time
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

RECOGNIZED_TYPES = ("contact", "event", "note", "ingest")
DEFAULT_EVENT_TYPE = "일반"

# Epoch values above this are milliseconds
_MILLIS_THRESHOLD = 1e11


def coerce_timestamp(value: Any) -> Optional[float]:
    """Accept seconds, milliseconds, numeric strings or ISO-8601 strings."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        ts = float(value)
    else:
        text = str(value).strip()
        try:
            ts = float(text)
        except ValueError:
            try:
                ts = datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
            except ValueError:
                return None
    if ts <= 0:
        return None
    return ts / 1000.0 if ts > _MILLIS_THRESHOLD else ts


class ExtractedFields(BaseModel):
    """Fields the classifier may pull out of a record. Every field is optional."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, description="Person name (contact).")
    email: Optional[str] = Field(default=None, description="Email address (contact).")
    phone: Optional[str] = Field(default=None, description="Phone number (contact).")
    title: Optional[str] = Field(default=None, description="Short title (event or note).")
    body: Optional[str] = Field(default=None, description="Key content worth keeping (note).")
    start_at: Optional[float] = Field(
        default=None,
        alias="startAt",
        description="Event start as epoch milliseconds, digits only; null if unknown.",
    )
    end_at: Optional[float] = Field(
        default=None,
        alias="endAt",
        description="Event end as epoch milliseconds, digits only; null if unknown.",
    )
    location: Optional[str] = Field(default=None, description="Event location.")
    event_type: Optional[str] = Field(
        default=None,
        alias="type",
        description="Event category, e.g. 회의, 약속, 생일, 마감.",
    )

    @field_validator("start_at", "end_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Optional[float]:
        return coerce_timestamp(value)

    @field_validator("name", "email", "phone", "title", "body", "location", "event_type", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text.lower() in ("null", "none", "없음"):
            return None
        return text


class RawClassification(BaseModel):
    """Classifier response: entity kind, confidence and extracted fields."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(description="One of: contact, event, note, ingest.")
    confidence: float = Field(default=0.5, description="Classification confidence from 0.0 to 1.0.")
    extracted_fields: ExtractedFields = Field(
        default_factory=ExtractedFields,
        alias="extractedData",
        description="Structured fields extracted from the text.",
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            return max(0.0, min(1.0, float(value)))
        except (TypeError, ValueError):
            return 0.5


# ---------------------------------------------------------------------------
# Tagged classification variants
# ---------------------------------------------------------------------------

class ContactClassification(BaseModel):
    kind: Literal["contact"] = "contact"
    confidence: float = 0.0
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class EventClassification(BaseModel):
    kind: Literal["event"] = "event"
    confidence: float = 0.0
    title: Optional[str] = None
    body: Optional[str] = None
    start_at: Optional[float] = None
    end_at: Optional[float] = None
    location: Optional[str] = None
    type_name: str = DEFAULT_EVENT_TYPE


class NoteClassification(BaseModel):
    kind: Literal["note"] = "note"
    confidence: float = 0.0
    title: Optional[str] = None
    body: Optional[str] = None


class GenericClassification(BaseModel):
    kind: Literal["generic"] = "generic"
    confidence: float = 0.0


Classification = Annotated[
    Union[ContactClassification, EventClassification, NoteClassification, GenericClassification],
    Field(discriminator="kind"),
]


def to_classification(raw: RawClassification) -> Classification:
    """Normalize the type string (case-insensitive); anything unrecognized is a note."""
    kind = (raw.type or "").strip().lower()
    fields = raw.extracted_fields
    if kind == "contact":
        return ContactClassification(
            confidence=raw.confidence, name=fields.name, email=fields.email, phone=fields.phone,
        )
    if kind == "event":
        return EventClassification(
            confidence=raw.confidence,
            title=fields.title,
            body=fields.body,
            start_at=fields.start_at,
            end_at=fields.end_at,
            location=fields.location,
            type_name=fields.event_type or DEFAULT_EVENT_TYPE,
        )
    if kind == "ingest":
        return GenericClassification(confidence=raw.confidence)
    return NoteClassification(confidence=raw.confidence, title=fields.title, body=fields.body)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

CLASSIFICATION_SYSTEM_PROMPT = """You classify personal messages (emails, push notifications, SMS, OCR text) for a Korean/English personal assistant.

Choose exactly one type:
- contact: introductions, greetings or business outreach that carry a person's name, email or phone, with no concrete appointment.
- event: meetings, appointments, invitations, deadlines or schedule changes. Anything mentioning 만나자, 약속, 미팅, 회의 or a concrete date/time for something to attend is an event.
- note: everything else worth keeping: account/security/payment notices, newsletters, marketing, to-dos, service messages.
- ingest: only when the text is unintelligible or empty.

Extract only what the text states. Use null for anything missing; never invent values.
startAt/endAt are epoch milliseconds as plain digits.
Return pure JSON without comments."""


def build_user_prompt(title: Optional[str], body: Optional[str], source: Optional[str] = None) -> str:
    kind = {"email": "email", "push": "push notification", "sms": "text message", "ocr": "scanned text"}.get(
        source or "", "message"
    )
    today = datetime.fromtimestamp(time.time()).strftime("%Y-%m-%d")
    return (
        f"Classify the following {kind} (today is {today}).\n\n"
        f"Title: {title or '없음'}\n"
        f"Body: {(body or '없음')[:3000]}"
    )
