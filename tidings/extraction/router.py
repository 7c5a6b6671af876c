"""
Tidings Classification Router
-----------------------------
Classifies an enriched record and writes:

1. the generic record itself, always, even when classification failed, and
2. at most one structured entity (contact / event / note) derived from it.

Classifier failures and timeouts fall back to a zero-confidence note.
Entity write failures after the generic write are logged and tolerated:
the entity can be re-derived from the stored record.

Event start times are reconciled between the classifier's ``startAt`` and
a deterministic TimeResolver pass over the same text. When both exist and
disagree the resolver wins; when only one exists it is used; with neither,
the record's own timestamp is used.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from tidings.core.results import Failed, call_external
from tidings.core.types import Contact, Event, Note, Record
from tidings.extraction.instructor_classifier import Classifier
from tidings.extraction.models import (
    Classification,
    ContactClassification,
    EventClassification,
    GenericClassification,
    NoteClassification,
    to_classification,
)
from tidings.retrieval.temporal_parser import TimeResolver, get_time_resolver
from tidings.store.record_store import RecordStore

logger = logging.getLogger("Tidings.Router")

DEFAULT_CLASSIFIER_TIMEOUT = 30.0

Entity = Union[Contact, Event, Note]


@dataclass
class RouteOutcome:
    record: Record
    classification: Classification
    entity: Optional[Entity] = None
    classifier_failed: bool = False
    classifier_timed_out: bool = False
    entity_error: Optional[str] = None


def reconcile_start(
    ai_start: Optional[float],
    resolved_start: Optional[float],
    fallback: float,
) -> float:
    """Pick an event start: resolver over classifier on disagreement, else whichever exists."""
    if ai_start is not None and resolved_start is not None:
        if ai_start != resolved_start:
            logger.debug("Classifier start %s overridden by resolver %s", ai_start, resolved_start)
        return resolved_start
    if resolved_start is not None:
        return resolved_start
    if ai_start is not None:
        return ai_start
    return fallback


class ClassificationRouter:
    def __init__(
        self,
        store: RecordStore,
        classifier: Optional[Classifier],
        resolver: Optional[TimeResolver] = None,
        timeout: float = DEFAULT_CLASSIFIER_TIMEOUT,
    ):
        self.store = store
        self.classifier = classifier
        self.resolver = resolver or get_time_resolver()
        self.timeout = timeout

    async def classify(self, record: Record) -> Tuple[Classification, Optional[Failed]]:
        """Classification for a record plus the failed call result, if any."""
        if self.classifier is None:
            return NoteClassification(confidence=0.0), Failed(reason="no classifier configured")

        result = await call_external(
            self.classifier.classify(record.title, record.body, record.source),
            timeout=self.timeout,
            label=f"classifier[{record.id}]",
        )
        if isinstance(result, Failed):
            return NoteClassification(confidence=0.0), result
        return to_classification(result.value), None

    async def route(self, record: Record, now: Optional[float] = None) -> RouteOutcome:
        """
        Classify and persist. Propagates ``DuplicateRecordError`` from the
        generic write; nothing else about classification aborts the record.
        """
        classification, failure = await self.classify(record)
        await asyncio.to_thread(self.store.add_record, record)

        outcome = RouteOutcome(
            record=record,
            classification=classification,
            classifier_failed=failure is not None,
            classifier_timed_out=failure is not None and failure.timed_out,
        )
        try:
            outcome.entity = await asyncio.to_thread(self._write_entity, record, classification, now)
        except Exception as e:
            logger.warning("Entity write failed for %s (%s): %s", record.id, classification.kind, e)
            outcome.entity_error = str(e)
        return outcome

    def _write_entity(
        self,
        record: Record,
        classification: Classification,
        now: Optional[float],
    ) -> Optional[Entity]:
        if isinstance(classification, ContactClassification):
            return self.store.add_contact(Contact(
                name=classification.name or record.title or "Unknown",
                email=classification.email,
                phone=classification.phone,
                source_record_id=record.id,
                metadata={"original_id": record.external_id, "source": record.source},
            ))

        if isinstance(classification, EventClassification):
            event_type = self.store.get_or_create_event_type(classification.type_name)
            resolution = self.resolver.resolve(record.text, now=now)
            start_at = reconcile_start(
                classification.start_at,
                resolution.timestamp if resolution is not None else None,
                record.created_at,
            )
            end_at = classification.end_at
            if end_at is None and resolution is not None:
                end_at = resolution.end_timestamp
            return self.store.add_event(Event(
                type_id=event_type.id,
                title=classification.title or record.title or "Unknown Event",
                body=classification.body or record.body or None,
                start_at=start_at,
                end_at=end_at,
                location=classification.location,
                source_type=record.source,
                source_record_id=record.id,
                confidence=classification.confidence,
            ))

        if isinstance(classification, NoteClassification):
            return self.store.add_note(Note(
                title=classification.title or record.title or "Note",
                body=classification.body or record.body or "",
                created_at=record.created_at,
                updated_at=time.time(),
                source_record_id=record.id,
            ))

        if isinstance(classification, GenericClassification):
            return None

        raise TypeError(f"unhandled classification kind: {classification!r}")
