"""Tests for tidings.extraction.models and tidings.extraction.instructor_classifier."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import AsyncOpenAI

from tidings.errors import ClassifierError
from tidings.extraction.instructor_classifier import InstructorClassifier
from tidings.extraction.models import (
    ContactClassification,
    EventClassification,
    ExtractedFields,
    GenericClassification,
    NoteClassification,
    RawClassification,
    build_user_prompt,
    coerce_timestamp,
    to_classification,
)


class TestCoerceTimestamp:
    @pytest.mark.parametrize("value,expected", [
        (1_760_000_000_000, 1_760_000_000.0),
        ("1760000000000", 1_760_000_000.0),
        (1_760_000_000, 1_760_000_000.0),
        ("2025-10-19T00:00:00Z", 1_760_832_000.0),
        (None, None),
        ("", None),
        ("soon", None),
        (0, None),
        (True, None),
    ])
    def test_values(self, value, expected):
        assert coerce_timestamp(value) == expected


class TestRawClassification:
    def test_parses_camel_case_response(self):
        raw = RawClassification.model_validate({
            "type": "Event",
            "confidence": "0.8",
            "extractedData": {
                "title": "기획 회의",
                "startAt": "1760832000000",
                "endAt": None,
                "location": "null",
                "type": "회의",
            },
        })
        fields = raw.extracted_fields
        assert fields.start_at == 1_760_832_000.0
        assert fields.end_at is None
        assert fields.location is None
        assert fields.event_type == "회의"
        assert raw.confidence == 0.8

    @pytest.mark.parametrize("value,expected", [(1.7, 1.0), (-0.2, 0.0), ("high", 0.5)])
    def test_confidence_clamped(self, value, expected):
        assert RawClassification(type="note", confidence=value).confidence == expected

    def test_placeholder_strings_become_none(self):
        fields = ExtractedFields(name="  없음 ", email="", phone="None", title=" 제목 ")
        assert fields.name is None and fields.email is None and fields.phone is None
        assert fields.title == "제목"


class TestToClassification:
    def test_contact(self):
        raw = RawClassification(type="CONTACT", confidence=0.9, extractedData={"name": "김철수", "phone": "010-1234-5678"})
        result = to_classification(raw)
        assert isinstance(result, ContactClassification)
        assert result.name == "김철수"
        assert result.phone == "010-1234-5678"

    def test_event_defaults_type_name(self):
        result = to_classification(RawClassification(type="event", extractedData={"title": "점심"}))
        assert isinstance(result, EventClassification)
        assert result.type_name == "일반"

    def test_ingest_is_generic(self):
        assert isinstance(to_classification(RawClassification(type="ingest")), GenericClassification)

    @pytest.mark.parametrize("kind", ["note", "spam", "", "  "])
    def test_everything_else_is_note(self, kind):
        result = to_classification(RawClassification(type=kind, extractedData={"body": "memo"}))
        assert isinstance(result, NoteClassification)
        assert result.body == "memo"


def test_user_prompt_mentions_source_and_placeholders():
    prompt = build_user_prompt(None, "내용", "sms")
    assert "text message" in prompt
    assert "Title: 없음" in prompt
    assert "Body: 내용" in prompt


class TestInstructorClassifier:
    @pytest.fixture
    def classifier(self):
        clf = InstructorClassifier(model="test-model", client=AsyncOpenAI(api_key="test", base_url="http://localhost:9/v1"))
        clf._client = MagicMock()
        clf._client.chat.completions.create = AsyncMock(
            return_value=RawClassification(type="note", confidence=0.6)
        )
        return clf

    @pytest.mark.asyncio
    async def test_classify_calls_instructor_with_response_model(self, classifier):
        result = await classifier.classify("Receipt", "Your order shipped", "email")
        assert result.type == "note"

        kwargs = classifier._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_model"] is RawClassification
        assert kwargs["messages"][0]["role"] == "system"
        assert "Receipt" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_empty_input_raises(self, classifier):
        with pytest.raises(ClassifierError):
            await classifier.classify("", None)
        classifier._client.chat.completions.create.assert_not_called()
