"""
Tidings Instructor Classifier
-----------------------------
AI classification of records through any OpenAI-compatible endpoint
(OpenAI, Ollama, vLLM, LM Studio) using Instructor for validated
``RawClassification`` output.

``classify`` raises on failure; the classification router wraps every call
in ``call_external`` with a timeout and chooses the fallback itself.
"""

import logging
from typing import Optional, Protocol

import instructor
from openai import AsyncOpenAI

from tidings.errors import ClassifierError
from tidings.extraction.models import (
    CLASSIFICATION_SYSTEM_PROMPT,
    RawClassification,
    build_user_prompt,
)

logger = logging.getLogger("Tidings.Classifier")


class Classifier(Protocol):
    async def classify(
        self, title: Optional[str], body: Optional[str], source: Optional[str] = None
    ) -> RawClassification:
        ...


class InstructorClassifier:
    """Structured classification using Instructor + Pydantic response models."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_retries: int = 2,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            model: Chat model name for the endpoint.
            base_url: OpenAI-compatible API base URL; ``None`` means api.openai.com.
            api_key: API key. Local endpoints accept any placeholder.
            max_retries: Instructor retry count on validation failure.
            timeout: Per-request HTTP timeout in seconds.
            client: Pre-built AsyncOpenAI client (tests inject one).
        """
        self.model = model
        self.max_retries = max_retries
        raw_client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "not-needed",
            timeout=timeout,
        )
        self._client = instructor.from_openai(raw_client, mode=instructor.Mode.JSON)
        logger.info("Instructor classifier ready: %s @ %s", model, base_url or "openai")

    async def classify(
        self,
        title: Optional[str],
        body: Optional[str],
        source: Optional[str] = None,
    ) -> RawClassification:
        if not (title or body):
            raise ClassifierError("nothing to classify: title and body are empty")

        result: RawClassification = await self._client.chat.completions.create(
            model=self.model,
            response_model=RawClassification,
            max_retries=self.max_retries,
            temperature=0.3,
            max_tokens=500,
            messages=[
                {"role": "system", "content": CLASSIFICATION_SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(title, body, source)},
            ],
        )
        logger.debug("Classified %r as %s (%.2f)", (title or "")[:40], result.type, result.confidence)
        return result
