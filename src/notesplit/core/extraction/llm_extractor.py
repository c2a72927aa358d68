"""
LLM Page Extractor
==================

Classifies pages with an OpenAI-compatible chat endpoint (OpenAI, Ollama,
vLLM, ...). Vision mode sends a PNG rendering of the page; text mode sends
the page's extracted text.
"""

import base64
import json
import logging
from typing import Any

from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from pydantic import ValidationError as PydanticValidationError

from notesplit.core.extraction.base import (
    BasePageExtractor,
    PageClassification,
    PageFields,
    PageRequest,
)
from notesplit.shared.exceptions import (
    ExtractorPermanentError,
    ExtractorTransientError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You classify single pages of scanned delivery notes (Danish: følgesedler).
A batch PDF may contain several delivery notes back to back, each one or more pages long.

For the page you are given, decide its role:
- "start": the first page of a delivery note (has a header with sender, number or date)
- "continuation": a following page of the same delivery note
- "unknown": you cannot tell

For "start" pages also read these fields when present, exactly as printed:
deliveryNoteNumber, companyName (the supplier/sender), deliveryDate, shippingId, customerNumber.

Reply with JSON only:
{"role": "start|continuation|unknown", "confidence": 0.0-1.0,
 "fields": {"deliveryNoteNumber": null, "companyName": null, "deliveryDate": null,
            "shippingId": null, "customerNumber": null}}"""

_FIELD_KEYS = {
    "deliveryNoteNumber": "delivery_note_number",
    "delivery_note_number": "delivery_note_number",
    "companyName": "company_name",
    "company_name": "company_name",
    "deliveryDate": "delivery_date",
    "delivery_date": "delivery_date",
    "shippingId": "shipping_id",
    "shipping_id": "shipping_id",
    "customerNumber": "customer_number",
    "customer_number": "customer_number",
}


def _clean_field(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def parse_classification(raw: str) -> PageClassification:
    """
    Parse the model's JSON reply.

    Accepts camelCase or snake_case field keys and clamps confidence into
    0..1. Anything unparseable is a permanent failure for that page.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ExtractorPermanentError(f"Extractor returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractorPermanentError("Extractor returned a non-object JSON value")

    raw_fields = data.get("fields") or {}
    if not isinstance(raw_fields, dict):
        raw_fields = {}
    fields = {
        _FIELD_KEYS[key]: _clean_field(value)
        for key, value in raw_fields.items()
        if key in _FIELD_KEYS
    }

    role = str(data.get("role", "unknown")).strip().lower()
    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0

    try:
        return PageClassification(
            role=role,
            fields=PageFields(**fields),
            confidence=min(max(confidence, 0.0), 1.0),
        )
    except PydanticValidationError as e:
        raise ExtractorPermanentError(f"Extractor returned an invalid classification: {e}") from e


class LLMPageExtractor(BasePageExtractor):
    """Page classifier backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str = "",
        mode: str = "vision",
        client: AsyncOpenAI | None = None,
    ):
        self.base_url = base_url
        self.model = model
        self.mode = mode
        # Retries and timeouts are owned by ResilientExtractor
        self._client = client or AsyncOpenAI(
            api_key=api_key or "not-needed",
            base_url=base_url,
            max_retries=0,
        )

    @property
    def name(self) -> str:
        return f"llm-{self.mode}"

    @property
    def model_settings(self) -> dict:
        return {
            "extractor": self.name,
            "model": self.model,
            "prompt": SYSTEM_PROMPT,
        }

    @property
    def wants_image(self) -> bool:
        return self.mode == "vision"

    def _build_messages(self, request: PageRequest) -> list[dict[str, Any]]:
        header = f"Page {request.page_number}."
        payload = request.payload

        if self.mode == "vision" and payload.image_png:
            encoded = base64.b64encode(payload.image_png).decode("ascii")
            user_content: Any = [
                {"type": "text", "text": header},
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}},
            ]
        else:
            user_content = f"{header}\n\n{payload.text or ''}"

        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ]

    async def classify(self, request: PageRequest) -> PageClassification:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(request),
                temperature=0,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            self._handle_error(e)

        if not response.choices:
            raise ExtractorPermanentError("Extractor returned no choices")
        return parse_classification(response.choices[0].message.content or "")

    def _handle_error(self, e: Exception) -> None:
        """Convert OpenAI client exceptions to extractor exceptions."""
        if isinstance(e, RateLimitError):
            # Hard quota limits are not worth retrying
            error_str = str(e).lower()
            if "insufficient_quota" in error_str or "billing" in error_str:
                raise QuotaExceededError(str(e)) from e
            raise ExtractorTransientError(f"Rate limited: {e}") from e
        if isinstance(e, APIConnectionError):
            # Includes APITimeoutError
            raise ExtractorTransientError(f"Connection failed: {e}") from e
        if isinstance(e, InternalServerError):
            raise ExtractorTransientError(f"Server error: {e}") from e
        if isinstance(e, APIStatusError):
            raise ExtractorPermanentError(f"Extractor rejected request ({e.status_code}): {e}") from e
        raise ExtractorPermanentError(f"Extractor error: {e}") from e
