from types import SimpleNamespace

import httpx
import openai
import pytest

from notesplit.core.extraction.base import PagePayload, PageRequest, PageRole
from notesplit.core.extraction.llm_extractor import LLMPageExtractor, parse_classification
from notesplit.shared.exceptions import (
    ExtractorPermanentError,
    ExtractorTransientError,
    QuotaExceededError,
)

_REQUEST = httpx.Request("POST", "http://extractor.test/v1/chat/completions")


def _status_error(cls, status_code: int, message: str):
    return cls(message, response=httpx.Response(status_code, request=_REQUEST), body=None)


class FakeCompletions:
    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_llm(mode: str = "vision", **completions_kwargs) -> tuple[LLMPageExtractor, FakeCompletions]:
    completions = FakeCompletions(**completions_kwargs)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    extractor = LLMPageExtractor(
        base_url="http://extractor.test/v1", model="test-model", mode=mode, client=client
    )
    return extractor, completions


def page_request(**payload) -> PageRequest:
    return PageRequest(
        document_id="doc_1", content_hash="c" * 64, page_number=3, payload=PagePayload(**payload)
    )


class TestParseClassification:
    def test_camel_case_fields(self):
        result = parse_classification(
            '{"role": "start", "confidence": 0.92, "fields": '
            '{"deliveryNoteNumber": "FS-100", "companyName": "Acme A/S", "deliveryDate": "null"}}'
        )

        assert result.role == PageRole.START
        assert result.fields.delivery_note_number == "FS-100"
        assert result.fields.company_name == "Acme A/S"
        assert result.fields.delivery_date is None
        assert result.confidence == pytest.approx(0.92)

    def test_snake_case_fields_and_clamped_confidence(self):
        result = parse_classification(
            '{"role": "Continuation", "confidence": 7, "fields": {"shipping_id": "S-1"}}'
        )

        assert result.role == PageRole.CONTINUATION
        assert result.fields.shipping_id == "S-1"
        assert result.confidence == 1.0

    def test_missing_role_is_unknown(self):
        assert parse_classification("{}").role == PageRole.UNKNOWN

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"role": "header"}'])
    def test_bad_replies_are_permanent(self, raw):
        with pytest.raises(ExtractorPermanentError):
            parse_classification(raw)


class TestClassify:
    @pytest.mark.asyncio
    async def test_vision_mode_sends_image(self):
        extractor, completions = make_llm(mode="vision", content='{"role": "start", "confidence": 1}')

        result = await extractor.classify(page_request(image_png=b"\x89PNG fake"))

        assert result.role == PageRole.START
        user = completions.calls[0]["messages"][1]["content"]
        assert user[1]["image_url"]["url"].startswith("data:image/png;base64,")
        assert completions.calls[0]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_text_mode_sends_text(self):
        extractor, completions = make_llm(mode="text", content='{"role": "unknown"}')

        await extractor.classify(page_request(text="Følgeseddel FS-1"))

        user = completions.calls[0]["messages"][1]["content"]
        assert "Følgeseddel FS-1" in user
        assert extractor.wants_image is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (openai.APIConnectionError(request=_REQUEST), ExtractorTransientError),
            (openai.APITimeoutError(request=_REQUEST), ExtractorTransientError),
            (_status_error(openai.RateLimitError, 429, "slow down"), ExtractorTransientError),
            (_status_error(openai.RateLimitError, 429, "insufficient_quota"), QuotaExceededError),
            (_status_error(openai.InternalServerError, 502, "bad gateway"), ExtractorTransientError),
            (_status_error(openai.BadRequestError, 400, "bad image"), ExtractorPermanentError),
            (ValueError("unexpected"), ExtractorPermanentError),
        ],
    )
    async def test_client_errors_are_mapped(self, error, expected):
        extractor, _ = make_llm(error=error)

        with pytest.raises(expected):
            await extractor.classify(page_request(text="x"))

    def test_config_hash_depends_on_model(self):
        a, _ = make_llm()
        b = LLMPageExtractor(base_url="http://x", model="other-model", mode="vision", client=object())

        assert a.config_hash != b.config_hash
