"""
Base Page Extractor Interface
=============================

Defines the abstract base class and result schema for page classifiers.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class PageRole(str, Enum):
    """Where a page sits inside a delivery note."""

    START = "start"
    CONTINUATION = "continuation"
    UNKNOWN = "unknown"


class PageFields(BaseModel):
    """Fields read off the first page of a delivery note."""

    delivery_note_number: str | None = None
    company_name: str | None = None
    delivery_date: str | None = None
    shipping_id: str | None = None
    customer_number: str | None = None

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class PageClassification(BaseModel):
    """
    Unified result structure for all page extractors.
    """

    role: PageRole = Field(default=PageRole.UNKNOWN, description="Role of the page")
    fields: PageFields = Field(default_factory=PageFields, description="Extracted fields, start pages only")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence score 0.0-1.0")

    @classmethod
    def unknown(cls) -> "PageClassification":
        return cls(role=PageRole.UNKNOWN, confidence=0.0)


@dataclass(frozen=True)
class PagePayload:
    """What the model sees of one page: a PNG rendering, its text, or both."""

    image_png: bytes | None = None
    text: str | None = None


@dataclass(frozen=True)
class PageRequest:
    document_id: str
    content_hash: str
    page_number: int
    payload: PagePayload


class BasePageExtractor(ABC):
    """
    Abstract base class for page classifiers.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the extractor."""
        pass

    @property
    def model_settings(self) -> dict:
        """Settings that change the output for a given page."""
        return {"extractor": self.name}

    @property
    def config_hash(self) -> str:
        payload = json.dumps(self.model_settings, sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @property
    def wants_image(self) -> bool:
        """Whether pages should be rendered to PNG before classification."""
        return False

    @abstractmethod
    async def classify(self, request: PageRequest) -> PageClassification:
        """
        Classify one page.

        Raises:
            ExtractorTransientError: Worth retrying.
            ExtractorPermanentError: Not worth retrying.
        """
        pass
