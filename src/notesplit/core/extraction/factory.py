"""
Extractor Factory
=================

Builds the page extractor stack from settings.
"""

import logging

from notesplit.core.extraction.cache import ClassificationCache
from notesplit.core.extraction.llm_extractor import LLMPageExtractor
from notesplit.core.extraction.resilience import ResilientExtractor

logger = logging.getLogger(__name__)


def build_extractor(extractor_settings) -> ResilientExtractor:
    """Create an ``LLMPageExtractor`` wrapped in the resilience policy."""
    llm = LLMPageExtractor(
        base_url=extractor_settings.endpoint,
        model=extractor_settings.model,
        api_key=extractor_settings.api_key,
        mode=extractor_settings.mode,
    )
    logger.info(
        f"Extractor configured: {llm.name} model={llm.model} endpoint={llm.base_url} "
        f"max_concurrency={extractor_settings.max_concurrency}"
    )
    return ResilientExtractor(
        llm,
        max_concurrency=extractor_settings.max_concurrency,
        timeout_seconds=extractor_settings.timeout_seconds,
        max_retries=extractor_settings.max_retries,
        retry_base_seconds=extractor_settings.retry_base_seconds,
        cache=ClassificationCache(max_entries=extractor_settings.cache_size),
    )
