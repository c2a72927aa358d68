"""
Resilient Extractor
===================

Wraps a page extractor with the call policy used against the model
endpoint: result cache, bounded concurrency, per-call timeout and
exponential-backoff retries for transient failures.
"""

import asyncio
import logging

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from notesplit.core.extraction.base import BasePageExtractor, PageClassification, PageRequest
from notesplit.core.extraction.cache import ClassificationCache
from notesplit.shared.exceptions import ExtractorPermanentError, ExtractorTransientError

logger = logging.getLogger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    request: PageRequest = retry_state.args[0] if retry_state.args else None
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    page = request.page_number if request else "?"
    logger.warning(
        f"Retrying page {page} after attempt {retry_state.attempt_number}: {exc}"
    )


class ResilientExtractor:
    """
    Call policy around a ``BasePageExtractor``.

    Transient failures get ``max_retries`` more attempts after the first,
    waiting ``retry_base_seconds`` and doubling each time (1s, 2s, 4s by
    default). Once exhausted, the failure is re-raised as
    ``ExtractorPermanentError``.
    """

    def __init__(
        self,
        extractor: BasePageExtractor,
        max_concurrency: int = 4,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_base_seconds: float = 1.0,
        cache: ClassificationCache | None = None,
    ):
        self.extractor = extractor
        self.max_concurrency = max(1, max_concurrency)
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, max_retries)
        self.retry_base_seconds = retry_base_seconds
        self.cache = cache if cache is not None else ClassificationCache()
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    @property
    def wants_image(self) -> bool:
        return self.extractor.wants_image

    async def _attempt(self, request: PageRequest) -> PageClassification:
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    self.extractor.classify(request), timeout=self.timeout_seconds
                )
            except TimeoutError as e:
                raise ExtractorTransientError(
                    f"Extractor call timed out after {self.timeout_seconds}s"
                ) from e

    async def classify(self, request: PageRequest) -> PageClassification:
        """
        Classify a page, consulting the cache first.

        Raises:
            ExtractorPermanentError: Non-retryable failure, or retries exhausted.
        """
        key = ClassificationCache.build_cache_key(
            content_hash=request.content_hash,
            page_number=request.page_number,
            config_hash=self.extractor.config_hash,
        )
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_base_seconds, min=0, max=60),
            retry=retry_if_exception_type(ExtractorTransientError),
            before_sleep=_log_retry,
            reraise=True,
        )

        try:
            result = await retrying(self._attempt, request)
        except ExtractorTransientError as e:
            attempts = self.max_retries + 1
            logger.error(
                f"Page {request.page_number} of {request.document_id} failed after {attempts} attempts: {e}"
            )
            raise ExtractorPermanentError(f"{e} (after {attempts} attempts)") from e

        self.cache.set(key, result)
        return result
