"""
Batch Job Manager
=================

Runs batch-processing jobs: ingest every uploaded file, classify each page
with the extractor, plan a partition into delivery notes and insert them.

Progress is pushed onto a per-job queue that the HTTP layer drains as a
server-sent event stream. Ordering rules:

- files are announced in submission order, at most ``max_concurrent_files``
  at a time;
- page events of one file are emitted in ascending page order even though
  extractor calls for that file run concurrently;
- ``progress`` never decreases.

A file's notes are inserted in one transaction; notes from earlier files
stay when a later file fails or the job is cancelled.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from notesplit.core.documents.application.delivery_note_service import DeliveryNoteService, NoteDraft
from notesplit.core.documents.application.document_service import DocumentService
from notesplit.core.documents.domain.delivery_note import NoteOrigin
from notesplit.core.documents.domain.document import Document
from notesplit.core.extraction.base import PageClassification, PagePayload, PageRequest
from notesplit.core.extraction.resilience import ResilientExtractor
from notesplit.core.jobs.events import ProgressEvent
from notesplit.core.jobs.state import JobStatus, TransitionManager
from notesplit.core.pdf.engine import DocumentHandle, PdfEngine
from notesplit.core.segmentation.planner import PlannedNote, plan_partition
from notesplit.shared.exceptions import (
    AppException,
    ExtractorError,
    InternalError,
    JobCancelledError,
    JobTimeoutError,
    PdfCorruptError,
)
from notesplit.shared.messages import ERROR_MESSAGES, JOB_MESSAGES, UNKNOWN_COMPANY
from notesplit.shared.sanitize import MAX_TEXT_LENGTH, sanitize_filename, sanitize_text

logger = logging.getLogger(__name__)

MAX_FINISHED_JOBS = 100
MAX_WARNINGS_IN_SUMMARY = 5
MIN_COMPANY_LENGTH = 2


@dataclass
class UploadedFile:
    filename: str
    data: bytes


@dataclass
class BatchJob:
    """State of one batch run. Mutated only by its own worker task."""

    files: list[UploadedFile]
    id: str = field(default_factory=lambda: f"job_{uuid4().hex}")
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    total_pages: int = 0
    completed_pages: int = 0
    progress: int = 0
    notes_created: int = 0
    warnings: list[str] = field(default_factory=list)
    document_ids: list[str] = field(default_factory=list)
    final_event: ProgressEvent | None = None
    cancel_requested: bool = False
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    task: asyncio.Task | None = None

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def finished(self) -> bool:
        return self.status.is_terminal

    def advance_page(self) -> None:
        """Count one finished page and recompute progress."""
        self.completed_pages += 1
        if self.total_pages:
            computed = (100 * self.completed_pages) // self.total_pages
            self.progress = max(self.progress, min(computed, 100))


@dataclass
class _IngestedFile:
    index: int
    filename: str
    document: Document
    data: bytes


class _FileInsertError(AppException):
    """Notes for a file could not be committed. Ends the job."""


class JobManager:
    """Starts jobs, streams their events and handles cancellation."""

    def __init__(
        self,
        document_service: DocumentService,
        note_service: DeliveryNoteService,
        pdf_engine: PdfEngine,
        extractor: ResilientExtractor,
        render_dpi: int = 150,
        max_concurrent_files: int = 2,
        timeout_seconds: float = 1800.0,
    ):
        self._documents = document_service
        self._notes = note_service
        self._pdf = pdf_engine
        self._extractor = extractor
        self._dpi = render_dpi
        self._max_concurrent_files = max(1, max_concurrent_files)
        self._timeout_seconds = timeout_seconds
        self._jobs: OrderedDict[str, BatchJob] = OrderedDict()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def start(self, files: list[UploadedFile]) -> BatchJob:
        """Create a job and schedule it on the running event loop."""
        job = BatchJob(files=files)
        self._jobs[job.id] = job
        self._prune()
        job.task = asyncio.create_task(self._run(job), name=job.id)
        logger.info(f"Job {job.id} accepted with {job.total_files} file(s)")
        return job

    def cancel(self, job_id: str) -> None:
        """
        Ask a job to stop. No new extractor calls are issued; in-flight ones
        finish and their results are dropped.
        """
        job = self._jobs.get(job_id)
        if job is None or job.finished or job.cancel_requested:
            return
        job.cancel_requested = True
        logger.info(f"Job {job_id} cancellation requested")

    async def events(self, job: BatchJob):
        """Yield the job's events until its final one."""
        while True:
            event = await job.queue.get()
            if event is None:
                return
            yield event

    async def wait(self, job: BatchJob) -> ProgressEvent | None:
        if job.task is not None:
            await job.task
        return job.final_event

    async def shutdown(self) -> None:
        """Cancel running jobs. Called on application shutdown."""
        running = [job.task for job in self._jobs.values() if job.task and not job.task.done()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    def _prune(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.finished]
        for job_id in finished[: max(0, len(finished) - MAX_FINISHED_JOBS)]:
            del self._jobs[job_id]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _emit(self, job: BatchJob, status: JobStatus, **fields) -> ProgressEvent:
        """Move the job to ``status`` and publish an event."""
        TransitionManager.validate_transition(job.status, status)
        job.status = status
        return self._publish(job, status, **fields)

    def _notice(self, job: BatchJob, message: str, **fields) -> ProgressEvent:
        """Publish a ``warning`` event without changing the job's state."""
        job.warnings.append(message)
        logger.warning(f"Job {job.id}: {message}")
        return self._publish(job, JobStatus.WARNING, message=message, **fields)

    def _publish(self, job: BatchJob, status: JobStatus, **fields) -> ProgressEvent:
        fields.setdefault("total_files", job.total_files)
        event = ProgressEvent(status=status, progress=job.progress, **fields)
        job.queue.put_nowait(event)
        return event

    def _fail(self, job: BatchJob, error: AppException) -> None:
        self._finish(job, JobStatus.ERROR, error.message)

    def _finish(self, job: BatchJob, status: JobStatus, message: str | None) -> None:
        if status in (JobStatus.COMPLETED, JobStatus.WARNING):
            job.progress = 100
        job.final_event = self._emit(job, status, message=message)
        job.queue.put_nowait(None)
        # Finished jobs stay listed; their upload bytes do not
        job.files = [UploadedFile(filename=upload.filename, data=b"") for upload in job.files]
        logger.info(
            f"Job {job.id} finished: status={status.value} notes={job.notes_created} "
            f"warnings={len(job.warnings)}"
        )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    async def _run(self, job: BatchJob) -> None:
        try:
            async with asyncio.timeout(self._timeout_seconds):
                await self._execute(job)
                if job.cancel_requested:
                    raise JobCancelledError()
        except TimeoutError:
            logger.error(f"Job {job.id} exceeded {self._timeout_seconds}s")
            self._fail(job, JobTimeoutError())
            return
        except (JobCancelledError, _FileInsertError) as e:
            self._fail(job, e)
            return
        except asyncio.CancelledError:
            if not job.finished:
                self._fail(job, JobCancelledError())
            raise
        except Exception:
            logger.exception(f"Job {job.id} failed unexpectedly")
            self._fail(job, InternalError(ERROR_MESSAGES["internal_job_error"].format(job_id=job.id)))
            return

        if job.notes_created == 0:
            self._finish(job, JobStatus.ERROR, self._summary(job, JOB_MESSAGES["no_notes"]))
        elif job.warnings:
            headline = JOB_MESSAGES["completed_with_warnings"].format(
                count=job.notes_created, warnings=len(job.warnings)
            )
            self._finish(job, JobStatus.WARNING, self._summary(job, headline))
        else:
            self._finish(
                job, JobStatus.COMPLETED, JOB_MESSAGES["completed"].format(count=job.notes_created)
            )

    @staticmethod
    def _summary(job: BatchJob, headline: str) -> str:
        if not job.warnings:
            return headline
        shown = job.warnings[:MAX_WARNINGS_IN_SUMMARY]
        summary = f"{headline}: " + "; ".join(shown)
        if len(job.warnings) > len(shown):
            summary += f" (+{len(job.warnings) - len(shown)} more)"
        return summary

    async def _execute(self, job: BatchJob) -> None:
        self._emit(job, JobStatus.ANALYZING)

        accepted = await self._ingest_all(job)
        job.total_pages = sum(item.document.page_count for item in accepted)
        if not accepted or job.cancel_requested:
            return

        slots = asyncio.Semaphore(self._max_concurrent_files)
        try:
            async with asyncio.TaskGroup() as group:
                for item in accepted:
                    await slots.acquire()
                    if job.cancel_requested:
                        slots.release()
                        break
                    self._emit(
                        job,
                        JobStatus.PROCESSING_FILE,
                        current_file=item.filename,
                        file_index=item.index,
                        total_pages=item.document.page_count,
                    )
                    group.create_task(self._process_file_in_slot(job, item, slots))
        except ExceptionGroup as eg:
            insert_errors = eg.subgroup(_FileInsertError)
            if insert_errors is not None:
                raise insert_errors.exceptions[0] from None
            raise

    async def _ingest_all(self, job: BatchJob) -> list[_IngestedFile]:
        """Persist every upload. Rejected files become warnings."""
        accepted: list[_IngestedFile] = []
        for index, upload in enumerate(job.files, start=1):
            if job.cancel_requested:
                break
            try:
                document = await self._documents.ingest(upload.filename, upload.data)
            except AppException as e:
                filename = sanitize_filename(upload.filename)
                self._notice(
                    job,
                    JOB_MESSAGES["file_warning"].format(filename=filename, reason=e.message),
                    current_file=filename,
                    file_index=index,
                )
                continue
            job.document_ids.append(document.id)
            accepted.append(
                _IngestedFile(
                    index=index,
                    filename=document.original_filename,
                    document=document,
                    data=upload.data,
                )
            )
        return accepted

    async def _process_file_in_slot(
        self, job: BatchJob, item: _IngestedFile, slots: asyncio.Semaphore
    ) -> None:
        try:
            await self._process_file(job, item)
        finally:
            slots.release()

    async def _process_file(self, job: BatchJob, item: _IngestedFile) -> None:
        handle = await asyncio.to_thread(self._pdf.open, item.data)
        try:
            classifications = await self._classify_pages(job, item, handle)
        finally:
            await asyncio.to_thread(handle.close)

        if job.cancel_requested:
            logger.info(f"Job {job.id}: discarding results for {item.filename}")
            return

        plan = plan_partition(classifications)
        drafts = [self._draft_for(item.document, planned) for planned in plan]
        try:
            notes = await self._notes.create_many(item.document.id, drafts)
        except (AppException, SQLAlchemyError) as e:
            logger.exception(f"Job {job.id}: inserting notes for {item.filename} failed")
            reason = e.message if isinstance(e, AppException) else ERROR_MESSAGES["internal_error"]
            raise _FileInsertError(
                JOB_MESSAGES["file_failed"].format(filename=item.filename, reason=reason)
            ) from e

        job.notes_created += len(notes)

    async def _classify_pages(
        self, job: BatchJob, item: _IngestedFile, handle: DocumentHandle
    ) -> list[PageClassification]:
        page_count = item.document.page_count
        page_slots = asyncio.Semaphore(self._extractor.max_concurrency)

        async def classify(page: int) -> PageClassification | None:
            async with page_slots:
                if job.cancel_requested:
                    return None
                payload = await asyncio.to_thread(self._payload_for, handle, page)
                return await self._extractor.classify(
                    PageRequest(
                        document_id=item.document.id,
                        content_hash=item.document.content_hash,
                        page_number=page,
                        payload=payload,
                    )
                )

        tasks = [asyncio.create_task(classify(page)) for page in range(1, page_count + 1)]
        results: list[PageClassification] = []
        try:
            for page, task in enumerate(tasks, start=1):
                page_fields = dict(
                    current_file=item.filename,
                    file_index=item.index,
                    page=page,
                    total_pages=page_count,
                )
                try:
                    result = await task
                except (ExtractorError, PdfCorruptError) as e:
                    job.advance_page()
                    results.append(PageClassification.unknown())
                    self._notice(
                        job,
                        JOB_MESSAGES["page_warning"].format(
                            page=page, filename=item.filename, reason=e.message
                        ),
                        **page_fields,
                    )
                    continue

                job.advance_page()
                results.append(result or PageClassification.unknown())
                self._emit(job, JobStatus.PROCESSING_FILE, **page_fields)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        return results

    def _payload_for(self, handle: DocumentHandle, page: int) -> PagePayload:
        if self._extractor.wants_image:
            return PagePayload(image_png=self._pdf.render_page(handle, page, dpi=self._dpi))
        return PagePayload(text=self._pdf.extract_text(handle, page))

    @staticmethod
    def _draft_for(document: Document, planned: PlannedNote) -> NoteDraft:
        fields = planned.fields

        def clip(value: str | None) -> str | None:
            cleaned = sanitize_text(value)
            return cleaned[:MAX_TEXT_LENGTH] if cleaned else None

        company = clip(fields.company_name)
        if not company or len(company) < MIN_COMPANY_LENGTH:
            company = UNKNOWN_COMPANY

        return NoteDraft(
            document_id=document.id,
            display_name=planned.display_name,
            company_name=company,
            page_numbers=list(planned.page_numbers),
            delivery_date=clip(fields.delivery_date),
            delivery_note_number=clip(fields.delivery_note_number),
            shipping_id=clip(fields.shipping_id),
            customer_number=clip(fields.customer_number),
            origin=NoteOrigin.AI,
        )
