"""
Composition Root
=================

The single place where all dependencies are wired together.
Infrastructure adapters are created here and injected into application services.
"""

import logging
from dataclasses import dataclass

from notesplit.api.config import Settings
from notesplit.core.allocation.registry import AllocationRegistry
from notesplit.core.database.session import get_session_maker
from notesplit.core.database.unit_of_work import SqlAlchemyUnitOfWork
from notesplit.core.documents.application.delivery_note_service import DeliveryNoteService
from notesplit.core.documents.application.document_service import DocumentService
from notesplit.core.extraction.factory import build_extractor
from notesplit.core.extraction.resilience import ResilientExtractor
from notesplit.core.jobs.manager import JobManager
from notesplit.core.pdf.engine import PdfEngine
from notesplit.core.storage.blob_store import FilesystemBlobStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Application services shared by every request."""

    blob_store: FilesystemBlobStore
    pdf_engine: PdfEngine
    registry: AllocationRegistry
    extractor: ResilientExtractor
    documents: DocumentService
    notes: DeliveryNoteService
    jobs: JobManager


def build_services(settings: Settings, extractor: ResilientExtractor | None = None) -> ServiceContainer:
    """
    Wire the service graph. The database must already be configured.

    Args:
        settings: Application settings.
        extractor: Pre-built extractor; built from ``settings.extractor`` when omitted.
    """
    session_maker = get_session_maker()
    blob_store = FilesystemBlobStore(settings.storage.blob_dir)
    pdf_engine = PdfEngine()
    registry = AllocationRegistry(lambda: SqlAlchemyUnitOfWork(session_maker))
    extractor = extractor or build_extractor(settings.extractor)

    documents = DocumentService(
        session_factory=session_maker,
        blob_store=blob_store,
        pdf_engine=pdf_engine,
        registry=registry,
        max_file_bytes=settings.uploads.max_file_bytes,
        max_file_size_mb=settings.uploads.max_file_size_mb,
    )
    notes = DeliveryNoteService(
        session_factory=session_maker,
        blob_store=blob_store,
        pdf_engine=pdf_engine,
        registry=registry,
    )
    jobs = JobManager(
        document_service=documents,
        note_service=notes,
        pdf_engine=pdf_engine,
        extractor=extractor,
        render_dpi=settings.extractor.dpi,
        max_concurrent_files=settings.jobs.max_concurrent_files,
        timeout_seconds=settings.jobs.timeout_seconds,
    )

    logger.info(f"Services wired (blob_dir={settings.storage.blob_dir})")
    return ServiceContainer(
        blob_store=blob_store,
        pdf_engine=pdf_engine,
        registry=registry,
        extractor=extractor,
        documents=documents,
        notes=notes,
        jobs=jobs,
    )
