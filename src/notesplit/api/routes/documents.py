"""
Document API Routes
===================

Endpoints for uploading source PDFs, batch processing and document management.
"""

import logging

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from notesplit.api.deps import get_document_service, get_job_manager
from notesplit.api.schemas.documents import (
    AllocationResponse,
    DocumentDeleteResponse,
    DocumentResponse,
)
from notesplit.core.documents.application.document_service import DocumentService
from notesplit.core.jobs.manager import BatchJob, JobManager, UploadedFile
from notesplit.shared.exceptions import PayloadTooLargeError, ValidationError
from notesplit.shared.messages import ERROR_MESSAGES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _read_limited(file: UploadFile, limit_bytes: int, limit_mb: int) -> bytes:
    """Read an upload, refusing to buffer more than ``limit_bytes``."""
    content = await file.read(limit_bytes + 1)
    if len(content) > limit_bytes:
        raise PayloadTooLargeError(limit_mb)
    return content


@router.post(
    "/upload",
    response_model=DocumentResponse,
    summary="Upload Document",
    description="""
    Upload a single PDF.

    Rejects files above the size limit (413) and anything that does not
    start with ``%PDF-`` (415). Nothing is stored for rejected uploads.
    """,
)
async def upload_document(
    request: Request,
    file: UploadFile = File(..., description="PDF file to upload"),
    documents: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    uploads = request.app.state.settings.uploads
    content = await _read_limited(file, uploads.max_file_bytes, uploads.max_file_size_mb)

    document = await documents.ingest(file.filename, content)
    return DocumentResponse.model_validate(document)


@router.post(
    "/batch-process",
    summary="Batch Process Documents",
    description="""
    Upload one or more PDFs and split them into delivery notes.

    Returns a ``text/event-stream`` of progress events framed as
    ``data: <json>``. Closing the stream cancels the job; notes created
    before the disconnect are kept.
    """,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def batch_process(
    request: Request,
    files: list[UploadFile] = File(..., description="PDF files to process"),
    documents: DocumentService = Depends(get_document_service),
    jobs: JobManager = Depends(get_job_manager),
) -> StreamingResponse:
    if not files:
        raise ValidationError(ERROR_MESSAGES["no_files"])

    uploads = request.app.state.settings.uploads
    batch: list[UploadedFile] = []
    total_bytes = 0
    for upload in files:
        content = await _read_limited(upload, uploads.max_file_bytes, uploads.max_file_size_mb)
        total_bytes += len(content)
        if total_bytes > uploads.max_batch_bytes:
            raise PayloadTooLargeError(uploads.max_batch_size_mb)
        documents.check_upload(content)
        batch.append(UploadedFile(filename=upload.filename or "", data=content))

    job = jobs.start(batch)
    return StreamingResponse(
        _stream_job(jobs, job),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Job-ID": job.id},
    )


async def _stream_job(jobs: JobManager, job: BatchJob):
    """SSE body for one job. A dropped connection cancels the job."""
    try:
        async for event in jobs.events(job):
            yield event.to_sse()
    finally:
        if not job.finished:
            logger.info(f"Client left the stream of job {job.id}")
            jobs.cancel(job.id)


@router.get(
    "",
    response_model=list[DocumentResponse],
    summary="List Documents",
    description="All uploaded documents, newest first.",
)
async def list_documents(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    documents: DocumentService = Depends(get_document_service),
) -> list[DocumentResponse]:
    items = await documents.list_documents(limit=limit, offset=offset)
    return [DocumentResponse.model_validate(doc) for doc in items]


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Get Document",
)
async def get_document(
    document_id: str,
    documents: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    document = await documents.get(document_id)
    return DocumentResponse.model_validate(document)


@router.get(
    "/{document_id}/allocations",
    response_model=AllocationResponse,
    summary="Get Page Allocations",
    description="Which note owns each page, and which pages are still free.",
)
async def get_allocations(
    document_id: str,
    documents: DocumentService = Depends(get_document_service),
) -> AllocationResponse:
    view = await documents.allocations(document_id)
    return AllocationResponse(
        document_id=view.document.id,
        page_count=view.document.page_count,
        allocations=view.allocations,
        unassigned_pages=view.unassigned_pages,
    )


@router.delete(
    "/{document_id}",
    response_model=DocumentDeleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete Document",
    description="""
    Delete a document. Fails with 409 while delivery notes reference it,
    unless ``cascade=true`` is given, in which case those notes go too.
    """,
)
async def delete_document(
    document_id: str,
    cascade: bool = Query(False, description="Also delete the document's delivery notes"),
    documents: DocumentService = Depends(get_document_service),
) -> DocumentDeleteResponse:
    removed = await documents.delete(document_id, cascade=cascade)
    return DocumentDeleteResponse(success=True, deleted_notes=removed)
