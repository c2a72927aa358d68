"""
API Dependencies
================

FastAPI dependency injection utilities.
"""

from fastapi import Request

from notesplit.composition_root import ServiceContainer
from notesplit.core.documents.application.delivery_note_service import DeliveryNoteService
from notesplit.core.documents.application.document_service import DocumentService
from notesplit.core.jobs.manager import JobManager


def get_services(request: Request) -> ServiceContainer:
    """Service container created during application startup."""
    return request.app.state.services


def get_document_service(request: Request) -> DocumentService:
    return get_services(request).documents


def get_note_service(request: Request) -> DeliveryNoteService:
    return get_services(request).notes


def get_job_manager(request: Request) -> JobManager:
    return get_services(request).jobs
