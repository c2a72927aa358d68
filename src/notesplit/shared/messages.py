"""
Shared User Messages
====================

Centralized repository for user-facing messages. Clients display these
verbatim, so the wording must stay stable across releases.
"""

ERROR_MESSAGES = {
    # Generic
    "default": "An unexpected error occurred.",
    "internal_error": "internal error",
    "internal_job_error": "internal error (job {job_id})",
    "validation_error": "Request validation failed",
    "not_found": "{resource} not found: {identifier}",
    # Uploads
    "payload_too_large": "Upload exceeds maximum size of {limit_mb}MB",
    "unsupported_media_type": "Only PDF files are accepted",
    "empty_file": "Empty file uploaded",
    "no_files": "No files uploaded",
    # PDF
    "pdf_corrupt": "The PDF file is corrupt or unreadable",
    "pdf_encrypted": "The PDF file is encrypted",
    "empty_selection": "No pages selected",
    # Allocation
    "allocation_conflict": "Pages already allocated: {pages}",
    "document_in_use": "Document is referenced by {count} delivery note(s)",
    "page_out_of_range": "Page numbers must be between 1 and {page_count}",
    "duplicate_pages": "Page numbers must be unique",
    # Extractor
    "extractor_transient": "Extractor temporarily unavailable",
    "extractor_permanent": "Extractor failed",
    "extractor_unavailable": "Extractor unavailable",
    "quota_exceeded": "Extractor quota exceeded",
    # Jobs
    "cancelled": "cancelled",
    "timeout": "timeout",
}

JOB_MESSAGES = {
    "page_warning": "Page {page} of {filename} could not be analysed: {reason}",
    "file_warning": "{filename} was skipped: {reason}",
    "file_failed": "{filename} could not be saved: {reason}",
    "completed": "Created {count} delivery note(s)",
    "completed_with_warnings": "Created {count} delivery note(s) with {warnings} warning(s)",
    "no_notes": "No delivery notes were created",
}

# Display name for notes whose start page carries no delivery-note number.
# User-visible convention, kept in Danish.
DEFAULT_NOTE_NAME = "Følgeseddel {page}"
UNKNOWN_COMPANY = "Ukendt"
