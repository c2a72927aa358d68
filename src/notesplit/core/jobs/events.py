"""
Progress Events
===============

Wire shape of batch progress updates, framed as server-sent events.
"""

import json

from pydantic import BaseModel, Field

from notesplit.core.jobs.state import JobStatus


class ProgressEvent(BaseModel):
    """
    One progress update.

    ``status`` is ``warning`` both for per-page/per-file notices while the
    job keeps running and for a job that finished with warnings; only the
    last event of a stream carries the job's final status.
    """

    status: JobStatus
    current_file: str | None = None
    file_index: int | None = Field(default=None, ge=1)
    total_files: int | None = Field(default=None, ge=0)
    page: int | None = Field(default=None, ge=1)
    total_pages: int | None = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    message: str | None = None

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def to_sse(self) -> str:
        """Frame as ``data: <json>\\n\\n``."""
        return f"data: {json.dumps(self.to_payload(), ensure_ascii=False)}\n\n"
