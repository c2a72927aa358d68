"""
Health Check Endpoints
======================

Liveness check for the API.
"""

from fastapi import APIRouter, status
from pydantic import BaseModel

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness Probe",
    description="Returns 200 if the process is alive.",
)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")
