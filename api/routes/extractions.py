"""Extraction routes for the REST API."""
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, Query, Response, status

from api.dependencies import get_current_user_id, get_orchestrator
from api.services.orchestrator import ExtractionOrchestrator
from api.schemas.requests import StartExtractionRequest
from api.schemas.responses import (
    StartExtractionResponse,
    ExtractionSummary,
    ExtractionDetail,
    QuotaResponse,
    MessageResponse,
    ErrorResponse
)


router = APIRouter(
    prefix="/extractions",
    tags=["extractions"],
    responses={400: {"model": ErrorResponse}}
)


def _with_id(job: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(job)
    data["id"] = data.pop("_id")
    return data


@router.post("/start", response_model=StartExtractionResponse, status_code=status.HTTP_201_CREATED)
async def start_extraction(
    request: StartExtractionRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """
    Start a Google Maps extraction.

    - Validates and sanitizes the keyword
    - Checks the caller's daily quota
    - Creates the extraction and runs it in the background
    - Returns the extraction ID immediately
    """
    job = await orchestrator.submit(user_id, request)

    return StartExtractionResponse(
        id=job["_id"],
        keyword=job["keyword"],
        status=job["status"]
    )


@router.get("/history", response_model=List[ExtractionSummary])
async def get_history(
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """List the caller's extractions, newest first."""
    jobs = await orchestrator.history(user_id, limit)
    return [ExtractionSummary(**_with_id(job)) for job in jobs]


@router.get("/quota", response_model=QuotaResponse)
async def get_quota(
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """Get the caller's daily quota usage."""
    return QuotaResponse(**await orchestrator.quota_summary(user_id))


@router.get("/{extraction_id}", response_model=ExtractionDetail)
async def get_extraction(
    extraction_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """Get an extraction with its results and logs."""
    job = await orchestrator.get(extraction_id, user_id)
    return ExtractionDetail(**_with_id(job))


@router.get("/{extraction_id}/export")
async def export_extraction(
    extraction_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """Download a completed extraction as CSV."""
    export = await orchestrator.export(extraction_id, user_id)

    return Response(
        content=export.content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'}
    )


@router.post("/{extraction_id}/cancel", response_model=MessageResponse)
async def cancel_extraction(
    extraction_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """Cancel a running extraction."""
    await orchestrator.cancel(extraction_id, user_id)
    return MessageResponse(message="Extraction cancelled")


@router.delete("/{extraction_id}", response_model=MessageResponse)
async def delete_extraction(
    extraction_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator)
):
    """Delete an extraction whatever its status."""
    await orchestrator.delete(extraction_id, user_id)
    return MessageResponse(message="Extraction deleted")
