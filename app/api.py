"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import List, Union

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.schemas import ErrorResponse, IngestResponse, ReadingSchema, ReportRow
from services.errors import MalformedPayload, StoreQueryFailed
from services.ingestion import IngestionService, build_default_ingestion

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(mode="json"),
    )


@router.post(
    "/data",
    response_model=IngestResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
    summary="Ingest one sensor reading and push it to live subscribers.",
)
async def ingest_reading(
    request: Request,
    service: IngestionService = Depends(get_ingestion),
) -> Union[IngestResponse, JSONResponse]:
    body = await request.body()
    try:
        result = await service.ingest(body)
    except MalformedPayload as exc:
        logger.warning("Rejected malformed payload", extra={"reason": str(exc)})
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))

    return IngestResponse(
        data=ReadingSchema.from_reading(result.reading),
        id=result.reading_id,
        persisted=result.persisted,
        error=str(result.error) if result.error is not None else None,
    )


@router.get(
    "/data",
    response_model=ReadingSchema,
    summary="Return the most recently ingested reading.",
)
async def latest_reading(
    service: IngestionService = Depends(get_ingestion),
) -> ReadingSchema:
    return ReadingSchema.from_reading(service.latest())


@router.get(
    "/reports",
    response_model=List[ReportRow],
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse}},
    summary="Return up to 50 persisted readings, newest first.",
)
async def recent_reports(
    service: IngestionService = Depends(get_ingestion),
) -> Union[List[ReportRow], JSONResponse]:
    try:
        return await service.recent_reports()
    except StoreQueryFailed as exc:
        logger.error("Failed to load reports", extra={"reason": str(exc)})
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
