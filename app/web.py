from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api import get_ingestion
from app.schemas import ReadingSchema, ReportRow
from services.errors import StoreQueryFailed
from services.ingestion import IngestionService


logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    service: IngestionService = Depends(get_ingestion),
) -> HTMLResponse:
    reports: list[ReportRow] = []
    history_error: str | None = None
    try:
        reports = await service.recent_reports()
    except StoreQueryFailed as exc:
        logger.error("Dashboard history unavailable", extra={"reason": str(exc)})
        history_error = "History is temporarily unavailable."

    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "latest": ReadingSchema.from_reading(service.latest()),
            "reports": reports,
            "history_error": history_error,
        },
    )
