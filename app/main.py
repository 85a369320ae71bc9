from __future__ import annotations
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.api import router
from app.realtime import router as realtime_router
from app.web import router as web_router
from datastore.readings import build_default_store
from logging_config import configure_logging
from services.ingestion import build_default_ingestion


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    service = build_default_ingestion()
    service.store.create_schema()
    try:
        yield
    finally:
        service.shutdown()
        build_default_ingestion.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Vital Signs Relay",
        description="Ingests sensor readings, stores them and streams them to live dashboards.",
        version="0.1.0",
        lifespan=lifespan,
    )
    static_dir = Path(__file__).resolve().parent / "static"
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    app.include_router(router)
    app.include_router(realtime_router)
    app.include_router(web_router)
    return app

app = create_app()
