from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Float, Integer, create_engine, func, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from app.schemas import ReportRow
from models.records import Reading
from services.errors import PersistenceFailed, StoreQueryFailed
from settings import REPORTS_LIMIT, Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ReadingRow(Base):
    """Durable counterpart of a reading in the ``readings`` table."""

    __tablename__ = "readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    heart_rate: Mapped[Optional[float]] = mapped_column("heartRate", Float, default=0.0)
    temperature: Mapped[Optional[float]] = mapped_column("temperature", Float, default=0.0)
    sugar_level: Mapped[Optional[float]] = mapped_column("sugarLevel", Float, default=0.0)
    timestamp: Mapped[datetime] = mapped_column(
        "timestamp",
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )


class ReadingStore:

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        """Create the ``readings`` table if it does not exist yet."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError:
            logger.exception("Reading store is unreachable")
            raise
        logger.info("Reading store schema ready on %s", self.engine.url.render_as_string())

    def append(self, reading: Reading) -> int:
        row = ReadingRow(
            heart_rate=reading.heart_rate,
            temperature=reading.temperature,
            sugar_level=reading.sugar_level,
            timestamp=reading.timestamp,
        )
        try:
            with self._session_factory() as session:
                session.add(row)
                session.commit()
                return row.id
        except SQLAlchemyError as exc:
            raise PersistenceFailed(f"Failed to persist reading: {exc}") from exc

    def recent(self, limit: int = REPORTS_LIMIT) -> list[ReportRow]:
        """Return up to ``limit`` rows, newest first."""
        bounded = max(0, min(limit, REPORTS_LIMIT))
        statement = (
            select(ReadingRow)
            .order_by(ReadingRow.timestamp.desc(), ReadingRow.id.desc())
            .limit(bounded)
        )
        try:
            with self._session_factory() as session:
                rows = session.scalars(statement).all()
        except SQLAlchemyError as exc:
            raise StoreQueryFailed(f"Failed to load recent readings: {exc}") from exc

        return [
            ReportRow.from_columns(
                row_id=row.id,
                heart_rate=row.heart_rate,
                temperature=row.temperature,
                sugar_level=row.sugar_level,
                timestamp=row.timestamp,
            )
            for row in rows
        ]

    def dispose(self) -> None:
        self.engine.dispose()


def _connect_args(settings: Settings) -> Dict[str, Any]:
    if settings.uses_mysql and settings.db_ssl:
        args: Dict[str, Any] = {"ssl_verify_cert": True, "ssl_verify_identity": True}
        if settings.db_ssl_ca:
            args["ssl_ca"] = settings.db_ssl_ca
        return args
    if settings.database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def build_engine(settings: Settings) -> Engine:
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args=_connect_args(settings),
    )


@lru_cache
def build_default_store(database_url: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    if database_url is not None:
        settings = replace(settings, database_url=database_url)
    return ReadingStore(engine=build_engine(settings))
