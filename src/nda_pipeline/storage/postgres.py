"""
PostgreSQL progress store using SQLAlchemy async.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

import structlog
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nda_pipeline.config import get_settings
from nda_pipeline.exceptions import StoreUnavailableError
from nda_pipeline.models.bootstrap import BootstrapProgress, BootstrapStatus

logger = structlog.get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS bootstrap_progress (
        id TEXT PRIMARY KEY,
        source TEXT NOT NULL,
        status TEXT NOT NULL,
        total_records INTEGER,
        processed_records INTEGER NOT NULL DEFAULT 0,
        embedded_records INTEGER NOT NULL DEFAULT 0,
        error_count INTEGER NOT NULL DEFAULT 0,
        last_batch_index INTEGER NOT NULL DEFAULT 0,
        last_batch_processed INTEGER NOT NULL DEFAULT 0,
        last_batch_embedded INTEGER NOT NULL DEFAULT 0,
        last_batch_errors INTEGER NOT NULL DEFAULT 0,
        pending_batch_index INTEGER,
        pending_hashes TEXT NOT NULL DEFAULT '[]',
        last_processed_hash TEXT,
        started_at TIMESTAMP,
        completed_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_bootstrap_progress_source ON bootstrap_progress (source, created_at)",
    # Tables created before batch counters and pending markers were tracked
    "ALTER TABLE bootstrap_progress ADD COLUMN IF NOT EXISTS last_batch_processed INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE bootstrap_progress ADD COLUMN IF NOT EXISTS last_batch_embedded INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE bootstrap_progress ADD COLUMN IF NOT EXISTS last_batch_errors INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE bootstrap_progress ADD COLUMN IF NOT EXISTS pending_batch_index INTEGER",
    "ALTER TABLE bootstrap_progress ADD COLUMN IF NOT EXISTS pending_hashes TEXT NOT NULL DEFAULT '[]'",
)

_COLUMNS = (
    "id, source, status, total_records, processed_records, embedded_records, "
    "error_count, last_batch_index, last_batch_processed, last_batch_embedded, "
    "last_batch_errors, pending_batch_index, pending_hashes, "
    "last_processed_hash, started_at, completed_at, "
    "created_at, updated_at"
)


class PostgresProgressStore:
    """
    Bootstrap progress persisted in PostgreSQL.

    Saves are upserts; ``last_batch_index`` is combined with GREATEST so a
    stale writer can never move a checkpoint backwards.
    """

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        self.database_url = database_url or settings.postgres_url

        self.engine = create_async_engine(
            self.database_url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._schema_ready = False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except OperationalError as e:
                await session.rollback()
                raise StoreUnavailableError("postgres", str(e)) from e
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()

    async def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self.session() as session:
            for statement in _SCHEMA:
                await session.execute(text(statement))
        self._schema_ready = True

    # =========================================================================
    # Progress Operations
    # =========================================================================

    async def create(self, progress: BootstrapProgress) -> BootstrapProgress:
        await self.ensure_schema()
        async with self.session() as session:
            await session.execute(
                text(f"""
                    INSERT INTO bootstrap_progress ({_COLUMNS})
                    VALUES (
                        :id, :source, :status, :total_records, :processed_records,
                        :embedded_records, :error_count, :last_batch_index,
                        :last_batch_processed, :last_batch_embedded, :last_batch_errors,
                        :pending_batch_index, :pending_hashes, :last_processed_hash,
                        :started_at, :completed_at, :created_at, :updated_at
                    )
                """),
                self._progress_to_params(progress),
            )
        logger.info("progress_created", progress_id=progress.id, source=progress.source)
        return progress

    async def get(self, progress_id: str) -> BootstrapProgress | None:
        await self.ensure_schema()
        async with self.session() as session:
            result = await session.execute(
                text(f"SELECT {_COLUMNS} FROM bootstrap_progress WHERE id = :id"),
                {"id": progress_id},
            )
            row = result.mappings().fetchone()
            return self._row_to_progress(row) if row else None

    async def latest_for_source(self, source: str) -> BootstrapProgress | None:
        await self.ensure_schema()
        async with self.session() as session:
            result = await session.execute(
                text(f"""
                    SELECT {_COLUMNS} FROM bootstrap_progress
                    WHERE source = :source
                    ORDER BY created_at DESC
                    LIMIT 1
                """),
                {"source": source},
            )
            row = result.mappings().fetchone()
            return self._row_to_progress(row) if row else None

    async def save(self, progress: BootstrapProgress) -> BootstrapProgress:
        await self.ensure_schema()
        async with self.session() as session:
            result = await session.execute(
                text(f"""
                    INSERT INTO bootstrap_progress ({_COLUMNS})
                    VALUES (
                        :id, :source, :status, :total_records, :processed_records,
                        :embedded_records, :error_count, :last_batch_index,
                        :last_batch_processed, :last_batch_embedded, :last_batch_errors,
                        :pending_batch_index, :pending_hashes, :last_processed_hash,
                        :started_at, :completed_at, :created_at, :updated_at
                    )
                    ON CONFLICT (id) DO UPDATE SET
                        status = EXCLUDED.status,
                        total_records = EXCLUDED.total_records,
                        processed_records = EXCLUDED.processed_records,
                        embedded_records = EXCLUDED.embedded_records,
                        error_count = EXCLUDED.error_count,
                        last_batch_index = GREATEST(
                            bootstrap_progress.last_batch_index, EXCLUDED.last_batch_index
                        ),
                        last_batch_processed = EXCLUDED.last_batch_processed,
                        last_batch_embedded = EXCLUDED.last_batch_embedded,
                        last_batch_errors = EXCLUDED.last_batch_errors,
                        pending_batch_index = EXCLUDED.pending_batch_index,
                        pending_hashes = EXCLUDED.pending_hashes,
                        last_processed_hash = EXCLUDED.last_processed_hash,
                        started_at = EXCLUDED.started_at,
                        completed_at = EXCLUDED.completed_at,
                        updated_at = EXCLUDED.updated_at
                    RETURNING {_COLUMNS}
                """),
                self._progress_to_params(progress),
            )
            row = result.mappings().fetchone()
        return self._row_to_progress(row)

    @staticmethod
    def _progress_to_params(progress: BootstrapProgress) -> dict[str, Any]:
        params = progress.model_dump()
        params["status"] = progress.status.value
        params["pending_hashes"] = json.dumps(progress.pending_hashes)
        return params

    @staticmethod
    def _row_to_progress(row: Any) -> BootstrapProgress:
        """Convert a database row to a BootstrapProgress model."""
        return BootstrapProgress(
            id=row["id"],
            source=row["source"],
            status=BootstrapStatus(row["status"]),
            total_records=row["total_records"],
            processed_records=row["processed_records"],
            embedded_records=row["embedded_records"],
            error_count=row["error_count"],
            last_batch_index=row["last_batch_index"],
            last_batch_processed=row["last_batch_processed"],
            last_batch_embedded=row["last_batch_embedded"],
            last_batch_errors=row["last_batch_errors"],
            pending_batch_index=row["pending_batch_index"],
            pending_hashes=json.loads(row["pending_hashes"] or "[]"),
            last_processed_hash=row["last_processed_hash"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            created_at=row["created_at"] or datetime.now(),
            updated_at=row["updated_at"] or datetime.now(),
        )

