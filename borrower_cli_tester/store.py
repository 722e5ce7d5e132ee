"""SQLite persistence of test results."""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sqlalchemy import Boolean, Select, String, Text, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from borrower_cli_tester.models.result import TestResult

log = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the result store cannot be read or written."""


class Base(DeclarativeBase):
    """Declarative base for the result tables."""


class TestResultRow(Base):
    """One persisted run. steps_completed is a JSON list, timestamp RFC 3339."""

    __tablename__ = "test_results"
    __test__ = False

    id: Mapped[str] = mapped_column(String, primary_key=True)
    success: Mapped[bool] = mapped_column(Boolean)
    details: Mapped[str] = mapped_column(Text)
    mnemonic: Mapped[str] = mapped_column(Text)
    btc_address: Mapped[str] = mapped_column(String)
    lava_pubkey: Mapped[str] = mapped_column(String)
    contract_id: Mapped[str | None] = mapped_column(String, nullable=True)
    steps_completed: Mapped[str] = mapped_column(Text)
    logs: Mapped[str] = mapped_column(Text)
    timestamp: Mapped[str] = mapped_column(String, index=True)

    @classmethod
    def from_result(cls, result: TestResult) -> "TestResultRow":
        return cls(
            id=result.id,
            success=result.success,
            details=result.details,
            mnemonic=result.mnemonic,
            btc_address=result.btc_address,
            lava_pubkey=result.lava_pubkey,
            contract_id=result.contract_id,
            steps_completed=json.dumps(list(result.steps_completed)),
            logs=result.logs,
            timestamp=result.timestamp.isoformat(timespec="microseconds"),
        )

    def to_result(self) -> TestResult:
        return TestResult(
            id=self.id,
            success=self.success,
            details=self.details,
            mnemonic=self.mnemonic,
            btc_address=self.btc_address,
            lava_pubkey=self.lava_pubkey,
            contract_id=self.contract_id,
            steps_completed=tuple(json.loads(self.steps_completed)),
            logs=self.logs,
            timestamp=datetime.fromisoformat(self.timestamp),
        )


@dataclass(frozen=True, kw_only=True)
class ResultStore:
    """Single-table store keyed by run id.

    Writes are serialised so concurrent runs never write at the same time.
    """

    sessions: async_sessionmaker[AsyncSession] = field(repr=False)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    @asynccontextmanager
    async def open(cls, database_path: Path) -> AsyncGenerator["ResultStore", None]:
        """Open the database, creating its directory and table if needed."""
        try:
            database_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to create directory: {e}") from e

        log.info("Using database at: %s", database_path)
        engine = create_async_engine(f"sqlite+aiosqlite:///{database_path}")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            yield cls(sessions=async_sessionmaker(engine, expire_on_commit=False))
        finally:
            await engine.dispose()

    async def save(self, result: TestResult) -> None:
        """Insert a result. Ids are unique, saving twice is an error."""
        async with self.write_lock:
            try:
                async with self.sessions.begin() as session:
                    session.add(TestResultRow.from_result(result))
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to save result {result.id}: {e}") from e

    async def get(self, result_id: str) -> TestResult | None:
        """Return one result by id."""
        try:
            async with self.sessions() as session:
                row = await session.get(TestResultRow, result_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load result {result_id}: {e}") from e
        return row.to_result() if row is not None else None

    async def list_all(self) -> Sequence[TestResult]:
        """Return all results, newest first."""
        query = select(TestResultRow).order_by(TestResultRow.timestamp.desc())
        return [row.to_result() for row in await self._scalars(query)]

    async def last_successful(self) -> TestResult | None:
        """Return the newest successful result."""
        query = (
            select(TestResultRow)
            .where(TestResultRow.success.is_(True))
            .order_by(TestResultRow.timestamp.desc())
            .limit(1)
        )
        rows = await self._scalars(query)
        return rows[0].to_result() if rows else None

    async def _scalars(
        self, query: Select[tuple[TestResultRow]]
    ) -> Sequence[TestResultRow]:
        try:
            async with self.sessions() as session:
                return (await session.scalars(query)).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Query failed: {e}") from e
