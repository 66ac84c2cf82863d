"""Deal stores: durable collections of DealRecords keyed by link.

Two backends share the DealStore interface:

- JsonFileDealStore keeps the whole collection in one JSON document and
  rewrites it atomically (temp file in the same directory + os.replace).
- SqlDealStore keeps one row per deal in the ``deals`` table and writes
  each batch in a single transaction.

Queries use a small filter/sort vocabulary shared by both backends:

- filters: ``{"set_number": "42115"}`` for equality, or
  ``{"posted_date": {"$gte": since}}`` with ``$gt``, ``$gte``, ``$lt``, ``$lte``
- sort: ``[("comments_count", -1), ("price", 1)]``; missing values sort last
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brickdeals.config import settings
from brickdeals.core.exceptions import PersistenceWriteError, StoreReadError
from brickdeals.db.session import create_engine_for, create_session_factory, init_models
from brickdeals.models.deal import Deal
from brickdeals.schemas.deal import DealDocument
from brickdeals.scrapers.base import DealRecord

logger = structlog.get_logger(__name__)

Filters = Mapping[str, Any]
SortKeys = Sequence[Tuple[str, int]]

QUERYABLE_FIELDS = frozenset(f.name for f in fields(DealRecord))
RANGE_OPERATORS = ("$gt", "$gte", "$lt", "$lte")


def _check_field(name: str) -> None:
    if name not in QUERYABLE_FIELDS:
        raise ValueError(f"Unknown deal field: {name}")


def _split_condition(condition: Any) -> Dict[str, Any]:
    """Normalize a filter value into an {operator: operand} mapping."""
    if isinstance(condition, Mapping):
        unknown = [op for op in condition if op not in RANGE_OPERATORS]
        if unknown:
            raise ValueError(f"Unsupported filter operator(s): {', '.join(unknown)}")
        return dict(condition)
    return {"$eq": condition}


def _compare(value: Any, op: str, operand: Any) -> bool:
    if op == "$eq":
        return value == operand
    if value is None or operand is None:
        return False
    if op == "$gt":
        return value > operand
    if op == "$gte":
        return value >= operand
    if op == "$lt":
        return value < operand
    return value <= operand


def matches_filters(record: DealRecord, filters: Optional[Filters]) -> bool:
    """Check a record against a filter mapping (all conditions must hold)."""
    for name, condition in (filters or {}).items():
        _check_field(name)
        value = getattr(record, name)
        for op, operand in _split_condition(condition).items():
            if not _compare(value, op, operand):
                return False
    return True


def sort_records(records: Iterable[DealRecord], sort: Optional[SortKeys]) -> List[DealRecord]:
    """Sort records by several keys; None values go last in either direction."""
    result = list(records)
    # Stable sorts applied from the least significant key
    for name, direction in reversed(list(sort or [])):
        _check_field(name)
        if direction not in (1, -1):
            raise ValueError(f"Sort direction must be 1 or -1, got {direction!r}")
        present = [r for r in result if getattr(r, name) is not None]
        missing = [r for r in result if getattr(r, name) is None]
        present.sort(key=lambda r: getattr(r, name), reverse=direction == -1)
        result = present + missing
    return result


class DealStore(ABC):
    """Durable collection of DealRecords with at most one record per link."""

    @abstractmethod
    async def load_all(self) -> Dict[str, DealRecord]:
        """Return every stored record keyed by link.

        Raises:
            StoreReadError: If the existing store cannot be read
        """

    @abstractmethod
    async def replace_all(self, records: Iterable[DealRecord]) -> None:
        """Atomically replace the whole collection.

        Raises:
            PersistenceWriteError: If the write fails; the previous
                contents are left intact
        """

    @abstractmethod
    async def insert(self, record: DealRecord) -> None:
        """Add a record whose link is not stored yet.

        Raises:
            PersistenceWriteError: If the link already exists or the write fails
        """

    @abstractmethod
    async def replace(self, record: DealRecord) -> bool:
        """Replace the record stored under record.link.

        Returns:
            True if a record was replaced, False if the link is unknown
        """

    @abstractmethod
    async def find(
        self,
        filters: Optional[Filters] = None,
        sort: Optional[SortKeys] = None,
        limit: Optional[int] = None,
    ) -> List[DealRecord]:
        """Return records matching filters, ordered by sort, at most limit."""


class JsonFileDealStore(DealStore):
    """Deal store backed by a single JSON array document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self.logger = logger.bind(store="json", path=str(self.path))

    async def load_all(self) -> Dict[str, DealRecord]:
        return await asyncio.to_thread(self._read)

    async def replace_all(self, records: Iterable[DealRecord]) -> None:
        documents = [DealDocument.from_record(r).to_json_dict() for r in records]
        await asyncio.to_thread(self._write, documents)
        self.logger.debug("store_written", count=len(documents))

    async def insert(self, record: DealRecord) -> None:
        async with self._lock:
            existing = await self.load_all()
            if record.link in existing:
                raise PersistenceWriteError(str(self.path), f"duplicate link {record.link}")
            existing[record.link] = record
            await self.replace_all(existing.values())

    async def replace(self, record: DealRecord) -> bool:
        async with self._lock:
            existing = await self.load_all()
            if record.link not in existing:
                return False
            existing[record.link] = record
            await self.replace_all(existing.values())
            return True

    async def find(
        self,
        filters: Optional[Filters] = None,
        sort: Optional[SortKeys] = None,
        limit: Optional[int] = None,
    ) -> List[DealRecord]:
        records = await self.load_all()
        matched = [r for r in records.values() if matches_filters(r, filters)]
        ordered = sort_records(matched, sort)
        return ordered if limit is None else ordered[:limit]

    def _read(self) -> Dict[str, DealRecord]:
        if not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreReadError(str(self.path), str(e)) from e

        if not isinstance(raw, list):
            raise StoreReadError(str(self.path), "top-level JSON value is not an array")

        records: Dict[str, DealRecord] = {}
        for index, item in enumerate(raw):
            try:
                record = DealDocument.model_validate(item).to_record()
            except (ValidationError, ValueError) as e:
                raise StoreReadError(str(self.path), f"invalid document at index {index}: {e}") from e
            records[record.link] = record
        return records

    def _write(self, documents: List[dict]) -> None:
        directory = self.path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                json.dump(documents, tmp, ensure_ascii=False, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise PersistenceWriteError(str(self.path), str(e)) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    self.logger.warning("temp_file_cleanup_failed", tmp_path=tmp_name)


def _utc(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


class SqlDealStore(DealStore):
    """Deal store backed by the ``deals`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        bind = session_factory.kw.get("bind")
        self.target = str(bind.url) if bind is not None else "database"
        self.logger = logger.bind(store="sql", target=self.target)

    async def load_all(self) -> Dict[str, DealRecord]:
        try:
            async with self.session_factory() as session:
                rows = (await session.scalars(select(Deal))).all()
        except SQLAlchemyError as e:
            raise StoreReadError(self.target, str(e)) from e
        return {row.link: row.to_record() for row in rows}

    async def replace_all(self, records: Iterable[DealRecord]) -> None:
        by_link = {r.link: r for r in records}
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    existing = {
                        row.link: row for row in (await session.scalars(select(Deal))).all()
                    }
                    for link, record in by_link.items():
                        row = existing.pop(link, None)
                        if row is None:
                            session.add(Deal.from_record(self._normalized(record)))
                        else:
                            row.apply_record(self._normalized(record))
                    for stale in existing.values():
                        await session.delete(stale)
        except SQLAlchemyError as e:
            raise PersistenceWriteError(self.target, str(e)) from e
        self.logger.debug("store_written", count=len(by_link))

    async def insert(self, record: DealRecord) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(Deal.from_record(self._normalized(record)))
        except IntegrityError as e:
            raise PersistenceWriteError(self.target, f"duplicate link {record.link}") from e
        except SQLAlchemyError as e:
            raise PersistenceWriteError(self.target, str(e)) from e

    async def replace(self, record: DealRecord) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await session.get(Deal, record.link)
                    if row is None:
                        return False
                    row.apply_record(self._normalized(record))
        except SQLAlchemyError as e:
            raise PersistenceWriteError(self.target, str(e)) from e
        return True

    async def find(
        self,
        filters: Optional[Filters] = None,
        sort: Optional[SortKeys] = None,
        limit: Optional[int] = None,
    ) -> List[DealRecord]:
        query = select(Deal)

        for name, condition in (filters or {}).items():
            _check_field(name)
            column = getattr(Deal, name)
            for op, operand in _split_condition(condition).items():
                operand = _utc(operand)
                if op == "$eq":
                    query = query.where(column.is_(None) if operand is None else column == operand)
                elif op == "$gt":
                    query = query.where(column > operand)
                elif op == "$gte":
                    query = query.where(column >= operand)
                elif op == "$lt":
                    query = query.where(column < operand)
                else:
                    query = query.where(column <= operand)

        for name, direction in sort or []:
            _check_field(name)
            if direction not in (1, -1):
                raise ValueError(f"Sort direction must be 1 or -1, got {direction!r}")
            column = getattr(Deal, name)
            # NULLs last in either direction
            query = query.order_by(column.is_(None), column.desc() if direction == -1 else column.asc())

        if limit is not None:
            query = query.limit(limit)

        try:
            async with self.session_factory() as session:
                rows = (await session.scalars(query)).all()
        except SQLAlchemyError as e:
            raise StoreReadError(self.target, str(e)) from e
        return [row.to_record() for row in rows]

    @staticmethod
    def _normalized(record: DealRecord) -> DealRecord:
        """Store instants in UTC so SQL range filters compare like for like."""
        if record.posted_date is None:
            return record
        return replace(record, posted_date=_utc(record.posted_date))


async def create_store(backend: Optional[str] = None) -> DealStore:
    """Build the deal store selected by settings.STORE_BACKEND."""
    backend = (backend or settings.STORE_BACKEND).lower()

    if backend == "json":
        return JsonFileDealStore(settings.DEALS_JSON_PATH)

    if backend == "sql":
        engine = create_engine_for()
        await init_models(engine)
        return SqlDealStore(create_session_factory(engine))

    raise ValueError(f"Unknown store backend: {backend}")
