"""
Purpose: Key-value media the session store can sit on.
Why: The store only needs get/set/delete/clear over strings, so the medium is
swappable (in-memory for tests, a JSON file or SQLite for a local install).

What is inside:
InMemoryBackend: dict, nothing survives the process.
JsonFileBackend: one JSON object on disk, replaced atomically on every write.
SQLiteBackend: a single `kv` table through a SQLAlchemy engine, one row per key.

Every medium failure is re-raised as PersistenceError.

Testing:
In-memory: simple state tests.
File/SQLite: tmp_path fixture.
"""

from __future__ import annotations
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError

LOGGER = logging.getLogger(__name__)

METADATA = MetaData()
KV_TABLE = Table(
    "kv",
    METADATA,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
)


class InMemoryBackend:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data = {}

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileBackend:
    """Keeps every key in one JSON object file; writes go through a temp file."""

    def __init__(self, path: os.PathLike | str) -> None:
        self.path = Path(path).expanduser()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"Corrupt store file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupt store file {self.path}: not an object")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e
        LOGGER.debug("Wrote %d key(s) to %s", len(data), self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def clear(self) -> None:
        self._write_all({})


class SQLiteBackend:
    """
    One row per key in a `kv` table. Every call checks a connection out of the
    engine's pool and runs in its own transaction, so any thread may call it.
    """

    def __init__(self, path: os.PathLike | str) -> None:
        self.path = Path(path).expanduser()
        self._engine: Optional[Engine] = None

    def _connect(self) -> Engine:
        if self._engine is not None:
            return self._engine
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{self.path}",
                connect_args={"check_same_thread": False},
                pool_pre_ping=True,
            )
            METADATA.create_all(engine)
        except (OSError, SQLAlchemyError) as e:
            raise PersistenceError(f"Cannot open database {self.path}: {e}") from e
        self._engine = engine
        return engine

    def get(self, key: str) -> Optional[str]:
        engine = self._connect()
        try:
            with engine.connect() as conn:
                return conn.execute(
                    select(KV_TABLE.c.value).where(KV_TABLE.c.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot read key {key!r}: {e}") from e

    def set(self, key: str, value: str) -> None:
        stmt = sqlite_insert(KV_TABLE).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KV_TABLE.c.key], set_={"value": stmt.excluded.value}
        )
        engine = self._connect()
        try:
            with engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot write key {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        engine = self._connect()
        try:
            with engine.begin() as conn:
                conn.execute(delete(KV_TABLE).where(KV_TABLE.c.key == key))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot delete key {key!r}: {e}") from e

    def clear(self) -> None:
        engine = self._connect()
        try:
            with engine.begin() as conn:
                conn.execute(delete(KV_TABLE))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot clear database: {e}") from e

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
