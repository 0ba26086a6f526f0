from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import urlparse

import aiosqlite

from cds.config import DATABASE_MAX_CONNECTIONS, DATABASE_PATH, DATABASE_URL

try:  # Optional: only required when DATABASE_URL points at Postgres
    import asyncpg  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    asyncpg = None

logger = logging.getLogger(__name__)


class DatabaseAdapter:
    engine: str

    async def execute(self, query: str, params: Sequence | None = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_one(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_all(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def commit(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def rollback(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def executescript(self, script: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class SQLiteAdapter(DatabaseAdapter):
    conn: aiosqlite.Connection
    engine: str = "sqlite"

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        await self.conn.execute(query, params or ())

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        await self.conn.executemany(query, seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        async with self.conn.execute(query, params or ()) as cursor:
            return await cursor.fetchone()

    async def fetch_all(self, query: str, params: Sequence | None = None):
        async with self.conn.execute(query, params or ()) as cursor:
            return await cursor.fetchall()

    async def commit(self) -> None:
        await self.conn.commit()

    async def rollback(self) -> None:
        await self.conn.rollback()

    async def close(self) -> None:
        await self.conn.close()

    async def executescript(self, script: str) -> None:
        await self.conn.executescript(script)


@dataclass
class PostgresAdapter(DatabaseAdapter):
    pool: "asyncpg.Pool"  # type: ignore[name-defined]
    engine: str = "postgres"

    @staticmethod
    def _translate_query(query: str) -> str:
        # SQLite-style ? placeholders -> asyncpg-style $1, $2, ...
        if "$1" in query:
            return query
        parts = query.split("?")
        out = [parts[0]]
        for idx, part in enumerate(parts[1:], start=1):
            out.append(f"${idx}{part}")
        return "".join(out)

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(self._translate_query(query), *(params or ()))

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        async with self.pool.acquire() as conn:
            await conn.executemany(self._translate_query(query), seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(self._translate_query(query), *(params or ()))

    async def fetch_all(self, query: str, params: Sequence | None = None):
        async with self.pool.acquire() as conn:
            return await conn.fetch(self._translate_query(query), *(params or ()))

    async def commit(self) -> None:
        # asyncpg autocommits per statement unless an explicit transaction is used.
        return

    async def rollback(self) -> None:
        # Nothing pending: each statement was already committed.
        return

    async def close(self) -> None:
        await self.pool.close()

    async def executescript(self, script: str) -> None:
        # Not supported for Postgres; callers should split statements.
        raise NotImplementedError


_db: DatabaseAdapter | None = None


async def _connect_sqlite(path: str) -> SQLiteAdapter:
    conn = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row
    logger.info("Connected to SQLite database at %s", path)
    return SQLiteAdapter(conn)


async def get_db() -> DatabaseAdapter:
    global _db
    if _db is None:
        if DATABASE_URL and not DATABASE_URL.startswith("sqlite"):
            if asyncpg is None:
                raise RuntimeError(
                    "DATABASE_URL is set but asyncpg is not installed. "
                    "Install asyncpg or unset DATABASE_URL."
                )
            pool = await asyncpg.create_pool(
                dsn=DATABASE_URL,
                min_size=1,
                max_size=DATABASE_MAX_CONNECTIONS,
            )
            _db = PostgresAdapter(pool)
            logger.info("Connected to Postgres database")
        elif DATABASE_URL:
            _db = await _connect_sqlite(_sqlite_path_from_url(DATABASE_URL) or DATABASE_PATH)
        else:
            _db = await _connect_sqlite(DATABASE_PATH)
    return _db


def _sqlite_path_from_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or ""
    if not path or path == "/":
        return ""
    # sqlite:////absolute/path.db -> keep absolute path
    if url.startswith("sqlite:////"):
        return path
    # sqlite:///relative.db -> strip leading slash
    if path.startswith("/"):
        return path[1:]
    return path


# Dates are stored as ISO-8601 text on both engines so range filters compare lexically.
# Nested documents (interaction lists, trigger conditions, preference lists) are JSON text.
_TABLES = """
    CREATE TABLE IF NOT EXISTS patients (
        id TEXT PRIMARY KEY,
        date_of_birth TEXT,
        gender TEXT,
        demographics TEXT NOT NULL DEFAULT '{{}}',
        active_medications TEXT NOT NULL DEFAULT '[]',
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS diagnoses (
        id {serial} PRIMARY KEY,
        patient_id TEXT NOT NULL REFERENCES patients(id),
        code TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        is_active INTEGER NOT NULL DEFAULT 1,
        diagnosed_at TEXT
    );

    CREATE TABLE IF NOT EXISTS medications (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        generic_name TEXT NOT NULL,
        classification TEXT,
        interactions TEXT NOT NULL DEFAULT '[]'
    );

    CREATE TABLE IF NOT EXISTS lab_results (
        id {serial} PRIMARY KEY,
        patient_id TEXT NOT NULL REFERENCES patients(id),
        test_code TEXT NOT NULL,
        value TEXT NOT NULL DEFAULT '',
        unit TEXT,
        result_date TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS allergies (
        id TEXT PRIMARY KEY,
        patient_id TEXT NOT NULL REFERENCES patients(id),
        allergen TEXT NOT NULL DEFAULT '',
        allergen_type TEXT NOT NULL,
        medication_id TEXT,
        allergen_class TEXT,
        reaction TEXT,
        is_active INTEGER NOT NULL DEFAULT 1
    );

    CREATE TABLE IF NOT EXISTS clinical_alerts (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        category TEXT NOT NULL,
        severity TEXT NOT NULL DEFAULT 'info',
        trigger_conditions TEXT NOT NULL DEFAULT '[]',
        source TEXT,
        evidence_level TEXT NOT NULL DEFAULT 'not-applicable',
        recommended_action TEXT,
        auto_dismiss INTEGER NOT NULL DEFAULT 0,
        dismiss_timeout INTEGER NOT NULL DEFAULT 0,
        is_system_defined INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        expiration_date TEXT,
        applicable_departments TEXT NOT NULL DEFAULT '[]',
        customization_options TEXT NOT NULL DEFAULT '{{}}',
        created_at TEXT NOT NULL,
        updated_at TEXT
    );

    CREATE TABLE IF NOT EXISTS user_alert_preferences (
        user_id TEXT PRIMARY KEY,
        global_alert_status TEXT NOT NULL DEFAULT 'enabled',
        category_preferences TEXT NOT NULL DEFAULT '[]',
        alert_preferences TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_diagnoses_patient ON diagnoses(patient_id, is_active);
    CREATE INDEX IF NOT EXISTS idx_lab_results_patient ON lab_results(patient_id, result_date);
    CREATE INDEX IF NOT EXISTS idx_allergies_patient ON allergies(patient_id, allergen_type, is_active);
    CREATE INDEX IF NOT EXISTS idx_clinical_alerts_category ON clinical_alerts(category, is_active);
    CREATE INDEX IF NOT EXISTS idx_clinical_alerts_severity ON clinical_alerts(severity)
"""

SQLITE_SCHEMA = _TABLES.format(serial="INTEGER") + ";"
POSTGRES_SCHEMA = [stmt for stmt in _TABLES.format(serial="BIGSERIAL").split(";") if stmt.strip()]


async def init_db() -> None:
    db = await get_db()

    if db.engine == "sqlite":
        await db.executescript(SQLITE_SCHEMA)
    else:
        for stmt in POSTGRES_SCHEMA:
            await db.execute(stmt)

    await db.commit()


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None
