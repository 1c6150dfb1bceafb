from __future__ import annotations

import re
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiomysql
import aiosqlite
from loguru import logger

from .config import PROJECT_ROOT, Settings, get_settings

# Driver-level failures surfaced to callers as ``StorageError``.
DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    aiomysql.Error,
    sqlite3.Error,
    OSError,
)


class StorageError(RuntimeError):
    """Raised when the underlying store rejects or fails an operation."""


class Database:
    """Long-lived handle to the asset store.

    One instance is created per application at startup and handed to the
    repositories that need it.  MySQL is reached through an ``aiomysql``
    pool; when MySQL settings are incomplete a single ``aiosqlite``
    connection is used instead.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._pool: aiomysql.Pool | None = None
        self._sqlite_conn: aiosqlite.Connection | None = None
        self._settings = settings or get_settings()
        self._use_sqlite = self._should_use_sqlite()

    def _should_use_sqlite(self) -> bool:
        """Return True if any MySQL config is missing."""
        return not all([
            self._settings.database_host,
            self._settings.database_user,
            self._settings.database_name,
        ])

    def _get_sqlite_path(self) -> Path:
        return Path(self._settings.sqlite_path).expanduser()

    def is_sqlite(self) -> bool:
        return self._use_sqlite

    @property
    def placeholder(self) -> str:
        """Parameter marker understood by the active driver."""
        return "?" if self._use_sqlite else "%s"

    def _split_sql_statements(self, sql: str) -> list[str]:
        """Split a migration script into executable statements.

        Quote and comment state is tracked so semicolons inside string
        literals do not terminate a statement.
        """

        statements: list[str] = []
        statement_chars: list[str] = []
        in_single_quote = False
        in_double_quote = False
        i = 0
        length = len(sql)

        while i < length:
            char = sql[i]
            next_char = sql[i + 1] if i + 1 < length else ""

            if not in_single_quote and not in_double_quote:
                if char == "-" and next_char == "-":
                    i += 2
                    while i < length and sql[i] != "\n":
                        i += 1
                    continue
                if char == "/" and next_char == "*":
                    i += 2
                    while i + 1 < length and not (sql[i] == "*" and sql[i + 1] == "/"):
                        i += 1
                    i += 2
                    continue

            if char == "'" and not in_double_quote:
                statement_chars.append(char)
                if in_single_quote:
                    if next_char == "'":
                        statement_chars.append(next_char)
                        i += 2
                        continue
                    in_single_quote = False
                else:
                    in_single_quote = True
                i += 1
                continue

            if char == '"' and not in_single_quote:
                statement_chars.append(char)
                if in_double_quote:
                    if next_char == '"':
                        statement_chars.append(next_char)
                        i += 2
                        continue
                    in_double_quote = False
                else:
                    in_double_quote = True
                i += 1
                continue

            if char == ";" and not in_single_quote and not in_double_quote:
                statement = "".join(statement_chars).strip()
                if statement:
                    statements.append(statement)
                statement_chars = []
                i += 1
                continue

            statement_chars.append(char)
            i += 1

        remaining = "".join(statement_chars).strip()
        if remaining:
            statements.append(remaining)
        return statements

    async def connect(self) -> None:
        if self._pool or self._sqlite_conn:
            return

        if self._use_sqlite:
            db_path = self._get_sqlite_path()
            logger.info("Connecting to SQLite database at {path}", path=str(db_path))
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._sqlite_conn = await aiosqlite.connect(str(db_path))
            self._sqlite_conn.row_factory = aiosqlite.Row
        else:
            logger.info("Connecting to MySQL at {host}", host=self._settings.database_host)
            self._pool = await aiomysql.create_pool(
                host=self._settings.database_host,
                port=self._settings.database_port,
                user=self._settings.database_user,
                password=self._settings.database_password or "",
                db=self._settings.database_name,
                autocommit=True,
                minsize=1,
                maxsize=10,
                pool_recycle=600,
                init_command="SET time_zone = '+00:00'",
            )

    async def disconnect(self) -> None:
        if self._sqlite_conn:
            logger.info("Disconnecting from SQLite database")
            await self._sqlite_conn.close()
            self._sqlite_conn = None
        elif self._pool:
            logger.info("Disconnecting from MySQL database")
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None

    def is_connected(self) -> bool:
        return self._pool is not None or self._sqlite_conn is not None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Acquire a database connection.

        For MySQL, this returns a connection from the pool.
        For SQLite, this returns the single connection.
        """
        if self._use_sqlite:
            if not self._sqlite_conn:
                raise StorageError("SQLite database not initialised")
            yield self._sqlite_conn
        else:
            if not self._pool:
                raise StorageError("Database pool not initialised")
            conn = await self._pool.acquire()
            try:
                yield conn
            finally:
                self._pool.release(conn)

    async def execute(self, sql: str, params: tuple | dict | None = None) -> int:
        """Run a statement and return the number of affected rows."""
        if self._use_sqlite:
            async with self.acquire() as conn:
                cursor = await conn.execute(sql, params or ())
                await conn.commit()
                return cursor.rowcount
        async with self.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(sql, params)
                return cursor.rowcount

    async def execute_returning_lastrowid(
        self, sql: str, params: tuple | dict | None = None
    ) -> int:
        if self._use_sqlite:
            async with self.acquire() as conn:
                cursor = await conn.execute(sql, params or ())
                await conn.commit()
                return cursor.lastrowid if cursor.lastrowid else 0
        async with self.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(sql, params)
                last_row_id = cursor.lastrowid
        return int(last_row_id) if last_row_id is not None else 0

    async def fetch_one(self, sql: str, params: tuple | dict | None = None):
        if self._use_sqlite:
            async with self.acquire() as conn:
                cursor = await conn.execute(sql, params or ())
                row = await cursor.fetchone()
                return dict(row) if row else None
        async with self.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(sql, params)
                return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: tuple | dict | None = None):
        if self._use_sqlite:
            async with self.acquire() as conn:
                cursor = await conn.execute(sql, params or ())
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]
        async with self.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(sql, params)
                return list(await cursor.fetchall())

    def _get_migrations_dir(self) -> Path:
        return PROJECT_ROOT / "migrations"

    async def _ensure_migrations_table(self, conn: Any) -> None:
        if self._use_sqlite:
            await conn.execute(
                "CREATE TABLE IF NOT EXISTS migrations (name VARCHAR(255) PRIMARY KEY)"
            )
            await conn.commit()
        else:
            async with conn.cursor() as cursor:
                await cursor.execute("SET sql_notes = 0")
                try:
                    await cursor.execute(
                        "CREATE TABLE IF NOT EXISTS migrations (name VARCHAR(255) PRIMARY KEY)"
                    )
                finally:
                    await cursor.execute("SET sql_notes = 1")

    def _adapt_sql_for_sqlite(self, sql: str) -> str:
        """Translate the MySQL dialect used by migrations into SQLite syntax."""
        sql = re.sub(r"\s*ENGINE\s*=\s*\w+", "", sql, flags=re.IGNORECASE)
        sql = re.sub(r"\s*DEFAULT\s+CHARSET\s*=\s*\w+", "", sql, flags=re.IGNORECASE)
        sql = re.sub(r"\s*COLLATE\s*=\s*\w+", "", sql, flags=re.IGNORECASE)
        sql = re.sub(r"\bAUTO_INCREMENT\b", "AUTOINCREMENT", sql, flags=re.IGNORECASE)
        sql = re.sub(r"\s*COMMENT\s+'[^']*'", "", sql, flags=re.IGNORECASE)
        sql = re.sub(
            r"\bINT\b(\s+AUTOINCREMENT|\s+PRIMARY\s+KEY)",
            r"INTEGER\1",
            sql,
            flags=re.IGNORECASE,
        )
        # Reorder so SQLite sees "INTEGER PRIMARY KEY AUTOINCREMENT".
        sql = re.sub(
            r"INTEGER\s+AUTOINCREMENT\s+PRIMARY\s+KEY",
            "INTEGER PRIMARY KEY AUTOINCREMENT",
            sql,
            flags=re.IGNORECASE,
        )
        sql = re.sub(r"\bDATETIME(\(\d+\))?", "TEXT", sql, flags=re.IGNORECASE)
        sql = re.sub(r"\bTINYINT\(1\)", "INTEGER", sql, flags=re.IGNORECASE)
        sql = re.sub(r"\bJSON\b", "TEXT", sql, flags=re.IGNORECASE)
        return sql

    async def _apply_migration_file(self, conn: Any, path: Path) -> None:
        sql = path.read_text(encoding="utf-8")
        if self._use_sqlite:
            sql = self._adapt_sql_for_sqlite(sql)

        statements = self._split_sql_statements(sql)

        if self._use_sqlite:
            for statement in statements:
                await conn.execute(statement)
            await conn.execute("INSERT INTO migrations (name) VALUES (?)", (path.name,))
            await conn.commit()
        else:
            async with conn.cursor() as cursor:
                for statement in statements:
                    await cursor.execute(statement)
                await cursor.execute(
                    "INSERT INTO migrations (name) VALUES (%s)",
                    (path.name,),
                )

    async def run_migrations(self) -> None:
        """Apply every pending ``migrations/*.sql`` file in name order."""
        await self.connect()
        migrations_dir = self._get_migrations_dir()
        if not migrations_dir.exists():
            logger.warning("No migrations directory found at {path}", path=str(migrations_dir))
            return

        lock_name = f"{self._settings.database_name or 'gps_tracker'}_migration_lock"
        lock_timeout = self._settings.migration_lock_timeout
        lock_acquired = False

        async with self.acquire() as conn:
            try:
                # Only MySQL needs a cross-process lock.
                if not self._use_sqlite:
                    async with conn.cursor() as cursor:
                        await cursor.execute("SELECT GET_LOCK(%s, %s)", (lock_name, lock_timeout))
                        result = await cursor.fetchone()
                    lock_acquired = bool(result and result[0] == 1)
                    if not lock_acquired:
                        logger.error(
                            "Unable to obtain database migration lock {lock} within {timeout}s",
                            lock=lock_name,
                            timeout=lock_timeout,
                        )
                        raise StorageError("Could not obtain database migration lock")

                await self._ensure_migrations_table(conn)

                if self._use_sqlite:
                    cursor = await conn.execute("SELECT name FROM migrations")
                    applied = {row[0] for row in await cursor.fetchall()}
                else:
                    async with conn.cursor(aiomysql.DictCursor) as cursor:
                        await cursor.execute("SELECT name FROM migrations")
                        applied_rows = await cursor.fetchall()
                    applied = {row["name"] for row in applied_rows}

                for path in sorted(migrations_dir.glob("*.sql")):
                    if path.name in applied:
                        continue
                    await self._apply_migration_file(conn, path)
                    logger.info("Applied migration {name}", name=path.name)
            finally:
                if lock_acquired:
                    async with conn.cursor() as cursor:
                        await cursor.execute("SELECT RELEASE_LOCK(%s)", (lock_name,))
