from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timezone
from typing import Any, AsyncIterator

from gps_tracker.core.database import DRIVER_ERRORS, Database, StorageError

ASSET_COLUMNS: tuple[str, ...] = (
    "serial_number",
    "name",
    "model",
    "device_name",
    "image_url",
    "is_active",
    "engine_on",
    "speed",
    "altitude",
    "temperature",
    "humidity",
    "last_known_location",
    "last_updated",
)

_BOOL_COLUMNS = {"is_active", "engine_on"}
_FLOAT_COLUMNS = {"speed", "altitude", "temperature", "humidity"}

# Upper bound of the signed INT primary key column.
MAX_ASSET_ID = 2**31 - 1


def _ensure_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        for fmt in (
            "%Y-%m-%d %H:%M:%S.%f",
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%dT%H:%M:%S.%f%z",
            "%Y-%m-%dT%H:%M:%S%z",
        ):
            try:
                dt = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        else:
            try:
                dt = datetime.fromisoformat(text)
            except ValueError:
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt


def _to_db_datetime(value: Any) -> str | None:
    dt = _ensure_datetime(value)
    if not dt:
        return None
    return dt.replace(tzinfo=None).strftime("%Y-%m-%d %H:%M:%S.%f")


def _coerce_id(value: Any) -> int | None:
    """Return the integer primary key for ``value`` or ``None`` if it cannot exist."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value).strip()
        if not text.isascii() or not text.isdigit():
            return None
        parsed = int(text)
    return parsed if 0 < parsed <= MAX_ASSET_ID else None


def _encode_location(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value)


def _decode_location(value: Any) -> dict[str, Any] | None:
    if value in (None, ""):
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _encode_value(column: str, value: Any) -> Any:
    if column in _BOOL_COLUMNS and value is not None:
        return 1 if value else 0
    if column == "last_known_location":
        return _encode_location(value)
    if column == "last_updated":
        return _to_db_datetime(value)
    return value


def _normalise_row(row: dict[str, Any]) -> dict[str, Any]:
    asset = dict(row)
    asset["id"] = int(asset["id"])
    for column in _BOOL_COLUMNS:
        if asset.get(column) is not None:
            asset[column] = bool(asset[column])
    for column in _FLOAT_COLUMNS:
        if asset.get(column) is not None:
            asset[column] = float(asset[column])
    asset["last_known_location"] = _decode_location(asset.get("last_known_location"))
    asset["last_updated"] = _ensure_datetime(asset.get("last_updated"))
    return asset


class AssetRepository:
    """Key-document access to the ``assets`` table.

    Callers see assets as plain dicts keyed by snake_case column name.
    Driver failures are re-raised as ``StorageError``.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @asynccontextmanager
    async def _storage_faults(self) -> AsyncIterator[None]:
        try:
            yield
        except StorageError:
            raise
        except DRIVER_ERRORS as exc:
            raise StorageError(str(exc)) from exc
        except (OverflowError, ValueError) as exc:
            # Parameters the driver cannot bind.
            raise StorageError(str(exc)) from exc

    async def list_assets(self) -> list[dict[str, Any]]:
        async with self._storage_faults():
            rows = await self._db.fetch_all("SELECT * FROM assets ORDER BY id")
        return [_normalise_row(row) for row in rows]

    async def get_asset(self, asset_id: Any) -> dict[str, Any] | None:
        key = _coerce_id(asset_id)
        if key is None:
            return None
        async with self._storage_faults():
            row = await self._db.fetch_one(
                f"SELECT * FROM assets WHERE id = {self._db.placeholder}",
                (key,),
            )
        return _normalise_row(row) if row else None

    async def create_asset(self, **fields: Any) -> dict[str, Any]:
        columns = [column for column in ASSET_COLUMNS if column in fields]
        params = tuple(_encode_value(column, fields[column]) for column in columns)
        placeholders = ", ".join([self._db.placeholder] * len(columns))
        async with self._storage_faults():
            if columns:
                new_id = await self._db.execute_returning_lastrowid(
                    f"INSERT INTO assets ({', '.join(columns)}) VALUES ({placeholders})",
                    params,
                )
            else:
                new_id = await self._db.execute_returning_lastrowid(
                    "INSERT INTO assets DEFAULT VALUES"
                    if self._db.is_sqlite()
                    else "INSERT INTO assets () VALUES ()"
                )
        created = await self.get_asset(new_id)
        if created is None:
            raise StorageError(f"Asset {new_id} was not readable after insert")
        return created

    async def update_asset(self, asset_id: Any, **fields: Any) -> dict[str, Any] | None:
        """Merge ``fields`` into the asset and return the post-update row.

        Returns ``None`` when the asset does not exist.  Unknown keys are
        ignored.
        """
        existing = await self.get_asset(asset_id)
        if existing is None:
            return None
        columns = [column for column in ASSET_COLUMNS if column in fields]
        if not columns:
            return existing
        assignments = ", ".join(f"{column} = {self._db.placeholder}" for column in columns)
        params = tuple(_encode_value(column, fields[column]) for column in columns)
        async with self._storage_faults():
            await self._db.execute(
                f"UPDATE assets SET {assignments} WHERE id = {self._db.placeholder}",
                params + (existing["id"],),
            )
        return await self.get_asset(existing["id"])
