from __future__ import annotations

from fastapi import Request

from gps_tracker.core.database import Database


async def require_database(request: Request) -> Database:
    db: Database = request.app.state.db
    if not db.is_connected():
        await db.connect()
    return db
