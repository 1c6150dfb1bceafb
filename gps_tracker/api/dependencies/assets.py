from __future__ import annotations

from fastapi import Depends

from gps_tracker.api.dependencies.database import require_database
from gps_tracker.core.database import Database
from gps_tracker.repositories.assets import AssetRepository
from gps_tracker.services.assets import AssetService


async def get_asset_service(db: Database = Depends(require_database)) -> AssetService:
    return AssetService(AssetRepository(db))
