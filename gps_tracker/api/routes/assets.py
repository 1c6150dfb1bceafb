from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from gps_tracker.api.dependencies.assets import get_asset_service
from gps_tracker.schemas.assets import (
    AlarmResponse,
    AssetCreate,
    AssetResponse,
    AssetStateChange,
    AssetStatus,
    AssetUpdate,
)
from gps_tracker.services.assets import AssetService

router = APIRouter(prefix="/api/assets", tags=["Assets"])


@router.get("", response_model=list[AssetResponse])
async def list_assets(service: AssetService = Depends(get_asset_service)):
    return await service.list_assets()


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset(asset_id: str, service: AssetService = Depends(get_asset_service)):
    return await service.get_asset(asset_id)


@router.post("", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def create_asset(
    payload: AssetCreate,
    service: AssetService = Depends(get_asset_service),
):
    return await service.create_asset(payload)


@router.put("/{asset_id}", response_model=AssetResponse)
async def update_asset(
    asset_id: str,
    payload: AssetUpdate,
    service: AssetService = Depends(get_asset_service),
):
    return await service.update_asset(asset_id, payload)


@router.post("/{asset_id}/engine", response_model=AssetResponse)
async def control_engine(
    asset_id: str,
    payload: AssetStateChange | None = None,
    service: AssetService = Depends(get_asset_service),
):
    return await service.set_engine_state(asset_id, payload.state if payload else None)


@router.post("/{asset_id}/power", response_model=AssetResponse)
async def control_power(
    asset_id: str,
    payload: AssetStateChange | None = None,
    service: AssetService = Depends(get_asset_service),
):
    return await service.set_power_state(asset_id, payload.state if payload else None)


@router.post("/{asset_id}/alarm", response_model=AlarmResponse)
async def trigger_alarm(asset_id: str, service: AssetService = Depends(get_asset_service)):
    return await service.trigger_alarm(asset_id)


@router.post("/{asset_id}/lost-mode", response_model=AssetResponse)
async def activate_lost_mode(
    asset_id: str,
    service: AssetService = Depends(get_asset_service),
):
    return await service.activate_lost_mode(asset_id)


@router.post("/{asset_id}/restore", response_model=AssetResponse)
async def restore_defaults(
    asset_id: str,
    service: AssetService = Depends(get_asset_service),
):
    return await service.restore_defaults(asset_id)


@router.get("/{asset_id}/status", response_model=AssetStatus)
async def get_asset_status(
    asset_id: str,
    response: Response,
    service: AssetService = Depends(get_asset_service),
):
    """Sample live telemetry for the asset.

    Each call writes the sampled values back onto the asset, so the
    response is marked non-cacheable.
    """
    snapshot = await service.get_live_status(asset_id)
    response.headers["Cache-Control"] = "no-store"
    return snapshot
