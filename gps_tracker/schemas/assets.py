from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field

Coordinates = Annotated[list[float], Field(min_length=2, max_length=2)]


class AssetLocation(BaseModel):
    """GeoJSON-style point, e.g. ``{"type": "Point", "coordinates": [lng, lat]}``."""

    type: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class AssetFields(BaseModel):
    serial_number: Optional[str] = Field(default=None, alias="serialNumber")
    name: Optional[str] = None
    model: Optional[str] = None
    device_name: Optional[str] = Field(default=None, alias="deviceName")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    engine_on: Optional[bool] = Field(default=None, alias="engineOn")
    speed: Optional[float] = None
    altitude: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    last_known_location: Optional[AssetLocation] = Field(
        default=None, alias="lastKnownLocation"
    )
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class AssetCreate(AssetFields):
    """Payload for a new asset. Every field is optional."""


class AssetUpdate(AssetFields):
    """Partial update; only keys present in the request body are merged."""


class AssetResponse(AssetFields):
    id: int


class AssetStateChange(BaseModel):
    state: Optional[bool] = None


class AlarmResponse(BaseModel):
    success: bool
    message: str


class AssetStatus(BaseModel):
    """Telemetry snapshot returned by ``GET /api/assets/{id}/status``."""

    engine_on: Optional[bool] = Field(default=None, alias="engineOn")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    speed: float
    altitude: float
    temperature: float
    humidity: float
    last_updated: datetime = Field(alias="lastUpdated")
    last_known_location: Optional[AssetLocation] = Field(
        default=None, alias="lastKnownLocation"
    )

    model_config = ConfigDict(populate_by_name=True)
