from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Callable

from gps_tracker.core.logging import log_audit_event, log_info
from gps_tracker.repositories.assets import AssetRepository
from gps_tracker.schemas.assets import AssetCreate, AssetUpdate

_EVENT_TYPE = "ASSET ACTION"

# Half-open sampling ranges for the simulated telemetry snapshot.
SPEED_RANGE = (0.0, 100.0)
ALTITUDE_RANGE = (0.0, 1000.0)
TEMPERATURE_RANGE = (20.0, 35.0)
HUMIDITY_RANGE = (30.0, 70.0)

ALARM_MESSAGE = "Alarm triggered"


class AssetNotFoundError(LookupError):
    """Raised when an operation targets an asset id with no stored record."""

    def __init__(self, asset_id: Any) -> None:
        super().__init__("Asset not found")
        self.asset_id = asset_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssetService:
    """Asset CRUD and device actions on top of an ``AssetRepository``.

    Every id-targeted operation raises ``AssetNotFoundError`` when the asset
    is absent.  Storage failures propagate as ``StorageError``.
    """

    def __init__(
        self,
        repository: AssetRepository,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._rng = rng or random.Random()
        self._clock = clock

    def _sample(self, bounds: tuple[float, float]) -> float:
        low, high = bounds
        return low + self._rng.random() * (high - low)

    async def _require(self, asset_id: Any) -> dict[str, Any]:
        asset = await self._repository.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    async def _apply(self, asset_id: Any, action: str, **changes: Any) -> dict[str, Any]:
        updated = await self._repository.update_asset(asset_id, **changes)
        if updated is None:
            raise AssetNotFoundError(asset_id)
        log_audit_event(
            _EVENT_TYPE,
            action,
            entity_type="asset",
            entity_id=updated["id"],
            fields=",".join(sorted(changes)) or "-",
        )
        return updated

    async def list_assets(self) -> list[dict[str, Any]]:
        return await self._repository.list_assets()

    async def get_asset(self, asset_id: Any) -> dict[str, Any]:
        return await self._require(asset_id)

    async def create_asset(self, payload: AssetCreate) -> dict[str, Any]:
        data = payload.model_dump(exclude_unset=True)
        for flag in ("is_active", "engine_on"):
            if data.get(flag) is None:
                data[flag] = False
        if data.get("last_updated") is None:
            data["last_updated"] = self._clock()
        created = await self._repository.create_asset(**data)
        log_audit_event(_EVENT_TYPE, "create", entity_type="asset", entity_id=created["id"])
        return created

    async def update_asset(self, asset_id: Any, payload: AssetUpdate) -> dict[str, Any]:
        return await self._apply(asset_id, "update", **payload.model_dump(exclude_unset=True))

    async def set_engine_state(self, asset_id: Any, state: bool | None) -> dict[str, Any]:
        changes = {} if state is None else {"engine_on": state}
        return await self._apply(asset_id, "engine", **changes)

    async def set_power_state(self, asset_id: Any, state: bool | None) -> dict[str, Any]:
        changes = {} if state is None else {"is_active": state}
        return await self._apply(asset_id, "power", **changes)

    async def trigger_alarm(self, asset_id: Any) -> dict[str, Any]:
        """Acknowledge an alarm request; nothing is persisted."""
        asset = await self._require(asset_id)
        log_audit_event(_EVENT_TYPE, "alarm", entity_type="asset", entity_id=asset["id"])
        return {"success": True, "message": ALARM_MESSAGE}

    async def activate_lost_mode(self, asset_id: Any) -> dict[str, Any]:
        return await self._apply(
            asset_id, "lost-mode", is_active=True, last_updated=self._clock()
        )

    async def restore_defaults(self, asset_id: Any) -> dict[str, Any]:
        return await self._apply(
            asset_id,
            "restore",
            engine_on=False,
            is_active=False,
            speed=0.0,
            last_updated=self._clock(),
        )

    async def get_live_status(self, asset_id: Any) -> dict[str, Any]:
        """Synthesize a telemetry snapshot and write it back onto the asset.

        This is a read-with-mutation: each call samples fresh values and
        persists them, so responses must not be cached or replayed.
        """
        asset = await self._require(asset_id)
        status = {
            "engine_on": asset.get("engine_on"),
            "is_active": asset.get("is_active"),
            "speed": self._sample(SPEED_RANGE),
            "altitude": self._sample(ALTITUDE_RANGE),
            "temperature": self._sample(TEMPERATURE_RANGE),
            "humidity": self._sample(HUMIDITY_RANGE),
            "last_updated": self._clock(),
            "last_known_location": asset.get("last_known_location"),
        }
        await self._apply(asset["id"], "status", **status)
        log_info("Asset status sampled", asset_id=asset["id"], speed=round(status["speed"], 2))
        return status
