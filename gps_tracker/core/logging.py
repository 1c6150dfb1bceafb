from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from gps_tracker.core.config import Settings, get_settings

LOG_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message}\n{exception}"


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()

    logger.remove()
    logger.add(
        sink=lambda msg: print(msg, end=""),
        format=LOG_FORMAT,
        level=settings.log_level.upper(),
    )

    log_path = settings.log_file_path
    if log_path:
        log_path = log_path.expanduser()
        if _ensure_log_path(log_path):
            try:
                logger.add(
                    str(log_path),
                    format=LOG_FORMAT,
                    level=settings.log_level.upper(),
                    encoding="utf-8",
                    enqueue=True,
                )
            except Exception as exc:  # pragma: no cover - defensive logging setup
                logger.warning(
                    f"LOG FILE DISABLED - unable to open file path={log_path} error={exc}"
                )


def _format_meta(meta: dict[str, Any]) -> str:
    return " ".join(f"{key}={meta[key]}" for key in sorted(meta))


def log_error(message: str, **meta) -> None:
    if meta:
        logger.bind(**meta).error(f"{message} | {_format_meta(meta)}")
    else:
        logger.error(message)


def log_info(message: str, **meta) -> None:
    if meta:
        logger.bind(**meta).info(f"{message} | {_format_meta(meta)}")
    else:
        logger.info(message)


def log_warning(message: str, **meta) -> None:
    if meta:
        logger.bind(**meta).warning(f"{message} | {_format_meta(meta)}")
    else:
        logger.warning(message)


def log_debug(message: str, **meta) -> None:
    if meta:
        logger.bind(**meta).debug(f"{message} | {_format_meta(meta)}")
    else:
        logger.debug(message)


def _ensure_log_path(path: Path) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning(
            f"LOG FILE DISABLED - unable to create directory path={path.parent} "
            f"error={exc}"
        )
        return False
    return True


def log_audit_event(
    event_type: str,
    action: str,
    *,
    entity_type: str | None = None,
    entity_id: int | str | None = None,
    ip_address: str | None = None,
    **extra_meta,
) -> None:
    """
    Record a state-changing operation in a consistent, grep-friendly format.

    Format: ``{event_type} {action} | entity_id={...} entity_type={...} ip={...} [extra_meta]``

    Args:
        event_type: Category of the event (e.g., "ASSET ACTION")
        action: Specific action performed (e.g., "create", "engine", "restore")
        entity_type: Type of entity being acted upon (e.g., "asset")
        entity_id: Identifier of the entity being acted upon
        ip_address: IP address of the client
        **extra_meta: Additional metadata to include in the log entry
    """
    parts = [event_type, action]
    meta: dict[str, Any] = {}

    if entity_type:
        meta["entity_type"] = entity_type
    if entity_id is not None:
        meta["entity_id"] = entity_id
    if ip_address:
        meta["ip"] = ip_address

    meta.update(extra_meta)

    message = " ".join(parts)
    if meta:
        message = f"{message} | {_format_meta(meta)}"
        logger.bind(**meta).info(message)
    else:
        logger.info(message)
