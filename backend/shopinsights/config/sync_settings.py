"""
Sync settings loader.

Loads Shopify client and sync orchestration tuning from
config/sync_settings.yml, with environment variable overrides and
built-in defaults when the file is missing.

Usage:
    from shopinsights.config.sync_settings import get_sync_settings

    settings = get_sync_settings()
    settings.page_size          # 250
    settings.api_version        # "2023-10"
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2023-10"
DEFAULT_PAGE_SIZE = 250
MAX_PAGE_SIZE = 250
DEFAULT_RESOURCES = ("orders", "customers", "products")


@dataclass(frozen=True)
class SyncSettings:
    """Resolved sync configuration."""

    api_version: str = DEFAULT_API_VERSION
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    page_size: int = DEFAULT_PAGE_SIZE
    resources: Tuple[str, ...] = DEFAULT_RESOURCES
    max_page_retries: int = 2
    retry_base_delay_seconds: float = 2.0
    retry_max_delay_seconds: float = 30.0
    stale_lock_minutes: int = 120
    max_stores_per_run: int = 100
    webhook_base_url: Optional[str] = field(default=None)


_settings: Optional[SyncSettings] = None
_lock = Lock()


def _resolve_path(config_path: Optional[str] = None) -> Optional[Path]:
    if config_path:
        return Path(config_path)

    env_path = os.getenv("SYNC_SETTINGS_PATH")
    candidates = [Path(env_path)] if env_path else []
    candidates += [
        # backend/shopinsights/config -> repository root
        Path(__file__).resolve().parents[3] / "config" / "sync_settings.yml",
        Path(os.getcwd()) / "config" / "sync_settings.yml",
        Path(os.getcwd()) / ".." / "config" / "sync_settings.yml",
    ]
    for p in candidates:
        resolved = p.resolve()
        if resolved.exists():
            return resolved
    return None


def _read_yaml(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        logger.warning("sync_settings.yml not found, using built-in defaults")
        return {}
    logger.info("Loading sync settings from %s", path)
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_sync_settings(config_path: Optional[str] = None) -> SyncSettings:
    """Build SyncSettings from YAML + environment (no caching)."""
    raw = _read_yaml(_resolve_path(config_path))
    shopify_cfg = raw.get("shopify", {}) or {}
    sync_cfg = raw.get("sync", {}) or {}
    scheduler_cfg = raw.get("scheduler", {}) or {}

    page_size = int(os.getenv("SYNC_PAGE_SIZE", sync_cfg.get("page_size", DEFAULT_PAGE_SIZE)))
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        logger.warning(
            "Invalid sync page size, clamping",
            extra={"page_size": page_size, "max_page_size": MAX_PAGE_SIZE},
        )
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    resources = tuple(sync_cfg.get("resources") or DEFAULT_RESOURCES)

    return SyncSettings(
        api_version=os.getenv(
            "SHOPIFY_API_VERSION", shopify_cfg.get("api_version", DEFAULT_API_VERSION)
        ),
        request_timeout_seconds=float(os.getenv(
            "SHOPIFY_REQUEST_TIMEOUT_SECONDS",
            shopify_cfg.get("request_timeout_seconds", 30.0),
        )),
        connect_timeout_seconds=float(shopify_cfg.get("connect_timeout_seconds", 10.0)),
        page_size=page_size,
        resources=resources,
        max_page_retries=int(sync_cfg.get("max_page_retries", 2)),
        retry_base_delay_seconds=float(sync_cfg.get("retry_base_delay_seconds", 2.0)),
        retry_max_delay_seconds=float(sync_cfg.get("retry_max_delay_seconds", 30.0)),
        stale_lock_minutes=int(sync_cfg.get("stale_lock_minutes", 120)),
        max_stores_per_run=int(scheduler_cfg.get("max_stores_per_run", 100)),
        webhook_base_url=os.getenv("WEBHOOK_BASE_URL"),
    )


def get_sync_settings() -> SyncSettings:
    """Get the process-wide SyncSettings (loaded once)."""
    global _settings
    if _settings is None:
        with _lock:
            if _settings is None:
                _settings = load_sync_settings()
    return _settings


def reset_sync_settings() -> None:
    """Drop the cached settings (e.g. after env changes in tests)."""
    global _settings
    with _lock:
        _settings = None
