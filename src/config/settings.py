"""Engine configuration loaded from config/engine.yaml.

Business thresholds, display options, backend endpoints and retry policy all
live in the YAML file; anything missing falls back to the defaults below.
"""

import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from functools import cached_property
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .secrets import get_api_base_url

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config/engine.yaml"

DEFAULT_MIN_WHEEL_DIAMETER_MM = 631.0
DEFAULT_LATEST_SUMMARY_IMAGES = 5
DEFAULT_API_BASE_URL = "http://localhost:5000"
DEFAULT_REPORTS_PATH = "/api/reports"
DEFAULT_REQUEST_TIMEOUT = (10, 30)
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF_SECONDS = 2
DEFAULT_BACKOFF_MULTIPLIER = 2


def load_engine_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load engine configuration from config/engine.yaml.

    Args:
        path: Explicit config path; when None the working directory and the
            repository root are searched

    Returns:
        Config dict or empty dict if file not found
    """
    if path is not None:
        config_paths = [path]
    else:
        config_paths = [
            CONFIG_FILENAME,
            os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), CONFIG_FILENAME),
        ]

    for candidate in config_paths:
        if os.path.exists(candidate):
            try:
                with open(candidate, 'r') as f:
                    return yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load engine config from {candidate}: {e}")

    return {}


def get_retry_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get retry configuration, preferring config/engine.yaml over defaults.

    Returns:
        Dict with max_retries, initial_backoff_seconds, backoff_multiplier
    """
    if config is None:
        config = load_engine_config()
    retry_config = config.get('retry') or {}

    return {
        'max_retries': retry_config.get('max_retries', DEFAULT_MAX_RETRIES),
        'initial_backoff_seconds': retry_config.get('initial_backoff_seconds', DEFAULT_INITIAL_BACKOFF_SECONDS),
        'backoff_multiplier': retry_config.get('backoff_multiplier', DEFAULT_BACKOFF_MULTIPLIER),
    }


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Resolve an IANA zone name; None means the host's local zone."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to host local time")
        return None


@dataclass(frozen=True)
class EngineSettings:
    """Resolved engine settings."""

    min_wheel_diameter_mm: float = DEFAULT_MIN_WHEEL_DIAMETER_MM
    timezone: Optional[str] = None
    latest_summary_images: int = DEFAULT_LATEST_SUMMARY_IMAGES
    api_base_url: str = DEFAULT_API_BASE_URL
    reports_path: str = DEFAULT_REPORTS_PATH
    request_timeout: Tuple[float, float] = DEFAULT_REQUEST_TIMEOUT
    max_reconnects: Optional[int] = None
    log_level: str = "INFO"

    @cached_property
    def tz(self) -> Optional[tzinfo]:
        """Resolved once per settings object."""
        return resolve_timezone(self.timezone)


def get_settings(config: Optional[Dict[str, Any]] = None) -> EngineSettings:
    """
    Build EngineSettings from a config dict (loaded from disk when None).

    The WHEEL_API_BASE_URL environment variable overrides api.base_url.
    """
    if config is None:
        config = load_engine_config()

    thresholds = config.get("thresholds") or {}
    display = config.get("display") or {}
    api = config.get("api") or {}
    live_feed = config.get("live_feed") or {}
    logging_conf = config.get("logging") or {}

    timeout = api.get("timeout_seconds", DEFAULT_REQUEST_TIMEOUT)
    if isinstance(timeout, (int, float)):
        timeout = (timeout, timeout)

    base_url = get_api_base_url() or api.get("base_url") or DEFAULT_API_BASE_URL

    return EngineSettings(
        min_wheel_diameter_mm=float(thresholds.get("min_wheel_diameter_mm", DEFAULT_MIN_WHEEL_DIAMETER_MM)),
        timezone=display.get("timezone"),
        latest_summary_images=int(display.get("latest_summary_images", DEFAULT_LATEST_SUMMARY_IMAGES)),
        api_base_url=base_url.rstrip("/"),
        reports_path=api.get("reports_path", DEFAULT_REPORTS_PATH),
        request_timeout=tuple(timeout),
        max_reconnects=live_feed.get("max_reconnects"),
        log_level=str(logging_conf.get("level", "INFO")),
    )
