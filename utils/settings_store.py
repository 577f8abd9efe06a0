"""In-memory cache for runner settings."""

from __future__ import annotations

import os
import threading
from typing import Any

from utils.file_utils import load_json
from utils.log_utils import set_log_level, tprint

SETTINGS_PATH = "config/runner_settings.json"

DEFAULT_SETTINGS: dict[str, Any] = {
    "api_base_url": "http://localhost:8000/api",
    "api_token": None,
    "api_timeout_secs": 30,
    "platform_base_url": "https://www.linkedin.com",
    "rate_limit_max_requests": 60,
    "rate_limit_window_ms": 60_000,
    "rate_limit_max_wait_ms": 5_000,
    "action_delay_min_secs": 25,
    "action_delay_max_secs": 45,
    "empty_poll_interval_secs": 30,
    "max_empty_polls": 3,
    "error_cooldown_secs": 30,
    "report_attempts": 3,
    "report_retry_delay_secs": 5,
    "resume_settle_secs": 2,
    "max_context_switches": 5,
    "locator_retries": 3,
    "locator_retry_delay_ms": 1500,
    "locator_overrides": {},
    "state_dir": os.path.join("user_data", "session"),
    "playwright_profile_dir": os.path.join("user_data", "playwright_profile"),
    "playwright_headless": False,
    "log_level": "INFO",
}

# Environment variables win over the JSON file.
_ENV_OVERRIDES = {
    "OUTREACH_API_URL": "api_base_url",
    "OUTREACH_API_TOKEN": "api_token",
    "OUTREACH_PLATFORM_URL": "platform_base_url",
    "OUTREACH_STATE_DIR": "state_dir",
    "OUTREACH_LOG_LEVEL": "log_level",
    "OUTREACH_HEADLESS": "playwright_headless",
}

_lock = threading.Lock()
_settings_cache: dict[str, Any] = {}


def _env_value(key: str, raw: str) -> Any:
    if key == "playwright_headless":
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return raw


def refresh_settings(path: str = SETTINGS_PATH) -> dict[str, Any]:
    """Reload settings from disk and the environment and replace the cache."""
    data = load_json(path)
    if not isinstance(data, dict):
        data = {}
    merged = dict(DEFAULT_SETTINGS)
    merged.update(data)
    for env_name, key in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is not None and raw != "":
            merged[key] = _env_value(key, raw)
    set_log_level(merged.get("log_level"))
    with _lock:
        _settings_cache.clear()
        _settings_cache.update(merged)
        return dict(_settings_cache)


def get_settings() -> dict[str, Any]:
    """Return a copy of the cached settings."""
    with _lock:
        cached = dict(_settings_cache)
    if not cached:
        return refresh_settings()
    return cached


def resolve_settings(settings: dict[str, Any] | None) -> dict[str, Any]:
    """Overlay an explicit settings dict on the defaults (no disk access)."""
    if settings is None:
        return get_settings()
    merged = dict(DEFAULT_SETTINGS)
    merged.update(settings)
    return merged


def is_deep_logging() -> bool:
    """Return True when log_level requests deep tracing."""
    level = str(get_settings().get("log_level", "")).upper()
    return level in {"DEEP"}


def deep_log(message: str) -> None:
    if is_deep_logging():
        tprint(message)
