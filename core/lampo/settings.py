"""
Lampo Configuration Settings

Resolved once at startup and injected into the API client and views.
User-facing settings are loaded from options.json (add-on) or config.yaml (dev).
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


@dataclass(frozen=True)
class DashboardSettings:
    """Process-wide dashboard configuration."""

    api_base_url: str = "http://localhost:8000"
    request_timeout: float = 5.0  # Per HTTP request (transport)
    fetch_timeout: float = 8.0  # Upper bound before a read falls back
    default_areas: tuple[str, ...] = ("FI",)
    best_window_hours: int = 3
    forecast_table_rows: int = 12
    high_wind_threshold: float = 70.0  # Wind % that counts as "green"
    log_level: str = "INFO"
    extra: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict) -> "DashboardSettings":
        """Create from dictionary. Unknown keys are kept in `extra`."""
        converted = {_camel_to_snake(k): v for k, v in data.items()}

        # Legacy name used by the web frontend
        if "api_url" in converted:
            converted.setdefault("api_base_url", converted.pop("api_url"))

        known = {f.name for f in fields(cls)} - {"extra"}
        extra = {k: v for k, v in converted.items() if k not in known}
        kwargs = {k: v for k, v in converted.items() if k in known}

        if "default_areas" in kwargs:
            kwargs["default_areas"] = tuple(kwargs["default_areas"])

        settings = cls(**kwargs, extra=extra)

        if not settings.api_base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"api_base_url must be an http(s) URL: {settings.api_base_url}")
        if settings.request_timeout <= 0 or settings.fetch_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if settings.best_window_hours < 1:
            raise ConfigurationError("best_window_hours must be at least 1")

        return settings


def _read_options(options_path: str, config_path: str) -> dict:
    # Try Home Assistant options.json first (production)
    if os.path.exists(options_path):
        with open(options_path) as f:
            options = json.load(f)
            logger.info(f"Loaded settings from {options_path}")
            return options.get("dashboard", options)

    # Fallback to config.yaml (development)
    if os.path.exists(config_path):
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded settings from {config_path}")
            return config.get("options", {}).get("dashboard", {})

    return {}


def load_settings(
    options_path: str = OPTIONS_PATH,
    config_path: str = CONFIG_PATH,
    environ: dict | None = None,
) -> DashboardSettings:
    """Resolve settings from file and environment.

    Environment variables LAMPO_API_URL and LAMPO_LOG_LEVEL override files.
    """
    env = os.environ if environ is None else environ
    options = dict(_read_options(options_path, config_path))

    if env.get("LAMPO_API_URL"):
        options["api_base_url"] = env["LAMPO_API_URL"]
    if env.get("LAMPO_LOG_LEVEL"):
        options["log_level"] = env["LAMPO_LOG_LEVEL"]

    settings = DashboardSettings.from_dict(options)
    logger.info(f"Backend API: {settings.api_base_url}")
    return settings
