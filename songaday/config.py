"""Configuration management for Song A Day"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from songaday.utils.secrets import load_secret
from songaday.models.config_models import (
    SongADayConfig, SpotifyConfig, CurationConfig, SchedulingConfig,
    NotifyConfig, MonitoringConfig, WebConfig, LoggingConfig
)


logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET",
    "SPOTIFY_REDIRECT_URI",
    "HOST_URL",
]


def load_config_from_env() -> Dict:
    """Load configuration from environment variables.

    Exits the process when a required variable is missing.

    Returns:
        Configuration dictionary ready for validate_config()
    """
    logger.info("Loading configuration from environment variables...")

    missing = [var for var in REQUIRED_VARS if not load_secret(var)]
    if missing:
        logger.error("❌ Missing required environment variables: %s", ", ".join(missing))
        logger.error("")
        logger.error("Required variables:")
        logger.error("  SPOTIFY_CLIENT_ID      - Spotify application client ID")
        logger.error("  SPOTIFY_CLIENT_SECRET  - Spotify application client secret")
        logger.error("  SPOTIFY_REDIRECT_URI   - OAuth callback, e.g. https://example.com/callback")
        logger.error("  HOST_URL               - Public URL of this service")
        sys.exit(1)

    config = {
        "spotify": {
            "client_id": load_secret("SPOTIFY_CLIENT_ID"),
            "client_secret": load_secret("SPOTIFY_CLIENT_SECRET"),
            "redirect_uri": load_secret("SPOTIFY_REDIRECT_URI"),
            "api_url": os.getenv("SPOTIFY_API_URL", "https://api.spotify.com/v1"),
            "accounts_url": os.getenv("SPOTIFY_ACCOUNTS_URL", "https://accounts.spotify.com"),
        },
        "curation": {
            "year": int(os.getenv("SONGADAY_YEAR", str(datetime.now().year))),
            "timezone": os.getenv("TZ", "UTC"),
            "host_url": load_secret("HOST_URL"),
        },
        "data_dir": os.getenv("SONGADAY_DATA_DIR", str(Path.cwd())),
        "scheduling": {
            "interval_seconds": int(os.getenv("REFRESH_INTERVAL_SECONDS", "900")),
            "max_history_pages": int(os.getenv("MAX_HISTORY_PAGES", "50")),
        },
        "notify": {
            "webhook_url": load_secret("NOTIFY_WEBHOOK_URL"),
        },
        "monitoring": {
            "metrics_enabled": os.getenv("METRICS_ENABLED", "true").lower() == "true",
            "metrics_port": int(os.getenv("METRICS_PORT", "9090")),
        },
        "web": {
            "enabled": os.getenv("WEB_ENABLED", "true").lower() not in ("false", "no", "off", "disabled"),
            "port": int(os.getenv("WEB_PORT", "5000")),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "format": os.getenv("LOG_FORMAT", "text"),
            "file": os.getenv("LOG_FILE"),
        },
    }

    return config


def validate_config(config: Dict) -> Optional[SongADayConfig]:
    """Validate configuration using Pydantic models.

    Args:
        config: Configuration dictionary

    Returns:
        Validated SongADayConfig or None if validation fails
    """
    try:
        validated_config = SongADayConfig(
            spotify=SpotifyConfig(**config["spotify"]),
            curation=CurationConfig(**config["curation"]),
            data_dir=config["data_dir"],
            scheduling=SchedulingConfig(**config["scheduling"]),
            notify=NotifyConfig(**config["notify"]),
            monitoring=MonitoringConfig(**config["monitoring"]),
            web=WebConfig(**config["web"]),
            logging=LoggingConfig(**config["logging"]),
        )

        logger.info("✓ Configuration validation passed")
        return validated_config

    except Exception as e:
        logger.error("Configuration validation failed: %s", e)
        return None


def get_data_dir(config: SongADayConfig) -> Path:
    """Get data directory path, creating it if needed.

    Args:
        config: Validated configuration

    Returns:
        Path to data directory
    """
    data_dir = Path(config.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
