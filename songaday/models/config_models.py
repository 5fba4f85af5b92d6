"""Pydantic models for configuration validation"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)


class SpotifyConfig(BaseModel):
    """Spotify OAuth application configuration"""
    client_id: str = Field(..., description="Spotify client ID")
    client_secret: str = Field(..., description="Spotify client secret")
    redirect_uri: str = Field(..., description="OAuth redirect URI")
    api_url: str = Field("https://api.spotify.com/v1", description="Web API base URL")
    accounts_url: str = Field("https://accounts.spotify.com", description="Accounts service URL")

    @field_validator('client_id', 'client_secret')
    @classmethod
    def validate_not_empty(cls, v):
        if not v or v.strip() == '':
            raise ValueError('Field cannot be empty')
        return v

    @field_validator('redirect_uri', 'api_url', 'accounts_url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')


class CurationConfig(BaseModel):
    """Target year and playlist naming"""
    year: int = Field(default_factory=lambda: datetime.now().year, ge=2000, le=2100)
    timezone: str = Field("UTC", description="Timezone the year is observed in")
    host_url: str = Field(..., description="Public URL used in notification links")

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f'Unknown timezone: {v}')
        return v

    @field_validator('host_url')
    @classmethod
    def validate_host_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def playlist_name(self) -> str:
        return f"Song A Day {self.year}"

    @property
    def playlist_description(self) -> str:
        return (f"Generated by Song A Day {self.year} - one song for every day, "
                f"ordered by the day you played it most")


class SchedulingConfig(BaseModel):
    """Refresh cycle configuration"""
    interval_seconds: int = Field(900, ge=60, description="Seconds between cycles")
    max_history_pages: int = Field(50, ge=1, le=1000)


class NotifyConfig(BaseModel):
    """Notification side-channel"""
    webhook_url: Optional[str] = None

    @field_validator('webhook_url')
    @classmethod
    def validate_webhook(cls, v):
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError('Webhook URL must start with http:// or https://')
        return v


class MonitoringConfig(BaseModel):
    """Monitoring configuration"""
    metrics_enabled: bool = Field(True, description="Enable Prometheus metrics")
    metrics_port: int = Field(9090, ge=1024, le=65535)


class WebConfig(BaseModel):
    """Authorization web server"""
    enabled: bool = Field(True, description="Serve /authorise and /callback")
    port: int = Field(5000, ge=1024, le=65535)


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level")
    format: str = Field("text", description="Log format (text or json)")
    file: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in allowed:
            raise ValueError(f'Log level must be one of: {", ".join(allowed)}')
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['text', 'json']:
            raise ValueError('Log format must be "text" or "json"')
        return v.lower()


class SongADayConfig(BaseModel):
    """Main Song A Day configuration"""
    spotify: SpotifyConfig
    curation: CurationConfig
    data_dir: str = Field(".", description="Directory for the database and health file")
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
