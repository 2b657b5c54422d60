"""Configuration models using Pydantic for validation."""
from typing import Any, Dict, List, Literal, Optional
from fnmatch import fnmatchcase
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import os

from opentsdb_reporter.client import (
    CONN_TIMEOUT_DEFAULT_MS, DEFAULT_BATCH_SIZE_LIMIT, READ_TIMEOUT_DEFAULT_MS,
)
from opentsdb_reporter.units import TimeUnit


class OpenTsdbConfig(BaseModel):
    """Connection to the OpenTSDB HTTP API."""
    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:4242"
    connect_timeout_ms: int = Field(default=CONN_TIMEOUT_DEFAULT_MS, gt=0)
    read_timeout_ms: int = Field(default=READ_TIMEOUT_DEFAULT_MS, gt=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE_LIMIT, ge=0)  # 0 = one request per report

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v):
        """Require an absolute http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got '{v}'")
        return v.rstrip("/")


class ReporterConfig(BaseModel):
    """How registry metrics are named, tagged, converted and filtered."""
    model_config = ConfigDict(frozen=True)

    prefix: Optional[str] = None
    tags: Optional[Dict[str, str]] = None
    rate_unit: TimeUnit = TimeUnit.SECONDS
    duration_unit: TimeUnit = TimeUnit.MILLISECONDS
    interval_s: float = Field(default=10, gt=0)

    # Glob patterns on metric names; empty include list means everything
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)

    @field_validator('tags')
    @classmethod
    def validate_tags(cls, v):
        """OpenTSDB tag keys and values must be non-empty and free of spaces."""
        if v is None:
            return v
        for key, value in v.items():
            if not key or not value or " " in key or " " in value:
                raise ValueError(f"Invalid tag {key!r}={value!r}")
        return v

    def matches(self, name: str, metric: Any = None) -> bool:
        """Metric filter built from the include/exclude patterns."""
        if self.include and not any(fnmatchcase(name, p) for p in self.include):
            return False
        return not any(fnmatchcase(name, p) for p in self.exclude)


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    model_config = ConfigDict(frozen=True)

    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"
    control_api_enabled: bool = True
    control_api_port: int = 8081
    self_metrics_prefix: str = ""


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    opentsdb: OpenTsdbConfig = Field(default_factory=OpenTsdbConfig)
    reporter: ReporterConfig = Field(default_factory=ReporterConfig)

    @model_validator(mode='after')
    def validate_log_level(self):
        """Ensure the log level is one the logging module knows."""
        if self.global_.log_level.upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid log level: {self.global_.log_level}")
        return self


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_url := os.getenv('OPENTSDB_URL'):
        raw_config.setdefault('opentsdb', {})['base_url'] = env_url

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    try:
        return Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
