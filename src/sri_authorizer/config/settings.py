"""
Runtime configuration.

Settings come from an optional YAML file overlaid by environment variables
(a ``.env`` file in the working directory is loaded first). Every field maps
to the upper-cased environment variable of the same name, e.g.
``voucher_table`` <- ``VOUCHER_TABLE``. YAML files use the lower-case names.

Example YAML:
```yaml
voucher_table: vouchers
authorizer_queue: sri-authorizer
notification_topic: voucher-status
db_host: localhost
artifact_store_type: local
artifact_store_path: /var/lib/sri-authorizer/artifacts
```
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from sri_authorizer.authorizer.sri_client import (
    DEFAULT_TIMEOUT_SECONDS,
    SRI_PRODUCTION_ENDPOINT,
    SRI_TEST_ENDPOINT,
)
from sri_authorizer.core.errors import ConfigurationError
from sri_authorizer.utils.validation import (
    ValidationError as IdentifierValidationError,
    sanitize_sql_identifier,
    validate_channel_name,
)


class Settings(BaseModel):
    """
    Process configuration.

    Attributes:
        voucher_table: Voucher table name (required)
        authorizer_queue: Authorization work queue name (required)
        notification_topic: Status notification topic name (required)
        db_*: PostgreSQL connection settings
        sri_endpoint / sri_test_endpoint: Authority endpoints per environment
        sri_timeout_seconds: Remote call timeout
        queue_*: Work queue behaviour
        stream_batch_size: Change events per batch
        poll_interval_seconds: Idle wait between polls
        artifact_store_*: Where authorized XML is written
        log_level / log_format: Logging
        metrics_port: Port of the Prometheus endpoint (disabled when unset)
    """

    voucher_table: str
    authorizer_queue: str
    notification_topic: str

    db_host: str = "localhost"
    db_port: int = Field(default=5432, gt=0, lt=65536)
    db_name: str = "vouchers"
    db_user: str = "authorizer"
    db_password: str = Field(..., min_length=1)
    db_pool_min_size: int = Field(default=1, ge=1)
    db_pool_max_size: int = Field(default=5, ge=1)

    sri_endpoint: str = SRI_PRODUCTION_ENDPOINT
    sri_test_endpoint: str = SRI_TEST_ENDPOINT
    sri_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    queue_visibility_timeout_seconds: float = Field(default=300.0, gt=0)
    queue_max_receive_count: int = Field(default=3, ge=1)
    queue_batch_size: int = Field(default=1, ge=1, le=10000)
    stream_batch_size: int = Field(default=100, ge=1, le=10000)
    poll_interval_seconds: float = Field(default=1.0, ge=0)

    artifact_store_type: Literal["none", "local", "gcs"] = "none"
    artifact_store_path: str | None = None
    artifact_bucket: str | None = None
    gcp_project_id: str | None = None

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    metrics_port: int | None = Field(default=None, gt=0, lt=65536)

    @field_validator("voucher_table")
    @classmethod
    def check_table_name(cls, v):
        try:
            return sanitize_sql_identifier(v, "VOUCHER_TABLE")
        except IdentifierValidationError as e:
            raise ValueError(str(e)) from e

    @field_validator("authorizer_queue", "notification_topic")
    @classmethod
    def check_channel_name(cls, v, info):
        try:
            return validate_channel_name(v, info.field_name.upper())
        except IdentifierValidationError as e:
            raise ValueError(str(e)) from e

    @field_validator("log_level", "artifact_store_type", "log_format", mode="before")
    @classmethod
    def normalize_case(cls, v, info):
        if isinstance(v, str):
            return v.upper() if info.field_name == "log_level" else v.lower()
        return v

    @field_validator("metrics_port", "artifact_store_path", "artifact_bucket", "gcp_project_id", mode="before")
    @classmethod
    def empty_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "voucher_table": "vouchers",
                "authorizer_queue": "sri-authorizer",
                "notification_topic": "voucher-status",
                "db_password": "secret",
            }
        }


def _read_yaml(config_path: str | Path) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")
    return {str(key).lower(): value for key, value in data.items()}


def load_settings(
    config_path: str | Path | None = None,
    environ: dict[str, str] | None = None,
    dotenv_path: str | Path | None = None,
) -> Settings:
    """
    Load settings from YAML, .env and environment variables.

    Precedence (highest first): environment, YAML file, defaults.

    Args:
        config_path: Optional YAML file
        environ: Environment mapping (defaults to os.environ after loading .env)
        dotenv_path: Explicit .env file (defaults to ./.env when present)

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    if environ is None:
        load_dotenv(dotenv_path or Path.cwd() / ".env", override=False)
        environ = dict(os.environ)

    values: dict[str, Any] = _read_yaml(config_path) if config_path else {}

    for field_name in Settings.model_fields:
        env_value = environ.get(field_name.upper())
        if env_value is not None:
            values[field_name] = env_value

    try:
        return Settings(**values)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            name = ".".join(str(part) for part in error["loc"]).upper()
            problems.append(f"{name}: {error['msg']}")
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems)) from e
