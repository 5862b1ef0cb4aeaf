"""
Configuration management for the site monitor.

Process settings come from environment variables; SMTP and email message
settings come from JSON files named on the command line.
"""

import hashlib
import json
import re
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from monitor.change_detector import DEFAULT_MARKER_PATTERN
from monitor.exceptions import ConfigError
from monitor.models import EmailConfig, RedactionRule, SmtpConfig
from monitor.redaction import DEFAULT_REDACT_FIELDS

ModelT = TypeVar("ModelT", bound=BaseModel)


class MonitorSettings(BaseSettings):
    """
    Process-level settings for a monitoring run.
    Read from SITE_MONITOR_* environment variables and an optional .env file.
    """

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    log_file: Optional[str] = Field(default=None)
    debug: bool = Field(default=False)

    # Network Deadlines
    request_timeout: float = Field(default=30.0)
    smtp_timeout: float = Field(default=30.0)
    user_agent: str = Field(default="SiteMonitor/1.0")

    # Content Comparison
    digest_algorithm: str = Field(default="sha256")
    redact_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_REDACT_FIELDS))
    marker_pattern: str = Field(default=DEFAULT_MARKER_PATTERN.decode("ascii"))

    model_config = SettingsConfigDict(
        env_prefix="SITE_MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("request_timeout", "smtp_timeout")
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 1 or v > 300:
            raise ValueError("timeouts must be between 1 and 300 seconds")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("digest_algorithm")
    @classmethod
    def validate_digest_algorithm(cls, v):
        """Require a fixed-size digest of at least 128 bits."""
        v = v.lower()
        if v not in hashlib.algorithms_guaranteed:
            raise ValueError(f"unsupported digest algorithm: {v}")
        if hashlib.new(v).digest_size < 16:
            raise ValueError("digest_algorithm must produce at least 128 bits")
        return v

    @field_validator("redact_fields")
    @classmethod
    def validate_redact_fields(cls, v):
        """At least one field, no blank names, nothing that ends the id attribute."""
        if not v:
            raise ValueError("redact_fields must not be empty")
        for name in v:
            if not name.strip():
                raise ValueError("redact_fields entries must not be blank")
            if any(c in name for c in "\"'<>"):
                raise ValueError(
                    "redact_fields entries must not contain quotes or angle brackets"
                )
        return v

    @field_validator("marker_pattern")
    @classmethod
    def validate_marker_pattern(cls, v):
        """Ensure the marker compiles as a bytes regex."""
        try:
            re.compile(v.encode("utf-8"))
        except re.error as e:
            raise ValueError(f"invalid marker_pattern: {e}")
        return v

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_headers(self) -> dict:
        """Get default headers for HTTP requests."""
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }

    def get_redaction_rules(self) -> List[RedactionRule]:
        return [RedactionRule(field_name=name) for name in self.redact_fields]


def load_settings(**overrides) -> MonitorSettings:
    """Build settings, converting validation failures to ConfigError."""
    try:
        return MonitorSettings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


def read_json_file(path: Union[str, Path], model: Type[ModelT]) -> ModelT:
    """
    Load a JSON object from disk into a model.

    Args:
        path: JSON file path
        model: Pydantic model to validate against

    Raises:
        ConfigError: If the file is unreadable, not JSON, or fails validation
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Malformed JSON in {path}: {e}") from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def load_smtp_config(path: Union[str, Path]) -> SmtpConfig:
    return read_json_file(path, SmtpConfig)


def load_email_config(path: Union[str, Path]) -> EmailConfig:
    return read_json_file(path, EmailConfig)
