"""
Test cases for settings and JSON config loading.
"""

import json

import pytest
from pydantic import ValidationError

from monitor.exceptions import ConfigError
from utilities.config import (
    MonitorSettings, load_email_config, load_settings, load_smtp_config, read_json_file,
)
from monitor.models import SmtpConfig


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestMonitorSettings:
    """Test cases for MonitorSettings."""

    def test_defaults(self):
        """Test default settings."""
        settings = MonitorSettings()

        assert settings.log_level == "INFO"
        assert settings.log_format == "console"
        assert settings.digest_algorithm == "sha256"
        assert settings.redact_fields == ["__VIEWSTATE", "__EVENTVALIDATION"]
        assert settings.get_log_file_path() is None

    def test_environment_override(self, monkeypatch):
        """Test SITE_MONITOR_* variables are read."""
        monkeypatch.setenv("SITE_MONITOR_LOG_LEVEL", "debug")
        monkeypatch.setenv("SITE_MONITOR_REQUEST_TIMEOUT", "12")
        monkeypatch.setenv("SITE_MONITOR_REDACT_FIELDS", '["csrf_token"]')

        settings = MonitorSettings()

        assert settings.log_level == "DEBUG"
        assert settings.request_timeout == 12
        assert [r.field_name for r in settings.get_redaction_rules()] == ["csrf_token"]

    def test_invalid_log_level(self):
        """Test validation of log level."""
        with pytest.raises(ValidationError):
            MonitorSettings(log_level="LOUD")

    def test_invalid_timeout(self):
        """Test validation of timeouts."""
        with pytest.raises(ValidationError):
            MonitorSettings(request_timeout=0)
        with pytest.raises(ValidationError):
            MonitorSettings(smtp_timeout=301)

    def test_digest_algorithm(self):
        """Test only fixed-size digests of at least 128 bits are accepted."""
        assert MonitorSettings(digest_algorithm="BLAKE2b").digest_algorithm == "blake2b"
        with pytest.raises(ValidationError):
            MonitorSettings(digest_algorithm="shake_128")
        with pytest.raises(ValidationError):
            MonitorSettings(digest_algorithm="crc32")

    def test_invalid_marker_pattern(self):
        """Test the marker must be a valid regular expression."""
        with pytest.raises(ValidationError):
            MonitorSettings(marker_pattern="alt=[")

    def test_empty_redact_fields(self):
        """Test at least one field must be redacted."""
        with pytest.raises(ValidationError):
            MonitorSettings(redact_fields=[])

    def test_redact_fields_reject_attribute_delimiters(self):
        """Test field names that would end the id attribute are rejected up front."""
        with pytest.raises(ValidationError):
            MonitorSettings(redact_fields=['bad"name'])
        with pytest.raises(ConfigError):
            load_settings(redact_fields=["a<b"])

    def test_load_settings_wraps_errors(self):
        """Test invalid settings surface as ConfigError."""
        with pytest.raises(ConfigError):
            load_settings(log_format="xml")

    def test_headers(self):
        """Test the user agent is sent."""
        assert MonitorSettings(user_agent="Checker/2").get_headers()["User-Agent"] == "Checker/2"


class TestJsonConfig:
    """Test cases for JSON config loading."""

    def test_load_smtp_config(self, tmp_path):
        """Test an SMTP config with capitalised keys."""
        path = write_json(tmp_path / "smtp.json", {
            "Host": "smtp.example.com", "Port": 587,
            "Username": "user", "Password": "pass",
        })

        config = load_smtp_config(path)

        assert config.host == "smtp.example.com"
        assert config.port == 587
        assert config.address == "smtp.example.com:587"
        assert "pass" not in repr(config)

    def test_load_email_config(self, tmp_path):
        """Test an email config with capitalised keys."""
        path = write_json(tmp_path / "email.json", {
            "Subject": "Changed", "From": "m@example.com",
            "To": ["a@example.com", "b@example.com"], "BodyTmpl": ["body.tmpl"],
        })

        config = load_email_config(path)

        assert config.subject == "Changed"
        assert config.sender == "m@example.com"
        assert config.recipients == ["a@example.com", "b@example.com"]
        assert config.body_templates == ["body.tmpl"]

    def test_snake_case_keys(self, tmp_path):
        """Test field names are accepted as keys too."""
        path = write_json(tmp_path / "smtp.json", {
            "host": "smtp.example.com", "port": 25, "username": "u", "password": "p",
        })

        assert load_smtp_config(path).port == 25

    def test_missing_file(self, tmp_path):
        """Test an unreadable file raises ConfigError."""
        with pytest.raises(ConfigError, match="Cannot read"):
            load_smtp_config(tmp_path / "missing.json")

    def test_malformed_json(self, tmp_path):
        """Test a syntax error raises ConfigError."""
        path = tmp_path / "smtp.json"
        path.write_text("{\"Host\": ", encoding="utf-8")

        with pytest.raises(ConfigError, match="Malformed JSON"):
            read_json_file(path, SmtpConfig)

    def test_invalid_port(self, tmp_path):
        """Test an out-of-range port raises ConfigError."""
        path = write_json(tmp_path / "smtp.json", {
            "Host": "h", "Port": 70000, "Username": "u", "Password": "p",
        })

        with pytest.raises(ConfigError, match="Invalid config"):
            load_smtp_config(path)

    def test_empty_recipients(self, tmp_path):
        """Test an email config needs at least one recipient."""
        path = write_json(tmp_path / "email.json", {
            "Subject": "s", "From": "m@example.com", "To": [], "BodyTmpl": ["b"],
        })

        with pytest.raises(ConfigError):
            load_email_config(path)
