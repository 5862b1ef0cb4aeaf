"""
Test cases for pipeline models.
"""

import pytest
from pydantic import ValidationError

from monitor.models import (
    DetectionResult, DispatchResult, EmailConfig, NotificationEvent, RedactionRule, RunResult,
)


class TestRedactionRule:
    """Test cases for RedactionRule."""

    def test_defaults(self):
        """Test the replacement defaults to an empty value."""
        rule = RedactionRule(field_name="__VIEWSTATE")

        assert rule.replacement == b""

    def test_rejects_quotes_in_name(self):
        """Test field names cannot break out of the attribute."""
        with pytest.raises(ValidationError):
            RedactionRule(field_name='bad"name')

    def test_rejects_quotes_in_replacement(self):
        """Test replacements cannot close the attribute."""
        with pytest.raises(ValidationError):
            RedactionRule(field_name="x", replacement=b'"')


class TestEmailConfig:
    """Test cases for EmailConfig."""

    def test_blank_recipient(self):
        """Test blank recipient addresses are rejected."""
        with pytest.raises(ValidationError):
            EmailConfig(Subject="s", From="m@example.com", To=[" "], BodyTmpl=["b"])


class TestDispatchResult:
    """Test cases for DispatchResult."""

    def test_success(self):
        """Test a result without an error is successful."""
        result = DispatchResult(
            event=NotificationEvent.CONTENT_CHANGED,
            recipients=["a", "b"],
            delivered=["a", "b"],
        )

        assert result.success is True
        assert result.undelivered == []

    def test_partial_failure(self):
        """Test undelivered recipients are listed in order."""
        result = DispatchResult(
            event=NotificationEvent.CONTENT_CHANGED,
            recipients=["a", "b", "c"],
            delivered=["a"],
            failed_recipient="b",
            failed_index=1,
            stage="data",
            error="data: 554 rejected",
        )

        assert result.success is False
        assert result.undelivered == ["b", "c"]


class TestRunResult:
    """Test cases for RunResult."""

    def test_unchanged_run(self):
        """Test an unchanged run without dispatches succeeds."""
        result = RunResult(
            url="https://example.com",
            detection=DetectionResult(old_digest="a", new_digest="a", changed=False),
        )

        assert result.changed is False
        assert result.success is True
        assert result.duration_seconds == 0.0

    def test_failed_dispatch_fails_run(self):
        """Test any failed dispatch marks the run as failed."""
        result = RunResult(
            url="https://example.com",
            dispatches=[DispatchResult(event=NotificationEvent.MARKER_DETECTED, error="boom")],
        )

        assert result.success is False
