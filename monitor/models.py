"""
Models for the site monitoring pipeline.

This module defines Pydantic models for:
- SMTP relay and notification message configuration
- Redaction rules
- Snapshots and detection results
- Dispatch and run outcomes
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NotificationEvent(str, Enum):
    """Reasons a run can send email."""
    CONTENT_CHANGED = "content_changed"
    MARKER_DETECTED = "marker_detected"


class SmtpConfig(BaseModel):
    """Connection and authentication parameters for the outbound mail relay."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    host: str = Field(..., alias="Host", min_length=1, description="SMTP server host")
    port: int = Field(..., alias="Port", ge=1, le=65535, description="SMTP server port")
    username: str = Field(..., alias="Username", description="SASL PLAIN username")
    password: str = Field(..., alias="Password", repr=False, description="SASL PLAIN password")

    @property
    def address(self) -> str:
        """host:port string used in log lines."""
        return f"{self.host}:{self.port}"


class EmailConfig(BaseModel):
    """Message settings for one notification event."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    subject: str = Field(..., alias="Subject")
    sender: str = Field(..., alias="From", min_length=1)
    recipients: List[str] = Field(..., alias="To", min_length=1)
    body_templates: List[str] = Field(..., alias="BodyTmpl", min_length=1)

    @field_validator("recipients", "body_templates")
    @classmethod
    def validate_non_blank(cls, v):
        """Reject blank list entries."""
        for item in v:
            if not item or not item.strip():
                raise ValueError("entries must not be blank")
        return v


class RedactionRule(BaseModel):
    """Hidden form field whose value is blanked before comparison."""
    model_config = ConfigDict(frozen=True)

    field_name: str = Field(..., min_length=1, description="Value of the field's id attribute")
    replacement: bytes = Field(default=b"", description="Bytes written in place of the value")

    @field_validator("field_name")
    @classmethod
    def validate_field_name(cls, v):
        """Field names cannot contain quotes or tag delimiters."""
        if any(c in v for c in "\"'<>"):
            raise ValueError("field_name must not contain quotes or angle brackets")
        return v

    @field_validator("replacement")
    @classmethod
    def validate_replacement(cls, v):
        """The replacement must not close the attribute early."""
        if b'"' in v or b"'" in v:
            raise ValueError("replacement must not contain quotes")
        return v


class Snapshot(BaseModel):
    """Previously observed document as loaded from disk."""
    path: str = Field(..., description="Snapshot file path")
    content: bytes = Field(default=b"", repr=False, description="Redacted document bytes")
    digest: str = Field(..., description="Hex digest of content")
    created: bool = Field(default=False, description="True when the file did not exist before this run")

    @property
    def size(self) -> int:
        return len(self.content)


class DetectionResult(BaseModel):
    """Outcome of comparing the new document with the snapshot."""
    old_digest: str
    new_digest: str
    changed: bool
    has_marker: bool = False


class DispatchResult(BaseModel):
    """Outcome of one notification dispatch."""
    event: NotificationEvent
    recipients: List[str] = Field(default_factory=list)
    delivered: List[str] = Field(default_factory=list)
    failed_recipient: Optional[str] = Field(default=None)
    failed_index: Optional[int] = Field(default=None)
    stage: Optional[str] = Field(default=None, description="Protocol stage that failed")
    error: Optional[str] = Field(default=None)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def undelivered(self) -> List[str]:
        """Recipients that did not receive the message."""
        return [r for r in self.recipients if r not in self.delivered]


class RunResult(BaseModel):
    """Outcome of a single pipeline run."""
    url: str
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = Field(default=None)
    detection: Optional[DetectionResult] = Field(default=None)
    dispatches: List[DispatchResult] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.detection and self.detection.changed)

    @property
    def success(self) -> bool:
        return all(d.success for d in self.dispatches)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
