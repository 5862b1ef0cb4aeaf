"""
Error taxonomy for the monitoring pipeline.
"""


class MonitorError(Exception):
    """Base class for all monitoring errors."""


class ConfigError(MonitorError):
    """A configuration file is unreadable, malformed or invalid."""


class StorageError(MonitorError):
    """The snapshot file cannot be opened, read, written or locked."""


class FetchError(MonitorError):
    """The monitored document could not be downloaded."""


class RedactionError(MonitorError):
    """The redaction filter could not complete."""


class TemplateError(MonitorError):
    """A message body template could not be loaded or expanded."""


class SmtpError(MonitorError):
    """An SMTP protocol stage failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
