"""
Single-shot monitoring pipeline.

Sequences snapshot load, redacting fetch and change detection, then sends
zero, one or two notifications.
"""

from datetime import datetime
from pathlib import Path
from typing import Union

import structlog

from monitor.change_detector import ChangeDetector
from monitor.fetcher import RedactingFetcher
from monitor.models import EmailConfig, NotificationEvent, RunResult
from monitor.notifier import NotificationDispatcher
from monitor.snapshot import SnapshotStore

logger = structlog.get_logger(__name__)


class MonitorPipeline:
    """Orchestrates one monitoring run."""

    def __init__(
        self,
        fetcher: RedactingFetcher,
        detector: ChangeDetector,
        dispatcher: NotificationDispatcher,
        change_email: EmailConfig,
        marker_email: EmailConfig,
        digest_algorithm: str = "sha256",
    ):
        """
        Initialize the pipeline.

        Args:
            fetcher: Downloads and redacts the document
            detector: Compares digests and looks for the marker
            dispatcher: Sends notification email
            change_email: Message settings for content changes
            marker_email: Message settings for the marker appearing
            digest_algorithm: Snapshot digest algorithm, shared with the detector
        """
        self.fetcher = fetcher
        self.detector = detector
        self.dispatcher = dispatcher
        self.emails = {
            NotificationEvent.CONTENT_CHANGED: change_email,
            NotificationEvent.MARKER_DETECTED: marker_email,
        }
        self.digest_algorithm = digest_algorithm
        self.logger = logger.bind(component="pipeline")

    def run(self, url: str, snapshot_path: Union[str, Path]) -> RunResult:
        """
        Execute one run against ``url``.

        The snapshot file stays locked from load until every notification
        has been attempted.

        Raises:
            StorageError: Snapshot cannot be opened, locked, read or written
            FetchError: Download failed; the snapshot is left unchanged
            RedactionError: The redaction filter failed
        """
        result = RunResult(url=url)
        log = self.logger.bind(url=url, snapshot=str(snapshot_path))
        log.info("Monitoring run started")

        with SnapshotStore(snapshot_path, self.digest_algorithm) as store:
            snapshot = store.load()
            log.info("Current digest", digest=snapshot.digest, first_run=snapshot.created)

            content = self.fetcher.fetch(store, url)

            detection = self.detector.evaluate(snapshot.digest, content)
            result.detection = detection

            if not detection.changed:
                log.info("Unchanged")
            else:
                log.warning("The page has changed")
                self._notify(result, NotificationEvent.CONTENT_CHANGED, url)
                if detection.has_marker:
                    self._notify(result, NotificationEvent.MARKER_DETECTED, url)

        result.finished_at = datetime.utcnow()
        log.info(
            "Monitoring run finished",
            changed=result.changed,
            has_marker=detection.has_marker,
            notifications=len(result.dispatches),
            success=result.success,
            duration_seconds=result.duration_seconds,
        )
        return result

    def _notify(self, result: RunResult, event: NotificationEvent, url: str) -> None:
        dispatch = self.dispatcher.dispatch(event, self.emails[event], url)
        result.dispatches.append(dispatch)


def build_pipeline(settings, smtp_config, change_email, marker_email,
                   transport=None, smtp_factory=None) -> MonitorPipeline:
    """
    Wire the pipeline components from process settings.

    Args:
        settings: MonitorSettings instance
        smtp_config: SmtpConfig for the relay
        change_email: EmailConfig for content changes
        marker_email: EmailConfig for the marker
        transport: Optional httpx transport for the fetcher
        smtp_factory: Optional SMTP client factory for the dispatcher
    """
    fetcher = RedactingFetcher(
        rules=settings.get_redaction_rules(),
        timeout=settings.request_timeout,
        headers=settings.get_headers(),
        transport=transport,
    )
    detector = ChangeDetector(
        digest_algorithm=settings.digest_algorithm,
        marker_pattern=settings.marker_pattern,
    )
    dispatcher_kwargs = {"timeout": settings.smtp_timeout}
    if smtp_factory is not None:
        dispatcher_kwargs["smtp_factory"] = smtp_factory
    dispatcher = NotificationDispatcher(smtp_config, **dispatcher_kwargs)

    return MonitorPipeline(
        fetcher=fetcher,
        detector=detector,
        dispatcher=dispatcher,
        change_email=change_email,
        marker_email=marker_email,
        digest_algorithm=settings.digest_algorithm,
    )
