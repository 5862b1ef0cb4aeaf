"""
Change and marker detection for the monitored document.

This module provides:
- Digest comparison between the snapshot and the new document
- Literal search for the "Buy Tickets" marker
"""

import re
from typing import Pattern, Union

import structlog

from monitor.models import DetectionResult
from monitor.snapshot import compute_digest

logger = structlog.get_logger(__name__)

DEFAULT_MARKER_PATTERN = rb"alt=['\"]Buy Tickets['\"]"


class ChangeDetector:
    """Engine for detecting changes in the monitored document."""

    def __init__(
        self,
        digest_algorithm: str = "sha256",
        marker_pattern: Union[bytes, str, Pattern[bytes]] = DEFAULT_MARKER_PATTERN,
    ):
        """
        Initialize change detector.

        Args:
            digest_algorithm: Must match the algorithm used by the snapshot store
            marker_pattern: Case-sensitive bytes regex for the marker
        """
        self.digest_algorithm = digest_algorithm
        if isinstance(marker_pattern, str):
            marker_pattern = marker_pattern.encode("utf-8")
        if isinstance(marker_pattern, bytes):
            marker_pattern = re.compile(marker_pattern)
        self.marker_re = marker_pattern
        self.logger = logger.bind(component="change_detector")

    def detect(self, old_digest: str, content: bytes) -> bool:
        """Return True iff ``content`` hashes differently from ``old_digest``."""
        new_digest = compute_digest(content, self.digest_algorithm)
        return new_digest != old_digest

    def has_marker(self, content: bytes) -> bool:
        """Return True if the marker occurs anywhere in ``content``."""
        return self.marker_re.search(content) is not None

    def evaluate(self, old_digest: str, content: bytes) -> DetectionResult:
        """
        Compare the new document with the previous digest.

        The marker is only searched for when the content changed.
        """
        new_digest = compute_digest(content, self.digest_algorithm)
        changed = new_digest != old_digest

        self.logger.info(
            "Compared digests",
            old_digest=old_digest,
            new_digest=new_digest,
            changed=changed,
        )

        has_marker = False
        if changed:
            has_marker = self.has_marker(content)
            if has_marker:
                self.logger.info("Found the \"Buy Tickets\" marker")

        return DetectionResult(
            old_digest=old_digest,
            new_digest=new_digest,
            changed=changed,
            has_marker=has_marker,
        )
