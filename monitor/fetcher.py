"""
Download of the monitored document through the redaction filter.
"""

import io
from typing import Dict, Iterable, List, Optional

import httpx
import structlog

from monitor.exceptions import FetchError
from monitor.models import RedactionRule
from monitor.redaction import RedactionFilter, default_rules
from monitor.snapshot import SnapshotStore

logger = structlog.get_logger(__name__)


class RedactingFetcher:
    """
    HTTP GET of a single URL with streaming redaction.

    The filtered body is buffered in memory and only written into the
    snapshot once the whole response has been received, so a failed
    download leaves the previous snapshot untouched.
    """

    def __init__(
        self,
        rules: Optional[Iterable[RedactionRule]] = None,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            rules: Redaction rules applied to the response body
            timeout: Deadline in seconds for connect, read, write and pool waits
            headers: Extra request headers
            transport: Optional httpx transport (used by tests)
        """
        self.rules: List[RedactionRule] = list(rules) if rules is not None else default_rules()
        self.client_config = {
            "timeout": httpx.Timeout(timeout),
            "headers": headers or {},
            "follow_redirects": True,
        }
        if transport is not None:
            self.client_config["transport"] = transport
        self.logger = logger.bind(component="fetcher")

    def download(self, url: str) -> bytes:
        """
        Fetch ``url`` and return the redacted body.

        Raises:
            FetchError: On connection failures, timeouts or non-2xx status
            RedactionError: If the filter cannot complete
        """
        sink = io.BytesIO()
        redaction_filter = RedactionFilter(sink, self.rules)
        received = 0

        try:
            with httpx.Client(**self.client_config) as client:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    for chunk in response.iter_bytes():
                        received += len(chunk)
                        redaction_filter.write(chunk)
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"GET {url} returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"GET {url} failed: {e}") from e

        written = redaction_filter.close()
        content = sink.getvalue()
        if written != len(content):
            raise FetchError(
                f"Filtered output length mismatch: wrote {written}, buffered {len(content)}"
            )

        self.logger.info(
            "Downloaded document",
            url=url,
            bytes_received=received,
            bytes_filtered=written,
            fields_redacted=redaction_filter.fields_redacted,
        )
        return content

    def fetch(self, store: SnapshotStore, url: str) -> bytes:
        """
        Download ``url`` and replace the snapshot contents with it.

        Args:
            store: Open snapshot store
            url: Document to fetch

        Returns:
            The redacted bytes now held by the snapshot
        """
        content = self.download(url)
        store.replace(content)
        return content
