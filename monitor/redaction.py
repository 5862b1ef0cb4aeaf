"""
Streaming redaction of volatile hidden form fields.

Pages served by form frameworks embed per-request tokens such as
``__VIEWSTATE`` and ``__EVENTVALIDATION``. Their values change on every
fetch, so they are blanked before the document is hashed:

    <input id="__VIEWSTATE" type="hidden" value="abc123"/>
    <input id="__VIEWSTATE" type="hidden" value=""/>

The filter is fed arbitrary chunks and produces the same output no matter
where the chunk boundaries fall.
"""

import io
import re
from typing import BinaryIO, Dict, Iterable, List, Optional

import structlog

from monitor.exceptions import RedactionError
from monitor.models import RedactionRule

logger = structlog.get_logger(__name__)

DEFAULT_REDACT_FIELDS = ("__VIEWSTATE", "__EVENTVALIDATION")

DEFAULT_CHUNK_SIZE = 64 * 1024

# Either the opening of a value attribute or the end of the tag.
_VALUE_RE = re.compile(rb"value=([\"'])|>")
_VALUE_TAIL = len(b'value="') - 1

_SCAN = "scan"
_SEEK_VALUE = "seek_value"
_SKIP = "skip"


def default_rules() -> List[RedactionRule]:
    return [RedactionRule(field_name=name) for name in DEFAULT_REDACT_FIELDS]


class RedactionFilter:
    """
    Writable stream transform that blanks configured field values.

    Only the bytes between ``value="`` and the matching closing quote are
    replaced; all other bytes reach the sink unchanged. A ``value`` is only
    taken from the same tag as the matched ``id``.
    """

    def __init__(self, sink: BinaryIO, rules: Optional[Iterable[RedactionRule]] = None):
        """
        Initialize the filter.

        Args:
            sink: Binary writable that receives the filtered output
            rules: Fields to redact (defaults to __VIEWSTATE and __EVENTVALIDATION)
        """
        rules = list(rules) if rules is not None else default_rules()
        if not rules:
            raise ValueError("at least one redaction rule is required")

        self.sink = sink
        self.bytes_written = 0
        self.fields_redacted = 0
        self.closed = False

        self._replacements: Dict[bytes, bytes] = {
            rule.field_name.encode("utf-8"): rule.replacement for rule in rules
        }
        names = sorted(self._replacements, key=len, reverse=True)
        self._field_re = re.compile(
            rb"(?<![\w-])id=([\"'])(" + b"|".join(re.escape(n) for n in names) + rb")\1"
        )
        # Longest possible id match minus one: a partial match can only
        # start within this many trailing bytes.
        self._field_tail = len(b'id=""') + len(names[0]) - 1

        self._state = _SCAN
        self._buffer = b""
        # Last byte written to the sink, needed by the id lookbehind
        self._context = b""
        self._quote = b""
        self._replacement = b""
        self._skipped = bytearray()

    def write(self, chunk: bytes) -> int:
        """
        Feed a chunk of input.

        Returns:
            Number of input bytes consumed (always the full chunk)
        """
        if self.closed:
            raise RedactionError("write to closed redaction filter")
        if chunk:
            self._buffer += bytes(chunk)
            self._process(final=False)
        return len(chunk)

    def close(self) -> int:
        """
        Flush buffered bytes at end of input.

        A value left unterminated at end of input is not a well-formed field,
        so its original bytes are written through unchanged.

        Returns:
            Total number of bytes written to the sink
        """
        if self.closed:
            return self.bytes_written
        self._process(final=True)
        if self._state == _SKIP:
            logger.warning(
                "Unterminated field value at end of input, left unredacted",
                bytes=len(self._skipped),
            )
            self._emit(bytes(self._skipped))
            self._skipped = bytearray()
            self._state = _SCAN
        self.closed = True
        return self.bytes_written

    def read_from(self, stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
        """
        Filter an entire readable stream into the sink and close the filter.

        Returns:
            Total number of bytes written to the sink

        Raises:
            RedactionError: If reading the input fails
        """
        while True:
            try:
                chunk = stream.read(chunk_size)
            except OSError as e:
                raise RedactionError(f"Failed to read input stream: {e}") from e
            if not chunk:
                break
            self.write(chunk)
        return self.close()

    def _process(self, final: bool) -> None:
        while True:
            if self._state == _SCAN:
                window = self._context + self._buffer
                match = self._field_re.search(window, len(self._context))
                if match:
                    end = match.end() - len(self._context)
                    self._emit(self._buffer[:end])
                    self._replacement = self._replacements[match.group(2)]
                    self._buffer = self._buffer[end:]
                    self._state = _SEEK_VALUE
                    continue
                self._emit_keeping(0 if final else self._field_tail)
                return

            if self._state == _SEEK_VALUE:
                match = _VALUE_RE.search(self._buffer)
                if match:
                    self._emit(self._buffer[:match.end()])
                    self._buffer = self._buffer[match.end():]
                    if match.group(1) is None:
                        # Tag closed without a value attribute
                        self._state = _SCAN
                    else:
                        self._quote = match.group(1)
                        self._skipped = bytearray()
                        self._state = _SKIP
                    continue
                self._emit_keeping(0 if final else _VALUE_TAIL)
                return

            end = self._buffer.find(self._quote)
            if end < 0:
                self._skipped += self._buffer
                self._buffer = b""
                return
            self._emit(self._replacement + self._quote)
            self._buffer = self._buffer[end + 1:]
            self._skipped = bytearray()
            self.fields_redacted += 1
            self._state = _SCAN

    def _emit_keeping(self, keep: int) -> None:
        cut = max(len(self._buffer) - keep, 0)
        self._emit(self._buffer[:cut])
        self._buffer = self._buffer[cut:]

    def _emit(self, data: bytes) -> None:
        if not data:
            return
        try:
            written = self.sink.write(data)
        except (OSError, ValueError) as e:
            raise RedactionError(f"Failed to write filtered output: {e}") from e
        if written is not None and written != len(data):
            raise RedactionError(
                f"Short write: {written} of {len(data)} bytes reached the sink"
            )
        self.bytes_written += len(data)
        self._context = data[-1:]


def redact(content: bytes, rules: Optional[Iterable[RedactionRule]] = None) -> bytes:
    """Redact an in-memory document in one call."""
    sink = io.BytesIO()
    redaction_filter = RedactionFilter(sink, rules)
    redaction_filter.write(content)
    redaction_filter.close()
    return sink.getvalue()
