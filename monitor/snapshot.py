"""
Snapshot storage for the monitored document.

This module provides:
- First-run creation of the snapshot file
- Content hashing of the stored document
- In-place replacement with truncation
- An exclusive per-file lock held for the duration of a run
"""

import fcntl
import hashlib
import os
from pathlib import Path
from typing import Optional, Union

import structlog

from monitor.exceptions import StorageError
from monitor.models import Snapshot

logger = structlog.get_logger(__name__)


def compute_digest(content: bytes, algorithm: str = "sha256") -> str:
    """
    Hash document bytes.

    Args:
        content: Exact redacted byte sequence
        algorithm: hashlib algorithm name

    Returns:
        Hex digest string
    """
    return hashlib.new(algorithm, content).hexdigest()


class SnapshotStore:
    """
    Owner of the on-disk snapshot file for one run.

    Use as a context manager: the file is opened and locked on entry and
    released on every exit path.
    """

    def __init__(self, path: Union[str, Path], digest_algorithm: str = "sha256"):
        self.path = Path(path)
        self.digest_algorithm = digest_algorithm
        self.logger = logger.bind(component="snapshot_store", path=str(self.path))
        self._fd: Optional[int] = None
        self._created = False

    def __enter__(self) -> "SnapshotStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    def open(self) -> None:
        """Open (creating if absent) and exclusively lock the snapshot file."""
        if self._fd is not None:
            return

        self._created = not self.path.exists()
        try:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o666)
        except OSError as e:
            raise StorageError(f"Cannot open snapshot file {self.path}: {e}") from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            raise StorageError(
                f"Snapshot file {self.path} is locked by another run"
            ) from e
        except OSError as e:
            os.close(fd)
            raise StorageError(f"Cannot lock snapshot file {self.path}: {e}") from e

        self._fd = fd
        if self._created:
            self.logger.info("Creating a new snapshot file")

    def close(self) -> None:
        """Release the lock and close the file."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def load(self) -> Snapshot:
        """
        Read the stored document and hash it.

        A file created by this run yields empty content and the digest of
        zero bytes.

        Returns:
            Snapshot of the previous state

        Raises:
            StorageError: If the file cannot be read
        """
        fd = self._require_fd()
        try:
            os.lseek(fd, 0, os.SEEK_SET)
            chunks = []
            while True:
                chunk = os.read(fd, 64 * 1024)
                if not chunk:
                    break
                chunks.append(chunk)
        except OSError as e:
            raise StorageError(f"Cannot read snapshot file {self.path}: {e}") from e

        content = b"".join(chunks)
        digest = compute_digest(content, self.digest_algorithm)
        self.logger.info("Hashed snapshot", bytes=len(content), digest=digest)

        return Snapshot(
            path=str(self.path),
            content=content,
            digest=digest,
            created=self._created,
        )

    def replace(self, content: bytes) -> int:
        """
        Overwrite the snapshot with new content.

        The file ends up holding exactly ``content``; bytes left over from a
        longer previous version are truncated.

        Returns:
            Number of bytes written

        Raises:
            StorageError: If the write, truncate or sync fails
        """
        fd = self._require_fd()
        try:
            os.lseek(fd, 0, os.SEEK_SET)
            view = memoryview(content)
            written = 0
            while written < len(content):
                written += os.write(fd, view[written:])
            os.ftruncate(fd, written)
            os.fsync(fd)
        except OSError as e:
            raise StorageError(f"Cannot write snapshot file {self.path}: {e}") from e

        self.logger.info("Snapshot updated", bytes=written)
        return written

    def _require_fd(self) -> int:
        if self._fd is None:
            raise StorageError(f"Snapshot file {self.path} is not open")
        return self._fd
