# Overview: Local-disk blob store for uploaded print files.

"""
Blob Store

WHY: Uploaded files live on disk, not in the database. Orders only hold
the blob key; the store owns naming, serving, deletion, and expiry.

DESIGN PRINCIPLES:
- Keys are generated, never chosen by clients: <epochMillis>-<sanitizedName>
- A key resolves only against the store's own directory. Anything that
  could escape it (separators, "..", leading dots, NUL) is rejected.
- Writes go to a temp file first and are linked into place, so a reader
  never sees a half-written blob and a failed write leaves nothing behind.
- The retention sweep treats a file that vanished under it as a normal
  outcome: it may race with reads, cancellations, or another sweep.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from flask import current_app

from ..errors import NotFound, StorageError, ValidationError
from ..time_utils import epoch_millis, to_utc_z, utcnow


TRASH_DIR = ".trash"
TEMP_PREFIX = ".tmp-"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_DOT_RUNS = re.compile(r"\.{2,}")


class InvalidBlobKey(ValidationError):
    """Key would resolve outside the store directory."""


class BlobNotFound(NotFound):
    pass


@dataclass(frozen=True)
class StoredBlob:
    key: str
    size: int


@dataclass(frozen=True)
class BlobMetadata:
    key: str
    size: int
    last_modified: datetime

    def to_dict(self) -> dict:
        return {
            "name": self.key,
            "size": self.size,
            "modified": to_utc_z(self.last_modified),
            "sizeInMB": f"{self.size / (1024 * 1024):.2f}",
        }


def sanitize_name(original_name: str) -> str:
    """Reduce a client filename to [A-Za-z0-9._-], dropping any client path."""
    base = (original_name or "").replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_CHARS.sub("_", base)
    cleaned = _DOT_RUNS.sub(".", cleaned).lstrip(".")
    return cleaned or "file"


def validate_key(key: str) -> str:
    if not key or not isinstance(key, str):
        raise InvalidBlobKey("File key is required", fields={"key": "required"})
    if (
        "/" in key
        or "\\" in key
        or "\x00" in key
        or ".." in key
        or key.startswith(".")
        or os.path.basename(key) != key
    ):
        raise InvalidBlobKey("Invalid file key", fields={"key": "must not contain path segments"})
    return key


def _mtime_to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


class StagedDelete:
    """
    A blob moved aside pending the outcome of a database commit.

    commit() purges it; restore() puts it back under its original key.
    A StagedDelete for a blob that was already gone does nothing either way.
    """

    def __init__(self, store: "BlobStore", key: str, trash_path: Path | None):
        self.store = store
        self.key = key
        self.trash_path = trash_path

    @property
    def found(self) -> bool:
        return self.trash_path is not None

    def commit(self) -> None:
        if self.trash_path is None:
            return
        try:
            self.trash_path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            # Leftover trash is harmless; the sweep removes it later.
            self.store.logger.exception("Failed to purge staged blob %s", self.key)
        self.trash_path = None

    def restore(self) -> None:
        if self.trash_path is None:
            return
        try:
            os.replace(self.trash_path, self.store.root / self.key)
            self.store.logger.warning("Restored blob %s after failed delete", self.key)
        except OSError as exc:
            raise StorageError(f"Failed to restore file {self.key}") from exc
        self.trash_path = None


class BlobStore:
    def __init__(self, root: str | os.PathLike, *, logger: logging.Logger | None = None):
        self.root = Path(root)
        self.logger = logger or logging.getLogger(__name__)

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError("Upload directory is not available") from exc

    def _path(self, key: str) -> Path:
        return self.root / validate_key(key)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, data: bytes, original_name: str) -> StoredBlob:
        self.ensure_root()
        name = sanitize_name(original_name)

        fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self.root)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())

            millis = epoch_millis()
            while True:
                key = f"{millis}-{name}"
                try:
                    # link() refuses to overwrite, so two uploads in the same millisecond never clobber
                    os.link(tmp_path, self.root / key)
                    break
                except FileExistsError:
                    millis += 1
        except OSError as exc:
            self.logger.exception("Failed to write blob for %s", original_name)
            raise StorageError("Failed to store file") from exc
        finally:
            self._discard(tmp_path)

        self.logger.info("Stored blob %s (%d bytes)", key, len(data))
        return StoredBlob(key=key, size=len(data))

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete file {key}") from exc
        self.logger.info("Deleted blob %s", key)
        return True

    def stage_delete(self, key: str) -> StagedDelete:
        path = self._path(key)
        trash = self.root / TRASH_DIR
        try:
            trash.mkdir(parents=True, exist_ok=True)
            trash_path = trash / f"{key}.{uuid.uuid4().hex}"
            os.replace(path, trash_path)
        except FileNotFoundError:
            self.logger.info("Blob %s already gone when staging delete", key)
            return StagedDelete(self, key, None)
        except OSError as exc:
            raise StorageError(f"Failed to delete file {key}") from exc
        return StagedDelete(self, key, trash_path)

    def _discard(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            self.logger.exception("Failed to remove temp file %s", path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def metadata(self, key: str) -> BlobMetadata | None:
        try:
            st = self._path(key).stat()
        except FileNotFoundError:
            return None
        return BlobMetadata(key=key, size=st.st_size, last_modified=_mtime_to_datetime(st.st_mtime))

    def path_for(self, key: str) -> Path:
        path = self._path(key)
        if not path.is_file():
            raise BlobNotFound("File not found")
        return path

    def read(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            raise BlobNotFound("File not found")
        except OSError as exc:
            raise StorageError(f"Failed to read file {key}") from exc

    def list(self, prefix: str = "") -> list[BlobMetadata]:
        """Blobs whose key starts with prefix, newest first."""
        if not self.root.is_dir():
            return []
        entries = []
        with os.scandir(self.root) as it:
            for entry in it:
                if entry.name.startswith(".") or not entry.name.startswith(prefix):
                    continue
                try:
                    if not entry.is_file():
                        continue
                    st = entry.stat()
                except FileNotFoundError:
                    continue
                entries.append(
                    BlobMetadata(key=entry.name, size=st.st_size, last_modified=_mtime_to_datetime(st.st_mtime))
                )
        entries.sort(key=lambda m: m.last_modified, reverse=True)
        return entries

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def sweep_expired(self, max_age: timedelta, *, now: datetime | None = None) -> int:
        """
        Delete blobs whose last modification is older than max_age.

        Idempotent. Staged deletes and abandoned temp files past the same
        age are removed too but not counted.
        """
        if not self.root.is_dir():
            return 0

        now = now or utcnow()
        cutoff = (now - max_age).replace(tzinfo=timezone.utc).timestamp()
        deleted = 0

        for directory, counted in ((self.root, True), (self.root / TRASH_DIR, False)):
            if not directory.is_dir():
                continue
            with os.scandir(directory) as it:
                for entry in it:
                    if counted and entry.name.startswith(".") and not entry.name.startswith(TEMP_PREFIX):
                        continue
                    try:
                        if not entry.is_file() or entry.stat().st_mtime >= cutoff:
                            continue
                        os.unlink(entry.path)
                    except FileNotFoundError:
                        continue
                    except OSError:
                        self.logger.exception("Retention sweep could not remove %s", entry.name)
                        continue
                    if counted and not entry.name.startswith(TEMP_PREFIX):
                        deleted += 1

        self.logger.info("Retention sweep removed %d expired file(s)", deleted)
        return deleted


def get_blob_store() -> BlobStore:
    return BlobStore(current_app.config["UPLOAD_DIR"], logger=current_app.logger)
