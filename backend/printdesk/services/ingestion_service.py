# Overview: Upload ingestion pipeline (validate, scan, store).

"""
Ingestion Pipeline

WHY: Turns raw upload bytes into a durable FileReference that an order can
point at. Each step is a hard gate; nothing is visible to the order ledger
until every gate has passed.

STEPS:
1. Extension allow-list (ALLOWED_FILE_TYPES)  -> UnsupportedType
2. Size limit (MAX_FILE_SIZE)                   -> TooLarge
3. Malware scan (best effort, bounded)          -> Malware
4. Blob Store put                               -> StorageError

INVARIANT: on success exactly one blob exists for the upload; on any
failure, none does.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from flask import current_app

from ..errors import Malware, StorageError, TooLarge, UnsupportedType, ValidationError
from .scanner import MalwareScanner, get_scanner, scan_with_timeout
from .storage_service import BlobStore, get_blob_store


@dataclass(frozen=True)
class FileReference:
    key: str
    original_name: str
    size: int
    mime_type: str | None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "originalName": self.original_name,
            "size": self.size,
            "mimeType": self.mime_type,
        }


def get_file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower().lstrip(".")


def ingest(
    data: bytes,
    original_name: str,
    declared_mime_type: str | None = None,
    *,
    store: BlobStore | None = None,
    scanner: MalwareScanner | None = None,
    config: Mapping | None = None,
) -> FileReference:
    """
    Validate, scan, and persist one uploaded file.

    Args:
        data: Complete file contents
        original_name: Client-supplied filename (used for the extension and key)
        declared_mime_type: Client-supplied content type, recorded only
        store, scanner, config: Overrides; default to the current app's

    Raises:
        ValidationError: No file name
        UnsupportedType, TooLarge, Malware, StorageError
    """
    config = config if config is not None else current_app.config
    store = store or get_blob_store()
    scanner = scanner or get_scanner()
    logger = current_app.logger

    if not original_name:
        raise ValidationError("No file uploaded", fields={"file": "required"})

    allowed = [t.lower() for t in config["ALLOWED_FILE_TYPES"]]
    extension = get_file_extension(original_name)
    if extension not in allowed:
        raise UnsupportedType(
            f"File type {extension or '(none)'} is not allowed. Allowed types: {', '.join(allowed)}",
            fields={"file": "unsupported type"},
        )

    max_size = int(config["MAX_FILE_SIZE"])
    if len(data) > max_size:
        raise TooLarge(
            f"File too large. Maximum size is {max_size // (1024 * 1024)}MB.",
            fields={"file": "too large"},
        )

    verdict = scan_with_timeout(
        scanner,
        data,
        original_name,
        timeout=float(config.get("SCANNER_TIMEOUT_SECONDS", 10)),
        logger=logger,
    )
    if verdict is not None and verdict.infected:
        logger.warning("Malware detected in upload %s: %s", original_name, ", ".join(verdict.signatures))
        raise Malware("File contains malware and has been rejected", fields={"file": "malware"})

    try:
        stored = store.put(data, original_name)
    except StorageError:
        raise
    except OSError as exc:
        raise StorageError("Failed to store file") from exc

    logger.info(
        "File ingested: %s -> %s (%d bytes, %s)",
        original_name, stored.key, stored.size, declared_mime_type or "unknown type",
    )
    return FileReference(
        key=stored.key,
        original_name=original_name,
        size=stored.size,
        mime_type=declared_mime_type,
    )
