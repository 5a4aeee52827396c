# Overview: Pluggable malware scanner seam with bounded-time verdicts.

"""
Malware scanning

WHY: Uploads are scanned before they are stored, but no particular scanner
is built in. Deployments register one on the app:

    app = create_app(scanner=MyClamdScanner(...))

Scanning is best effort. A scanner that is missing, raises
ScannerUnavailable, or does not answer within SCANNER_TIMEOUT_SECONDS
yields no verdict and ingestion proceeds. Only an explicit infected verdict
blocks a file.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field

from flask import current_app


EXTENSION_KEY = "printdesk.scanner"

# Shared by all requests; a hung scanner call occupies one worker, not the request
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="scanner")


class ScannerUnavailable(Exception):
    """The scanner could not produce a verdict."""


@dataclass(frozen=True)
class ScanVerdict:
    infected: bool
    signatures: tuple[str, ...] = field(default_factory=tuple)


class MalwareScanner:
    """Base class. Subclasses return a ScanVerdict or raise ScannerUnavailable."""

    name = "scanner"

    def scan(self, data: bytes, filename: str) -> ScanVerdict:
        raise NotImplementedError


class NullScanner(MalwareScanner):
    name = "none"

    def scan(self, data: bytes, filename: str) -> ScanVerdict:
        raise ScannerUnavailable("No malware scanner configured")


def get_scanner() -> MalwareScanner:
    return current_app.extensions.get(EXTENSION_KEY) or NullScanner()


def scan_with_timeout(
    scanner: MalwareScanner,
    data: bytes,
    filename: str,
    *,
    timeout: float,
    logger: logging.Logger,
) -> ScanVerdict | None:
    """Run scanner.scan() with a deadline. None means "no verdict"."""
    future = _executor.submit(scanner.scan, data, filename)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning("Malware scanner %s timed out after %.1fs; skipping scan of %s", scanner.name, timeout, filename)
    except ScannerUnavailable as exc:
        logger.warning("Malware scanner unavailable (%s); skipping scan of %s", exc, filename)
    except Exception:
        logger.exception("Malware scanner %s failed; skipping scan of %s", scanner.name, filename)
    return None
