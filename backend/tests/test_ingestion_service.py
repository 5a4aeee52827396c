"""
Ingestion pipeline tests.

Verifies:
- Gates run in order and a rejected upload leaves zero blobs
- Scanner verdicts: infected blocks, unavailable/slow/broken proceeds
"""

import time

import pytest

from printdesk.errors import Malware, StorageError, TooLarge, UnsupportedType, ValidationError
from printdesk.services.ingestion_service import get_file_extension, ingest
from printdesk.services.scanner import MalwareScanner, ScannerUnavailable, ScanVerdict
from printdesk.services.storage_service import BlobStore


class InfectedScanner(MalwareScanner):
    name = "infected"

    def scan(self, data, filename):
        return ScanVerdict(infected=True, signatures=("Eicar-Test-Signature",))


class CleanScanner(MalwareScanner):
    def scan(self, data, filename):
        return ScanVerdict(infected=False)


class DownScanner(MalwareScanner):
    def scan(self, data, filename):
        raise ScannerUnavailable("daemon not running")


class SlowScanner(MalwareScanner):
    def scan(self, data, filename):
        time.sleep(3)
        return ScanVerdict(infected=True)


class BrokenScanner(MalwareScanner):
    def scan(self, data, filename):
        raise RuntimeError("socket reset")


class FailingStore(BlobStore):
    def put(self, data, original_name):
        raise StorageError("disk full")


def _blobs(upload_dir):
    if not upload_dir.exists():
        return []
    return [p for p in upload_dir.iterdir() if p.is_file()]


class TestGates:
    def test_accepts_allowed_file(self, app, upload_dir):
        ref = ingest(b"%PDF-1.4", "Thesis.PDF", "application/pdf", scanner=CleanScanner())
        assert ref.key.endswith("-Thesis.PDF")
        assert ref.size == 8
        assert ref.mime_type == "application/pdf"
        assert len(_blobs(upload_dir)) == 1

    def test_missing_name(self, app):
        with pytest.raises(ValidationError):
            ingest(b"x", "")

    def test_unsupported_type(self, app, upload_dir):
        with pytest.raises(UnsupportedType):
            ingest(b"MZ", "setup.exe")
        assert _blobs(upload_dir) == []

    def test_too_large_leaves_nothing(self, app, upload_dir):
        data = b"\0" * (30 * 1024 * 1024)
        with pytest.raises(TooLarge) as exc:
            ingest(data, "big.pdf")
        assert exc.value.status_code == 413
        assert _blobs(upload_dir) == []

    def test_size_checked_before_scan(self, app):
        app.config["MAX_FILE_SIZE"] = 4
        with pytest.raises(TooLarge):
            ingest(b"12345", "a.pdf", scanner=InfectedScanner())

    def test_storage_failure(self, app, upload_dir):
        with pytest.raises(StorageError):
            ingest(b"x", "a.pdf", store=FailingStore(upload_dir))

    def test_extension_helper(self):
        assert get_file_extension("a.b.DOCX") == "docx"
        assert get_file_extension("noext") == ""


class TestScanner:
    def test_infected_rejected_and_not_stored(self, app, upload_dir):
        with pytest.raises(Malware):
            ingest(b"X5O!P%@AP", "eicar.pdf", scanner=InfectedScanner())
        assert _blobs(upload_dir) == []

    @pytest.mark.parametrize("scanner", [DownScanner(), BrokenScanner()])
    def test_no_verdict_proceeds(self, app, upload_dir, scanner):
        ingest(b"x", "a.pdf", scanner=scanner)
        assert len(_blobs(upload_dir)) == 1

    def test_timeout_proceeds(self, app, upload_dir):
        app.config["SCANNER_TIMEOUT_SECONDS"] = 0.2
        ingest(b"x", "a.pdf", scanner=SlowScanner())
        assert len(_blobs(upload_dir)) == 1

    def test_default_scanner_is_unavailable(self, app, upload_dir):
        ingest(b"x", "a.png")
        assert len(_blobs(upload_dir)) == 1
