# Overview: Error taxonomy shared by services and routes.

"""
Every domain failure raised by a service is a PrintDeskError.

Each class carries a stable machine-readable ``kind`` and the HTTP status the
API renders it with. Routes never build error bodies for these by hand; the
handler registered in create_app() does it:

    {"error": "<message>", "kind": "<kind>", "fields": {...}}
"""

from __future__ import annotations


class PrintDeskError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, *, fields: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.fields:
            body["fields"] = dict(self.fields)
        return body


class ValidationError(PrintDeskError):
    """Missing or malformed request fields."""
    kind = "validation_error"
    status_code = 400


class NotFound(PrintDeskError):
    kind = "not_found"
    status_code = 404


class AuthenticationError(PrintDeskError):
    kind = "authentication_required"
    status_code = 401


# Ingestion rejections

class IngestError(PrintDeskError):
    kind = "ingest_error"
    status_code = 400


class UnsupportedType(IngestError):
    kind = "unsupported_type"


class TooLarge(IngestError):
    kind = "too_large"
    status_code = 413


class Malware(IngestError):
    kind = "malware"


class StorageError(IngestError):
    """Blob Store failure; the caller may retry."""
    kind = "storage_error"
    status_code = 503


# State machine guards

class InvalidState(PrintDeskError):
    kind = "invalid_state"
    status_code = 409


class PaymentStateConflict(InvalidState):
    """A callback tried to move a terminal payment status somewhere else."""


class CancellationWindowExpired(PrintDeskError):
    kind = "cancellation_window_expired"
    status_code = 400


# Settlement

class PaymentError(PrintDeskError):
    kind = "payment_error"
    status_code = 400


class PaymentDisabled(PaymentError):
    kind = "payment_disabled"


class NotConfigured(PaymentError):
    kind = "not_configured"


class ChecksumMismatch(PaymentError):
    kind = "checksum_mismatch"
