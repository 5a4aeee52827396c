# Overview: Typed records stored in JSON columns (print options, audit snapshots).

"""
Structured values persisted as JSON.

WHY: print options and audit before/after states used to be free-form
dicts. Each record here is a frozen dataclass with a ``kind`` tag so the
JSON read back from the database can be turned into the right type again
and compared field by field.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from typing import Any, ClassVar

from .errors import ValidationError


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
        return value.strip().lower() in {"true", "1"}
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean", fields={field: "must be a boolean"})


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", fields={field: "must be an integer"})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", fields={field: "must be an integer"})


@dataclass(frozen=True)
class PrintOptions:
    kind: ClassVar[str] = "print_options"

    color: bool = False
    double_sided: bool = False
    copies: int = 1

    def __post_init__(self):
        if self.copies < 1:
            raise ValidationError("copies must be at least 1", fields={"printOptions.copies": "must be >= 1"})

    @classmethod
    def from_payload(cls, payload: Any) -> "PrintOptions":
        """Accepts the camelCase request shape or the stored snake_case shape."""
        if payload is None:
            raise ValidationError("Print options are required", fields={"printOptions": "required"})
        if not isinstance(payload, dict):
            raise ValidationError("Print options must be an object", fields={"printOptions": "must be an object"})

        color = payload.get("color", payload.get("isColor", False))
        double_sided = payload.get("doubleSided", payload.get("double_sided", False))
        copies = payload.get("copies", 1)

        return cls(
            color=_as_bool(color, "printOptions.color"),
            double_sided=_as_bool(double_sided, "printOptions.doubleSided"),
            copies=_as_int(copies, "printOptions.copies"),
        )

    def to_json(self) -> dict:
        return {"kind": self.kind, **asdict(self)}

    def to_dict(self) -> dict:
        return {"color": self.color, "doubleSided": self.double_sided, "copies": self.copies}


# =============================================================================
# AUDIT SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class Snapshot:
    kind: ClassVar[str] = "snapshot"

    def to_json(self) -> dict:
        data = {"kind": self.kind}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Decimal) else value
        return data


@dataclass(frozen=True)
class OrderSnapshot(Snapshot):
    kind: ClassVar[str] = "order"

    token: str
    roll_number: str
    file_reference: str
    total_pages: int
    color_pages: int
    bw_pages: int
    price: Decimal
    status: str
    payment_status: str


@dataclass(frozen=True)
class StatusSnapshot(Snapshot):
    kind: ClassVar[str] = "status"

    status: str


@dataclass(frozen=True)
class PaymentSnapshot(Snapshot):
    kind: ClassVar[str] = "payment"

    payment_status: str
    payment_id: str | None


@dataclass(frozen=True)
class CancellationSnapshot(Snapshot):
    kind: ClassVar[str] = "cancellation"

    token: str
    file_reference: str
    created_at: str


@dataclass(frozen=True)
class SettingsSnapshot(Snapshot):
    """Payment settings without the merchant secret."""
    kind: ClassVar[str] = "payment_settings"

    payment_enabled: bool
    merchant_id: str
    environment: str
    merchant_key_set: bool


SNAPSHOT_TYPES: dict[str, type[Snapshot]] = {
    cls.kind: cls
    for cls in (OrderSnapshot, StatusSnapshot, PaymentSnapshot, CancellationSnapshot, SettingsSnapshot)
}


def snapshot_from_json(data: dict | None) -> Snapshot | None:
    if data is None:
        return None
    cls = SNAPSHOT_TYPES.get(data.get("kind"))
    if cls is None:
        raise ValueError(f"Unknown snapshot kind: {data.get('kind')!r}")
    values = {f.name: data.get(f.name) for f in fields(cls)}
    if cls is OrderSnapshot:
        values["price"] = Decimal(values["price"])
    return cls(**values)
