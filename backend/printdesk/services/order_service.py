# Overview: Order ledger; order creation, state transitions, cancellation, and reads.

"""
Order Ledger

WHY: Every order and payment status change goes through this module so the
transition rules live in one place and every confirmed change is audited.

DESIGN PRINCIPLES:
- Transition rules are explicit tables, not scattered if-statements.
- Mutations lock the order row, re-check state, then write; a lost race
  (StaleDataError / "database is locked") is retried from the re-read.
- Price is computed by the pricing engine at creation and never
  recomputed afterwards.
- Cancellation deletes the row and the blob as one logical outcome: the
  blob is moved aside, the DB commit happens, then the blob is purged or
  put back.

STATUS (operator-driven):   pending, processing, completed, cancelled
PAYMENT (gateway-driven):   pending, paid, failed
"""

from __future__ import annotations

import math
import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    CancellationWindowExpired,
    InvalidState,
    NotFound,
    PaymentStateConflict,
    StorageError,
    ValidationError,
)
from ..extensions import db
from ..models import Order
from ..models.orders import (
    ORDER_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PENDING,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from ..schemas import (
    CancellationSnapshot,
    OrderSnapshot,
    PaymentSnapshot,
    PrintOptions,
    StatusSnapshot,
)
from ..time_utils import as_utc_naive, to_utc_z, utcnow
from . import audit_service
from .concurrency import lock_for_update, run_with_retry
from .ingestion_service import FileReference, ingest
from .pricing_service import PriceBreakdown, PricingError, price_page_count, quote
from .storage_service import BlobStore, get_blob_store, validate_key


# =============================================================================
# TRANSITION TABLES
# =============================================================================

# Operators may move an order between any two different statuses.
ORDER_STATUS_TRANSITIONS: frozenset[tuple[str, str]] = frozenset(
    (current, requested)
    for current in ORDER_STATUSES
    for requested in ORDER_STATUSES
    if current != requested
)

# paid is final. failed is retried only by starting a new payment attempt.
PAYMENT_STATUS_TRANSITIONS: frozenset[tuple[str, str]] = frozenset({
    (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PENDING),
    (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID),
    (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_FAILED),
    (PAYMENT_STATUS_FAILED, PAYMENT_STATUS_PENDING),
})

PAYMENT_OUTCOMES = (PAYMENT_STATUS_PAID, PAYMENT_STATUS_FAILED)

MAX_PAGE_LIMIT = 100


def can_change_status(current: str, requested: str) -> bool:
    return (current, requested) in ORDER_STATUS_TRANSITIONS


def can_change_payment_status(current: str, requested: str) -> bool:
    return (current, requested) in PAYMENT_STATUS_TRANSITIONS


def generate_order_token() -> str:
    return secrets.token_hex(16)


def _snapshot(order: Order) -> OrderSnapshot:
    return OrderSnapshot(
        token=order.token,
        roll_number=order.roll_number,
        file_reference=order.file_reference,
        total_pages=order.total_pages,
        color_pages=order.color_pages,
        bw_pages=order.bw_pages,
        price=order.price_decimal,
        status=order.status,
        payment_status=order.payment_status,
    )


# =============================================================================
# CREATION
# =============================================================================

def _to_decimal(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", fields={field: "must be a number"})
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a positive number", fields={field: "must be >= 0"})
    return amount.quantize(Decimal("0.01"))


def compute_breakdown(
    options: PrintOptions,
    *,
    total_pages: int,
    selected_pages: Iterable[int] | None = None,
) -> PriceBreakdown:
    """
    Re-derive the price breakdown for an order request.

    With selected_pages the breakdown follows the selection; without it the
    per-copy page count is total_pages / copies.
    """
    try:
        if selected_pages is not None:
            return quote(selected_pages, options)
        if total_pages % options.copies != 0:
            raise ValidationError(
                "totalPages must be a multiple of copies",
                fields={"totalPages": "must be a multiple of printOptions.copies"},
            )
        return price_page_count(total_pages // options.copies, color=options.color, copies=options.copies)
    except PricingError as exc:
        raise ValidationError(str(exc), fields={"selectedPages": str(exc)})


def create_order(
    *,
    roll_number: str,
    file_ref: FileReference,
    print_options: PrintOptions,
    total_pages: int,
    color_pages: int,
    bw_pages: int,
    price,
    selected_pages: Iterable[int] | None = None,
    actor: str,
    ip_address: str | None = None,
) -> Order:
    """
    Persist a new order (status=pending, payment_status=pending).

    The submitted page counts and price must match what the pricing engine
    computes for the same selection and options; any mismatch is reported
    per field and nothing is written.

    Raises:
        ValidationError: Missing roll number, mismatched counts or price
    """
    roll_number = (roll_number or "").strip()
    if not roll_number:
        raise ValidationError("Roll number is required", fields={"rollNumber": "required"})
    if len(roll_number) > 64:
        raise ValidationError("Roll number is too long", fields={"rollNumber": "max 64 characters"})

    breakdown = compute_breakdown(print_options, total_pages=total_pages, selected_pages=selected_pages)
    submitted_price = _to_decimal(price, "price")

    mismatches = {}
    if breakdown.total_pages < 1:
        mismatches["totalPages"] = "must be at least 1"
    elif total_pages != breakdown.total_pages:
        mismatches["totalPages"] = f"expected {breakdown.total_pages}"
    if color_pages != breakdown.color_pages:
        mismatches["colorPages"] = f"expected {breakdown.color_pages}"
    if bw_pages != breakdown.bw_pages:
        mismatches["bwPages"] = f"expected {breakdown.bw_pages}"
    if submitted_price != breakdown.total:
        mismatches["price"] = f"expected {breakdown.total}"
    if mismatches:
        raise ValidationError("Order does not match computed pricing", fields=mismatches)

    now = utcnow()
    order = Order(
        token=generate_order_token(),
        roll_number=roll_number,
        file_name=file_ref.original_name,
        file_reference=file_ref.key,
        total_pages=breakdown.total_pages,
        color_pages=breakdown.color_pages,
        bw_pages=breakdown.bw_pages,
        price=breakdown.total,
        print_options=print_options.to_json(),
        status=ORDER_STATUS_PENDING,
        payment_status=PAYMENT_STATUS_PENDING,
        created_at=now,
        updated_at=now,
    )

    try:
        db.session.add(order)
        db.session.flush()
        audit_service.append_audit_entry(
            action=audit_service.ACTION_CREATE_ORDER,
            entity_type=audit_service.ENTITY_ORDER,
            entity_id=order.id,
            before=None,
            after=_snapshot(order),
            actor=actor,
            ip_address=ip_address,
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if "file_reference" in str(exc.orig):
            current_app.logger.warning("Order rejected: file %s is already attached", file_ref.key)
            raise ValidationError(
                "File reference is already attached to an order",
                fields={"fileReference": "in use"},
            ) from exc
        raise
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Order created: id=%s token=%s roll=%s pages=%d price=%s",
        order.id, order.token, roll_number, order.total_pages, order.price_decimal,
    )
    return order


def create_order_from_upload(
    *,
    data: bytes,
    original_name: str,
    mime_type: str | None,
    store: BlobStore | None = None,
    **order_fields,
) -> Order:
    """
    Ingest a file and create its order in one unit of work.

    If anything fails after the blob was stored, the blob is deleted again
    so no orphan survives.
    """
    store = store or get_blob_store()
    file_ref = ingest(data, original_name, mime_type, store=store)
    try:
        return create_order(file_ref=file_ref, **order_fields)
    except Exception:
        _discard_blob(store, file_ref.key)
        raise


def resolve_file_reference(key: str, *, file_name: str | None = None, store: BlobStore | None = None) -> FileReference:
    """Turn a previously ingested blob key back into a FileReference."""
    store = store or get_blob_store()
    validate_key(key)
    meta = store.metadata(key)
    if meta is None:
        raise ValidationError("File reference not found or expired", fields={"fileReference": "not found"})
    if db.session.query(Order.id).filter_by(file_reference=key).first():
        raise ValidationError("File reference is already attached to an order", fields={"fileReference": "in use"})
    original = file_name or key.split("-", 1)[-1]
    return FileReference(key=key, original_name=original, size=meta.size, mime_type=None)


def create_order_from_reference(
    key: str,
    *,
    file_name: str | None = None,
    store: BlobStore | None = None,
    **order_fields,
) -> Order:
    """
    Create an order for a blob stored earlier through /upload.

    A rejected order removes the blob, unless the blob is missing or
    already belongs to another order.
    """
    store = store or get_blob_store()
    file_ref = resolve_file_reference(key, file_name=file_name, store=store)
    try:
        return create_order(file_ref=file_ref, **order_fields)
    except ValidationError as exc:
        if exc.fields.get("fileReference") != "in use":
            _discard_blob(store, file_ref.key)
        raise
    except Exception:
        _discard_blob(store, file_ref.key)
        raise


def _discard_blob(store: BlobStore, key: str) -> None:
    try:
        store.delete(key)
    except StorageError:
        current_app.logger.exception("Failed to remove blob %s after order creation failed", key)


# =============================================================================
# OPERATOR STATUS CHANGES
# =============================================================================

def set_status(order_id: int, new_status: str, *, actor: str, ip_address: str | None = None) -> Order:
    """
    Change an order's status (operator action).

    Raises:
        ValidationError: Unknown status
        NotFound: Order does not exist
        InvalidState: Transition not allowed by ORDER_STATUS_TRANSITIONS
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status: {new_status}. Must be one of {list(ORDER_STATUSES)}",
            fields={"status": "invalid"},
        )

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFound("Order not found")

        old_status = order.status
        if not can_change_status(old_status, new_status):
            raise InvalidState(f"Order is already {old_status}")

        order.status = new_status
        order.updated_at = utcnow()

        audit_service.append_audit_entry(
            action=audit_service.ACTION_UPDATE_ORDER_STATUS,
            entity_type=audit_service.ENTITY_ORDER,
            entity_id=order.id,
            before=StatusSnapshot(status=old_status),
            after=StatusSnapshot(status=new_status),
            actor=actor,
            ip_address=ip_address,
        )
        db.session.commit()

        current_app.logger.info("Order %s status %s -> %s by %s", order.id, old_status, new_status, actor)
        return order

    return run_with_retry(_op)


# =============================================================================
# PAYMENT STATUS (gateway-driven)
# =============================================================================

@dataclass(frozen=True)
class PaymentOutcome:
    order: Order
    changed: bool


def mark_payment_initiated(
    token: str,
    payment_id: str,
    *,
    expected_amount: Decimal | None = None,
    actor: str,
    ip_address: str | None = None,
) -> Order:
    """
    Record a new payment attempt: payment_id is replaced, status -> pending.

    Raises:
        NotFound: Unknown token
        ValidationError: expected_amount differs from the stored price
        InvalidState: Order is already paid, or cancelled
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(token=token)).first()
        if not order:
            raise NotFound("Order not found")

        if expected_amount is not None and expected_amount != order.price_decimal:
            raise ValidationError(
                "Amount does not match order price",
                fields={"amount": f"expected {order.price_decimal}"},
            )
        if order.status == ORDER_STATUS_CANCELLED:
            raise InvalidState("Cannot pay for a cancelled order")
        if not can_change_payment_status(order.payment_status, PAYMENT_STATUS_PENDING):
            raise InvalidState(f"Order payment is already {order.payment_status}")

        before = PaymentSnapshot(payment_status=order.payment_status, payment_id=order.payment_id)
        order.payment_id = payment_id
        order.payment_status = PAYMENT_STATUS_PENDING
        order.updated_at = utcnow()

        audit_service.append_audit_entry(
            action=audit_service.ACTION_INITIATE_PAYMENT,
            entity_type=audit_service.ENTITY_ORDER,
            entity_id=order.id,
            before=before,
            after=PaymentSnapshot(payment_status=order.payment_status, payment_id=payment_id),
            actor=actor,
            ip_address=ip_address,
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def apply_payment_outcome(
    token: str,
    payment_id: str | None,
    outcome: str,
    *,
    actor: str,
    ip_address: str | None = None,
) -> PaymentOutcome:
    """
    Apply a verified gateway outcome (paid / failed) to an order.

    Idempotent: repeating the outcome the order already has changes nothing
    and writes no audit entry. A different terminal outcome is rejected.

    Raises:
        NotFound: Unknown token
        InvalidState: payment_id is not the order's current attempt
        PaymentStateConflict: Order already settled the other way
    """
    if outcome not in PAYMENT_OUTCOMES:
        raise ValidationError(f"Invalid payment outcome: {outcome}", fields={"status": "invalid"})

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(token=token)).first()
        if not order:
            raise NotFound("Order not found")

        if order.payment_id is None or payment_id != order.payment_id:
            current_app.logger.warning(
                "Payment callback for order %s carries payment id %s, current attempt is %s",
                token, payment_id, order.payment_id,
            )
            raise InvalidState("Payment id does not match the current payment attempt")

        current = order.payment_status
        if current == outcome:
            db.session.rollback()
            current_app.logger.info("Duplicate payment outcome %s for order %s ignored", outcome, token)
            return PaymentOutcome(order=order, changed=False)

        if not can_change_payment_status(current, outcome):
            current_app.logger.error(
                "Conflicting payment outcome for order %s (payment %s): is %s, callback says %s",
                token, payment_id, current, outcome,
            )
            raise PaymentStateConflict(f"Order payment is already {current}")

        order.payment_status = outcome
        order.updated_at = utcnow()

        audit_service.append_audit_entry(
            action=audit_service.ACTION_UPDATE_PAYMENT_STATUS,
            entity_type=audit_service.ENTITY_ORDER,
            entity_id=order.id,
            before=PaymentSnapshot(payment_status=current, payment_id=order.payment_id),
            after=PaymentSnapshot(payment_status=outcome, payment_id=order.payment_id),
            actor=actor,
            ip_address=ip_address,
        )
        db.session.commit()

        current_app.logger.info("Order %s payment %s -> %s (payment %s)", token, current, outcome, payment_id)
        return PaymentOutcome(order=order, changed=True)

    try:
        return run_with_retry(_op)
    except (NotFound, InvalidState):
        db.session.rollback()
        raise


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_order(
    token: str,
    *,
    actor: str,
    ip_address: str | None = None,
    now: datetime | None = None,
    store: BlobStore | None = None,
) -> CancellationSnapshot:
    """
    Cancel a pending order within the cancellation window.

    Deletes the order row and its blob, and writes a cancel_order audit
    entry. The window is CANCELLATION_WINDOW_SECONDS after created_at,
    inclusive.

    Raises:
        NotFound: Unknown token
        InvalidState: Order is not pending
        CancellationWindowExpired: Window has passed
        StorageError: Blob could not be removed (order left intact)
    """
    store = store or get_blob_store()
    window = int(current_app.config["CANCELLATION_WINDOW_SECONDS"])

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(token=token)).first()
        if not order:
            raise NotFound("Order not found")

        if order.status != ORDER_STATUS_PENDING:
            raise InvalidState("Only pending orders can be cancelled")

        created_at = as_utc_naive(order.created_at)
        elapsed = ((now or utcnow()) - created_at).total_seconds()
        if elapsed > window:
            raise CancellationWindowExpired(f"Order can only be cancelled within {window} seconds")

        snapshot = CancellationSnapshot(
            token=order.token,
            file_reference=order.file_reference,
            created_at=to_utc_z(created_at),
        )
        order_id = order.id

        db.session.delete(order)
        audit_service.append_audit_entry(
            action=audit_service.ACTION_CANCEL_ORDER,
            entity_type=audit_service.ENTITY_ORDER,
            entity_id=order_id,
            before=snapshot,
            after=None,
            actor=actor,
            ip_address=ip_address,
        )

        try:
            staged = store.stage_delete(snapshot.file_reference)
        except StorageError:
            db.session.rollback()
            raise

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            staged.restore()
            raise

        staged.commit()
        current_app.logger.info("Order %s cancelled by %s after %.1fs", token, actor, elapsed)
        return snapshot

    try:
        return run_with_retry(_op)
    except (NotFound, InvalidState, CancellationWindowExpired):
        db.session.rollback()
        raise


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    return order


def get_order_by_token(token: str) -> Order:
    order = db.session.query(Order).filter_by(token=token).first()
    if not order:
        raise NotFound("Order not found")
    return order


def find_orders_by_roll_number(roll_number: str) -> list[Order]:
    """All orders for a roll number, newest first."""
    return (
        db.session.query(Order)
        .filter_by(roll_number=roll_number)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders(*, status: str | None = None, page: int = 1, limit: int = 10) -> tuple[list[Order], dict]:
    if status and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status filter: {status}", fields={"status": "invalid"})
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_LIMIT))

    query = db.session.query(Order)
    if status:
        query = query.filter_by(status=status)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }
    return orders, pagination


def get_order_history(order_id: int) -> list:
    return audit_service.get_entity_history(audit_service.ENTITY_ORDER, order_id)


def get_order_by_payment_id(payment_id: str) -> Order:
    order = db.session.query(Order).filter_by(payment_id=payment_id).first()
    if not order:
        raise NotFound("Payment not found")
    return order
