# Overview: Payment gateway adapter; signed initiation, callback verification, verify lookup.

"""
Payment Gateway Adapter

WHY: The provider redirects the customer with a form of signed parameters
and later calls us back with the outcome. This module builds the signed
form, verifies the callback signature, and hands verified outcomes to the
order ledger. It never writes order rows itself.

CHECKSUM:
    sha256_hex("k1=v1&k2=v2&..." + merchant_key)
    over the parameters sorted by key, CHECKSUMHASH excluded.

FLOW:
    initiate()          -> order.payment_id = new id, payment_status = pending
    handle_callback()   -> checksum ok -> TXN_SUCCESS ? paid : failed
    verify()            -> read-only lookup by payment id
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping

from flask import current_app

from ..errors import (
    ChecksumMismatch,
    NotConfigured,
    NotFound,
    PaymentDisabled,
    ValidationError,
)
from ..models.orders import PAYMENT_STATUS_FAILED, PAYMENT_STATUS_PAID
from ..time_utils import epoch_millis
from . import order_service
from .settings_service import PaymentSettings


CHECKSUM_FIELD = "CHECKSUMHASH"
SUCCESS_STATUS = "TXN_SUCCESS"

CHANNEL_ID = "WEB"
INDUSTRY_TYPE_ID = "Retail"
WEBSITE_PROD = "DEFAULT"
WEBSITE_TEST = "WEBSTAGING"

GATEWAY_URL_PROD = "https://securegw.paytm.in/order/process"
GATEWAY_URL_TEST = "https://securegw-stage.paytm.in/order/process"

_BASE36 = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class PaymentInitiation:
    payment_id: str
    redirect_url: str
    params: dict[str, str]

    def to_dict(self) -> dict:
        return {
            "paymentId": self.payment_id,
            "paytmUrl": self.redirect_url,
            "paytmParams": dict(self.params),
        }


@dataclass(frozen=True)
class CallbackResult:
    order_token: str
    payment_id: str | None
    payment_status: str
    changed: bool


@dataclass(frozen=True)
class PaymentVerification:
    payment_id: str
    status: str
    amount: Decimal
    order_token: str

    def to_dict(self) -> dict:
        return {
            "paymentId": self.payment_id,
            "status": self.status,
            "amount": float(self.amount),
            "orderToken": self.order_token,
            "verified": True,
        }


# =============================================================================
# CHECKSUM
# =============================================================================

def _signing_string(params: Mapping[str, object], merchant_key: str) -> str:
    pairs = [
        f"{key}={'' if params[key] is None else params[key]}"
        for key in sorted(params)
        if key != CHECKSUM_FIELD
    ]
    return "&".join(pairs) + merchant_key


def generate_checksum(params: Mapping[str, object], merchant_key: str) -> str:
    return hashlib.sha256(_signing_string(params, merchant_key).encode("utf-8")).hexdigest()


def verify_checksum(params: Mapping[str, object], received: str | None, merchant_key: str) -> bool:
    if not received:
        return False
    expected = generate_checksum(params, merchant_key)
    return hmac.compare_digest(expected, str(received))


def generate_payment_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"TXN_{epoch_millis()}_{suffix}"


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(Decimal('0.01'))}"


def _parse_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Valid amount is required", fields={"amount": "must be a number"})
    if not amount.is_finite() or amount < 0:
        raise ValidationError("Valid amount is required", fields={"amount": "must be >= 0"})
    return amount.quantize(Decimal("0.01"))


# =============================================================================
# INITIATE
# =============================================================================

def initiate(
    order_token: str,
    amount,
    customer_ref: str,
    *,
    settings: PaymentSettings,
    callback_url: str,
    actor: str,
    ip_address: str | None = None,
) -> PaymentInitiation:
    """
    Start a payment attempt for an order.

    Args:
        order_token: Order token (sent to the gateway as ORDER_ID)
        amount: Must equal the order's stored price
        customer_ref: Roll number (CUST_ID)
        settings: Payment settings loaded for this request

    Raises:
        PaymentDisabled, NotConfigured
        NotFound: Unknown order
        ValidationError: Amount mismatch or missing fields
        InvalidState: Order already paid
    """
    if not settings.payment_enabled:
        raise PaymentDisabled("Payment processing is currently disabled")
    if not settings.merchant_id:
        raise NotConfigured("Paytm merchant ID not configured")
    if not order_token:
        raise ValidationError("Order ID is required", fields={"orderId": "required"})
    if not customer_ref:
        raise ValidationError("Roll number is required", fields={"rollNumber": "required"})

    expected_amount = _parse_amount(amount)
    payment_id = generate_payment_id()

    order = order_service.mark_payment_initiated(
        order_token,
        payment_id,
        expected_amount=expected_amount,
        actor=actor,
        ip_address=ip_address,
    )

    params = {
        "MID": settings.merchant_id,
        "ORDER_ID": order.token,
        "TXN_AMOUNT": format_amount(order.price_decimal),
        "CUST_ID": customer_ref,
        "TXN_ID": payment_id,
        "CHANNEL_ID": CHANNEL_ID,
        "WEBSITE": WEBSITE_PROD if settings.is_production else WEBSITE_TEST,
        "CALLBACK_URL": callback_url,
        "INDUSTRY_TYPE_ID": INDUSTRY_TYPE_ID,
    }
    params[CHECKSUM_FIELD] = generate_checksum(params, settings.merchant_key)

    current_app.logger.info(
        "Payment initiated: order=%s payment=%s amount=%s environment=%s",
        order.token, payment_id, params["TXN_AMOUNT"], settings.environment,
    )
    return PaymentInitiation(
        payment_id=payment_id,
        redirect_url=GATEWAY_URL_PROD if settings.is_production else GATEWAY_URL_TEST,
        params=params,
    )


# =============================================================================
# CALLBACK
# =============================================================================

def handle_callback(
    received: Mapping[str, object],
    *,
    settings: PaymentSettings,
    actor: str = "gateway",
    ip_address: str | None = None,
) -> CallbackResult:
    """
    Verify and apply a provider callback.

    The checksum covers every received field except CHECKSUMHASH. Nothing is
    touched unless it matches.

    Raises:
        ChecksumMismatch: Signature invalid
        NotFound, InvalidState, PaymentStateConflict: from the order ledger
    """
    fields = {key: value for key, value in received.items() if key != CHECKSUM_FIELD}
    order_token = str(received.get("ORDERID") or "")
    payment_id = received.get("TXNID")
    payment_id = str(payment_id) if payment_id else None

    if not verify_checksum(fields, received.get(CHECKSUM_FIELD), settings.merchant_key):
        current_app.logger.error(
            "Payment callback checksum mismatch: order=%s payment=%s ip=%s",
            order_token, payment_id, ip_address,
        )
        raise ChecksumMismatch("Invalid checksum")

    if not order_token:
        raise ValidationError("ORDERID is required", fields={"ORDERID": "required"})

    outcome = PAYMENT_STATUS_PAID if received.get("STATUS") == SUCCESS_STATUS else PAYMENT_STATUS_FAILED
    result = order_service.apply_payment_outcome(
        order_token,
        payment_id,
        outcome,
        actor=actor,
        ip_address=ip_address,
    )

    current_app.logger.info(
        "Payment callback processed: order=%s payment=%s status=%s -> %s%s",
        order_token, payment_id, received.get("STATUS"), outcome,
        "" if result.changed else " (duplicate)",
    )
    return CallbackResult(
        order_token=order_token,
        payment_id=payment_id,
        payment_status=outcome,
        changed=result.changed,
    )


# =============================================================================
# VERIFY
# =============================================================================

def verify(payment_id: str) -> PaymentVerification:
    if not payment_id:
        raise NotFound("Payment not found")
    order = order_service.get_order_by_payment_id(payment_id)
    return PaymentVerification(
        payment_id=payment_id,
        status=order.payment_status,
        amount=order.price_decimal,
        order_token=order.token,
    )
