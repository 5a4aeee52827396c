# Overview: Payment settings repository over system_settings key/value rows.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import SystemSetting
from ..schemas import SettingsSnapshot
from ..time_utils import utcnow
from . import audit_service


KEY_PAYMENT_ENABLED = "payment_enabled"
KEY_MERCHANT_ID = "payment_merchant_id"
KEY_MERCHANT_KEY = "payment_merchant_key"
KEY_ENVIRONMENT = "payment_environment"

PAYMENT_KEYS = (KEY_PAYMENT_ENABLED, KEY_MERCHANT_ID, KEY_MERCHANT_KEY, KEY_ENVIRONMENT)

ENV_TEST = "TEST"
ENV_PROD = "PROD"
ENVIRONMENTS = (ENV_TEST, ENV_PROD)

MASK = "********"


@dataclass(frozen=True)
class PaymentSettings:
    """
    Payment configuration as of one read.

    Loaded fresh for every initiation and callback, so an admin change takes
    effect on the next request without a restart.
    """
    payment_enabled: bool = False
    merchant_id: str = ""
    merchant_key: str = ""
    environment: str = ENV_TEST

    @property
    def is_production(self) -> bool:
        return self.environment == ENV_PROD

    def snapshot(self) -> SettingsSnapshot:
        return SettingsSnapshot(
            payment_enabled=self.payment_enabled,
            merchant_id=self.merchant_id,
            environment=self.environment,
            merchant_key_set=bool(self.merchant_key),
        )

    def to_public_dict(self) -> dict:
        """Admin view; the merchant key is never returned."""
        return {
            "paymentEnabled": self.payment_enabled,
            "paytmMerchantId": self.merchant_id,
            "paytmMerchantKey": MASK if self.merchant_key else "",
            "paytmEnvironment": self.environment,
            "merchantKeySet": bool(self.merchant_key),
        }


def _rows() -> dict[str, str | None]:
    rows = db.session.query(SystemSetting).filter(SystemSetting.key.in_(PAYMENT_KEYS)).all()
    return {row.key: row.value for row in rows}


def load_payment_settings() -> PaymentSettings:
    values = _rows()
    environment = (values.get(KEY_ENVIRONMENT) or ENV_TEST).upper()
    return PaymentSettings(
        payment_enabled=(values.get(KEY_PAYMENT_ENABLED) or "").lower() == "true",
        merchant_id=values.get(KEY_MERCHANT_ID) or "",
        merchant_key=values.get(KEY_MERCHANT_KEY) or "",
        environment=environment if environment in ENVIRONMENTS else ENV_TEST,
    )


def _upsert(key: str, value: str, actor: str) -> None:
    row = db.session.query(SystemSetting).filter_by(key=key).first()
    if row is None:
        row = SystemSetting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_by = actor
    row.updated_at = utcnow()


def save_payment_settings(
    *,
    payment_enabled: bool,
    merchant_id: str | None,
    merchant_key: str | None,
    environment: str | None,
    actor: str,
    ip_address: str | None = None,
) -> PaymentSettings:
    """
    Replace the payment settings.

    A blank (or masked) merchant_key keeps the stored key, since the admin
    screen never receives the real one.
    """
    environment = (environment or ENV_TEST).strip().upper()
    if environment not in ENVIRONMENTS:
        raise ValidationError(
            f"Invalid environment: {environment}. Must be one of {list(ENVIRONMENTS)}",
            fields={"paytmEnvironment": "invalid"},
        )

    before = load_payment_settings()
    key = (merchant_key or "").strip()
    if not key or key == MASK:
        key = before.merchant_key

    after = PaymentSettings(
        payment_enabled=bool(payment_enabled),
        merchant_id=(merchant_id or "").strip(),
        merchant_key=key,
        environment=environment,
    )

    try:
        _upsert(KEY_PAYMENT_ENABLED, "true" if after.payment_enabled else "false", actor)
        _upsert(KEY_MERCHANT_ID, after.merchant_id, actor)
        _upsert(KEY_MERCHANT_KEY, after.merchant_key, actor)
        _upsert(KEY_ENVIRONMENT, after.environment, actor)
        db.session.flush()
        audit_service.append_audit_entry(
            action=audit_service.ACTION_UPDATE_PAYMENT_SETTINGS,
            entity_type=audit_service.ENTITY_SETTINGS,
            entity_id=None,
            before=before.snapshot(),
            after=after.snapshot(),
            actor=actor,
            ip_address=ip_address,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Payment settings updated by %s: enabled=%s environment=%s",
        actor, after.payment_enabled, after.environment,
    )
    return after
