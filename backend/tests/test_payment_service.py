"""
Payment gateway adapter tests.

Verifies:
- Initiation gates (disabled, not configured, amount mismatch, already paid)
- Signed parameter set and checksum format
- Callback checksum verification, idempotency, conflicts, stale attempts
- Concurrent success/failure callbacks settle exactly once
"""

import hashlib
import re
import threading
from decimal import Decimal

import pytest

from conftest import MERCHANT_KEY
from printdesk.errors import (
    ChecksumMismatch,
    InvalidState,
    NotConfigured,
    NotFound,
    PaymentDisabled,
    PaymentStateConflict,
    ValidationError,
)
from printdesk.extensions import db
from printdesk.models import Order
from printdesk.services import audit_service, payment_service
from printdesk.services.settings_service import PaymentSettings, load_payment_settings


CALLBACK_URL = "http://localhost:5000/api/payment/callback"


def _initiate(order, settings, amount="3.60"):
    return payment_service.initiate(
        order.token,
        amount,
        order.roll_number,
        settings=settings,
        callback_url=CALLBACK_URL,
        actor=f"customer:{order.roll_number}",
    )


def _callback(order_token, payment_id, status="TXN_SUCCESS", amount="3.60", key=MERCHANT_KEY):
    fields = {"ORDERID": order_token, "TXNID": payment_id, "TXNAMOUNT": amount, "STATUS": status}
    fields["CHECKSUMHASH"] = payment_service.generate_checksum(fields, key)
    return fields


class TestChecksum:
    def test_matches_sorted_query_plus_key(self):
        params = {"b": "2", "a": "1", "CHECKSUMHASH": "ignored"}
        expected = hashlib.sha256(b"a=1&b=2secret").hexdigest()
        assert payment_service.generate_checksum(params, "secret") == expected

    def test_verify(self):
        params = {"ORDERID": "t", "STATUS": "TXN_SUCCESS"}
        digest = payment_service.generate_checksum(params, "k")
        assert payment_service.verify_checksum(params, digest, "k")
        assert not payment_service.verify_checksum(params, digest, "other")
        assert not payment_service.verify_checksum(params, None, "k")

    def test_payment_id_format(self):
        assert re.fullmatch(r"TXN_\d{13}_[0-9a-z]{9}", payment_service.generate_payment_id())


class TestInitiate:
    def test_builds_signed_params(self, db_session, order, payment_settings):
        initiation = _initiate(order, load_payment_settings())

        params = initiation.params
        assert initiation.redirect_url == payment_service.GATEWAY_URL_TEST
        assert params["MID"] == "MID0001"
        assert params["ORDER_ID"] == order.token
        assert params["TXN_AMOUNT"] == "3.60"
        assert params["CUST_ID"] == "21CS001"
        assert params["TXN_ID"] == initiation.payment_id
        assert params["CHANNEL_ID"] == "WEB"
        assert params["WEBSITE"] == "WEBSTAGING"
        assert params["INDUSTRY_TYPE_ID"] == "Retail"
        assert params["CALLBACK_URL"] == CALLBACK_URL
        assert params["CHECKSUMHASH"] == payment_service.generate_checksum(params, MERCHANT_KEY)

        stored = db_session.get(Order, order.id)
        assert stored.payment_id == initiation.payment_id
        assert stored.payment_status == "pending"
        assert audit_service.count_entries(action="initiate_payment") == 1

    def test_production_endpoint(self, db_session, order):
        settings = PaymentSettings(payment_enabled=True, merchant_id="M", merchant_key="k", environment="PROD")
        initiation = _initiate(order, settings)
        assert initiation.redirect_url == payment_service.GATEWAY_URL_PROD
        assert initiation.params["WEBSITE"] == "DEFAULT"

    def test_disabled(self, db_session, order):
        with pytest.raises(PaymentDisabled):
            _initiate(order, PaymentSettings(payment_enabled=False, merchant_id="M"))
        assert db_session.get(Order, order.id).payment_id is None

    def test_not_configured(self, db_session, order):
        with pytest.raises(NotConfigured):
            _initiate(order, PaymentSettings(payment_enabled=True, merchant_id=""))

    def test_amount_must_match_stored_price(self, db_session, order, payment_settings):
        with pytest.raises(ValidationError):
            _initiate(order, payment_settings, amount="0.01")
        assert db_session.get(Order, order.id).payment_id is None

    def test_unknown_order(self, db_session, payment_settings):
        with pytest.raises(NotFound):
            payment_service.initiate(
                "missing", "1.00", "21CS001",
                settings=payment_settings, callback_url=CALLBACK_URL, actor="customer:21CS001",
            )

    def test_reinitiate_replaces_payment_id(self, db_session, order, payment_settings):
        first = _initiate(order, payment_settings)
        second = _initiate(order, payment_settings)
        assert first.payment_id != second.payment_id
        assert db_session.get(Order, order.id).payment_id == second.payment_id

    def test_paid_order_cannot_reinitiate(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        payment_service.handle_callback(_callback(order.token, initiation.payment_id), settings=payment_settings)
        with pytest.raises(InvalidState):
            _initiate(order, payment_settings)

    def test_failed_order_can_retry(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        payment_service.handle_callback(
            _callback(order.token, initiation.payment_id, status="TXN_FAILURE"), settings=payment_settings
        )
        retry = _initiate(order, payment_settings)
        stored = db_session.get(Order, order.id)
        assert stored.payment_status == "pending"
        assert stored.payment_id == retry.payment_id


class TestCallback:
    def test_success_marks_paid(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        result = payment_service.handle_callback(_callback(order.token, initiation.payment_id), settings=payment_settings)

        assert result.payment_status == "paid"
        assert result.changed
        assert db_session.get(Order, order.id).payment_status == "paid"

    def test_other_status_marks_failed(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        payment_service.handle_callback(
            _callback(order.token, initiation.payment_id, status="PENDING"), settings=payment_settings
        )
        assert db_session.get(Order, order.id).payment_status == "failed"

    def test_tampered_field_rejected(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        fields = _callback(order.token, initiation.payment_id, status="TXN_FAILURE")
        fields["STATUS"] = "TXN_SUCCESS"

        with pytest.raises(ChecksumMismatch):
            payment_service.handle_callback(fields, settings=payment_settings)
        assert db_session.get(Order, order.id).payment_status == "pending"

    def test_one_character_checksum_change_rejected(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        fields = _callback(order.token, initiation.payment_id)
        digest = fields["CHECKSUMHASH"]
        fields["CHECKSUMHASH"] = ("0" if digest[0] != "0" else "1") + digest[1:]

        with pytest.raises(ChecksumMismatch):
            payment_service.handle_callback(fields, settings=payment_settings)
        assert audit_service.count_entries(action="update_payment_status") == 0

    def test_wrong_key_rejected(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        with pytest.raises(ChecksumMismatch):
            payment_service.handle_callback(
                _callback(order.token, initiation.payment_id, key="guess"), settings=payment_settings
            )

    def test_duplicate_callback_is_noop(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        fields = _callback(order.token, initiation.payment_id)

        first = payment_service.handle_callback(fields, settings=payment_settings)
        second = payment_service.handle_callback(fields, settings=payment_settings)

        assert first.changed
        assert not second.changed
        assert audit_service.count_entries(action="update_payment_status") == 1

    def test_conflicting_outcome_rejected(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        payment_service.handle_callback(_callback(order.token, initiation.payment_id), settings=payment_settings)

        with pytest.raises(PaymentStateConflict):
            payment_service.handle_callback(
                _callback(order.token, initiation.payment_id, status="TXN_FAILURE"), settings=payment_settings
            )
        assert db_session.get(Order, order.id).payment_status == "paid"
        assert audit_service.count_entries(action="update_payment_status") == 1

    def test_stale_payment_id_rejected(self, db_session, order, payment_settings):
        old = _initiate(order, payment_settings)
        _initiate(order, payment_settings)

        with pytest.raises(InvalidState):
            payment_service.handle_callback(_callback(order.token, old.payment_id), settings=payment_settings)
        assert db_session.get(Order, order.id).payment_status == "pending"

    def test_unknown_order(self, db_session, payment_settings):
        with pytest.raises(NotFound):
            payment_service.handle_callback(_callback("missing", "TXN_1_abc"), settings=payment_settings)


class TestVerify:
    def test_verify_by_payment_id(self, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        verification = payment_service.verify(initiation.payment_id)
        assert verification.status == "pending"
        assert verification.amount == Decimal("3.60")
        assert verification.order_token == order.token
        assert verification.to_dict()["amount"] == 3.6

    def test_unknown_payment(self, db_session):
        with pytest.raises(NotFound):
            payment_service.verify("TXN_0_missing")


class TestConcurrentCallbacks:
    def test_success_and_failure_race_settles_once(self, app, db_session, order, payment_settings):
        initiation = _initiate(order, payment_settings)
        token = order.token
        settings = load_payment_settings()
        db_session.commit()

        barrier = threading.Barrier(2)
        outcomes = {}

        def deliver(status):
            with app.app_context():
                barrier.wait()
                try:
                    payment_service.handle_callback(_callback(token, initiation.payment_id, status=status), settings=settings)
                    outcomes[status] = "applied"
                except PaymentStateConflict:
                    outcomes[status] = "conflict"
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=deliver, args=(s,)) for s in ("TXN_SUCCESS", "TXN_FAILURE")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes.values()) == ["applied", "conflict"]

        db_session.expire_all()
        final = db_session.query(Order).filter_by(token=token).one().payment_status
        winner = "TXN_SUCCESS" if final == "paid" else "TXN_FAILURE"
        assert outcomes[winner] == "applied"
        assert audit_service.count_entries(action="update_payment_status") == 1
