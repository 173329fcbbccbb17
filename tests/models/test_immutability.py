"""
Tests for ORM-level immutability of payments, exchange rates and audit logs.

Covers:
- before_update / before_delete refusals on every protected model
- ExchangeRate value check on insert
- validate_exchange_rate_value, pure
"""

from datetime import date, datetime, UTC
from decimal import Decimal

import pytest

from shipment_kernel.db.immutability import validate_exchange_rate_value
from shipment_kernel.domain.dtos import PaymentInput
from shipment_kernel.exceptions import ImmutabilityViolationError, InvalidExchangeRateError
from shipment_kernel.models.audit_log import AuditAction, AuditLog
from shipment_kernel.models.exchange_rate import ExchangeRate
from shipment_kernel.models.payment import ShipmentPayment
from shipment_kernel.services.audit_service import AuditService
from shipment_kernel.services.exchange_rate_service import ExchangeRateService


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def payment(session, settlement, create_shipment_with_total, test_actor_id):
    shipment = create_shipment_with_total(Decimal("500.00"))
    result = settlement.record_payment(
        shipment.id, PaymentInput("EGP", Decimal("100"), date(2024, 2, 10)), test_actor_id
    )
    return session.get(ShipmentPayment, result.payment.id)


@pytest.fixture
def rate(session, clock, test_actor_id):
    record = ExchangeRateService(session, clock=clock).create_rate(
        "RMB", "EGP", Decimal("7.1"), test_actor_id
    )
    return session.get(ExchangeRate, record.id)


@pytest.fixture
def audit_entry(session, clock, test_actor_id):
    return AuditService(session, clock).record(
        test_actor_id, "Shipment", "s-1", AuditAction.CREATE, {"code": "SHP-1"}
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class TestPaymentImmutability:

    def test_update_refused(self, session, payment):
        # the refused flush leaves the session unusable, so read the id first
        payment_id = str(payment.id)
        payment.amount_egp = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ShipmentPayment"
        assert exc_info.value.entity_id == payment_id

    def test_delete_refused(self, session, payment):
        session.delete(payment)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_refusal_logged(self, session, payment, captured_logs):
        payment.note = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "UPDATE"
        assert blocked[0]["level"] == "ERROR"


# ---------------------------------------------------------------------------
# Exchange rates
# ---------------------------------------------------------------------------


class TestExchangeRateImmutability:

    def test_update_refused(self, session, rate):
        rate.rate = Decimal("8.0000")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_refused(self, session, rate):
        session.delete(rate)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_invalid_insert_refused(self, session, test_actor_id):
        session.add(
            ExchangeRate(
                rate_date=date(2024, 3, 1),
                effective_at=datetime(2024, 3, 1, tzinfo=UTC),
                from_currency="RMB",
                to_currency="EGP",
                rate=Decimal("0"),
                source="manual",
                created_by_id=test_actor_id,
            )
        )
        with pytest.raises(InvalidExchangeRateError):
            session.flush()


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class TestAuditLogImmutability:

    def test_update_refused(self, session, audit_entry):
        audit_entry.action_type = "DELETE"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_refused(self, session, audit_entry):
        session.delete(session.get(AuditLog, audit_entry.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


# ---------------------------------------------------------------------------
# validate_exchange_rate_value
# ---------------------------------------------------------------------------


class TestValidateExchangeRateValue:

    @pytest.mark.parametrize("value,expected", [
        (Decimal("7.15"), Decimal("7.15")),
        ("48.5", Decimal("48.5")),
        (3, Decimal("3")),
        (Decimal("1000000"), Decimal("1000000")),
    ])
    def test_accepted(self, value, expected):
        assert validate_exchange_rate_value(value) == expected

    @pytest.mark.parametrize("value", [
        None,
        7.15,
        "seven",
        Decimal("NaN"),
        Decimal("Infinity"),
        Decimal("0"),
        Decimal("-1"),
        Decimal("1000000.0001"),
    ])
    def test_refused(self, value):
        with pytest.raises(InvalidExchangeRateError):
            validate_exchange_rate_value(value)
