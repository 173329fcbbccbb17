"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Payments, exchange rates and audit logs are history.  A payment that is
edited after the fact silently changes a shipment's paid total; an edited
rate silently changes what "latest rate" meant on a past date; an edited
audit row is no audit row at all.  Corrections are always new rows.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update] --> _refuse_*_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _refuse_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable          | Also checked
------------------|-------------------------|---------------------------------
ShipmentPayment   | ALWAYS (from creation)  |
ExchangeRate      | ALWAYS (from creation)  | rate > 0 and <= 1,000,000 on INSERT
AuditLog          | ALWAYS (from creation)  |

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
kernel never issues them against these tables.
"""

from decimal import Decimal, InvalidOperation

from sqlalchemy import event

from shipment_kernel.exceptions import ImmutabilityViolationError, InvalidExchangeRateError
from shipment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

MAX_EXCHANGE_RATE = Decimal("1000000")


def _blocked(target, operation: str, reason: str) -> ImmutabilityViolationError:
    entity_type = type(target).__name__
    entity_id = str(target.id)
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


# =============================================================================
# ShipmentPayment
# =============================================================================


def _refuse_payment_update(mapper, connection, target):
    raise _blocked(
        target,
        "UPDATE",
        "Payments are immutable; record an offsetting payment instead",
    )


def _refuse_payment_delete(mapper, connection, target):
    raise _blocked(target, "DELETE", "Payments cannot be deleted")


# =============================================================================
# AuditLog
# =============================================================================


def _refuse_audit_log_update(mapper, connection, target):
    raise _blocked(target, "UPDATE", "Audit logs are immutable and cannot be modified")


def _refuse_audit_log_delete(mapper, connection, target):
    raise _blocked(target, "DELETE", "Audit logs cannot be deleted")


# =============================================================================
# ExchangeRate
# =============================================================================


def validate_exchange_rate_value(rate_value) -> Decimal:
    """
    Validate that an exchange rate value is positive and sane.

    Returns:
        The rate as a Decimal.

    Raises:
        InvalidExchangeRateError: If rate is missing, not a number, zero,
            negative, or larger than MAX_EXCHANGE_RATE.
    """
    if rate_value is None:
        raise InvalidExchangeRateError(
            rate_value="None",
            reason="Exchange rate cannot be null",
        )

    if not isinstance(rate_value, Decimal):
        if isinstance(rate_value, float):
            raise InvalidExchangeRateError(
                rate_value=repr(rate_value),
                reason="Exchange rate must not be a float",
            )
        try:
            rate_value = Decimal(str(rate_value))
        except InvalidOperation:
            raise InvalidExchangeRateError(
                rate_value=str(rate_value),
                reason="Exchange rate must be a valid number",
            ) from None

    if not rate_value.is_finite():
        raise InvalidExchangeRateError(
            rate_value=str(rate_value),
            reason="Exchange rate must be a valid number",
        )

    if rate_value <= Decimal("0"):
        raise InvalidExchangeRateError(
            rate_value=str(rate_value),
            reason="Exchange rate must be positive (greater than zero)",
        )

    if rate_value > MAX_EXCHANGE_RATE:
        raise InvalidExchangeRateError(
            rate_value=str(rate_value),
            reason="Exchange rate exceeds maximum allowed value (1,000,000)",
        )

    return rate_value


def _check_exchange_rate_insert(mapper, connection, target):
    validate_exchange_rate_value(target.rate)


def _refuse_exchange_rate_update(mapper, connection, target):
    raise _blocked(
        target,
        "UPDATE",
        "Exchange rates are append-only; record a new rate instead",
    )


def _refuse_exchange_rate_delete(mapper, connection, target):
    raise _blocked(target, "DELETE", "Exchange rates cannot be deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from shipment_kernel.models.audit_log import AuditLog
    from shipment_kernel.models.exchange_rate import ExchangeRate
    from shipment_kernel.models.payment import ShipmentPayment

    return [
        (ShipmentPayment, "before_update", _refuse_payment_update),
        (ShipmentPayment, "before_delete", _refuse_payment_delete),
        (AuditLog, "before_update", _refuse_audit_log_update),
        (AuditLog, "before_delete", _refuse_audit_log_delete),
        (ExchangeRate, "before_insert", _check_exchange_rate_insert),
        (ExchangeRate, "before_update", _refuse_exchange_rate_update),
        (ExchangeRate, "before_delete", _refuse_exchange_rate_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call during application initialization, after models are importable and
    before any write.  Safe to call more than once.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to bypass the rules on purpose.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
