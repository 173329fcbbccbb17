"""
Typed Exception Hierarchy for the Shipment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the settlement and costing services must react to failures
precisely: an overpayment needs the remaining balance to show the correct
ceiling, a lock timeout is safe to retry, a missing shipment is a 404.
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

    try:
        settlement.record_payment(shipment_id, payment, actor_id)
    except OverpaymentError as e:
        api_response(code=e.code, remaining=str(e.remaining_egp))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ShipmentKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidStatusTransitionError
    |   +-- DuplicateShipmentCodeError
    |
    +-- NotFoundError
    |   +-- ShipmentNotFoundError
    |   +-- SupplierNotFoundError
    |
    +-- SettlementError
    |   +-- OverpaymentError
    |   +-- ShipmentHasPaymentsError
    |   +-- TotalBelowPaidError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyTimeoutError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ExchangeRateError
        +-- InvalidExchangeRateError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed or missing input
                | INVALID_STATUS_TRANSITION   | Status change not on the allowed graph
                | DUPLICATE_SHIPMENT_CODE     | shipment_code already used
----------------|-----------------------------|-----------------------------------------
Not found       | SHIPMENT_NOT_FOUND          | Shipment ID doesn't exist
                | SUPPLIER_NOT_FOUND          | Supplier ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Settlement      | OVERPAYMENT                 | Payment exceeds remaining balance
                | SHIPMENT_HAS_PAYMENTS       | Delete refused, payments reference it
                | TOTAL_BELOW_PAID            | Recomputed cost below amount already paid
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_TIMEOUT         | Row lock not acquired in time (retryable)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
----------------|-----------------------------|-----------------------------------------
Exchange Rate   | INVALID_EXCHANGE_RATE       | Rate is zero/negative/invalid

None of these are retried by the kernel. ConcurrencyTimeoutError is the only
one a caller may safely retry unchanged.
"""


class ShipmentKernelError(Exception):
    """
    Base exception for all shipment kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SHIPMENT_KERNEL_ERROR"


# Validation exceptions


class ValidationError(ShipmentKernelError):
    """Input is malformed or a required field is missing."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidStatusTransitionError(ValidationError):
    """Requested shipment status change is not allowed."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, shipment_id: str, from_status: str, to_status: str):
        self.shipment_id = shipment_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Shipment {shipment_id} cannot move from {from_status} to {to_status}",
            field="status",
        )


class DuplicateShipmentCodeError(ValidationError):
    """A shipment with this code already exists."""

    code: str = "DUPLICATE_SHIPMENT_CODE"

    def __init__(self, shipment_code: str):
        self.shipment_code = shipment_code
        super().__init__(
            f"Shipment code {shipment_code!r} is already in use",
            field="shipment_code",
        )


# Lookup exceptions


class NotFoundError(ShipmentKernelError):
    """Base exception for a referenced entity that does not exist."""

    code: str = "NOT_FOUND"


class ShipmentNotFoundError(NotFoundError):
    """Shipment ID does not exist."""

    code: str = "SHIPMENT_NOT_FOUND"

    def __init__(self, shipment_id: str):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


class SupplierNotFoundError(NotFoundError):
    """Supplier ID does not exist."""

    code: str = "SUPPLIER_NOT_FOUND"

    def __init__(self, supplier_id: str):
        self.supplier_id = supplier_id
        super().__init__(f"Supplier not found: {supplier_id}")


# Settlement exceptions


class SettlementError(ShipmentKernelError):
    """Base exception for payment settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class OverpaymentError(SettlementError):
    """
    Payment would drive the shipment balance below zero.

    Carries the remaining balance so the caller can show the real ceiling.
    """

    code: str = "OVERPAYMENT"

    def __init__(self, shipment_id: str, remaining_egp, attempted_egp):
        self.shipment_id = shipment_id
        self.remaining_egp = remaining_egp
        self.attempted_egp = attempted_egp
        super().__init__(
            f"Payment of {attempted_egp} EGP exceeds remaining balance "
            f"{remaining_egp} EGP on shipment {shipment_id}"
        )


class ShipmentHasPaymentsError(SettlementError):
    """Shipment cannot be deleted while payments reference it."""

    code: str = "SHIPMENT_HAS_PAYMENTS"

    def __init__(self, shipment_id: str, payment_count: int):
        self.shipment_id = shipment_id
        self.payment_count = payment_count
        super().__init__(
            f"Shipment {shipment_id} has {payment_count} payment(s) and cannot be deleted"
        )


class TotalBelowPaidError(SettlementError):
    """
    A cost change would put the shipment total below what is already paid.

    The balance is clamped at zero, so accepting the change would hide an
    overpayment instead of refusing it.
    """

    code: str = "TOTAL_BELOW_PAID"

    def __init__(self, shipment_id: str, final_total_cost_egp, total_paid_egp):
        self.shipment_id = shipment_id
        self.final_total_cost_egp = final_total_cost_egp
        self.total_paid_egp = total_paid_egp
        super().__init__(
            f"Shipment {shipment_id} total {final_total_cost_egp} EGP would fall "
            f"below the {total_paid_egp} EGP already paid"
        )


# Concurrency-related exceptions


class ConcurrencyError(ShipmentKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyTimeoutError(ConcurrencyError):
    """
    Row lock could not be acquired within the configured wait.

    Transient: nothing was written, and the operation is safe to retry.
    """

    code: str = "CONCURRENCY_TIMEOUT"

    def __init__(self, entity_type: str, entity_id: str, timeout_ms: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timed out waiting for lock on {entity_type} {entity_id}"
            + (f" after {timeout_ms}ms" if timeout_ms is not None else "")
        )


# Immutability-related exceptions


class ImmutabilityError(ShipmentKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    ShipmentPayment, ExchangeRate and AuditLog rows are immutable once written.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Exchange-rate exceptions


class ExchangeRateError(ShipmentKernelError):
    """Base exception for exchange rate errors."""

    code: str = "EXCHANGE_RATE_ERROR"


class InvalidExchangeRateError(ExchangeRateError):
    """
    Exchange rate value is invalid (zero, negative, or not a number).

    A rate of zero makes conversion undefined and negative rates are
    meaningless.
    """

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate_value: str, reason: str):
        self.rate_value = rate_value
        self.reason = reason
        super().__init__(
            f"Invalid exchange rate value {rate_value}: {reason}"
        )
