"""
Module: shipment_kernel.services.settlement_service
Responsibility: Applies payments to shipments.  Locks the shipment,
    normalizes the payment to EGP, refuses overpayment, appends the payment
    and re-derives total paid, balance and last payment date from the full
    payment history.
Architecture position: Kernel > Services.  Transaction owner for one
    settlement when auto_commit=True (the default); flush-only when a caller
    composes it into a larger transaction (auto_commit=False).

Invariants enforced:
    - No overdraw: amount_egp <= max(0, final - paid) + epsilon, checked
      under the shipment row lock, so two concurrent payments can never both
      pass against the same remaining balance.
    - total_paid_egp == SUM(amount_egp) over persisted payments (re-derived,
      never incremented).
    - balance_egp == max(0, final_total_cost_egp - total_paid_egp).
    - last_payment_date == MAX(payment_date), so backdated payments do not
      move it forward.

Failure modes:
    - ShipmentNotFoundError before any write.
    - ValidationError from the currency normalizer or for archived shipments.
    - OverpaymentError with the remaining balance.
    - ConcurrencyTimeoutError if the row lock is not granted in time.
    Every failure rolls the whole settlement back (auto_commit=True): no
    payment row is left and the shipment row is unchanged.  Nothing is
    retried here.

Audit relevance:
    Each successful settlement appends a CREATE audit row for the payment.
    The audit write cannot undo the settlement (see AuditService).
"""

import time
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from shipment_kernel.domain.clock import Clock, SystemClock
from shipment_kernel.domain.currency import normalize_payment
from shipment_kernel.domain.dtos import (
    PaymentInput,
    PaymentRecord,
    PaymentResult,
    ReconciliationResult,
)
from shipment_kernel.domain.settlement import (
    DEFAULT_OVERPAYMENT_EPSILON,
    PaymentState,
    check_payment_fits,
    derive_totals,
    payment_state,
)
from shipment_kernel.exceptions import OverpaymentError, ValidationError
from shipment_kernel.logging_config import LogContext, get_logger
from shipment_kernel.models.audit_log import AuditAction
from shipment_kernel.models.payment import CostComponent, PaymentMethod, ShipmentPayment
from shipment_kernel.selectors.shipment_selector import to_payment_record
from shipment_kernel.services.audit_service import AuditService
from shipment_kernel.services.payment_repository import PaymentRepository
from shipment_kernel.services.shipment_repository import ShipmentRepository

logger = get_logger("services.settlement")


def _parse_enum(enum_cls, value, field: str):
    try:
        return enum_cls(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(
            f"Invalid {field} {value!r}; expected one of "
            f"{', '.join(m.value for m in enum_cls)}",
            field=field,
        ) from None


class SettlementService:
    """
    Payment settlement engine.

    Contract:
        record_payment() is the only way a ShipmentPayment row is created.
        One call = one transaction (auto_commit=True): lock, normalize,
        check, insert, re-derive, commit.

    Guarantees:
        - On success the payment and the shipment's new totals are
          committed together.
        - On failure nothing is written.

    Non-goals:
        - Not idempotent: submitting the same payment twice records it twice.
        - No automatic retry of ConcurrencyTimeoutError.
        - Does NOT enforce per-component balances; cost_component is a tag.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        overpayment_epsilon: Decimal = DEFAULT_OVERPAYMENT_EPSILON,
        lock_timeout_ms: int | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._epsilon = overpayment_epsilon
        self._lock_timeout_ms = lock_timeout_ms
        self._auto_commit = auto_commit
        self._shipments = ShipmentRepository(session)
        self._payments = PaymentRepository(session)

    def record_payment(
        self,
        shipment_id: UUID,
        payment: PaymentInput,
        actor_id: UUID,
    ) -> PaymentResult:
        """
        Apply one payment to a shipment.

        Preconditions:
            - The caller is authorized to record payments.
            - ``payment.amount_original`` is a Decimal or numeric string.
        Postconditions:
            - See module invariants.

        Raises:
            ShipmentNotFoundError, ValidationError, OverpaymentError,
            ConcurrencyTimeoutError.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            shipment_id=str(shipment_id),
            operation="record_payment",
        ):
            logger.info(
                "payment_started",
                extra={
                    "payment_currency": payment.payment_currency,
                    "amount_original": str(payment.amount_original),
                },
            )
            t0 = time.monotonic()
            try:
                result = self._do_record_payment(shipment_id, payment, actor_id)
                if self._auto_commit:
                    self.session.commit()
            except OverpaymentError as exc:
                if self._auto_commit:
                    self.session.rollback()
                logger.warning(
                    "payment_rejected_overpayment",
                    extra={
                        "remaining_egp": str(exc.remaining_egp),
                        "attempted_egp": str(exc.attempted_egp),
                    },
                )
                raise
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "payment_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(result.payment.id),
                    "amount_egp": str(result.payment.amount_egp),
                    "total_paid_egp": str(result.total_paid_egp),
                    "balance_egp": str(result.balance_egp),
                    "payment_state": result.payment_state.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _do_record_payment(
        self,
        shipment_id: UUID,
        payment: PaymentInput,
        actor_id: UUID,
    ) -> PaymentResult:
        if payment.payment_date is None:
            raise ValidationError("payment_date is required", field="payment_date")
        cost_component = _parse_enum(CostComponent, payment.cost_component, "cost_component")
        payment_method = _parse_enum(PaymentMethod, payment.payment_method, "payment_method")

        shipment = self._shipments.get_for_update(shipment_id, self._lock_timeout_ms)
        if shipment.is_archived:
            raise ValidationError(
                f"Shipment {shipment.shipment_code} is archived and cannot take payments",
                field="shipment_id",
            )

        normalized = normalize_payment(
            payment.payment_currency,
            payment.amount_original,
            payment.exchange_rate_to_egp,
        )

        # Re-derive the paid side before checking: the stored column is a
        # cache of the payments table, the table is the truth.
        before = self._payments.sum_and_latest_date(shipment.id)
        remaining_before = check_payment_fits(
            shipment.id,
            shipment.final_total_cost_egp,
            before.total_paid_egp,
            normalized.amount_egp,
            self._epsilon,
        )

        row = ShipmentPayment(
            shipment_id=shipment.id,
            payment_date=payment.payment_date,
            payment_currency=normalized.currency.value,
            amount_original=normalized.amount_original,
            exchange_rate_to_egp=normalized.exchange_rate_to_egp,
            amount_egp=normalized.amount_egp,
            cost_component=cost_component.value,
            payment_method=payment_method.value,
            receiver_name=payment.receiver_name,
            reference_number=payment.reference_number,
            note=payment.note,
            attachment_url=payment.attachment_url,
            created_by_id=actor_id,
        )
        self._payments.insert(row)

        after = self._payments.sum_and_latest_date(shipment.id)
        totals = derive_totals(shipment.final_total_cost_egp, after.total_paid_egp)
        shipment.total_paid_egp = totals.total_paid_egp
        shipment.balance_egp = totals.balance_egp
        shipment.last_payment_date = after.last_payment_date
        shipment.updated_by_id = actor_id
        self._shipments.save(shipment)

        self._audit.record(
            user_id=actor_id,
            entity_type="ShipmentPayment",
            entity_id=row.id,
            action_type=AuditAction.CREATE,
            details={
                "shipment_id": shipment.id,
                "payment_currency": row.payment_currency,
                "amount_original": row.amount_original,
                "exchange_rate_to_egp": row.exchange_rate_to_egp,
                "amount_egp": row.amount_egp,
                "payment_method": row.payment_method,
                "balance_egp_after": totals.balance_egp,
            },
        )

        return PaymentResult(
            payment=to_payment_record(row),
            remaining_before_egp=remaining_before,
            total_paid_egp=totals.total_paid_egp,
            balance_egp=totals.balance_egp,
            last_payment_date=after.last_payment_date,
            payment_state=totals.state,
        )

    def list_payments(self, shipment_id: UUID) -> list[PaymentRecord]:
        """A shipment's payments, oldest first."""
        shipment = self._shipments.get(shipment_id)
        return [to_payment_record(p) for p in self._payments.list_for_shipment(shipment.id)]

    def payment_state(self, shipment_id: UUID) -> PaymentState:
        shipment = self._shipments.get(shipment_id)
        return payment_state(shipment.final_total_cost_egp, shipment.total_paid_egp)

    def verify_shipment_totals(self, shipment_id: UUID) -> ReconciliationResult:
        """Compare a shipment's stored paid-side columns with the payments table."""
        shipment = self._shipments.get(shipment_id)
        derived = self._payments.sum_and_latest_date(shipment.id)
        totals = derive_totals(shipment.final_total_cost_egp, derived.total_paid_egp)
        result = ReconciliationResult(
            shipment_id=shipment.id,
            stored_total_paid_egp=shipment.total_paid_egp,
            derived_total_paid_egp=totals.total_paid_egp,
            stored_balance_egp=shipment.balance_egp,
            derived_balance_egp=totals.balance_egp,
            stored_last_payment_date=shipment.last_payment_date,
            derived_last_payment_date=derived.last_payment_date,
        )
        if not result.is_consistent:
            logger.error(
                "shipment_totals_inconsistent",
                extra={
                    "shipment_id": str(shipment.id),
                    "stored_total_paid_egp": str(result.stored_total_paid_egp),
                    "derived_total_paid_egp": str(result.derived_total_paid_egp),
                },
            )
        return result
