"""
Module: shipment_kernel.services.costing_service
Responsibility: The shipment wizard.  Creates shipments, replaces their
    items, records shipping and customs inputs, moves them through their
    lifecycle, and recomputes the cost breakdown after every change.
Architecture position: Kernel > Services.  Transaction owner for one wizard
    step when auto_commit=True (the default); flush-only otherwise.

Invariants enforced:
    - Cost columns are recomputed from items + shipping details on every
      write (aggregate_costs), never patched.
    - balance_egp is re-derived against the new total on every recompute.
    - A recompute never leaves total_paid_egp above final_total_cost_egp
      (TotalBelowPaidError).
    - Status changes follow ALLOWED_TRANSITIONS.
    - Received and archived shipments refuse item, shipping and customs
      edits.
    - Every write locks the shipment row, so costing and settlement on the
      same shipment serialize.

Failure modes:
    - ValidationError, DuplicateShipmentCodeError, SupplierNotFoundError on
      bad input; ShipmentNotFoundError; InvalidStatusTransitionError;
      TotalBelowPaidError; ShipmentHasPaymentsError; ConcurrencyTimeoutError.
    With auto_commit=True every failure rolls the step back.

Audit relevance:
    CREATE on create_shipment, UPDATE on each wizard step and recompute,
    STATUS_CHANGE on every transition, DELETE on delete_shipment.
"""

import time
from datetime import date
from decimal import Decimal
from typing import Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from shipment_kernel.domain.clock import Clock, SystemClock
from shipment_kernel.domain.costing import (
    CostBreakdown,
    ShippingSnapshot,
    aggregate_costs,
    make_item_input,
    make_shipping_snapshot,
)
from shipment_kernel.domain.currency import Currency
from shipment_kernel.domain.dtos import (
    ItemCustomsInput,
    ItemInput,
    ShipmentHeader,
    ShipmentRecord,
    ShippingDetailsInput,
)
from shipment_kernel.domain.settlement import DEFAULT_OVERPAYMENT_EPSILON, derive_totals
from shipment_kernel.exceptions import (
    DuplicateShipmentCodeError,
    InvalidStatusTransitionError,
    ShipmentHasPaymentsError,
    SupplierNotFoundError,
    TotalBelowPaidError,
    ValidationError,
)
from shipment_kernel.logging_config import LogContext, get_logger
from shipment_kernel.models.audit_log import AuditAction
from shipment_kernel.models.shipment import (
    Shipment,
    ShipmentItem,
    ShipmentStatus,
    ShippingDetails,
)
from shipment_kernel.models.supplier import Supplier
from shipment_kernel.selectors.exchange_rate_selector import ExchangeRateSelector
from shipment_kernel.selectors.shipment_selector import to_shipment_record
from shipment_kernel.services.audit_service import AuditService
from shipment_kernel.services.inventory_service import InventoryService, item_cost_inputs
from shipment_kernel.services.payment_repository import PaymentRepository
from shipment_kernel.services.shipment_repository import ShipmentRepository

logger = get_logger("services.costing")

T = TypeVar("T")

ALLOWED_TRANSITIONS: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
    ShipmentStatus.NEW: frozenset({
        ShipmentStatus.AWAITING_SHIPPING,
        ShipmentStatus.READY_FOR_RECEIPT,
        ShipmentStatus.ARCHIVED,
    }),
    ShipmentStatus.AWAITING_SHIPPING: frozenset({
        ShipmentStatus.READY_FOR_RECEIPT,
        ShipmentStatus.ARCHIVED,
    }),
    ShipmentStatus.READY_FOR_RECEIPT: frozenset({
        ShipmentStatus.RECEIVED,
        ShipmentStatus.ARCHIVED,
    }),
    ShipmentStatus.RECEIVED: frozenset({ShipmentStatus.ARCHIVED}),
    ShipmentStatus.ARCHIVED: frozenset(),
}

# Statuses a new shipment may start in
INITIAL_STATUSES = frozenset({ShipmentStatus.NEW, ShipmentStatus.AWAITING_SHIPPING})

# Statuses that freeze items, shipping and customs inputs
LOCKED_STATUSES = frozenset({ShipmentStatus.RECEIVED, ShipmentStatus.ARCHIVED})


def parse_status(value) -> ShipmentStatus:
    try:
        return ShipmentStatus(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(
            f"Invalid status {value!r}; expected one of "
            f"{', '.join(s.value for s in ShipmentStatus)}",
            field="status",
        ) from None


def can_transition(from_status, to_status) -> bool:
    return parse_status(to_status) in ALLOWED_TRANSITIONS[parse_status(from_status)]


class ShipmentCostingService:
    """
    Shipment wizard and cost recomputation.

    Contract:
        Each public method is one wizard step.  It locks the shipment (if
        it exists), applies the change, recomputes the cost breakdown and
        the balance, writes an audit row, and commits when auto_commit=True.

    Non-goals:
        - Does not re-price shipping-time rates from the exchange_rates
          table; those are snapshots.
        - Does not record payments (SettlementService).
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
        self._rates = ExchangeRateSelector(session)
        self._inventory = InventoryService(session)

    # =========================================================================
    # Wizard steps
    # =========================================================================

    def create_shipment(
        self,
        header: ShipmentHeader,
        items: Sequence[ItemInput],
        actor_id: UUID,
    ) -> ShipmentRecord:
        """
        Wizard step 1: create a shipment with its items.

        The purchase cost is priced with the latest RMB->EGP rate until
        shipping details supply the real one.

        Raises:
            ValidationError, DuplicateShipmentCodeError, SupplierNotFoundError.
        """
        return self._run(
            "create_shipment",
            None,
            actor_id,
            lambda: self._do_create(header, items, actor_id),
        )

    def replace_items(
        self,
        shipment_id: UUID,
        items: Sequence[ItemInput],
        actor_id: UUID,
    ) -> ShipmentRecord:
        """Wizard step 1 re-save: replace every item and recompute."""

        def work():
            shipment = self._lock_editable(shipment_id)
            self._apply_items(shipment, items, actor_id)
            self._recompute(shipment, actor_id)
            self._audit_update(shipment, actor_id, "items", item_count=len(items))
            return to_shipment_record(shipment)

        return self._run("replace_items", shipment_id, actor_id, work)

    def save_shipping_details(
        self,
        shipment_id: UUID,
        details: ShippingDetailsInput,
        actor_id: UUID,
    ) -> ShipmentRecord:
        """
        Wizard step 2: commission, shipping area pricing and the rates at
        shipping.  The first save moves new / awaiting_shipping shipments to
        ready_for_receipt.
        """

        def work():
            shipment = self._lock_editable(shipment_id)
            snapshot = make_shipping_snapshot(
                commission_rate_percent=details.commission_rate_percent,
                shipping_area_sqm=details.shipping_area_sqm,
                shipping_cost_per_sqm_usd=details.shipping_cost_per_sqm_usd,
                usd_to_rmb_rate=details.usd_to_rmb_rate,
                rmb_to_egp_rate=details.rmb_to_egp_rate,
            )

            row = shipment.shipping_details
            first_save = row is None
            if first_save:
                row = ShippingDetails(created_by_id=actor_id)
                shipment.shipping_details = row
            row.commission_rate_percent = snapshot.commission_rate_percent
            row.shipping_area_sqm = snapshot.shipping_area_sqm
            row.shipping_cost_per_sqm_usd = snapshot.shipping_cost_per_sqm_usd
            row.usd_to_rmb_rate_at_shipping = snapshot.usd_to_rmb_rate
            row.rmb_to_egp_rate_at_shipping = snapshot.rmb_to_egp_rate
            row.shipping_date = details.shipping_date
            row.updated_by_id = actor_id

            if first_save and parse_status(shipment.status) in INITIAL_STATUSES:
                self._transition(shipment, ShipmentStatus.READY_FOR_RECEIPT, actor_id)

            self._recompute(shipment, actor_id)
            self._audit_update(
                shipment,
                actor_id,
                "shipping_details",
                commission_rate_percent=snapshot.commission_rate_percent,
                usd_to_rmb_rate=snapshot.usd_to_rmb_rate,
                rmb_to_egp_rate=snapshot.rmb_to_egp_rate,
            )
            return to_shipment_record(shipment)

        return self._run("save_shipping_details", shipment_id, actor_id, work)

    def save_customs_costs(
        self,
        shipment_id: UUID,
        per_item_costs: Sequence[ItemCustomsInput],
        actor_id: UUID,
    ) -> ShipmentRecord:
        """Wizard step 3: per-carton customs and takhreeg for existing items."""

        def work():
            shipment = self._lock_editable(shipment_id)
            items_by_id = {item.id: item for item in shipment.items}
            for entry in per_item_costs:
                item = items_by_id.get(entry.item_id)
                if item is None:
                    raise ValidationError(
                        f"Item {entry.item_id} does not belong to shipment "
                        f"{shipment.shipment_code}",
                        field="item_id",
                    )
                cost = make_item_input(
                    item.cartons,
                    item.pieces_per_carton,
                    item.unit_price_rmb,
                    entry.customs_cost_per_carton_egp,
                    entry.takhreeg_cost_per_carton_egp,
                )
                item.customs_cost_per_carton_egp = cost.customs_cost_per_carton_egp
                item.takhreeg_cost_per_carton_egp = cost.takhreeg_cost_per_carton_egp
                item.updated_by_id = actor_id

            self._recompute(shipment, actor_id)
            self._audit_update(
                shipment, actor_id, "customs_costs", item_count=len(per_item_costs)
            )
            return to_shipment_record(shipment)

        return self._run("save_customs_costs", shipment_id, actor_id, work)

    def finalize_shipment(
        self,
        shipment_id: UUID,
        actor_id: UUID,
        movement_date: date | None = None,
    ) -> ShipmentRecord:
        """
        Wizard step 4: mark the shipment received and stock its items in.

        Calling it again on a received shipment changes nothing.
        """

        def work():
            shipment = self._shipments.get_for_update(shipment_id, self._lock_timeout_ms)
            self._receive(shipment, actor_id, movement_date)
            return to_shipment_record(shipment)

        return self._run("finalize_shipment", shipment_id, actor_id, work)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def change_status(
        self,
        shipment_id: UUID,
        new_status,
        actor_id: UUID,
    ) -> ShipmentRecord:
        """
        Move a shipment along ALLOWED_TRANSITIONS.

        Moving to received has the same effect as finalize_shipment.

        Raises:
            ValidationError: unknown status.
            InvalidStatusTransitionError: transition not allowed.
        """
        target = parse_status(new_status)

        def work():
            shipment = self._shipments.get_for_update(shipment_id, self._lock_timeout_ms)
            if target == ShipmentStatus.RECEIVED:
                self._receive(shipment, actor_id, None)
            else:
                self._transition(shipment, target, actor_id)
                self._shipments.save(shipment)
            return to_shipment_record(shipment)

        return self._run("change_status", shipment_id, actor_id, work)

    def archive_shipment(self, shipment_id: UUID, actor_id: UUID) -> ShipmentRecord:
        return self.change_status(shipment_id, ShipmentStatus.ARCHIVED, actor_id)

    def recompute(self, shipment_id: UUID, actor_id: UUID | None = None) -> ShipmentRecord:
        """
        Recompute the cost breakdown and balance from persisted inputs.

        Idempotent: a second call with unchanged inputs writes the same
        values.
        """

        def work():
            shipment = self._shipments.get_for_update(shipment_id, self._lock_timeout_ms)
            self._recompute(shipment, actor_id)
            return to_shipment_record(shipment)

        return self._run("recompute", shipment_id, actor_id, work)

    def delete_shipment(self, shipment_id: UUID, actor_id: UUID) -> None:
        """
        Delete a shipment with its items, shipping details and movements.

        Raises:
            ShipmentHasPaymentsError: payments reference the shipment.
        """

        def work():
            shipment = self._shipments.get_for_update(shipment_id, self._lock_timeout_ms)
            payment_count = self._payments.count_for_shipment(shipment.id)
            if payment_count:
                raise ShipmentHasPaymentsError(str(shipment.id), payment_count)

            self._audit.record(
                user_id=actor_id,
                entity_type="Shipment",
                entity_id=shipment.id,
                action_type=AuditAction.DELETE,
                details={
                    "shipment_code": shipment.shipment_code,
                    "status": shipment.status,
                    "final_total_cost_egp": shipment.final_total_cost_egp,
                },
            )
            self.session.delete(shipment)
            self.session.flush()
            logger.info(
                "shipment_deleted",
                extra={"shipment_code": shipment.shipment_code},
            )

        self._run("delete_shipment", shipment_id, actor_id, work)

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(
        self,
        operation: str,
        shipment_id: UUID | None,
        actor_id: UUID | None,
        work: Callable[[], T],
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
            shipment_id=str(shipment_id) if shipment_id else None,
            operation=operation,
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                result = work()
                if self._auto_commit:
                    self.session.commit()
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise
            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            )
            return result

    def _do_create(
        self,
        header: ShipmentHeader,
        items: Sequence[ItemInput],
        actor_id: UUID,
    ) -> ShipmentRecord:
        code = (header.shipment_code or "").strip()
        name = (header.shipment_name or "").strip()
        if not code:
            raise ValidationError("shipment_code is required", field="shipment_code")
        if not name:
            raise ValidationError("shipment_name is required", field="shipment_name")
        if header.purchase_date is None:
            raise ValidationError("purchase_date is required", field="purchase_date")

        status = ShipmentStatus.NEW if header.status is None else parse_status(header.status)
        if status not in INITIAL_STATUSES:
            raise ValidationError(
                f"A new shipment cannot start as {status.value}", field="status"
            )
        if self._shipments.code_exists(code):
            raise DuplicateShipmentCodeError(code)

        shipment = Shipment(
            shipment_code=code,
            shipment_name=name,
            purchase_date=header.purchase_date,
            status=status.value,
            total_paid_egp=Decimal("0.00"),
            notes=header.notes,
            created_by_id=actor_id,
        )
        self._shipments.save(shipment)
        self._apply_items(shipment, items, actor_id)
        breakdown = self._recompute(shipment, actor_id)

        self._audit.record(
            user_id=actor_id,
            entity_type="Shipment",
            entity_id=shipment.id,
            action_type=AuditAction.CREATE,
            details={
                "shipment_code": code,
                "status": status,
                "item_count": len(items),
                "final_total_cost_egp": breakdown.final_total_cost_egp,
            },
        )
        logger.info(
            "shipment_created",
            extra={"shipment_id": str(shipment.id), "shipment_code": code},
        )
        return to_shipment_record(shipment)

    def _lock_editable(self, shipment_id: UUID) -> Shipment:
        shipment = self._shipments.get_for_update(shipment_id, self._lock_timeout_ms)
        if parse_status(shipment.status) in LOCKED_STATUSES:
            raise ValidationError(
                f"Shipment {shipment.shipment_code} is {parse_status(shipment.status).value} "
                "and can no longer be edited",
                field="status",
            )
        return shipment

    def _apply_items(
        self,
        shipment: Shipment,
        items: Sequence[ItemInput],
        actor_id: UUID,
    ) -> None:
        if not items:
            raise ValidationError("A shipment needs at least one item", field="items")

        rows = []
        for line_no, item in enumerate(items, start=1):
            name = (item.product_name or "").strip()
            if not name:
                raise ValidationError(
                    f"product_name is required (line {line_no})", field="product_name"
                )
            if item.supplier_id is not None and self.session.get(Supplier, item.supplier_id) is None:
                raise SupplierNotFoundError(str(item.supplier_id))
            cost = make_item_input(
                item.cartons,
                item.pieces_per_carton,
                item.unit_price_rmb,
                item.customs_cost_per_carton_egp,
                item.takhreeg_cost_per_carton_egp,
            )
            rows.append(
                ShipmentItem(
                    line_no=line_no,
                    supplier_id=item.supplier_id,
                    product_name=name,
                    product_type=item.product_type,
                    country_of_origin=item.country_of_origin,
                    image_url=item.image_url,
                    cartons=cost.cartons,
                    pieces_per_carton=cost.pieces_per_carton,
                    total_pieces=cost.total_pieces,
                    unit_price_rmb=cost.unit_price_rmb,
                    line_total_rmb=cost.line_total_rmb,
                    customs_cost_per_carton_egp=cost.customs_cost_per_carton_egp,
                    takhreeg_cost_per_carton_egp=cost.takhreeg_cost_per_carton_egp,
                    created_by_id=actor_id,
                )
            )

        # Old rows go first so line numbers are never shared with new ones
        shipment.items.clear()
        self.session.flush()
        shipment.items.extend(rows)
        self.session.flush()

    def _snapshot(self, shipment: Shipment) -> ShippingSnapshot | None:
        row = shipment.shipping_details
        if row is None:
            return None
        return ShippingSnapshot(
            commission_rate_percent=row.commission_rate_percent,
            shipping_area_sqm=row.shipping_area_sqm,
            shipping_cost_per_sqm_usd=row.shipping_cost_per_sqm_usd,
            usd_to_rmb_rate=row.usd_to_rmb_rate_at_shipping,
            rmb_to_egp_rate=row.rmb_to_egp_rate_at_shipping,
        )

    def _recompute(self, shipment: Shipment, actor_id: UUID | None) -> CostBreakdown:
        snapshot = self._snapshot(shipment)
        preliminary = None
        if snapshot is None or not snapshot.rmb_to_egp_rate:
            latest = self._rates.latest(Currency.RMB, Currency.EGP)
            preliminary = latest.rate if latest is not None else None

        breakdown = aggregate_costs(item_cost_inputs(shipment.items), snapshot, preliminary)

        paid = self._payments.sum_and_latest_date(shipment.id)
        if paid.total_paid_egp > breakdown.final_total_cost_egp + self._epsilon:
            raise TotalBelowPaidError(
                str(shipment.id), breakdown.final_total_cost_egp, paid.total_paid_egp
            )

        shipment.purchase_cost_rmb = breakdown.purchase_cost_rmb
        shipment.purchase_cost_egp = breakdown.purchase_cost_egp
        shipment.commission_cost_rmb = breakdown.commission_cost_rmb
        shipment.commission_cost_egp = breakdown.commission_cost_egp
        shipment.shipping_cost_usd = breakdown.shipping_cost_usd
        shipment.shipping_cost_rmb = breakdown.shipping_cost_rmb
        shipment.shipping_cost_egp = breakdown.shipping_cost_egp
        shipment.customs_cost_egp = breakdown.customs_cost_egp
        shipment.takhreeg_cost_egp = breakdown.takhreeg_cost_egp
        shipment.final_total_cost_egp = breakdown.final_total_cost_egp
        shipment.purchase_rate_is_preliminary = breakdown.is_preliminary

        totals = derive_totals(breakdown.final_total_cost_egp, paid.total_paid_egp)
        shipment.total_paid_egp = totals.total_paid_egp
        shipment.balance_egp = totals.balance_egp
        shipment.last_payment_date = paid.last_payment_date
        if actor_id is not None:
            shipment.updated_by_id = actor_id
        self._shipments.save(shipment)

        logger.info(
            "shipment_costs_recomputed",
            extra={
                "shipment_id": str(shipment.id),
                "final_total_cost_egp": str(breakdown.final_total_cost_egp),
                "balance_egp": str(totals.balance_egp),
                "purchase_rate_basis": breakdown.purchase_rate_basis.value,
            },
        )
        return breakdown

    def _transition(self, shipment: Shipment, target: ShipmentStatus, actor_id: UUID) -> None:
        current = parse_status(shipment.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(str(shipment.id), current.value, target.value)
        shipment.status = target.value
        shipment.updated_by_id = actor_id
        self._audit.record(
            user_id=actor_id,
            entity_type="Shipment",
            entity_id=shipment.id,
            action_type=AuditAction.STATUS_CHANGE,
            details={"from_status": current, "to_status": target},
        )
        logger.info(
            "shipment_status_changed",
            extra={
                "shipment_id": str(shipment.id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )

    def _receive(
        self,
        shipment: Shipment,
        actor_id: UUID,
        movement_date: date | None,
    ) -> None:
        if parse_status(shipment.status) != ShipmentStatus.RECEIVED:
            self._transition(shipment, ShipmentStatus.RECEIVED, actor_id)
            self._recompute(shipment, actor_id)
        self._inventory.receive_shipment(
            shipment, movement_date or self._clock.today(), actor_id
        )

    def _audit_update(self, shipment: Shipment, actor_id: UUID, step: str, **details) -> None:
        self._audit.record(
            user_id=actor_id,
            entity_type="Shipment",
            entity_id=shipment.id,
            action_type=AuditAction.UPDATE,
            details={
                "step": step,
                "final_total_cost_egp": shipment.final_total_cost_egp,
                "balance_egp": shipment.balance_egp,
                **details,
            },
        )
