"""
Report Service (``shipment_reports.service``).

Responsibility
--------------
Builds the overview statistics and the accounting reports by loading
shipment, payment and movement DTOs through the kernel selectors and
passing them to the pure functions in ``statements.py``.  Read-only.

Architecture position
---------------------
**Reports layer**, above the kernel.  Constructor: ``session`` + ``clock``.

Invariants enforced
-------------------
* Read-only -- no writes, no commits.
* All monetary amounts use ``Decimal`` -- NEVER ``float``.
* Supplier figures are attributed by purchase-RMB share (see
  ``statements.supplier_weights``).

Failure modes
-------------
* ``ValueError`` for an inverted date range or an unknown filter value.
* ``SupplierNotFoundError`` for a statement on an unknown supplier.
"""

from __future__ import annotations

import time
from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from shipment_kernel.db.types import UNIT_COST_DECIMAL_PLACES, ZERO, round_money
from shipment_kernel.domain.clock import Clock, SystemClock
from shipment_kernel.domain.dtos import PaymentRecord, ShipmentRecord
from shipment_kernel.domain.settlement import (
    PaymentState,
    overpaid_amount,
    remaining_balance,
)
from shipment_kernel.exceptions import SupplierNotFoundError
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.shipment import ShipmentStatus
from shipment_kernel.models.supplier import Supplier
from shipment_kernel.selectors.shipment_selector import ShipmentSelector

from shipment_reports.models import (
    AccountingDashboard,
    BalanceType,
    DashboardStats,
    InventoryStats,
    MovementFilters,
    MovementLine,
    MovementReport,
    MovementType,
    PaymentMethodsReport,
    PaymentMethodSummary,
    PaymentStats,
    ReportFilters,
    ShipmentSummary,
    SupplierBalance,
    SupplierBalanceFilters,
    SupplierStatement,
    SupplierStatementLine,
)
from shipment_reports.statements import (
    classify_balance,
    cost_lines,
    in_range,
    matches_shipment,
    split_by_supplier,
    sum_money,
    supplier_share,
    supplier_weights,
    validate_range,
    with_running_balance,
)

logger = get_logger("reports.service")

RECENT_SHIPMENTS_LIMIT = 5


def _summary(shipment: ShipmentRecord) -> ShipmentSummary:
    return ShipmentSummary(
        id=shipment.id,
        shipment_code=shipment.shipment_code,
        shipment_name=shipment.shipment_name,
        status=shipment.status,
        purchase_date=shipment.purchase_date,
        final_total_cost_egp=shipment.final_total_cost_egp,
        total_paid_egp=shipment.total_paid_egp,
        balance_egp=shipment.balance_egp,
    )


class ReportService:
    """
    Read-only reporting over shipments, payments and inventory.

    Contract
    --------
    * Every public method returns a frozen DTO from ``models.py``.
    * Nothing is written to the database.

    Non-goals
    ---------
    * No caching; every call reads current data.
    * No export formats; callers render the DTOs.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._shipments = ShipmentSelector(session)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _all_shipments(self) -> list[ShipmentRecord]:
        return self._shipments.list_shipments(include_archived=True, include_items=True)

    def _supplier_names(self) -> dict[UUID, str]:
        return {s.id: s.name for s in self._session.scalars(select(Supplier))}

    def _log(self, report: str, t0: float, **extra) -> None:
        logger.info(
            "report_generated",
            extra={
                "report": report,
                "generated_at": self._clock.now(),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                **extra,
            },
        )

    # =========================================================================
    # Overview statistics
    # =========================================================================

    def dashboard_stats(self) -> DashboardStats:
        """Totals over every shipment, including archived ones."""
        t0 = time.monotonic()
        shipments = self._all_shipments()
        completed = sum(1 for s in shipments if s.status == ShipmentStatus.RECEIVED.value)
        stats = DashboardStats(
            total_shipments=len(shipments),
            total_cost_egp=sum_money(s.final_total_cost_egp for s in shipments),
            total_paid_egp=sum_money(s.total_paid_egp for s in shipments),
            total_balance_egp=sum_money(
                remaining_balance(s.final_total_cost_egp, s.total_paid_egp) for s in shipments
            ),
            total_overpaid_egp=sum_money(
                overpaid_amount(s.final_total_cost_egp, s.total_paid_egp) for s in shipments
            ),
            pending_shipments=len(shipments) - completed,
            completed_shipments=completed,
            recent_shipments=tuple(_summary(s) for s in shipments[:RECENT_SHIPMENTS_LIMIT]),
        )
        self._log("dashboard_stats", t0, shipment_count=stats.total_shipments)
        return stats

    def payment_stats(self) -> PaymentStats:
        t0 = time.monotonic()
        shipments = self._all_shipments()
        payments = self._shipments.payments_between()
        stats = PaymentStats(
            payment_count=len(payments),
            total_cost_egp=sum_money(s.final_total_cost_egp for s in shipments),
            total_paid_egp=sum_money(s.total_paid_egp for s in shipments),
            total_balance_egp=sum_money(
                remaining_balance(s.final_total_cost_egp, s.total_paid_egp) for s in shipments
            ),
            total_overpaid_egp=sum_money(
                overpaid_amount(s.final_total_cost_egp, s.total_paid_egp) for s in shipments
            ),
            last_payment=payments[-1] if payments else None,
        )
        self._log("payment_stats", t0, payment_count=stats.payment_count)
        return stats

    def inventory_stats(self) -> InventoryStats:
        t0 = time.monotonic()
        movements = self._shipments.all_movements()
        total_pieces = sum(m.total_pieces_in for m in movements)
        total_cost = sum_money(m.total_cost_egp for m in movements)
        average = (
            round_money(total_cost / total_pieces, UNIT_COST_DECIMAL_PLACES)
            if total_pieces
            else Decimal("0.0000")
        )
        stats = InventoryStats(
            total_pieces=total_pieces,
            total_cost_egp=total_cost,
            total_items=len(movements),
            avg_unit_cost_egp=average,
        )
        self._log("inventory_stats", t0, movement_count=stats.total_items)
        return stats

    # =========================================================================
    # Accounting
    # =========================================================================

    def _filtered_shipments(self, filters: ReportFilters) -> list[ShipmentRecord]:
        validate_range(filters.date_from, filters.date_to)
        return [
            s
            for s in self._all_shipments()
            if in_range(s.purchase_date, filters.date_from, filters.date_to)
            and matches_shipment(
                s,
                shipment_status=filters.shipment_status,
                payment_state=filters.payment_state,
                include_archived=filters.include_archived,
                supplier_id=filters.supplier_id,
            )
        ]

    def accounting_dashboard(self, filters: ReportFilters | None = None) -> AccountingDashboard:
        """Cost components and settlement totals over the filtered shipments.

        With a supplier filter every amount is that supplier's share.
        """
        t0 = time.monotonic()
        filters = filters or ReportFilters()
        shipments = self._filtered_shipments(filters)

        def total(field: str) -> Decimal:
            if filters.supplier_id is None:
                return sum_money(getattr(s, field) for s in shipments)
            return sum_money(
                supplier_share(getattr(s, field), s, filters.supplier_id) for s in shipments
            )

        dashboard = AccountingDashboard(
            shipment_count=len(shipments),
            total_purchase_rmb=total("purchase_cost_rmb"),
            total_purchase_egp=total("purchase_cost_egp"),
            total_commission_rmb=total("commission_cost_rmb"),
            total_commission_egp=total("commission_cost_egp"),
            total_shipping_rmb=total("shipping_cost_rmb"),
            total_shipping_egp=total("shipping_cost_egp"),
            total_customs_egp=total("customs_cost_egp"),
            total_takhreeg_egp=total("takhreeg_cost_egp"),
            total_cost_egp=total("final_total_cost_egp"),
            total_paid_egp=total("total_paid_egp"),
            total_balance_egp=total("balance_egp"),
            unsettled_shipments_count=sum(
                1 for s in shipments if s.payment_state != PaymentState.SETTLED
            ),
        )
        self._log("accounting_dashboard", t0, shipment_count=dashboard.shipment_count)
        return dashboard

    def supplier_balances(
        self,
        filters: SupplierBalanceFilters | None = None,
    ) -> list[SupplierBalance]:
        """Per-supplier cost, paid and balance, by supplier name.

        Cost counts shipments purchased in the date range; paid counts
        payments made in it.
        """
        t0 = time.monotonic()
        filters = filters or SupplierBalanceFilters()
        validate_range(filters.date_from, filters.date_to)
        names = self._supplier_names()
        shipments = self._all_shipments()
        by_id = {s.id: s for s in shipments}

        cost: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        paid: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for shipment in shipments:
            if not in_range(shipment.purchase_date, filters.date_from, filters.date_to):
                continue
            weights = supplier_weights(shipment.items)
            for supplier_id, share in split_by_supplier(
                shipment.final_total_cost_egp, weights
            ).items():
                if supplier_id is not None:
                    cost[supplier_id] += share
        for payment in self._shipments.payments_between(filters.date_from, filters.date_to):
            weights = supplier_weights(by_id[payment.shipment_id].items)
            for supplier_id, share in split_by_supplier(payment.amount_egp, weights).items():
                if supplier_id is not None:
                    paid[supplier_id] += share

        balances = []
        for supplier_id in set(cost) | set(paid):
            if filters.supplier_id is not None and supplier_id != filters.supplier_id:
                continue
            balance = round_money(cost[supplier_id] - paid[supplier_id])
            balance_type = classify_balance(balance)
            if filters.balance_type is not None and balance_type != BalanceType(filters.balance_type):
                continue
            balances.append(
                SupplierBalance(
                    supplier_id=supplier_id,
                    supplier_name=names.get(supplier_id, str(supplier_id)),
                    total_cost_egp=round_money(cost[supplier_id]),
                    total_paid_egp=round_money(paid[supplier_id]),
                    balance_egp=balance,
                    balance_type=balance_type,
                )
            )
        balances.sort(key=lambda b: b.supplier_name)
        self._log("supplier_balances", t0, supplier_count=len(balances))
        return balances

    def supplier_statement(
        self,
        supplier_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> SupplierStatement:
        """Chronological cost and payment lines for one supplier.

        Activity before date_from is folded into the opening balance.
        """
        t0 = time.monotonic()
        validate_range(date_from, date_to)
        supplier = self._session.get(Supplier, supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(str(supplier_id))

        shipments = {s.id: s for s in self._all_shipments()}
        entries: list[SupplierStatementLine] = []
        for shipment in shipments.values():
            share = supplier_share(shipment.final_total_cost_egp, shipment, supplier_id)
            if share:
                entries.append(
                    SupplierStatementLine(
                        entry_date=shipment.purchase_date,
                        line_type=MovementType.SHIPMENT_COST,
                        shipment_id=shipment.id,
                        shipment_code=shipment.shipment_code,
                        description=f"Shipment {shipment.shipment_code}: {shipment.shipment_name}",
                        cost_egp=share,
                        paid_egp=ZERO,
                        running_balance_egp=ZERO,
                    )
                )
        for payment in self._shipments.payments_between(date_to=date_to):
            shipment = shipments[payment.shipment_id]
            share = supplier_share(payment.amount_egp, shipment, supplier_id)
            if share:
                entries.append(
                    SupplierStatementLine(
                        entry_date=payment.payment_date,
                        line_type=MovementType.PAYMENT,
                        shipment_id=shipment.id,
                        shipment_code=shipment.shipment_code,
                        description=f"Payment on {shipment.shipment_code} ({payment.payment_currency})",
                        cost_egp=ZERO,
                        paid_egp=share,
                        running_balance_egp=ZERO,
                        payment_method=payment.payment_method,
                    )
                )

        earlier = [e for e in entries if date_from is not None and e.entry_date < date_from]
        opening = sum_money(e.cost_egp - e.paid_egp for e in earlier)
        current = [e for e in entries if in_range(e.entry_date, date_from, date_to)]
        lines = with_running_balance(current, opening)

        total_cost = sum_money(line.cost_egp for line in lines)
        total_paid = sum_money(line.paid_egp for line in lines)
        statement = SupplierStatement(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            date_from=date_from,
            date_to=date_to,
            opening_balance_egp=opening,
            lines=tuple(lines),
            total_cost_egp=total_cost,
            total_paid_egp=total_paid,
            closing_balance_egp=round_money(opening + total_cost - total_paid),
        )
        self._log("supplier_statement", t0, supplier_id=str(supplier_id), line_count=len(lines))
        return statement

    def movement_report(self, filters: MovementFilters | None = None) -> MovementReport:
        """Ledger of shipment cost lines (one per component) and payments."""
        t0 = time.monotonic()
        filters = filters or MovementFilters()
        validate_range(filters.date_from, filters.date_to)
        movement_type = MovementType(filters.movement_type) if filters.movement_type else None

        shipments = {
            s.id: s
            for s in self._all_shipments()
            if (filters.shipment_id is None or s.id == filters.shipment_id)
            and matches_shipment(
                s,
                shipment_status=filters.shipment_status,
                payment_state=filters.payment_state,
                include_archived=filters.include_archived,
                supplier_id=filters.supplier_id,
            )
        }

        def attributed(amount: Decimal, shipment: ShipmentRecord) -> Decimal:
            if filters.supplier_id is None:
                return amount
            return supplier_share(amount, shipment, filters.supplier_id)

        lines: list[MovementLine] = []
        if movement_type in (None, MovementType.SHIPMENT_COST) and filters.payment_method is None:
            for shipment in shipments.values():
                if not in_range(shipment.purchase_date, filters.date_from, filters.date_to):
                    continue
                for component, amount in cost_lines(shipment):
                    if filters.cost_component is not None and component != filters.cost_component:
                        continue
                    lines.append(
                        MovementLine(
                            movement_date=shipment.purchase_date,
                            movement_type=MovementType.SHIPMENT_COST,
                            shipment_id=shipment.id,
                            shipment_code=shipment.shipment_code,
                            cost_component=component,
                            amount_egp=attributed(amount, shipment),
                        )
                    )
        if movement_type in (None, MovementType.PAYMENT):
            for payment in self._shipments.payments_between(filters.date_from, filters.date_to):
                shipment = shipments.get(payment.shipment_id)
                if shipment is None or not self._payment_matches(payment, filters):
                    continue
                lines.append(
                    MovementLine(
                        movement_date=payment.payment_date,
                        movement_type=MovementType.PAYMENT,
                        shipment_id=shipment.id,
                        shipment_code=shipment.shipment_code,
                        cost_component=payment.cost_component,
                        amount_egp=attributed(payment.amount_egp, shipment),
                        payment_id=payment.id,
                        payment_currency=payment.payment_currency,
                        amount_original=payment.amount_original,
                        payment_method=payment.payment_method,
                    )
                )

        lines.sort(
            key=lambda line: (
                line.movement_date,
                line.shipment_code,
                0 if line.movement_type == MovementType.SHIPMENT_COST else 1,
            )
        )
        total_cost = sum_money(
            line.amount_egp for line in lines if line.movement_type == MovementType.SHIPMENT_COST
        )
        total_paid = sum_money(
            line.amount_egp for line in lines if line.movement_type == MovementType.PAYMENT
        )
        report = MovementReport(
            lines=tuple(lines),
            total_cost_egp=total_cost,
            total_paid_egp=total_paid,
            net_balance_egp=round_money(total_cost - total_paid),
        )
        self._log("movement_report", t0, line_count=len(lines))
        return report

    @staticmethod
    def _payment_matches(payment: PaymentRecord, filters: MovementFilters) -> bool:
        if filters.cost_component is not None and payment.cost_component != filters.cost_component:
            return False
        if filters.payment_method is not None and payment.payment_method != filters.payment_method:
            return False
        return True

    def payment_methods_report(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> PaymentMethodsReport:
        """Count and EGP total per payment method, largest total first."""
        t0 = time.monotonic()
        validate_range(date_from, date_to)
        payments = self._shipments.payments_between(date_from, date_to)

        counts: dict[str, int] = defaultdict(int)
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for payment in payments:
            counts[payment.payment_method] += 1
            totals[payment.payment_method] += payment.amount_egp

        methods = sorted(
            (
                PaymentMethodSummary(
                    payment_method=method,
                    payment_count=counts[method],
                    total_amount_egp=round_money(totals[method]),
                )
                for method in counts
            ),
            key=lambda m: (-m.total_amount_egp, m.payment_method),
        )
        report = PaymentMethodsReport(
            date_from=date_from,
            date_to=date_to,
            methods=tuple(methods),
            total_count=len(payments),
            total_amount_egp=sum_money(p.amount_egp for p in payments),
        )
        self._log("payment_methods_report", t0, payment_count=report.total_count)
        return report
