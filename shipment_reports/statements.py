"""
Report Statements (``shipment_reports.statements``).

Responsibility
--------------
Pure functions behind the reports: shipment filtering, supplier
attribution, cost-line breakdown and running balances.  ``ReportService``
loads DTOs through the kernel selectors and hands them here.

Architecture position
---------------------
**Reports layer** -- pure functional core, zero I/O.

Invariants enforced
-------------------
* Supplier shares of an amount sum exactly to the amount (2dp allocation,
  residue on the last supplier).
* A shipment's amounts are attributed by each supplier's share of the
  shipment's purchase RMB; equally when the purchase RMB is zero.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from shipment_kernel.db.types import ZERO, round_money
from shipment_kernel.domain.costing import allocate
from shipment_kernel.domain.dtos import ShipmentItemRecord, ShipmentRecord
from shipment_kernel.domain.settlement import PaymentState
from shipment_kernel.models.payment import CostComponent
from shipment_kernel.models.shipment import ShipmentStatus

from shipment_reports.models import BalanceType, MovementType, SupplierStatementLine


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return round_money(sum(values, ZERO))


def in_range(value: date, date_from: date | None, date_to: date | None) -> bool:
    if date_from is not None and value < date_from:
        return False
    if date_to is not None and value > date_to:
        return False
    return True


def validate_range(date_from: date | None, date_to: date | None) -> None:
    if date_from is not None and date_to is not None and date_to < date_from:
        raise ValueError(f"date_to {date_to} is before date_from {date_from}")


def classify_balance(balance_egp: Decimal) -> BalanceType:
    if balance_egp > 0:
        return BalanceType.OWING
    if balance_egp < 0:
        return BalanceType.CREDIT
    return BalanceType.SETTLED


def supplier_weights(
    items: Sequence[ShipmentItemRecord],
) -> list[tuple[UUID | None, Decimal]]:
    """Purchase RMB per supplier, in order of each supplier's first line.

    Items without a supplier are grouped under None.
    """
    weights: dict[UUID | None, Decimal] = {}
    for item in sorted(items, key=lambda i: i.line_no):
        weights[item.supplier_id] = weights.get(item.supplier_id, ZERO) + item.line_total_rmb
    return list(weights.items())


def split_by_supplier(
    amount: Decimal,
    weights: Sequence[tuple[UUID | None, Decimal]],
) -> dict[UUID | None, Decimal]:
    if not weights:
        return {}
    shares = allocate(amount, [w for _, w in weights])
    return {supplier_id: share for (supplier_id, _), share in zip(weights, shares)}


def supplier_share(
    amount: Decimal,
    shipment: ShipmentRecord,
    supplier_id: UUID,
) -> Decimal:
    """The part of a shipment-level amount attributed to one supplier."""
    return split_by_supplier(amount, supplier_weights(shipment.items)).get(supplier_id, ZERO)


def has_supplier(shipment: ShipmentRecord, supplier_id: UUID) -> bool:
    return any(item.supplier_id == supplier_id for item in shipment.items)


def matches_shipment(
    shipment: ShipmentRecord,
    *,
    shipment_status: str | None = None,
    payment_state: str | None = None,
    include_archived: bool = False,
    supplier_id: UUID | None = None,
) -> bool:
    """Status, payment state, archive and supplier filters; dates are separate."""
    status = ShipmentStatus(shipment.status)
    if shipment_status is not None:
        if status != ShipmentStatus(shipment_status):
            return False
    elif not include_archived and status == ShipmentStatus.ARCHIVED:
        return False
    if payment_state is not None and shipment.payment_state != PaymentState(payment_state):
        return False
    if supplier_id is not None and not has_supplier(shipment, supplier_id):
        return False
    return True


def cost_lines(shipment: ShipmentRecord) -> list[tuple[str, Decimal]]:
    """A shipment's EGP cost by payment cost component, zero lines dropped.

    Commission is part of the goods cost; customs and takhreeg are booked
    together.
    """
    lines = [
        (
            CostComponent.GOODS.value,
            shipment.purchase_cost_egp + shipment.commission_cost_egp,
        ),
        (CostComponent.SHIPPING.value, shipment.shipping_cost_egp),
        (
            CostComponent.CUSTOMS_TAKHREEG.value,
            shipment.customs_cost_egp + shipment.takhreeg_cost_egp,
        ),
    ]
    return [(component, round_money(amount)) for component, amount in lines if amount]


def with_running_balance(
    lines: Sequence[SupplierStatementLine],
    opening_balance_egp: Decimal,
) -> list[SupplierStatementLine]:
    """Recompute running_balance_egp over chronologically sorted lines.

    Cost lines sort before payment lines on the same date.
    """
    ordered = sorted(
        lines,
        key=lambda line: (
            line.entry_date,
            0 if line.line_type == MovementType.SHIPMENT_COST else 1,
            line.shipment_code,
        ),
    )
    balance = opening_balance_egp
    result = []
    for line in ordered:
        balance = round_money(balance + line.cost_egp - line.paid_egp)
        result.append(
            SupplierStatementLine(
                entry_date=line.entry_date,
                line_type=line.line_type,
                shipment_id=line.shipment_id,
                shipment_code=line.shipment_code,
                description=line.description,
                cost_egp=line.cost_egp,
                paid_egp=line.paid_egp,
                running_balance_egp=balance,
                payment_method=line.payment_method,
            )
        )
    return result
