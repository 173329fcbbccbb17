"""
Module: shipment_kernel.services.inventory_service
Responsibility: Stock-in on receipt.  Writes one InventoryMovement per
    shipment item, valued at the item's share of the shipment's landed cost.
Architecture position: Kernel > Services.  Flush-only; called by
    ShipmentCostingService inside its transaction when a shipment is received.

Invariants enforced:
    - Movements are created once per item; a second receive is a no-op.
    - SUM(total_cost_egp) == shipment.final_total_cost_egp at receipt.
"""

from datetime import date
from typing import Sequence
from uuid import UUID

from shipment_kernel.domain.costing import (
    CostBreakdown,
    ItemCostInput,
    PurchaseRateBasis,
    allocate_landed_costs,
)
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.inventory_movement import InventoryMovement
from shipment_kernel.models.shipment import Shipment, ShipmentItem
from shipment_kernel.services.base import BaseService

logger = get_logger("services.inventory")


def item_cost_inputs(items: Sequence[ShipmentItem]) -> list[ItemCostInput]:
    """Persisted item rows as aggregator inputs."""
    return [
        ItemCostInput(
            cartons=i.cartons,
            pieces_per_carton=i.pieces_per_carton,
            unit_price_rmb=i.unit_price_rmb,
            customs_cost_per_carton_egp=i.customs_cost_per_carton_egp,
            takhreeg_cost_per_carton_egp=i.takhreeg_cost_per_carton_egp,
        )
        for i in items
    ]


def _stored_rate_basis(shipment: Shipment) -> PurchaseRateBasis:
    """Which RMB->EGP rate priced the stored purchase_cost_egp."""
    details = shipment.shipping_details
    if details is not None and details.rmb_to_egp_rate_at_shipping:
        return PurchaseRateBasis.SHIPPING
    if shipment.purchase_rate_is_preliminary:
        return PurchaseRateBasis.PRELIMINARY
    return PurchaseRateBasis.NONE


def _stored_breakdown(shipment: Shipment) -> CostBreakdown:
    """The shipment's persisted cost columns as a CostBreakdown."""
    return CostBreakdown(
        purchase_cost_rmb=shipment.purchase_cost_rmb,
        purchase_cost_egp=shipment.purchase_cost_egp,
        commission_cost_rmb=shipment.commission_cost_rmb,
        commission_cost_egp=shipment.commission_cost_egp,
        shipping_cost_usd=shipment.shipping_cost_usd,
        shipping_cost_rmb=shipment.shipping_cost_rmb,
        shipping_cost_egp=shipment.shipping_cost_egp,
        customs_cost_egp=shipment.customs_cost_egp,
        takhreeg_cost_egp=shipment.takhreeg_cost_egp,
        final_total_cost_egp=shipment.final_total_cost_egp,
        purchase_rate_basis=_stored_rate_basis(shipment),
    )


class InventoryService(BaseService[InventoryMovement]):
    """Creates stock-in movements for received shipments."""

    def receive_shipment(
        self,
        shipment: Shipment,
        movement_date: date,
        actor_id: UUID,
    ) -> list[InventoryMovement]:
        if shipment.movements:
            logger.info(
                "inventory_already_received",
                extra={"shipment_id": str(shipment.id), "movement_count": len(shipment.movements)},
            )
            return list(shipment.movements)

        items = list(shipment.items)
        landed = allocate_landed_costs(item_cost_inputs(items), _stored_breakdown(shipment))

        movements = []
        for item, cost in zip(items, landed):
            movement = InventoryMovement(
                shipment_id=shipment.id,
                shipment_item_id=item.id,
                line_no=item.line_no,
                movement_date=movement_date,
                total_pieces_in=cost.total_pieces,
                unit_cost_rmb=cost.unit_cost_rmb,
                unit_cost_egp=cost.unit_cost_egp,
                total_cost_egp=cost.total_cost_egp,
                created_by_id=actor_id,
            )
            shipment.movements.append(movement)
            movements.append(movement)
        self.session.flush()

        logger.info(
            "inventory_received",
            extra={
                "shipment_id": str(shipment.id),
                "movement_count": len(movements),
                "total_pieces": sum(m.total_pieces_in for m in movements),
            },
        )
        return movements
