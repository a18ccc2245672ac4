"""
Module: cylinder_kernel.services.ingestion_service
Responsibility: Persist validated input facts (sales, shipments, opening
    stock).  Validation of field shapes already happened when the frozen DTO
    was built; this service checks references and idempotency.
Architecture position: Kernel > Services.  Receives a Session by
    constructor injection; never commits (the caller owns the transaction).

Invariants enforced:
    - Facts are append-only: a sale or shipment id is recorded at most once.
      Re-ingesting an identical fact is a no-op; a different payload under
      the same id raises FactAlreadyRecordedError.
    - Timestamps are stored in UTC.
    - Referenced products and drivers belong to the fact's tenant.
    - Opening stock is replaced, not duplicated, for the same key and date.

Failure modes:
    - ProductNotFoundError / DriverNotFoundError / CylinderSizeNotFoundError.
    - FactAlreadyRecordedError on id reuse with a different payload.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cylinder_kernel.domain.clock import ensure_utc
from cylinder_kernel.domain.facts import OpeningStock, SaleEvent, ShipmentBatch
from cylinder_kernel.exceptions import FactAlreadyRecordedError
from cylinder_kernel.logging_config import get_logger
from cylinder_kernel.models.facts import OpeningStockModel, SaleModel, ShipmentModel
from cylinder_kernel.selectors.catalog import CatalogSelector
from cylinder_kernel.selectors.facts import sale_to_dto, shipment_to_dto

logger = get_logger("services.ingestion")


def _to_utc(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(timezone.utc)


class FactIngestionService:
    """
    Records sales, shipments and opening stock.

    Contract:
        Receives a Session via constructor injection.  Flushes so that
        later reads in the same transaction see the fact; never commits.
    """

    def __init__(self, session: Session):
        self.session = session
        self._catalog = CatalogSelector(session)

    def record_sale(self, sale: SaleEvent, actor_id: UUID) -> bool:
        """
        Persist a sale.

        Returns:
            True if the sale was inserted, False if an identical sale with
            the same id was already recorded.
        """
        existing = self.session.get(SaleModel, sale.sale_id)
        if existing is not None:
            if sale_to_dto(existing) != _normalized_sale(sale):
                raise FactAlreadyRecordedError("SaleEvent", str(sale.sale_id))
            logger.info("sale_already_recorded", extra={"sale_id": str(sale.sale_id)})
            return False

        self._catalog.get_product(sale.tenant_id, sale.product_id)
        self._catalog.get_driver(sale.tenant_id, sale.driver_id)

        self.session.add(SaleModel(
            id=sale.sale_id,
            tenant_id=sale.tenant_id,
            driver_id=sale.driver_id,
            product_id=sale.product_id,
            sale_type=sale.sale_type.value,
            quantity=sale.quantity,
            unit_price=sale.unit_price,
            discount=sale.discount,
            cash_deposited=sale.cash_deposited,
            cylinders_deposited=sale.cylinders_deposited,
            sale_date=_to_utc(sale.sale_date),
            created_by_id=actor_id,
        ))
        self.session.flush()

        logger.info(
            "sale_recorded",
            extra={
                "tenant_id": sale.tenant_id,
                "sale_id": str(sale.sale_id),
                "driver_id": str(sale.driver_id),
                "product_id": str(sale.product_id),
                "sale_type": sale.sale_type.value,
                "quantity": sale.quantity,
            },
        )
        return True

    def record_shipment(self, shipment: ShipmentBatch, actor_id: UUID) -> bool:
        """
        Persist a shipment.

        Returns:
            True if inserted, False if an identical shipment was already
            recorded.
        """
        existing = self.session.get(ShipmentModel, shipment.shipment_id)
        if existing is not None:
            if shipment_to_dto(existing) != _normalized_shipment(shipment):
                raise FactAlreadyRecordedError("ShipmentBatch", str(shipment.shipment_id))
            logger.info(
                "shipment_already_recorded",
                extra={"shipment_id": str(shipment.shipment_id)},
            )
            return False

        self._catalog.get_product(shipment.tenant_id, shipment.product_id)

        self.session.add(ShipmentModel(
            id=shipment.shipment_id,
            tenant_id=shipment.tenant_id,
            product_id=shipment.product_id,
            shipment_type=shipment.shipment_type.value,
            status=shipment.status.value,
            quantity=shipment.quantity,
            unit_cost=shipment.unit_cost,
            shipment_date=_to_utc(shipment.shipment_date),
            created_by_id=actor_id,
        ))
        self.session.flush()

        logger.info(
            "shipment_recorded",
            extra={
                "tenant_id": shipment.tenant_id,
                "shipment_id": str(shipment.shipment_id),
                "product_id": str(shipment.product_id),
                "shipment_type": shipment.shipment_type.value,
                "status": shipment.status.value,
                "quantity": shipment.quantity,
            },
        )
        return True

    def record_opening_stock(self, opening: OpeningStock, actor_id: UUID) -> None:
        """Insert or replace the opening stock for a product or size on a date."""
        if opening.is_full:
            self._catalog.get_product(opening.tenant_id, opening.product_id)
            key_filter = OpeningStockModel.product_id == opening.product_id
        else:
            self._catalog.get_size(opening.tenant_id, opening.cylinder_size_id)
            key_filter = OpeningStockModel.cylinder_size_id == opening.cylinder_size_id

        row = self.session.execute(
            select(OpeningStockModel).where(
                OpeningStockModel.tenant_id == opening.tenant_id,
                OpeningStockModel.balance_date == opening.balance_date,
                key_filter,
            )
        ).scalar_one_or_none()

        if row is None:
            self.session.add(OpeningStockModel(
                tenant_id=opening.tenant_id,
                product_id=opening.product_id,
                cylinder_size_id=opening.cylinder_size_id,
                balance_date=opening.balance_date,
                quantity=opening.quantity,
                created_by_id=actor_id,
            ))
            replaced = False
        else:
            row.quantity = opening.quantity
            row.updated_by_id = actor_id
            replaced = True
        self.session.flush()

        logger.info(
            "opening_stock_recorded",
            extra={
                "tenant_id": opening.tenant_id,
                "product_id": str(opening.product_id) if opening.product_id else None,
                "cylinder_size_id": (
                    str(opening.cylinder_size_id) if opening.cylinder_size_id else None
                ),
                "balance_date": opening.balance_date,
                "quantity": opening.quantity,
                "replaced": replaced,
            },
        )


def _normalized_sale(sale: SaleEvent) -> SaleEvent:
    return SaleEvent(
        sale_id=sale.sale_id,
        tenant_id=sale.tenant_id,
        driver_id=sale.driver_id,
        product_id=sale.product_id,
        sale_type=sale.sale_type,
        quantity=sale.quantity,
        unit_price=sale.unit_price,
        sale_date=_to_utc(sale.sale_date),
        discount=sale.discount,
        cash_deposited=sale.cash_deposited,
        cylinders_deposited=sale.cylinders_deposited,
    )


def _normalized_shipment(shipment: ShipmentBatch) -> ShipmentBatch:
    return ShipmentBatch(
        shipment_id=shipment.shipment_id,
        tenant_id=shipment.tenant_id,
        product_id=shipment.product_id,
        shipment_type=shipment.shipment_type,
        quantity=shipment.quantity,
        shipment_date=_to_utc(shipment.shipment_date),
        status=shipment.status,
        unit_cost=shipment.unit_cost,
    )
