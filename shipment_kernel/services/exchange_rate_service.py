"""
Module: shipment_kernel.services.exchange_rate_service
Responsibility: Append exchange rates, manually or by refreshing the
    tracked pairs from their latest known value.
Architecture position: Kernel > Services.  Flush-only; the caller commits.

Invariants enforced:
    - Rates are appended, never edited (see db/immutability.py).
    - Stored rates are 4dp, positive, and at most 1,000,000.
    - from_currency != to_currency.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from shipment_kernel.db.immutability import validate_exchange_rate_value
from shipment_kernel.db.types import round_rate
from shipment_kernel.domain.clock import Clock, SystemClock
from shipment_kernel.domain.currency import Currency, parse_currency
from shipment_kernel.domain.dtos import ExchangeRateRecord
from shipment_kernel.exceptions import ValidationError
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.audit_log import AuditAction
from shipment_kernel.models.exchange_rate import ExchangeRate
from shipment_kernel.selectors.exchange_rate_selector import (
    ExchangeRateSelector,
    to_exchange_rate_record,
)
from shipment_kernel.services.audit_service import AuditService
from shipment_kernel.services.base import BaseService

logger = get_logger("services.exchange_rate")

AUTO_REFRESH_SOURCE = "auto_refresh"


@dataclass(frozen=True)
class TrackedPair:
    """A pair refreshed by refresh_rates, with its fallback rate."""

    from_currency: Currency
    to_currency: Currency
    default_rate: Decimal


DEFAULT_TRACKED_PAIRS: tuple[TrackedPair, ...] = (
    TrackedPair(Currency.RMB, Currency.EGP, Decimal("7.0000")),
    TrackedPair(Currency.USD, Currency.RMB, Decimal("7.2000")),
)


class ExchangeRateService(BaseService[ExchangeRate]):
    """Writes to the exchange-rate time series."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        tracked_pairs: tuple[TrackedPair, ...] = DEFAULT_TRACKED_PAIRS,
        refresh_source: str = AUTO_REFRESH_SOURCE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._tracked_pairs = tracked_pairs
        self._refresh_source = refresh_source
        self._selector = ExchangeRateSelector(session)

    def create_rate(
        self,
        from_currency,
        to_currency,
        rate,
        actor_id: UUID,
        rate_date: date | None = None,
        source: str = "manual",
        notes: str | None = None,
    ) -> ExchangeRateRecord:
        """
        Append a rate for a pair.

        Raises:
            ValidationError: unknown or identical currencies.
            InvalidExchangeRateError: non-positive or absurd rate.
        """
        from_cur = parse_currency(from_currency)
        to_cur = parse_currency(to_currency)
        if from_cur == to_cur:
            raise ValidationError(
                f"Exchange rate needs two different currencies, got {from_cur.value} twice",
                field="to_currency",
            )
        value = round_rate(validate_exchange_rate_value(rate))
        validate_exchange_rate_value(value)

        row = ExchangeRate(
            from_currency=from_cur.value,
            to_currency=to_cur.value,
            rate=value,
            rate_date=rate_date or self._clock.today(),
            effective_at=self._clock.now(),
            source=source,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "exchange_rate_created",
            extra={
                "from_currency": row.from_currency,
                "to_currency": row.to_currency,
                "rate": str(row.rate),
                "rate_date": row.rate_date,
                "source": source,
            },
        )
        self._audit.record(
            user_id=actor_id,
            entity_type="ExchangeRate",
            entity_id=row.id,
            action_type=AuditAction.CREATE,
            details={
                "from_currency": row.from_currency,
                "to_currency": row.to_currency,
                "rate": row.rate,
                "source": source,
            },
        )
        return to_exchange_rate_record(row)

    def refresh_rates(self, actor_id: UUID) -> list[ExchangeRateRecord]:
        """
        Append today's rate for every tracked pair.

        Each new row copies the pair's latest value, or the pair's default
        when no rate was ever recorded.  No external feed is consulted.
        """
        created = []
        for pair in self._tracked_pairs:
            latest = self._selector.latest(pair.from_currency, pair.to_currency)
            value = latest.rate if latest is not None else pair.default_rate
            created.append(
                self.create_rate(
                    pair.from_currency,
                    pair.to_currency,
                    value,
                    actor_id=actor_id,
                    source=self._refresh_source,
                )
            )
        logger.info("exchange_rates_refreshed", extra={"pair_count": len(created)})
        return created
