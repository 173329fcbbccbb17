"""
Module: shipment_kernel.selectors.exchange_rate_selector
Responsibility: Read access to the exchange-rate time series.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Latest" means greatest rate_date, then greatest effective_at.  The
      result is a snapshot DTO; callers pass its rate into the aggregator
      explicitly instead of consulting a global "current rate".
"""

from sqlalchemy import select

from shipment_kernel.domain.currency import parse_currency
from shipment_kernel.domain.dtos import ExchangeRateRecord
from shipment_kernel.models.exchange_rate import ExchangeRate
from shipment_kernel.selectors.base import BaseSelector


def to_exchange_rate_record(rate: ExchangeRate) -> ExchangeRateRecord:
    return ExchangeRateRecord(
        id=rate.id,
        from_currency=rate.from_currency,
        to_currency=rate.to_currency,
        rate=rate.rate,
        rate_date=rate.rate_date,
        source=rate.source,
    )


class ExchangeRateSelector(BaseSelector[ExchangeRate]):
    """Latest-rate lookup and history listing."""

    def latest(self, from_currency, to_currency) -> ExchangeRateRecord | None:
        """The current rate for a pair, or None if none was ever recorded."""
        stmt = (
            select(ExchangeRate)
            .where(
                ExchangeRate.from_currency == parse_currency(from_currency).value,
                ExchangeRate.to_currency == parse_currency(to_currency).value,
            )
            .order_by(ExchangeRate.rate_date.desc(), ExchangeRate.effective_at.desc())
            .limit(1)
        )
        rate = self.session.scalars(stmt).first()
        return to_exchange_rate_record(rate) if rate is not None else None

    def history(
        self,
        from_currency=None,
        to_currency=None,
        limit: int | None = None,
    ) -> list[ExchangeRateRecord]:
        """Rates newest first, optionally for one pair."""
        stmt = select(ExchangeRate)
        if from_currency is not None:
            stmt = stmt.where(ExchangeRate.from_currency == parse_currency(from_currency).value)
        if to_currency is not None:
            stmt = stmt.where(ExchangeRate.to_currency == parse_currency(to_currency).value)
        stmt = stmt.order_by(ExchangeRate.rate_date.desc(), ExchangeRate.effective_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [to_exchange_rate_record(r) for r in self.session.scalars(stmt)]
