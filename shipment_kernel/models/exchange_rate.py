"""
Module: shipment_kernel.models.exchange_rate
Responsibility: ORM persistence for the exchange-rate time series
    (RMB->EGP, USD->RMB, USD->EGP).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only.  A new rate is a new row; UPDATE and DELETE are refused
      by the listeners in db/immutability.py.
    - rate is positive and stored to 4dp (validated on INSERT).
    - The "current" rate for a pair is the row with the greatest
      (rate_date, effective_at); see ExchangeRateSelector.latest.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE.
    - InvalidExchangeRateError on a non-positive or excessively large rate.

Audit relevance:
    Shipments and payments copy the rate they used, so history here is for
    lookup and reporting only; it never changes a recorded cost.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import TrackedBase


class ExchangeRate(TrackedBase):
    """
    One directional conversion factor (from_amount * rate = to_amount).

    Non-goals:
        - Does NOT enforce inverse consistency; each direction is its own row.
    """

    __tablename__ = "exchange_rates"

    __table_args__ = (
        Index("idx_rate_lookup", "from_currency", "to_currency", "rate_date"),
    )

    # Business date the rate applies to
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)

    # When the row was recorded, breaks ties between rows on the same date
    effective_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    # "manual", "auto_refresh", ...
    source: Mapped[str] = mapped_column(String(50), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<ExchangeRate {self.from_currency}/{self.to_currency} = {self.rate} @ {self.rate_date}>"
