"""Envelope (budget bucket) model."""

from decimal import Decimal

from sqlalchemy import DECIMAL, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from budgetmate.database import Base
from budgetmate.models.base import IntIdMixin, TimestampMixin, UserOwnedMixin


class Envelope(Base, IntIdMixin, UserOwnedMixin, TimestampMixin):
    """
    Named budget bucket holding a running balance.

    current_balance only reflects allocations of approved transactions.
    """

    __tablename__ = "envelopes"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False, default=Decimal("0.00"))
    budgeted_amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False, default=Decimal("0.00"))
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_monitored: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Envelope {self.name} ({self.current_balance})>"
