"""Recurring income definitions and their envelope splits."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import DECIMAL, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budgetmate.database import Base
from budgetmate.models.base import IntIdMixin, TimestampMixin, UserOwnedMixin


class RecurringIncome(Base, IntIdMixin, UserOwnedMixin, TimestampMixin):
    """Expected periodic income with pre-set envelope splits."""

    __tablename__ = "recurring_incomes"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    surplus_envelope_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("envelopes.id"), nullable=True)

    splits: Mapped[list[RecurringIncomeSplit]] = relationship(
        "RecurringIncomeSplit",
        back_populates="recurring_income",
        cascade="all, delete-orphan",
        order_by="RecurringIncomeSplit.position",
    )


class RecurringIncomeSplit(Base, IntIdMixin):
    __tablename__ = "recurring_income_splits"

    recurring_income_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recurring_incomes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    envelope_id: Mapped[int] = mapped_column(Integer, ForeignKey("envelopes.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recurring_income: Mapped[RecurringIncome] = relationship("RecurringIncome", back_populates="splits")
