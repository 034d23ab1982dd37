"""Transaction and envelope-split models."""

from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budgetmate.database import Base
from budgetmate.models.base import IntIdMixin, TimestampMixin, UserOwnedMixin


class SourceType(str, enum.Enum):
    """Where a transaction row came from."""

    MANUAL = "manual"
    BANK_SYNC = "bank_sync"
    AKAHU_AUTO_SYNC = "akahu_auto_sync"


class DuplicateStatus(str, enum.Enum):
    """Duplicate classification of a transaction."""

    NONE = "none"
    POTENTIAL = "potential"
    CONFIRMED = "confirmed"


class Transaction(Base, IntIdMixin, UserOwnedMixin, TimestampMixin):
    """
    One financial movement on an account.

    Amount is signed: negative for expenses, positive for income.
    """

    __tablename__ = "transactions"
    __table_args__ = (UniqueConstraint("user_id", "bank_transaction_id", name="uq_transactions_bank_txn"),)

    account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    merchant: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_type: Mapped[SourceType] = mapped_column(
        Enum(
            SourceType,
            name="transaction_source_type_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=SourceType.MANUAL,
    )
    duplicate_status: Mapped[DuplicateStatus] = mapped_column(
        Enum(
            DuplicateStatus,
            name="transaction_duplicate_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=DuplicateStatus.NONE,
    )
    duplicate_of_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("transactions.id"), nullable=True)
    bank_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bank_hash: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    bank_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bank_memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    splits: Mapped[list[TransactionEnvelope]] = relationship(
        "TransactionEnvelope",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionEnvelope.id",
    )


class TransactionEnvelope(Base, IntIdMixin):
    """Allocation of part of a transaction's amount to one envelope."""

    __tablename__ = "transaction_envelopes"

    transaction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    envelope_id: Mapped[int] = mapped_column(Integer, ForeignKey("envelopes.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)

    transaction: Mapped[Transaction] = relationship("Transaction", back_populates="splits")
