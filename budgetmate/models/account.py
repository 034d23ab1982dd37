"""Bank account model."""

from decimal import Decimal

from sqlalchemy import DECIMAL, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from budgetmate.database import Base
from budgetmate.models.base import IntIdMixin, TimestampMixin, UserOwnedMixin


class Account(Base, IntIdMixin, UserOwnedMixin, TimestampMixin):
    """A bank or cash account whose balance moves when transactions are approved."""

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    balance: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False, default=Decimal("0.00"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Account {self.name} ({self.balance})>"
