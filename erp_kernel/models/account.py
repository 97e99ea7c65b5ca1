"""
Module: erp_kernel.models.account
Responsibility: ORM persistence for the chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account codes are unique.
    - Journal lines reference accounts by code (foreign key), so a posted
      line can never point at a code that does not exist.
"""

from enum import Enum

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase


class AccountType(str, Enum):
    """Top-level classification of a general ledger account."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class Account(TrackedBase):
    """
    General ledger account.

    Deactivated accounts stay in the table (historic lines keep referencing
    them) but the Journal Poster refuses new lines against them.
    """

    __tablename__ = "accounts"

    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        String(20),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.code} {self.name}>"
