"""
Module: erp_kernel.models.journal
Responsibility: ORM persistence for journal entries, journal lines and the
    ledger-wide period lock.  The general ledger is the financial source of
    truth; these rows are written only by the Journal Poster.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Each line has exactly one of debit/credit positive, the other zero
      (CHECK constraint, validated again by the Journal Poster).
    - Debits == credits per entry (checked by the Journal Poster before the
      single flush; is_balanced is the read-side assertion).
    - seq is unique and monotonic (SequenceService).
    - A journal entry can be reversed at most once (UNIQUE reversal_of_id).
    - Entries and lines are immutable after insert (db/immutability.py).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, TrackedBase, UUIDString


class JournalEntry(TrackedBase):
    """
    Journal entry header: the atomic unit of double-entry accounting.

    reference carries the originating document number (invoice, PO,
    production run) so that reporting collaborators can join ledger rows
    back to source documents without internal ids.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_reference", "reference"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # If this is a reversal, points to the original entry
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
        unique=True,
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry #{self.seq} {self.entry_date} ref={self.reference}>"

    @property
    def total_debits(self) -> int:
        """Sum of all debit amounts."""
        return sum(line.debit for line in self.lines)

    @property
    def total_credits(self) -> int:
        """Sum of all credit amounts."""
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        """Read-side balance assertion."""
        return self.total_debits == self.total_credits

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class JournalLine(TrackedBase):
    """
    One debit or credit against one account within a journal entry.

    Amounts are integer minor units.  Exactly one side is positive.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint("debit >= 0", name="ck_line_debit_nonnegative"),
        CheckConstraint("credit >= 0", name="ck_line_credit_nonnegative"),
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (debit = 0 AND credit > 0)",
            name="ck_line_single_side",
        ),
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_code"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    account_code: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("accounts.code"),
        nullable=False,
    )

    debit: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    credit: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    memo: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.account_code} Dr={self.debit} Cr={self.credit}>"


class LedgerSettings(Base):
    """
    Singleton row holding ledger-wide controls.

    period_lock_date: entries dated on or before this date are rejected.
    Moved forward only by JournalPoster.close_period().
    """

    __tablename__ = "ledger_settings"

    SINGLETON_KEY = "default"

    settings_key: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        default=SINGLETON_KEY,
    )

    period_lock_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    locked_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )
