"""
JournalPoster -- the single entry point through which the general ledger changes.

Responsibility:
    Validates requested posting lines and persists a balanced journal entry
    with all of its lines as one unit.  Also owns the ledger-wide period
    lock, reversing entries and the trial balance used at period close.

Architecture position:
    Kernel > Services -- imperative shell.  Called by every business
    workflow (receipts, opening balances, production rollups, sales,
    recurring refills).  No other code writes JournalEntry/JournalLine rows.

Invariants enforced:
    - At least two lines per entry (EmptyEntryError).
    - Each line has exactly one of debit/credit as a positive int
      (InvalidJournalLineError).
    - sum(debit) == sum(credit) (UnbalancedEntryError).
    - Every account exists and is active.
    - Entry date is after the period lock date.
    - All validation happens BEFORE anything is added to the session, so a
      rejected entry leaves no trace.  Persisted rows are immutable
      (db/immutability.py); corrections are reversing entries.

Failure modes:
    - Any validation error above propagates; the caller's transaction
      boundary rolls back the surrounding unit of work.

Non-goals:
    - Does NOT call ``session.commit()`` -- the calling workflow owns the
      transaction so that layer mutations and the entry commit together.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.journal import PostingLine
from erp_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    EmptyEntryError,
    EntryAlreadyReversedError,
    EntryNotFoundError,
    InvalidJournalLineError,
    PeriodAlreadyClosedError,
    PeriodLockedError,
    TrialBalanceMismatchError,
    UnbalancedEntryError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.account import Account
from erp_kernel.models.journal import JournalEntry, JournalLine, LedgerSettings
from erp_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_poster")


@dataclass(frozen=True)
class TrialBalanceRow:
    account_code: str
    total_debits: int
    total_credits: int

    @property
    def balance(self) -> int:
        """Debit-positive balance."""
        return self.total_debits - self.total_credits


@dataclass(frozen=True)
class TrialBalance:
    """Per-account debit/credit totals up to ``as_of`` (inclusive)."""

    as_of: date | None
    rows: tuple[TrialBalanceRow, ...]

    @property
    def total_debits(self) -> int:
        return sum(row.total_debits for row in self.rows)

    @property
    def total_credits(self) -> int:
        return sum(row.total_credits for row in self.rows)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def balance_of(self, account_code: str) -> int:
        for row in self.rows:
            if row.account_code == account_code:
                return row.balance
        return 0


def validate_posting_lines(lines: Sequence[PostingLine]) -> tuple[int, int]:
    """
    Validate the shape and balance of requested lines.

    Preconditions:
        - ``lines`` is a sequence of ``PostingLine``.
    Postconditions:
        - Returns ``(total_debits, total_credits)``, which are equal.
    Raises:
        EmptyEntryError: fewer than two lines.
        InvalidJournalLineError: a line without exactly one positive side,
            or with a non-integer amount.
        UnbalancedEntryError: debits != credits.
    """
    if len(lines) < 2:
        raise EmptyEntryError(len(lines))

    total_debits = 0
    total_credits = 0
    for index, line in enumerate(lines):
        for side in (line.debit, line.credit):
            if isinstance(side, bool) or not isinstance(side, int):
                raise InvalidJournalLineError(
                    index, line.account_code, "amounts must be integer minor units"
                )
            if side < 0:
                raise InvalidJournalLineError(
                    index, line.account_code, "amounts must not be negative"
                )
        if (line.debit > 0) == (line.credit > 0):
            raise InvalidJournalLineError(
                index,
                line.account_code,
                "exactly one of debit or credit must be positive",
            )
        total_debits += line.debit
        total_credits += line.credit

    if total_debits != total_credits:
        raise UnbalancedEntryError(total_debits, total_credits)

    return total_debits, total_credits


class JournalPoster:
    """
    Builds, validates and persists balanced journal entries.

    Contract:
        ``post()`` either adds one complete entry (header + every line) to
        the session and flushes it, or raises without adding anything.

    Usage:
        poster = JournalPoster(session, clock)
        entry = poster.post(
            entry_date=date(2024, 3, 1),
            description="Goods received PO-1001",
            lines=[PostingLine.dr("1310", 50000), PostingLine.cr("2110", 50000)],
            actor_id=actor_id,
            reference="PO-1001",
        )
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post(
        self,
        entry_date: date,
        description: str,
        lines: Sequence[PostingLine],
        actor_id: UUID,
        reference: str | None = None,
        *,
        reversal_of_id: UUID | None = None,
    ) -> JournalEntry:
        """
        Validate and persist one journal entry.

        Preconditions:
            - ``lines`` satisfy ``validate_posting_lines``.
            - every ``account_code`` exists and is active.
            - ``entry_date`` is after the period lock date.
        Postconditions:
            - Returns the flushed ``JournalEntry`` with ``seq`` assigned and
              lines in request order.
        Raises:
            EmptyEntryError, InvalidJournalLineError, UnbalancedEntryError,
            AccountNotFoundError, AccountInactiveError, PeriodLockedError.
        """
        lines = list(lines)
        try:
            total_debits, _ = validate_posting_lines(lines)
            self._check_accounts({line.account_code for line in lines})
            self._check_period_lock(entry_date)
        except Exception as exc:
            logger.warning(
                "journal_entry_rejected",
                extra={
                    "reference": reference,
                    "entry_date": entry_date,
                    "line_count": len(lines),
                    "error_code": getattr(exc, "code", type(exc).__name__),
                },
            )
            raise

        entry = JournalEntry(
            seq=self._sequences.next_value(SequenceService.JOURNAL_ENTRY),
            entry_date=entry_date,
            description=description,
            reference=reference,
            posted_at=self._clock.now(),
            reversal_of_id=reversal_of_id,
            created_by_id=actor_id,
        )
        for line_seq, spec in enumerate(lines, start=1):
            entry.lines.append(
                JournalLine(
                    line_seq=line_seq,
                    account_code=spec.account_code,
                    debit=spec.debit,
                    credit=spec.credit,
                    memo=spec.memo,
                    created_by_id=actor_id,
                )
            )
        self._session.add(entry)
        self._session.flush()

        assert entry.is_balanced, "balanced lines must persist as a balanced entry"

        logger.info(
            "journal_entry_posted",
            extra={
                "journal_entry_id": str(entry.id),
                "seq": entry.seq,
                "entry_date": entry_date,
                "reference": reference,
                "line_count": len(lines),
                "amount": total_debits,
            },
        )
        return entry

    def reverse(
        self,
        entry_id: UUID,
        entry_date: date,
        actor_id: UUID,
        reason: str | None = None,
    ) -> JournalEntry:
        """
        Post the mirror image of an existing entry.

        The original stays untouched; the reversal links back to it through
        ``reversal_of_id`` and carries reference ``REV-{original reference}``.

        Raises:
            EntryNotFoundError: unknown ``entry_id``.
            EntryAlreadyReversedError: a reversal already exists.
            PeriodLockedError: ``entry_date`` is locked.
        """
        original = self._session.get(JournalEntry, entry_id)
        if original is None:
            raise EntryNotFoundError(str(entry_id))

        existing = self._session.execute(
            select(JournalEntry.id).where(JournalEntry.reversal_of_id == entry_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise EntryAlreadyReversedError(str(entry_id))

        mirrored = [
            PostingLine(
                account_code=line.account_code,
                debit=line.debit,
                credit=line.credit,
                memo=line.memo,
            ).mirrored()
            for line in original.lines
        ]
        description = f"Reversal of #{original.seq}: {original.description}"
        if reason:
            description = f"{description} ({reason})"
        reference = f"REV-{original.reference}" if original.reference else None

        reversal = self.post(
            entry_date=entry_date,
            description=description[:500],
            lines=mirrored,
            actor_id=actor_id,
            reference=reference,
            reversal_of_id=original.id,
        )
        logger.info(
            "journal_entry_reversed",
            extra={
                "original_entry_id": str(original.id),
                "reversal_entry_id": str(reversal.id),
                "reason": reason,
            },
        )
        return reversal

    # ------------------------------------------------------------------
    # Period lock
    # ------------------------------------------------------------------

    def lock_date(self) -> date | None:
        """Current period lock date, or None when no period is closed."""
        settings = self._session.execute(
            select(LedgerSettings).where(
                LedgerSettings.settings_key == LedgerSettings.SINGLETON_KEY
            )
        ).scalar_one_or_none()
        return settings.period_lock_date if settings else None

    def close_period(self, period_end: date, actor_id: UUID) -> date:
        """
        Close the books through ``period_end``.

        Verifies the trial balance through ``period_end`` first, then moves
        the lock date forward.  Subsequent posts dated on or before
        ``period_end`` fail with ``PeriodLockedError``.

        Raises:
            PeriodAlreadyClosedError: ``period_end`` is not after the
                current lock date.
            TrialBalanceMismatchError: the ledger does not balance.
        """
        settings = self._session.execute(
            select(LedgerSettings)
            .where(LedgerSettings.settings_key == LedgerSettings.SINGLETON_KEY)
            .with_for_update()
        ).scalar_one_or_none()

        if settings is None:
            settings = LedgerSettings(settings_key=LedgerSettings.SINGLETON_KEY)
            self._session.add(settings)
        elif settings.period_lock_date is not None and period_end <= settings.period_lock_date:
            raise PeriodAlreadyClosedError(
                period_end.isoformat(), settings.period_lock_date.isoformat()
            )

        balance = self.trial_balance(as_of=period_end)
        if not balance.is_balanced:
            logger.error(
                "period_close_trial_balance_mismatch",
                extra={
                    "period_end": period_end,
                    "total_debits": balance.total_debits,
                    "total_credits": balance.total_credits,
                },
            )
            raise TrialBalanceMismatchError(balance.total_debits, balance.total_credits)

        settings.period_lock_date = period_end
        settings.locked_by_id = actor_id
        self._session.flush()

        logger.info(
            "period_closed",
            extra={
                "period_end": period_end,
                "total_debits": balance.total_debits,
                "account_count": len(balance.rows),
            },
        )
        return period_end

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def trial_balance(self, as_of: date | None = None) -> TrialBalance:
        """Sum debits and credits per account over entries dated <= ``as_of``."""
        stmt = (
            select(
                JournalLine.account_code,
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .group_by(JournalLine.account_code)
            .order_by(JournalLine.account_code)
        )
        if as_of is not None:
            stmt = stmt.where(JournalEntry.entry_date <= as_of)

        rows = tuple(
            TrialBalanceRow(
                account_code=code,
                total_debits=int(debits),
                total_credits=int(credits),
            )
            for code, debits, credits in self._session.execute(stmt).all()
        )
        return TrialBalance(as_of=as_of, rows=rows)

    def entries_for_reference(self, reference: str) -> list[JournalEntry]:
        """All entries posted for a source document, in posting order."""
        return list(
            self._session.execute(
                select(JournalEntry)
                .where(JournalEntry.reference == reference)
                .order_by(JournalEntry.seq)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Internal checks
    # ------------------------------------------------------------------

    def _check_accounts(self, codes: set[str]) -> None:
        found = {
            account.code: account
            for account in self._session.execute(
                select(Account).where(Account.code.in_(codes))
            ).scalars()
        }
        for code in sorted(codes):
            account = found.get(code)
            if account is None:
                raise AccountNotFoundError(code)
            if not account.is_active:
                raise AccountInactiveError(code)

    def _check_period_lock(self, entry_date: date) -> None:
        locked_through = self.lock_date()
        if locked_through is not None and entry_date <= locked_through:
            raise PeriodLockedError(entry_date.isoformat(), locked_through.isoformat())
