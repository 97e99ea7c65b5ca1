"""
Posting line specifications -- the value objects handed to the Journal Poster.

Business workflows build ``PostingLine`` tuples; only the Journal Poster turns
them into persisted ``JournalLine`` rows.  Pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PostingLine:
    """
    One requested journal line.

    Exactly one of ``debit``/``credit`` must be a positive int.  The Journal
    Poster validates this; the constructors below are conveniences for the
    common case.
    """

    account_code: str
    debit: int = 0
    credit: int = 0
    memo: str | None = None

    @classmethod
    def dr(cls, account_code: str, amount: int, memo: str | None = None) -> PostingLine:
        return cls(account_code=account_code, debit=amount, credit=0, memo=memo)

    @classmethod
    def cr(cls, account_code: str, amount: int, memo: str | None = None) -> PostingLine:
        return cls(account_code=account_code, debit=0, credit=amount, memo=memo)

    def mirrored(self) -> PostingLine:
        """Same line with debit and credit swapped (used by reversals)."""
        return PostingLine(
            account_code=self.account_code,
            debit=self.credit,
            credit=self.debit,
            memo=self.memo,
        )


def net_lines(lines: list[PostingLine]) -> list[PostingLine]:
    """
    Drop zero-amount lines.

    Workflows compute optional amounts (discount, tax, variance) that may be
    zero; a zero line would be rejected by the poster, so it is omitted.
    """
    return [line for line in lines if line.debit != 0 or line.credit != 0]
