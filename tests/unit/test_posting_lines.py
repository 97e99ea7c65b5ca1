"""Tests for PostingLine value objects and line validation (no database)."""

import pytest

from erp_kernel.domain.journal import PostingLine, net_lines
from erp_kernel.exceptions import (
    EmptyEntryError,
    InvalidJournalLineError,
    UnbalancedEntryError,
)
from erp_kernel.services.journal_poster import validate_posting_lines


class TestPostingLine:
    def test_constructors(self):
        assert PostingLine.dr("1310", 500) == PostingLine("1310", debit=500, credit=0)
        assert PostingLine.cr("2110", 500) == PostingLine("2110", debit=0, credit=500)

    def test_mirrored_swaps_sides(self):
        line = PostingLine.dr("1200", 700, memo="INV-1")
        mirrored = line.mirrored()
        assert (mirrored.debit, mirrored.credit) == (0, 700)
        assert mirrored.memo == "INV-1"

    def test_net_lines_drops_zero_amounts(self):
        lines = [
            PostingLine.dr("1200", 100),
            PostingLine.dr("4200", 0),
            PostingLine.cr("4100", 100),
        ]
        assert [line.account_code for line in net_lines(lines)] == ["1200", "4100"]


class TestValidatePostingLines:
    def test_balanced_returns_totals(self):
        debits, credits = validate_posting_lines(
            [
                PostingLine.dr("1200", 504000),
                PostingLine.dr("4200", 50000),
                PostingLine.cr("4100", 500000),
                PostingLine.cr("2200", 54000),
            ]
        )
        assert debits == credits == 554000

    @pytest.mark.parametrize("count", [0, 1])
    def test_fewer_than_two_lines(self, count):
        lines = [PostingLine.dr("1200", 100)][:count]
        with pytest.raises(EmptyEntryError) as exc_info:
            validate_posting_lines(lines)
        assert exc_info.value.line_count == count

    def test_single_unbalanced_line_reports_empty_first(self):
        with pytest.raises(EmptyEntryError):
            validate_posting_lines([PostingLine.dr("1200", 100)])

    def test_line_with_both_sides(self):
        with pytest.raises(InvalidJournalLineError) as exc_info:
            validate_posting_lines(
                [PostingLine("1200", debit=100, credit=100), PostingLine.cr("4100", 0)]
            )
        assert exc_info.value.line_index == 0

    def test_zero_line(self):
        with pytest.raises(InvalidJournalLineError):
            validate_posting_lines([PostingLine.dr("1200", 100), PostingLine.cr("4100", 0)])

    def test_negative_amount(self):
        with pytest.raises(InvalidJournalLineError):
            validate_posting_lines([PostingLine.dr("1200", -100), PostingLine.cr("4100", 100)])

    def test_float_amount(self):
        with pytest.raises(InvalidJournalLineError):
            validate_posting_lines([PostingLine.dr("1200", 1.5), PostingLine.cr("4100", 1)])

    def test_invalid_line_reported_before_imbalance(self):
        with pytest.raises(InvalidJournalLineError):
            validate_posting_lines(
                [PostingLine.dr("1200", 100), PostingLine("4100", debit=0, credit=0)]
            )

    def test_unbalanced(self):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            validate_posting_lines([PostingLine.dr("1200", 100), PostingLine.cr("4100", 99)])
        assert exc_info.value.debits == 100
        assert exc_info.value.credits == 99
        assert exc_info.value.code == "UNBALANCED_ENTRY"
