"""
Document numbering shared by invoices and contracts.

Numbers have the form ``{prefix}-{year}-{seq:05d}``.  The sequence is scoped
per prefix and calendar year and is the highest existing number plus one,
found by scanning the table.  A named counter row is locked first so that
concurrent transactions numbering the same prefix and year queue behind
each other instead of both taking the same number.
"""

from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute, Session

from erp_kernel.services.sequence_service import SequenceService


def format_document_number(prefix: str, year: int, seq: int) -> str:
    return f"{prefix}-{year:04d}-{seq:05d}"


def highest_document_sequence(
    session: Session,
    column: InstrumentedAttribute,
    prefix: str,
    year: int,
) -> int:
    """Largest sequence already used for ``prefix`` and ``year``, or 0."""
    pattern = re.compile(rf"^{re.escape(prefix)}-{year:04d}-(\d{{5,}})$")
    highest = 0
    for number in session.execute(
        select(column).where(column.like(f"{prefix}-{year:04d}-%"))
    ).scalars():
        match = pattern.match(number)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def next_document_number(
    session: Session,
    column: InstrumentedAttribute,
    prefix: str,
    year: int,
) -> str:
    """
    Next unused number for ``prefix`` in ``year``.

    The lock on the ``docnum:{prefix}-{year}`` counter is held until the
    caller's transaction ends.
    """
    allocated = SequenceService(session).next_value(f"docnum:{prefix}-{year:04d}")
    seq = max(highest_document_sequence(session, column, prefix, year) + 1, allocated)
    return format_document_number(prefix, year, seq)
