# Overview: Service-layer operations for document sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence


SALE_SEQUENCE = "sale"


def fiscal_sequence_key(document_type: str, series: int) -> str:
    return f"fiscal:{document_type}:{series:03d}"


def next_number(sequence_key: str) -> int:
    """
    Allocate the next number for a sequence inside the current transaction.

    The UPDATE takes a row lock on the counter row that is held until the
    caller commits, so two units of work can never receive the same number.
    Does not commit.
    """
    if not sequence_key:
        raise ValidationError("sequence_key is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.sequence_key == sequence_key)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(sequence_key=sequence_key, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            return 1
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(sequence_key=sequence_key)
        .scalar()
    )
    return current - 1
