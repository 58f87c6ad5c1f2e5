"""
Séquenceur de numéros de facture.

Format : FAC-<année>-<séquence sur 6 chiffres>, remise à zéro chaque année.

Le numéro vient d'un compteur dédié (table invoice_sequences) incrémenté par
un UPDATE atomique, jamais d'un COUNT(*) + 1 sur les ventes (qui produit des
doublons dès que deux ventes commitent en même temps).

L'incrément se fait dans la transaction de la vente : si la vente échoue, le
rollback annule aussi l'incrément, donc aucun numéro n'est laissé "utilisé"
sans vente. Un numéro n'est visible des autres qu'au commit, ce qui garantit
l'unicité et l'ordre croissant dans l'ordre d'émission.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.db.models.models_v1 import InvoiceSequence


def format_invoice_number(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:06d}"


def _increment(db: Session, year: int) -> int | None:
    return db.execute(
        update(InvoiceSequence)
        .where(InvoiceSequence.year == year)
        .values(last_value=InvoiceSequence.last_value + 1)
        .returning(InvoiceSequence.last_value)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()


def next_sequence_value(db: Session, year: int) -> int:
    value = _increment(db, year)
    if value is not None:
        return int(value)

    # première facture de l'année : on crée la ligne compteur
    try:
        with db.begin_nested():
            db.add(InvoiceSequence(year=year, last_value=1))
        return 1
    except IntegrityError:
        # insert concurrent gagné par un autre : la ligne existe désormais
        return int(_increment(db, year))


def next_invoice_number(db: Session, year: int, *, prefix: str | None = None) -> str:
    return format_invoice_number(prefix or settings.INVOICE_PREFIX, year, next_sequence_value(db, year))


__all__ = ["format_invoice_number", "next_sequence_value", "next_invoice_number"]
