"""Signing state of an order document.

The two signature timestamps on a document are the only stored facts. The
variant below is computed from them and the wire status is computed from the
variant, so the three can never disagree.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional, Union


class SigningParty(PyEnum):
    buyer = "buyer"
    supplier = "supplier"

    @property
    def other(self) -> "SigningParty":
        return SigningParty.supplier if self is SigningParty.buyer else SigningParty.buyer


@dataclass(frozen=True)
class Unsigned:
    pass


@dataclass(frozen=True)
class PartiallySigned:
    by: SigningParty


@dataclass(frozen=True)
class FullySigned:
    pass


SigningState = Union[Unsigned, PartiallySigned, FullySigned]


def signing_state_from(
    signed_by_buyer_at: Optional[datetime],
    signed_by_supplier_at: Optional[datetime],
) -> SigningState:
    if signed_by_buyer_at is not None and signed_by_supplier_at is not None:
        return FullySigned()
    if signed_by_buyer_at is not None:
        return PartiallySigned(by=SigningParty.buyer)
    if signed_by_supplier_at is not None:
        return PartiallySigned(by=SigningParty.supplier)
    return Unsigned()


def signing_rank(state: SigningState) -> int:
    """Ordering used to assert that signing never moves backwards."""

    if isinstance(state, FullySigned):
        return 2
    if isinstance(state, PartiallySigned):
        return 1
    return 0
