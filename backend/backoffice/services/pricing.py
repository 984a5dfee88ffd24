"""
Pure monetary computations for sale lines and sale headers.

PRECEDENCE RULE:
    A percentage discount (or surcharge) greater than zero always wins over
    the stored absolute value; the two are never added together.

ROUNDING:
    Each component (subtotal, discount, surcharge) is quantized to cents
    before the total is assembled, so the stored total always equals the
    arithmetic of the stored components.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from ..money import HUNDRED, ZERO, percent_of, quantize_money, to_decimal


@dataclass(frozen=True)
class LineTotals:
    subtotal: Decimal
    discount: Decimal
    surcharge: Decimal
    total: Decimal
    margin: Optional[Decimal]

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "surcharge": str(self.surcharge),
            "total": str(self.total),
            "margin": str(self.margin) if self.margin is not None else None,
        }


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    discount: Decimal
    surcharge: Decimal
    freight: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "surcharge": str(self.surcharge),
            "freight": str(self.freight),
            "total": str(self.total),
        }


def adjustment(base: Decimal, pct, value) -> Decimal:
    """Percentage of base when pct > 0, else the absolute value."""
    pct = to_decimal(pct, "pct")
    if pct > 0:
        return quantize_money(percent_of(base, pct))
    return quantize_money(to_decimal(value, "value"))


def margin_pct(revenue: Decimal, cost_basis: Decimal) -> Optional[Decimal]:
    """(revenue - cost) / cost * 100, or None when the cost basis is zero."""
    if cost_basis == 0:
        return None
    return quantize_money((revenue - cost_basis) / cost_basis * HUNDRED)


def compute_line_totals(
    *,
    quantity,
    unit_price,
    unit_cost=ZERO,
    discount_pct=ZERO,
    discount_value=ZERO,
    surcharge_pct=ZERO,
    surcharge_value=ZERO,
) -> LineTotals:
    quantity = to_decimal(quantity, "quantity")
    unit_price = to_decimal(unit_price, "unit_price")
    unit_cost = to_decimal(unit_cost, "unit_cost")

    subtotal = quantize_money(unit_price * quantity)
    discount = adjustment(subtotal, discount_pct, discount_value)
    surcharge = adjustment(subtotal, surcharge_pct, surcharge_value)
    total = subtotal - discount + surcharge

    return LineTotals(
        subtotal=subtotal,
        discount=discount,
        surcharge=surcharge,
        total=total,
        margin=margin_pct(total, unit_cost * quantity),
    )


def compute_sale_totals(
    *,
    line_totals: Iterable[Decimal],
    discount_pct=ZERO,
    discount_value=ZERO,
    surcharge_pct=ZERO,
    surcharge_value=ZERO,
    freight=ZERO,
) -> SaleTotals:
    subtotal = quantize_money(sum((to_decimal(t) for t in line_totals), ZERO))
    discount = adjustment(subtotal, discount_pct, discount_value)
    surcharge = adjustment(subtotal, surcharge_pct, surcharge_value)
    freight = quantize_money(to_decimal(freight, "freight"))

    return SaleTotals(
        subtotal=subtotal,
        discount=discount,
        surcharge=surcharge,
        freight=freight,
        total=subtotal - discount + surcharge + freight,
    )


def apply_line_totals(line) -> LineTotals:
    """Recompute and cache totals on a SaleLine after any field change."""
    totals = compute_line_totals(
        quantity=line.quantity,
        unit_price=line.unit_price,
        unit_cost=line.unit_cost,
        discount_pct=line.discount_pct,
        discount_value=line.discount_value,
        surcharge_pct=line.surcharge_pct,
        surcharge_value=line.surcharge_value,
    )
    line.total = totals.total
    line.margin = totals.margin
    return totals


def apply_sale_totals(sale) -> SaleTotals:
    """Recompute and cache header totals on a Sale; call before persisting."""
    totals = compute_sale_totals(
        line_totals=[line.total for line in sale.lines],
        discount_pct=sale.discount_pct,
        discount_value=sale.discount_value,
        surcharge_pct=sale.surcharge_pct,
        surcharge_value=sale.surcharge_value,
        freight=sale.freight,
    )
    sale.subtotal = totals.subtotal
    sale.total = totals.total
    return totals
