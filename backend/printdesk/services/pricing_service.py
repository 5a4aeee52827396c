# Overview: Pricing engine for print jobs; pure functions, no database access.

"""
Pricing Engine

RULES:
- total_pages = distinct selected pages * copies
- color jobs print every page in color, otherwise every page is B&W
- subtotal = bw_pages * BW_RATE + color_pages * COLOR_RATE
- maintenance_fee = total_pages * MAINTENANCE_RATE
- total = subtotal + maintenance_fee

Amounts are Decimal, quantized to 2 places. The same inputs always give the
same breakdown, so an order's stored price can be re-derived at any time.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ..schemas import PrintOptions


BW_RATE = Decimal("1")
COLOR_RATE = Decimal("2")
MAINTENANCE_RATE = Decimal("0.20")

CENTS = Decimal("0.01")


class PricingError(ValueError):
    """Raised for inputs the engine cannot price."""


@dataclass(frozen=True)
class PriceBreakdown:
    bw_pages: int
    color_pages: int
    total_pages: int
    subtotal: Decimal
    maintenance_fee: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "bwPages": self.bw_pages,
            "colorPages": self.color_pages,
            "totalPages": self.total_pages,
            "subtotal": str(self.subtotal),
            "maintenanceFee": str(self.maintenance_fee),
            "total": str(self.total),
        }


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def price_page_count(page_count: int, *, color: bool, copies: int) -> PriceBreakdown:
    if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count < 0:
        raise PricingError("page_count must be a non-negative integer")
    if isinstance(copies, bool) or not isinstance(copies, int) or copies < 1:
        raise PricingError("copies must be at least 1")

    total_pages = page_count * copies
    color_pages = total_pages if color else 0
    bw_pages = 0 if color else total_pages

    subtotal = bw_pages * BW_RATE + color_pages * COLOR_RATE
    maintenance_fee = total_pages * MAINTENANCE_RATE

    return PriceBreakdown(
        bw_pages=bw_pages,
        color_pages=color_pages,
        total_pages=total_pages,
        subtotal=_money(subtotal),
        maintenance_fee=_money(maintenance_fee),
        total=_money(subtotal + maintenance_fee),
    )


def price(selected_page_ids: Iterable[int], *, color: bool, copies: int) -> PriceBreakdown:
    """Price a selection of page ids; duplicates count once."""
    pages = set()
    for page_id in selected_page_ids:
        if isinstance(page_id, bool) or not isinstance(page_id, int) or page_id < 0:
            raise PricingError(f"Invalid page id: {page_id!r}")
        pages.add(page_id)
    return price_page_count(len(pages), color=color, copies=copies)


def quote(selected_page_ids: Iterable[int], options: PrintOptions) -> PriceBreakdown:
    return price(selected_page_ids, color=options.color, copies=options.copies)
