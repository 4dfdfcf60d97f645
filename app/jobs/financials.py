# app/jobs/financials.py
"""
Money split for a completed job.

One formula, used everywhere fees are computed or shown:

    net_amount         = max(0, final_price - material_fees)
    processing_fee     = final_price * 2.9% + 0.30
    platform_fee       = net_amount * tier_rate
    contractor_payout  = max(0, net_amount - processing_fee - platform_fee)
    net_platform_rev   = platform_fee

Every output is rounded to cents, half-up. Components are rounded before the
payout subtraction so that payout + platform_fee never exceeds net_amount.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from app.jobs.errors import ValidationError
from app.jobs.model import ContractorTier

CENT = Decimal("0.01")
ZERO = Decimal("0")

PROCESSING_FEE_PERCENT = Decimal("0.029")
PROCESSING_FEE_FIXED = Decimal("0.30")

TIER_RATES: dict[ContractorTier, Decimal] = {
    ContractorTier.BRONZE: Decimal("0.20"),
    ContractorTier.SILVER: Decimal("0.15"),
    ContractorTier.GOLD: Decimal("0.10"),
}

_FORMATTED_MONEY = re.compile(r"^(-?)\s*\$?\s*(-?)(\d{1,3}(?:,\d{3})+|\d+)(\.\d+)?$")


def to_money(value: Any) -> Optional[Decimal]:
    """
    Parse a price-like value ("$1,250.00", 85, "85.5") into a Decimal.
    Returns None for missing or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            d = Decimal(str(value))
        except InvalidOperation:
            return None
        return d if d.is_finite() else None

    text = str(value).strip()
    try:
        d = Decimal(text)
    except InvalidOperation:
        # "$1,250.00": currency sign and thousands separators only
        m = _FORMATTED_MONEY.match(text)
        if not m or (m.group(1) and m.group(2)):
            return None
        sign = m.group(1) or m.group(2)
        d = Decimal(sign + m.group(3).replace(",", "") + (m.group(4) or ""))
    return d if d.is_finite() else None


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def tier_rate(tier: Any) -> Decimal:
    return TIER_RATES[ContractorTier.coerce(tier)]


@dataclass(frozen=True)
class Financials:
    final_price: Optional[Decimal]
    material_fees: Optional[Decimal]
    contractor_tier: Optional[ContractorTier]
    net_amount: Optional[Decimal]
    processing_fee: Optional[Decimal]
    platform_fee: Optional[Decimal]
    contractor_payout: Optional[Decimal]
    net_platform_revenue: Optional[Decimal]

    @classmethod
    def empty(cls) -> "Financials":
        return cls(
            final_price=None,
            material_fees=None,
            contractor_tier=None,
            net_amount=None,
            processing_fee=None,
            platform_fee=None,
            contractor_payout=None,
            net_platform_revenue=None,
        )

    @property
    def is_priced(self) -> bool:
        return self.final_price is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "final_price": self.final_price,
            "material_fees": self.material_fees,
            "contractor_tier": self.contractor_tier.value if self.contractor_tier else None,
            "net_amount": self.net_amount,
            "processing_fee": self.processing_fee,
            "platform_fee": self.platform_fee,
            "contractor_payout": self.contractor_payout,
            "net_platform_revenue": self.net_platform_revenue,
        }


def compute_financials(
    final_price: Any,
    material_fees: Any,
    contractor_tier: Any,
    *,
    processing_percent: Decimal = PROCESSING_FEE_PERCENT,
    processing_fixed: Decimal = PROCESSING_FEE_FIXED,
) -> Financials:
    tier = ContractorTier.coerce(contractor_tier)

    materials = to_money(material_fees)
    if materials is None or materials < ZERO:
        materials = ZERO

    price = to_money(final_price)
    if price is None:
        # not priced yet; caller keeps the job out of the payout queue
        return Financials.empty()
    if price < ZERO:
        raise ValidationError("final_price", "must not be negative")

    net = max(ZERO, price - materials)
    net_amount = round_money(net)
    processing_fee = round_money(price * processing_percent + processing_fixed)
    platform_fee = round_money(net * TIER_RATES[tier])
    contractor_payout = max(ZERO, net_amount - processing_fee - platform_fee)

    return Financials(
        final_price=round_money(price),
        material_fees=round_money(materials),
        contractor_tier=tier,
        net_amount=net_amount,
        processing_fee=processing_fee,
        platform_fee=platform_fee,
        contractor_payout=round_money(contractor_payout),
        net_platform_revenue=platform_fee,
    )
