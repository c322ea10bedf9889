"""
Quote total calculator.

Totals are always derived from the quote inputs:

    line_subtotal      = (custom_price if set else unit_price) * quantity
    materials_subtotal = sum(line_subtotal)
    labor.total        = hours * rate_per_hour
    painting.total     = area_sq_meters * rate_per_sq_meter
    grand_total        = materials_subtotal + labor.total + painting.total

Plain float arithmetic, no rounding. Rounding belongs to the display layer.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .models import LineItemDraft, QuoteDraft


@dataclass
class QuoteTotals:
    """报价合计结果"""
    line_subtotals: List[float] = field(default_factory=list)
    materials_subtotal: float = 0.0
    labor_total: float = 0.0
    painting_total: float = 0.0
    grand_total: float = 0.0


def effective_price(unit_price: Optional[float], custom_price: Optional[float]) -> float:
    """自定义价格存在时优先（0 也是有效的自定义价格）"""
    if custom_price is not None:
        return float(custom_price)
    return float(unit_price or 0.0)


def line_subtotal(quantity: float, unit_price: Optional[float], custom_price: Optional[float] = None) -> float:
    return effective_price(unit_price, custom_price) * float(quantity)


def calculate_totals(line_items: Iterable[LineItemDraft],
                     labor_hours: float = 0.0, labor_rate: float = 0.0,
                     painting_area: float = 0.0, painting_rate: float = 0.0) -> QuoteTotals:
    """计算报价合计，不修改输入"""
    subtotals = [line_subtotal(item.quantity, item.unit_price, item.custom_price) for item in line_items]
    materials_subtotal = sum(subtotals, 0.0)
    labor_total = float(labor_hours or 0.0) * float(labor_rate or 0.0)
    painting_total = float(painting_area or 0.0) * float(painting_rate or 0.0)

    return QuoteTotals(
        line_subtotals=subtotals,
        materials_subtotal=materials_subtotal,
        labor_total=labor_total,
        painting_total=painting_total,
        grand_total=materials_subtotal + labor_total + painting_total,
    )


def apply_totals(draft: QuoteDraft) -> QuoteDraft:
    """将计算结果写回报价，调用方传入的合计字段一律覆盖"""
    totals = calculate_totals(
        draft.line_items,
        labor_hours=draft.labor.hours,
        labor_rate=draft.labor.rate_per_hour,
        painting_area=draft.painting.area_sq_meters,
        painting_rate=draft.painting.rate_per_sq_meter,
    )

    for item, subtotal in zip(draft.line_items, totals.line_subtotals):
        item.line_subtotal = subtotal

    draft.labor.total = totals.labor_total
    draft.painting.total = totals.painting_total
    draft.materials_subtotal = totals.materials_subtotal
    draft.grand_total = totals.grand_total
    return draft
