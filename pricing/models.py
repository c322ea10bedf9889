"""
Plain quote structures handed to the calculator and number generator.
These carry no database or HTTP state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class LineItemDraft:
    """报价材料明细

    unit_price 为 0 视为未填，由材料单价补全；custom_price 不为 None 时（含 0）优先计价
    """
    material_id: int
    quantity: float
    unit_price: float = 0.0
    custom_price: Optional[float] = None
    line_subtotal: float = 0.0


@dataclass
class LaborBlock:
    """人工费用"""
    hours: float = 0.0
    rate_per_hour: float = 25.0
    total: float = 0.0


@dataclass
class PaintingBlock:
    """涂装费用"""
    area_sq_meters: float = 0.0
    rate_per_sq_meter: float = 15.0
    total: float = 0.0


@dataclass
class QuoteDraft:
    """待持久化的报价"""
    client: str
    project: str
    line_items: List[LineItemDraft] = field(default_factory=list)
    labor: LaborBlock = field(default_factory=LaborBlock)
    painting: PaintingBlock = field(default_factory=PaintingBlock)
    materials_subtotal: float = 0.0
    grand_total: float = 0.0
    status: str = "draft"
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    number: Optional[str] = None
