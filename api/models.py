"""
API data models for the quoting system.
Pydantic models for request/response validation.
"""

from enum import Enum
from typing import Optional, List, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from pricing import QuoteStatus


class MaterialUnit(str, Enum):
    """材料计量单位枚举"""
    KG = "kg"
    CUBIC_METER = "m³"
    METER = "m"
    UNIT = "unit"
    LITER = "l"
    SQUARE_METER = "m²"


# === Requests ===

class MaterialCreate(BaseModel):
    """新建材料请求"""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., description="材料名称", min_length=1, max_length=100)
    unit: MaterialUnit = Field(..., description="计量单位")
    unit_price: float = Field(..., description="单价", ge=0)
    description: Optional[str] = Field(None, description="描述", max_length=500)
    active: bool = Field(True, description="是否启用")


class MaterialUpdate(BaseModel):
    """更新材料请求，仅修改提供的字段"""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    unit: Optional[MaterialUnit] = None
    unit_price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)
    active: Optional[bool] = None


class LineItemIn(BaseModel):
    """报价材料明细"""
    material_id: int = Field(..., description="材料ID")
    quantity: float = Field(..., description="数量", ge=0.01)
    unit_price: Optional[float] = Field(None, description="单价，缺省或为 0 时取材料单价", ge=0)
    custom_price: Optional[float] = Field(None, description="自定义单价，优先于单价（0 也生效）", ge=0)


class LaborIn(BaseModel):
    """人工费用输入"""
    hours: float = Field(0, description="工时", ge=0)
    rate_per_hour: Optional[float] = Field(None, description="每小时费率", ge=0)


class PaintingIn(BaseModel):
    """涂装费用输入"""
    area_sq_meters: float = Field(0, description="涂装面积（平方米）", ge=0)
    rate_per_sq_meter: Optional[float] = Field(None, description="每平方米费率", ge=0)


class QuoteCreate(BaseModel):
    """新建报价请求；编号和合计由服务端生成"""
    model_config = ConfigDict(str_strip_whitespace=True)

    client: str = Field(..., description="客户名称", min_length=1, max_length=100)
    project: str = Field(..., description="项目描述", min_length=1, max_length=500)
    line_items: List[LineItemIn] = Field(default_factory=list, description="材料明细")
    labor: Optional[LaborIn] = None
    painting: Optional[PaintingIn] = None
    notes: Optional[str] = Field(None, description="备注", max_length=1000)
    expires_at: Optional[datetime] = Field(None, description="有效期")


class QuoteUpdate(BaseModel):
    """更新报价请求；请求中的编号会被忽略"""
    model_config = ConfigDict(str_strip_whitespace=True)

    client: Optional[str] = Field(None, min_length=1, max_length=100)
    project: Optional[str] = Field(None, min_length=1, max_length=500)
    line_items: Optional[List[LineItemIn]] = None
    labor: Optional[LaborIn] = None
    painting: Optional[PaintingIn] = None
    status: Optional[QuoteStatus] = None
    notes: Optional[str] = Field(None, max_length=1000)
    expires_at: Optional[datetime] = None


class StatusUpdate(BaseModel):
    """报价状态修改请求"""
    status: QuoteStatus = Field(..., description="目标状态")


# === Responses ===

class MaterialResponse(BaseModel):
    """材料响应模型"""
    id: int
    name: str
    unit: str
    unit_price: float
    unit_price_formatted: str
    description: Optional[str] = None
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MaterialSummary(BaseModel):
    """报价明细中引用的材料摘要"""
    id: int
    name: str
    unit: str
    unit_price: float


class LineItemResponse(BaseModel):
    id: int
    material_id: int
    material: Optional[MaterialSummary] = None
    quantity: float
    unit_price: float
    custom_price: Optional[float] = None
    line_subtotal: float


class LaborResponse(BaseModel):
    hours: float
    rate_per_hour: float
    total: float


class PaintingResponse(BaseModel):
    area_sq_meters: float
    rate_per_sq_meter: float
    total: float


class QuoteResponse(BaseModel):
    """报价响应模型"""
    id: int
    number: str
    client: str
    project: str
    line_items: List[LineItemResponse]
    labor: LaborResponse
    painting: PaintingResponse
    materials_subtotal: float
    grand_total: float
    grand_total_formatted: str
    status: QuoteStatus
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    """分页信息"""
    page: int
    limit: int
    pages: int


class ApiResponse(BaseModel):
    """统一响应包装"""
    success: bool = True
    data: Optional[Any] = None
    message: Optional[str] = None
    count: Optional[int] = None
    total: Optional[int] = None
    pagination: Optional[Pagination] = None


class ErrorResponse(BaseModel):
    """错误响应模型"""
    success: bool = False
    error: str
    error_code: Optional[str] = None
    traceback: Optional[str] = None
