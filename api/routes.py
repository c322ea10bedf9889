"""
API routes for the quoting system.
Materials catalog, quotes and dashboard endpoints.
"""

import math
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from quote_manager import quote_manager
from utils import get_local_time
from .models import (
    MaterialCreate, MaterialUpdate, MaterialResponse,
    QuoteCreate, QuoteUpdate, StatusUpdate, QuoteResponse,
    ApiResponse, Pagination, QuoteStatus
)

router = APIRouter()


def _paginated(items: List[Any], total: int, page: int, limit: int) -> ApiResponse:
    return ApiResponse(
        success=True,
        data=items,
        count=len(items),
        total=total,
        pagination=Pagination(page=page, limit=limit, pages=math.ceil(total / limit) if total else 0),
    )


def _first_set(*values):
    """英文参数优先，兼容西班牙语别名"""
    for value in values:
        if value is not None:
            return value
    return None


def _materials(items: List[Dict[str, Any]]) -> List[MaterialResponse]:
    return [MaterialResponse(**m) for m in items]


def _quotes(items: List[Dict[str, Any]]) -> List[QuoteResponse]:
    return [QuoteResponse(**q) for q in items]


# Materials
@router.get("/materials", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Materials"])
async def list_materials(
    search: Optional[str] = Query(None, description="按名称模糊搜索"),
    active: Optional[bool] = Query(None, description="是否启用"),
    activo: Optional[bool] = Query(None, include_in_schema=False),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(10, ge=1, le=100, description="每页数量")
):
    """获取材料列表"""
    materials, total = await quote_manager.list_materials(
        search=search, active=_first_set(active, activo), page=page, limit=limit
    )
    return _paginated(_materials(materials), total, page, limit)


@router.get("/materials/active", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Materials"])
async def list_active_materials():
    """获取全部启用材料"""
    materials = await quote_manager.get_active_materials()
    return ApiResponse(success=True, data=_materials(materials), count=len(materials))


@router.get("/materials/stats", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Materials"])
async def material_statistics():
    """材料统计"""
    return ApiResponse(success=True, data=await quote_manager.get_material_statistics())


@router.get("/materials/{material_id}", response_model=ApiResponse, response_model_exclude_unset=True,
            tags=["Materials"])
async def get_material(material_id: int):
    material = await quote_manager.get_material(material_id)
    return ApiResponse(success=True, data=MaterialResponse(**material))


@router.post("/materials", status_code=201, response_model=ApiResponse, response_model_exclude_unset=True,
             tags=["Materials"])
async def create_material(payload: MaterialCreate):
    """新建材料"""
    material = await quote_manager.create_material(payload.model_dump(mode="json"))
    return ApiResponse(success=True, data=MaterialResponse(**material), message="Material created successfully")


@router.put("/materials/{material_id}", response_model=ApiResponse, response_model_exclude_unset=True,
            tags=["Materials"])
async def update_material(material_id: int, payload: MaterialUpdate):
    """更新材料"""
    material = await quote_manager.update_material(material_id, payload.model_dump(mode="json", exclude_unset=True))
    return ApiResponse(success=True, data=MaterialResponse(**material), message="Material updated successfully")


@router.delete("/materials/{material_id}", response_model=ApiResponse, response_model_exclude_unset=True,
               tags=["Materials"])
async def delete_material(material_id: int):
    """删除材料（已有报价明细不受影响）"""
    await quote_manager.delete_material(material_id)
    return ApiResponse(success=True, data={}, message="Material deleted successfully")


# Quotes
@router.get("/quotes", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Quotes"])
async def list_quotes(
    search: Optional[str] = Query(None, description="按编号、客户或项目搜索"),
    status: Optional[QuoteStatus] = Query(None, description="报价状态"),
    estado: Optional[QuoteStatus] = Query(None, include_in_schema=False),
    client: Optional[str] = Query(None, description="客户名称（模糊匹配）"),
    cliente: Optional[str] = Query(None, include_in_schema=False),
    sort: str = Query("-created_at", description="排序字段，'-' 前缀表示降序"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100)
):
    """获取报价列表"""
    status = _first_set(status, estado)
    quotes, total = await quote_manager.list_quotes(
        search=search,
        status=status.value if status else None,
        client=_first_set(client, cliente),
        sort=sort,
        page=page,
        limit=limit,
    )
    return _paginated(_quotes(quotes), total, page, limit)


@router.get("/quotes/stats", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Quotes"])
async def quote_statistics():
    """报价统计"""
    return ApiResponse(success=True, data=await quote_manager.get_quote_statistics())


@router.get("/quotes/recent", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Quotes"])
async def recent_quotes(limit: int = Query(5, ge=1, le=100)):
    """最近的报价"""
    quotes = await quote_manager.get_recent_quotes(limit)
    return ApiResponse(success=True, data=_quotes(quotes), count=len(quotes))


@router.get("/quotes/clients", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Quotes"])
async def clients_summary():
    """按客户汇总"""
    clients = await quote_manager.get_clients_summary()
    return ApiResponse(success=True, data=clients, count=len(clients))


@router.get("/quotes/export", tags=["Quotes"])
async def export_quotes(
    search: Optional[str] = Query(None),
    status: Optional[QuoteStatus] = Query(None),
    estado: Optional[QuoteStatus] = Query(None, include_in_schema=False),
    client: Optional[str] = Query(None),
    cliente: Optional[str] = Query(None, include_in_schema=False),
    sort: str = Query("-created_at")
):
    """导出报价为 CSV"""
    status = _first_set(status, estado)
    csv_data = await quote_manager.export_quotes_csv(
        search=search,
        status=status.value if status else None,
        client=_first_set(client, cliente),
        sort=sort,
    )
    filename = f"quotes_{get_local_time().strftime('%Y%m%d')}.csv"
    return StreamingResponse(
        iter([csv_data]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get("/quotes/client/{client}", response_model=ApiResponse, response_model_exclude_unset=True,
            tags=["Quotes"])
async def quotes_by_client(
    client: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100)
):
    """按客户查询报价"""
    quotes, total = await quote_manager.get_quotes_by_client(client, page=page, limit=limit)
    return _paginated(_quotes(quotes), total, page, limit)


@router.get("/quotes/{quote_id}", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Quotes"])
async def get_quote(quote_id: int):
    quote = await quote_manager.get_quote(quote_id)
    return ApiResponse(success=True, data=QuoteResponse(**quote))


@router.post("/quotes", status_code=201, response_model=ApiResponse, response_model_exclude_unset=True,
             tags=["Quotes"])
async def create_quote(payload: QuoteCreate):
    """新建报价，自动计算合计并生成编号"""
    quote = await quote_manager.create_quote(payload.model_dump())
    return ApiResponse(success=True, data=QuoteResponse(**quote), message="Quote created successfully")


@router.put("/quotes/{quote_id}", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Quotes"])
async def update_quote(quote_id: int, payload: QuoteUpdate):
    """更新报价，编号保持不变"""
    data = payload.model_dump(exclude_unset=True)
    if payload.status is not None:
        data['status'] = payload.status.value
    quote = await quote_manager.update_quote(quote_id, data)
    return ApiResponse(success=True, data=QuoteResponse(**quote), message="Quote updated successfully")


@router.patch("/quotes/{quote_id}/status", response_model=ApiResponse, response_model_exclude_unset=True,
              tags=["Quotes"])
async def update_quote_status(quote_id: int, payload: StatusUpdate):
    """修改报价状态"""
    quote = await quote_manager.update_quote_status(quote_id, payload.status.value)
    return ApiResponse(success=True, data=QuoteResponse(**quote),
                       message=f"Quote status updated to {quote['status']}")


@router.delete("/quotes/{quote_id}", response_model=ApiResponse, response_model_exclude_unset=True,
               tags=["Quotes"])
async def delete_quote(quote_id: int):
    await quote_manager.delete_quote(quote_id)
    return ApiResponse(success=True, data={}, message="Quote deleted successfully")


# Dashboard
@router.get("/dashboard/stats", response_model=ApiResponse, response_model_exclude_unset=True, tags=["Dashboard"])
async def dashboard_statistics():
    """仪表盘统计（实时计算）"""
    return ApiResponse(success=True, data=await quote_manager.get_dashboard_statistics())


@router.get("/dashboard/recent-activity", response_model=ApiResponse, response_model_exclude_unset=True,
            tags=["Dashboard"])
async def recent_activity(limit: int = Query(10, ge=1, le=50)):
    """最近活动"""
    activity = await quote_manager.get_recent_activity(limit)
    return ApiResponse(success=True, data=activity, count=len(activity))


@router.get("/dashboard/summary", response_model=ApiResponse, response_model_exclude_unset=True,
            tags=["Dashboard"])
async def dashboard_summary():
    """快速摘要"""
    return ApiResponse(success=True, data=await quote_manager.get_dashboard_summary())
