"""
Quote Manager for the quoting system.
Service layer between the API and the database: material reference checks,
the prepare-for-storage step (totals and numbering), status transitions and reporting.
"""

from __future__ import annotations
import functools
import io
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple

from utils import (
    qm_logger, config_manager, log_execution, LogContext,
    NotFoundError, MaterialReferenceError, ErrorCodes
)
from pricing import (
    QuoteDraft, LineItemDraft, LaborBlock, PaintingBlock,
    QuoteNumberGenerator, apply_totals, validate_transition
)
from pricing.numbering import SequenceSource


class QuoteManager:
    """报价业务管理器"""

    def __init__(self, db_ops=None, number_generator: QuoteNumberGenerator = None):
        self.config = config_manager
        self.quote_config = self.config.get_quote_config()

        if db_ops is None:
            # 使用统一的数据库操作实例
            from database import db_ops
        self.db_ops = db_ops
        self.number_generator = number_generator or QuoteNumberGenerator(self.quote_config.number_prefix)

    @log_execution("QuoteManager", "initialize")
    async def initialize(self) -> None:
        """初始化数据库连接并建表"""
        self.db_ops.initialize()

    async def close(self) -> None:
        await self.db_ops.close()

    # === Materials ===

    async def list_materials(self, search: str = None, active: Optional[bool] = None,
                             page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return await self.db_ops.get_materials(search=search, active=active, page=page, limit=limit)

    async def get_active_materials(self) -> List[Dict[str, Any]]:
        return await self.db_ops.get_active_materials()

    async def get_material(self, material_id: int) -> Dict[str, Any]:
        material = await self.db_ops.get_material(material_id)
        if material is None:
            raise NotFoundError(
                f"Material with ID {material_id} not found",
                ErrorCodes.MATERIAL_NOT_FOUND,
                {'material_id': material_id}
            )
        return material

    @log_execution("QuoteManager", "create_material")
    async def create_material(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.db_ops.create_material(data)

    @log_execution("QuoteManager", "update_material")
    async def update_material(self, material_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        material = await self.db_ops.update_material(material_id, data)
        if material is None:
            raise NotFoundError(
                f"Material with ID {material_id} not found",
                ErrorCodes.MATERIAL_NOT_FOUND,
                {'material_id': material_id}
            )
        return material

    @log_execution("QuoteManager", "delete_material")
    async def delete_material(self, material_id: int) -> None:
        if not await self.db_ops.delete_material(material_id):
            raise NotFoundError(
                f"Material with ID {material_id} not found",
                ErrorCodes.MATERIAL_NOT_FOUND,
                {'material_id': material_id}
            )

    async def get_material_statistics(self) -> Dict[str, Any]:
        return await self.db_ops.get_material_statistics()

    # === Quote preparation ===

    def build_draft(self, data: Dict[str, Any]) -> QuoteDraft:
        """请求数据转换为报价草稿，未提供的费率取配置默认值"""
        labor = data.get('labor') or {}
        painting = data.get('painting') or {}

        labor_rate = labor.get('rate_per_hour')
        painting_rate = painting.get('rate_per_sq_meter')

        return QuoteDraft(
            client=data['client'],
            project=data['project'],
            line_items=[
                LineItemDraft(
                    material_id=int(item['material_id']),
                    quantity=float(item['quantity']),
                    unit_price=float(item.get('unit_price') or 0.0),
                    custom_price=item.get('custom_price'),
                )
                for item in data.get('line_items') or []
            ],
            labor=LaborBlock(
                hours=float(labor.get('hours') or 0.0),
                rate_per_hour=float(self.quote_config.default_labor_rate if labor_rate is None else labor_rate),
            ),
            painting=PaintingBlock(
                area_sq_meters=float(painting.get('area_sq_meters') or 0.0),
                rate_per_sq_meter=float(
                    self.quote_config.default_painting_rate if painting_rate is None else painting_rate
                ),
            ),
            status=data.get('status') or 'draft',
            notes=data.get('notes'),
            expires_at=data.get('expires_at'),
        )

    async def resolve_line_items(self, draft: QuoteDraft) -> QuoteDraft:
        """校验明细引用的材料存在，并补全明细单价

        unit_price 缺省或为 0 时都取材料当前单价；要按 0 计价需传 custom_price=0
        """
        material_ids = [item.material_id for item in draft.line_items]
        materials = await self.db_ops.get_materials_by_ids(material_ids)

        for item in draft.line_items:
            material = materials.get(item.material_id)
            if material is None:
                raise MaterialReferenceError(
                    f"Material with ID {item.material_id} not found",
                    ErrorCodes.MATERIAL_REFERENCE_MISSING,
                    {'material_id': item.material_id}
                )
            if not item.unit_price:
                item.unit_price = material['unit_price']

        return draft

    async def prepare_quote_for_storage(self, draft: QuoteDraft,
                                        next_sequence: Optional[SequenceSource] = None,
                                        now: Optional[datetime] = None) -> QuoteDraft:
        """写入前的统一处理：重新计算合计；新建报价时按创建时间 now 分配编号"""
        apply_totals(draft)
        if next_sequence is not None:
            await self.number_generator.assign(draft, next_sequence, now=now)
        return draft

    # === Quotes ===

    async def get_quote(self, quote_id: int) -> Dict[str, Any]:
        quote = await self.db_ops.get_quote(quote_id)
        if quote is None:
            raise NotFoundError(
                f"Quote with ID {quote_id} not found",
                ErrorCodes.QUOTE_NOT_FOUND,
                {'quote_id': quote_id}
            )
        return quote

    async def list_quotes(self, search: str = None, status: str = None, client: str = None,
                          sort: str = None, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return await self.db_ops.get_quotes(search=search, status=status, client=client,
                                            sort=sort, page=page, limit=limit)

    async def get_recent_quotes(self, limit: int = 5) -> List[Dict[str, Any]]:
        return await self.db_ops.get_recent_quotes(limit)

    async def get_quotes_by_client(self, client: str, page: int = 1,
                                   limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return await self.db_ops.get_quotes_by_client(client, page=page, limit=limit)

    async def get_clients_summary(self) -> List[Dict[str, Any]]:
        return await self.db_ops.get_clients_summary()

    async def get_quote_statistics(self) -> Dict[str, Any]:
        return await self.db_ops.get_quote_statistics()

    @log_execution("QuoteManager", "create_quote")
    async def create_quote(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """新建报价：状态固定为草稿，编号由系统生成"""
        draft = self.build_draft({**data, 'status': 'draft'})
        await self.resolve_line_items(draft)

        # 编号年月与 created_at 取自同一次时钟读数
        created_at = self.number_generator.clock()
        quote = await self.db_ops.create_quote(
            draft,
            functools.partial(self.prepare_quote_for_storage, now=created_at),
            max_retries=self.quote_config.number_max_retries,
            created_at=created_at,
        )
        qm_logger.info(f"[QuoteManager] Quote {quote['number']} created for {quote['client']} "
                       f"(total={quote['grand_total']:.2f})")
        return quote

    @log_execution("QuoteManager", "update_quote")
    async def update_quote(self, quote_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """更新报价，编号不可修改；合计重新计算"""
        current = await self.get_quote(quote_id)

        merged = {
            'client': data.get('client') or current['client'],
            'project': data.get('project') or current['project'],
            'labor': {**current['labor'], **{k: v for k, v in (data.get('labor') or {}).items() if v is not None}},
            'painting': {**current['painting'],
                         **{k: v for k, v in (data.get('painting') or {}).items() if v is not None}},
            'notes': data['notes'] if 'notes' in data else current['notes'],
            'expires_at': data['expires_at'] if 'expires_at' in data else current['expires_at'],
            'status': current['status'],
            'line_items': data['line_items'] if data.get('line_items') is not None else current['line_items'],
        }

        new_status = data.get('status')
        if new_status is not None and new_status != current['status']:
            merged['status'] = validate_transition(current['status'], new_status).value

        draft = self.build_draft(merged)
        draft.number = current['number']
        if data.get('line_items') is not None:
            await self.resolve_line_items(draft)

        await self.prepare_quote_for_storage(draft)
        quote = await self.db_ops.update_quote(quote_id, draft)
        if quote is None:
            raise NotFoundError(
                f"Quote with ID {quote_id} not found",
                ErrorCodes.QUOTE_NOT_FOUND,
                {'quote_id': quote_id}
            )
        return quote

    async def update_quote_status(self, quote_id: int, status: str) -> Dict[str, Any]:
        """修改报价状态，相同状态视为无操作"""
        with LogContext("QuoteManager", "update_quote_status", quote_id=quote_id,
                        extra_context={'status': status}):
            current = await self.get_quote(quote_id)
            target = validate_transition(current['status'], status)
            if target.value == current['status']:
                return current

            quote = await self.db_ops.update_quote_status(quote_id, target.value)
            if quote is None:
                raise NotFoundError(
                    f"Quote with ID {quote_id} not found",
                    ErrorCodes.QUOTE_NOT_FOUND,
                    {'quote_id': quote_id}
                )
            qm_logger.info(f"[QuoteManager] Quote {quote['number']} moved {current['status']} -> {target.value}")
            return quote

    @log_execution("QuoteManager", "delete_quote")
    async def delete_quote(self, quote_id: int) -> None:
        if not await self.db_ops.delete_quote(quote_id):
            raise NotFoundError(
                f"Quote with ID {quote_id} not found",
                ErrorCodes.QUOTE_NOT_FOUND,
                {'quote_id': quote_id}
            )

    @log_execution("QuoteManager", "export_quotes_csv")
    async def export_quotes_csv(self, search: str = None, status: str = None,
                                client: str = None, sort: str = None) -> str:
        """按列表相同的筛选条件导出 CSV"""
        df = await self.db_ops.get_quotes_dataframe(search=search, status=status, client=client, sort=sort)
        if not df.empty:
            df['created_at'] = df['created_at'].map(lambda value: value.strftime('%Y-%m-%d %H:%M:%S'))

        buffer = io.StringIO()
        df.to_csv(buffer, index=False, float_format='%.2f')
        return buffer.getvalue()

    # === Dashboard ===

    async def get_dashboard_statistics(self) -> Dict[str, Any]:
        return await self.db_ops.get_dashboard_statistics()

    async def get_recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.db_ops.get_recent_activity(limit)

    async def get_dashboard_summary(self) -> Dict[str, Any]:
        return await self.db_ops.get_dashboard_summary()


# 全局报价管理器实例
quote_manager = QuoteManager()
