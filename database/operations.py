"""
database operations for the quoting system.
Materials catalog, quotes with line items, per-month numbering counters and reporting queries.
"""

from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple, Callable, Awaitable, Iterable

import pandas as pd
from sqlalchemy import func, update, or_, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
# 异步查询需要 select
from sqlalchemy.future import select

from utils import (
    db_logger, config_manager, log_performance, DateUtils, get_local_time, format_currency,
    QuoteSystemError, DatabaseError, DuplicateKeyError, ValidationError, ErrorCodes
)
from pricing import QuoteDraft, parse_quote_number
from .connection import db_manager, DatabaseManager
from .models import MaterialDB, QuoteDB, QuoteLineItemDB, QuoteCounterDB

# (draft, next_sequence) -> None; fills totals and number before the insert
PrepareHook = Callable[[QuoteDraft, Callable[[int, int], Awaitable[int]]], Awaitable[Any]]

LIKE_ESCAPE = "\\"


def _contains(text: str) -> str:
    """ilike 子串匹配模式，用户输入中的 % 和 _ 按字面匹配"""
    escaped = text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", r"\%").replace("_", r"\_")
    return f"%{escaped}%"


QUOTE_SORT_FIELDS = {
    'created_at': QuoteDB.created_at,
    'updated_at': QuoteDB.updated_at,
    'number': QuoteDB.number,
    'client': QuoteDB.client,
    'grand_total': QuoteDB.grand_total,
    'status': QuoteDB.status,
}

MATERIAL_FIELDS = ('name', 'unit', 'unit_price', 'description', 'active')


def _material_to_dict(material: MaterialDB) -> Dict[str, Any]:
    return {
        'id': material.id,
        'name': material.name,
        'unit': material.unit,
        'unit_price': material.unit_price,
        'unit_price_formatted': format_currency(material.unit_price),
        'description': material.description,
        'active': material.active,
        'created_at': material.created_at,
        'updated_at': material.updated_at,
    }


def _material_summary(material: MaterialDB) -> Dict[str, Any]:
    return {
        'id': material.id,
        'name': material.name,
        'unit': material.unit,
        'unit_price': material.unit_price,
    }


def _quote_to_dict(quote: QuoteDB, materials: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
    """报价转换为字典，明细中附带材料摘要（材料已删除时为 None）"""
    return {
        'id': quote.id,
        'number': quote.number,
        'client': quote.client,
        'project': quote.project,
        'line_items': [
            {
                'id': item.id,
                'material_id': item.material_id,
                'material': materials.get(item.material_id),
                'quantity': item.quantity,
                'unit_price': item.unit_price,
                'custom_price': item.custom_price,
                'line_subtotal': item.line_subtotal,
            }
            for item in quote.line_items
        ],
        'labor': {
            'hours': quote.labor_hours,
            'rate_per_hour': quote.labor_rate_per_hour,
            'total': quote.labor_total,
        },
        'painting': {
            'area_sq_meters': quote.painting_area_sq_meters,
            'rate_per_sq_meter': quote.painting_rate_per_sq_meter,
            'total': quote.painting_total,
        },
        'materials_subtotal': quote.materials_subtotal,
        'grand_total': quote.grand_total,
        'grand_total_formatted': format_currency(quote.grand_total),
        'status': quote.status,
        'notes': quote.notes,
        'expires_at': quote.expires_at,
        'created_at': quote.created_at,
        'updated_at': quote.updated_at,
    }


def _apply_draft(quote: QuoteDB, draft: QuoteDraft) -> None:
    """将已计算的报价草稿写入ORM对象，明细整体替换"""
    quote.client = draft.client
    quote.project = draft.project
    quote.labor_hours = draft.labor.hours
    quote.labor_rate_per_hour = draft.labor.rate_per_hour
    quote.labor_total = draft.labor.total
    quote.painting_area_sq_meters = draft.painting.area_sq_meters
    quote.painting_rate_per_sq_meter = draft.painting.rate_per_sq_meter
    quote.painting_total = draft.painting.total
    quote.materials_subtotal = draft.materials_subtotal
    quote.grand_total = draft.grand_total
    quote.status = draft.status
    quote.notes = draft.notes
    quote.expires_at = draft.expires_at
    quote.line_items = [
        QuoteLineItemDB(
            position=position,
            material_id=item.material_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            custom_price=item.custom_price,
            line_subtotal=item.line_subtotal,
        )
        for position, item in enumerate(draft.line_items)
    ]


def _is_number_conflict(error: IntegrityError) -> bool:
    """编号唯一约束或计数器主键冲突，可重试"""
    message = str(error.orig).lower()
    return 'quotes.number' in message or 'quote_counters.period' in message


class DatabaseOperations:
    """database operations for materials and quotes"""

    def __init__(self, db: DatabaseManager = None, auto_initialize: bool = False):
        self.db = db or db_manager
        self.db_logger = db_logger
        self.config_manager = config_manager

        if auto_initialize:
            self.initialize()

    def initialize(self):
        """初始化数据库连接并建表"""
        try:
            self.db_logger.info("[Database] Initializing DatabaseOperations...")
            self.db.initialize()
            self.db.create_tables()
            self.db_logger.info("[Database] DatabaseOperations initialized successfully")
        except Exception as e:
            self.db_logger.error(f"[Database] Failed to initialize DatabaseOperations: {e}")
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                ErrorCodes.DB_CONNECTION_FAILED
            ) from e

    def get_async_session(self):
        """Get async database session"""
        if not self.db.is_initialized:
            self.initialize()
        return self.db.get_async_session()

    async def close(self):
        await self.db.close()

    def _query_failed(self, action: str, error: Exception) -> DatabaseError:
        self.db_logger.error(f"[Database] Failed to {action}: {error}")
        return DatabaseError(f"Failed to {action}", ErrorCodes.DB_QUERY_FAILED, {'reason': str(error)})

    # === Material Operations ===

    async def get_materials(self, search: str = None, active: Optional[bool] = None,
                            page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        """分页获取材料列表，按名称排序"""
        try:
            async with self.get_async_session() as session:
                stmt = select(MaterialDB)

                if search:
                    stmt = stmt.filter(MaterialDB.name.ilike(_contains(search), escape=LIKE_ESCAPE))

                if active is not None:
                    stmt = stmt.filter(MaterialDB.active == active)

                total = await session.scalar(select(func.count()).select_from(stmt.subquery()))

                stmt = stmt.order_by(MaterialDB.name, MaterialDB.id).limit(limit).offset((page - 1) * limit)
                result = await session.execute(stmt)
                return [_material_to_dict(m) for m in result.scalars().all()], total or 0

        except SQLAlchemyError as e:
            raise self._query_failed("list materials", e) from e

    async def get_active_materials(self) -> List[Dict[str, Any]]:
        """获取全部启用材料（不分页）"""
        try:
            async with self.get_async_session() as session:
                stmt = select(MaterialDB).filter(MaterialDB.active == True).order_by(MaterialDB.name, MaterialDB.id)
                result = await session.execute(stmt)
                return [_material_to_dict(m) for m in result.scalars().all()]

        except SQLAlchemyError as e:
            raise self._query_failed("list active materials", e) from e

    async def get_material(self, material_id: int) -> Optional[Dict[str, Any]]:
        try:
            async with self.get_async_session() as session:
                material = await session.get(MaterialDB, material_id)
                return _material_to_dict(material) if material else None

        except SQLAlchemyError as e:
            raise self._query_failed(f"get material {material_id}", e) from e

    async def get_materials_by_ids(self, material_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        """批量查询材料，返回 {id: material}"""
        ids = {int(i) for i in material_ids}
        if not ids:
            return {}

        try:
            async with self.get_async_session() as session:
                result = await session.execute(select(MaterialDB).filter(MaterialDB.id.in_(ids)))
                return {m.id: _material_to_dict(m) for m in result.scalars().all()}

        except SQLAlchemyError as e:
            raise self._query_failed("look up materials", e) from e

    async def create_material(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self.get_async_session() as session:
                material = MaterialDB(**{k: v for k, v in data.items() if k in MATERIAL_FIELDS})
                session.add(material)
                await session.commit()
                await session.refresh(material)
                self.db_logger.info(f"[Database] Created material {material.id} ({material.name})")
                return _material_to_dict(material)

        except SQLAlchemyError as e:
            raise self._query_failed("create material", e) from e

    async def update_material(self, material_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            async with self.get_async_session() as session:
                material = await session.get(MaterialDB, material_id)
                if material is None:
                    return None

                for key, value in data.items():
                    if key in MATERIAL_FIELDS:
                        setattr(material, key, value)

                await session.commit()
                await session.refresh(material)
                return _material_to_dict(material)

        except SQLAlchemyError as e:
            raise self._query_failed(f"update material {material_id}", e) from e

    async def delete_material(self, material_id: int) -> bool:
        """硬删除材料，已有报价明细保持不变"""
        try:
            async with self.get_async_session() as session:
                material = await session.get(MaterialDB, material_id)
                if material is None:
                    return False

                await session.delete(material)
                await session.commit()
                self.db_logger.info(f"[Database] Deleted material {material_id}")
                return True

        except SQLAlchemyError as e:
            raise self._query_failed(f"delete material {material_id}", e) from e

    @log_performance("Database")
    async def get_material_statistics(self) -> Dict[str, Any]:
        """材料统计：总数、启用数、价格区间及按单位分布"""
        try:
            async with self.get_async_session() as session:
                row = (await session.execute(
                    select(
                        func.count(MaterialDB.id),
                        func.sum(case((MaterialDB.active == True, 1), else_=0)),
                        func.avg(MaterialDB.unit_price),
                        func.min(MaterialDB.unit_price),
                        func.max(MaterialDB.unit_price),
                    )
                )).one()

                total, active, avg_price, min_price, max_price = row
                total = total or 0
                active = active or 0

                count_col = func.count(MaterialDB.id).label('count')
                by_unit_res = await session.execute(
                    select(MaterialDB.unit, count_col)
                    .group_by(MaterialDB.unit)
                    .order_by(count_col.desc(), MaterialDB.unit)
                )

                return {
                    'general': {
                        'total_materials': total,
                        'active_materials': active,
                        'inactive_materials': total - active,
                        'average_price': float(avg_price or 0),
                        'min_price': float(min_price or 0),
                        'max_price': float(max_price or 0),
                    },
                    'by_unit': [{'unit': unit, 'count': count} for unit, count in by_unit_res.all()],
                }

        except SQLAlchemyError as e:
            raise self._query_failed("compute material statistics", e) from e

    # === Quote Numbering ===

    async def _next_sequence(self, session, year: int, month: int) -> int:
        """在当前事务内递增月度计数器；首次出现的月份按当月已有报价数初始化"""
        period = f"{year:04d}{month:02d}"

        stmt = (
            update(QuoteCounterDB)
            .where(QuoteCounterDB.period == period)
            .values(last_value=QuoteCounterDB.last_value + 1, updated_at=get_local_time())
            .returning(QuoteCounterDB.last_value)
            .execution_options(synchronize_session=False)
        )
        value = (await session.execute(stmt)).scalar_one_or_none()
        if value is not None:
            return value

        start, end = DateUtils.month_bounds(year, month)
        existing = await session.scalar(
            select(func.count()).select_from(QuoteDB).filter(QuoteDB.created_at.between(start, end))
        )
        value = (existing or 0) + 1
        session.add(QuoteCounterDB(period=period, last_value=value))
        await session.flush()
        self.db_logger.debug(f"[Database] Seeded quote counter {period} at {value}")
        return value

    async def _skip_past_number(self, session, number: Optional[str]) -> None:
        """冲突编号已被占用：计数器至少推进到该序号并单独提交，下次重试从其后继续"""
        try:
            _, year, month, sequence = parse_quote_number(number)
        except ValueError:
            return

        period = f"{year:04d}{month:02d}"
        try:
            counter = await session.get(QuoteCounterDB, period)
            if counter is None:
                session.add(QuoteCounterDB(period=period, last_value=sequence))
            elif counter.last_value < sequence:
                counter.last_value = sequence
            await session.commit()
        except IntegrityError:
            # 并发写入者已建立计数器，交给下一次重试
            await session.rollback()

    # === Quote Operations ===

    async def create_quote(self, draft: QuoteDraft, prepare: PrepareHook,
                           max_retries: int = None, created_at: datetime = None) -> Dict[str, Any]:
        """插入报价；编号分配与插入在同一事务内完成，编号冲突时回滚重试"""
        if max_retries is None:
            max_retries = self.config_manager.get_quote_config().number_max_retries
        preset_number = draft.number

        for attempt in range(1, max_retries + 1):
            draft.number = preset_number
            try:
                async with self.get_async_session() as session:
                    async def next_sequence(year: int, month: int) -> int:
                        return await self._next_sequence(session, year, month)

                    try:
                        await prepare(draft, next_sequence)

                        quote = QuoteDB(number=draft.number)
                        if created_at is not None:
                            quote.created_at = created_at
                            quote.updated_at = created_at
                        _apply_draft(quote, draft)
                        session.add(quote)
                        await session.commit()
                    except IntegrityError as e:
                        await session.rollback()
                        if not _is_number_conflict(e):
                            raise
                        self.db_logger.warning(
                            f"[Database] Quote number conflict on {draft.number} "
                            f"(attempt {attempt}/{max_retries})"
                        )
                        await self._skip_past_number(session, draft.number)
                        continue

                    quote_id = quote.id

            except QuoteSystemError:
                raise
            except SQLAlchemyError as e:
                raise self._query_failed("create quote", e) from e

            self.db_logger.info(f"[Database] Created quote {quote_id} ({draft.number})")
            return await self.get_quote(quote_id)

        raise DuplicateKeyError(
            f"Could not assign a unique quote number after {max_retries} attempts",
            ErrorCodes.QUOTE_NUMBER_CONFLICT,
            {'number': draft.number}
        )

    async def update_quote(self, quote_id: int, draft: QuoteDraft) -> Optional[Dict[str, Any]]:
        """更新报价内容，编号保持不变"""
        try:
            async with self.get_async_session() as session:
                quote = await session.get(QuoteDB, quote_id)
                if quote is None:
                    return None

                _apply_draft(quote, draft)
                await session.commit()

        except SQLAlchemyError as e:
            raise self._query_failed(f"update quote {quote_id}", e) from e

        return await self.get_quote(quote_id)

    async def update_quote_status(self, quote_id: int, status: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.get_async_session() as session:
                quote = await session.get(QuoteDB, quote_id)
                if quote is None:
                    return None

                quote.status = status
                await session.commit()

        except SQLAlchemyError as e:
            raise self._query_failed(f"update status of quote {quote_id}", e) from e

        return await self.get_quote(quote_id)

    async def delete_quote(self, quote_id: int) -> bool:
        try:
            async with self.get_async_session() as session:
                quote = await session.get(QuoteDB, quote_id)
                if quote is None:
                    return False

                await session.delete(quote)
                await session.commit()
                self.db_logger.info(f"[Database] Deleted quote {quote_id} ({quote.number})")
                return True

        except SQLAlchemyError as e:
            raise self._query_failed(f"delete quote {quote_id}", e) from e

    async def _material_summaries(self, session, quotes: List[QuoteDB]) -> Dict[int, Dict[str, Any]]:
        ids = {item.material_id for quote in quotes for item in quote.line_items}
        if not ids:
            return {}
        result = await session.execute(select(MaterialDB).filter(MaterialDB.id.in_(ids)))
        return {m.id: _material_summary(m) for m in result.scalars().all()}

    async def get_quote(self, quote_id: int) -> Optional[Dict[str, Any]]:
        try:
            async with self.get_async_session() as session:
                quote = await session.get(QuoteDB, quote_id)
                if quote is None:
                    return None
                materials = await self._material_summaries(session, [quote])
                return _quote_to_dict(quote, materials)

        except SQLAlchemyError as e:
            raise self._query_failed(f"get quote {quote_id}", e) from e

    @staticmethod
    def _filter_quotes(stmt, search: str = None, status: str = None, client: str = None):
        if search:
            pattern = _contains(search)
            stmt = stmt.filter(or_(
                QuoteDB.number.ilike(pattern, escape=LIKE_ESCAPE),
                QuoteDB.client.ilike(pattern, escape=LIKE_ESCAPE),
                QuoteDB.project.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        if status:
            stmt = stmt.filter(QuoteDB.status == status)

        if client:
            stmt = stmt.filter(QuoteDB.client.ilike(_contains(client), escape=LIKE_ESCAPE))

        return stmt

    @staticmethod
    def _sort_clause(sort: str = None):
        """解析排序参数，'-' 前缀表示降序"""
        sort = (sort or '-created_at').strip()
        descending = sort.startswith('-')
        field_name = sort.lstrip('-+')

        column = QUOTE_SORT_FIELDS.get(field_name)
        if column is None:
            raise ValidationError(
                f"Invalid sort field: {field_name}",
                ErrorCodes.VALIDATION_FAILED,
                {'allowed': sorted(QUOTE_SORT_FIELDS)}
            )

        return (column.desc(), QuoteDB.id.desc()) if descending else (column.asc(), QuoteDB.id.asc())

    async def get_quotes(self, search: str = None, status: str = None, client: str = None,
                         sort: str = None, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        """按条件分页查询报价"""
        order_by = self._sort_clause(sort)

        try:
            async with self.get_async_session() as session:
                stmt = self._filter_quotes(select(QuoteDB), search, status, client)
                total = await session.scalar(select(func.count()).select_from(stmt.subquery()))

                stmt = stmt.order_by(*order_by).limit(limit).offset((page - 1) * limit)
                quotes = (await session.execute(stmt)).scalars().all()
                materials = await self._material_summaries(session, quotes)
                return [_quote_to_dict(q, materials) for q in quotes], total or 0

        except SQLAlchemyError as e:
            raise self._query_failed("list quotes", e) from e

    async def get_recent_quotes(self, limit: int = 5) -> List[Dict[str, Any]]:
        quotes, _ = await self.get_quotes(sort='-created_at', page=1, limit=limit)
        return quotes

    async def get_quotes_by_client(self, client: str, page: int = 1,
                                   limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return await self.get_quotes(client=client, sort='-created_at', page=page, limit=limit)

    async def get_quotes_dataframe(self, search: str = None, status: str = None, client: str = None,
                                   sort: str = None) -> pd.DataFrame:
        """导出用：符合条件的报价，每行一条"""
        columns = ['number', 'client', 'project', 'status', 'materials_subtotal',
                   'labor_total', 'painting_total', 'grand_total', 'created_at']
        order_by = self._sort_clause(sort)

        try:
            async with self.get_async_session() as session:
                stmt = self._filter_quotes(
                    select(*(getattr(QuoteDB, c) for c in columns)), search, status, client
                ).order_by(*order_by)
                rows = (await session.execute(stmt)).all()

        except SQLAlchemyError as e:
            raise self._query_failed("export quotes", e) from e

        return pd.DataFrame([tuple(r) for r in rows], columns=columns)

    async def _quote_frame(self, session, since: datetime = None) -> pd.DataFrame:
        stmt = select(QuoteDB.client, QuoteDB.grand_total, QuoteDB.created_at)
        if since is not None:
            stmt = stmt.filter(QuoteDB.created_at >= since)
        rows = (await session.execute(stmt)).all()
        df = pd.DataFrame([tuple(r) for r in rows], columns=['client', 'grand_total', 'created_at'])
        df['created_at'] = pd.to_datetime(df['created_at'])
        return df

    @staticmethod
    def _monthly_totals(df: pd.DataFrame) -> pd.DataFrame:
        """按年月汇总报价数量和金额"""
        if df.empty:
            return pd.DataFrame(columns=['year', 'month', 'count', 'total'])

        grouped = (
            df.assign(year=df['created_at'].dt.year, month=df['created_at'].dt.month)
            .groupby(['year', 'month'])['grand_total']
            .agg(count='count', total='sum')
            .reset_index()
            .astype({'year': 'int64', 'month': 'int64'})
        )
        return grouped

    @staticmethod
    def _month_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
        return [
            {'year': int(r['year']), 'month': int(r['month']), 'count': int(r['count']), 'total': float(r['total'])}
            for r in frame.to_dict('records')
        ]

    async def _quote_totals(self, session) -> Tuple[int, float, float]:
        count, total, average = (await session.execute(
            select(func.count(QuoteDB.id), func.sum(QuoteDB.grand_total), func.avg(QuoteDB.grand_total))
        )).one()
        return count or 0, float(total or 0), float(average or 0)

    @log_performance("Database")
    async def get_quote_statistics(self) -> Dict[str, Any]:
        """报价统计：总体、按状态、按月（最近12个有数据的月份，新的在前）"""
        try:
            async with self.get_async_session() as session:
                total_quotes, total_billed, average_quote = await self._quote_totals(session)

                count_col = func.count(QuoteDB.id).label('count')
                by_status_res = await session.execute(
                    select(QuoteDB.status, count_col).group_by(QuoteDB.status).order_by(count_col.desc(), QuoteDB.status)
                )

                df = await self._quote_frame(session)

        except SQLAlchemyError as e:
            raise self._query_failed("compute quote statistics", e) from e

        monthly = self._monthly_totals(df)
        if not monthly.empty:
            monthly = monthly.sort_values(['year', 'month'], ascending=False).head(12)

        return {
            'general': {
                'total_quotes': total_quotes,
                'total_billed': total_billed,
                'average_quote': average_quote,
            },
            'by_status': [{'status': status, 'count': count} for status, count in by_status_res.all()],
            'by_month': self._month_records(monthly),
        }

    @log_performance("Database")
    async def get_clients_summary(self) -> List[Dict[str, Any]]:
        """按客户汇总报价，按金额降序"""
        try:
            async with self.get_async_session() as session:
                df = await self._quote_frame(session)

        except SQLAlchemyError as e:
            raise self._query_failed("summarize clients", e) from e

        if df.empty:
            return []

        summary = (
            df.groupby('client')
            .agg(
                quote_count=('grand_total', 'count'),
                total_billed=('grand_total', 'sum'),
                first_quote_at=('created_at', 'min'),
                last_quote_at=('created_at', 'max'),
            )
            .reset_index()
            .sort_values(['total_billed', 'client'], ascending=[False, True])
        )

        return [
            {
                'client': r['client'],
                'quote_count': int(r['quote_count']),
                'total_billed': float(r['total_billed']),
                'first_quote_at': r['first_quote_at'].to_pydatetime(),
                'last_quote_at': r['last_quote_at'].to_pydatetime(),
            }
            for r in summary.to_dict('records')
        ]

    # === Dashboard ===

    async def _count_quotes_between(self, session, start: datetime, end: datetime) -> int:
        return await session.scalar(
            select(func.count()).select_from(QuoteDB).filter(QuoteDB.created_at.between(start, end))
        ) or 0

    @log_performance("Database")
    async def get_dashboard_statistics(self, now: datetime = None) -> Dict[str, Any]:
        """仪表盘统计，每次实时计算"""
        now = now or get_local_time()
        month_start, month_end = DateUtils.month_bounds(now.year, now.month)
        window_start, _ = DateUtils.months_window(6, now)

        try:
            async with self.get_async_session() as session:
                total_quotes, total_billed, average_quote = await self._quote_totals(session)
                quotes_this_month = await self._count_quotes_between(session, month_start, month_end)

                total_materials, active_materials, average_price = (await session.execute(
                    select(
                        func.count(MaterialDB.id),
                        func.sum(case((MaterialDB.active == True, 1), else_=0)),
                        func.avg(MaterialDB.unit_price),
                    )
                )).one()

                count_col = func.count(QuoteDB.id).label('count')
                by_status_res = await session.execute(
                    select(QuoteDB.status, count_col, func.sum(QuoteDB.grand_total))
                    .group_by(QuoteDB.status)
                    .order_by(count_col.desc(), QuoteDB.status)
                )

                billed_col = func.sum(QuoteDB.grand_total).label('billed')
                top_clients_res = await session.execute(
                    select(QuoteDB.client, func.count(QuoteDB.id), billed_col)
                    .group_by(QuoteDB.client)
                    .order_by(billed_col.desc(), QuoteDB.client)
                    .limit(5)
                )

                # 已删除的材料不参与统计
                used_col = func.count(QuoteLineItemDB.id).label('times_used')
                most_used_res = await session.execute(
                    select(QuoteLineItemDB.material_id, MaterialDB.name, used_col, func.sum(QuoteLineItemDB.quantity))
                    .join(MaterialDB, MaterialDB.id == QuoteLineItemDB.material_id)
                    .group_by(QuoteLineItemDB.material_id, MaterialDB.name)
                    .order_by(used_col.desc(), QuoteLineItemDB.material_id)
                    .limit(5)
                )

                df = await self._quote_frame(session, since=window_start)

        except SQLAlchemyError as e:
            raise self._query_failed("compute dashboard statistics", e) from e

        return {
            'quotes': {
                'total_quotes': total_quotes,
                'total_billed': total_billed,
                'average_quote': average_quote,
                'quotes_this_month': quotes_this_month,
            },
            'materials': {
                'total_materials': total_materials or 0,
                'active_materials': active_materials or 0,
                'average_price': float(average_price or 0),
            },
            'by_status': [
                {'status': status, 'count': count, 'total': float(total or 0)}
                for status, count, total in by_status_res.all()
            ],
            'top_clients': [
                {'client': client, 'quotes': quotes, 'total_billed': float(billed or 0)}
                for client, quotes, billed in top_clients_res.all()
            ],
            'by_month': self._month_records(self._last_months(df, now, 6)),
            'most_used_materials': [
                {'material_id': material_id, 'name': name, 'times_used': times_used,
                 'total_quantity': float(quantity or 0)}
                for material_id, name, times_used, quantity in most_used_res.all()
            ],
        }

    def _last_months(self, df: pd.DataFrame, now: datetime, count: int) -> pd.DataFrame:
        """最近 count 个自然月，旧的在前，无数据的月份补零"""
        months = [DateUtils.shift_months(now.year, now.month, -offset) for offset in range(count - 1, -1, -1)]
        index = pd.MultiIndex.from_tuples(months, names=['year', 'month'])

        monthly = self._monthly_totals(df)
        if monthly.empty:
            frame = pd.DataFrame({'count': 0, 'total': 0.0}, index=index)
        else:
            frame = monthly.set_index(['year', 'month']).reindex(index, fill_value=0)

        return frame.reset_index()

    async def get_recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        """最近报价与新增材料合并，按时间倒序"""
        try:
            async with self.get_async_session() as session:
                quotes = (await session.execute(
                    select(QuoteDB).order_by(QuoteDB.created_at.desc(), QuoteDB.id.desc()).limit(limit)
                )).scalars().all()
                materials = (await session.execute(
                    select(MaterialDB).order_by(MaterialDB.created_at.desc(), MaterialDB.id.desc()).limit(5)
                )).scalars().all()

                activity = [
                    {
                        'type': 'quote',
                        'action': 'created',
                        'description': f"Quote {q.number} created for {q.client}",
                        'amount': q.grand_total,
                        'date': q.created_at,
                        'data': {
                            'id': q.id,
                            'number': q.number,
                            'client': q.client,
                            'project': q.project,
                            'grand_total': q.grand_total,
                            'status': q.status,
                            'created_at': q.created_at,
                        },
                    }
                    for q in quotes
                ] + [
                    {
                        'type': 'material',
                        'action': 'added',
                        'description': f"Material {m.name} added to the catalog",
                        'amount': m.unit_price,
                        'date': m.created_at,
                        'data': {
                            'id': m.id,
                            'name': m.name,
                            'unit': m.unit,
                            'unit_price': m.unit_price,
                            'created_at': m.created_at,
                        },
                    }
                    for m in materials
                ]

        except SQLAlchemyError as e:
            raise self._query_failed("load recent activity", e) from e

        activity.sort(key=lambda entry: entry['date'] or datetime.min, reverse=True)
        return activity[:limit]

    async def get_dashboard_summary(self, now: datetime = None) -> Dict[str, Any]:
        now = now or get_local_time()
        month_start, month_end = DateUtils.month_bounds(now.year, now.month)

        try:
            async with self.get_async_session() as session:
                total_quotes, total_billed, _ = await self._quote_totals(session)
                total_materials = await session.scalar(
                    select(func.count()).select_from(MaterialDB).filter(MaterialDB.active == True)
                )
                quotes_this_month = await self._count_quotes_between(session, month_start, month_end)

        except SQLAlchemyError as e:
            raise self._query_failed("load dashboard summary", e) from e

        return {
            'total_quotes': total_quotes,
            'total_materials': total_materials or 0,
            'quotes_this_month': quotes_this_month,
            'total_billed': total_billed,
        }

    # === Maintenance ===

    async def clear_all(self) -> None:
        """清空全部业务数据（seed --clear 使用）"""
        try:
            async with self.get_async_session() as session:
                for model in (QuoteLineItemDB, QuoteDB, QuoteCounterDB, MaterialDB):
                    await session.execute(model.__table__.delete())
                await session.commit()
                self.db_logger.warning("[Database] All materials and quotes cleared")

        except SQLAlchemyError as e:
            raise self._query_failed("clear data", e) from e
