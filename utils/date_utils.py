"""
Date and time utilities for the quoting system.
Provides month boundaries used by quote numbering and reporting.
"""

import calendar
from datetime import datetime, date, time
from typing import Optional, Tuple, Union


def get_local_time() -> datetime:
    """获取本地时间（无时区信息，与数据库存储一致）"""
    return datetime.now()


class DateUtils:
    """日期工具类"""

    @staticmethod
    def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
        """获取月份起止时间，两端均包含"""
        last_day = calendar.monthrange(year, month)[1]
        start = datetime(year, month, 1)
        end = datetime.combine(date(year, month, last_day), time.max)
        return start, end

    @staticmethod
    def start_of_month(dt: Union[date, datetime] = None) -> datetime:
        """获取所在月份第一天零点"""
        if dt is None:
            dt = get_local_time()
        return datetime(dt.year, dt.month, 1)

    @staticmethod
    def shift_months(year: int, month: int, delta: int) -> Tuple[int, int]:
        """按月平移，返回 (year, month)"""
        index = year * 12 + (month - 1) + delta
        return index // 12, index % 12 + 1

    @staticmethod
    def months_window(count: int, reference: Union[date, datetime] = None) -> Tuple[datetime, datetime]:
        """最近 count 个自然月（含当月）的起始时间和当月结束时间"""
        if reference is None:
            reference = get_local_time()
        start_year, start_month = DateUtils.shift_months(reference.year, reference.month, -(count - 1))
        start, _ = DateUtils.month_bounds(start_year, start_month)
        _, end = DateUtils.month_bounds(reference.year, reference.month)
        return start, end

    @staticmethod
    def format_datetime(value: Optional[datetime], format_str: str = '%Y-%m-%d %H:%M:%S') -> str:
        """格式化时间，空值返回空字符串"""
        return value.strftime(format_str) if value else ''
