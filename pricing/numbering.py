"""
Quote number generator.

Numbers look like ``COT-202503-007``: prefix, year and two-digit month of
creation, and a 1-based sequence within that month padded to three digits.
The sequence itself is supplied by the caller (an atomic per-month counter
in the database), so this module stays storage-free.
"""

import re
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from utils import pricing_logger, config_manager, get_local_time

# (year, month) -> next sequence number for that month
SequenceSource = Callable[[int, int], Awaitable[int]]

_NUMBER_PATTERN = re.compile(r'^(?P<prefix>[A-Z]+)-(?P<year>\d{4})(?P<month>\d{2})-(?P<seq>\d{3,})$')


def format_quote_number(year: int, month: int, sequence: int, prefix: str = "COT") -> str:
    """格式化报价编号"""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    if sequence < 1:
        raise ValueError(f"Quote sequence must start at 1, got {sequence}")
    return f"{prefix}-{year:04d}{month:02d}-{sequence:03d}"


def number_from_count(year: int, month: int, existing_count: int, prefix: str = "COT") -> str:
    """根据当月已有报价数量生成下一个编号"""
    return format_quote_number(year, month, existing_count + 1, prefix)


def parse_quote_number(number: str) -> Tuple[str, int, int, int]:
    """解析报价编号，返回 (prefix, year, month, sequence)"""
    match = _NUMBER_PATTERN.match(number or '')
    if not match:
        raise ValueError(f"Not a quote number: {number!r}")
    return (match.group('prefix'), int(match.group('year')),
            int(match.group('month')), int(match.group('seq')))


class QuoteNumberGenerator:
    """报价编号生成器"""

    def __init__(self, prefix: Optional[str] = None, clock: Callable[[], datetime] = get_local_time):
        self.prefix = prefix or config_manager.get_quote_config().number_prefix
        self.clock = clock

    def current_period(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        now = now or self.clock()
        return now.year, now.month

    async def assign(self, draft, next_sequence: SequenceSource, now: Optional[datetime] = None) -> str:
        """为新报价分配编号；已有编号时保持不变

        now 为报价的创建时间，编号的年月取自它；未传入时读取时钟
        """
        if draft.number:
            return draft.number

        year, month = self.current_period(now)
        sequence = await next_sequence(year, month)
        draft.number = format_quote_number(year, month, sequence, self.prefix)
        pricing_logger.debug(f"[Pricing] Assigned quote number {draft.number}")
        return draft.number
