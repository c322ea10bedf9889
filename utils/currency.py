"""
Currency formatting for quote and material amounts.
"""

from typing import Optional

from .config_manager import config_manager


def format_currency(amount: Optional[float], symbol: Optional[str] = None) -> str:
    """格式化金额，例如 8150 -> $8,150.00"""
    if symbol is None:
        symbol = config_manager.get_quote_config().currency_symbol
    value = float(amount or 0)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
