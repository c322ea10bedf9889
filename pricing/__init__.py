"""
Pricing module for the quoting system.
Quote total calculation, sequential quote numbering and status transitions.
"""

from .models import LineItemDraft, LaborBlock, PaintingBlock, QuoteDraft
from .calculator import QuoteTotals, effective_price, line_subtotal, calculate_totals, apply_totals
from .numbering import QuoteNumberGenerator, format_quote_number, parse_quote_number, number_from_count
from .status import QuoteStatus, ALLOWED_TRANSITIONS, can_transition, validate_transition

__all__ = [
    'LineItemDraft', 'LaborBlock', 'PaintingBlock', 'QuoteDraft',
    'QuoteTotals', 'effective_price', 'line_subtotal', 'calculate_totals', 'apply_totals',
    'QuoteNumberGenerator', 'format_quote_number', 'parse_quote_number', 'number_from_count',
    'QuoteStatus', 'ALLOWED_TRANSITIONS', 'can_transition', 'validate_transition',
]
