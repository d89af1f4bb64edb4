"""
Ticket documents: layouts plus HTML and ESC/POS serializers.
"""

from .builders import build_kitchen_ticket, build_receipt, format_money
from .escpos import render_bytes, render_instructions, render_text
from .markup import render_html, render_page
from .model import Document

__all__ = [
    'Document',
    'build_kitchen_ticket',
    'build_receipt',
    'format_money',
    'render_bytes',
    'render_html',
    'render_instructions',
    'render_page',
    'render_text',
]
