"""
Kitchen ticket and receipt layouts.

Builders only decide content and emphasis; encoding belongs to the
serializers. Items are rendered in order-entry sequence, never sorted.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Sequence

from ..errors import RenderingFailure
from ..models import LineItem, OrderDocument, ReceiptBranding
from .model import Cut, Document, Initialize, Logo

CENTS = Decimal('0.01')
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M'


def format_money(amount, symbol: str = 'R') -> str:
    """Two decimals, half-up, '.' separator: 42 -> 'R42.00', 0.005 -> 'R0.01'."""
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise RenderingFailure(f"Invalid amount: {amount!r}")
    value = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = '-' if value < 0 else ''
    return f"{sign}{symbol}{abs(value):.2f}"


def format_qty(qty) -> str:
    return f"{qty:g}" if isinstance(qty, float) else str(qty)


def format_weight(item: LineItem) -> str:
    if not item.weight:
        return ''
    return f"({item.weight.normalize():f}{item.weight_unit})"


def _check_order(order: OrderDocument):
    if not isinstance(order, OrderDocument):
        raise RenderingFailure(f"Expected an OrderDocument, got {type(order).__name__}")
    if not order.order_number:
        raise RenderingFailure("Order is missing an order number")


# ─── Kitchen ticket ─────────────────────────────────────────────────────────

def build_kitchen_ticket(
    order: OrderDocument,
    items: Sequence[LineItem] | None = None,
) -> Document:
    """
    Render a kitchen/bar ticket for the given kitchen-bound items.

    Prices are omitted. An empty item list yields an empty document, which
    callers must skip rather than print.
    """
    _check_order(order)
    items = list(order.items if items is None else items)
    doc = Document(title='KITCHEN ORDER')
    if not items:
        return doc

    # Loud header
    doc.add(Initialize())
    doc.align('center')
    doc.style(bold=True, size='double_size')
    doc.text('KITCHEN ORDER')
    doc.text(f"#{order.short_number}")
    doc.style()

    if order.table_name:
        doc.style(bold=True, size='double_height')
        doc.text(f"TABLE: {order.table_name}")
        doc.style()
    if order.customer_name:
        doc.text(f"CUSTOMER: {order.customer_name}")
    doc.text(order.order_type_display)
    doc.rule('=')

    # Items, big for readability
    doc.align('left')
    for item in items:
        doc.style(bold=True, size='double_height')
        doc.text(f"{format_qty(item.qty)}x {item.product_name}")
        doc.style()

        weight = format_weight(item)
        if weight:
            doc.text(f"   {weight}")
        if item.modifiers:
            doc.text(f"   -> {', '.join(item.modifiers)}")
        if item.special_instructions:
            doc.style(bold=True)
            doc.text(f"   !! {item.special_instructions}", flagged=True)
            doc.style()
        doc.text(f"   Station: {item.kitchen_station or 'General'}")

    doc.rule('=')
    doc.align('center')
    total_qty = sum(item.qty for item in items)
    doc.text(f"Items: {len(items)} | Total Qty: {format_qty(total_qty)}")
    if order.timestamp:
        doc.text(order.timestamp.strftime(TIMESTAMP_FORMAT))
    doc.feed(3)
    doc.add(Cut())
    return doc


# ─── Receipt ────────────────────────────────────────────────────────────────

def build_receipt(
    order: OrderDocument,
    branding: ReceiptBranding | None = None,
    currency: str = 'R',
) -> Document:
    """Render the customer receipt: branding, itemized lines, totals, footer."""
    _check_order(order)
    branding = branding or ReceiptBranding()

    def money(amount) -> str:
        return format_money(amount, currency)

    doc = Document(title='RECEIPT')
    doc.add(Initialize())

    # Header
    doc.align('center')
    if branding.logo_url:
        doc.add(Logo(branding.logo_url))
    else:
        doc.style(bold=True, size='double_size')
        doc.text(branding.business_name)
        doc.style()
    for line in branding.address_lines:
        doc.text(line)
    if branding.phone:
        doc.text(f"Tel: {branding.phone}")

    # Order info
    doc.rule()
    doc.style(bold=True)
    doc.text(f"Receipt #{order.short_number}")
    doc.style()
    doc.text(order.order_type_display)
    if order.table_name:
        doc.text(f"Table: {order.table_name}")
    if order.customer_name:
        doc.text(f"Customer: {order.customer_name}")
    if order.timestamp:
        doc.text(order.timestamp.strftime(TIMESTAMP_FORMAT))
    if order.cashier_name:
        doc.text(f"Served by: {order.cashier_name}")
    doc.rule()

    # Items
    doc.align('left')
    for item in order.items:
        label = f"{format_qty(item.qty)}x {item.product_name}"
        weight = format_weight(item)
        if weight:
            label = f"{label} {weight}"
        doc.row(label, money(item.amount))
        if item.modifiers:
            doc.text(f"   + {', '.join(item.modifiers)}")
    doc.rule()

    # Totals
    doc.row('Subtotal:', money(order.subtotal))
    doc.row('VAT (incl):', money(order.tax))
    if order.discount > 0:
        doc.row('Discount:', f"-{money(order.discount)}")
    doc.rule()
    doc.style(bold=True, size='double_height')
    doc.row('TOTAL:', money(order.total))
    doc.style()
    if order.payment_method:
        doc.row('Payment:', order.payment_method.upper())
    doc.rule()

    # Footer
    doc.align('center')
    doc.style(bold=True)
    doc.text(branding.footer_text)
    doc.style()
    doc.text('VAT included where applicable')
    doc.feed(3)
    doc.add(Cut(partial=True))
    return doc
