"""
Domain records consumed and produced by the print subsystem.

Orders reach us as immutable snapshots. Printers, routing rules and
branding are read-only rows owned by the admin screens.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import RenderingFailure


PRINTER_KINDS = ('kitchen', 'bar', 'receipt')
KITCHEN_KINDS = ('kitchen', 'bar')

DEFAULT_PRINTER_PORT = 9100


# ─── Settings rows ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PrinterDefinition:
    id: str
    name: str
    address: str
    kind: str
    active: bool = True
    port: int = DEFAULT_PRINTER_PORT

    @classmethod
    def from_row(cls, row: dict) -> 'PrinterDefinition':
        address = row.get('ip_address') or row.get('address') or ''
        port = row.get('port') or DEFAULT_PRINTER_PORT
        # Admins sometimes type "host:port" into the address field
        if address.count(':') == 1:
            host, _, maybe_port = address.partition(':')
            if maybe_port.isdigit():
                address, port = host, int(maybe_port)
        return cls(
            id=str(row['id']),
            name=row.get('name') or 'Printer',
            address=address.strip(),
            kind=_printer_kind(row.get('printer_type') or row.get('kind')),
            active=bool(row.get('is_active', row.get('active', True))),
            port=int(port),
        )


@dataclass(frozen=True)
class RoutingRule:
    category: str
    printer_id: str

    @classmethod
    def from_row(cls, row: dict) -> 'RoutingRule':
        return cls(
            category=row.get('category_name') or row.get('category') or '',
            printer_id=str(row.get('printer_id', '')),
        )


DEFAULT_BUSINESS_NAME = 'Restaurant'
DEFAULT_FOOTER_TEXT = 'Thank you for your visit!'


@dataclass(frozen=True)
class ReceiptBranding:
    logo_url: str | None = None
    business_name: str = DEFAULT_BUSINESS_NAME
    address_lines: tuple[str, ...] = ()
    phone: str | None = None
    footer_text: str = DEFAULT_FOOTER_TEXT

    @classmethod
    def from_row(cls, row: dict | None) -> 'ReceiptBranding':
        if not row:
            return cls()
        lines = row.get('address_lines')
        if lines is None:
            lines = [row.get('address_line1'), row.get('address_line2')]
        return cls(
            logo_url=row.get('logo_url') or None,
            business_name=row.get('business_name') or DEFAULT_BUSINESS_NAME,
            address_lines=tuple(line for line in lines if line),
            phone=row.get('phone') or None,
            footer_text=row.get('footer_text') or DEFAULT_FOOTER_TEXT,
        )


# ─── Order snapshot ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LineItem:
    product_name: str
    qty: int | float
    category_name: str = ''
    modifiers: tuple[str, ...] = ()
    weight: Decimal | None = None
    weight_unit: str = ''
    special_instructions: str | None = None
    kitchen_station: str | None = None
    unit_price: Decimal | None = None
    line_total: Decimal | None = None

    @property
    def amount(self) -> Decimal:
        """Line total, derived from unit price when the order did not store one."""
        if self.line_total is not None:
            return self.line_total
        return (self.unit_price or Decimal('0')) * Decimal(str(self.qty))

    @classmethod
    def from_dict(cls, data: Any) -> 'LineItem':
        if not isinstance(data, dict):
            raise RenderingFailure(f"Line item must be an object, got {type(data).__name__}")

        name = _pick(data, 'productName', 'product_name', 'name')
        if not name or not isinstance(name, str):
            raise RenderingFailure("Line item is missing a product name")

        qty = _pick(data, 'qty', 'quantity', default=1)
        if isinstance(qty, bool) or not isinstance(qty, (int, float)) or qty <= 0:
            raise RenderingFailure(f"Invalid quantity for {name!r}: {qty!r}")
        if isinstance(qty, float) and qty.is_integer():
            qty = int(qty)

        raw_modifiers = _pick(data, 'modifiers', default=None) or []
        if isinstance(raw_modifiers, str):
            raw_modifiers = [raw_modifiers]
        if not isinstance(raw_modifiers, (list, tuple)):
            raise RenderingFailure(f"Modifiers of {name!r} must be a list")
        modifiers = []
        for mod in raw_modifiers:
            if isinstance(mod, dict):
                mod = mod.get('modifier_name') or mod.get('name') or ''
            if mod:
                modifiers.append(_text(mod, f"modifier of {name!r}"))

        weight = _pick(data, 'weight', 'weightAmount', 'weight_amount')
        return cls(
            product_name=name,
            qty=qty,
            category_name=_text(
                _pick(data, 'categoryName', 'category_name'), f"category of {name!r}",
            ) or '',
            modifiers=tuple(modifiers),
            weight=_decimal(weight, f"weight of {name!r}") if weight else None,
            weight_unit=_text(_pick(data, 'weightUnit', 'weight_unit'), 'weight unit') or '',
            special_instructions=_text(
                _pick(data, 'specialInstructions', 'special_instructions'), 'special instructions',
            ),
            kitchen_station=_text(_pick(data, 'kitchenStation', 'kitchen_station'), 'kitchen station'),
            unit_price=_optional_decimal(
                _pick(data, 'unitPrice', 'unit_price', 'price', 'price_at_order'),
                f"price of {name!r}",
            ),
            line_total=_optional_decimal(
                _pick(data, 'lineTotal', 'line_total'), f"line total of {name!r}",
            ),
        )


@dataclass(frozen=True)
class OrderDocument:
    order_number: str
    order_type: str
    items: tuple[LineItem, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    payment_method: str = ''
    discount: Decimal = Decimal('0')
    table_name: str | None = None
    customer_name: str | None = None
    cashier_name: str | None = None
    timestamp: datetime | None = None
    order_id: str | None = None

    @property
    def short_number(self) -> str:
        """Last segment of the order number, as staff read it out."""
        return self.order_number.split('-')[-1].upper()

    @property
    def order_type_display(self) -> str:
        return self.order_type.replace('_', ' ').upper()

    @classmethod
    def from_dict(cls, data: Any, order_id: str | None = None) -> 'OrderDocument':
        """Build a snapshot from a client payload (camelCase or snake_case keys)."""
        if not isinstance(data, dict):
            raise RenderingFailure("Order data must be an object")

        number = _pick(data, 'orderNumber', 'order_number')
        if number is None or str(number).strip() == '':
            raise RenderingFailure("Order is missing an order number")

        items = _pick(data, 'items', default=None)
        if not isinstance(items, list):
            raise RenderingFailure("Order items must be a list")

        return cls(
            order_number=str(number),
            order_type=_text(_pick(data, 'orderType', 'order_type'), 'order type') or 'dine_in',
            items=tuple(LineItem.from_dict(item) for item in items),
            subtotal=_decimal(_pick(data, 'subtotal', default=0), 'subtotal'),
            tax=_decimal(_pick(data, 'tax', 'taxAmount', 'tax_amount', default=0), 'tax'),
            discount=_decimal(
                _pick(data, 'discount', 'discountAmount', 'discount_amount', default=0),
                'discount',
            ),
            total=_decimal(_pick(data, 'total', default=0), 'total'),
            payment_method=_text(
                _pick(data, 'paymentMethod', 'payment_method'), 'payment method',
            ) or '',
            table_name=_text(_pick(data, 'tableName', 'table_name', 'table_number'), 'table'),
            customer_name=_text(_pick(data, 'customerName', 'customer_name'), 'customer name'),
            cashier_name=_text(_pick(data, 'cashierName', 'cashier_name'), 'cashier name'),
            timestamp=_timestamp(_pick(data, 'timestamp', 'created_at')),
            order_id=order_id or _pick(data, 'id', 'orderId', 'order_id'),
        )


# ─── Results ────────────────────────────────────────────────────────────────

@dataclass
class PrintResult:
    destination_kind: str
    attempted: bool = False
    succeeded: bool = False
    driver_used: str | None = None
    error: str | None = None
    printer_name: str | None = None
    fallback: bool = False
    copies: int = 1

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PrintOutcome:
    status: str
    message: str
    results: list[PrintResult] = field(default_factory=list)
    fallback_documents: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == 'success'

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'message': self.message,
            'results': [r.to_dict() for r in self.results],
            'fallback_documents': dict(self.fallback_documents),
        }


@dataclass(frozen=True)
class PrintAttempt:
    printer_name: str
    printer_address: str | None
    order_id: str | None
    ticket_type: str        # 'kitchen' or 'receipt'
    status: str             # 'success', 'failed', 'partial'
    error_message: str | None = None

    def to_row(self) -> dict:
        return {
            'printer_name': self.printer_name,
            'printer_ip': self.printer_address,
            'order_id': self.order_id,
            'print_type': self.ticket_type,
            'status': self.status,
            'error_message': self.error_message,
        }


# ─── Paper ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PaperSize:
    name: str
    width_mm: int
    printable_width_mm: float
    height_mm: int
    columns: int


PAPER_SIZES = {
    '80mm': PaperSize('80mm Standard', 80, 72.1, 210, 48),
    '58mm': PaperSize('58mm Compact', 58, 48, 210, 32),
}

DEFAULT_PAPER_SIZE = PAPER_SIZES['80mm']


# ─── Helpers ────────────────────────────────────────────────────────────────

def _pick(data: dict, *keys: str, default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _decimal(value: Any, label: str) -> Decimal:
    if isinstance(value, bool):
        raise RenderingFailure(f"Invalid {label}: {value!r}")
    try:
        # str() first so 0.015 stays 0.015 instead of its binary expansion
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise RenderingFailure(f"Invalid {label}: {value!r}")
    if not result.is_finite():
        raise RenderingFailure(f"Invalid {label}: {value!r}")
    return result


def _optional_decimal(value: Any, label: str) -> Decimal | None:
    return None if value is None else _decimal(value, label)


def _timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            pass
    raise RenderingFailure(f"Invalid timestamp: {value!r}")


def _text(value: Any, label: str) -> str | None:
    """Plain strings pass through; numbers are rendered as typed by the client."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    raise RenderingFailure(f"Invalid {label}: {value!r}")


def _printer_kind(value: Any) -> str:
    kind = str(value or '').strip().lower()
    return kind if kind in PRINTER_KINDS else 'receipt'
