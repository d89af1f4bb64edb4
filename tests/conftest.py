import os
import tempfile
from datetime import datetime
from decimal import Decimal

import pytest

# Keep the server module's config and print log out of the real config dir
_config_home = tempfile.mkdtemp(prefix="ticket-bridge-tests-")
os.environ["XDG_CONFIG_HOME"] = _config_home
os.environ["TICKET_BRIDGE_CONFIG"] = os.path.join(_config_home, "bridge_config.json")

from ticket_bridge.models import (  # noqa: E402
    LineItem,
    OrderDocument,
    PrinterDefinition,
    ReceiptBranding,
    RoutingRule,
)
from ticket_bridge.settings import PrintSettings  # noqa: E402


def make_order(items=None, **overrides) -> OrderDocument:
    if items is None:
        items = (
            LineItem("Burger", 2, category_name="Burgers", unit_price=Decimal("50.00")),
            LineItem("Coke", 1, category_name="Drinks", unit_price=Decimal("20.00")),
        )
    fields = dict(
        order_number="ORD-20240101-abc123",
        order_type="dine_in",
        items=tuple(items),
        subtotal=Decimal("120.00"),
        tax=Decimal("15.65"),
        total=Decimal("120.00"),
        payment_method="card",
        table_name="7",
        cashier_name="Thandi",
        timestamp=datetime(2024, 1, 1, 12, 30),
        order_id="order-1",
    )
    fields.update(overrides)
    return OrderDocument(**fields)


@pytest.fixture()
def order() -> OrderDocument:
    return make_order()


@pytest.fixture()
def kitchen_printer() -> PrinterDefinition:
    return PrinterDefinition(id="k1", name="Kitchen", address="10.0.0.20", kind="kitchen")


@pytest.fixture()
def receipt_printer() -> PrinterDefinition:
    return PrinterDefinition(id="r1", name="Front", address="10.0.0.10", kind="receipt")


@pytest.fixture()
def settings(kitchen_printer, receipt_printer) -> PrintSettings:
    return PrintSettings(
        printers=(receipt_printer, kitchen_printer),
        rules=(RoutingRule("Burgers", "k1"),),
        branding=ReceiptBranding(business_name="Bunny Chow Co", phone="021 555 0100"),
    )
