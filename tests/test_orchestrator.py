import asyncio
import base64
import json
from decimal import Decimal

import httpx
import pytest

from conftest import make_order
from ticket_bridge.classifier import ItemClassifier
from ticket_bridge.config import BridgeConfig
from ticket_bridge.drivers import (
    BridgeConnection,
    BridgeDriver,
    BrowserDriver,
    NetworkDriver,
)
from ticket_bridge.drivers.bridge import NOT_CONNECTED_MESSAGE
from ticket_bridge.errors import RenderingFailure
from ticket_bridge.models import LineItem, PrinterDefinition, PrintResult, RoutingRule
from ticket_bridge.orchestrator import PrintOrchestrator, PrintState, build_orchestrator, summarize
from ticket_bridge.print_log import MemoryPrintLog
from ticket_bridge.settings import EMPTY_SETTINGS, PrintSettings, SettingsStore, StaticSettingsSource


class FakeNetwork:
    """Network layer where only the listed hosts accept raw prints."""

    def __init__(self, reachable=()):
        self.reachable = set(reachable)
        self.sent = []

    def raw(self, host, port, payload, timeout):
        if host not in self.reachable:
            raise ConnectionRefusedError("connection refused")
        self.sent.append((host, payload))

    def client(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused")
        return httpx.AsyncClient(transport=httpx.MockTransport(refuse))

    def driver(self):
        return NetworkDriver(timeout=1, raw_sender=self.raw, client_factory=self.client)


class FakeBrowser:
    def __init__(self, tmp_path):
        self.opened = []
        self.sleeps = []
        self.driver = BrowserDriver(
            stagger=1.5,
            spool_dir=tmp_path,
            opener=self.opened.append,
            sleep=self._sleep,
        )

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)


def make_orchestrator(settings, network, browser, **kwargs):
    return PrintOrchestrator(
        settings=SettingsStore(StaticSettingsSource(settings)),
        network=network.driver(),
        browser=browser.driver,
        print_log=kwargs.pop("print_log", MemoryPrintLog()),
        **kwargs,
    )


def test_kitchen_and_receipt_both_printed(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.10", "10.0.0.20"})
    browser = FakeBrowser(tmp_path)
    log = MemoryPrintLog()
    orch = make_orchestrator(settings, network, browser, print_log=log)

    outcome = asyncio.run(orch.print_order(make_order()))

    assert outcome.status == "success"
    assert outcome.message == "Order sent to Kitchen and Receipt printers"
    assert browser.opened == []

    kitchen_payload = dict(network.sent)["10.0.0.20"]
    assert b"2x Burger" in kitchen_payload
    assert b"Coke" not in kitchen_payload
    receipt_payload = dict(network.sent)["10.0.0.10"]
    assert b"Coke" in receipt_payload
    assert receipt_payload.count(b"Receipt #ABC123") == 2

    assert sorted((a.ticket_type, a.status) for a in log.attempts) == [
        ("kitchen", "success"),
        ("receipt", "success"),
    ]
    assert {a.order_id for a in log.attempts} == {"order-1"}


def test_unreachable_receipt_printer_falls_back_to_browser(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.20"})
    browser = FakeBrowser(tmp_path)
    log = MemoryPrintLog()
    orch = make_orchestrator(settings, network, browser, print_log=log)

    outcome = asyncio.run(orch.print_order(make_order(), receipt_copies=2))

    assert outcome.status == "partial"
    kitchen, receipt = outcome.results
    assert kitchen.succeeded and kitchen.driver_used == "network"
    assert receipt.succeeded and receipt.fallback
    assert receipt.driver_used == "browser"
    assert receipt.error.startswith("Could not connect to printer at 10.0.0.10")
    assert "Kitchen printed" in outcome.message
    assert "Receipt printed via browser fallback" in outcome.message
    assert len(browser.opened) == 2
    assert browser.sleeps == [1.5]
    receipt_log = [(a.printer_name, a.status) for a in log.attempts if a.ticket_type == "receipt"]
    assert receipt_log == [("Front", "failed"), ("Browser", "partial")]


def test_drinks_only_order_skips_kitchen(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.10", "10.0.0.20"})
    orch = make_orchestrator(settings, network, FakeBrowser(tmp_path))
    order = make_order(items=[LineItem("Coke", 1, category_name="Drinks", unit_price=Decimal("20"))])

    outcome = asyncio.run(orch.print_order(order))

    assert [r.destination_kind for r in outcome.results] == ["receipt"]
    assert [host for host, _ in network.sent] == ["10.0.0.10"]
    assert "kitchen" not in outcome.fallback_documents


def test_receipt_only_print(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.10", "10.0.0.20"})
    orch = make_orchestrator(settings, network, FakeBrowser(tmp_path))

    outcome = asyncio.run(orch.print_order(make_order(), print_kitchen=False))

    assert [r.destination_kind for r in outcome.results] == ["receipt"]


def test_no_printers_configured_uses_browser_for_everything(tmp_path):
    browser = FakeBrowser(tmp_path)
    orch = make_orchestrator(EMPTY_SETTINGS, FakeNetwork(), browser)

    outcome = asyncio.run(orch.print_order(make_order(), receipt_copies=1))

    assert outcome.status == "partial"
    assert all(r.fallback for r in outcome.results)
    assert outcome.results[0].error == "No kitchen printer configured"
    assert len(browser.opened) == 2


def test_job_walks_every_state_once(settings, tmp_path):
    orch = make_orchestrator(settings, FakeNetwork(reachable={"10.0.0.10", "10.0.0.20"}), FakeBrowser(tmp_path))
    asyncio.run(orch.print_order(make_order()))
    assert orch.last_job.history == [
        PrintState.IDLE,
        PrintState.CLASSIFYING_ITEMS,
        PrintState.RENDERING,
        PrintState.DELIVERING,
        PrintState.AGGREGATING,
        PrintState.DONE,
    ]


def test_fallback_documents_kept_for_reprint(settings, tmp_path):
    orch = make_orchestrator(settings, FakeNetwork(), FakeBrowser(tmp_path))
    outcome = asyncio.run(orch.print_order(make_order()))
    assert set(outcome.fallback_documents) == {"kitchen", "receipt"}
    assert "2x Burger" in outcome.fallback_documents["kitchen"]


def test_kitchen_tickets_split_per_printer(tmp_path):
    printers = (
        PrinterDefinition("r1", "Front", "10.0.0.10", "receipt"),
        PrinterDefinition("k1", "Grill", "10.0.0.20", "kitchen"),
        PrinterDefinition("b1", "Bar", "10.0.0.30", "bar"),
    )
    settings = PrintSettings(
        printers=printers,
        rules=(RoutingRule("Burgers", "k1"), RoutingRule("Coffee", "b1")),
    )
    network = FakeNetwork(reachable={"10.0.0.10", "10.0.0.20", "10.0.0.30"})
    orch = make_orchestrator(settings, network, FakeBrowser(tmp_path))
    order = make_order(items=[
        LineItem("Burger", 1, category_name="Burgers"),
        LineItem("Latte", 1, category_name="Coffee"),
    ])

    outcome = asyncio.run(orch.print_order(order))

    sent = dict(network.sent)
    assert b"Latte" not in sent["10.0.0.20"]
    assert b"Burger" not in sent["10.0.0.30"]
    assert outcome.message == "Order sent to Kitchen, Bar and Receipt printers"


def test_non_order_input_raises_rendering_failure(settings, tmp_path):
    orch = make_orchestrator(settings, FakeNetwork(), FakeBrowser(tmp_path))
    with pytest.raises(RenderingFailure):
        asyncio.run(orch.print_order({"orderNumber": "1"}))


def test_bridge_mode_without_bridge_reports_not_connected(settings, tmp_path):
    async def refuse(url, open_timeout=None):
        raise OSError("connection refused")

    bridge = BridgeDriver(BridgeConnection("ws://localhost:8182", connect=refuse))
    orch = make_orchestrator(settings, FakeNetwork(), FakeBrowser(tmp_path), bridge=bridge, bridge_mode=True)

    outcome = asyncio.run(orch.print_order(make_order()))

    assert outcome.status == "failed"
    assert outcome.message == NOT_CONNECTED_MESSAGE
    assert "receipt" in outcome.fallback_documents


def test_print_direct_sends_to_every_active_printer(tmp_path):
    settings = PrintSettings(printers=(
        PrinterDefinition("r1", "Front", "10.0.0.10", "receipt"),
        PrinterDefinition("r2", "Patio", "10.0.0.11", "receipt"),
        PrinterDefinition("k1", "Kitchen", "10.0.0.20", "kitchen"),
    ))
    network = FakeNetwork(reachable={"10.0.0.10", "10.0.0.11", "10.0.0.20"})
    log = MemoryPrintLog()
    orch = make_orchestrator(settings, network, FakeBrowser(tmp_path), print_log=log)

    response = asyncio.run(orch.print_direct(make_order(), "both"))

    assert response["success"] is True
    assert response["results"]["receipt"]["success"]
    assert response["results"]["kitchen"]["success"]
    assert response["message"] == "Receipt sent to Cashier and Kitchen Printers"
    assert sorted(host for host, _ in network.sent) == ["10.0.0.10", "10.0.0.11", "10.0.0.20"]
    escpos = base64.b64decode(response["fallback_documents"]["receipt"]["escpos"])
    assert escpos.startswith(b"\x1b@")
    assert len(log.attempts) == 3


def test_print_direct_reports_missing_printers(tmp_path):
    orch = make_orchestrator(EMPTY_SETTINGS, FakeNetwork(), FakeBrowser(tmp_path))
    response = asyncio.run(orch.print_direct(make_order(), "receipt"))

    assert response["results"]["receipt"] == {"success": False, "error": "No receipt printer configured"}
    assert response["message"] == "Network printers unavailable - using browser print"


def test_print_direct_skips_empty_kitchen_ticket(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.20"})
    orch = make_orchestrator(settings, network, FakeBrowser(tmp_path))
    order = make_order(items=[LineItem("Coke", 1, category_name="Drinks")])

    response = asyncio.run(orch.print_direct(order, "kitchen"))

    assert response["results"]["kitchen"]["skipped"] is True
    assert response["fallback_documents"]["kitchen"] is None
    assert network.sent == []


def test_preview_renders_both_tickets(settings, tmp_path):
    orch = make_orchestrator(settings, FakeNetwork(), FakeBrowser(tmp_path))
    preview = asyncio.run(orch.preview(make_order()))
    assert "Coke" in preview["receipt"]
    assert "Coke" not in preview["kitchen"]


def test_summary_lists_failures_per_destination():
    results = [
        PrintResult("kitchen", attempted=True, error="Printer offline"),
        PrintResult("receipt", attempted=True, error="Paper out"),
    ]
    assert summarize(results) == ("failed", "Kitchen: Printer offline; Receipt: Paper out")


def test_classifier_policy_is_pluggable(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.10", "10.0.0.20"})
    orch = make_orchestrator(
        settings, network, FakeBrowser(tmp_path),
        classifier=ItemClassifier(tie_break="first_match"),
    )
    outcome = asyncio.run(orch.print_order(make_order()))
    assert outcome.success


def test_receipt_copies_open_staggered_browser_pages(tmp_path):
    browser = FakeBrowser(tmp_path)
    orch = make_orchestrator(EMPTY_SETTINGS, FakeNetwork(), browser)

    outcome = asyncio.run(orch.print_order(make_order(), print_kitchen=False, receipt_copies=2))

    assert [r.destination_kind for r in outcome.results] == ["receipt"]
    assert outcome.results[0].copies == 2
    assert len(browser.opened) == 2
    assert browser.sleeps == [1.5]


def test_receipt_copies_default_comes_from_orchestrator(settings, tmp_path):
    network = FakeNetwork(reachable={"10.0.0.10"})
    orch = make_orchestrator(settings, network, FakeBrowser(tmp_path), receipt_copies=3)

    outcome = asyncio.run(orch.print_order(make_order(), print_kitchen=False))

    assert outcome.results[0].copies == 3
    [(host, payload)] = network.sent
    assert payload.count(b"\x1dV\x01") == 3


def test_build_orchestrator_reads_receipt_copies(tmp_path):
    path = tmp_path / "bridge_config.json"
    path.write_text(json.dumps({"receipt_copies": 1, "print_log": "memory"}))

    orch = build_orchestrator(BridgeConfig(path))

    assert orch.receipt_copies == 1
    assert isinstance(orch.print_log, MemoryPrintLog)
