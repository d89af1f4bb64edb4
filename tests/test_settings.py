import asyncio

import httpx

from ticket_bridge.models import PrinterDefinition, RoutingRule
from ticket_bridge.settings import (
    EMPTY_SETTINGS,
    PrintSettings,
    RestSettingsSource,
    SettingsStore,
    StaticSettingsSource,
    normalize_rules,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_cached_settings_are_reused_within_ttl(settings):
    source = StaticSettingsSource(settings)
    clock = FakeClock()
    store = SettingsStore(source, ttl=60, clock=clock)

    async def scenario():
        first = await store.get_settings()
        clock.now += 30
        second = await store.get_settings()
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second is settings
    assert source.calls == 1


def test_settings_refetched_after_ttl(settings):
    source = StaticSettingsSource(settings)
    clock = FakeClock()
    store = SettingsStore(source, ttl=60, clock=clock)

    async def scenario():
        await store.get_settings()
        clock.now += 61
        await store.get_settings()

    asyncio.run(scenario())
    assert source.calls == 2


def test_invalidate_forces_refetch(settings):
    source = StaticSettingsSource(settings)
    store = SettingsStore(source, ttl=60, clock=FakeClock())

    async def scenario():
        await store.get_settings()
        store.invalidate()
        await store.get_settings()

    asyncio.run(scenario())
    assert source.calls == 2


def test_concurrent_misses_share_one_fetch(settings):
    calls = []

    async def slow_fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return settings

    store = SettingsStore(slow_fetch, ttl=60, clock=FakeClock())

    async def scenario():
        return await asyncio.gather(*(store.get_settings() for _ in range(5)))

    results = asyncio.run(scenario())
    assert len(calls) == 1
    assert all(r is settings for r in results)


def test_fetch_started_before_invalidate_is_not_cached(settings):
    updated = PrintSettings(rules=(RoutingRule("Pizza", "k2"),))
    responses = [settings, updated]
    gate = None

    async def fetch():
        value = responses.pop(0)
        if value is settings:
            await gate.wait()
        return value

    store = SettingsStore(fetch, ttl=60, clock=FakeClock())

    async def scenario():
        nonlocal gate
        gate = asyncio.Event()
        stale = asyncio.ensure_future(store.get_settings())
        await asyncio.sleep(0)
        store.invalidate()
        fresh = await store.get_settings()
        gate.set()
        await stale
        return fresh, await store.get_settings()

    fresh, cached = asyncio.run(scenario())
    assert fresh is updated
    assert cached is updated


def test_failed_fetch_yields_empty_settings_and_is_not_cached(settings):
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise httpx.ConnectError("backend down")
        return settings

    store = SettingsStore(flaky, ttl=60, clock=FakeClock())

    async def scenario():
        return await store.get_settings(), await store.get_settings()

    first, second = asyncio.run(scenario())
    assert first is EMPTY_SETTINGS
    assert second is settings


def test_later_rule_for_same_category_replaces_earlier():
    rules = normalize_rules([
        RoutingRule("Burgers", "k1"),
        RoutingRule("Pizza", "k1"),
        RoutingRule("burgers", "k2"),
    ])
    assert len(rules) == 2
    by_category = {r.category.lower(): r.printer_id for r in rules}
    assert by_category == {"burgers": "k2", "pizza": "k1"}


def test_first_printer_skips_inactive():
    settings = PrintSettings(printers=(
        PrinterDefinition("a", "Old", "10.0.0.1", "receipt", active=False),
        PrinterDefinition("b", "New", "10.0.0.2", "receipt"),
    ))
    assert settings.first_printer("receipt").id == "b"
    assert settings.first_printer("kitchen") is None


def test_rest_source_reads_backend_tables():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        rows = {
            "printer_settings": [
                {"id": 1, "name": "Kitchen", "ip_address": "10.0.0.20:9101",
                 "printer_type": "kitchen", "is_active": True},
            ],
            "print_routing_rules": [
                {"category_name": "Burgers", "printer_id": 1},
                {"category_name": "burgers", "printer_id": 1},
            ],
            "receipt_branding": [
                {"business_name": "Bunny Chow Co", "address_line1": "1 Long St",
                 "address_line2": None, "phone": "021 555 0100"},
            ],
            "bridge_printers": [{"label": "receipt", "printer_name": "EPSON TM-T20"}],
        }[table]
        return httpx.Response(200, json=rows)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = RestSettingsSource("https://backend.example/", "anon-key", client=client)
            return await source()

    settings = asyncio.run(scenario())

    printer = settings.printers[0]
    assert (printer.id, printer.address, printer.port) == ("1", "10.0.0.20", 9101)
    assert len(settings.rules) == 1
    assert settings.branding.address_lines == ("1 Long St",)
    assert settings.bridge_printers == {"receipt": "EPSON TM-T20"}
    assert all(r.headers["apikey"] == "anon-key" for r in seen)
    assert all(r.url.path.startswith("/rest/v1/") for r in seen)
