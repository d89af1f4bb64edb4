"""
Cached access to printer definitions, routing rules and receipt branding.

The store never raises: a failed fetch yields empty settings so printing
degrades to the browser fallback instead of blocking order completion.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

import httpx

from .models import PrinterDefinition, ReceiptBranding, RoutingRule

logger = logging.getLogger('ticket.bridge.settings')

DEFAULT_TTL = 60.0


@dataclass(frozen=True)
class PrintSettings:
    printers: tuple[PrinterDefinition, ...] = ()
    rules: tuple[RoutingRule, ...] = ()
    branding: ReceiptBranding | None = None
    # Bridge-registered printer names keyed by label ('receipt', 'kitchen')
    bridge_printers: dict[str, str] = field(default_factory=dict)

    def first_printer(self, kind: str) -> PrinterDefinition | None:
        """First active printer of the given kind, in fetch order."""
        for printer in self.printers:
            if printer.active and printer.kind == kind:
                return printer
        return None

    def active_printers(self, kind: str) -> list[PrinterDefinition]:
        return [p for p in self.printers if p.active and p.kind == kind]


EMPTY_SETTINGS = PrintSettings()


def normalize_rules(rules: Iterable[RoutingRule]) -> tuple[RoutingRule, ...]:
    """Collapse rules to one per category; a later rule replaces an earlier one."""
    by_category: dict[str, RoutingRule] = {}
    for rule in rules:
        if not rule.category:
            continue
        by_category[rule.category.strip().lower()] = rule
    return tuple(by_category.values())


class SettingsStore:
    """
    Process-wide settings cache with a fixed time-to-live.

    Concurrent callers during a miss share one in-flight fetch. Call
    invalidate() after any settings mutation; stale routing during a shift
    would misroute tickets.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[PrintSettings]],
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._ttl = ttl
        self._clock = clock
        self._cached: PrintSettings | None = None
        self._fetched_at = 0.0
        self._generation = 0
        self._inflight: asyncio.Future | None = None

    async def get_settings(self) -> PrintSettings:
        if self._cached is not None and self._clock() - self._fetched_at < self._ttl:
            return self._cached

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh(self._generation))
        return await asyncio.shield(self._inflight)

    def invalidate(self):
        """Drop cached settings; the next get_settings() always re-fetches."""
        self._cached = None
        self._fetched_at = 0.0
        self._generation += 1
        # A fetch started before the mutation must not be awaited by later callers
        self._inflight = None
        logger.debug("Print settings cache invalidated")

    async def _refresh(self, generation: int) -> PrintSettings:
        try:
            settings = await self._fetch()
        except Exception as e:
            logger.error(f"Failed to fetch print settings: {e}")
            return EMPTY_SETTINGS

        if generation == self._generation:
            self._cached = settings
            self._fetched_at = self._clock()
        return settings


# ─── Sources ────────────────────────────────────────────────────────────────

class StaticSettingsSource:
    """Serves a fixed PrintSettings value (offline deployments and tests)."""

    def __init__(self, settings: PrintSettings = EMPTY_SETTINGS):
        self.settings = settings
        self.calls = 0

    async def __call__(self) -> PrintSettings:
        self.calls += 1
        return self.settings


class RestSettingsSource:
    """Reads the settings tables from a PostgREST-style backend."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self._base = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            'apikey': api_key,
            'Authorization': f"Bearer {api_key}",
        }
        self._client = client
        self._timeout = timeout

    async def __call__(self) -> PrintSettings:
        if self._client is not None:
            return await self._load(self._client)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._load(client)

    async def _load(self, client: httpx.AsyncClient) -> PrintSettings:
        printers, rules, branding, bridge = await asyncio.gather(
            self._select(client, 'printer_settings', {'select': '*', 'is_active': 'eq.true'}),
            self._select(client, 'print_routing_rules', {'select': 'category_name,printer_id'}),
            self._select(client, 'receipt_branding', {'select': '*', 'limit': '1'}),
            self._select(client, 'bridge_printers', {'select': 'label,printer_name'}),
        )
        return PrintSettings(
            printers=tuple(PrinterDefinition.from_row(row) for row in printers),
            rules=normalize_rules(RoutingRule.from_row(row) for row in rules),
            branding=ReceiptBranding.from_row(branding[0]) if branding else None,
            bridge_printers={
                row['label']: row['printer_name']
                for row in bridge
                if row.get('label') and row.get('printer_name')
            },
        )

    async def _select(self, client: httpx.AsyncClient, table: str, params: dict) -> list[dict]:
        response = await client.get(f"{self._base}/{table}", params=params, headers=self._headers)
        response.raise_for_status()
        rows = response.json()
        if not isinstance(rows, list):
            raise ValueError(f"Unexpected response for {table}: {rows!r}")
        return rows
