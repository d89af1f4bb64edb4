"""
Print orchestration: decides what to print where and reports the outcome.

A failed print must never block order completion or payment, so delivery
problems come back inside the PrintOutcome. Only malformed orders raise
(RenderingFailure).
"""

import asyncio
import base64
import enum
import logging
from dataclasses import dataclass, field

from .classifier import ItemClassifier, KitchenRoute
from .config import BridgeConfig, get_log_dir
from .documents import Document, build_kitchen_ticket, build_receipt, render_bytes, render_html
from .drivers import (
    BridgeConnection,
    BridgeDriver,
    BrowserDriver,
    Destination,
    NetworkDriver,
)
from .drivers.bridge import NOT_CONNECTED_MESSAGE
from .errors import ConfigurationMissing, RenderingFailure
from .models import (
    DEFAULT_PAPER_SIZE,
    OrderDocument,
    PaperSize,
    PrintAttempt,
    PrintOutcome,
    PrintResult,
)
from .print_log import JsonlPrintLog, MemoryPrintLog, PrintLog, RestPrintLog
from .settings import PrintSettings, RestSettingsSource, SettingsStore, StaticSettingsSource

logger = logging.getLogger('ticket.bridge.orchestrator')

PRINT_TYPES = ('kitchen', 'receipt', 'both')


class PrintState(enum.Enum):
    IDLE = 'idle'
    CLASSIFYING_ITEMS = 'classifying_items'
    RENDERING = 'rendering'
    DELIVERING = 'delivering'
    AGGREGATING = 'aggregating'
    DONE = 'done'


@dataclass
class PrintJob:
    """Progress of one print_order() call. Each stage runs once."""
    order: OrderDocument
    state: PrintState = PrintState.IDLE
    history: list[PrintState] = field(default_factory=lambda: [PrintState.IDLE])

    def advance(self, state: PrintState):
        logger.debug(f"Order {self.order.order_number}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


@dataclass
class Ticket:
    destination: Destination
    document: Document
    copies: int = 1


class PrintOrchestrator:

    def __init__(
        self,
        settings: SettingsStore,
        network: NetworkDriver,
        browser: BrowserDriver,
        bridge: BridgeDriver | None = None,
        print_log: PrintLog | None = None,
        classifier: ItemClassifier | None = None,
        bridge_mode: bool = False,
        paper: PaperSize = DEFAULT_PAPER_SIZE,
        currency: str = 'R',
        receipt_copies: int = 2,
    ):
        if bridge_mode and bridge is None:
            raise ValueError("Bridge mode needs a BridgeDriver")
        self.settings = settings
        self.network = network
        self.browser = browser
        self.bridge = bridge
        self.print_log = print_log or MemoryPrintLog()
        self.classifier = classifier or ItemClassifier()
        self.bridge_mode = bridge_mode
        self.paper = paper
        self.currency = currency
        self.receipt_copies = receipt_copies
        self.last_job: PrintJob | None = None

    async def print_order(
        self,
        order: OrderDocument,
        print_kitchen: bool = True,
        print_receipt: bool = True,
        receipt_copies: int | None = None,
    ) -> PrintOutcome:
        if receipt_copies is None:
            receipt_copies = self.receipt_copies
        if not isinstance(order, OrderDocument):
            raise RenderingFailure(f"Expected an OrderDocument, got {type(order).__name__}")
        job = PrintJob(order)
        self.last_job = job
        settings = await self.settings.get_settings()

        job.advance(PrintState.CLASSIFYING_ITEMS)
        routes = self._kitchen_routes(order, settings) if print_kitchen else []

        job.advance(PrintState.RENDERING)
        tickets = self._render(order, settings, routes, print_receipt, receipt_copies)
        fallback_documents = self._fallback_documents(tickets)

        job.advance(PrintState.DELIVERING)
        logger.info(
            f"Printing order {order.order_number}: "
            f"{', '.join(t.destination.label for t in tickets) or 'nothing'}"
            f"{' via print bridge' if self.bridge_mode else ''}"
        )
        if self.bridge_mode:
            results = await self._deliver_bridge(order, tickets)
        else:
            results = await asyncio.gather(*(self._deliver_network(order, t) for t in tickets))

        job.advance(PrintState.AGGREGATING)
        status, message = summarize(list(results))
        outcome = PrintOutcome(
            status=status,
            message=message,
            results=list(results),
            fallback_documents=fallback_documents,
        )

        job.advance(PrintState.DONE)
        log = logger.info if status == 'success' else logger.warning
        log(f"Order {order.order_number}: {message}")
        return outcome

    async def preview(self, order: OrderDocument) -> dict[str, str]:
        """HTML for the kitchen ticket and the receipt, without printing."""
        settings = await self.settings.get_settings()
        kitchen_items = self.classifier.classify_for_kitchen(
            order.items, settings.rules, settings.printers,
        )
        return {
            'kitchen': render_html(build_kitchen_ticket(order, kitchen_items), self.paper),
            'receipt': render_html(build_receipt(order, settings.branding, self.currency), self.paper),
        }

    # ─── Stages ──────────────────────────────────────────────────────────

    def _kitchen_routes(self, order: OrderDocument, settings: PrintSettings) -> list[KitchenRoute]:
        if self.bridge_mode:
            # The bridge exposes one kitchen printer; keep a single ticket
            items = self.classifier.classify_for_kitchen(
                order.items, settings.rules, settings.printers,
            )
            return [KitchenRoute(kind='kitchen', printer=None, items=items)] if items else []
        return self.classifier.route_kitchen_items(order.items, settings.rules, settings.printers)

    def _render(
        self,
        order: OrderDocument,
        settings: PrintSettings,
        routes: list[KitchenRoute],
        print_receipt: bool,
        receipt_copies: int,
    ) -> list[Ticket]:
        tickets = []
        for route in routes:
            document = build_kitchen_ticket(order, route.items)
            if not document:
                continue
            tickets.append(Ticket(
                Destination(
                    kind=route.kind,
                    printer=route.printer,
                    bridge_printer=settings.bridge_printers.get('kitchen'),
                ),
                document,
            ))

        if print_receipt:
            tickets.append(Ticket(
                Destination(
                    kind='receipt',
                    printer=settings.first_printer('receipt'),
                    bridge_printer=(
                        settings.bridge_printers.get('receipt')
                        or settings.bridge_printers.get('cashier')
                    ),
                ),
                build_receipt(order, settings.branding, self.currency),
                copies=max(1, receipt_copies),
            ))
        return tickets

    def _fallback_documents(self, tickets: list[Ticket]) -> dict[str, str]:
        documents = {}
        for ticket in tickets:
            key = ticket.destination.kind
            if key in documents and ticket.destination.printer:
                key = f"{key}:{ticket.destination.printer.name}"
            documents[key] = render_html(ticket.document, self.paper)
        return documents

    async def _deliver_network(self, order: OrderDocument, ticket: Ticket) -> PrintResult:
        dest = ticket.destination
        printer = dest.printer
        result = PrintResult(
            destination_kind=dest.kind,
            printer_name=printer.name if printer else None,
            copies=ticket.copies,
        )

        if printer is not None and printer.address:
            result.attempted = True
            delivery = await self.network.deliver(dest, ticket.document, ticket.copies)
            await self._log(order, dest, printer.name, printer.address,
                            'success' if delivery.success else 'failed', delivery.error)
            if delivery.success:
                result.succeeded = True
                result.driver_used = self.network.name
                return result
            reason = delivery.error
        else:
            reason = str(ConfigurationMissing(f"No {dest.kind} printer configured"))

        logger.info(f"{dest.label}: {reason}, falling back to browser print")
        delivery = await self.browser.deliver(dest, ticket.document, ticket.copies)
        result.attempted = True
        result.driver_used = self.browser.name
        result.fallback = True
        result.succeeded = delivery.success
        result.error = reason if delivery.success else f"{reason}; {delivery.error}"
        await self._log(order, dest, 'Browser', None,
                        'partial' if delivery.success else 'failed', result.error)
        return result

    async def _deliver_bridge(self, order: OrderDocument, tickets: list[Ticket]) -> list[PrintResult]:
        if not await self.bridge.connection.ensure_connected():
            logger.warning("Print bridge not connected, cannot print")
            return [
                PrintResult(
                    destination_kind=t.destination.kind,
                    driver_used=self.bridge.name,
                    error=NOT_CONNECTED_MESSAGE,
                    copies=t.copies,
                )
                for t in tickets
            ]

        async def deliver(ticket: Ticket) -> PrintResult:
            dest = ticket.destination
            delivery = await self.bridge.deliver(dest, ticket.document, ticket.copies)
            if dest.bridge_printer:
                await self._log(order, dest, dest.bridge_printer, 'bridge',
                                'success' if delivery.success else 'failed', delivery.error)
            return PrintResult(
                destination_kind=dest.kind,
                attempted=dest.bridge_printer is not None,
                succeeded=delivery.success,
                driver_used=self.bridge.name,
                error=delivery.error,
                printer_name=dest.bridge_printer,
                copies=ticket.copies,
            )

        return list(await asyncio.gather(*(deliver(t) for t in tickets)))

    async def print_direct(self, order: OrderDocument, print_type: str = 'both') -> dict:
        """
        Server-side printing: send to every active printer of each kind.

        No browser fallback happens here; the rendered documents are
        returned so the caller can print them client-side.
        """
        if print_type not in PRINT_TYPES:
            raise ValueError(f"Unknown print type: {print_type}")
        settings = await self.settings.get_settings()

        kitchen_items = self.classifier.classify_for_kitchen(
            order.items, settings.rules, settings.printers,
        )
        documents = {
            'receipt': build_receipt(order, settings.branding, self.currency),
            'kitchen': build_kitchen_ticket(order, kitchen_items),
        }
        results = {
            'receipt': {'success': False, 'error': 'No receipt printer configured'},
            'kitchen': {'success': False, 'error': 'No kitchen printer configured'},
        }

        async def send(kind: str) -> dict:
            document = documents[kind]
            if not document:
                return {'success': False, 'skipped': True, 'error': 'No kitchen items to print'}
            printers = settings.active_printers(kind)
            if not printers:
                return results[kind]

            deliveries = await asyncio.gather(*(
                self.network.deliver(Destination(kind, printer), document)
                for printer in printers
            ))
            errors = []
            for printer, delivery in zip(printers, deliveries):
                await self._log(order, Destination(kind, printer), printer.name, printer.address,
                                'success' if delivery.success else 'failed', delivery.error)
                if not delivery.success:
                    errors.append(f"{printer.name}: {delivery.error}")
            if any(d.success for d in deliveries):
                return {'success': True, 'error': '; '.join(errors) or None}
            return {'success': False, 'error': '; '.join(errors)}

        kinds = ['receipt', 'kitchen'] if print_type == 'both' else [print_type]
        for kind, result in zip(kinds, await asyncio.gather(*(send(k) for k in kinds))):
            results[kind] = result

        return {
            'success': True,
            'results': results,
            'fallback_documents': {
                kind: {
                    'html': render_html(document, self.paper),
                    'escpos': base64.b64encode(render_bytes(document, self.paper)).decode('ascii'),
                } if document else None
                for kind, document in documents.items()
            },
            'message': direct_message(results),
        }

    async def _log(self, order, dest, printer_name, address, status, error):
        await self.print_log.append(PrintAttempt(
            printer_name=printer_name,
            printer_address=address,
            order_id=order.order_id or order.order_number,
            ticket_type=dest.ticket_type,
            status=status,
            error_message=error,
        ))


# ─── Summary ────────────────────────────────────────────────────────────────

def _labels(results: list[PrintResult]) -> list[str]:
    kinds = [r.destination_kind for r in results]
    labels = []
    for r in results:
        label = r.destination_kind.capitalize()
        if kinds.count(r.destination_kind) > 1 and r.printer_name:
            label = f"{label} ({r.printer_name})"
        labels.append(label)
    return labels


def _join(words: list[str]) -> str:
    if len(words) <= 1:
        return ''.join(words)
    return f"{', '.join(words[:-1])} and {words[-1]}"


def direct_message(results: dict) -> str:
    receipt_ok = results['receipt']['success']
    kitchen_ok = results['kitchen']['success']
    if receipt_ok and kitchen_ok:
        return 'Receipt sent to Cashier and Kitchen Printers'
    if receipt_ok:
        return 'Receipt sent to Cashier Printer (Kitchen printer unavailable)'
    if kitchen_ok:
        return 'Receipt sent to Kitchen Printer (Cashier printer unavailable)'
    return 'Network printers unavailable - using browser print'


def summarize(results: list[PrintResult]) -> tuple[str, str]:
    """Overall status ('success', 'partial', 'failed') and a message for staff."""
    if not results:
        return 'success', 'Nothing to print'

    labels = _labels(results)
    printed = [r.succeeded and not r.fallback for r in results]

    if all(printed):
        plural = 's' if len(results) > 1 else ''
        return 'success', f"Order sent to {_join(labels)} printer{plural}"

    if not any(r.succeeded for r in results):
        errors = {r.error or 'Print failed' for r in results}
        if len(errors) == 1:
            return 'failed', errors.pop()
        return 'failed', '; '.join(
            f"{label}: {r.error or 'Print failed'}" for label, r in zip(labels, results)
        )

    parts = []
    for label, r in zip(labels, results):
        if r.succeeded and not r.fallback:
            parts.append(f"{label} printed")
        elif r.succeeded:
            parts.append(f"{label} printed via browser fallback ({r.error})")
        else:
            parts.append(f"{label} failed ({r.error or 'Print failed'})")
    return 'partial', '; '.join(parts)


# ─── Composition ────────────────────────────────────────────────────────────

def build_orchestrator(config: BridgeConfig) -> PrintOrchestrator:
    """Wire settings, drivers and the print log from the bridge config."""
    if config.backend_url:
        source = RestSettingsSource(config.backend_url, config.backend_api_key)
    else:
        logger.warning("No backend_url configured, printing without printer settings")
        source = StaticSettingsSource()
    settings = SettingsStore(source, ttl=config.settings_ttl)

    if config.print_log == 'backend' and config.backend_url:
        print_log = RestPrintLog(config.backend_url, config.backend_api_key)
    elif config.print_log == 'memory':
        print_log = MemoryPrintLog()
    else:
        print_log = JsonlPrintLog(get_log_dir() / 'print_attempts.jsonl')

    paper = config.paper_size
    bridge = None
    if config.bridge_enabled:
        bridge = BridgeDriver(BridgeConnection(config.bridge_url), paper=paper)

    return PrintOrchestrator(
        settings=settings,
        network=NetworkDriver(
            timeout=config.network_timeout,
            overall_timeout=config.network_overall_timeout,
            raw_socket=config.raw_socket_enabled,
            paper=paper,
        ),
        browser=BrowserDriver(stagger=config.browser_stagger, paper=paper),
        bridge=bridge,
        print_log=print_log,
        bridge_mode=config.bridge_enabled,
        paper=paper,
        currency=config.currency_symbol,
        receipt_copies=config.receipt_copies,
    )
