"""
Direct network delivery to ESC/POS printers.

Probes a fixed, ordered list of endpoint shapes and stops at the first one
that accepts the payload. Best effort by nature: most failures just mean
the next tier (browser fallback) takes over.
"""

import asyncio
import logging
from typing import Callable

import httpx

from ..documents import Document, render_bytes
from ..errors import ConfigurationMissing, DeliveryRejected, DeliveryTimeout, PrintError
from ..models import DEFAULT_PAPER_SIZE, PaperSize, PrinterDefinition
from . import DeliveryResult, Destination

logger = logging.getLogger('ticket.bridge.network')

# Probe order: raw path, alternate path, bare host, vendor control paths
ENDPOINT_TEMPLATES = (
    'http://{host}:{port}/print',
    'http://{host}/print',
    'http://{host}:{port}',
    'http://{host}/cgi-bin/epos/service.cgi',       # Epson ePOS
    'http://{host}/StarWebPRNT/SendMessage',         # Star WebPRNT
)

DEFAULT_TIMEOUT = 5.0
DEFAULT_OVERALL_TIMEOUT = 30.0


def send_raw_escpos(host: str, port: int, payload: bytes, timeout: float):
    """Blocking raw TCP send through python-escpos (port 9100 style)."""
    from escpos.printer import Network

    printer = Network(host, port=port, timeout=timeout)
    try:
        # _raw is the library's unformatted socket write; there is no public equivalent
        printer._raw(payload)
    finally:
        try:
            printer.close()
        except Exception:
            pass


class NetworkDriver:
    """Delivers control-code documents straight to a printer's address."""

    name = 'network'

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        overall_timeout: float | None = DEFAULT_OVERALL_TIMEOUT,
        raw_socket: bool = True,
        paper: PaperSize = DEFAULT_PAPER_SIZE,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        raw_sender: Callable[[str, int, bytes, float], None] = send_raw_escpos,
    ):
        self.timeout = timeout
        self.overall_timeout = overall_timeout
        self.raw_socket = raw_socket
        self.paper = paper
        self._client_factory = client_factory or httpx.AsyncClient
        self._raw_sender = raw_sender

    def endpoints(self, printer: PrinterDefinition) -> list[str]:
        return [t.format(host=printer.address, port=printer.port) for t in ENDPOINT_TEMPLATES]

    async def deliver(
        self,
        destination: Destination,
        document: Document,
        copies: int = 1,
    ) -> DeliveryResult:
        printer = destination.printer
        if printer is None or not printer.address:
            error = ConfigurationMissing(f"No {destination.kind} printer address configured")
            return DeliveryResult(False, str(error))

        payload = render_bytes(document, self.paper) * max(1, copies)
        logger.info(f"Sending {destination.kind} ticket to {printer.name} at {printer.address}...")

        try:
            if self.overall_timeout:
                return await asyncio.wait_for(self.probe(printer, payload), self.overall_timeout)
            return await self.probe(printer, payload)
        except asyncio.TimeoutError:
            error = DeliveryTimeout(
                f"Printer at {printer.address} did not answer within {self.overall_timeout:g}s"
            )
            logger.warning(f"{printer.name}: {error}")
            return DeliveryResult(False, str(error))

    async def probe(self, printer: PrinterDefinition, payload: bytes) -> DeliveryResult:
        """Try every candidate endpoint in order; first acceptance wins."""
        last_error: PrintError | None = None

        if self.raw_socket:
            endpoint = f"tcp://{printer.address}:{printer.port}"
            try:
                await self._send_raw(printer, payload)
                logger.info(f"Sent to {printer.name} via {endpoint}")
                return DeliveryResult(True, endpoint=endpoint)
            except DeliveryTimeout as e:
                # The send may still complete in its executor thread
                logger.warning(f"{printer.name}: {e}, not trying HTTP endpoints")
                return DeliveryResult(False, f"Could not connect to printer at {printer.address}: {e}")
            except PrintError as e:
                last_error = e
                logger.debug(f"{endpoint} failed: {e}")

        async with self._client_factory() as client:
            for url in self.endpoints(printer):
                try:
                    await self._post(client, url, payload)
                    logger.info(f"Sent to {printer.name} via {url}")
                    return DeliveryResult(True, endpoint=url)
                except PrintError as e:
                    last_error = e
                    logger.debug(f"{url} failed: {e}")

        logger.info(f"{printer.name} unreachable, will use fallback")
        reason = f": {last_error}" if last_error else ''
        return DeliveryResult(False, f"Could not connect to printer at {printer.address}{reason}")

    async def _post(self, client: httpx.AsyncClient, url: str, payload: bytes):
        try:
            response = await client.post(
                url,
                content=payload,
                headers={'Content-Type': 'application/octet-stream'},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            raise DeliveryTimeout(f"{url} timed out after {self.timeout:g}s")
        except httpx.HTTPError as e:
            raise DeliveryTimeout(f"{url} unreachable ({e.__class__.__name__})")

        if not response.is_success:
            raise DeliveryRejected(f"{url} answered HTTP {response.status_code}")

    async def _send_raw(self, printer: PrinterDefinition, payload: bytes):
        loop = asyncio.get_event_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(
                    None, self._raw_sender, printer.address, printer.port, payload, self.timeout,
                ),
                self.timeout,
            )
        except asyncio.TimeoutError:
            raise DeliveryTimeout(f"Raw socket to {printer.address}:{printer.port} timed out")
        except Exception as e:
            raise DeliveryRejected(f"Raw socket to {printer.address}:{printer.port} failed: {e}")
