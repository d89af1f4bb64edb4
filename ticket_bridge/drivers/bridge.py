"""
Delivery through a locally running print bridge.

One persistent websocket is shared by every print job. Connecting is
idempotent: concurrent callers wait on the same attempt instead of racing.
"""

import asyncio
import enum
import logging
from typing import Any, Callable

import websockets

from ..documents import Document, render_instructions
from ..errors import BridgeNotConnected, DeliveryRejected, DeliveryTimeout, PrintError
from ..models import DEFAULT_PAPER_SIZE, PaperSize
from ..protocol import generate_uid, make_call, parse_message, print_params
from . import DeliveryResult, Destination

logger = logging.getLogger('ticket.bridge.bridge')

NOT_CONNECTED_MESSAGE = 'Print bridge not connected. Please install and run the print bridge.'


class ConnectionState(enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'


class BridgeConnection:
    """Owns the single websocket to the print bridge."""

    def __init__(
        self,
        url: str,
        connect: Callable[..., Any] = websockets.connect,
        open_timeout: float = 5.0,
        call_timeout: float = 30.0,
    ):
        self.url = url
        self._connect_fn = connect
        self.open_timeout = open_timeout
        self.call_timeout = call_timeout
        self._state = ConnectionState.DISCONNECTED
        self._ws = None
        self._connecting: asyncio.Future | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def ensure_connected(self) -> bool:
        """Connect if needed; safe to call repeatedly and concurrently."""
        if self.is_connected:
            return True
        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())
        return await asyncio.shield(self._connecting)

    async def _connect(self) -> bool:
        self._state = ConnectionState.CONNECTING
        try:
            self._ws = await self._connect_fn(self.url, open_timeout=self.open_timeout)
        except Exception as e:
            logger.error(f"Print bridge connection error: {e}")
            self._state = ConnectionState.DISCONNECTED
            return False
        finally:
            self._connecting = None

        self._state = ConnectionState.CONNECTED
        self._reader_task = asyncio.ensure_future(self._read_loop(self._ws))
        logger.info(f"Connected to print bridge at {self.url}")
        return True

    async def _read_loop(self, ws):
        try:
            async for raw in ws:
                try:
                    msg = parse_message(raw)
                except ValueError as e:
                    logger.warning(f"Ignoring bridge message: {e}")
                    continue

                future = self._pending.get(msg['uid'])
                if future is None or future.done():
                    continue
                if msg.get('error'):
                    future.set_exception(DeliveryRejected(str(msg['error'])))
                else:
                    future.set_result(msg.get('result'))
        except websockets.ConnectionClosed:
            pass
        except Exception as e:
            logger.error(f"Print bridge read error: {e}")
        finally:
            self._mark_disconnected(ws)

    def _mark_disconnected(self, ws):
        if ws is not self._ws:
            return
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BridgeNotConnected('Print bridge connection closed'))
        logger.info("Disconnected from print bridge")

    async def call(self, call: str, params: dict | None = None) -> Any:
        """Send one request and wait for its matching response."""
        if not await self.ensure_connected():
            raise BridgeNotConnected(NOT_CONNECTED_MESSAGE)

        uid = generate_uid()
        future = asyncio.get_event_loop().create_future()
        self._pending[uid] = future
        try:
            await self._ws.send(make_call(call, params, uid))
            return await asyncio.wait_for(future, self.call_timeout)
        except asyncio.TimeoutError:
            raise DeliveryTimeout(f"Print bridge did not answer '{call}' within {self.call_timeout:g}s")
        except websockets.ConnectionClosed:
            raise BridgeNotConnected('Print bridge connection closed')
        finally:
            self._pending.pop(uid, None)

    async def find_printers(self) -> list[str]:
        """Printer names registered with the bridge ([] when unreachable)."""
        try:
            printers = await self.call('printers.find')
        except PrintError as e:
            logger.error(f"Error listing bridge printers: {e}")
            return []
        return list(printers or [])

    async def close(self):
        ws = self._ws
        if ws is not None:
            await ws.close()
            self._mark_disconnected(ws)
        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None


class BridgeDriver:
    """Submits instruction-list documents to a named bridge printer."""

    name = 'bridge'

    def __init__(self, connection: BridgeConnection, paper: PaperSize = DEFAULT_PAPER_SIZE):
        self.connection = connection
        self.paper = paper

    async def deliver(
        self,
        destination: Destination,
        document: Document,
        copies: int = 1,
    ) -> DeliveryResult:
        printer_name = destination.bridge_printer
        if not printer_name:
            return DeliveryResult(False, f"No bridge printer configured for {destination.kind}")

        params = print_params(printer_name, render_instructions(document, self.paper), copies, self.paper)
        try:
            await self.connection.call('print', params)
        except PrintError as e:
            logger.error(f"Bridge print to {printer_name} failed: {e}")
            return DeliveryResult(False, str(e))

        logger.info(f"{destination.label} ticket printed on {printer_name}")
        return DeliveryResult(True, endpoint=printer_name)
