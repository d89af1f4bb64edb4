"""
Delivery drivers: direct network, local print bridge, browser fallback.

Drivers never raise for delivery problems; they report a DeliveryResult
so the orchestrator can fall back one tier.
"""

from dataclasses import dataclass
from typing import Protocol

from ..documents import Document
from ..models import PrinterDefinition


@dataclass(frozen=True)
class Destination:
    """Where one ticket should go."""
    kind: str                                   # 'kitchen', 'bar' or 'receipt'
    printer: PrinterDefinition | None = None
    bridge_printer: str | None = None           # name registered with the bridge

    @property
    def ticket_type(self) -> str:
        return 'receipt' if self.kind == 'receipt' else 'kitchen'

    @property
    def label(self) -> str:
        return self.kind.capitalize()


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    error: str | None = None
    endpoint: str | None = None


class Driver(Protocol):
    name: str

    async def deliver(
        self,
        destination: Destination,
        document: Document,
        copies: int = 1,
    ) -> DeliveryResult:
        ...


from .browser import BrowserDriver  # noqa: E402
from .bridge import BridgeConnection, BridgeDriver, ConnectionState  # noqa: E402
from .network import NetworkDriver  # noqa: E402

__all__ = [
    'BridgeConnection',
    'BridgeDriver',
    'BrowserDriver',
    'ConnectionState',
    'DeliveryResult',
    'Destination',
    'Driver',
    'NetworkDriver',
]
