"""
Entry point for Ticket Bridge.

Usage:
    python -m ticket_bridge
    python -m ticket_bridge --port 12480
    python -m ticket_bridge --test-print 192.168.1.50
    ticket-bridge  (if installed via pip)
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from decimal import Decimal

import uvicorn

from . import __version__
from .config import BridgeConfig
from .documents import build_receipt
from .drivers import Destination, NetworkDriver
from .models import LineItem, OrderDocument, PrinterDefinition


def setup_logging(level: str = 'info'):
    """Configure logging for the bridge."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S',
    )

    # Quiet down noisy loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)


def test_order() -> OrderDocument:
    return OrderDocument(
        order_number='TEST-0001',
        order_type='takeaway',
        items=(LineItem('Test item', 1, unit_price=Decimal('10.00')),),
        subtotal=Decimal('10.00'),
        tax=Decimal('1.30'),
        total=Decimal('10.00'),
        payment_method='cash',
        cashier_name='Ticket Bridge',
        timestamp=datetime.now(),
    )


async def send_test_print(address: str, config: BridgeConfig) -> bool:
    """Print a sample receipt on the printer at ADDRESS (host or host:port)."""
    printer = PrinterDefinition.from_row({
        'id': 'test',
        'name': 'Test printer',
        'ip_address': address,
        'printer_type': 'receipt',
    })
    driver = NetworkDriver(
        timeout=config.network_timeout,
        overall_timeout=config.network_overall_timeout,
        raw_socket=config.raw_socket_enabled,
        paper=config.paper_size,
    )
    document = build_receipt(test_order(), currency=config.currency_symbol)
    result = await driver.deliver(Destination('receipt', printer), document)

    logger = logging.getLogger('ticket.bridge')
    if result.success:
        logger.info(f"Test print sent to {printer.address}:{printer.port} via {result.endpoint}")
    else:
        logger.error(f"Test print failed: {result.error}")
    return result.success


def main():
    parser = argparse.ArgumentParser(
        description=f'Ticket Bridge v{__version__}: kitchen and receipt printing for the POS',
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=None,
        help='HTTP server port (default: from config)',
    )
    parser.add_argument(
        '--host',
        type=str,
        default=None,
        help='Bind address (default: 127.0.0.1)',
    )
    parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warning', 'error'],
        default=None,
        help='Logging level',
    )
    parser.add_argument(
        '--config', '-c',
        type=str,
        default=None,
        help='Path to a config file (default: platform config dir)',
    )
    parser.add_argument(
        '--test-print',
        metavar='ADDRESS',
        default=None,
        help='Send a test receipt to the network printer at ADDRESS and exit',
    )
    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'ticket-bridge {__version__}',
    )

    args = parser.parse_args()

    config = BridgeConfig(args.config)

    port = args.port or config.port
    host = args.host or config.host
    log_level = args.log_level or config.log_level

    setup_logging(log_level)

    logger = logging.getLogger('ticket.bridge')
    logger.info(f"Ticket Bridge v{__version__}")
    logger.info(f"Config: {config.path}")

    if args.test_print:
        ok = asyncio.run(send_test_print(args.test_print, config))
        sys.exit(0 if ok else 1)

    if args.config:
        # The server module loads its own config on import
        os.environ['TICKET_BRIDGE_CONFIG'] = str(config.path)

    logger.info(f"Starting HTTP server on {host}:{port}")

    uvicorn.run(
        'ticket_bridge.server:app',
        host=host,
        port=port,
        log_level=log_level,
    )


if __name__ == '__main__':
    main()
