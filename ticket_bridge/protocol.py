"""
WebSocket protocol for Ticket Bridge <-> local print bridge communication.

Every request carries a 'uid'; the bridge echoes it back with either a
'result' or an 'error' key, so several requests can share one socket.
"""

import json
import uuid

from .models import DEFAULT_PAPER_SIZE, PaperSize


# ─── Client → Bridge (Calls) ────────────────────────────────────────────────

CALLS = {
    'print',
    'printers.find',
}


def make_call(call: str, params: dict | None = None, uid: str | None = None) -> str:
    """Create a JSON call string to send to the bridge."""
    if call not in CALLS:
        raise ValueError(f"Unknown bridge call: {call}")
    msg = {
        'uid': uid or generate_uid(),
        'call': call,
        'params': params or {},
    }
    return json.dumps(msg)


def printer_config(
    printer_name: str,
    copies: int = 1,
    paper: PaperSize = DEFAULT_PAPER_SIZE,
) -> dict:
    """Standard raw-print configuration for a thermal printer."""
    return {
        'printer': {'name': printer_name},
        'options': {
            'size': {'width': paper.width_mm, 'height': 0},
            'units': 'mm',
            'copies': copies,
            'density': 'normal',
            'colorType': 'blackwhite',
        },
    }


def print_params(
    printer_name: str,
    data: list[dict],
    copies: int = 1,
    paper: PaperSize = DEFAULT_PAPER_SIZE,
) -> dict:
    params = printer_config(printer_name, copies, paper)
    params['data'] = data
    return params


# ─── Parsing ────────────────────────────────────────────────────────────────

def parse_message(raw: str | bytes) -> dict:
    """Parse an incoming JSON message. Returns dict or raises ValueError."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")

    if not isinstance(msg, dict):
        raise ValueError("Message must be a JSON object")

    if 'uid' not in msg:
        raise ValueError("Message must have a 'uid' key")

    return msg


def generate_uid() -> str:
    """Generate a unique id for a bridge request."""
    return uuid.uuid4().hex
