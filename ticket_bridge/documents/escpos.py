"""
ESC/POS serializers.

Two dialects share one command table: raw bytes for direct network
delivery, and the raw/plain instruction list consumed by the print bridge.
"""

from escpos import constants

from ..models import DEFAULT_PAPER_SIZE, PaperSize
from .model import (
    Align,
    Cut,
    Document,
    Feed,
    Initialize,
    Logo,
    Row,
    Rule,
    Style,
    Text,
    pad_row,
)


def _code(data: bytes) -> str:
    # One char per byte; the str pipeline is encoded once at the end
    return data.decode('latin-1')


ESC = _code(constants.ESC)
GS = _code(constants.GS)
FS = _code(constants.FS)

COMMANDS = {
    'init': _code(constants.HW_INIT),
    'align_left': _code(constants.TXT_STYLE['align']['left']),
    'align_center': _code(constants.TXT_STYLE['align']['center']),
    'align_right': _code(constants.TXT_STYLE['align']['right']),
    'bold_on': _code(constants.TXT_STYLE['bold'][True]),
    'bold_off': _code(constants.TXT_STYLE['bold'][False]),
    'size_normal': _code(constants.TXT_NORMAL),
    # Bare ESC ! n: python-escpos only ships GS ! based size presets
    'size_double_height': f'{ESC}!\x10',
    'size_double_width': f'{ESC}!\x20',
    'size_double_size': f'{ESC}!\x30',
    'cut': _code(constants.PAPER_FULL_CUT),
    'partial_cut': _code(constants.PAPER_PART_CUT),
    # Prints NV logo #1 stored in the printer
    'print_logo': f'{FS}p\x01\x00',
}

# PC437, the power-on code page of ESC/POS printers
ENCODING = 'cp437'


def feed(lines: int) -> str:
    """ESC d n: print and feed n lines."""
    return f'{ESC}d{chr(max(0, min(lines, 255)))}'


def _chunks(document: Document, paper: PaperSize):
    """Yield command/text strings in document order."""
    for ins in document:
        if isinstance(ins, Initialize):
            yield COMMANDS['init']
        elif isinstance(ins, Align):
            yield COMMANDS[f'align_{ins.align}']
        elif isinstance(ins, Style):
            # Size first: ESC ! also resets emphasis on some firmware
            yield COMMANDS[f'size_{ins.size}']
            yield COMMANDS['bold_on' if ins.bold else 'bold_off']
        elif isinstance(ins, Text):
            yield ins.text + '\n'
        elif isinstance(ins, Row):
            yield pad_row(ins.left, ins.right, paper.columns) + '\n'
        elif isinstance(ins, Rule):
            yield ins.char * paper.columns + '\n'
        elif isinstance(ins, Feed):
            yield feed(ins.lines)
        elif isinstance(ins, Logo):
            yield COMMANDS['print_logo']
            yield feed(1)
        elif isinstance(ins, Cut):
            yield COMMANDS['partial_cut' if ins.partial else 'cut']
        else:
            raise TypeError(f"Unsupported instruction: {ins!r}")


def render_text(document: Document, paper: PaperSize = DEFAULT_PAPER_SIZE) -> str:
    """Control-code document as a string (one char per byte)."""
    return ''.join(_chunks(document, paper))


def render_bytes(document: Document, paper: PaperSize = DEFAULT_PAPER_SIZE) -> bytes:
    """Control-code document ready for a raw printer socket or HTTP body."""
    return render_text(document, paper).encode(ENCODING, errors='replace')


def render_instructions(document: Document, paper: PaperSize = DEFAULT_PAPER_SIZE) -> list[dict]:
    """Instruction list for the print bridge: [{type: raw, format: plain, data}]."""
    return [
        {'type': 'raw', 'format': 'plain', 'data': chunk}
        for chunk in _chunks(document, paper)
    ]
