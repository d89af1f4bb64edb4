"""
HTML serializer for on-screen previews and browser printing.
"""

from html import escape

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
)

FONT_SIZES = {
    'normal': '12px',
    'double_height': '18px',
    'double_width': '18px',
    'double_size': '28px',
}


def _css(align: str, bold: bool, size: str, extra: str = '') -> str:
    css = f"text-align: {align}; font-size: {FONT_SIZES[size]};"
    if bold:
        css += ' font-weight: bold;'
    if size == 'double_width':
        css += ' letter-spacing: 0.3em;'
    return css + extra


def render_html(document: Document, paper: PaperSize = DEFAULT_PAPER_SIZE) -> str:
    """Render a document fragment; an empty document renders as ''."""
    if not document:
        return ''

    align, bold, size = 'left', False, 'normal'
    parts = []
    for ins in document:
        if isinstance(ins, Align):
            align = ins.align
        elif isinstance(ins, Style):
            bold, size = ins.bold, ins.size
        elif isinstance(ins, Text):
            extra = ' color: #c00;' if ins.flagged else ''
            parts.append(
                f'<div style="{_css(align, bold, size, extra)} white-space: pre-wrap;">'
                f'{escape(ins.text)}</div>'
            )
        elif isinstance(ins, Row):
            parts.append(
                f'<div style="{_css(align, bold, size)} display: flex; '
                f'justify-content: space-between;">'
                f'<span>{escape(ins.left)}</span>'
                f'<span style="white-space: nowrap;">{escape(ins.right)}</span></div>'
            )
        elif isinstance(ins, Rule):
            border = 'dashed' if ins.char == '-' else 'double'
            parts.append(f'<div style="border-top: 2px {border} #000; margin: 6px 0;"></div>')
        elif isinstance(ins, Feed):
            parts.append(f'<div style="height: {ins.lines}em;"></div>')
        elif isinstance(ins, Logo):
            parts.append(
                f'<div style="text-align: center;"><img src="{escape(ins.url, quote=True)}" '
                f'alt="logo" style="max-width: 200px; max-height: 70px; '
                f'filter: grayscale(100%) contrast(1.2);" /></div>'
            )
        elif isinstance(ins, (Initialize, Cut)):
            continue
        else:
            raise TypeError(f"Unsupported instruction: {ins!r}")

    width_px = round(paper.printable_width_mm * 96 / 25.4)
    body = ''.join(parts)
    return (
        f'<div class="ticket" style="font-family: \'Courier New\', monospace; '
        f'width: {width_px}px; padding: 10px; background: white; color: black;">'
        f'{body}</div>'
    )


def render_page(
    fragment: str,
    paper: PaperSize = DEFAULT_PAPER_SIZE,
    title: str = 'Print',
    auto_print: bool = True,
) -> str:
    """Standalone page sized for thermal paper; prints itself once loaded."""
    script = (
        '<script>window.addEventListener("load", function () '
        '{ window.focus(); window.print(); });</script>'
        if auto_print else ''
    )
    return (
        '<!DOCTYPE html>\n'
        '<html>\n<head>\n'
        '<meta charset="utf-8">\n'
        f'<title>{escape(title)}</title>\n'
        '<style>\n'
        '* { margin: 0; padding: 0; box-sizing: border-box; }\n'
        f'@page {{ size: {paper.width_mm}mm {paper.height_mm}mm; margin: 0; }}\n'
        f'body {{ width: {paper.printable_width_mm}mm; '
        f'max-width: {paper.printable_width_mm}mm; margin: 0 auto; }}\n'
        '</style>\n'
        f'{script}\n'
        '</head>\n'
        f'<body>{fragment}</body>\n'
        '</html>\n'
    )
