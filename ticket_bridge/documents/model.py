"""
Structured ticket documents.

A document is an ordered list of typed instructions. Serializers turn the
same list into HTML or ESC/POS, so every dialect carries identical text.
"""

from dataclasses import dataclass, field
from typing import Iterator, Union


ALIGNMENTS = ('left', 'center', 'right')
SIZES = ('normal', 'double_height', 'double_width', 'double_size')


@dataclass(frozen=True)
class Initialize:
    pass


@dataclass(frozen=True)
class Text:
    """One printed line (no trailing newline)."""
    text: str
    flagged: bool = False   # drawn as a warning in markup, e.g. special instructions


@dataclass(frozen=True)
class Row:
    """Label on the left, amount on the right."""
    left: str
    right: str


@dataclass(frozen=True)
class Style:
    bold: bool = False
    size: str = 'normal'


@dataclass(frozen=True)
class Align:
    align: str = 'left'


@dataclass(frozen=True)
class Rule:
    char: str = '-'


@dataclass(frozen=True)
class Feed:
    lines: int = 1


@dataclass(frozen=True)
class Logo:
    url: str


@dataclass(frozen=True)
class Cut:
    partial: bool = False


Instruction = Union[Initialize, Text, Row, Style, Align, Rule, Feed, Logo, Cut]


@dataclass
class Document:
    title: str = ''
    instructions: list[Instruction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    # ─── Builder helpers ──────────────────────────────────────────────────

    def add(self, instruction: Instruction) -> 'Document':
        self.instructions.append(instruction)
        return self

    def text(self, text: str, flagged: bool = False) -> 'Document':
        return self.add(Text(text, flagged))

    def row(self, left: str, right: str) -> 'Document':
        return self.add(Row(left, right))

    def style(self, bold: bool = False, size: str = 'normal') -> 'Document':
        if size not in SIZES:
            raise ValueError(f"Unknown text size: {size}")
        return self.add(Style(bold, size))

    def align(self, align: str) -> 'Document':
        if align not in ALIGNMENTS:
            raise ValueError(f"Unknown alignment: {align}")
        return self.add(Align(align))

    def rule(self, char: str = '-') -> 'Document':
        return self.add(Rule(char))

    def feed(self, lines: int = 1) -> 'Document':
        return self.add(Feed(lines))

    def lines(self, columns: int) -> list[str]:
        """Printable text lines, the content every serializer must carry."""
        out = []
        for ins in self.instructions:
            if isinstance(ins, Text):
                out.append(ins.text)
            elif isinstance(ins, Row):
                out.append(pad_row(ins.left, ins.right, columns))
            elif isinstance(ins, Rule):
                out.append(ins.char * columns)
        return out


def pad_row(left: str, right: str, columns: int) -> str:
    """'Subtotal:            R12.50' padded to the paper width."""
    padding = columns - len(left) - len(right)
    if padding < 1:
        padding = 1
    return f"{left}{' ' * padding}{right}"
