"""
Dojo worksheet programs, as raw memory images.

Each program is a tuple of cells ready for ``Cpu.load``.  They are built
from the opcode constants so the layout reads like the worksheet listings.
"""

from __future__ import annotations

from typing import Iterable

from isa import (
    OP_ADC, OP_BNE, OP_BRK, OP_CMY, OP_DEY, OP_INX, OP_JSR, OP_LDA, OP_LDX,
    OP_LDY, OP_RTS, OP_STA, OP_STA_X,
)

# Where BRANCHING writes its text
TEXT_BASE = 128
TEXT_END = 255


def _emit_chars(text: str) -> list[int]:
    """LDA #ch / STA_X / INX for every character."""
    cells: list[int] = []
    for ch in text:
        cells += [OP_LDA, ord(ch), OP_STA_X, OP_INX]
    return cells


# Worksheet 1: 100 + 7 stored at cell 15, PC ends at 7
ARITHMETIC = (
    OP_LDA, 0x64,   # LDA #$64
    OP_ADC, 0x07,   # ADC #$07
    OP_STA, 0x0F,   # STA $15
    OP_BRK,
)

# Worksheet 2: one pass of straight-line stores, then a Y-counted loop
_LOOP_BODY = _emit_chars("who ")
BRANCHING = tuple(
    [OP_LDX, TEXT_BASE]
    + _emit_chars("who let the dogs out ")
    + [OP_LDY, 3]
    + _LOOP_BODY
    + [OP_DEY,
       OP_CMY, 0,
       OP_BNE, -(len(_LOOP_BODY) + 3),   # back over DEY/CMY to loop start
       OP_BRK]
)

# Worksheet 3: JSR enters at operand - 1, so "JSR 4" lands on the LDA at 3
SUBROUTINES = (
    OP_JSR, 4,      # 0: JSR -> 3
    OP_BRK,         # 2: resumed here by RTS
    OP_LDA, 0x64,   # 3
    OP_ADC, 0x07,   # 5
    OP_STA, 0x0F,   # 7
    OP_RTS,         # 9
)

PROGRAMS: dict[str, tuple[str, tuple[int, ...]]] = {
    "arithmetic": ("LDA/ADC/STA: stores 107 at cell 15", ARITHMETIC),
    "branching": (f"writes a chant at cell {TEXT_BASE} using a BNE loop", BRANCHING),
    "subroutines": ("JSR/RTS round trip computing 107 into cell 15", SUBROUTINES),
}


def decode_text(cells: Iterable[int]) -> str:
    """Read positive cells as code points, skipping zeros and negatives."""
    chars = []
    for c in cells:
        if 0 < c <= 0x10FFFF:
            chars.append(chr(c))
    return "".join(chars)
