"""
CPU Dojo Instruction Set
========================
Opcode table for the dojo CPU.  Each opcode maps to one stateless handler
object; the CPU resolves the opcode at PC through an ``InstructionSet`` and
calls ``execute(cpu)`` on whatever comes back.

Handlers own the program counter completely: sequential instructions step
past their own opcode and operand, branches and calls write PC directly,
and the run loop never adds an increment of its own.

Every handler reads its operand (and any target address) *before* touching
CPU state, so an instruction that faults leaves the machine as it found it.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from cpudojo import Cpu

# ---------------------------------------------------------------------------
#  Opcodes
# ---------------------------------------------------------------------------

OP_BRK   = 0   # halt
OP_LDA   = 1   # A <- #imm
OP_ADC   = 2   # A <- A + #imm
OP_STA   = 3   # M[addr] <- A
OP_LDX   = 4   # X <- #imm
OP_INX   = 5   # X <- X + 1
OP_CMY   = 6   # flags <- (#imm == Y)
OP_BNE   = 7   # if !flags: PC <- PC + rel
OP_STA_X = 8   # M[X] <- A
OP_DEY   = 9   # Y <- Y - 1
OP_LDY   = 10  # Y <- #imm
OP_JSR   = 11  # push return, PC <- addr - 1
OP_RTS   = 12  # PC <- pop

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class DojoError(Exception):
    """Base for everything the dojo CPU raises."""
    pass


class CpuFault(DojoError):
    """Fatal condition raised while executing a program.

    ``address`` is the PC of the faulting instruction; the CPU fills it in
    as the fault passes through ``step()``.
    """

    def __init__(self, message: str = "", address: int | None = None):
        self.address = address
        super().__init__(message)


class OpCodeNotFound(CpuFault):
    def __init__(self, opcode: int, address: int | None = None):
        self.opcode = opcode
        super().__init__(f"Opcode {opcode} not in instruction set", address)


# ---------------------------------------------------------------------------
#  Instructions
# ---------------------------------------------------------------------------

class Instruction(abc.ABC):
    """One operation of the instruction set.

    Subclasses set ``opcode``, ``mnemonic`` and ``size`` (cells occupied,
    opcode included) and implement ``execute``.
    """

    opcode: int = -1
    mnemonic: str = "???"
    size: int = 1

    @abc.abstractmethod
    def execute(self, cpu: Cpu) -> None:
        ...

    def __repr__(self) -> str:
        return f"<{self.mnemonic} opcode={self.opcode}>"


class BRK(Instruction):
    opcode, mnemonic, size = OP_BRK, "BRK", 1

    def execute(self, cpu: Cpu) -> None:
        cpu.pc += 1
        cpu.halt()


class LDA(Instruction):
    opcode, mnemonic, size = OP_LDA, "LDA", 2

    def execute(self, cpu: Cpu) -> None:
        cpu.a = cpu.fetch_operand()
        cpu.pc += 2


class ADC(Instruction):
    """Add the immediate operand to A.  No carry flag exists; the sum wraps."""

    opcode, mnemonic, size = OP_ADC, "ADC", 2

    def execute(self, cpu: Cpu) -> None:
        cpu.a = cpu.a + cpu.fetch_operand()
        cpu.pc += 2


class STA(Instruction):
    opcode, mnemonic, size = OP_STA, "STA", 2

    def execute(self, cpu: Cpu) -> None:
        addr = cpu.fetch_operand()
        cpu.mem_write(addr, cpu.a)
        cpu.pc += 2


class LDX(Instruction):
    opcode, mnemonic, size = OP_LDX, "LDX", 2

    def execute(self, cpu: Cpu) -> None:
        cpu.x = cpu.fetch_operand()
        cpu.pc += 2


class INX(Instruction):
    opcode, mnemonic, size = OP_INX, "INX", 1

    def execute(self, cpu: Cpu) -> None:
        cpu.x = cpu.x + 1
        cpu.pc += 1


class CMY(Instruction):
    """Compare the immediate operand with Y.  flags = True means equal."""

    opcode, mnemonic, size = OP_CMY, "CMY", 2

    def execute(self, cpu: Cpu) -> None:
        cpu.flags = cpu.fetch_operand() == cpu.y
        cpu.pc += 2


class BNE(Instruction):
    """Branch if not equal.

    The signed operand is relative to the BNE opcode itself, so an operand
    of 0 branches to self and -n lands n cells back.
    """

    opcode, mnemonic, size = OP_BNE, "BNE", 2

    def execute(self, cpu: Cpu) -> None:
        offset = cpu.fetch_operand()
        if not cpu.flags:
            cpu.pc += offset
        else:
            cpu.pc += 2


class STA_X(Instruction):
    opcode, mnemonic, size = OP_STA_X, "STA_X", 1

    def execute(self, cpu: Cpu) -> None:
        cpu.mem_write(cpu.x, cpu.a)
        cpu.pc += 1


class DEY(Instruction):
    opcode, mnemonic, size = OP_DEY, "DEY", 1

    def execute(self, cpu: Cpu) -> None:
        cpu.y = cpu.y - 1
        cpu.pc += 1


class LDY(Instruction):
    opcode, mnemonic, size = OP_LDY, "LDY", 2

    def execute(self, cpu: Cpu) -> None:
        cpu.y = cpu.fetch_operand()
        cpu.pc += 2


class JSR(Instruction):
    """Jump to subroutine.

    Pushes the address of the cell after the operand, then enters the
    routine at ``operand - 1`` (never below 0).
    """

    opcode, mnemonic, size = OP_JSR, "JSR", 2

    def execute(self, cpu: Cpu) -> None:
        target = max(cpu.fetch_operand() - 1, 0)
        cpu.push(cpu.pc + 2)
        cpu.pc = target


class RTS(Instruction):
    opcode, mnemonic, size = OP_RTS, "RTS", 1

    def execute(self, cpu: Cpu) -> None:
        cpu.pc = max(cpu.pop(), 0)


# ---------------------------------------------------------------------------
#  Instruction sets
# ---------------------------------------------------------------------------

class InstructionSet(abc.ABC):
    """Resolves numeric opcodes to instruction handlers."""

    name: str = "abstract"

    @abc.abstractmethod
    def resolve(self, opcode: int) -> Instruction:
        """Return the handler for *opcode*, or raise ``OpCodeNotFound``."""
        ...

    @abc.abstractmethod
    def opcodes(self) -> list[int]:
        ...

    def __contains__(self, opcode: object) -> bool:
        return opcode in self.opcodes()

    def __iter__(self) -> Iterator[Instruction]:
        for op in self.opcodes():
            yield self.resolve(op)


class TableInstructionSet(InstructionSet):
    """Instruction set backed by a dict of shared handler instances."""

    def __init__(self, instructions: Iterable[Instruction], name: str = "table"):
        self.name = name
        self._table: dict[int, Instruction] = {}
        for instr in instructions:
            if instr.opcode in self._table:
                raise ValueError(
                    f"Duplicate opcode {instr.opcode}: "
                    f"{self._table[instr.opcode].mnemonic} and {instr.mnemonic}")
            self._table[instr.opcode] = instr

    def resolve(self, opcode: int) -> Instruction:
        try:
            return self._table[opcode]
        except KeyError:
            raise OpCodeNotFound(opcode) from None

    def opcodes(self) -> list[int]:
        return sorted(self._table)


DOJO_INSTRUCTIONS = (
    BRK(), LDA(), ADC(), STA(), LDX(), INX(), CMY(),
    BNE(), STA_X(), DEY(), LDY(), JSR(), RTS(),
)


class DojoInstructionSet(TableInstructionSet):
    """The canonical 13-opcode dojo table."""

    def __init__(self):
        super().__init__(DOJO_INSTRUCTIONS, name="dojo")
