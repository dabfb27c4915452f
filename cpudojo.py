"""
CPU Dojo Emulator
=================
A step emulator for the dojo CPU: a flat array of signed 32-bit cells, an
accumulator, two index registers, one equality flag and a call stack that
grows down from the top of memory.

The fetch/decode/execute loop reads the cell at PC, resolves it through the
attached instruction set and lets the handler do the rest, PC included.
Program and stack share one address space.  The program is loaded at 0 and
the stack starts at the last cell, and keeping the two apart is up to
whoever writes the program.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Iterable, Optional

from isa import (
    CpuFault, DojoError, DojoInstructionSet, Instruction, InstructionSet,
    OpCodeNotFound,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

DEFAULT_MEM_SIZE = 512

WORD_BITS = 32
MASK32 = (1 << WORD_BITS) - 1
SIGN32 = 1 << (WORD_BITS - 1)

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def s32(v: int) -> int:
    """Wrap to a signed 32-bit word."""
    v &= MASK32
    return v - (1 << WORD_BITS) if v >= SIGN32 else v

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class MemoryAccessOutOfRange(CpuFault):
    def __init__(self, target: int, mem_size: int, what: str = "access",
                 address: int | None = None):
        self.target = target
        self.mem_size = mem_size
        super().__init__(
            f"Memory {what} @ {target} outside 0..{mem_size - 1}", address)


class ProgramExceedsMemory(DojoError):
    def __init__(self, length: int, mem_size: int):
        self.length = length
        self.mem_size = mem_size
        super().__init__(
            f"Program of {length} cells does not fit in {mem_size} cells")


class CellOutOfRange(DojoError):
    def __init__(self, index: int, value: int):
        self.index = index
        self.value = value
        super().__init__(
            f"Program cell {index} = {value} does not fit a {WORD_BITS}-bit word")


class HaltError(DojoError):
    pass


class CpuState(enum.Enum):
    RUNNING = "running"
    HALTED = "halted"
    OUT_OF_BOUNDS = "out-of-bounds"

# ---------------------------------------------------------------------------
#  CPU
# ---------------------------------------------------------------------------

class Cpu:
    """Dojo CPU: registers, flag, pointers, memory and the run loop."""

    def __init__(self, mem_size: int = DEFAULT_MEM_SIZE,
                 instruction_set: Optional[InstructionSet] = None,
                 lenient: bool = False):
        if isinstance(mem_size, bool) or not isinstance(mem_size, int) or mem_size <= 0:
            raise ValueError(f"mem_size must be a positive integer, got {mem_size!r}")
        self.mem_size = mem_size
        self.memory: list[int] = [0] * mem_size

        self.instruction_set: InstructionSet = (
            instruction_set if instruction_set is not None else DojoInstructionSet())
        # Lenient mode logs and skips unknown opcodes instead of failing
        self.lenient = lenient

        # Registers
        self._a: int = 0
        self._x: int = 0
        self._y: int = 0
        self.flags: bool = False  # True = last comparison was equal

        # Pointers
        self.pc: int = 0
        self.sp: int = mem_size - 1

        # State
        self.halted: bool = False
        self.steps: int = 0
        self.fault_addr: Optional[int] = None

        # Callbacks
        self.on_halt: Optional[Callable[[], None]] = None

    # -- Register shortcuts (wrap to word size) --

    @property
    def a(self) -> int:
        return self._a

    @a.setter
    def a(self, value: int):
        self._a = s32(value)

    @property
    def x(self) -> int:
        return self._x

    @x.setter
    def x(self, value: int):
        self._x = s32(value)

    @property
    def y(self) -> int:
        return self._y

    @y.setter
    def y(self, value: int):
        self._y = s32(value)

    @property
    def state(self) -> CpuState:
        if self.halted:
            return CpuState.HALTED
        if not 0 <= self.pc < self.mem_size:
            return CpuState.OUT_OF_BOUNDS
        return CpuState.RUNNING

    # -- Memory access --

    def _check_addr(self, addr: int, what: str = "access"):
        if not 0 <= addr < self.mem_size:
            raise MemoryAccessOutOfRange(addr, self.mem_size, what)

    def mem_read(self, addr: int) -> int:
        self._check_addr(addr, "read")
        return self.memory[addr]

    def mem_write(self, addr: int, value: int):
        self._check_addr(addr, "write")
        self.memory[addr] = s32(value)

    def read_cells(self, start: int, count: int) -> list[int]:
        """Return *count* cells starting at *start*; the whole range must exist."""
        if count < 0:
            raise ValueError("count must be non-negative")
        if count:
            self._check_addr(start, "read")
            self._check_addr(start + count - 1, "read")
        return self.memory[start:start + count]

    # -- Stack helpers --

    def push(self, value: int):
        """Store at SP, then move SP down one cell."""
        self._check_addr(self.sp, "stack push")
        self.memory[self.sp] = s32(value)
        self.sp -= 1

    def pop(self) -> int:
        """Move SP up one cell and return what is there."""
        self._check_addr(self.sp + 1, "stack pop")
        self.sp += 1
        return self.memory[self.sp]

    # -- Fetch --

    def fetch_operand(self) -> int:
        """Read the cell after the opcode at PC.  PC is left alone."""
        self._check_addr(self.pc + 1, "operand fetch")
        return self.memory[self.pc + 1]

    def halt(self):
        self.halted = True
        if self.on_halt:
            self.on_halt()

    # -- Program loading --

    def load(self, program: Iterable[int]):
        """Copy *program* into memory starting at cell 0.

        Cells must already fit a signed word; nothing is written otherwise.
        """
        cells = [int(c) for c in program]
        for i, c in enumerate(cells):
            if not -SIGN32 <= c < SIGN32:
                raise CellOutOfRange(i, c)
        if len(cells) > self.mem_size:
            raise ProgramExceedsMemory(len(cells), self.mem_size)
        self.memory[:len(cells)] = cells

    # =====================================================================
    #  STEP: one fetch/decode/execute
    # =====================================================================

    def step(self) -> Optional[Instruction]:
        """Execute one instruction and return it.

        Returns None when lenient mode skipped an unknown opcode.
        """
        state = self.state
        if state is not CpuState.RUNNING:
            raise HaltError(f"CPU is {state.value} (PC={self.pc})")

        pc = self.pc
        try:
            opcode = self.mem_read(pc)
            instr = self.instruction_set.resolve(opcode)
        except OpCodeNotFound as e:
            if not self.lenient:
                self._fault(e, pc)
            logger.warning("skipping unknown opcode %d at %d", e.opcode, pc)
            self.pc = pc + 1
            self.steps += 1
            return None
        except CpuFault as e:
            self._fault(e, pc)

        try:
            instr.execute(self)
        except CpuFault as e:
            self._fault(e, pc)
        self.steps += 1

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%5d: %-5s -> PC=%d A=%d X=%d Y=%d F=%d SP=%d",
                         pc, instr.mnemonic, self.pc, self.a, self.x, self.y,
                         self.flags, self.sp)
        return instr

    def _fault(self, exc: CpuFault, pc: int):
        exc.address = pc
        self.fault_addr = pc
        raise exc

    # -- Run loop --

    def run(self, max_steps: Optional[int] = None) -> int:
        """Run until BRK or PC leaves memory.  Returns instructions executed.

        With *max_steps* the loop also stops after that many instructions,
        leaving the CPU RUNNING.
        """
        count = 0
        while self.state is CpuState.RUNNING:
            if max_steps is not None and count >= max_steps:
                logger.info("step ceiling of %d reached at PC=%d", max_steps, self.pc)
                return count
            self.step()
            count += 1
        logger.info("CPU %s after %d steps, PC=%d", self.state.value, count, self.pc)
        return count

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = [
            f"  PC = {self.pc:<6d} SP = {self.sp:<6d} state = {self.state.value}",
            f"  A  = {self.a:<11d} X = {self.x:<11d} Y = {self.y:<11d}",
            f"  FLAGS = {'EQ' if self.flags else 'NE'}  steps = {self.steps}",
        ]
        return "\n".join(lines)
