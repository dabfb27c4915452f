#!/usr/bin/env python3
"""
CPU Dojo Monitor / CLI
======================
Command-line interface and interactive monitor for the dojo CPU.

Provides:
  - Machine configuration (memory size, lenient mode)
  - Program loading from integer cells or the bundled worksheet programs
  - Run / step / breakpoint execution
  - Register and memory inspection / modification

Usage:
  python cli.py [--mem CELLS] [--program CELLS | --demo NAME] [--run]
                [--max-steps N] [--lenient] [--log-level LEVEL]
"""

from __future__ import annotations
import argparse
import cmd
import logging
import os
import shlex
import sys
from typing import Optional

from cpudojo import (
    CellOutOfRange, Cpu, CpuState, DEFAULT_MEM_SIZE, HaltError, ProgramExceedsMemory,
)
from isa import CpuFault, OpCodeNotFound
from programs import PROGRAMS, TEXT_BASE, TEXT_END, decode_text

LOG_ENV = "CPUDOJO_LOG"


def parse_cells(text: str) -> list[int]:
    """Parse "1, 100, 0x2, -7" (commas and/or whitespace) into integers."""
    tokens = text.replace(",", " ").split()
    return [int(tok, 0) for tok in tokens]


def describe_at(cpu: Cpu, addr: int) -> str:
    """Mnemonic and raw cells of the instruction at *addr*, for step output."""
    if not 0 <= addr < cpu.mem_size:
        return "<outside memory>"
    opcode = cpu.memory[addr]
    try:
        instr = cpu.instruction_set.resolve(opcode)
    except OpCodeNotFound:
        return f"??? ({opcode})"
    raw = cpu.memory[addr:addr + instr.size]
    return f"{instr.mnemonic:<5s} {' '.join(str(c) for c in raw)}"


# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class DojoCLI(cmd.Cmd):
    """Interactive monitor for the dojo CPU."""

    intro = (
        "\n"
        "CPU Dojo Monitor\n"
        "Type 'help' for commands.  'quit' to exit.\n"
    )
    prompt = "DOJO> "

    def __init__(self, cpu: Cpu, stdout=None):
        super().__init__(stdout=stdout)
        self.cpu = cpu
        self.breakpoints: set[int] = set()

    def _print(self, text: str = ""):
        self.stdout.write(text + "\n")

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address (integer with optional base prefix, or pc/sp/x)."""
        s = s.strip().lower()
        if s == "pc":
            return self.cpu.pc
        if s == "sp":
            return self.cpu.sp
        if s == "x":
            return self.cpu.x
        return int(s, 0)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _report_fault(self, e: CpuFault):
        self._print(f"Fault at PC={e.address}: {e}")

    # ================================================================
    #  Commands
    # ================================================================

    # -- Loading --

    def do_load(self, arg):
        """Load cells at address 0: load <cell> [cell] ...
        Cells may be separated by commas or spaces."""
        try:
            cells = parse_cells(arg)
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        if not cells:
            self._print("Usage: load <cell> [cell] ...")
            return
        try:
            self.cpu.load(cells)
        except (ProgramExceedsMemory, CellOutOfRange) as e:
            self._print(f"Error: {e}")
            return
        self._print(f"Loaded {len(cells)} cells at 0")

    def do_demo(self, arg):
        """Load a bundled program: demo <name>   (no name lists them)"""
        name = arg.strip()
        if not name:
            for key, (desc, cells) in PROGRAMS.items():
                self._print(f"  {key:<12s} {len(cells):4d} cells  {desc}")
            return
        if name not in PROGRAMS:
            self._print(f"Unknown demo {name!r}. Try: {', '.join(PROGRAMS)}")
            return
        self.do_load(" ".join(str(c) for c in PROGRAMS[name][1]))

    def do_reset(self, arg):
        """Replace the CPU with a fresh one: reset [mem_cells]
        Memory, registers and breakpoints are all cleared."""
        size = self._parse_int(arg) if arg.strip() else self.cpu.mem_size
        try:
            self.cpu = Cpu(size, self.cpu.instruction_set, lenient=self.cpu.lenient)
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        self.breakpoints.clear()
        self._print(f"CPU reset with {size} cells.")

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            addr_before = self.cpu.pc
            text = describe_at(self.cpu, addr_before)
            try:
                self.cpu.step()
            except HaltError as e:
                self._print(str(e))
                break
            except CpuFault as e:
                self._report_fault(e)
                break
            self._print(f"  {addr_before:5d}: {text}")

    def do_run(self, arg):
        """Run until halt/out-of-bounds/breakpoint: run [max_steps]"""
        max_steps = self._parse_int(arg) if arg.strip() else 1_000_000
        total = 0
        try:
            while total < max_steps:
                if self.cpu.state is not CpuState.RUNNING:
                    break
                if total and self.cpu.pc in self.breakpoints:
                    self._print(f"Breakpoint hit at {self.cpu.pc}")
                    return
                self.cpu.step()
                total += 1
        except CpuFault as e:
            self._report_fault(e)
            return
        if self.cpu.state is CpuState.RUNNING:
            self._print(f"Stopped after {total} steps.")
        else:
            self._print(f"CPU {self.cpu.state.value} after {total} steps.")

    def do_continue(self, arg):
        """Alias for 'run'."""
        self.do_run(arg)
    do_c = do_continue

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>   (no address lists them)"""
        if not arg.strip():
            if self.breakpoints:
                self._print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    self._print(f"  {a}")
            else:
                self._print("No breakpoints set.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.add(addr)
        self._print(f"Breakpoint set at {addr}")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address|all>"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            self._print("All breakpoints cleared.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.discard(addr)
        self._print(f"Breakpoint at {addr} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show CPU registers."""
        self._print(self.cpu.dump_regs())

    def do_state(self, arg):
        """Show run state."""
        self._print(f"  {self.cpu.state.value}")
        if self.cpu.fault_addr is not None:
            self._print(f"  last fault at PC={self.cpu.fault_addr}")

    def do_setreg(self, arg):
        """Set register: setreg <a|x|y|pc|sp|flags> <value>"""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: setreg <reg> <value>")
            return
        reg_s = parts[0].lower()
        val = self._parse_int(parts[1])
        if reg_s in ("a", "x", "y", "pc", "sp"):
            setattr(self.cpu, reg_s, val)
        elif reg_s == "flags":
            self.cpu.flags = bool(val)
        else:
            self._print("Unknown register.")
            return
        self._print(f"  {reg_s.upper()} = {getattr(self.cpu, reg_s)}")

    def do_dump(self, arg):
        """Dump memory: dump [address] [count]
        Defaults to address 0, 64 cells."""
        parts = shlex.split(arg)
        addr = self._parse_addr(parts[0]) if parts else 0
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        try:
            cells = self.cpu.read_cells(addr, count)
        except CpuFault as e:
            self._print(f"Error: {e}")
            return
        for row in range(0, len(cells), 8):
            chunk = cells[row:row + 8]
            self._print(f"  {addr + row:5d}: " + " ".join(f"{c:6d}" for c in chunk))

    def do_setmem(self, arg):
        """Set memory cells: setmem <address> <cell> [cell] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: setmem <addr> <cell...>")
            return
        addr = self._parse_addr(parts[0])
        values = [self._parse_int(tok) for tok in parts[1:]]
        try:
            for i, v in enumerate(values):
                self.cpu.mem_write(addr + i, v)
        except CpuFault as e:
            self._print(f"Error: {e}")
            return
        self._print(f"  Wrote {len(values)} cells at {addr}")

    def do_text(self, arg):
        """Show memory as text: text [start] [end]
        Defaults to the branching demo's output area."""
        parts = shlex.split(arg)
        start = self._parse_addr(parts[0]) if parts else TEXT_BASE
        end = self._parse_addr(parts[1]) if len(parts) > 1 else min(TEXT_END, self.cpu.mem_size)
        try:
            cells = self.cpu.read_cells(start, max(end - start, 0))
        except CpuFault as e:
            self._print(f"Error: {e}")
            return
        self._print(repr(decode_text(cells)))

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        self._print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        self._print(f"Unknown command: {line.split()[0]!r}. Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except ValueError as e:
            self._print(f"Error: {e}")
            return False


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cpudojo",
        description="CPU Dojo emulator and monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py --demo arithmetic --run\n"
               "  python cli.py --program '1,100,2,7,3,15,0' --run\n"
               "  python cli.py --demo branching      # interactive monitor\n"
    )
    parser.add_argument("--mem", type=int, default=DEFAULT_MEM_SIZE,
                        help=f"Memory size in cells (default: {DEFAULT_MEM_SIZE})")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--program", type=str, default=None,
                        help="Program cells, comma or space separated")
    source.add_argument("--demo", choices=sorted(PROGRAMS), default=None,
                        help="Load a bundled worksheet program")
    parser.add_argument("--list-demos", action="store_true",
                        help="List bundled programs and exit")
    parser.add_argument("--run", action="store_true",
                        help="Run to completion, print registers and exit")
    parser.add_argument("--max-steps", type=int, default=None, metavar="N",
                        help="Stop after N instructions")
    parser.add_argument("--lenient", action="store_true",
                        help="Skip unknown opcodes with a warning instead of failing")
    parser.add_argument("--log-level", default=os.environ.get(LOG_ENV, "WARNING"),
                        help=f"Logging level (default: ${LOG_ENV} or WARNING)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_demos:
        for key, (desc, cells) in PROGRAMS.items():
            print(f"  {key:<12s} {len(cells):4d} cells  {desc}")
        return 0

    try:
        cpu = Cpu(args.mem, lenient=args.lenient)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    cells: list[int] = []
    if args.program is not None:
        try:
            cells = parse_cells(args.program)
        except ValueError as e:
            print(f"ERROR: bad program cell: {e}", file=sys.stderr)
            return 1
    elif args.demo:
        cells = list(PROGRAMS[args.demo][1])

    try:
        cpu.load(cells)
    except (ProgramExceedsMemory, CellOutOfRange) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if not args.run:
        DojoCLI(cpu).cmdloop()
        return 0

    try:
        cpu.run(max_steps=args.max_steps)
    except CpuFault as e:
        print(f"Fault at PC={e.address}: {e}", file=sys.stderr)
        print(cpu.dump_regs())
        return 1

    print(cpu.dump_regs())
    if cpu.state is CpuState.RUNNING:
        print(f"Stopped by --max-steps after {cpu.steps} steps.", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
