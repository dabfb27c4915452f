"""
Instruction set tests: table resolution and per-opcode semantics.

Each opcode test runs exactly one instruction and checks that PC moved by
the documented amount and that only the documented state changed.
"""

import unittest

from cpudojo import Cpu, MemoryAccessOutOfRange
from isa import (
    BRK, DOJO_INSTRUCTIONS, DojoInstructionSet, Instruction, InstructionSet,
    OpCodeNotFound, TableInstructionSet,
    OP_ADC, OP_BNE, OP_BRK, OP_CMY, OP_DEY, OP_INX, OP_JSR, OP_LDA, OP_LDX,
    OP_LDY, OP_RTS, OP_STA, OP_STA_X,
)


def snapshot(cpu: Cpu) -> dict:
    return {
        "pc": cpu.pc, "sp": cpu.sp, "a": cpu.a, "x": cpu.x, "y": cpu.y,
        "flags": cpu.flags, "halted": cpu.halted, "memory": list(cpu.memory),
    }


def changed(before: dict, after: dict) -> set:
    diff = {k for k in before if k != "memory" and before[k] != after[k]}
    for i, (b, a) in enumerate(zip(before["memory"], after["memory"])):
        if b != a:
            diff.add(f"mem[{i}]")
    return diff


def exec_one(cells, mem_size=64, **regs) -> tuple[Cpu, dict, dict]:
    """Load *cells*, preset registers, step once; return (cpu, before, after)."""
    cpu = Cpu(mem_size)
    cpu.load(cells)
    for name, value in regs.items():
        setattr(cpu, name, value)
    before = snapshot(cpu)
    cpu.step()
    return cpu, before, snapshot(cpu)


class TestTable(unittest.TestCase):
    def setUp(self):
        self.isa = DojoInstructionSet()

    def test_thirteen_opcodes(self):
        self.assertEqual(self.isa.opcodes(), list(range(13)))

    def test_resolve_returns_matching_handler(self):
        for op in range(13):
            instr = self.isa.resolve(op)
            self.assertIsInstance(instr, Instruction)
            self.assertEqual(instr.opcode, op)

    def test_mnemonics(self):
        names = [self.isa.resolve(op).mnemonic for op in range(13)]
        self.assertEqual(names, ["BRK", "LDA", "ADC", "STA", "LDX", "INX", "CMY",
                                 "BNE", "STA_X", "DEY", "LDY", "JSR", "RTS"])

    def test_sizes(self):
        one_cell = {OP_BRK, OP_INX, OP_STA_X, OP_DEY, OP_RTS}
        for op in range(13):
            self.assertEqual(self.isa.resolve(op).size, 1 if op in one_cell else 2)

    def test_unknown_opcode(self):
        for op in (13, 99, -1, 255):
            with self.assertRaises(OpCodeNotFound) as ctx:
                self.isa.resolve(op)
            self.assertEqual(ctx.exception.opcode, op)

    def test_handlers_are_shared(self):
        self.assertIs(self.isa.resolve(OP_LDA), self.isa.resolve(OP_LDA))

    def test_contains_and_iter(self):
        self.assertIn(OP_RTS, self.isa)
        self.assertNotIn(13, self.isa)
        self.assertEqual([i.opcode for i in self.isa], list(range(13)))

    def test_duplicate_opcode_rejected(self):
        with self.assertRaises(ValueError):
            TableInstructionSet([BRK(), BRK()])

    def test_repr(self):
        self.assertEqual(repr(self.isa.resolve(OP_STA_X)), "<STA_X opcode=8>")


class TestAlternateInstructionSet(unittest.TestCase):
    """The CPU only talks to the InstructionSet interface."""

    def test_custom_table_drives_cpu(self):
        class NOP(Instruction):
            opcode, mnemonic, size = 0x42, "NOP", 1

            def execute(self, cpu):
                cpu.pc += 1

        isa = TableInstructionSet([NOP(), BRK()], name="tiny")
        cpu = Cpu(8, instruction_set=isa)
        cpu.load([0x42, 0x42, OP_BRK])
        self.assertEqual(cpu.run(max_steps=100), 3)
        self.assertTrue(cpu.halted)
        self.assertEqual(cpu.pc, 3)

    def test_opcode_missing_from_custom_table(self):
        isa = TableInstructionSet([BRK()])
        cpu = Cpu(8, instruction_set=isa)
        cpu.load([OP_LDA, 5])
        with self.assertRaises(OpCodeNotFound):
            cpu.run(max_steps=10)

    def test_subclass_must_implement_resolve(self):
        with self.assertRaises(TypeError):
            InstructionSet()


class TestSequentialOpcodes(unittest.TestCase):
    def test_brk(self):
        cpu, before, after = exec_one([OP_BRK])
        self.assertEqual(after["pc"], 1)
        self.assertTrue(cpu.halted)
        self.assertEqual(changed(before, after), {"pc", "halted"})

    def test_lda(self):
        cpu, before, after = exec_one([OP_LDA, 42])
        self.assertEqual((cpu.a, cpu.pc), (42, 2))
        self.assertEqual(changed(before, after), {"pc", "a"})

    def test_lda_negative(self):
        cpu, _, _ = exec_one([OP_LDA, -5])
        self.assertEqual(cpu.a, -5)

    def test_adc(self):
        cpu, before, after = exec_one([OP_ADC, 7], a=100)
        self.assertEqual((cpu.a, cpu.pc), (107, 2))
        self.assertEqual(changed(before, after), {"pc", "a"})

    def test_adc_wraps_at_word_size(self):
        cpu, _, _ = exec_one([OP_ADC, 1], a=2**31 - 1)
        self.assertEqual(cpu.a, -2**31)

    def test_sta(self):
        cpu, before, after = exec_one([OP_STA, 15], a=107)
        self.assertEqual(cpu.memory[15], 107)
        self.assertEqual(cpu.pc, 2)
        self.assertEqual(changed(before, after), {"pc", "mem[15]"})

    def test_ldx(self):
        cpu, before, after = exec_one([OP_LDX, 128])
        self.assertEqual((cpu.x, cpu.pc), (128, 2))
        self.assertEqual(changed(before, after), {"pc", "x"})

    def test_inx(self):
        cpu, before, after = exec_one([OP_INX], x=9)
        self.assertEqual((cpu.x, cpu.pc), (10, 1))
        self.assertEqual(changed(before, after), {"pc", "x"})

    def test_cmy_equal(self):
        cpu, before, after = exec_one([OP_CMY, 3], y=3)
        self.assertTrue(cpu.flags)
        self.assertEqual(cpu.pc, 2)
        self.assertEqual(changed(before, after), {"pc", "flags"})

    def test_cmy_not_equal(self):
        cpu, _, _ = exec_one([OP_CMY, 3], y=2, flags=True)
        self.assertFalse(cpu.flags)

    def test_sta_x(self):
        cpu, before, after = exec_one([OP_STA_X], a=0x77, x=40)
        self.assertEqual(cpu.memory[40], 0x77)
        self.assertEqual(cpu.pc, 1)
        self.assertEqual(changed(before, after), {"pc", "mem[40]"})

    def test_dey(self):
        cpu, before, after = exec_one([OP_DEY], y=0)
        self.assertEqual((cpu.y, cpu.pc), (-1, 1))
        self.assertEqual(changed(before, after), {"pc", "y"})

    def test_ldy(self):
        cpu, before, after = exec_one([OP_LDY, 3])
        self.assertEqual((cpu.y, cpu.pc), (3, 2))
        self.assertEqual(changed(before, after), {"pc", "y"})


class TestBranch(unittest.TestCase):
    def test_bne_taken_backwards(self):
        # BNE at 4 with offset -4 lands on 0
        cells = [OP_INX, OP_INX, OP_INX, OP_INX, OP_BNE, -4]
        cpu = Cpu(16)
        cpu.load(cells)
        cpu.pc = 4
        before = snapshot(cpu)
        cpu.step()
        self.assertEqual(cpu.pc, 0)
        self.assertEqual(changed(before, snapshot(cpu)), {"pc"})

    def test_bne_taken_forwards(self):
        cpu, _, _ = exec_one([OP_BNE, 5])
        self.assertEqual(cpu.pc, 5)

    def test_bne_zero_offset_branches_to_self(self):
        cpu, _, _ = exec_one([OP_BNE, 0])
        self.assertEqual(cpu.pc, 0)

    def test_bne_falls_through_when_equal(self):
        cpu, before, after = exec_one([OP_BNE, -40], flags=True)
        self.assertEqual(cpu.pc, 2)
        self.assertEqual(changed(before, after), {"pc"})


class TestSubroutine(unittest.TestCase):
    def test_jsr_pushes_return_and_enters_at_operand_minus_one(self):
        cpu, before, after = exec_one([OP_JSR, 10], mem_size=32)
        self.assertEqual(cpu.pc, 9)
        self.assertEqual(cpu.sp, 30)
        self.assertEqual(cpu.memory[31], 2)
        self.assertEqual(changed(before, after), {"pc", "sp", "mem[31]"})

    def test_jsr_target_clamped_to_zero(self):
        cpu, _, _ = exec_one([OP_JSR, 0], mem_size=8)
        self.assertEqual(cpu.pc, 0)
        cpu, _, _ = exec_one([OP_JSR, -6], mem_size=8)
        self.assertEqual(cpu.pc, 0)

    def test_rts_pops(self):
        cpu = Cpu(16)
        cpu.load([OP_RTS])
        cpu.push(7)
        sp = cpu.sp
        cpu.step()
        self.assertEqual(cpu.pc, 7)
        self.assertEqual(cpu.sp, sp + 1)

    def test_round_trip_restores_sp(self):
        # 0: JSR 6 -> 5 ; 2: BRK ; 5: INX ; 6: RTS
        cpu = Cpu(16)
        cpu.load([OP_JSR, 6, OP_BRK, 0, 0, OP_INX, OP_RTS])
        sp = cpu.sp
        cpu.run(max_steps=100)
        self.assertTrue(cpu.halted)
        self.assertEqual(cpu.x, 1)
        self.assertEqual(cpu.pc, 3)
        self.assertEqual(cpu.sp, sp)

    def test_nested_calls(self):
        # 0: JSR 5 -> 4 ; 2: BRK ; 4: JSR 9 -> 8 ; 6: INX ; 7: RTS ; 8: INX ; 9: RTS
        cpu = Cpu(32)
        cpu.load([OP_JSR, 5, OP_BRK, 0, OP_JSR, 9, OP_INX, OP_RTS, OP_INX, OP_RTS])
        cpu.run(max_steps=100)
        self.assertTrue(cpu.halted)
        self.assertEqual(cpu.x, 2)
        self.assertEqual(cpu.sp, 31)

    def test_rts_on_empty_stack_faults(self):
        cpu = Cpu(8)
        cpu.load([OP_RTS])
        with self.assertRaises(MemoryAccessOutOfRange):
            cpu.step()
        self.assertEqual((cpu.pc, cpu.sp), (0, 7))


class TestInstructionList(unittest.TestCase):
    def test_dojo_instructions_cover_table(self):
        self.assertEqual(sorted(i.opcode for i in DOJO_INSTRUCTIONS), list(range(13)))
        self.assertEqual(len({type(i) for i in DOJO_INSTRUCTIONS}), 13)

    def test_operand_opcodes(self):
        for op in (OP_LDA, OP_ADC, OP_STA, OP_LDX, OP_CMY, OP_BNE, OP_LDY, OP_JSR):
            self.assertEqual(DojoInstructionSet().resolve(op).size, 2)


if __name__ == "__main__":
    unittest.main()
