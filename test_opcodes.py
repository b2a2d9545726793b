"""
Opcode table tests: default MIPS32 table, decode lookups, validation,
JSON loading, and injecting a fabricated table into the encoder.
"""

import dataclasses
import json
import os
import tempfile
import unittest

from asm import assemble, UnsupportedOpcode
from opcodes import (MIPS32, OpcodeDescriptor, OpcodeTable, load_opcode_table,
                     descriptor_from_dict, FMT_R, FMT_I, FMT_J)


class TestDefaultTable(unittest.TestCase):
    def test_lookup(self):
        add = MIPS32["add"]
        self.assertEqual(add.fmt, FMT_R)
        self.assertEqual(add.opcode, 0)
        self.assertEqual(add.funct, 0x20)
        self.assertFalse(add.shift)
        self.assertTrue(MIPS32["sll"].shift)
        self.assertEqual(MIPS32["lw"].fmt, FMT_I)
        self.assertEqual(MIPS32["jal"].fmt, FMT_J)

    def test_missing(self):
        self.assertNotIn("frobnicate", MIPS32)
        self.assertIsNone(MIPS32.get("frobnicate"))
        with self.assertRaises(KeyError):
            MIPS32["frobnicate"]

    def test_case_sensitive(self):
        self.assertIsNone(MIPS32.get("ADD"))

    def test_fixed_bits(self):
        self.assertEqual(MIPS32["add"].fixed_bits, 0x00000020)
        self.assertEqual(MIPS32["jr"].fixed_bits, 0x00000008)
        self.assertEqual(MIPS32["addi"].fixed_bits, 0x20000000)
        self.assertEqual(MIPS32["sw"].fixed_bits, 0xAC000000)
        self.assertEqual(MIPS32["j"].fixed_bits, 0x08000000)

    def test_reverse_lookups(self):
        self.assertEqual(MIPS32.by_funct(0x08).mnemonic, "jr")
        self.assertEqual(MIPS32.by_funct(0x2A).mnemonic, "slt")
        self.assertEqual(MIPS32.by_opcode(0x23).mnemonic, "lw")
        self.assertEqual(MIPS32.by_opcode(0x03).mnemonic, "jal")
        self.assertIsNone(MIPS32.by_opcode(0x00))
        self.assertIsNone(MIPS32.by_opcode(0x3F))
        self.assertIsNone(MIPS32.by_funct(0x3F))

    def test_conventions(self):
        self.assertTrue(MIPS32["beq"].is_branch)
        self.assertTrue(MIPS32["bne"].is_branch)
        self.assertFalse(MIPS32["addi"].is_branch)
        self.assertTrue(MIPS32["jr"].is_jump_register)
        self.assertTrue(MIPS32["jalr"].is_jump_register)
        self.assertFalse(MIPS32["j"].is_jump_register)
        self.assertTrue(MIPS32["lui"].is_load_upper)
        for m in ("addi", "addiu", "slti", "sltiu", "andi", "ori", "xori"):
            self.assertTrue(MIPS32[m].is_immediate_op, m)
        for m in ("lw", "sb", "lhu"):
            self.assertFalse(MIPS32[m].is_immediate_op, m)

    def test_immutable(self):
        with self.assertRaises(dataclasses.FrozenInstanceError):
            MIPS32["add"].opcode = 1
        with self.assertRaises(TypeError):
            MIPS32["mov"] = MIPS32["add"]


class TestTableValidation(unittest.TestCase):
    def test_duplicate_mnemonic(self):
        with self.assertRaises(ValueError):
            OpcodeTable([OpcodeDescriptor("add", FMT_R, 0, 0x20),
                         OpcodeDescriptor("add", FMT_R, 0, 0x21)])

    def test_funct_collision(self):
        with self.assertRaises(ValueError):
            OpcodeTable([OpcodeDescriptor("add", FMT_R, 0, 0x20),
                         OpcodeDescriptor("plus", FMT_R, 0, 0x20)])

    def test_opcode_collision(self):
        with self.assertRaises(ValueError):
            OpcodeTable([OpcodeDescriptor("j", FMT_J, 2),
                         OpcodeDescriptor("goto", FMT_I, 2)])

    def test_field_checks(self):
        bad = [
            OpcodeDescriptor("x", "Q", 1),
            OpcodeDescriptor("x", FMT_I, 64),
            OpcodeDescriptor("x", FMT_R, 0),
            OpcodeDescriptor("x", FMT_R, 0, 64),
            OpcodeDescriptor("x", FMT_I, 1, 3),
            OpcodeDescriptor("x", FMT_I, 1, shift=True),
            OpcodeDescriptor("", FMT_J, 2),
        ]
        for d in bad:
            with self.assertRaises(ValueError, msg=repr(d)):
                OpcodeTable([d])

    def test_zero_opcode_reserved_for_r_format(self):
        for fmt in (FMT_I, FMT_J):
            with self.assertRaises(ValueError, msg=fmt):
                OpcodeTable([OpcodeDescriptor("addi", fmt, 0)])
        table = OpcodeTable([OpcodeDescriptor("add", FMT_R, 0, 0x20)])
        self.assertIs(table.by_funct(0x20), table["add"])

    def test_empty_table(self):
        self.assertEqual(len(OpcodeTable([])), 0)


class TestFabricatedTable(unittest.TestCase):
    def test_encoder_uses_injected_table(self):
        table = OpcodeTable([
            OpcodeDescriptor("mov", FMT_R, 0, 0x01),
            OpcodeDescriptor("go", FMT_J, 0x3E),
        ])
        words = assemble("top: mov $t0, $t1, $t2\n  go top\n", table)
        self.assertEqual(words, [0x012A4001, 0xF8000000])

    def test_default_mnemonics_unavailable(self):
        table = OpcodeTable([OpcodeDescriptor("mov", FMT_R, 0, 0x01)])
        with self.assertRaises(UnsupportedOpcode):
            assemble("add $t0, $t1, $t2\n", table)


# ---------------------------------------------------------------------------
#  JSON loading
# ---------------------------------------------------------------------------

class TestLoadOpcodeTable(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, doc) -> str:
        path = os.path.join(self.tmp.name, "opcodes.json")
        with open(path, "w", encoding="utf-8") as f:
            if isinstance(doc, str):
                f.write(doc)
            else:
                json.dump(doc, f)
        return path

    def test_load_bit_strings(self):
        path = self.write([
            {"name": "add", "type": "R_Type", "op": "000000", "funct": "100000", "shift": False},
            {"name": "sll", "type": "R", "op": "000000", "funct": "000000", "shift": True},
            {"name": "lw", "type": "I_Type", "op": "100011"},
            {"name": "j", "type": "J", "op": "000010", "funct": ""},
        ])
        table = load_opcode_table(path)
        self.assertEqual(len(table), 4)
        self.assertEqual(table["add"], OpcodeDescriptor("add", FMT_R, 0, 0x20, False))
        self.assertTrue(table["sll"].shift)
        self.assertEqual(table["lw"].opcode, 0x23)
        self.assertIsNone(table["j"].funct)
        self.assertEqual(assemble("lw $t0, 4($sp)\n", table), [0x8FA80004])

    def test_load_integers_and_wrapper(self):
        path = self.write({"opcodes": [
            {"name": "addi", "type": "I", "op": 8},
        ]})
        table = load_opcode_table(path)
        self.assertEqual(table["addi"].fixed_bits, 0x20000000)

    def test_invalid_json(self):
        with self.assertRaises(ValueError):
            load_opcode_table(self.write("{not json"))

    def test_not_a_list(self):
        with self.assertRaises(ValueError):
            load_opcode_table(self.write({"add": 1}))

    def test_bad_entries(self):
        bad = [
            {"type": "R", "op": "0", "funct": "1"},
            {"name": "x", "type": "Z", "op": "0"},
            {"name": "x", "type": "I"},
            {"name": "x", "type": "I", "op": "12"},
            {"name": "x", "type": "I", "op": True},
            {"name": "x", "type": "R", "op": "0", "funct": "1", "shift": "yes"},
            "add",
        ]
        for entry in bad:
            with self.assertRaises(ValueError, msg=repr(entry)):
                descriptor_from_dict(entry)

    def test_missing_file(self):
        with self.assertRaises(OSError):
            load_opcode_table(os.path.join(self.tmp.name, "nope.json"))


if __name__ == "__main__":
    unittest.main()
