"""
MIPS Disassembler
==================
Turns 32-bit machine words back into assembly text.

Only opcodes and operands are recovered: branch displacements and jump
targets are printed as raw numbers, never as labels. Registers are
printed by conventional name ($t0) and immediates in hex, so the output
re-assembles to the same words.

Usage:
  from disasm import disassemble
  lines = disassemble(words)
"""

from __future__ import annotations
import logging
from typing import Iterable, Optional

from asm import (REGISTER_NAMES, RS_SHIFT, RT_SHIFT, RD_SHIFT, SHAMT_SHIFT,
                 REG_MASK, IMM_MASK, TARGET_MASK, WORD_MASK,
                 AsmError, UnsupportedOpcode)
from opcodes import (MIPS32, FMT_R, FMT_I, FMT_J, OPCODE_SHIFT, FIELD6_MASK,
                     OpcodeDescriptor, OpcodeTable)

logger = logging.getLogger(__name__)


def _reg(n: int) -> str:
    return f"${REGISTER_NAMES[n]}"


def lookup_word(word: int, table: OpcodeTable,
                address: Optional[int] = None) -> OpcodeDescriptor:
    """Pick the descriptor for *word*: by funct when the opcode field is
    zero, by opcode otherwise."""
    opcode = (word >> OPCODE_SHIFT) & FIELD6_MASK
    if opcode == 0:
        desc = table.by_funct(word & FIELD6_MASK)
    else:
        desc = table.by_opcode(opcode)
    if desc is None:
        raise UnsupportedOpcode(f"{word:#010x}", address,
                                f"opcode {opcode:#04x}, funct {word & FIELD6_MASK:#04x}")
    return desc


def decode(word: int, table: OpcodeTable = MIPS32,
           address: Optional[int] = None) -> tuple[str, str]:
    """Decode one word. Returns (mnemonic, operand_text)."""
    word &= WORD_MASK
    desc = lookup_word(word, table, address)
    m = desc.mnemonic

    rs = (word >> RS_SHIFT) & REG_MASK
    rt = (word >> RT_SHIFT) & REG_MASK
    rd = (word >> RD_SHIFT) & REG_MASK
    shamt = (word >> SHAMT_SHIFT) & REG_MASK
    imm = word & IMM_MASK

    if desc.fmt == FMT_R:
        if desc.shift:
            ops = f"{_reg(rd)}, {_reg(rt)}, {shamt}"
        elif desc.is_jump_register:
            ops = _reg(rs)
        else:
            ops = f"{_reg(rd)}, {_reg(rs)}, {_reg(rt)}"
    elif desc.fmt == FMT_I:
        if desc.is_branch:
            ops = f"{_reg(rs)}, {_reg(rt)}, {imm:#x}"
        elif desc.is_load_upper:
            ops = f"{_reg(rt)}, {imm:#x}"
        elif desc.is_immediate_op:
            ops = f"{_reg(rt)}, {_reg(rs)}, {imm:#x}"
        else:
            ops = f"{_reg(rt)}, {imm:#x}({_reg(rs)})"
    elif desc.fmt == FMT_J:
        ops = f"{word & TARGET_MASK:#x}"
    else:
        raise UnsupportedOpcode(m, address, f"unknown format {desc.fmt!r}")

    return m, ops


def format_instruction(word: int, table: OpcodeTable = MIPS32,
                       address: Optional[int] = None) -> str:
    """Decode one word into a single line of assembly text."""
    mnem, ops = decode(word, table, address)
    return f"{mnem} {ops}" if ops else mnem


def disassemble(words: Iterable[int], table: OpcodeTable = MIPS32,
                base_addr: int = 0) -> list[str]:
    """Decode consecutive words starting at *base_addr*. Any undecodable
    word aborts the whole run."""
    out = []
    for addr, word in enumerate(words, base_addr):
        try:
            text = format_instruction(word, table, addr)
        except AsmError as e:
            raise e.annotate(addr)
        logger.debug("%08X: %08X  %s", addr, word, text)
        out.append(text)
    return out
