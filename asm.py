"""
MIPS Assembler
===============
Translates MIPS assembly text into 32-bit machine words.

Supports:
  - Labels (terminated with ':'), alone or in front of an instruction
  - R-type, I-type and J-type instructions from an OpcodeTable
  - Registers by number ($8) or conventional name ($t0)
  - Immediate literals (decimal, hex with or without 0x prefix)
  - Memory operands written offset(base)
  - Comments ('#' to end of line)

Addresses are word addresses: every instruction line advances the
address by one, a label-only line does not.

Hex without the 0x prefix must start with a digit (0FF, not FF), so an
undefined label such as `cafe` is an error rather than a number.

Usage:
  from asm import assemble
  words = assemble(source_text)
"""

from __future__ import annotations
import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Iterable, Optional, Sequence

from opcodes import MIPS32, FMT_R, FMT_I, FMT_J, OpcodeDescriptor, OpcodeTable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Word layout
# ---------------------------------------------------------------------------

RS_SHIFT = 21
RT_SHIFT = 16
RD_SHIFT = 11
SHAMT_SHIFT = 6

REG_BITS = 5
SHAMT_BITS = 5
IMM_BITS = 16
TARGET_BITS = 26

REG_MASK = (1 << REG_BITS) - 1
IMM_MASK = (1 << IMM_BITS) - 1
TARGET_MASK = (1 << TARGET_BITS) - 1
WORD_MASK = 0xFFFFFFFF

COMMENT_CHAR = "#"

# ---------------------------------------------------------------------------
#  Register names → 5-bit index
# ---------------------------------------------------------------------------

REGISTER_NAMES = (
    "zero", "at", "v0", "v1", "a0", "a1", "a2", "a3",
    "t0",   "t1", "t2", "t3", "t4", "t5", "t6", "t7",
    "s0",   "s1", "s2", "s3", "s4", "s5", "s6", "s7",
    "t8",   "t9", "k0", "k1", "gp", "sp", "fp", "ra",
)

REG_MAP = {name: i for i, name in enumerate(REGISTER_NAMES)}
REG_MAP["s8"] = 30  # alias of fp


# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class AsmError(Exception):
    """Base class for every assemble/disassemble failure.

    Carries the offending token, the instruction address and, when the
    failure came from source text, the 1-based line number.
    """
    description = "Assembly error"

    def __init__(self, token: str, address: Optional[int] = None,
                 detail: str = "", line: Optional[int] = None):
        self.token = token
        self.address = address
        self.detail = detail
        self.line = line
        super().__init__(token, address, detail, line)

    def annotate(self, address: Optional[int] = None,
                 line: Optional[int] = None) -> AsmError:
        """Fill in address/line if the raiser did not know them."""
        if self.address is None:
            self.address = address
        if self.line is None:
            self.line = line
        return self

    def __str__(self) -> str:
        msg = f"{self.description} [{self.token}]"
        if self.address is not None:
            msg += f" at address {self.address:#x}"
        if self.detail:
            msg += f": {self.detail}"
        if self.line is not None:
            msg = f"Line {self.line}: {msg}"
        return msg


class UnsupportedOpcode(AsmError):
    description = "Unsupported opcode"


class InvalidRegister(AsmError):
    description = "Invalid register"


class InvalidImmediate(AsmError):
    description = "Invalid immediate"


class OutOfRange(AsmError):
    description = "Value out of range"


class BadOperandCount(AsmError):
    description = "Bad operand count"


class DuplicateLabel(AsmError):
    description = "Duplicate label"


class InvalidLabel(AsmError):
    description = "Invalid label"


# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

_DEC_RE = re.compile(r"[+-]?[0-9]+")
_HEX_RE = re.compile(r"([+-]?)(?:0[xX]([0-9A-Fa-f]+)|([0-9][0-9A-Fa-f]*))")
_MEM_RE = re.compile(r"([^()]*)\(([^()]+)\)")
_SPLIT_RE = re.compile(r"[\s,]+")
_LABEL_RE = re.compile(r"[A-Za-z_.][A-Za-z0-9_.]*")

_NO_SYMBOLS: Mapping[str, int] = MappingProxyType({})


def parse_reg(tok: str, address: Optional[int] = None) -> int:
    """Parse '$t0', '$8', 't0' or '8'. Returns register index 0-31."""
    name = tok.strip()
    if name.startswith("$"):
        name = name[1:]
    name = name.lower()
    if name.isascii() and name.isdigit():
        n = int(name)
        if 0 <= n <= REG_MASK:
            return n
    elif name in REG_MAP:
        return REG_MAP[name]
    raise InvalidRegister(tok, address)


def parse_int(tok: str, address: Optional[int] = None) -> int:
    """Parse a signed literal: decimal, 0x-prefixed hex, or bare hex
    starting with a digit ('0FF'). All-digit text is decimal."""
    text = tok.strip()
    if _DEC_RE.fullmatch(text):
        return int(text, 10)
    m = _HEX_RE.fullmatch(text)
    if m:
        sign, prefixed, bare = m.groups()
        val = int(prefixed or bare, 16)
        return -val if sign == "-" else val
    raise InvalidImmediate(tok, address)


def fit_field(value: int, bits: int, tok: str,
              address: Optional[int] = None) -> int:
    """Truncate *value* to *bits* (two's complement), then reject it if its
    magnitude is wider than the field."""
    mask = (1 << bits) - 1
    field = value & mask
    if abs(value) > mask:
        raise OutOfRange(tok, address, f"{value} does not fit in {bits} bits")
    return field


def parse_imm(tok: str, bits: int, address: Optional[int] = None) -> int:
    """Parse an immediate into an unsigned *bits*-wide field."""
    return fit_field(parse_int(tok, address), bits, tok, address)


def tokenize(line: str) -> list[str]:
    """Strip the comment and split on spaces/commas. Blank → []."""
    text = line.split(COMMENT_CHAR, 1)[0].strip()
    if not text:
        return []
    return [t for t in _SPLIT_RE.split(text) if t]


def is_label(tok: str) -> bool:
    return tok.endswith(":")


def _strip_label(tokens: Sequence[str]) -> Sequence[str]:
    if tokens and is_label(tokens[0]):
        return tokens[1:]
    return tokens


# ---------------------------------------------------------------------------
#  Pass 1: labels
# ---------------------------------------------------------------------------

def build_symbol_table(lines: Iterable[Sequence[str]],
                       base_addr: int = 0) -> Mapping[str, int]:
    """
    Walk tokenized lines once, binding each leading label to the address
    of the next instruction. Returns a read-only label → address map.
    Line numbers in errors count entries of *lines* from 1.
    """
    labels: dict[str, int] = {}
    addr = base_addr

    for lineno, tokens in enumerate(lines, 1):
        if not tokens:
            continue
        if is_label(tokens[0]):
            name = tokens[0][:-1]
            if not _LABEL_RE.fullmatch(name):
                raise InvalidLabel(tokens[0], addr, line=lineno)
            if name in labels:
                raise DuplicateLabel(name, addr,
                                     f"first defined at address {labels[name]:#x}",
                                     line=lineno)
            labels[name] = addr
            logger.debug("label %s = %#x", name, addr)
            if len(tokens) == 1:
                continue
        addr += 1

    return MappingProxyType(labels)


# ---------------------------------------------------------------------------
#  Pass 2: instruction encoding
# ---------------------------------------------------------------------------

def _operand_count_error(desc: OpcodeDescriptor, ops: Sequence[str],
                         address: int, expected: str) -> BadOperandCount:
    return BadOperandCount(desc.mnemonic, address,
                           f"{desc.fmt}-type expects {expected} operands, got {len(ops)}")


def _encode_r(desc: OpcodeDescriptor, ops: Sequence[str], address: int) -> int:
    if len(ops) == 3 and desc.shift:
        rd = parse_reg(ops[0], address)
        rt = parse_reg(ops[1], address)
        shamt = parse_imm(ops[2], SHAMT_BITS, address)
        return (rt << RT_SHIFT) | (rd << RD_SHIFT) | (shamt << SHAMT_SHIFT)
    if len(ops) == 3:
        rd = parse_reg(ops[0], address)
        rs = parse_reg(ops[1], address)
        rt = parse_reg(ops[2], address)
        return (rs << RS_SHIFT) | (rt << RT_SHIFT) | (rd << RD_SHIFT)
    if len(ops) == 1:
        # jr / jalr
        return parse_reg(ops[0], address) << RS_SHIFT
    raise _operand_count_error(desc, ops, address, "1 or 3")


def _branch_offset(tok: str, address: int, symbols: Mapping[str, int]) -> int:
    """Word displacement from the instruction after the branch to *tok*."""
    if tok in symbols:
        disp = symbols[tok] - (address + 1)
        lo = -(1 << (IMM_BITS - 1))
        hi = (1 << (IMM_BITS - 1)) - 1
        if disp < lo or disp > hi:
            raise OutOfRange(tok, address,
                             f"branch displacement {disp} outside [{lo}, {hi}]")
        return disp & IMM_MASK
    return parse_imm(tok, IMM_BITS, address)


def _encode_i(desc: OpcodeDescriptor, ops: Sequence[str], address: int,
              symbols: Mapping[str, int]) -> int:
    if len(ops) == 3 and desc.is_branch:
        rs = parse_reg(ops[0], address)
        rt = parse_reg(ops[1], address)
        imm = _branch_offset(ops[2], address, symbols)
    elif len(ops) == 3:
        rt = parse_reg(ops[0], address)
        rs = parse_reg(ops[1], address)
        imm = parse_imm(ops[2], IMM_BITS, address)
    elif len(ops) == 2:
        rt = parse_reg(ops[0], address)
        m = _MEM_RE.fullmatch(ops[1])
        if m:
            off, base = m.groups()
            imm = parse_imm(off, IMM_BITS, address) if off.strip() else 0
            rs = parse_reg(base, address)
        else:
            rs = 0
            imm = parse_imm(ops[1], IMM_BITS, address)
    else:
        raise _operand_count_error(desc, ops, address, "2 or 3")
    return (rs << RS_SHIFT) | (rt << RT_SHIFT) | imm


def _encode_j(desc: OpcodeDescriptor, ops: Sequence[str], address: int,
              symbols: Mapping[str, int]) -> int:
    if len(ops) != 1:
        raise _operand_count_error(desc, ops, address, "1")
    tok = ops[0]
    if tok in symbols:
        return fit_field(symbols[tok], TARGET_BITS, tok, address)
    return parse_imm(tok, TARGET_BITS, address)


def encode(tokens: Sequence[str], address: int, table: OpcodeTable = MIPS32,
           symbols: Mapping[str, int] = _NO_SYMBOLS) -> Optional[int]:
    """
    Encode one tokenized line into a 32-bit word.

    Returns None when the line holds only a label; the caller must not
    advance the address for it.
    """
    tokens = _strip_label(tokens)
    if not tokens:
        return None

    mnem, ops = tokens[0], tokens[1:]
    desc = table.get(mnem)
    if desc is None:
        raise UnsupportedOpcode(mnem, address)

    word = desc.fixed_bits
    if desc.fmt == FMT_R:
        word |= _encode_r(desc, ops, address)
    elif desc.fmt == FMT_I:
        word |= _encode_i(desc, ops, address, symbols)
    elif desc.fmt == FMT_J:
        word |= _encode_j(desc, ops, address, symbols)
    else:
        raise UnsupportedOpcode(mnem, address, f"unknown format {desc.fmt!r}")
    return word & WORD_MASK


# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

def assemble(source: str, table: OpcodeTable = MIPS32, base_addr: int = 0,
             listing: bool = False) -> list[int]:
    """
    Two-pass assembler.
    Pass 1: collect labels into a read-only symbol table.
    Pass 2: encode every instruction line with labels resolved.
    Any error aborts the whole run. If listing=True, print an
    address/word/source listing to stdout.
    """
    tokenized = [tokenize(raw) for raw in source.splitlines()]

    # ---- Pass 1: label collection ----
    symbols = build_symbol_table(tokenized, base_addr)

    # ---- Pass 2: encode ----
    words: list[int] = []
    listing_rows: list[str] = []
    pc = base_addr

    for lineno, tokens in enumerate(tokenized, 1):
        if not tokens:
            continue
        try:
            word = encode(tokens, pc, table, symbols)
        except AsmError as e:
            raise e.annotate(pc, lineno)
        if listing:
            listing_rows.extend(_listing_rows(tokens, pc, word))
        if word is None:
            continue
        logger.debug("%08X: %08X  %s", pc, word, " ".join(tokens))
        words.append(word)
        pc += 1

    # Printed only once every line has encoded.
    for row in listing_rows:
        print(row)

    return words


def _source_text(tokens: Sequence[str]) -> str:
    tokens = _strip_label(tokens)
    return f"{tokens[0]} {', '.join(tokens[1:])}".rstrip()


def _listing_rows(tokens: Sequence[str], address: int,
                  word: Optional[int]) -> list[str]:
    """Listing rows for one source line: a label row, then the word row."""
    rows = []
    if is_label(tokens[0]):
        rows.append(f"{'':20}{tokens[0]}")
    if word is not None:
        rows.append(f"  {address:08X}  {word:08X}  {_source_text(tokens)}")
    return rows
