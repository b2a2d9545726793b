"""
MIPS Opcode Table
==================
Immutable mnemonic → instruction-format metadata, shared read-only by the
assembler (lookup by mnemonic) and the disassembler (reverse lookup by
opcode field, or by funct field when the opcode field is zero).

Tables are built once and passed explicitly to `asm.encode` /
`disasm.decode`; nothing in this module is mutated after import.

Usage:
  from opcodes import MIPS32, load_opcode_table
  desc = MIPS32["add"]
  table = load_opcode_table("my_isa.json")
"""

from __future__ import annotations
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Formats and field layout
# ---------------------------------------------------------------------------

FMT_R = "R"
FMT_I = "I"
FMT_J = "J"
FORMATS = (FMT_R, FMT_I, FMT_J)

# Spellings accepted from external table files
FORMAT_ALIASES = {
    "R": FMT_R, "R_Type": FMT_R, "R-Type": FMT_R,
    "I": FMT_I, "I_Type": FMT_I, "I-Type": FMT_I,
    "J": FMT_J, "J_Type": FMT_J, "J-Type": FMT_J,
}

OPCODE_SHIFT = 26
FIELD6_MASK = 0x3F


# ---------------------------------------------------------------------------
#  Descriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OpcodeDescriptor:
    """One instruction: mnemonic, layout family and its fixed bit fields."""
    mnemonic: str
    fmt: str
    opcode: int
    funct: Optional[int] = None
    shift: bool = False

    @property
    def fixed_bits(self) -> int:
        """Partial 32-bit word with opcode (31..26) and funct (5..0) placed."""
        return (self.opcode << OPCODE_SHIFT) | (self.funct or 0)

    @property
    def is_branch(self) -> bool:
        return self.fmt == FMT_I and self.mnemonic.startswith("b")

    @property
    def is_jump_register(self) -> bool:
        return self.fmt == FMT_R and self.mnemonic.startswith("j")

    @property
    def is_load_upper(self) -> bool:
        return self.mnemonic == "lui"

    @property
    def is_immediate_op(self) -> bool:
        return self.mnemonic.endswith(("i", "iu"))


# ---------------------------------------------------------------------------
#  Table
# ---------------------------------------------------------------------------

class OpcodeTable(Mapping):
    """Read-only mnemonic → OpcodeDescriptor mapping with decode lookups.

    Raises ValueError on construction if two descriptors share a mnemonic
    or would compete for the same decode slot.
    """

    def __init__(self, descriptors: Iterable[OpcodeDescriptor]):
        by_name: dict[str, OpcodeDescriptor] = {}
        by_opcode: dict[int, OpcodeDescriptor] = {}
        by_funct: dict[int, OpcodeDescriptor] = {}

        for d in descriptors:
            _validate(d)
            if d.mnemonic in by_name:
                raise ValueError(f"Duplicate mnemonic in opcode table: {d.mnemonic!r}")
            by_name[d.mnemonic] = d

            # R-format outside the zero-opcode group is reached by opcode
            if d.fmt == FMT_R and d.opcode == 0:
                slot, key = by_funct, d.funct
            else:
                slot, key = by_opcode, d.opcode
            if key in slot:
                raise ValueError(
                    f"Opcode table conflict: {d.mnemonic!r} and "
                    f"{slot[key].mnemonic!r} decode from the same field value {key:#04x}")
            slot[key] = d

        self._by_name = by_name
        self._by_opcode = by_opcode
        self._by_funct = by_funct

    # -- Mapping protocol --

    def __getitem__(self, mnemonic: str) -> OpcodeDescriptor:
        return self._by_name[mnemonic]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        return f"OpcodeTable({len(self)} opcodes)"

    # -- Decode lookups --

    def by_opcode(self, opcode: int) -> Optional[OpcodeDescriptor]:
        """Descriptor selected by a non-zero opcode field, or None."""
        return self._by_opcode.get(opcode)

    def by_funct(self, funct: int) -> Optional[OpcodeDescriptor]:
        """R-type descriptor selected by funct (opcode field zero), or None."""
        return self._by_funct.get(funct)


def _validate(d: OpcodeDescriptor):
    if not d.mnemonic:
        raise ValueError("Opcode descriptor with empty mnemonic")
    if d.fmt not in FORMATS:
        raise ValueError(f"{d.mnemonic!r}: unknown instruction format {d.fmt!r}")
    if not (0 <= d.opcode <= FIELD6_MASK):
        raise ValueError(f"{d.mnemonic!r}: opcode {d.opcode} does not fit in 6 bits")
    if d.fmt == FMT_R:
        if d.funct is None:
            raise ValueError(f"{d.mnemonic!r}: R-format opcode requires a funct field")
        if not (0 <= d.funct <= FIELD6_MASK):
            raise ValueError(f"{d.mnemonic!r}: funct {d.funct} does not fit in 6 bits")
    elif d.funct is not None:
        raise ValueError(f"{d.mnemonic!r}: funct field is only valid for R-format")
    if d.shift and d.fmt != FMT_R:
        raise ValueError(f"{d.mnemonic!r}: shift flag is only valid for R-format")
    # Opcode 0 dispatches on funct when decoding.
    if d.fmt != FMT_R and d.opcode == 0:
        raise ValueError(f"{d.mnemonic!r}: opcode 0 is reserved for R-format")


# ---------------------------------------------------------------------------
#  Loading from JSON
# ---------------------------------------------------------------------------

def _parse_field(name: str, key: str, value) -> Optional[int]:
    """Field given as a binary digit string ("100000") or an integer."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{name!r}: field {key!r} must be bits or an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 2)
        except ValueError:
            pass
    raise ValueError(f"{name!r}: field {key!r} is not a binary value: {value!r}")


def descriptor_from_dict(entry: dict) -> OpcodeDescriptor:
    """Build one descriptor from a JSON object entry."""
    if not isinstance(entry, dict):
        raise ValueError(f"Opcode entry must be an object, got {entry!r}")
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError(f"Opcode entry without a name: {entry!r}")
    fmt_raw = entry.get("type")
    if fmt_raw not in FORMAT_ALIASES:
        raise ValueError(f"{name!r}: unknown instruction type {fmt_raw!r}")
    opcode = _parse_field(name, "op", entry.get("op"))
    if opcode is None:
        raise ValueError(f"{name!r}: missing 'op' field")
    shift = entry.get("shift", False)
    if not isinstance(shift, bool):
        raise ValueError(f"{name!r}: 'shift' must be true or false")
    return OpcodeDescriptor(
        mnemonic=name,
        fmt=FORMAT_ALIASES[fmt_raw],
        opcode=opcode,
        funct=_parse_field(name, "funct", entry.get("funct")),
        shift=shift,
    )


def load_opcode_table(path: str | Path) -> OpcodeTable:
    """Read a JSON list of opcode entries and build an OpcodeTable.

    Entry format::

        {"name": "add", "type": "R", "op": "000000",
         "funct": "100000", "shift": false}
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        try:
            doc = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path}: invalid JSON: {e}") from e
    if isinstance(doc, dict) and "opcodes" in doc:
        doc = doc["opcodes"]
    if not isinstance(doc, list):
        raise ValueError(f"{path}: expected a list of opcode entries")
    table = OpcodeTable(descriptor_from_dict(e) for e in doc)
    logger.debug("Loaded %d opcodes from %s", len(table), path)
    return table


# ---------------------------------------------------------------------------
#  Default MIPS32 table
# ---------------------------------------------------------------------------

def _r(name, funct, shift=False):
    return OpcodeDescriptor(name, FMT_R, 0x00, funct, shift)

def _i(name, op):
    return OpcodeDescriptor(name, FMT_I, op)

def _j(name, op):
    return OpcodeDescriptor(name, FMT_J, op)


MIPS32 = OpcodeTable([
    # R-type: shifts (rd, rt, shamt)
    _r("sll",  0x00, shift=True), _r("srl",  0x02, shift=True),
    _r("sra",  0x03, shift=True),
    # R-type: variable shifts and ALU (rd, rs, rt)
    _r("sllv", 0x04), _r("srlv", 0x06), _r("srav", 0x07),
    _r("add",  0x20), _r("addu", 0x21), _r("sub",  0x22), _r("subu", 0x23),
    _r("and",  0x24), _r("or",   0x25), _r("xor",  0x26), _r("nor",  0x27),
    _r("slt",  0x2A), _r("sltu", 0x2B),
    # R-type: jump register (rs)
    _r("jr",   0x08), _r("jalr", 0x09),

    # I-type: branches (rs, rt, offset)
    _i("beq",  0x04), _i("bne",  0x05),
    # I-type: immediate ALU (rt, rs, imm)
    _i("addi", 0x08), _i("addiu", 0x09), _i("slti", 0x0A), _i("sltiu", 0x0B),
    _i("andi", 0x0C), _i("ori",  0x0D), _i("xori", 0x0E),
    _i("lui",  0x0F),
    # I-type: loads / stores (rt, offset(base))
    _i("lb",   0x20), _i("lh",   0x21), _i("lw",   0x23),
    _i("lbu",  0x24), _i("lhu",  0x25),
    _i("sb",   0x28), _i("sh",   0x29), _i("sw",   0x2B),

    # J-type
    _j("j",    0x02), _j("jal",  0x03),
])
