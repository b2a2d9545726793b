#!/usr/bin/env python3
"""
MIPS Assembler / Disassembler CLI
==================================
Assembles a source file into a memory image, or disassembles an image
back into assembly text.

Usage:
  python cli.py -i SRC [-o DST] [-d] [--opcodes FILE.json] [-l] [-v]
"""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler

from asm import assemble, AsmError
from disasm import disassemble
from mif import format_mif, parse_mif, image_words, MifError
from opcodes import MIPS32, OpcodeTable, load_opcode_table

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "output.txt"


# ---------------------------------------------------------------------------
#  Commands
# ---------------------------------------------------------------------------

def assemble_file(src_path: str, out_path: str, table: OpcodeTable,
                  listing: bool = False) -> int:
    """Assemble SRC into a memory image at OUT. Returns the word count."""
    with open(src_path, "r", encoding="utf-8") as f:
        source = f.read()
    words = assemble(source, table, listing=listing)
    # Output is only written once the whole source assembled
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(format_mif(words))
    return len(words)


def disassemble_file(src_path: str, out_path: str, table: OpcodeTable) -> int:
    """Disassemble the memory image SRC into assembly text at OUT."""
    with open(src_path, "r", encoding="utf-8") as f:
        image = parse_mif(f.read())
    base, words = image_words(image)
    lines = disassemble(words, table, base)
    with open(out_path, "w", encoding="utf-8") as f:
        f.writelines(line + "\n" for line in lines)
    return len(lines)


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), markup=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MIPS Assembler / Disassembler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py -i prog.asm -o prog.mif\n"
               "  python cli.py -i prog.mif -o prog.asm -d\n"
               "  python cli.py -i prog.asm --opcodes isa.json --listing\n"
    )
    parser.add_argument("-i", "--in", dest="src", required=True,
                        help="Source file to assemble/disassemble")
    parser.add_argument("-o", "--out", dest="dst", default=DEFAULT_OUTPUT,
                        help=f"Output file (default: {DEFAULT_OUTPUT})")
    parser.add_argument("-d", "--disassemble", action="store_true",
                        help="Disassemble a memory image instead of assembling")
    parser.add_argument("--opcodes", type=str, default=None, metavar="JSON",
                        help="Opcode table file (default: built-in MIPS32 table)")
    parser.add_argument("-l", "--listing", action="store_true",
                        help="Print assembly listing")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    try:
        table = load_opcode_table(args.opcodes) if args.opcodes else MIPS32
    except (OSError, ValueError) as e:
        print(f"Opcode table error: {e}", file=sys.stderr)
        return 1
    logger.debug("Using opcode table %r", table)

    try:
        if args.disassemble:
            n = disassemble_file(args.src, args.dst, table)
            print(f"Disassembled {args.src} → {args.dst} ({n} words)")
        else:
            n = assemble_file(args.src, args.dst, table, listing=args.listing)
            print(f"Assembled {args.src} → {args.dst} ({n} words)")
    except AsmError as e:
        what = "Disassembly" if args.disassemble else "Assembly"
        print(f"{what} error: {e}", file=sys.stderr)
        return 1
    except MifError as e:
        print(f"Image error: {e}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        print(f"Input error: {args.src} is not UTF-8 text ({e.reason} at byte {e.start})",
              file=sys.stderr)
        return 1
    except OSError as e:
        print(f"I/O error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
