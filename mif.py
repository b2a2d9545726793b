"""
Memory initialization image (.mif-style) reader/writer.

Output is a header block, one `<address>:<word>;` line per instruction
(8 uppercase hex digits each) and a closing `END;`:

    WIDTH=32;
    DEPTH=3;
    ADDRESS_RADIX=HEX;
    DATA_RADIX=HEX;
    CONTENT BEGIN
    00000000:20080005;
    ...
    END;
"""

from __future__ import annotations
import re
from typing import Iterable, Optional, Sequence

WORD_WIDTH = 32

_HEADER_RE = re.compile(r"(WIDTH|DEPTH|ADDRESS_RADIX|DATA_RADIX)\s*=\s*(\w+)\s*;",
                        re.IGNORECASE)
_ENTRY_RE = re.compile(r"([0-9A-Fa-f]+)\s*:\s*([0-9A-Fa-f]+)\s*;")
_BARE_RE = re.compile(r"(?:0[xX])?([0-9A-Fa-f]{1,8})")


class MifError(ValueError):
    def __init__(self, line: Optional[int], msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}" if line is not None else msg)


def format_mif(words: Sequence[int], base_addr: int = 0) -> str:
    """Render *words* as a memory image starting at *base_addr*."""
    out = [
        f"WIDTH={WORD_WIDTH};",
        f"DEPTH={len(words)};",
        "ADDRESS_RADIX=HEX;",
        "DATA_RADIX=HEX;",
        "CONTENT BEGIN",
    ]
    for addr, word in enumerate(words, base_addr):
        out.append(f"{addr:08X}:{word & 0xFFFFFFFF:08X};")
    out.append("END;")
    return "\n".join(out) + "\n"


def _strip_comment(raw: str) -> str:
    return raw.split("--", 1)[0].strip()


def parse_mif(text: str) -> list[tuple[int, int]]:
    """Read (address, word) pairs from a memory image.

    Text without a CONTENT block is read as bare hex words, one per
    line, numbered from 0.
    """
    lines = [_strip_comment(raw) for raw in text.splitlines()]
    if not any(l.upper().startswith("CONTENT") for l in lines):
        return _parse_bare(lines)

    entries: list[tuple[int, int]] = []
    in_content = False
    for lineno, line in enumerate(lines, 1):
        if not line:
            continue
        upper = line.upper()
        if not in_content:
            if upper.startswith("CONTENT"):
                in_content = True
                continue
            if upper.startswith("END"):
                raise MifError(lineno, "END; before CONTENT BEGIN")
            m = _HEADER_RE.fullmatch(line)
            if not m:
                raise MifError(lineno, f"Unrecognized header line: {line!r}")
            key, val = m.group(1).upper(), m.group(2).upper()
            if key == "WIDTH" and val != str(WORD_WIDTH):
                raise MifError(lineno, f"Unsupported word width {val}")
            if key.endswith("RADIX") and val != "HEX":
                raise MifError(lineno, f"Unsupported radix {val}")
            continue
        if upper == "BEGIN":
            continue
        if upper.replace(" ", "") == "END;":
            return entries
        m = _ENTRY_RE.fullmatch(line)
        if not m:
            raise MifError(lineno, f"Malformed content line: {line!r}")
        word = int(m.group(2), 16)
        if word > 0xFFFFFFFF:
            raise MifError(lineno, f"Word {m.group(2)} wider than {WORD_WIDTH} bits")
        entries.append((int(m.group(1), 16), word))

    raise MifError(len(lines), "Missing END;")


def _parse_bare(lines: Iterable[str]) -> list[tuple[int, int]]:
    entries = []
    for lineno, line in enumerate(lines, 1):
        if not line:
            continue
        m = _BARE_RE.fullmatch(line)
        if not m:
            raise MifError(lineno, f"Expected a 32-bit hex word, got {line!r}")
        entries.append((len(entries), int(m.group(1), 16)))
    return entries


def image_words(entries: Sequence[tuple[int, int]]) -> tuple[int, list[int]]:
    """Check that *entries* cover consecutive addresses.
    Returns (base_addr, words)."""
    if not entries:
        return 0, []
    ordered = sorted(entries)
    base = ordered[0][0]
    for i, (addr, _) in enumerate(ordered):
        if addr != base + i:
            raise MifError(None, f"Image is not contiguous at address {base + i:#x}")
    return base, [w for _, w in ordered]
