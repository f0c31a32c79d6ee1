"""Best-effort text recovery from raw PDF bytes.

Three strategies are tried in order and the first one that yields text wins:

1. ``markers``: literal and hex strings inside uncompressed ``BT ... ET``
   text objects, one output line per text-positioning operator.
2. ``pdfplumber``: page text for documents whose content streams are
   compressed or use embedded fonts.
3. ``pattern_window``: synthetic lines cut from the raw byte stream around
   each date and the marked amount that follows it.

Scanned (image-only) documents are not handled.
"""

import io
import re
from collections.abc import Iterator
from dataclasses import dataclass

import pdfplumber
from loguru import logger

from statement_ingest.normalizers import DATE_REGEXES, MARKED_AMOUNT_REGEXES

MARKERS = "markers"
PDFPLUMBER = "pdfplumber"
PATTERN_WINDOW = "pattern_window"
NONE = "none"

WINDOW_PADDING = 20
MAX_WINDOW_SPAN = 200

_TEXT_BEGIN_RE = re.compile(rb"\bBT\b")
_TEXT_END_RE = re.compile(rb"\bET\b|[(<]")
_LINE_OPERATORS = {b"Td", b"TD", b"Tm", b"T*", b"'", b'"'}
_DELIMITERS = b"()<>[]{}/%"
_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_LINE_BREAKS = "\r\n"


@dataclass
class RecoveredText:
    """Recovered text plus the name of the strategy that produced it."""

    text: str
    strategy: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


def _read_literal(data: bytes, pos: int) -> tuple[bytes, int]:
    """Read a ``(...)`` string starting after the opening paren.

    Balanced inner parens are kept; backslash escapes and octal codes are decoded.
    """
    out = bytearray()
    depth = 1
    while pos < len(data):
        ch = data[pos]
        if ch == ord("\\"):
            pos += 1
            if pos >= len(data):
                break
            esc = data[pos]
            if esc in _ESCAPES:
                out += _ESCAPES[esc]
                pos += 1
            elif ord("0") <= esc <= ord("7"):
                end = pos
                while end < len(data) and end - pos < 3 and ord("0") <= data[end] <= ord("7"):
                    end += 1
                out.append(int(data[pos:end], 8) & 0xFF)
                pos = end
            elif esc in (ord("\r"), ord("\n")):
                # Line continuation
                pos += 1
                if esc == ord("\r") and pos < len(data) and data[pos] == ord("\n"):
                    pos += 1
            else:
                out.append(esc)
                pos += 1
            continue
        if ch == ord("("):
            depth += 1
        elif ch == ord(")"):
            depth -= 1
            if depth == 0:
                return bytes(out), pos + 1
        out.append(ch)
        pos += 1
    return bytes(out), pos


def _read_hex(data: bytes, pos: int) -> tuple[bytes, int]:
    """Read a ``<...>`` string starting after the opening angle bracket."""
    end = data.find(b">", pos)
    if end == -1:
        end = len(data)
    digits = re.sub(rb"[^0-9A-Fa-f]", b"", data[pos:end])
    if len(digits) % 2:
        digits += b"0"
    return bytes.fromhex(digits.decode("ascii")), end + 1


def _decode_string(raw: bytes) -> str:
    # Two-byte strings with a BOM are UTF-16; everything else is treated as Latin-1
    if raw.startswith(b"\xfe\xff"):
        return raw[2:].decode("utf-16-be", errors="replace")
    return raw.decode("latin-1")


def _text_object_lines(block: bytes) -> list[str]:
    """Turn one text object's operators into lines of text."""
    lines: list[str] = []
    current: list[str] = []
    in_array = False
    pos = 0

    def flush() -> None:
        text = " ".join("".join(current).split())
        if text:
            lines.append(text)
        current.clear()

    while pos < len(block):
        ch = block[pos]
        if ch == ord("("):
            raw, pos = _read_literal(block, pos + 1)
            current.append(_decode_string(raw))
            if not in_array:
                current.append(" ")
        elif ch == ord("<") and block[pos + 1 : pos + 2] != b"<":
            raw, pos = _read_hex(block, pos + 1)
            current.append(_decode_string(raw))
            if not in_array:
                current.append(" ")
        elif ch == ord("["):
            in_array = True
            pos += 1
        elif ch == ord("]"):
            in_array = False
            current.append(" ")
            pos += 1
        elif chr(ch).isspace() or ch in _DELIMITERS:
            pos += 1
        else:
            end = pos
            while end < len(block) and not chr(block[end]).isspace() and block[end] not in _DELIMITERS:
                end += 1
            if block[pos:end] in _LINE_OPERATORS:
                flush()
            pos = end

    flush()
    return lines


def _text_objects(data: bytes) -> Iterator[bytes]:
    """Yield the body of each ``BT ... ET`` text object.

    String operands are stepped over whole, so an ``ET`` inside a literal
    such as ``(SMITH ET AL)`` does not end the object. Unterminated objects
    are dropped.
    """
    pos = 0
    while True:
        begin = _TEXT_BEGIN_RE.search(data, pos)
        if begin is None:
            return
        start = pos = begin.end()
        while True:
            m = _TEXT_END_RE.search(data, pos)
            if m is None:
                return
            if m.group(0) == b"(":
                _, pos = _read_literal(data, m.end())
            elif m.group(0) == b"<":
                if data[m.end() : m.end() + 1] == b"<":
                    pos = m.end() + 1
                else:
                    _, pos = _read_hex(data, m.end())
            else:
                yield data[start : m.start()]
                pos = m.end()
                break


def extract_marker_text(data: bytes) -> str:
    """Recover text from uncompressed ``BT``/``ET`` text objects."""
    lines: list[str] = []
    for block in _text_objects(data):
        lines.extend(_text_object_lines(block))
    return "\n".join(lines)


def extract_pdfplumber_text(data: bytes) -> str:
    """Recover page text with pdfplumber; returns "" when the document cannot be opened."""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            logger.info(f"PDF has {len(pdf.pages)} page(s)")
            pages = []
            for i, page in enumerate(pdf.pages):
                text = page.extract_text() or ""
                logger.debug(f"Page {i + 1}: {len(text)} chars")
                pages.append(text)
    except Exception as e:
        logger.warning(f"pdfplumber could not read document: {e}")
        return ""
    return "\n".join(pages)


def _find_all(regexes: list[re.Pattern[str]], text: str) -> list[re.Match[str]]:
    """All non-overlapping matches of an ordered pattern list, earlier patterns first."""
    accepted: list[re.Match[str]] = []
    for regex in regexes:
        for m in regex.finditer(text):
            if any(m.start() < a.end() and a.start() < m.end() for a in accepted):
                continue
            accepted.append(m)
    return sorted(accepted, key=lambda m: m.start())


def _window(stream: str, start: int, end: int) -> str:
    """Pad ``stream[start:end]`` by ``WINDOW_PADDING`` without crossing a raw line break."""
    lo = max(0, start - WINDOW_PADDING)
    hi = min(len(stream), end + WINDOW_PADDING)
    head = stream[lo:start]
    cut = max(head.rfind(c) for c in _LINE_BREAKS)
    if cut != -1:
        lo += cut + 1
    tail = stream[end:hi]
    breaks = [i for i in (tail.find(c) for c in _LINE_BREAKS) if i != -1]
    if breaks:
        hi = end + min(breaks)
    return stream[lo:hi]


def extract_pattern_windows(data: bytes) -> str:
    """Cut synthetic lines out of the raw stream around date/amount pairs.

    Only marked amounts (currency sign, parentheses, DR/CR) are considered.
    Each date is paired with the first such amount after it and before the
    next date. Each pair yields one line padded by ``WINDOW_PADDING``
    characters; pairs further apart than ``MAX_WINDOW_SPAN`` are ignored.
    """
    stream = data.decode("latin-1")
    dates = _find_all(DATE_REGEXES, stream)
    amounts = _find_all(MARKED_AMOUNT_REGEXES, stream)
    if not dates or not amounts:
        return ""

    logger.info(f"Found {len(dates)} dates and {len(amounts)} amounts in document scan")
    lines = []
    for i, date_m in enumerate(dates):
        limit = dates[i + 1].start() if i + 1 < len(dates) else len(stream)
        amount_m = next((a for a in amounts if date_m.end() <= a.start() < limit), None)
        if amount_m is None:
            logger.debug(f"No amount follows date {date_m.group(0)!r}")
            continue
        if amount_m.end() - date_m.start() > MAX_WINDOW_SPAN:
            logger.debug(f"Ignoring date/amount pair {date_m.group(0)!r}/{amount_m.group(0)!r}: too far apart")
            continue
        window = _window(stream, date_m.start(), amount_m.end())
        line = " ".join(_CONTROL_RE.sub(" ", window).split())
        if line:
            lines.append(line)
    return "\n".join(lines)


def recover_text(data: bytes, use_pdfplumber: bool = True) -> RecoveredText:
    """Recover a newline-delimited text stream from PDF bytes.

    Args:
        data: Raw PDF bytes
        use_pdfplumber: Try pdfplumber between the marker scan and the pattern fallback

    Returns:
        RecoveredText; ``strategy`` is ``"none"`` when every strategy came up empty
    """
    strategies = [(MARKERS, extract_marker_text)]
    if use_pdfplumber:
        strategies.append((PDFPLUMBER, extract_pdfplumber_text))
    strategies.append((PATTERN_WINDOW, extract_pattern_windows))

    for name, strategy in strategies:
        text = strategy(data)
        if any(c.isalnum() for c in text):
            logger.info(f"PDF extraction method used: {name} ({len(text)} chars)")
            return RecoveredText(text=text, strategy=name)
        logger.debug(f"PDF strategy {name} yielded no text")

    logger.warning("Failed to extract text from PDF")
    return RecoveredText(text="", strategy=NONE)
