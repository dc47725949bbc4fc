"""A small INI file parser and a reader with typed lookups."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from os import PathLike
from typing import Iterable, Union

MAX_LINE = 200
MAX_SECTION = 50
MAX_NAME = 50
INLINE_COMMENT_PREFIXES = ";"

_WHITESPACE = " \t\n\v\f\r"
_BOM = "\ufeff"

_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1

_INTEGER = re.compile(
    r"[ \t\n\v\f\r]*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)"
)
_HEX_REAL = re.compile(
    r"[ \t\n\v\f\r]*([+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)"
    r"(?:[pP][+-]?[0-9]+)?)"
)
_DECIMAL_REAL = re.compile(
    r"[ \t\n\v\f\r]*([+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?"
    r"|inf(?:inity)?|nan))",
    re.IGNORECASE,
)

_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


@dataclass
class ParseResult:
    """Entries found while parsing and the line number of the first error."""

    entries: list[tuple[str, str, str]] = field(default_factory=list)
    error_line: int = 0


def _find_chars_or_comment(text: str, chars: str | None) -> int:
    """Index of the first of ``chars`` or inline comment, else ``len(text)``."""
    was_space = False
    for index, char in enumerate(text):
        if chars is not None and char in chars:
            return index
        if was_space and char in INLINE_COMMENT_PREFIXES:
            return index
        was_space = char in _WHITESPACE
    return len(text)


def _chunks(lines: Iterable[str]) -> Iterable[str]:
    """Split lines the way a bounded line reader would see them."""
    limit = MAX_LINE - 1
    for line in lines:
        while line:
            yield line[:limit]
            line = line[limit:]


def _split_lines(text: str) -> list[str]:
    pieces = text.split("\n")
    lines = [piece + "\n" for piece in pieces[:-1]]
    if pieces[-1]:
        lines.append(pieces[-1])
    return lines


def parse_lines(lines: Iterable[str]) -> ParseResult:
    """Parse INI lines into ``(section, name, value)`` entries.

    Parsing continues past errors; the result records the line number of the
    first malformed line, or 0 when there is none.
    """
    result = ParseResult()
    section = ""
    prev_name = ""

    def fail(lineno: int) -> None:
        if not result.error_line:
            result.error_line = lineno

    for lineno, line in enumerate(_chunks(lines), start=1):
        if lineno == 1 and line.startswith(_BOM):
            line = line[len(_BOM):]
        start = line.strip(_WHITESPACE)
        indented = bool(start) and line[0] in _WHITESPACE

        if start[:1] in (";", "#") and start:
            continue
        if prev_name and start and indented:
            result.entries.append((section, prev_name, start))
        elif start.startswith("["):
            end = _find_chars_or_comment(start[1:], "]") + 1
            if end < len(start) and start[end] == "]":
                section = start[1:end][: MAX_SECTION - 1]
                prev_name = ""
            else:
                fail(lineno)
        elif start:
            end = _find_chars_or_comment(start, "=:")
            if end < len(start) and start[end] in "=:":
                name = start[:end].rstrip(_WHITESPACE)
                value = start[end + 1:]
                value = value[: _find_chars_or_comment(value, None)]
                value = value.strip(_WHITESPACE)
                prev_name = name[: MAX_NAME - 1]
                result.entries.append((section, name, value))
            else:
                fail(lineno)
    return result


def parse_file(path: Union[str, PathLike]) -> ParseResult:
    """Parse the INI file at ``path``; raises ``OSError`` if it cannot be read."""
    with open(path, encoding="utf-8", errors="surrogateescape", newline="") as f:
        text = f.read()
    return parse_lines(_split_lines(text))


def _make_key(section: str, name: str) -> str:
    return f"{section}={name}".lower()


def _parse_long(text: str) -> int | None:
    match = _INTEGER.match(text)
    if not match:
        return None
    sign, digits = match.groups()
    if digits[:2].lower() == "0x":
        number = int(digits[2:], 16)
    elif len(digits) > 1 and digits.startswith("0"):
        number = int(digits[1:], 8)
    else:
        number = int(digits)
    if sign == "-":
        number = -number
    return max(_LONG_MIN, min(_LONG_MAX, number))


def _parse_double(text: str) -> float | None:
    match = _HEX_REAL.match(text)
    if match:
        return float.fromhex(match.group(1))
    match = _DECIMAL_REAL.match(text)
    if match:
        token = match.group(1)
        try:
            return float(token)
        except OverflowError:
            return math.copysign(math.inf, -1.0 if token.startswith("-") else 1.0)
    return None


class IniReader:
    """Read an INI file into case-insensitive section/name lookups."""

    def __init__(self, filename: Union[str, PathLike]) -> None:
        self._load(parse_file(filename))

    @classmethod
    def from_string(cls, text: str) -> "IniReader":
        """Build a reader from INI text instead of a file."""
        reader = cls.__new__(cls)
        reader._load(parse_lines(_split_lines(text)))
        return reader

    def _load(self, parsed: ParseResult) -> None:
        self.error_line = parsed.error_line
        self._values: dict[str, str] = {}
        for section, name, value in parsed.entries:
            key = _make_key(section, name)
            existing = self._values.get(key, "")
            self._values[key] = f"{existing}\n{value}" if existing else value

    def get(self, section: str, name: str, default: str) -> str:
        """Return the string value, or ``default`` if it is missing."""
        return self._values.get(_make_key(section, name), default)

    def get_integer(self, section: str, name: str, default: int) -> int:
        """Return a decimal, octal or hex integer value, or ``default``."""
        number = _parse_long(self.get(section, name, ""))
        return default if number is None else number

    def get_real(self, section: str, name: str, default: float) -> float:
        """Return a floating point value, or ``default``."""
        number = _parse_double(self.get(section, name, ""))
        return default if number is None else number

    def get_boolean(self, section: str, name: str, default: bool) -> bool:
        """Return true for true/yes/on/1, false for false/no/off/0, else ``default``."""
        word = self.get(section, name, "").lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        return default