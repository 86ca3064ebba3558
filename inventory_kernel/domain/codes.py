"""
Codes -- versioned code formats and scanned-input parsing.

Responsibility:
    Defines every code format the system has ever stamped on a physical unit
    as a strategy, and a chain that parses any of them.  New allocations
    always use the chain's current format; lookups accept every registered
    format, so units stamped under an older format keep scanning.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Randomness is
    injected (``random.Random`` compatible) so generation is reproducible
    in tests.

Invariants enforced:
    - Generated codes only use the format's alphabet and length.
    - Parsing happens before any database access; malformed input raises
      InvalidCodeFormatError.

Formats:
    v1  legacy, 4 letters + 4 digits, letters exclude O and I,
        displayed ``ABCD-1234``.
    v2  current, 10 characters from a safe alphabet without 0, 1, O, I, L.
"""

import re
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from random import Random

from inventory_kernel.exceptions import InvalidCodeFormatError

URL_PATH_MARKER = "/p/"


class CodeFormat(ABC):
    """
    One historical or current code format.

    Contract:
        ``matches`` accepts only canonical values (upper case, no
        separators).  ``generate`` returns a canonical value.
    """

    version: str

    @abstractmethod
    def matches(self, value: str) -> bool:
        ...

    @abstractmethod
    def generate(self, rng: Random) -> str:
        ...

    def display(self, value: str) -> str:
        """Human-readable rendering for labels."""
        return value


class LegacyLetterDigitFormat(CodeFormat):
    """v1: four letters then four digits."""

    version = "v1"
    letters = "ABCDEFGHJKLMNPQRSTUVWXYZ"
    digits = "0123456789"
    _pattern = re.compile(r"^[A-HJ-NP-Z]{4}\d{4}$")

    def matches(self, value: str) -> bool:
        return bool(self._pattern.match(value))

    def generate(self, rng: Random) -> str:
        head = "".join(rng.choice(self.letters) for _ in range(4))
        tail = "".join(rng.choice(self.digits) for _ in range(4))
        return head + tail

    def display(self, value: str) -> str:
        return f"{value[:4]}-{value[4:]}"


class SafeAlphabetFormat(CodeFormat):
    """v2: fixed-length string over an alphabet with no look-alike characters."""

    version = "v2"
    alphabet = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"

    def __init__(self, length: int = 10):
        self.length = length
        self._allowed = frozenset(self.alphabet)

    def matches(self, value: str) -> bool:
        return len(value) == self.length and all(c in self._allowed for c in value)

    def generate(self, rng: Random) -> str:
        return "".join(rng.choice(self.alphabet) for _ in range(self.length))


@dataclass(frozen=True)
class ParsedCode:
    value: str
    format_version: str


def extract_code(raw: str, marker: str = URL_PATH_MARKER) -> str:
    """
    Reduce scanned input to a canonical candidate value.

    Accepts a bare code (any case, with dashes or spaces) or a full URL
    containing ``/p/<code>``; the segment after the last marker wins.
    """
    text = raw.strip()
    if marker in text:
        text = text.rsplit(marker, 1)[1]
        for stop in ("?", "#", "/"):
            text = text.split(stop, 1)[0]
    return text.replace("-", "").replace(" ", "").upper()


class CodeFormatChain:
    """
    Ordered set of known formats with one designated current format.

    Guarantees:
        - ``parse`` tries the current format first, then older ones.
        - ``current`` is the only format used for new allocations.
    """

    def __init__(self, formats: list[CodeFormat], current_version: str):
        by_version = {f.version: f for f in formats}
        if current_version not in by_version:
            raise ValueError(f"Unknown current code format: {current_version}")
        self._formats = by_version
        self._current = by_version[current_version]

    @property
    def current(self) -> CodeFormat:
        return self._current

    @property
    def versions(self) -> tuple[str, ...]:
        return tuple(self._formats)

    def identify(self, value: str) -> CodeFormat | None:
        if self._current.matches(value):
            return self._current
        for fmt in self._formats.values():
            if fmt is not self._current and fmt.matches(value):
                return fmt
        return None

    def parse(self, raw: str, marker: str = URL_PATH_MARKER) -> ParsedCode:
        """Normalize scanned input and validate it against every known format."""
        if raw is None:
            raise InvalidCodeFormatError("")
        candidate = extract_code(raw, marker)
        fmt = self.identify(candidate)
        if fmt is None:
            raise InvalidCodeFormatError(raw)
        return ParsedCode(value=candidate, format_version=fmt.version)

    def display(self, value: str) -> str:
        fmt = self.identify(value)
        return fmt.display(value) if fmt is not None else value


def default_format_chain(current_version: str = "v2", length: int = 10) -> CodeFormatChain:
    return CodeFormatChain(
        [LegacyLetterDigitFormat(), SafeAlphabetFormat(length)],
        current_version=current_version,
    )


def system_rng() -> Random:
    """Cryptographically strong generator for production allocation."""
    return secrets.SystemRandom()


def build_code_url(base_url: str, value: str, marker: str = URL_PATH_MARKER) -> str:
    """Public URL printed into the QR symbol for one unit."""
    return f"{base_url.rstrip('/')}{marker}{value}"
