"""
Structural snippet extraction: a line scanner that finds function, class and
variable declarations and cuts out their blocks.

Symbol detection is a pluggable strategy keyed by language tag. The default
detectors are small regex tables, a heuristic and not a parser.

Block boundaries:

- Brace languages: the block closes on the line where the running brace
  balance (``{`` minus ``}`` since the declaration) returns to zero after at
  least one brace was seen. A declaration whose braces open and close on the
  same line is a one-line snippet, as is a variable declaration or a
  ``;``-terminated line without braces.
- Python: the block closes before the first non-blank line indented at or
  left of the declaration, and that line is scanned again as a possible
  declaration. Lines inside triple-quoted strings and continuation lines of an
  open bracket never end a block, and a triple-quoted string outside any block
  (a module docstring) never starts one. Trailing blank lines are not part of
  the snippet.
- End of file flushes whatever block is open.

Line numbers are 1-based and inclusive.
"""

import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Protocol, Tuple

LANGUAGE_BY_EXTENSION = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".rb": "ruby",
    ".java": "java",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".html": "html",
    ".css": "css",
    ".json": "json",
    ".md": "markdown",
    ".sh": "shell",
    ".sql": "sql",
}

NON_CODE_LANGUAGES = frozenset({"text", "markdown"})
INDENT_LANGUAGES = frozenset({"python"})


def detect_language(path: str) -> str:
    return LANGUAGE_BY_EXTENSION.get(os.path.splitext(path)[1].lower(), "text")


def is_code_language(language: str) -> bool:
    return language not in NON_CODE_LANGUAGES


# ----------------------------------------------------------------------
# Symbol detection
# ----------------------------------------------------------------------


class SymbolDetector(Protocol):
    def detect(self, line: str) -> Optional[Tuple[str, str]]:
        """Return (kind, name) when the line declares a symbol."""
        ...


_FUNCTION_PATTERNS = {
    "javascript": r"^\s*(async\s+)?function\s+(\w+)\s*\(",
    "typescript": r"^\s*(async\s+)?function\s+(\w+)\s*\(",
    "python": r"^\s*(?:async\s+)?def\s+(\w+)\s*\(",
    "java": r"^\s*(public|private|protected)?\s*(static)?\s*\w+\s+(\w+)\s*\(",
    "ruby": r"^\s*def\s+(\w+)",
    "go": r"^\s*func\s+(\w+)",
    "rust": r"^\s*fn\s+(\w+)",
}

_CLASS_PATTERNS = {
    "javascript": r"^\s*class\s+(\w+)",
    "typescript": r"^\s*class\s+(\w+)",
    "python": r"^\s*class\s+(\w+)",
    "java": r"^\s*(public|private|protected)?\s*class\s+(\w+)",
    "ruby": r"^\s*class\s+(\w+)",
    "rust": r"^\s*struct\s+(\w+)|impl\s+(\w+)",
}

_VARIABLE_PATTERNS = {
    "javascript": r"^\s*(const|let|var)\s+(\w+)\s*=",
    "typescript": r"^\s*(const|let|var)\s+(\w+)\s*:",
    "python": r"^\s*(\w+)\s*=(?!=)",
    "java": r"^\s*(private|public|protected)?\s*\w+\s+(\w+)\s*=",
}

_PATTERN_TABLES = (
    ("function", _FUNCTION_PATTERNS),
    ("class", _CLASS_PATTERNS),
    ("variable", _VARIABLE_PATTERNS),
)


class RegexSymbolDetector:
    """First matching pattern wins, tried in function, class, variable order."""

    def __init__(self, patterns: List[Tuple[str, Pattern]]):
        self.patterns = patterns

    @classmethod
    def for_language(cls, language: str) -> "RegexSymbolDetector":
        # Kinds missing for a language fall back to the JavaScript pattern
        return cls([
            (kind, re.compile(table.get(language, table["javascript"])))
            for kind, table in _PATTERN_TABLES
        ])

    def detect(self, line: str) -> Optional[Tuple[str, str]]:
        for kind, pattern in self.patterns:
            match = pattern.search(line)
            if match:
                name = next((g for g in reversed(match.groups()) if g), None)
                if name:
                    return kind, name
        return None


_DETECTORS: Dict[str, SymbolDetector] = {}


def register_detector(language: str, detector: SymbolDetector) -> None:
    _DETECTORS[language] = detector


def detector_for(language: str) -> SymbolDetector:
    detector = _DETECTORS.get(language)
    if detector is None:
        detector = _DETECTORS[language] = RegexSymbolDetector.for_language(language)
    return detector


# ----------------------------------------------------------------------
# Scanner
# ----------------------------------------------------------------------


@dataclass
class Snippet:
    symbol: str
    kind: str
    start_line: int
    end_line: int
    content: str


class ScanState(Enum):
    SEEKING_SYMBOL = "seeking_symbol"
    IN_BLOCK = "in_block"


_TRIPLE_QUOTE = re.compile(r'"""|\'\'\'')
_OPENERS = "([{"
_CLOSERS = ")]}"


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _bracket_delta(line: str) -> int:
    return sum(line.count(c) for c in _OPENERS) - sum(line.count(c) for c in _CLOSERS)


def _toggle_string(line: str, delimiter: Optional[str]) -> Optional[str]:
    """Track an open triple-quoted string across one line."""
    for match in _TRIPLE_QUOTE.finditer(line):
        token = match.group(0)
        if delimiter is None:
            delimiter = token
        elif token == delimiter:
            delimiter = None
    return delimiter


class SnippetScanner:
    """SEEKING_SYMBOL -> IN_BLOCK -> SEEKING_SYMBOL state machine over lines."""

    def __init__(self, language: str, detector: Optional[SymbolDetector] = None):
        self.language = language
        self.detector = detector or detector_for(language)
        self.indented = language in INDENT_LANGUAGES

    def scan(self, content: str) -> List[Snippet]:
        lines = content.split("\n")
        snippets: List[Snippet] = []
        state = ScanState.SEEKING_SYMBOL

        symbol = kind = ""
        start = 0
        block: List[str] = []
        decl_indent = 0
        balance = 0
        seen_brace = False
        string_delim: Optional[str] = None
        seek_delim: Optional[str] = None  # string opened between declarations

        def flush(end_index: int) -> None:
            body = block[: end_index - start + 1]
            while len(body) > 1 and not body[-1].strip():
                body.pop()
            snippets.append(Snippet(symbol, kind, start + 1, start + len(body), "\n".join(body)))

        i = 0
        while i < len(lines):
            line = lines[i]

            if state is ScanState.SEEKING_SYMBOL:
                if self.indented and seek_delim is not None:
                    seek_delim = _toggle_string(line, seek_delim)
                    i += 1
                    continue
                found = self.detector.detect(line)
                if not found and self.indented:
                    seek_delim = _toggle_string(line, None)
                if found:
                    kind, symbol = found
                    start = i
                    block = [line]
                    if self.indented:
                        decl_indent = _indent(line)
                        balance = _bracket_delta(line)
                        string_delim = _toggle_string(line, None)
                        one_line = kind == "variable" and balance <= 0 and string_delim is None
                    else:
                        opens, closes = line.count("{"), line.count("}")
                        balance = opens - closes
                        seen_brace = opens > 0
                        if seen_brace:
                            one_line = balance <= 0
                        else:
                            one_line = kind == "variable" or line.rstrip().endswith(";")
                    if one_line:
                        flush(i)
                    else:
                        state = ScanState.IN_BLOCK
                i += 1
                continue

            if self.indented:
                at_boundary = (
                    string_delim is None
                    and balance <= 0
                    and line.strip() != ""
                    and _indent(line) <= decl_indent
                )
                if at_boundary:
                    # Boundary line belongs to whatever comes next
                    flush(i - 1)
                    state = ScanState.SEEKING_SYMBOL
                    continue
                block.append(line)
                if string_delim is None:
                    balance += _bracket_delta(line)
                string_delim = _toggle_string(line, string_delim)
                if kind == "variable" and balance <= 0 and string_delim is None:
                    flush(i)
                    state = ScanState.SEEKING_SYMBOL
            else:
                block.append(line)
                opens, closes = line.count("{"), line.count("}")
                balance += opens - closes
                seen_brace = seen_brace or opens > 0
                if seen_brace and balance <= 0:
                    flush(i)
                    state = ScanState.SEEKING_SYMBOL
            i += 1

        if state is ScanState.IN_BLOCK:
            flush(len(lines) - 1)
        return snippets


def extract_snippets(content: str, language: str) -> List[Snippet]:
    return SnippetScanner(language).scan(content)
