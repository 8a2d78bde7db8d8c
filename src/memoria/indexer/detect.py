"""Heuristics for spotting code in free text."""

import re
from typing import Dict, List

CODE_TERMS = (
    "code", "function", "class", "method", "variable", "object",
    "array", "string", "number", "boolean", "interface", "type",
    "implement", "extend", "import", "export", "module", "package",
    "library", "framework", "api", "component", "property", "attribute",
    "syntax", "compiler", "interpreter", "runtime", "debug", "error",
    "exception", "bug", "fix", "issue", "pull request", "commit",
    "branch", "merge", "git", "repository", "algorithm", "data structure",
)

LANGUAGE_NAMES = (
    "javascript", "typescript", "python", "java", "c++", "c#", "ruby",
    "go", "rust", "php", "swift", "kotlin", "scala", "perl", "r",
    "bash", "shell", "sql", "html", "css", "jsx", "tsx",
)

# Terms match as whole words so "go" does not fire on "good"
_TERM_RE = re.compile(
    r"(?<![\w+#])(?:"
    + "|".join(re.escape(t) for t in sorted(CODE_TERMS + LANGUAGE_NAMES, key=len, reverse=True))
    + r")(?![\w+#])"
)

_CODE_PATTERNS = (
    re.compile(r"\b(function|def|class|import|export|from|const|let|var)\b"),
    re.compile(r"\b(if|else|for|while|switch|case|try|catch|async|await)\b"),
    re.compile(r"\b(return|yield|throw|break|continue)\b"),
    re.compile(r"[\[\]{}()<>]"),
    re.compile(r"\w+\.\w+\("),
    re.compile(r"\w+\([^)]*\)"),
    re.compile(r"\s(===|!==|==|!=|>=|<=|&&|\|\|)\s"),
    re.compile(r"`[^`]*`"),
    re.compile(r"//|/\*|\*/"),
)

_FENCE_RE = re.compile(r"```([a-z]*)\n(.*?)```", re.DOTALL)
_CODE_LINE_RE = re.compile(r"^\s{2,}|[{}\[\]();]|function\s+\w+\s*\(|if\s*\(|for\s*\(")


def is_code_related(text: str) -> bool:
    """Keyword, language-name and syntax-pattern check. Deliberately loose."""
    if not text:
        return False
    lowered = text.lower()
    if _TERM_RE.search(lowered):
        return True
    return any(p.search(lowered) for p in _CODE_PATTERNS)


def extract_code_blocks(text: str) -> List[Dict[str, str]]:
    """Fenced ```lang blocks, or runs of code-looking lines when there are none."""
    if not text:
        return []

    blocks = [
        {"language": m.group(1) or "text", "content": m.group(2).strip()}
        for m in _FENCE_RE.finditer(text)
    ]
    if blocks or not is_code_related(text):
        return blocks

    segment: List[str] = []
    for raw in text.split("\n"):
        line = raw.strip()
        if _CODE_LINE_RE.search(raw) and line:
            segment.append(line)
        elif segment and not line:
            segment.append("")
        elif segment:
            blocks.append({"language": "text", "content": "\n".join(segment).strip()})
            segment = []
    if segment:
        blocks.append({"language": "text", "content": "\n".join(segment).strip()})
    return [b for b in blocks if b["content"]]
