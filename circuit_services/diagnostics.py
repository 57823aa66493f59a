"""
Diagnostic classification and grouping for compiler / snarkjs output.

Tool output arrives as unstructured lines. Two steps turn it into something a
user can act on:

1. A ``LineClassifier`` tags each line ``error`` / ``warning`` / ``info``. The
   default ``SubstringClassifier`` uses case-insensitive substring heuristics
   plus circom's bracketed codes (``error[P1012]``, ``warning[CA02]``). The
   interface exists so a structured diagnostic format can replace it.

2. ``group_diagnostics`` folds lines into blocks: a marker line (bracketed
   error code, or any line classified as an error) opens a block and every
   following line joins it until the next marker. Lines seen before the first
   marker are standalone entries. ``format_diagnostics`` renders the blocks
   separated by a blank line.

Example
-------
    >>> print(format_diagnostics(["info: start", "error[P1001]: foo", "  detail1"]))
    info: start
    <BLANKLINE>
    error[P1001]: foo
      detail1
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Protocol, Sequence, Tuple

Kind = Literal["error", "warning", "info"]

ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
CODE_RE = re.compile(r"\b(error|warning)\[[A-Za-z]*\d+\]", re.IGNORECASE)


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


class LineClassifier(Protocol):
    def classify(self, line: str) -> Kind:
        ...

    def is_marker(self, line: str) -> bool:
        """True when ``line`` opens a new diagnostic block."""
        ...


class SubstringClassifier:
    """Heuristic classifier over ANSI-stripped, lowercased text."""

    def classify(self, line: str) -> Kind:
        clean = strip_ansi(line)
        m = CODE_RE.search(clean)
        if m:
            return "error" if m.group(1).lower() == "error" else "warning"
        low = clean.lower()
        # Warning first: circom prints lines like "warning: ... error-prone ..."
        if "warning" in low:
            return "warning"
        if "error" in low:
            return "error"
        return "info"

    def is_marker(self, line: str) -> bool:
        clean = strip_ansi(line)
        m = CODE_RE.search(clean)
        if m:
            return m.group(1).lower() == "error"
        return self.classify(clean) == "error"


DEFAULT_CLASSIFIER: LineClassifier = SubstringClassifier()


@dataclass
class Diagnostic:
    kind: Kind
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def classify_lines(
    lines: Iterable[str], classifier: LineClassifier = DEFAULT_CLASSIFIER
) -> Tuple[List[str], List[str]]:
    """Split raw output into ``(errors, warnings)``; info lines are dropped."""
    errors: List[str] = []
    warnings: List[str] = []
    for raw in lines:
        line = strip_ansi(raw).rstrip()
        if not line.strip():
            continue
        kind = classifier.classify(line)
        if kind == "error":
            errors.append(line)
        elif kind == "warning":
            warnings.append(line)
    return errors, warnings


def group_diagnostics(
    lines: Sequence[str], classifier: LineClassifier = DEFAULT_CLASSIFIER
) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    current: Diagnostic | None = None
    for raw in lines:
        line = strip_ansi(raw).rstrip()
        if not line.strip():
            continue
        if classifier.is_marker(line):
            current = Diagnostic(kind="error", lines=[line])
            out.append(current)
        elif current is not None:
            current.lines.append(line)
        else:
            out.append(Diagnostic(kind=classifier.classify(line), lines=[line]))
    return out


def format_diagnostics(
    lines: Sequence[str], classifier: LineClassifier = DEFAULT_CLASSIFIER
) -> str:
    return "\n\n".join(d.text for d in group_diagnostics(lines, classifier))


__all__ = [
    "Kind",
    "LineClassifier",
    "SubstringClassifier",
    "DEFAULT_CLASSIFIER",
    "Diagnostic",
    "strip_ansi",
    "classify_lines",
    "group_diagnostics",
    "format_diagnostics",
]
