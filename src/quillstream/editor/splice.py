"""Whole-document line splicing used to apply streamed output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

__all__ = [
    "SpliceError",
    "SpliceResult",
    "join_lines",
    "splice_lines",
    "splice_text",
    "split_lines",
]


class SpliceError(ValueError):
    """Raised when a line range cannot be spliced into a document."""

    def __init__(
        self,
        message: str,
        *,
        reason: str = "invalid_range",
        start: int | None = None,
        end: int | None = None,
        line_count: int | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.start = start
        self.end = end
        self.line_count = line_count

    def details(self) -> dict[str, object]:
        return {
            "reason": self.reason,
            "start": self.start,
            "end": self.end,
            "line_count": self.line_count,
        }


@dataclass(slots=True)
class SpliceResult:
    """Document produced by a splice plus the span the replacement occupies."""

    text: str
    start_line: int
    end_line: int
    summary: str


def split_lines(text: str) -> List[str]:
    """Split ``text`` on ``\\n``; an empty string is a single empty line."""

    return text.split("\n")


def join_lines(lines: Sequence[str]) -> str:
    return "\n".join(lines)


def splice_lines(
    base_lines: Sequence[str],
    start: int,
    end: int,
    replacement: Sequence[str],
) -> List[str]:
    """Replace the inclusive range ``start..end`` of ``base_lines``."""

    line_count = len(base_lines)
    if start > end:
        raise SpliceError(
            f"Splice start {start} is after end {end}",
            reason="inverted_range",
            start=start,
            end=end,
            line_count=line_count,
        )
    if start < 0 or end >= line_count:
        raise SpliceError(
            f"Splice range {start}..{end} is outside a {line_count}-line document",
            reason="range_overflow",
            start=start,
            end=end,
            line_count=line_count,
        )
    result = list(base_lines[:start])
    result.extend(replacement)
    result.extend(base_lines[end + 1 :])
    return result


def splice_text(base_text: str, start: int, end: int, output: str) -> SpliceResult:
    """Replace lines ``start..end`` of ``base_text`` with the lines of ``output``.

    The fenced block is always replaced as a whole, so applying the same
    ``output`` twice against the same base yields the same document.
    """

    replacement = split_lines(output)
    spliced = splice_lines(split_lines(base_text), start, end, replacement)
    new_end = start + len(replacement) - 1
    summary = f"splice:{start}-{end}->{start}-{new_end}"
    return SpliceResult(text=join_lines(spliced), start_line=start, end_line=new_end, summary=summary)
