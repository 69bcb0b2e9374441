"""Line-based chunking: heading-delimited for docs, overlapping windows otherwise."""

from __future__ import annotations

import hashlib
import re
from typing import List

from evm_mcp.kb.models import Segment

WINDOW_LINES = 150
OVERLAP_LINES = 30
DOC_EXTENSIONS = frozenset({".md", ".markdown", ".mdx"})

HEADING_REGEX = re.compile(r"^#{1,3}\s+\S")
_NEWLINE_REGEX = re.compile(r"\r\n|\r|\n")


def split_lines(text: str) -> List[str]:
    """Split on any newline convention; a trailing newline does not add a line."""
    if not text:
        return []
    lines = _NEWLINE_REGEX.split(text)
    if lines[-1] == "":
        lines.pop()
    return lines


def window_segments(
    lines: List[str],
    window: int = WINDOW_LINES,
    overlap: int = OVERLAP_LINES,
) -> List[Segment]:
    if window < 1:
        raise ValueError("window must be >= 1")
    if not 0 <= overlap < window:
        raise ValueError("overlap must be >= 0 and less than window")

    segments: List[Segment] = []
    step = window - overlap
    start = 0
    total = len(lines)
    while start < total:
        end = min(start + window, total)
        segments.append(Segment(start + 1, end, "\n".join(lines[start:end])))
        if end == total:
            break
        start += step
    return segments


def heading_segments(lines: List[str]) -> List[Segment]:
    """
    Split at level 1-3 Markdown headings.

    A heading on the first line does not open a second chunk. Returns an empty
    list when the text contains no heading at all.
    """
    heading_rows = [index for index, line in enumerate(lines) if HEADING_REGEX.match(line)]
    if not heading_rows:
        return []
    starts = [0] + [row for row in heading_rows if row != 0]
    segments: List[Segment] = []
    for position, start in enumerate(starts):
        end = starts[position + 1] if position + 1 < len(starts) else len(lines)
        segments.append(Segment(start + 1, end, "\n".join(lines[start:end])))
    return segments


def chunk_text(text: str, ext: str) -> List[Segment]:
    lines = split_lines(text)
    if not lines:
        return []
    if ext.lower() in DOC_EXTENSIONS:
        segments = heading_segments(lines)
        if segments:
            return segments
    return window_segments(lines)


def fingerprint(source_id: str, path: str, start_line: int, end_line: int, text: str) -> str:
    """Stable chunk id derived from source, position and content."""
    text_digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    key = f"{source_id}:{path}:{start_line}-{end_line}:{text_digest}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
