"""Keyword search over stored chunks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from evm_mcp.kb.models import Chunk


@dataclass(slots=True, frozen=True)
class SearchHit:
    score: int
    chunk: Chunk
    snippet: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "chunkId": self.chunk.id,
            "sourceId": self.chunk.source_id,
            "path": self.chunk.path,
            "startLine": self.chunk.start_line,
            "endLine": self.chunk.end_line,
            "snippet": self.snippet,
        }


def tokenize_query(query: str) -> List[str]:
    return query.lower().split()


def score_text(text: str, tokens: List[str]) -> int:
    """Sum of non-overlapping, case-insensitive occurrences of each token."""
    lowered = text.lower()
    return sum(lowered.count(token) for token in tokens)


def normalize_path_prefix(path_prefix: Optional[str]) -> Optional[str]:
    if not path_prefix:
        return None
    normalized = path_prefix.replace("\\", "/").strip()
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized or None


def _sort_key(hit: SearchHit) -> Tuple[int, str, str, int]:
    return (-hit.score, hit.chunk.source_id, hit.chunk.path, hit.chunk.start_line)


def search_chunks(
    chunks: Iterable[Chunk],
    query: str,
    *,
    top_k: int,
    path_prefix: Optional[str] = None,
    snippet_chars: int = 400,
) -> Tuple[int, List[SearchHit]]:
    """
    Score every chunk against ``query`` and return ``(total, top hits)``.

    ``total`` counts chunks with a positive score before truncation. Ties are
    ordered by source id, path and start line so results are reproducible.
    """
    tokens = tokenize_query(query)
    if not tokens:
        return 0, []
    prefix = normalize_path_prefix(path_prefix)

    hits: List[SearchHit] = []
    for chunk in chunks:
        if prefix and not chunk.path.startswith(prefix):
            continue
        score = score_text(chunk.text, tokens)
        if score > 0:
            hits.append(SearchHit(score=score, chunk=chunk, snippet=chunk.text[:snippet_chars]))

    hits.sort(key=_sort_key)
    return len(hits), hits[:top_k]
