"""Records persisted by the knowledge base and the errors it raises."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

LOCAL_DIR = "local_dir"
ZIP = "zip"


class KnowledgeBaseError(Exception):
    """Base exception for knowledge base operations."""


class InvalidInputError(KnowledgeBaseError):
    """Raised when ingestion or lookup parameters are malformed."""


class NotFoundError(KnowledgeBaseError):
    """Raised when a chunk, source or file does not exist."""


@dataclass(slots=True, frozen=True)
class Segment:
    """A line range of one file, 1-based and inclusive."""

    start_line: int
    end_line: int
    text: str


@dataclass(slots=True, frozen=True)
class Chunk:
    id: str
    source_id: str
    path: str
    start_line: int
    end_line: int
    ext: str
    text: str

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "path": self.path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "ext": self.ext,
            "text": self.text,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Chunk":
        """Build a chunk from a stored record; raises ValueError when malformed."""
        try:
            return cls(
                id=str(record["id"]),
                source_id=str(record["sourceId"]),
                path=str(record["path"]),
                start_line=int(record["startLine"]),
                end_line=int(record["endLine"]),
                ext=str(record.get("ext", "")),
                text=str(record.get("text", "")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed chunk record: {exc}") from exc


@dataclass(slots=True)
class SourceManifest:
    """Persisted description of one ingested source."""

    id: str
    type: str
    tags: List[str]
    include_exts: List[str]
    updated_at: str
    file_count: int = 0
    chunk_count: int = 0
    root_path: Optional[str] = None
    zip_url: Optional[str] = None
    zip_hash: Optional[str] = None
    zip_path_prefix: Optional[str] = None
    max_files: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type}
        if self.type == LOCAL_DIR:
            data["rootPath"] = self.root_path
        else:
            data["zipUrl"] = self.zip_url
            data["zipHash"] = self.zip_hash
            data["zipPathPrefix"] = self.zip_path_prefix
        data.update(
            {
                "tags": list(self.tags),
                "includeExts": list(self.include_exts),
                "maxFiles": self.max_files,
                "updatedAt": self.updated_at,
                "fileCount": self.file_count,
                "chunkCount": self.chunk_count,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceManifest":
        tags = data.get("tags") or []
        include_exts = data.get("includeExts") or []
        max_files = data.get("maxFiles")
        return cls(
            id=str(data["id"]),
            type=str(data.get("type") or LOCAL_DIR),
            tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
            include_exts=[str(ext) for ext in include_exts] if isinstance(include_exts, list) else [],
            updated_at=str(data.get("updatedAt") or ""),
            file_count=int(data.get("fileCount") or 0),
            chunk_count=int(data.get("chunkCount") or 0),
            root_path=data.get("rootPath"),
            zip_url=data.get("zipUrl"),
            zip_hash=data.get("zipHash"),
            zip_path_prefix=data.get("zipPathPrefix"),
            max_files=max_files if isinstance(max_files, int) else None,
        )


@dataclass(slots=True, frozen=True)
class FileOutcome:
    """Result of ingesting a single file."""

    path: str
    ok: bool
    chunk_count: int = 0
    error: Optional[str] = None


@dataclass(slots=True)
class IngestReport:
    manifest: SourceManifest
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> Tuple[FileOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "source": self.manifest.to_dict(),
            "skipped": [{"path": item.path, "error": item.error} for item in self.skipped],
        }
