"""
Flat-file persistence for the knowledge base.

Layout under the root directory::

    registry.json                  # list of source manifests
    sources/<id>/manifest.json     # one manifest per source
    sources/<id>/chunks.jsonl      # one chunk record per line

Writes go through a temporary file and ``Path.replace`` so a crash never
leaves a half-written registry or chunk file behind.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from evm_mcp.kb.models import Chunk, SourceManifest

logger = logging.getLogger(__name__)

REGISTRY_FILE = "registry.json"
MANIFEST_FILE = "manifest.json"
CHUNKS_FILE = "chunks.jsonl"


class KnowledgeStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def registry_path(self) -> Path:
        return self.root / REGISTRY_FILE

    @property
    def sources_dir(self) -> Path:
        return self.root / "sources"

    def source_dir(self, source_id: str) -> Path:
        return self.sources_dir / source_id

    def load_registry(self) -> List[SourceManifest]:
        """Return all registered manifests; a missing or unreadable registry is empty."""
        path = self.registry_path
        if not path.is_file():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("KB registry unreadable, treating as empty", extra={"path": str(path)})
            return []
        entries = payload.get("sources") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            return []
        manifests: List[SourceManifest] = []
        for entry in entries:
            if isinstance(entry, dict) and entry.get("id"):
                manifests.append(SourceManifest.from_dict(entry))
        return manifests

    def save_registry(self, manifests: Iterable[SourceManifest]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        payload = {"sources": [manifest.to_dict() for manifest in manifests]}
        _atomic_write_json(self.registry_path, payload)

    def find_manifest(self, source_id: str) -> Optional[SourceManifest]:
        for manifest in self.load_registry():
            if manifest.id == source_id:
                return manifest
        return None

    def upsert_manifest(self, manifest: SourceManifest) -> None:
        """Replace the registry entry for ``manifest.id`` (or append it)."""
        manifests = [item for item in self.load_registry() if item.id != manifest.id]
        manifests.append(manifest)
        self.save_registry(manifests)

    def replace_source(self, manifest: SourceManifest, chunks: List[Chunk]) -> None:
        """Discard everything stored for the source, then write the new set."""
        directory = self.source_dir(manifest.id)
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True, exist_ok=True)
        _atomic_write_jsonl(directory / CHUNKS_FILE, (chunk.to_record() for chunk in chunks))
        _atomic_write_json(directory / MANIFEST_FILE, manifest.to_dict())
        self.upsert_manifest(manifest)

    def iter_chunks(self, source_id: str) -> Iterator[Chunk]:
        path = self.source_dir(source_id) / CHUNKS_FILE
        if not path.is_file():
            return
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                stripped = raw_line.strip()
                if not stripped:
                    continue
                try:
                    yield Chunk.from_record(json.loads(stripped))
                except (json.JSONDecodeError, ValueError, AttributeError):
                    logger.debug("Skipping malformed chunk line", extra={"source": source_id})
                    continue

    def count_chunks(self, source_id: str) -> int:
        path = self.source_dir(source_id) / CHUNKS_FILE
        if not path.is_file():
            return 0
        with path.open("r", encoding="utf-8") as handle:
            return sum(1 for raw_line in handle if raw_line.strip())

    def iter_all_chunks(self, source_ids: Optional[Iterable[str]] = None) -> Iterator[Chunk]:
        """Chunks of the given sources (all registered sources when ``None``)."""
        if source_ids is None:
            ids = [manifest.id for manifest in self.load_registry()]
        else:
            ids = list(source_ids)
        for source_id in ids:
            yield from self.iter_chunks(source_id)


def _atomic_write_json(path: Path, payload: Dict[str, Any]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
        handle.write("\n")
    tmp.replace(path)


def _atomic_write_jsonl(path: Path, rows: Iterable[Dict[str, Any]]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        for row in rows:
            handle.write(json.dumps(row))
            handle.write("\n")
    tmp.replace(path)
