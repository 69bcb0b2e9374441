"""
High-level knowledge base operations used by the MCP tools.

``KnowledgeBase`` ties the store, the indexer and search together. It raises
``KnowledgeBaseError`` subclasses (and ``UpstreamError`` for archive downloads);
the tool layer converts those into ``{"error": ...}`` results.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx

from evm_mcp.config import EvmConfig, default_config
from evm_mcp.kb.indexer import fetch_archive, ingest_archive, ingest_directory
from evm_mcp.kb.models import (
    LOCAL_DIR,
    ZIP,
    Chunk,
    IngestReport,
    InvalidInputError,
    KnowledgeBaseError,
    NotFoundError,
)
from evm_mcp.kb.search import search_chunks
from evm_mcp.kb.store import KnowledgeStore
from evm_mcp.upstream.errors import UpstreamError

logger = logging.getLogger(__name__)

ROOT_REQUIRED = "Provide localDir or zipUrl/zipBase64"
ROOT_CONFLICT = "Provide only one of localDir or zipUrl/zipBase64"


class KnowledgeBase:
    def __init__(
        self,
        root: Optional[Path] = None,
        *,
        config: EvmConfig | None = None,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or default_config
        self.store = KnowledgeStore(Path(root) if root is not None else self.config.kb_root)
        self._async_client = async_client

    @property
    def root(self) -> Path:
        return self.store.root

    async def sync_source(
        self,
        *,
        source_id: Optional[str] = None,
        local_dir: Optional[str] = None,
        zip_url: Optional[str] = None,
        zip_base64: Optional[str] = None,
        zip_path_prefix: Optional[str] = None,
        include_exts: Optional[Sequence[str]] = None,
        tags: Optional[Sequence[str]] = None,
        max_files: Optional[int] = None,
    ) -> IngestReport:
        """Ingest exactly one root (directory or archive), replacing prior chunks."""
        archive_given = bool(zip_url) or bool(zip_base64)
        if local_dir and archive_given:
            raise InvalidInputError(ROOT_CONFLICT)
        if zip_url and zip_base64:
            raise InvalidInputError(ROOT_CONFLICT)
        if not local_dir and not archive_given:
            raise InvalidInputError(ROOT_REQUIRED)

        if local_dir:
            return await asyncio.to_thread(
                ingest_directory,
                self.store,
                local_dir,
                source_id=source_id,
                include_exts=include_exts,
                tags=tags,
                max_files=max_files,
            )

        if zip_base64:
            try:
                payload = base64.b64decode(zip_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise InvalidInputError("zipBase64 is not valid base64") from exc
        else:
            payload = await fetch_archive(
                zip_url,
                timeout=self.config.timeout,
                github_token=self.config.github_token,
                async_client=self._async_client,
            )
        return await asyncio.to_thread(
            ingest_archive,
            self.store,
            payload,
            source_id=source_id,
            zip_url=zip_url,
            zip_path_prefix=zip_path_prefix,
            include_exts=include_exts,
            tags=tags,
            max_files=max_files,
        )

    def search(
        self,
        query: str,
        *,
        top_k: int,
        source_ids: Optional[Sequence[str]] = None,
        path_prefix: Optional[str] = None,
    ) -> Dict[str, Any]:
        registered = [manifest.id for manifest in self.store.load_registry()]
        if source_ids:
            wanted = set(source_ids)
            registered = [source_id for source_id in registered if source_id in wanted]
        total, hits = search_chunks(
            self.store.iter_all_chunks(registered),
            query,
            top_k=top_k,
            path_prefix=path_prefix,
            snippet_chars=self.config.kb_snippet_chars,
        )
        return {"query": query, "total": total, "results": [hit.to_dict() for hit in hits]}

    def get_chunk(self, chunk_id: str) -> Chunk:
        for chunk in self.store.iter_all_chunks():
            if chunk.id == chunk_id:
                return chunk
        raise NotFoundError(f"chunkId not found: {chunk_id}")

    def get_file(self, source_id: str, path: str, *, include_text: bool = True) -> Dict[str, Any]:
        """Read a file from a directory source; archive sources keep no files on disk."""
        manifest = self.store.find_manifest(source_id)
        if manifest is None:
            raise NotFoundError(f"source not found: {source_id}")
        if manifest.type != LOCAL_DIR or not manifest.root_path:
            raise NotFoundError("file not found")

        root = Path(manifest.root_path).resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            raise NotFoundError("file not found")
        result: Dict[str, Any] = {
            "sourceId": source_id,
            "path": target.relative_to(root).as_posix(),
            "size": target.stat().st_size,
        }
        if include_text:
            result["text"] = target.read_text(encoding="utf-8", errors="replace")
        return result

    def status(self) -> Dict[str, Any]:
        return {
            "root": str(self.root.resolve()),
            "sources": [
                {
                    "id": manifest.id,
                    "type": manifest.type,
                    "tags": manifest.tags,
                    "updatedAt": manifest.updated_at,
                    "fileCount": manifest.file_count,
                    "chunkCount": self.store.count_chunks(manifest.id),
                }
                for manifest in self.store.load_registry()
            ],
        }

    async def update_all(self) -> Dict[str, Any]:
        """Re-ingest every registered source from its recorded root; failures are per source."""
        results: List[Dict[str, Any]] = []
        for manifest in self.store.load_registry():
            entry: Dict[str, Any] = {"id": manifest.id, "type": manifest.type}
            common = {
                "source_id": manifest.id,
                "include_exts": manifest.include_exts or None,
                "tags": manifest.tags,
                "max_files": manifest.max_files,
            }
            try:
                if manifest.type == LOCAL_DIR and manifest.root_path:
                    await self.sync_source(local_dir=manifest.root_path, **common)
                elif manifest.type == ZIP and manifest.zip_url:
                    await self.sync_source(
                        zip_url=manifest.zip_url,
                        zip_path_prefix=manifest.zip_path_prefix,
                        **common,
                    )
                else:
                    raise InvalidInputError("Unsupported source type or missing fields")
            except (KnowledgeBaseError, UpstreamError) as exc:
                logger.warning("KB re-sync failed", extra={"source": manifest.id, "error": str(exc)})
                entry.update({"ok": False, "error": str(exc)})
            except Exception:
                logger.exception("Unexpected error re-syncing KB source", extra={"source": manifest.id})
                entry.update({"ok": False, "error": "Unexpected error while re-syncing source."})
            else:
                entry["ok"] = True
            results.append(entry)
        return {"count": len(results), "results": results}
