"""Knowledge base tools."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from evm_mcp.config import EvmConfig, default_config
from evm_mcp.kb import KnowledgeBaseError, default_kb
from evm_mcp.upstream.errors import UpstreamError
from evm_mcp.tools.validators import clamp_limit

logger = logging.getLogger(__name__)


async def kb_sync_source(
    *,
    source_id: Optional[str] = None,
    local_dir: Optional[str] = None,
    zip_url: Optional[str] = None,
    zip_base64: Optional[str] = None,
    zip_path_prefix: Optional[str] = None,
    include_exts: Optional[List[str]] = None,
    tags: Optional[List[str]] = None,
    max_files: Optional[int] = None,
    kb=default_kb,
) -> Dict[str, Any]:
    """
    Index a local directory or a ZIP archive (URL or base64) as one source.

    Re-syncing an existing source id replaces all of its chunks. Files that
    cannot be decoded are listed under ``skipped``.
    """
    try:
        report = await kb.sync_source(
            source_id=source_id,
            local_dir=local_dir,
            zip_url=zip_url,
            zip_base64=zip_base64,
            zip_path_prefix=zip_path_prefix,
            include_exts=include_exts,
            tags=tags,
            max_files=max_files,
        )
    except KnowledgeBaseError as exc:
        return {"error": str(exc)}
    except UpstreamError as exc:
        return {"error": str(exc)}
    except OSError as exc:
        logger.warning("KB sync failed on filesystem access", extra={"error": exc.strerror or str(exc)})
        return {"error": f"Filesystem error: {exc.strerror or exc}"}
    except Exception:
        logger.exception("Unexpected error syncing KB source")
        return {"error": "Unexpected error while syncing source."}
    return report.to_dict()


async def kb_search(
    query: str,
    *,
    top_k: Optional[int] = None,
    source_ids: Optional[List[str]] = None,
    path_prefix: Optional[str] = None,
    kb=default_kb,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Keyword search over indexed chunks, best matches first."""
    if not isinstance(query, str):
        return {"error": "query must be a string"}
    if source_ids is not None and (
        not isinstance(source_ids, list) or not all(isinstance(item, str) for item in source_ids)
    ):
        return {"error": "sourceIds must be a list of strings"}
    effective = clamp_limit(top_k, default=config.default_kb_results, max_value=config.max_kb_results)
    try:
        return await asyncio.to_thread(
            kb.search, query, top_k=effective, source_ids=source_ids, path_prefix=path_prefix
        )
    except KnowledgeBaseError as exc:
        return {"error": str(exc)}
    except Exception:
        logger.exception("Unexpected error searching KB")
        return {"error": "Unexpected error while searching."}


async def kb_get(
    *,
    chunk_id: Optional[str] = None,
    source_id: Optional[str] = None,
    path: Optional[str] = None,
    include_text: bool = True,
    kb=default_kb,
) -> Dict[str, Any]:
    """Fetch one chunk by id, or a whole file by source id and relative path."""
    try:
        if chunk_id:
            chunk = await asyncio.to_thread(kb.get_chunk, chunk_id)
            return {"chunk": chunk.to_record()}
        if source_id and path:
            return {"file": await asyncio.to_thread(kb.get_file, source_id, path, include_text=include_text)}
    except KnowledgeBaseError as exc:
        return {"error": str(exc)}
    except OSError:
        return {"error": "file not found"}
    except Exception:
        logger.exception("Unexpected error reading KB entry")
        return {"error": "Unexpected error while reading knowledge base."}
    return {"error": "Provide chunkId or sourceId+path"}


async def kb_status(*, kb=default_kb) -> Dict[str, Any]:
    """Registered sources with their file and chunk counts."""
    try:
        return await asyncio.to_thread(kb.status)
    except Exception:
        logger.exception("Unexpected error reading KB status")
        return {"error": "Unexpected error while reading knowledge base status."}


async def kb_update_all(*, kb=default_kb) -> Dict[str, Any]:
    """Re-sync every registered source; one failure does not stop the rest."""
    try:
        return await kb.update_all()
    except Exception:
        logger.exception("Unexpected error re-syncing KB")
        return {"error": "Unexpected error while updating knowledge base."}
