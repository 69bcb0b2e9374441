"""
Ingestion of local directories and ZIP archives into the knowledge base.

Files are selected by extension, decoded as UTF-8, chunked and fingerprinted.
A file that cannot be read or decoded is recorded as a failed ``FileOutcome``
and the rest of the source is still ingested.
"""

from __future__ import annotations

import hashlib
import io
import logging
import re
import zipfile
import zlib
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from evm_mcp.kb.chunking import chunk_text, fingerprint
from evm_mcp.kb.models import (
    LOCAL_DIR,
    ZIP,
    Chunk,
    FileOutcome,
    IngestReport,
    InvalidInputError,
    SourceManifest,
)
from evm_mcp.kb.store import KnowledgeStore
from evm_mcp.metrics import default_metrics
from evm_mcp.upstream.errors import UpstreamHTTPError, UpstreamUnreachableError

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_EXTS: Tuple[str, ...] = (
    ".md",
    ".sol",
    ".yul",
    ".ts",
    ".js",
    ".json",
    ".yml",
    ".yaml",
)

SOURCE_ID_REGEX = re.compile(r"^[A-Za-z0-9._-]+$")
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_NON_WORD = re.compile(r"\W+")
_TOKEN_HOSTS = ("github.com", "githubusercontent.com")


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_exts(include_exts: Optional[Iterable[str]]) -> List[str]:
    """Lower-case extensions with a leading dot, de-duplicated in order."""
    if include_exts is None:
        return list(DEFAULT_INCLUDE_EXTS)
    if isinstance(include_exts, str):
        raise InvalidInputError("includeExts must be a list of strings")
    normalized: List[str] = []
    for ext in include_exts:
        if not isinstance(ext, str) or not ext.strip():
            raise InvalidInputError("includeExts must be a list of strings")
        value = ext.strip().lower()
        if not value.startswith("."):
            value = f".{value}"
        if value not in normalized:
            normalized.append(value)
    return normalized


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        raise InvalidInputError("tags must be a list of strings")
    tag_list = list(tags)
    if not all(isinstance(tag, str) for tag in tag_list):
        raise InvalidInputError("tags must be a list of strings")
    return tag_list


def validate_max_files(max_files: Optional[int]) -> Optional[int]:
    if max_files is None:
        return None
    if isinstance(max_files, bool) or not isinstance(max_files, int) or max_files < 1:
        raise InvalidInputError("maxFiles must be a positive integer")
    return max_files


def validate_source_id(source_id: str) -> str:
    if not isinstance(source_id, str) or not SOURCE_ID_REGEX.match(source_id) or source_id in {".", ".."}:
        raise InvalidInputError(
            "sourceId may only contain letters, digits, '.', '_' and '-'"
        )
    return source_id


def directory_source_id(root: Path) -> str:
    derived = _UNSAFE_ID_CHARS.sub("_", root.name).strip("._")
    return derived or "kb-source"


def archive_source_id(zip_url: Optional[str], digest: str) -> str:
    base = "zip"
    if zip_url:
        name = zip_url.rstrip("/").rsplit("/", 1)[-1]
        base = _NON_WORD.sub("-", name).strip("-") or "zip"
    return f"{base}-{digest[:8]}"


def _chunks_for_file(source_id: str, rel_path: str, ext: str, text: str) -> List[Chunk]:
    return [
        Chunk(
            id=fingerprint(source_id, rel_path, segment.start_line, segment.end_line, segment.text),
            source_id=source_id,
            path=rel_path,
            start_line=segment.start_line,
            end_line=segment.end_line,
            ext=ext,
            text=segment.text,
        )
        for segment in chunk_text(text, ext)
    ]


def _decode(payload: bytes) -> str:
    text = payload.decode("utf-8")
    if "\x00" in text:
        raise UnicodeError("binary content")
    return text


def _ingest_file(
    source_id: str,
    rel_path: str,
    payload: bytes,
    chunks: List[Chunk],
    outcomes: List[FileOutcome],
) -> None:
    ext = PurePosixPath(rel_path).suffix.lower()
    try:
        text = _decode(payload)
    except UnicodeError:
        outcomes.append(FileOutcome(rel_path, ok=False, error="not valid UTF-8 text"))
        return
    file_chunks = _chunks_for_file(source_id, rel_path, ext, text)
    chunks.extend(file_chunks)
    outcomes.append(FileOutcome(rel_path, ok=True, chunk_count=len(file_chunks)))


def _finalize(
    store: KnowledgeStore,
    manifest: SourceManifest,
    chunks: List[Chunk],
    outcomes: List[FileOutcome],
) -> IngestReport:
    manifest.file_count = sum(1 for outcome in outcomes if outcome.ok)
    manifest.chunk_count = len(chunks)
    store.replace_source(manifest, chunks)
    failed = sum(1 for outcome in outcomes if not outcome.ok)
    logger.info(
        "KB source ingested",
        extra={
            "source": manifest.id,
            "files": manifest.file_count,
            "chunks": manifest.chunk_count,
            "skipped": failed,
        },
    )
    return IngestReport(manifest=manifest, outcomes=outcomes)


def ingest_directory(
    store: KnowledgeStore,
    local_dir: str | Path,
    *,
    source_id: Optional[str] = None,
    include_exts: Optional[Sequence[str]] = None,
    tags: Optional[Sequence[str]] = None,
    max_files: Optional[int] = None,
) -> IngestReport:
    """Walk ``local_dir`` in sorted order and replace the source's chunks."""
    root = Path(local_dir).expanduser().resolve()
    if not root.is_dir():
        raise InvalidInputError(f"Directory not found: {local_dir}")
    exts = normalize_exts(include_exts)
    tag_list = normalize_tags(tags)
    cap = validate_max_files(max_files)
    sid = validate_source_id(source_id) if source_id is not None else directory_source_id(root)

    selected = [
        path
        for path in sorted(root.rglob("*"))
        if path.is_file() and path.suffix.lower() in exts
    ]
    if cap is not None:
        selected = selected[:cap]

    chunks: List[Chunk] = []
    outcomes: List[FileOutcome] = []
    for path in selected:
        rel_path = path.relative_to(root).as_posix()
        try:
            payload = path.read_bytes()
        except OSError as exc:
            outcomes.append(FileOutcome(rel_path, ok=False, error=f"read failed: {exc.strerror or exc}"))
            continue
        _ingest_file(sid, rel_path, payload, chunks, outcomes)

    manifest = SourceManifest(
        id=sid,
        type=LOCAL_DIR,
        tags=tag_list,
        include_exts=exts,
        updated_at=utc_now_iso(),
        root_path=str(root),
        max_files=cap,
    )
    return _finalize(store, manifest, chunks, outcomes)


def _strip_prefix(name: str, prefix: Optional[str]) -> str:
    if prefix and name.startswith(prefix):
        return name[len(prefix):].lstrip("/")
    return name


def ingest_archive(
    store: KnowledgeStore,
    payload: bytes,
    *,
    source_id: Optional[str] = None,
    zip_url: Optional[str] = None,
    zip_path_prefix: Optional[str] = None,
    include_exts: Optional[Sequence[str]] = None,
    tags: Optional[Sequence[str]] = None,
    max_files: Optional[int] = None,
) -> IngestReport:
    """Ingest the entries of a ZIP archive held in memory, in archive order."""
    exts = normalize_exts(include_exts)
    tag_list = normalize_tags(tags)
    cap = validate_max_files(max_files)
    digest = hashlib.sha256(payload).hexdigest()
    sid = validate_source_id(source_id) if source_id is not None else archive_source_id(zip_url, digest)

    try:
        archive = zipfile.ZipFile(io.BytesIO(payload))
    except zipfile.BadZipFile as exc:
        raise InvalidInputError("Invalid ZIP archive") from exc

    chunks: List[Chunk] = []
    outcomes: List[FileOutcome] = []
    with archive:
        selected = []
        for info in archive.infolist():
            if info.is_dir():
                continue
            rel_path = _strip_prefix(info.filename, zip_path_prefix)
            if not rel_path or PurePosixPath(rel_path).suffix.lower() not in exts:
                continue
            selected.append((info, rel_path))
        if cap is not None:
            selected = selected[:cap]

        for info, rel_path in selected:
            try:
                data = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError, OSError) as exc:
                outcomes.append(FileOutcome(rel_path, ok=False, error=f"read failed: {exc}"))
                continue
            _ingest_file(sid, rel_path, data, chunks, outcomes)

    manifest = SourceManifest(
        id=sid,
        type=ZIP,
        tags=tag_list,
        include_exts=exts,
        updated_at=utc_now_iso(),
        zip_url=zip_url,
        zip_hash=digest,
        zip_path_prefix=zip_path_prefix,
        max_files=cap,
    )
    return _finalize(store, manifest, chunks, outcomes)


def _auth_headers(url: str, github_token: Optional[str]) -> dict:
    if not github_token:
        return {}
    host = (httpx.URL(url).host or "").lower()
    if any(host == suffix or host.endswith(f".{suffix}") for suffix in _TOKEN_HOSTS):
        return {"Authorization": f"Bearer {github_token}"}
    return {}


async def fetch_archive(
    url: str,
    *,
    timeout: float,
    github_token: Optional[str] = None,
    async_client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """Download an archive; GitHub hosts receive the bearer token when one is set."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise InvalidInputError("zipUrl is not a valid URL") from exc
    if parsed.scheme not in {"http", "https"}:
        raise InvalidInputError("zipUrl must be an http(s) URL")

    headers = _auth_headers(url, github_token)
    client = async_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        response = await client.get(url, headers=headers)
    except httpx.RequestError as exc:
        default_metrics.record_upstream("archive", success=False)
        raise UpstreamUnreachableError("Failed to fetch ZIP: archive host unreachable") from exc
    finally:
        if async_client is None:
            await client.aclose()

    if response.status_code >= 400:
        default_metrics.record_upstream("archive", success=False)
        raise UpstreamHTTPError(
            f"Failed to fetch ZIP: HTTP {response.status_code}", status_code=response.status_code
        )
    default_metrics.record_upstream("archive", success=True)
    return response.content
