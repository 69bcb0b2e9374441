import threading

import pytest

from evm_mcp.config import EvmConfig
from evm_mcp.kb import service
from evm_mcp.tools.knowledge import kb_get, kb_search, kb_status, kb_sync_source, kb_update_all


@pytest.fixture
def docs_dir(tmp_path):
    root = tmp_path / "docs"
    root.mkdir()
    for index in range(12):
        (root / f"note{index:02d}.md").write_text(f"# Note {index}\nstaking rewards topic\n", encoding="utf-8")
    (root / "Vault.sol").write_text("contract Vault { function stake() external {} }\n", encoding="utf-8")
    return root


@pytest.mark.asyncio
async def test_sync_and_status(kb, docs_dir):
    result = await kb_sync_source(local_dir=str(docs_dir), source_id="docs", tags=["plasma"], kb=kb)
    assert result["ok"] is True
    assert result["source"]["id"] == "docs"
    assert result["source"]["fileCount"] == 13
    assert result["skipped"] == []

    status = await kb_status(kb=kb)
    assert status["sources"][0]["id"] == "docs"
    assert status["sources"][0]["chunkCount"] == 13
    assert status["sources"][0]["tags"] == ["plasma"]


@pytest.mark.asyncio
async def test_sync_errors_are_returned_inline(kb, tmp_path):
    missing = await kb_sync_source(local_dir=str(tmp_path / "missing"), kb=kb)
    assert missing["error"].startswith("Directory not found")
    assert (await kb_sync_source(kb=kb))["error"]
    bad_url = await kb_sync_source(zip_url="ftp://example.com/a.zip", kb=kb)
    assert bad_url == {"error": "zipUrl must be an http(s) URL"}


@pytest.mark.asyncio
async def test_search_defaults_and_clamps_top_k(kb, docs_dir):
    await kb_sync_source(local_dir=str(docs_dir), source_id="docs", kb=kb)
    config = EvmConfig(kb_root=kb.root, default_kb_results=10, max_kb_results=11)

    default = await kb_search("staking", kb=kb, config=config)
    assert default["total"] == 12
    assert len(default["results"]) == 10

    capped = await kb_search("staking", top_k=500, kb=kb, config=config)
    assert len(capped["results"]) == 11

    zero = await kb_search("staking", top_k=0, kb=kb, config=config)
    assert len(zero["results"]) == 10

    scoped = await kb_search("stake", path_prefix="Vault", kb=kb, config=config)
    assert [hit["path"] for hit in scoped["results"]] == ["Vault.sol"]


@pytest.mark.asyncio
async def test_search_validation(kb):
    assert await kb_search(None, kb=kb) == {"error": "query must be a string"}
    assert await kb_search("x", source_ids="docs", kb=kb) == {"error": "sourceIds must be a list of strings"}


@pytest.mark.asyncio
async def test_get_chunk_and_file(kb, docs_dir):
    await kb_sync_source(local_dir=str(docs_dir), source_id="docs", kb=kb)
    hit = (await kb_search("vault", kb=kb))["results"][0]

    chunk = await kb_get(chunk_id=hit["chunkId"], kb=kb)
    assert chunk["chunk"]["path"] == "Vault.sol"
    assert "contract Vault" in chunk["chunk"]["text"]

    file_result = await kb_get(source_id="docs", path="Vault.sol", include_text=False, kb=kb)
    assert file_result["file"]["path"] == "Vault.sol"
    assert "text" not in file_result["file"]

    assert await kb_get(chunk_id="nope", kb=kb) == {"error": "chunkId not found: nope"}
    assert await kb_get(source_id="docs", path="../secret.txt", kb=kb) == {"error": "file not found"}
    assert await kb_get(kb=kb) == {"error": "Provide chunkId or sourceId+path"}


@pytest.mark.asyncio
async def test_update_all_resyncs_changed_files(kb, docs_dir):
    await kb_sync_source(local_dir=str(docs_dir), source_id="docs", kb=kb)
    (docs_dir / "new.md").write_text("fresh validator notes\n", encoding="utf-8")

    result = await kb_update_all(kb=kb)
    assert result["results"][0]["id"] == "docs"
    assert result["results"][0]["ok"] is True
    assert (await kb_search("validator", kb=kb))["total"] == 1


@pytest.mark.asyncio
async def test_blank_query_is_an_empty_result(kb, docs_dir):
    await kb_sync_source(local_dir=str(docs_dir), source_id="docs", kb=kb)
    assert await kb_search("   ", kb=kb) == {"query": "   ", "total": 0, "results": []}


@pytest.mark.asyncio
async def test_store_work_runs_off_the_event_loop(kb, docs_dir, monkeypatch):
    loop_thread = threading.get_ident()
    seen = {}

    def recording(name, func):
        def wrapper(*args, **kwargs):
            seen[name] = threading.get_ident()
            return func(*args, **kwargs)

        return wrapper

    monkeypatch.setattr(service, "ingest_directory", recording("ingest", service.ingest_directory))
    for method in ("search", "get_chunk", "status"):
        monkeypatch.setattr(kb, method, recording(method, getattr(kb, method)))

    await kb_sync_source(local_dir=str(docs_dir), source_id="docs", kb=kb)
    hit = (await kb_search("vault", kb=kb))["results"][0]
    await kb_get(chunk_id=hit["chunkId"], kb=kb)
    await kb_status(kb=kb)

    assert set(seen) == {"ingest", "search", "get_chunk", "status"}
    assert loop_thread not in seen.values()
