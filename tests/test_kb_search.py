import pytest

from evm_mcp.kb.models import Chunk
from evm_mcp.kb.search import normalize_path_prefix, score_text, search_chunks, tokenize_query


def _chunk(cid, text, *, source="s", path="a.md", start=1):
    return Chunk(id=cid, source_id=source, path=path, start_line=start, end_line=start, ext=".md", text=text)


def test_tokenize_and_score():
    assert tokenize_query("  Foo   BAR ") == ["foo", "bar"]
    assert score_text("foo Foo FOO bar", ["foo"]) == 3
    assert score_text("aaaa", ["aa"]) == 2


def test_more_occurrences_rank_higher():
    chunks = [_chunk("once", "token here"), _chunk("thrice", "token token token")]
    total, hits = search_chunks(chunks, "token", top_k=10)
    assert total == 2
    assert [hit.chunk.id for hit in hits] == ["thrice", "once"]
    assert hits[0].score == 3


def test_ties_break_on_source_path_and_line():
    chunks = [
        _chunk("c", "x", source="b", path="a.md"),
        _chunk("b", "x", source="a", path="z.md", start=5),
        _chunk("a", "x", source="a", path="z.md", start=1),
    ]
    _, hits = search_chunks(chunks, "x", top_k=10)
    assert [hit.chunk.id for hit in hits] == ["a", "b", "c"]


def test_top_k_caps_results_but_total_counts_all():
    chunks = [_chunk(str(n), "match") for n in range(8)]
    total, hits = search_chunks(chunks, "match", top_k=5)
    assert total == 8
    assert len(hits) == 5


def test_path_prefix_and_blank_query():
    chunks = [_chunk("a", "word", path="docs/a.md"), _chunk("b", "word", path="src/b.sol")]
    _, hits = search_chunks(chunks, "word", top_k=10, path_prefix="./docs")
    assert [hit.chunk.id for hit in hits] == ["a"]
    assert search_chunks(chunks, "   ", top_k=10) == (0, [])
    assert normalize_path_prefix("docs\\\\sub") == "docs/sub"
    assert normalize_path_prefix("") is None


def test_snippet_is_truncated():
    _, hits = search_chunks([_chunk("a", "word " * 200)], "word", top_k=1, snippet_chars=400)
    assert len(hits[0].snippet) == 400
    assert set(hits[0].to_dict()) == {"score", "chunkId", "sourceId", "path", "startLine", "endLine", "snippet"}


def _code_file(marker_lines=()):
    lines = [f"uint256 v{n} = {n};" for n in range(1, 401)]
    for line_no in marker_lines:
        lines[line_no - 1] = "// uniquetoken marker"
    return "\n".join(lines) + "\n"


@pytest.mark.asyncio
async def test_three_file_directory_scenario(tmp_path, kb):
    root = tmp_path / "project"
    root.mkdir()
    (root / "a.md").write_text("\n".join(f"plain note {n}" for n in range(1, 11)), encoding="utf-8")
    (root / "b.sol").write_text(_code_file(marker_lines=(10, 200)), encoding="utf-8")
    (root / "c.sol").write_text(_code_file(), encoding="utf-8")

    report = await kb.sync_source(local_dir=str(root), source_id="project")
    assert report.manifest.file_count == 3

    chunks = list(kb.store.iter_chunks("project"))
    by_path = {}
    for chunk in chunks:
        by_path.setdefault(chunk.path, []).append((chunk.start_line, chunk.end_line))
    assert by_path["a.md"] == [(1, 10)]
    # 150-line windows stepping by 120 need four windows to cover 400 lines.
    expected_windows = [(1, 150), (121, 270), (241, 390), (361, 400)]
    assert by_path["b.sol"] == expected_windows
    assert by_path["c.sol"] == expected_windows

    result = kb.search("uniquetoken", top_k=10)
    assert result["total"] == 2
    assert {(hit["path"], hit["startLine"]) for hit in result["results"]} == {("b.sol", 1), ("b.sol", 121)}
