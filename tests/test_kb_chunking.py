import pytest

from evm_mcp.kb.chunking import (
    OVERLAP_LINES,
    WINDOW_LINES,
    chunk_text,
    fingerprint,
    heading_segments,
    split_lines,
    window_segments,
)


def _numbered(count):
    return [f"line {n}" for n in range(1, count + 1)]


def test_split_lines_handles_newline_styles_and_trailing_newline():
    assert split_lines("") == []
    assert split_lines("a\nb\n") == ["a", "b"]
    assert split_lines("a\r\nb\rc") == ["a", "b", "c"]
    assert split_lines("a\n\n") == ["a", ""]


@pytest.mark.parametrize("count", [1, 29, 149, 150, 151, 270, 400, 1000])
def test_windows_cover_every_line(count):
    lines = _numbered(count)
    segments = window_segments(lines)
    assert segments[0].start_line == 1
    assert segments[-1].end_line == count
    covered = set()
    for previous, current in zip(segments, segments[1:]):
        assert current.start_line <= previous.end_line + 1
        assert current.start_line - previous.start_line == WINDOW_LINES - OVERLAP_LINES
    for segment in segments:
        assert segment.start_line <= segment.end_line
        assert segment.end_line - segment.start_line + 1 <= WINDOW_LINES
        assert segment.text == "\n".join(lines[segment.start_line - 1 : segment.end_line])
        covered.update(range(segment.start_line, segment.end_line + 1))
    assert covered == set(range(1, count + 1))


def test_window_ranges_for_400_lines():
    segments = window_segments(_numbered(400))
    assert [(s.start_line, s.end_line) for s in segments] == [
        (1, 150),
        (121, 270),
        (241, 390),
        (361, 400),
    ]


def test_short_file_is_a_single_window():
    segments = window_segments(_numbered(10))
    assert len(segments) == 1
    assert (segments[0].start_line, segments[0].end_line) == (1, 10)


def test_window_rejects_bad_overlap():
    with pytest.raises(ValueError):
        window_segments(_numbered(5), window=10, overlap=10)


def test_heading_segments_are_gapless():
    text = "intro\n\n# Title\nbody\n## Section\nmore\n\n### Deep\nend\n"
    lines = split_lines(text)
    segments = heading_segments(lines)
    assert [(s.start_line, s.end_line) for s in segments] == [(1, 2), (3, 4), (5, 7), (8, 9)]
    assert "\n".join(s.text for s in segments) == "\n".join(lines)


def test_heading_on_first_line_does_not_split():
    segments = heading_segments(split_lines("# Title\ntext\n## Next\nmore"))
    assert [(s.start_line, s.end_line) for s in segments] == [(1, 2), (3, 4)]


def test_level_four_heading_and_hash_without_space_are_not_split_points():
    assert heading_segments(split_lines("#### deep\n#tag\ntext")) == []


def test_markdown_without_headings_falls_back_to_windows():
    text = "\n".join(_numbered(10))
    segments = chunk_text(text, ".md")
    assert [(s.start_line, s.end_line) for s in segments] == [(1, 10)]


def test_code_files_ignore_headings():
    text = "# not a heading in solidity\n" + "\n".join(_numbered(5))
    segments = chunk_text(text, ".sol")
    assert len(segments) == 1


def test_empty_text_has_no_chunks():
    assert chunk_text("", ".md") == []


def test_fingerprint_is_stable_and_sensitive():
    base = fingerprint("src", "a.md", 1, 3, "hello")
    assert base == fingerprint("src", "a.md", 1, 3, "hello")
    assert len(base) == 32
    assert base != fingerprint("src", "a.md", 1, 3, "hellO")
    assert base != fingerprint("src", "b.md", 1, 3, "hello")
    assert base != fingerprint("other", "a.md", 1, 3, "hello")
    assert base != fingerprint("src", "a.md", 2, 3, "hello")
