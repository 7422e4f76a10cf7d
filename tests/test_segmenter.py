import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from errors import ParseFailure, UnsupportedType  # noqa: E402
from format_parsers import get_parser, list_formats  # noqa: E402
from ingest import segment  # noqa: E402


def test_builtin_parsers_registered():
    assert list_formats() == ["docx", "epub", "markdown", "plaintext"]
    with pytest.raises(UnsupportedType):
        get_parser("pdf")


def test_markdown_title_and_chapters():
    m = segment("markdown", "# My Book\n## Ch1\nHello\n## Ch2\nWorld\n", "ignored.md")

    assert m.title == "My Book"
    assert m.format == "markdown"
    assert [(c.title, c.content, c.order) for c in m.chapters] == [
        ("Ch1", "Hello\n", 1),
        ("Ch2", "World\n", 2),
    ]


def test_chapter_bodies_reproduce_text_minus_headings():
    text = "# T\n\nintro words\n## One\nline a\n\nline b\n## Two\n### sub\nline c\n## Three\n"
    m = segment("markdown", text, "x.md")

    assert [c.order for c in m.chapters] == [1, 2, 3]
    assert [c.title for c in m.chapters] == ["One", "Two", "Three"]
    assert "".join(c.content for c in m.chapters) == "line a\n\nline b\n### sub\nline c\n"
    assert m.chapters[2].content == ""
    assert m.chapters[2].word_count == 0


def test_no_chapter_headings_gives_single_chapter_verbatim():
    text = "Just some prose.\nOn two lines."
    m = segment("markdown", text, "notes.md")

    assert len(m.chapters) == 1
    assert m.chapters[0].title == "Chapter 1"
    assert m.chapters[0].content == text
    assert m.chapters[0].order == 1
    assert m.title == "notes"


def test_title_falls_back_to_filename_without_extension():
    m = segment("markdown", "## Only\nbody\n", "drafts/The Long Road.md")
    assert m.title == "The Long Road"


def test_heading_markers_need_the_space():
    m = segment("markdown", "##NoSpace\n#Nope\ntext\n", "a.md")
    assert len(m.chapters) == 1
    assert m.chapters[0].title == "Chapter 1"


def test_word_counts():
    m = segment("markdown", "# B\n## A\none two three\n## C\nfour\n", "a.md")
    assert [c.word_count for c in m.chapters] == [3, 1]
    # document count includes headings
    assert m.word_count == 10


def test_plaintext_uses_markdown_rules():
    m = segment("plaintext", "## Part\ntext here\n", "story.txt")
    assert m.format == "markdown"
    assert m.description == "Imported from text file"
    assert m.chapters[0].title == "Part"


def test_crlf_terminators_are_kept():
    m = segment("markdown", "## A\r\nx\r\n## B\r\ny", "a.md")
    assert [c.title for c in m.chapters] == ["A", "B"]
    assert m.chapters[0].content == "x\r\n"
    assert m.chapters[1].content == "y"


def test_only_newline_ends_a_line():
    # a page break or other unicode line separator inside a body is not a line start
    text = "## Real\nbody\x0c## not a heading\nmore\u2028## nor this\n"
    m = segment("plaintext", text, "a.txt")
    assert [c.title for c in m.chapters] == ["Real"]
    assert m.chapters[0].content == "body\x0c## not a heading\nmore\u2028## nor this\n"


def test_empty_input_is_a_parse_failure():
    with pytest.raises(ParseFailure):
        segment("markdown", "   \n\n", "empty.md")


def test_invalid_utf8_is_a_parse_failure():
    with pytest.raises(ParseFailure):
        segment("markdown", b"\xff\xfe## bad", "bad.md")


def test_bom_is_stripped():
    m = segment("markdown", b"\xef\xbb\xbf# Title\n## A\nx\n", "a.md")
    assert m.title == "Title"


@pytest.mark.parametrize("fmt,desc", [("epub", "Imported from EPUB file"), ("docx", "Imported from Word document")])
def test_placeholder_parsers_return_two_chapters(fmt, desc):
    m = segment(fmt, b"PK\x03\x04binary", f"My Novel.{fmt}")
    assert m.title == "My Novel"
    assert m.format == fmt
    assert m.description == desc
    assert [c.order for c in m.chapters] == [1, 2]
    assert get_parser(fmt).placeholder is True
