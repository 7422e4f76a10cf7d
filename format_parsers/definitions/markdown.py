"""Markdown and plain-text manuscripts, split on level-2 headings."""
from __future__ import annotations

import codecs
import re
from typing import List, Optional, Tuple

import structlog

from errors import ParseFailure
from format_parsers.core import FormatParser, register_parser
from models import ChapterDraft, Manuscript
from utils import strip_extension, word_count

logger = structlog.get_logger("format_parsers.markdown")

TITLE_MARKER = "# "
CHAPTER_MARKER = "## "
FALLBACK_CHAPTER_TITLE = "Chapter 1"


def decode_text(raw: bytes) -> str:
    if raw.startswith(codecs.BOM_UTF8):
        raw = raw[len(codecs.BOM_UTF8):]
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseFailure(
            "manuscript is not valid UTF-8 text",
            detail={"position": exc.start},
        ) from exc


def split_lines(text: str) -> List[str]:
    r"""Lines with their terminators. Only "\n" ends a line; "\r" stays on it."""
    return [line for line in re.split(r"(?<=\n)", text) if line]


def find_title(lines: List[str]) -> Optional[str]:
    """Text of the first level-1 heading line, if any."""
    for line in lines:
        if line.startswith(TITLE_MARKER):
            return line[len(TITLE_MARKER):].strip()
    return None


def split_chapters(lines: List[str]) -> Tuple[List[Tuple[str, str]], str]:
    """Split keepends lines into (heading, body) pairs plus the front matter.

    Each ``## `` line opens a chapter; its body is every following line up to
    the next ``## `` line, terminators kept, so concatenating the bodies gives
    back the text minus heading lines and front matter.
    """
    chapters: List[Tuple[str, List[str]]] = []
    front: List[str] = []
    for line in lines:
        if line.startswith(CHAPTER_MARKER):
            chapters.append((line[len(CHAPTER_MARKER):].strip(), []))
        elif chapters:
            chapters[-1][1].append(line)
        else:
            front.append(line)
    return [(title, "".join(body)) for title, body in chapters], "".join(front)


class MarkdownParser(FormatParser):
    def __init__(self, fmt: str = "markdown", description: str = "Imported from Markdown file"):
        self.format = fmt  # type: ignore[assignment]
        self.description = description

    def parse(self, raw: bytes, filename: str) -> Manuscript:
        text = decode_text(raw)
        if not text.strip():
            raise ParseFailure("manuscript is empty", detail={"filename": filename})

        lines = split_lines(text)
        title = find_title(lines) or strip_extension(filename) or "Untitled"
        sections, front_matter = split_chapters(lines)
        total_words = word_count(text)

        if sections:
            if front_matter.strip():
                # text before the first chapter heading is not kept in any chapter
                logger.warning(
                    "front_matter_dropped",
                    filename=filename,
                    words=word_count(front_matter),
                )
            drafts = [
                ChapterDraft(title=heading, content=body, word_count=word_count(body), order=i)
                for i, (heading, body) in enumerate(sections, start=1)
            ]
        else:
            drafts = [ChapterDraft(title=FALLBACK_CHAPTER_TITLE, content=text, word_count=total_words, order=1)]

        return Manuscript(
            title=title,
            author="Unknown Author",
            description=self.description,
            word_count=total_words,
            format="markdown",
            chapters=drafts,
        )


register_parser(MarkdownParser())
register_parser(MarkdownParser("plaintext", "Imported from text file"))
