"""Placeholder EPUB parser.

Returns the manuscript shape without opening the container. A real parser
(OPF spine + XHTML chapters) only has to register itself for "epub".
"""
import structlog

from format_parsers.core import FormatParser, register_parser
from models import ChapterDraft, Manuscript
from utils import strip_extension

logger = structlog.get_logger("format_parsers.epub")


class PlaceholderEpubParser(FormatParser):
    format = "epub"
    placeholder = True

    def parse(self, raw: bytes, filename: str) -> Manuscript:
        logger.warning("placeholder_parser_used", format=self.format, filename=filename, size=len(raw))
        return Manuscript(
            title=strip_extension(filename) or "Untitled",
            author="Unknown Author",
            description="Imported from EPUB file",
            word_count=50000,  # estimated
            format="epub",
            chapters=[
                ChapterDraft(title="Chapter 1", content="Content extracted from EPUB...", word_count=2500, order=1),
                ChapterDraft(title="Chapter 2", content="Content extracted from EPUB...", word_count=2500, order=2),
            ],
        )


register_parser(PlaceholderEpubParser())
