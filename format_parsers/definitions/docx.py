"""Placeholder DOCX parser; same contract as the EPUB placeholder."""
import structlog

from format_parsers.core import FormatParser, register_parser
from models import ChapterDraft, Manuscript
from utils import strip_extension

logger = structlog.get_logger("format_parsers.docx")


class PlaceholderDocxParser(FormatParser):
    format = "docx"
    placeholder = True

    def parse(self, raw: bytes, filename: str) -> Manuscript:
        logger.warning("placeholder_parser_used", format=self.format, filename=filename, size=len(raw))
        return Manuscript(
            title=strip_extension(filename) or "Untitled",
            author="Unknown Author",
            description="Imported from Word document",
            word_count=45000,  # estimated
            format="docx",
            chapters=[
                ChapterDraft(title="Chapter 1", content="Content extracted from DOCX...", word_count=2250, order=1),
                ChapterDraft(title="Chapter 2", content="Content extracted from DOCX...", word_count=2250, order=2),
            ],
        )


register_parser(PlaceholderDocxParser())
