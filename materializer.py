"""Persist a normalized manuscript as Book, Chapter and Tag rows."""

from __future__ import annotations

from typing import Optional

import structlog

from errors import InvalidRequest, ParseFailure, PersistenceFailure
from models import Book, Chapter, Manuscript, MaterializeOptions
from repositories import Repositories
from utils import new_id, normalize_tags

logger = structlog.get_logger("materializer")


class BookMaterializer:
    def __init__(self, repos: Repositories) -> None:
        self.repos = repos

    def materialize(self, manuscript: Manuscript, author_id: str, options: Optional[MaterializeOptions] = None) -> str:
        """Insert the book, its chapters and its tags; return the new book id.

        The three inserts share one store transaction: on any failure nothing
        is left behind and the caller gets ``PersistenceFailure`` with
        ``partial_state=False``.
        """
        options = options or MaterializeOptions()
        orders = [d.order for d in manuscript.chapters]
        if not orders:
            raise ParseFailure("manuscript has no chapters", detail={"title": manuscript.title})
        if len(set(orders)) != len(orders) or min(orders) < 1:
            raise InvalidRequest("chapter order values must be unique positive integers", detail={"orders": orders})

        has_audio = options.has_audio if options.has_audio is not None else manuscript.has_audio
        has_chat = options.has_chat_enabled if options.has_chat_enabled is not None else manuscript.has_chat_enabled
        tags = normalize_tags(options.tags if options.tags is not None else manuscript.tags)

        book = Book(
            id=new_id(),
            title=manuscript.title,
            author_id=author_id,
            description=manuscript.description,
            has_audio=bool(has_audio),
            has_chat_enabled=bool(has_chat),
            cover_url=None,
        )
        drafts = sorted(manuscript.chapters, key=lambda d: d.order)
        chapters = [
            Chapter(
                id=new_id(),
                book_id=book.id,
                title=d.title,
                content=d.content,
                order_index=d.order,
                chat_enabled=book.has_chat_enabled,
                exclusive_chat=False,
            )
            for d in drafts
        ]

        try:
            with self.repos.transaction():
                self.repos.books.create(book)
                self.repos.chapters.create_many(chapters)
                self.repos.tags.replace(book.id, tags)
        except PersistenceFailure as exc:
            logger.error("book_materialize_failed", author_id=author_id, title=manuscript.title, error=exc.message)
            raise PersistenceFailure(
                "Could not create the book from the manuscript",
                detail={"step": exc.detail.get("table"), "cause": exc.message},
                partial_state=False,
            ) from exc
        except Exception as exc:
            logger.error("book_materialize_failed", author_id=author_id, title=manuscript.title, error=str(exc))
            raise PersistenceFailure(
                "Could not create the book from the manuscript",
                detail={"step": None, "cause": str(exc)},
                partial_state=False,
            ) from exc

        logger.info(
            "book_materialized",
            book_id=book.id,
            author_id=author_id,
            chapters=len(chapters),
            tags=len(tags),
            format=manuscript.format,
        )
        return book.id
