# library.py
# Book editor and reader operations over the typed repositories.

from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Optional

import structlog
from pydantic import ValidationError

from chat import NOTHING_TO_SYNTHESIZE, SynthesisEngine
from errors import ChatNotEnabled, InvalidChapterState, InvalidRequest, NotFound, NothingToSynthesize
from models import (
    Book,
    BookCreateRequest,
    BookDetail,
    BookFilters,
    Bookmark,
    BookmarkCreateRequest,
    BookUpdate,
    Chapter,
    ChapterCreateRequest,
    ChapterUpdate,
    ChatContext,
    ReadingSession,
    ReadingSessionRequest,
    User,
    UserUpsertRequest,
)
from repositories import Repositories
from stores import BlobStore, StorageBucket, StoreError
from utils import new_id, normalize_tags, now_ts

logger = structlog.get_logger("library")

UNKNOWN_AUTHOR = "the author"

# Fields a PATCH may explicitly set to null
NULLABLE_BOOK_FIELDS = {"cover_url", "rating", "chat_persona"}
NULLABLE_CHAPTER_FIELDS = {"audio_url"}
EXCLUSIVE_REQUIRES_CHAT = "exclusive chat requires chat to be enabled"


def _reject_nulls(data: dict, nullable: set, what: str) -> None:
    nulls = sorted(k for k, v in data.items() if v is None and k not in nullable)
    if nulls:
        raise InvalidRequest(f"{what} fields cannot be null", detail={"fields": nulls})


class LibraryService:
    def __init__(self, repos: Repositories, blobs: BlobStore, synthesis: SynthesisEngine, max_page_size: int = 100) -> None:
        self.repos = repos
        self.blobs = blobs
        self.synthesis = synthesis
        self.max_page_size = max_page_size

    # ----------------------------
    # Books
    # ----------------------------

    def _detail(self, book: Book, reader_view: bool = False) -> BookDetail:
        chapters = self.repos.chapters.for_book(book.id)
        if reader_view:
            # exclusive chapters are only revealed through chat
            chapters = [c.model_copy(update={"content": ""}) if c.exclusive_chat else c for c in chapters]
        return BookDetail(**book.model_dump(), chapters=chapters, tags=self.repos.tags.tags_for(book.id))

    def get_book(self, book_id: str, reader_view: bool = False) -> BookDetail:
        book = self.repos.books.require(book_id)
        if reader_view and book.published_at is None:
            raise NotFound("book not found", detail={"id": book_id})
        return self._detail(book, reader_view=reader_view)

    def list_books(self, filters: Optional[BookFilters] = None, limit: int = 20, offset: int = 0) -> List[BookDetail]:
        f = filters or BookFilters()
        if limit < 0 or offset < 0:
            raise InvalidRequest("limit and offset must be >= 0", detail={"limit": limit, "offset": offset})
        limit = min(limit, self.max_page_size)

        where = {}
        if f.author_id is not None:
            where["author_id"] = f.author_id
        if f.has_audio is not None:
            where["has_audio"] = f.has_audio
        if f.has_chat_enabled is not None:
            where["has_chat_enabled"] = f.has_chat_enabled
        books = self.repos.books.find(where, order_by="created_at", descending=True)

        if f.published is not None:
            books = [b for b in books if (b.published_at is not None) == f.published]
        if f.tag:
            tagged = set(self.repos.tags.book_ids_for(f.tag))
            books = [b for b in books if b.id in tagged]
        if f.search:
            needle = f.search.strip().lower()
            books = [b for b in books if needle in b.title.lower() or needle in (b.description or "").lower()]

        return [self._detail(b) for b in books[offset:offset + limit]]

    def create_book(self, req: BookCreateRequest) -> BookDetail:
        book = Book(
            id=new_id(),
            title=req.title,
            author_id=req.author_id,
            description=req.description,
            cover_url=req.cover_url,
            has_audio=req.has_audio,
            has_chat_enabled=req.has_chat_enabled,
            chat_persona=req.chat_persona,
        )
        with self.repos.transaction():
            self.repos.books.create(book)
            self.repos.tags.replace(book.id, normalize_tags(req.tags))
        logger.info("book_created", book_id=book.id, author_id=book.author_id)
        return self._detail(book)

    def update_book(self, book_id: str, changes: BookUpdate) -> BookDetail:
        book = self.repos.books.require(book_id)
        data = changes.model_dump(exclude_unset=True)
        _reject_nulls(data, NULLABLE_BOOK_FIELDS, "book")
        tags = data.pop("tags", None)
        try:
            updated = Book.model_validate({**book.model_dump(), **data, "updated_at": now_ts()})
        except ValidationError as exc:
            raise InvalidRequest("invalid book update", detail={"book_id": book_id}) from exc
        with self.repos.transaction():
            updated = self.repos.books.save(updated)
            if tags is not None:
                self.repos.tags.replace(book_id, normalize_tags(tags))
        logger.info("book_updated", book_id=book_id, fields=sorted(data) + (["tags"] if tags is not None else []))
        return self._detail(updated)

    def publish_book(self, book_id: str) -> BookDetail:
        """Mark a book published. Publishing twice keeps the first timestamp."""
        book = self.repos.books.require(book_id)
        if book.published_at is None:
            book.published_at = now_ts()
            book.updated_at = book.published_at
            book = self.repos.books.save(book)
            logger.info("book_published", book_id=book_id)
        return self._detail(book)

    def delete_book(self, book_id: str) -> None:
        """Delete a book with its chapters, tags and reading sessions.

        Bookmarks and chat messages reference chapters by id and are left in
        place as orphans.
        """
        self.repos.books.require(book_id)
        with self.repos.transaction():
            chapters = self.repos.chapters.delete_where({"book_id": book_id})
            self.repos.tags.delete_where({"book_id": book_id})
            self.repos.sessions.delete_where({"book_id": book_id})
            self.repos.books.delete(book_id)
        logger.info("book_deleted", book_id=book_id, chapters=chapters)

    def set_cover(self, book_id: str, filename: str, data: bytes, content_type: Optional[str] = None) -> BookDetail:
        book = self.repos.books.require(book_id)
        name = PurePosixPath((filename or "cover").replace("\\", "/")).name or "cover"
        try:
            url = self.blobs.put(StorageBucket.covers, f"{book_id}/{name}", data, content_type)
        except StoreError as exc:
            raise InvalidRequest(str(exc), detail={"filename": filename}) from exc
        book.cover_url = url
        book.updated_at = now_ts()
        return self._detail(self.repos.books.save(book))

    # ----------------------------
    # Chapters
    # ----------------------------

    def list_chapters(self, book_id: str) -> List[Chapter]:
        self.repos.books.require(book_id)
        return self.repos.chapters.for_book(book_id)

    def get_chapter(self, chapter_id: str) -> Chapter:
        return self.repos.chapters.require(chapter_id)

    def add_chapter(self, req: ChapterCreateRequest) -> Chapter:
        self.repos.books.require(req.book_id)
        existing = self.repos.chapters.for_book(req.book_id)
        next_index = (max(c.order_index for c in existing) + 1) if existing else 1
        if req.exclusive_chat and not req.chat_enabled:
            raise InvalidChapterState(EXCLUSIVE_REQUIRES_CHAT, detail={"book_id": req.book_id})
        chapter = Chapter(
            id=new_id(),
            book_id=req.book_id,
            title=req.title,
            content=req.content,
            chat_enabled=req.chat_enabled,
            exclusive_chat=req.exclusive_chat,
            order_index=next_index,
        )
        self.repos.chapters.create(chapter)
        logger.info("chapter_added", book_id=req.book_id, chapter_id=chapter.id, order_index=next_index)
        return chapter

    def update_chapter(self, chapter_id: str, changes: ChapterUpdate) -> Chapter:
        chapter = self.repos.chapters.require(chapter_id)
        data = changes.model_dump(exclude_unset=True)
        _reject_nulls(data, NULLABLE_CHAPTER_FIELDS, "chapter")
        # switching chat off also withdraws exclusivity unless both are set explicitly
        if data.get("chat_enabled") is False and "exclusive_chat" not in data:
            data["exclusive_chat"] = False
        merged = {**chapter.model_dump(), **data, "updated_at": now_ts()}
        if merged["exclusive_chat"] and not merged["chat_enabled"]:
            raise InvalidChapterState(EXCLUSIVE_REQUIRES_CHAT, detail={"chapter_id": chapter_id})
        try:
            updated = Chapter.model_validate(merged)
        except ValidationError as exc:
            raise InvalidRequest("invalid chapter update", detail={"chapter_id": chapter_id}) from exc
        updated = self.repos.chapters.save(updated)
        logger.info("chapter_updated", chapter_id=chapter_id, fields=sorted(data))
        return updated

    def delete_chapter(self, chapter_id: str) -> None:
        chapter = self.repos.chapters.require(chapter_id)
        with self.repos.transaction():
            self.repos.chapters.delete(chapter_id)
            self._densify(chapter.book_id)
        logger.info("chapter_deleted", book_id=chapter.book_id, chapter_id=chapter_id)

    def reorder_chapters(self, book_id: str, chapter_ids: List[str]) -> List[Chapter]:
        current = self.list_chapters(book_id)
        if sorted(chapter_ids) != sorted(c.id for c in current) or len(set(chapter_ids)) != len(chapter_ids):
            raise InvalidRequest(
                "chapter_ids must list every chapter of the book exactly once",
                detail={"book_id": book_id},
            )
        by_id = {c.id: c for c in current}
        with self.repos.transaction():
            for idx, cid in enumerate(chapter_ids, start=1):
                ch = by_id[cid]
                if ch.order_index != idx:
                    ch.order_index = idx
                    ch.updated_at = now_ts()
                    self.repos.chapters.save(ch)
        logger.info("chapters_reordered", book_id=book_id, count=len(chapter_ids))
        return self.repos.chapters.for_book(book_id)

    def _densify(self, book_id: str) -> None:
        for idx, ch in enumerate(self.repos.chapters.for_book(book_id), start=1):
            if ch.order_index != idx:
                ch.order_index = idx
                self.repos.chapters.save(ch)

    # ----------------------------
    # Chat integration
    # ----------------------------

    def build_chat_context(self, chapter_id: str) -> ChatContext:
        """Resolve what the conversation engine needs to know about a chapter."""
        chapter = self.repos.chapters.require(chapter_id)
        if not chapter.chat_enabled:
            raise ChatNotEnabled("chat is not enabled for this chapter", detail={"chapter_id": chapter_id})
        book = self.repos.books.require(chapter.book_id)
        author = self.repos.users.get(book.author_id)
        return ChatContext(
            chapter_id=chapter.id,
            chapter_title=chapter.title,
            chapter_content=chapter.content,
            book_title=book.title,
            author_name=author.name if author else UNKNOWN_AUTHOR,
            persona=book.chat_persona,
        )

    def merge_synthesis(self, chapter_id: str, user_id: str) -> Chapter:
        """Append the synthesized conversation to the chapter text.

        This is the only path by which chat output reaches chapter content.
        """
        chapter = self.repos.chapters.require(chapter_id)
        document = self.synthesis.synthesize(user_id, chapter_id)
        if document == NOTHING_TO_SYNTHESIZE:
            raise NothingToSynthesize(NOTHING_TO_SYNTHESIZE, detail={"chapter_id": chapter_id, "user_id": user_id})
        body = chapter.content.rstrip("\n")
        chapter.content = f"{body}\n\n{document}\n" if body else f"{document}\n"
        chapter.updated_at = now_ts()
        chapter = self.repos.chapters.save(chapter)
        logger.info("synthesis_merged", chapter_id=chapter_id, user_id=user_id)
        return chapter

    # ----------------------------
    # Bookmarks
    # ----------------------------

    def add_bookmark(self, req: BookmarkCreateRequest) -> Bookmark:
        self.repos.chapters.require(req.chapter_id)
        if req.position < 0:
            raise InvalidRequest("position must be >= 0", detail={"position": req.position})
        if req.type in ("text", "chat") and req.position != int(req.position):
            raise InvalidRequest(
                f"{req.type} bookmarks need a whole-number position",
                detail={"position": req.position},
            )
        bookmark = Bookmark(id=new_id(), **req.model_dump())
        return self.repos.bookmarks.create(bookmark)

    def list_bookmarks(self, user_id: str, chapter_id: Optional[str] = None) -> List[Bookmark]:
        where = {"user_id": user_id}
        if chapter_id:
            where["chapter_id"] = chapter_id
        return self.repos.bookmarks.find(where, order_by="created_at")

    def delete_bookmark(self, bookmark_id: str, user_id: str) -> None:
        bookmark = self.repos.bookmarks.require(bookmark_id)
        if bookmark.user_id != user_id:
            raise NotFound("bookmark not found", detail={"id": bookmark_id})
        self.repos.bookmarks.delete(bookmark_id)

    # ----------------------------
    # Reading sessions
    # ----------------------------

    def save_reading_session(self, req: ReadingSessionRequest) -> ReadingSession:
        self.repos.books.require(req.book_id)
        existing = self.repos.sessions.find({"user_id": req.user_id, "book_id": req.book_id})
        if existing:
            session = existing[0].model_copy(
                update={
                    "current_chapter": req.current_chapter,
                    "mode": req.mode,
                    "position": req.position,
                    "last_accessed": now_ts(),
                }
            )
            return self.repos.sessions.save(session)
        session = ReadingSession(id=new_id(), **req.model_dump())
        return self.repos.sessions.create(session)

    def get_reading_session(self, user_id: str, book_id: str) -> ReadingSession:
        found = self.repos.sessions.find({"user_id": user_id, "book_id": book_id})
        if not found:
            raise NotFound("no reading session", detail={"user_id": user_id, "book_id": book_id})
        return found[0]

    # ----------------------------
    # Users
    # ----------------------------

    def upsert_user(self, req: UserUpsertRequest) -> User:
        data = req.model_dump(exclude={"id"})
        existing = self.repos.users.get(req.id) if req.id else None
        if existing:
            return self.repos.users.save(existing.model_copy(update={**data, "updated_at": now_ts()}))
        return self.repos.users.create(User(id=req.id or new_id(), **data))

    def get_user(self, user_id: str) -> User:
        return self.repos.users.require(user_id)
