"""Typed access to the record store.

Each repository owns one table and converts raw rows to pydantic records on
read, so a malformed row fails loudly at the store boundary instead of deep in
a service. Store-level errors are re-raised as ``PersistenceFailure``.
"""

from __future__ import annotations

from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from errors import NotFound, PersistenceFailure
from models import Book, Bookmark, Chapter, ChatMessage, ReadingSession, Tag, User
from stores import RecordStore, StoreError
from utils import new_id

logger = structlog.get_logger("repositories")

T = TypeVar("T", bound=BaseModel)


class Repository(Generic[T]):
    table: str = ""
    model: Type[T]

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    # --- mapping

    def _to_record(self, row: Mapping[str, Any]) -> T:
        try:
            return self.model.model_validate(row)
        except ValidationError as exc:
            logger.error("row_shape_invalid", table=self.table, row_id=row.get("id"), errors=exc.errors())
            raise PersistenceFailure(
                f"stored {self.table} row has an invalid shape",
                detail={"table": self.table, "id": row.get("id")},
            ) from exc

    def _wrap(self, exc: StoreError, op: str) -> PersistenceFailure:
        logger.error("store_operation_failed", table=self.table, op=op, error=str(exc))
        return PersistenceFailure(f"{op} on {self.table} failed: {exc}", detail={"table": self.table, "op": op})

    # --- reads

    def get(self, row_id: str) -> Optional[T]:
        row = self.store.get(self.table, row_id)
        return self._to_record(row) if row is not None else None

    def require(self, row_id: str) -> T:
        record = self.get(row_id)
        if record is None:
            raise NotFound(f"{self.model.__name__.lower()} not found", detail={"id": row_id})
        return record

    def find(
        self,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[T]:
        rows = self.store.select(
            self.table, where=where, order_by=order_by, descending=descending, offset=offset, limit=limit
        )
        return [self._to_record(r) for r in rows]

    # --- writes

    def create(self, record: T) -> T:
        try:
            self.store.insert(self.table, record.model_dump())
        except StoreError as exc:
            raise self._wrap(exc, "insert") from exc
        return record

    def create_many(self, records: List[T]) -> List[T]:
        if not records:
            return []
        try:
            self.store.insert_many(self.table, [r.model_dump() for r in records])
        except StoreError as exc:
            raise self._wrap(exc, "insert_many") from exc
        return records

    def save(self, record: T) -> T:
        """Write every field of an already-validated record."""
        try:
            row = self.store.update(self.table, record.id, record.model_dump())  # type: ignore[attr-defined]
        except StoreError as exc:
            raise self._wrap(exc, "update") from exc
        return self._to_record(row)

    def delete(self, row_id: str) -> None:
        try:
            self.store.delete(self.table, row_id)
        except StoreError as exc:
            raise self._wrap(exc, "delete") from exc

    def delete_where(self, where: Mapping[str, Any]) -> int:
        try:
            return self.store.delete_where(self.table, where)
        except StoreError as exc:
            raise self._wrap(exc, "delete_where") from exc


class UserRepository(Repository[User]):
    table = "users"
    model = User


class BookRepository(Repository[Book]):
    table = "books"
    model = Book


class ChapterRepository(Repository[Chapter]):
    table = "chapters"
    model = Chapter

    def for_book(self, book_id: str) -> List[Chapter]:
        return self.find({"book_id": book_id}, order_by="order_index")


class TagRepository(Repository[Tag]):
    table = "book_tags"
    model = Tag

    def tags_for(self, book_id: str) -> List[str]:
        return sorted(t.tag for t in self.find({"book_id": book_id}))

    def book_ids_for(self, tag: str) -> List[str]:
        return [t.book_id for t in self.find({"tag": tag.strip().lower()})]

    def replace(self, book_id: str, tags: List[str]) -> List[str]:
        self.delete_where({"book_id": book_id})
        self.create_many([Tag(id=new_id(), book_id=book_id, tag=t) for t in tags])
        return sorted(tags)


class ChatMessageRepository(Repository[ChatMessage]):
    table = "chat_messages"
    model = ChatMessage

    def conversation(self, user_id: str, chapter_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        msgs = self.find({"user_id": user_id, "chapter_id": chapter_id}, order_by="timestamp")
        if limit and len(msgs) > limit:
            msgs = msgs[-limit:]
        return msgs


class BookmarkRepository(Repository[Bookmark]):
    table = "bookmarks"
    model = Bookmark


class ReadingSessionRepository(Repository[ReadingSession]):
    table = "reading_sessions"
    model = ReadingSession


class Repositories:
    """One repository per table, all sharing the same store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.users = UserRepository(store)
        self.books = BookRepository(store)
        self.chapters = ChapterRepository(store)
        self.tags = TagRepository(store)
        self.messages = ChatMessageRepository(store)
        self.bookmarks = BookmarkRepository(store)
        self.sessions = ReadingSessionRepository(store)

    def transaction(self):
        return self.store.transaction()
