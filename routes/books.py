# routes/books.py
# Book editing for authors and the reader-facing library view.

from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from deps import get_services
from models import BookCreateRequest, BookFilters, BookUpdate

router = APIRouter(prefix="/api/books", tags=["books"])
library_router = APIRouter(prefix="/api/library", tags=["library"])


@router.get("")
def list_books(
    author_id: Optional[str] = None,
    has_audio: Optional[bool] = None,
    has_chat_enabled: Optional[bool] = None,
    published: Optional[bool] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    services=Depends(get_services),
):
    filters = BookFilters(
        author_id=author_id,
        has_audio=has_audio,
        has_chat_enabled=has_chat_enabled,
        published=published,
        tag=tag,
        search=search,
    )
    if limit is None:
        limit = services.settings.default_page_size
    items = services.library.list_books(filters, limit=limit, offset=offset)
    return {"ok": True, "items": items, "limit": limit, "offset": offset}


@router.post("")
def create_book(req: BookCreateRequest, services=Depends(get_services)):
    return {"ok": True, "item": services.library.create_book(req)}


@router.get("/{book_id}")
def get_book(book_id: str, services=Depends(get_services)):
    return {"ok": True, "item": services.library.get_book(book_id)}


@router.patch("/{book_id}")
def update_book(book_id: str, changes: BookUpdate, services=Depends(get_services)):
    return {"ok": True, "item": services.library.update_book(book_id, changes)}


@router.delete("/{book_id}")
def delete_book(book_id: str, services=Depends(get_services)):
    services.library.delete_book(book_id)
    return {"ok": True, "deleted": book_id}


@router.post("/{book_id}/publish")
def publish_book(book_id: str, services=Depends(get_services)):
    return {"ok": True, "item": services.library.publish_book(book_id)}


@router.put("/{book_id}/cover")
def upload_cover(book_id: str, file: UploadFile = File(...), services=Depends(get_services)):
    data = file.file.read()
    item = services.library.set_cover(book_id, file.filename or "cover", data, file.content_type)
    return {"ok": True, "item": item}


@library_router.get("/books/{book_id}")
def read_book(book_id: str, services=Depends(get_services)):
    # Published books only, exclusive chapters without their text
    return {"ok": True, "item": services.library.get_book(book_id, reader_view=True)}
