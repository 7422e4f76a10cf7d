from typing import Optional

from fastapi import APIRouter, Depends

from deps import get_services
from models import BookmarkCreateRequest

router = APIRouter(prefix="/api/bookmarks", tags=["bookmarks"])


@router.get("")
def list_bookmarks(user_id: str, chapter_id: Optional[str] = None, services=Depends(get_services)):
    return {"ok": True, "items": services.library.list_bookmarks(user_id, chapter_id)}


@router.post("")
def add_bookmark(req: BookmarkCreateRequest, services=Depends(get_services)):
    return {"ok": True, "item": services.library.add_bookmark(req)}


@router.delete("/{bookmark_id}")
def delete_bookmark(bookmark_id: str, user_id: str, services=Depends(get_services)):
    services.library.delete_bookmark(bookmark_id, user_id)
    return {"ok": True, "deleted": bookmark_id}
