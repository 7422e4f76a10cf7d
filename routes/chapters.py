from fastapi import APIRouter, Depends

from deps import get_services
from models import ChapterCreateRequest, ChapterUpdate, ReorderRequest

router = APIRouter(prefix="/api/chapters", tags=["chapters"])


@router.get("")
def list_chapters(book_id: str, services=Depends(get_services)):
    return {"ok": True, "items": services.library.list_chapters(book_id)}


@router.post("")
def add_chapter(req: ChapterCreateRequest, services=Depends(get_services)):
    return {"ok": True, "item": services.library.add_chapter(req)}


@router.post("/reorder")
def reorder_chapters(req: ReorderRequest, services=Depends(get_services)):
    items = services.library.reorder_chapters(req.book_id, req.chapter_ids)
    return {"ok": True, "items": items}


@router.get("/{chapter_id}")
def get_chapter(chapter_id: str, services=Depends(get_services)):
    return {"ok": True, "item": services.library.get_chapter(chapter_id)}


@router.patch("/{chapter_id}")
def update_chapter(chapter_id: str, changes: ChapterUpdate, services=Depends(get_services)):
    return {"ok": True, "item": services.library.update_chapter(chapter_id, changes)}


@router.delete("/{chapter_id}")
def delete_chapter(chapter_id: str, services=Depends(get_services)):
    services.library.delete_chapter(chapter_id)
    return {"ok": True, "deleted": chapter_id}
