# routes/manuscripts.py
# Manuscript upload and conversion of a reviewed manuscript into a book.

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from deps import get_services
from models import ManuscriptOverrides, MaterializeRequest, UploadDescriptor

router = APIRouter(prefix="/api/manuscripts", tags=["manuscripts"])


def _split_tags(raw: Optional[str]):
    if raw is None:
        return None
    return [t for t in raw.split(",") if t.strip()]


@router.post("")
def upload_manuscript(
    file: UploadFile = File(...),
    author_id: str = Form(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),  # comma separated
    has_audio: Optional[bool] = Form(None),
    has_chat_enabled: Optional[bool] = Form(None),
    services=Depends(get_services),
):
    upload = UploadDescriptor(
        filename=file.filename or "manuscript",
        content_type=file.content_type or "",
        size=getattr(file, "size", None),
    )
    overrides = ManuscriptOverrides(
        title=title,
        description=description,
        tags=_split_tags(tags),
        has_audio=has_audio,
        has_chat_enabled=has_chat_enabled,
    )
    result = services.manuscripts.upload(upload, file.file, author_id, overrides)
    return {"ok": True, "item": result}


@router.post("/materialize")
def materialize(req: MaterializeRequest, services=Depends(get_services)):
    book_id = services.materializer.materialize(req.manuscript, req.author_id, req.options)
    return {"ok": True, "book_id": book_id}
