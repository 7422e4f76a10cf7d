from fastapi import APIRouter, Depends

from deps import get_services
from models import ReadingSessionRequest

router = APIRouter(prefix="/api/reading-sessions", tags=["reading-sessions"])


@router.get("")
def get_session(user_id: str, book_id: str, services=Depends(get_services)):
    return {"ok": True, "item": services.library.get_reading_session(user_id, book_id)}


@router.put("")
def save_session(req: ReadingSessionRequest, services=Depends(get_services)):
    return {"ok": True, "item": services.library.save_reading_session(req)}
