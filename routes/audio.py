# routes/audio.py
# Voice listing and chapter narration.

from fastapi import APIRouter, Depends

from deps import get_services
from models import AudioRequest

router = APIRouter(prefix="/api/audio", tags=["audio"])


@router.get("/voices")
def list_voices(services=Depends(get_services)):
    return {"ok": True, "items": services.narration.list_voices()}


@router.post("/chapters/{chapter_id}")
def narrate_chapter(chapter_id: str, req: AudioRequest, services=Depends(get_services)):
    item = services.narration.generate_chapter_audio(chapter_id, req.voice_id, req.voice_settings)
    return {"ok": True, "item": item}
