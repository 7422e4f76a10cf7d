# routes/chat.py
# Chat with the author avatar about one chapter, and synthesis of that chat.

from typing import Optional

from fastapi import APIRouter, Depends, Query

from deps import get_services
from models import ChatRequest, ChatResponse, MergeSynthesisRequest

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("", response_model=ChatResponse)
def chat(req: ChatRequest, services=Depends(get_services)):
    context = services.library.build_chat_context(req.chapter_id)
    reply = services.conversations.converse(req.user_id, req.chapter_id, req.message, context)
    return ChatResponse(output=reply.content, timestamp=reply.timestamp, chapter_id=req.chapter_id)


@router.get("/history")
def history(
    user_id: str,
    chapter_id: str,
    limit: Optional[int] = Query(None, ge=1),
    services=Depends(get_services),
):
    limit = min(limit or services.settings.history_limit, services.settings.history_limit)
    items = services.conversations.history(user_id, chapter_id, limit=limit)
    return {"ok": True, "items": items}


@router.get("/synthesis")
def synthesis(user_id: str, chapter_id: str, services=Depends(get_services)):
    document = services.synthesis.synthesize(user_id, chapter_id)
    return {"ok": True, "content": document}


@router.post("/synthesis/merge")
def merge_synthesis(req: MergeSynthesisRequest, services=Depends(get_services)):
    item = services.library.merge_synthesis(req.chapter_id, req.user_id)
    return {"ok": True, "item": item}
