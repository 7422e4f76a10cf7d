# routes/health.py
# Liveness plus a quick look at which providers are configured.

from fastapi import APIRouter, Depends

from deps import get_services
from format_parsers import list_formats

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
def health(services=Depends(get_services)):
    chat = services.chat_provider
    narration = services.narration_provider
    return {
        "ok": True,
        "chat_provider": type(chat).__name__,
        "chat_configured": getattr(chat, "configured", True),
        "narration_configured": getattr(narration, "configured", True),
        "formats": list_formats(),
    }
