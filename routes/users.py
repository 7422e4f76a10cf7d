from fastapi import APIRouter, Depends

from deps import get_services
from models import UserUpsertRequest

router = APIRouter(prefix="/api/users", tags=["users"])


@router.put("")
def upsert_user(req: UserUpsertRequest, services=Depends(get_services)):
    return {"ok": True, "item": services.library.upsert_user(req)}


@router.get("/{user_id}")
def get_user(user_id: str, services=Depends(get_services)):
    return {"ok": True, "item": services.library.get_user(user_id)}
