from fastapi import APIRouter, Depends, Query
from galerie_core.auth import get_current_user
from galerie_core.repository import ContentRepository
from ..deps import get_repository

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/")
def list_messages(
    limit: int = Query(20, ge=1, le=200),
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
):
    return [m.to_dict() for m in repo.list_messages(limit=limit)]
