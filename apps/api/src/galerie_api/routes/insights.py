from fastapi import APIRouter, Depends
import logging
from pydantic import BaseModel
from typing import Optional, Union
from galerie_core.auth import get_current_user
from galerie_core.repository import ContentRepository
from ..deps import actor, get_repository

router = APIRouter(prefix="/studio-insights", tags=["studio-insights"])
log = logging.getLogger("galerie_api")


class InsightRequest(BaseModel):
    stat_value: str = ""
    stat_caption: str = ""
    data_count: Optional[Union[int, str]] = None
    position: Optional[Union[int, str]] = None


@router.get("/")
def list_insights(user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    return [i.to_dict() for i in repo.list_insights()]


@router.post("/", status_code=201)
def create_insight(data: InsightRequest, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    insight = repo.create_insight(data.stat_value, data.stat_caption, data_count=data.data_count, position=data.position)
    log.info("insights.create ok id=%s actor=%s", insight.id, actor(user))
    return insight.to_dict()


@router.put("/{insight_id}")
def update_insight(
    insight_id: int,
    data: InsightRequest,
    user = Depends(get_current_user),
    repo: ContentRepository = Depends(get_repository),
):
    insight = repo.update_insight(
        insight_id, data.stat_value, data.stat_caption, data_count=data.data_count, position=data.position
    )
    log.info("insights.update ok id=%s actor=%s", insight.id, actor(user))
    return insight.to_dict()


@router.delete("/{insight_id}")
def delete_insight(insight_id: int, user = Depends(get_current_user), repo: ContentRepository = Depends(get_repository)):
    repo.delete_insight(insight_id)
    log.info("insights.delete ok id=%s actor=%s", insight_id, actor(user))
    return {"status": "deleted"}
