from typing import Optional

from fastapi import APIRouter, Depends, Query

from journalflow.api.v1.deps import get_visibility_service
from journalflow.models.submission import Submission
from journalflow.services.visibility_service import VisibilityService

router = APIRouter(prefix="/public", tags=["Public Resources"])


@router.get("/articles", response_model=list[Submission])
async def list_published_articles(
    q: Optional[str] = Query(None, max_length=200, description="标题/摘要/关键词/作者检索"),
    visibility: VisibilityService = Depends(get_visibility_service),
):
    """已发表文章（无需登录）"""
    return visibility.search_published(q)
