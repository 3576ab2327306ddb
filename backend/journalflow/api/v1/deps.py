"""
服务依赖注入

中文注释:
- 进程内共享同一个 SubmissionStore（按 id 的写锁与读穿缓存必须是同一份）。
- 测试通过 app.dependency_overrides 替换 get_store / get_user_directory。
"""

from typing import Optional

from fastapi import Depends

from journalflow.core.config import WorkflowConfig
from journalflow.core.roles import get_user_directory
from journalflow.services.lifecycle_service import LifecycleService
from journalflow.services.review_service import ReviewService
from journalflow.services.submission_store import SubmissionStore
from journalflow.services.user_directory import UserDirectory
from journalflow.services.visibility_service import VisibilityService

_store: Optional[SubmissionStore] = None


def get_store() -> SubmissionStore:
    global _store
    if _store is None:
        _store = SubmissionStore(config=WorkflowConfig.from_env())
    return _store


def get_lifecycle_service(
    store: SubmissionStore = Depends(get_store),
    directory: UserDirectory = Depends(get_user_directory),
) -> LifecycleService:
    return LifecycleService(store, directory, config=store.config)


def get_review_service(store: SubmissionStore = Depends(get_store)) -> ReviewService:
    return ReviewService(store, config=store.config)


def get_visibility_service(store: SubmissionStore = Depends(get_store)) -> VisibilityService:
    return VisibilityService(store)
