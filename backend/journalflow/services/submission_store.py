"""
Submission Record Store：稿件的唯一数据入口

中文注释:
1. 权威数据在 Supabase `submissions` 表；进程内只保留按 id 的短 TTL 读穿缓存，写成功即失效。
2. 写操作按稿件 id 串行化（进程内锁），跨进程用 row_version 做 compare-and-swap；输掉竞争时基于最新行重试，重试耗尽抛 Conflict。
3. 每次写都基于“服务端当前行”重新执行校验与变更，并以服务端返回的行作为结果（不做乐观本地猜测）。
4. Supabase/网络异常统一包装为 TransportError（可重试）；工作流错误原样向上抛出。
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable, Optional
from weakref import WeakValueDictionary

from postgrest.exceptions import APIError
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from journalflow.core.config import WorkflowConfig
from journalflow.core.errors import Conflict, InvalidTransition, NotFound, TransportError
from journalflow.core.short_ttl_cache import ShortTTLCache
from journalflow.lib.api_client import supabase_admin
from journalflow.models.submission import Submission

logger = logging.getLogger("journalflow.store")

SUBMISSIONS_TABLE = "submissions"

# row_version 竞争失败后的最多尝试次数（含首次）
CAS_ATTEMPTS = 3


def extract_rows(response: Any) -> list[dict[str, Any]]:
    """兼容 supabase-py 不同版本的响应格式"""
    if response is None:
        return []
    data = getattr(response, "data", None)
    if data is None and isinstance(response, tuple) and len(response) == 2:
        data = response[1]
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def _is_unique_violation(err: APIError) -> bool:
    text = str(err).lower()
    return "23505" in text or "duplicate key" in text


class SubmissionStore:
    def __init__(
        self,
        client: Any = None,
        *,
        config: WorkflowConfig | None = None,
        cache: ShortTTLCache[Submission] | None = None,
    ) -> None:
        self.client = client if client is not None else supabase_admin
        self.config = config or WorkflowConfig.from_env()
        self._cache: ShortTTLCache[Submission] = cache if cache is not None else ShortTTLCache(max_entries=1024)
        # 只保留正在使用的锁；无人持有时随引用释放自动移除
        self._locks: WeakValueDictionary[str, Lock] = WeakValueDictionary()
        self._locks_guard = Lock()

    def _execute(self, query: Any, *, action: str) -> Any:
        try:
            return query.execute()
        except APIError as e:
            if _is_unique_violation(e):
                raise Conflict(f"Cannot {action}: a submission with this id already exists") from e
            logger.error("[SubmissionStore] %s failed: %s", action, e, exc_info=True)
            raise TransportError(f"Persistence service rejected the request while trying to {action}") from e
        except Exception as e:
            logger.error("[SubmissionStore] %s failed: %s", action, e, exc_info=True)
            raise TransportError(f"Persistence service unavailable while trying to {action}") from e

    def _lock_for(self, submission_id: str) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(submission_id)
            if lock is None:
                lock = Lock()
                self._locks[submission_id] = lock
            return lock

    def fetch(self, submission_id: str) -> Submission:
        """直接读取服务端当前行（绕过缓存）。"""
        resp = self._execute(
            self.client.table(SUBMISSIONS_TABLE).select("*").eq("id", submission_id).limit(1),
            action="load submission",
        )
        rows = extract_rows(resp)
        if not rows:
            raise NotFound(f"Submission {submission_id} not found")
        return Submission.model_validate(rows[0])

    def get(self, submission_id: str) -> Submission:
        submission = self._cache.get_or_load(
            submission_id,
            lambda: self.fetch(submission_id),
            ttl_sec=self.config.cache_ttl_sec,
        )
        # 调用方拿到的是副本，修改不影响缓存
        return submission.model_copy(deep=True)

    def list_submissions(
        self,
        *,
        corresponding_author: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        editor_id: Optional[str] = None,
        status: Optional[str] = None,
        peer_review_type: Optional[str] = None,
    ) -> list[Submission]:
        query = self.client.table(SUBMISSIONS_TABLE).select("*")
        if corresponding_author:
            query = query.eq("corresponding_author", corresponding_author)
        if reviewer_id:
            query = query.contains("reviewers", [reviewer_id])
        if editor_id:
            query = query.eq("editor_id", editor_id)
        if status:
            query = query.eq("status", status)
        if peer_review_type:
            query = query.eq("peer_review_type", peer_review_type)
        query = query.order("updated_date", desc=True)
        rows = extract_rows(self._execute(query, action="list submissions"))
        return [Submission.model_validate(row) for row in rows]

    def insert(self, submission: Submission) -> Submission:
        problems = submission.invariant_violations()
        if problems:
            raise InvalidTransition("Rejected submission: " + "; ".join(problems))
        resp = self._execute(
            self.client.table(SUBMISSIONS_TABLE).insert(submission.to_row()),
            action="create submission",
        )
        rows = extract_rows(resp)
        if not rows:
            raise TransportError("Persistence service returned no row for the created submission")
        return Submission.model_validate(rows[0])

    def mutate(self, submission_id: str, apply: Callable[[Submission], Submission]) -> Submission:
        """
        以服务端当前状态为基准执行一次原子变更。

        apply 接收一份稿件副本，返回变更后的稿件；apply 抛出的工作流错误会中止写入（无部分生效）。
        row_version 比较失败（其他进程先写入）时重新读取最新行、重新执行 apply（守卫随之重新校验），
        因此后到的写入以最新状态为基准生效；重试耗尽才抛 Conflict。
        """
        with self._lock_for(submission_id):
            return self._mutate_latest(submission_id, apply)

    @retry(
        retry=retry_if_exception_type(Conflict),
        stop=stop_after_attempt(CAS_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=0.5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _mutate_latest(self, submission_id: str, apply: Callable[[Submission], Submission]) -> Submission:
        current = self.fetch(submission_id)
        updated = apply(current.model_copy(deep=True))

        problems = updated.invariant_violations()
        if problems:
            raise InvalidTransition("Rejected write: " + "; ".join(problems))

        updated = updated.model_copy(update={"row_version": current.row_version + 1})
        payload = updated.to_row()
        payload.pop("id", None)

        resp = self._execute(
            self.client.table(SUBMISSIONS_TABLE)
            .update(payload)
            .eq("id", submission_id)
            .eq("row_version", current.row_version),
            action="update submission",
        )
        rows = extract_rows(resp)
        self._cache.invalidate(submission_id)
        if not rows:
            raise Conflict(
                f"Submission {submission_id} kept changing concurrently; reload and retry against the latest state"
            )
        return Submission.model_validate(rows[0])

    def invalidate(self, submission_id: str) -> None:
        self._cache.invalidate(submission_id)
