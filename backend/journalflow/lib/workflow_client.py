"""
JournalFlow HTTP 客户端（供前端 BFF / 脚本使用）

中文注释:
1. 本地缓存只接受服务端返回的对象：任何操作都不做乐观本地修改，失败时缓存保持原样。
2. 错误响应按 code 映射回 journalflow.core.errors 中的异常类；网络错误/超时/5xx 统一为 TransportError（可重试）。
3. refresh_submissions 采用 latest-wins：多个刷新重叠时，只有最后发起的那次会写入缓存，过期结果直接丢弃。
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import httpx
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from journalflow.core.errors import (
    ERRORS_BY_CODE,
    Conflict,
    NotFound,
    TransportError,
    Unauthorized,
    WorkflowError,
)
from journalflow.models.submission import AssignmentRole, Review, Submission
from journalflow.models.user import UserSummary

logger = logging.getLogger("journalflow.client")

READ_ATTEMPTS = 3

_FALLBACK_BY_STATUS: dict[int, type[WorkflowError]] = {
    401: Unauthorized,
    403: Unauthorized,
    404: NotFound,
    409: Conflict,
}


def _dump(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", exclude_unset=True)
    return payload


def error_from_response(response: httpx.Response) -> WorkflowError:
    """把错误响应还原成工作流异常（保留服务端给出的具体原因）。"""
    try:
        body = response.json()
    except ValueError:
        body = None

    code = body.get("code") if isinstance(body, dict) else None
    detail = body.get("detail") if isinstance(body, dict) else None
    if detail is None:
        detail = response.text or f"HTTP {response.status_code}"
    if not isinstance(detail, str):
        # FastAPI 请求校验错误（422）返回的是列表
        detail = str(detail)

    cls = ERRORS_BY_CODE.get(str(code or ""))
    if cls is not None:
        return cls(detail, status_code=response.status_code)
    if response.status_code >= 500:
        return TransportError(detail, status_code=response.status_code)
    fallback = _FALLBACK_BY_STATUS.get(response.status_code)
    if fallback is not None:
        return fallback(detail, status_code=response.status_code)
    return WorkflowError(detail, status_code=response.status_code)


class WorkflowClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/api/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.submissions: dict[str, Submission] = {}
        self._refresh_seq = 0

    async def __aenter__(self) -> "WorkflowClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._http.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach the workflow service: {e}") from e

        if response.status_code >= 400:
            error = error_from_response(response)
            logger.warning("%s %s rejected: code=%s detail=%s", method, path, error.code, error.detail)
            raise error
        return response.json()

    # 只读请求幂等，传输失败时自动重试；写操作交给调用方决定是否重试
    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(READ_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, max=1),
        reraise=True,
    )
    async def _get(self, path: str, *, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    def _remember(self, data: dict[str, Any]) -> Submission:
        submission = Submission.model_validate(data)
        self.submissions[submission.id] = submission
        return submission

    async def _mutate(self, path: str, payload: Any = None) -> Submission:
        data = await self._request("POST", path, json=_dump(payload) if payload is not None else None)
        return self._remember(data)

    # --- reads ---

    async def refresh_submissions(
        self,
        *,
        status: Optional[str] = None,
        peer_review_type: Optional[str] = None,
        mine: bool = False,
    ) -> Optional[list[Submission]]:
        """
        重新拉取当前角色可见的稿件列表。

        返回 None 表示本次结果已被更晚发起的刷新取代（结果被丢弃，缓存未变）。
        """
        self._refresh_seq += 1
        ticket = self._refresh_seq

        params: dict[str, Any] = {}
        if status:
            params["status"] = status
        if peer_review_type:
            params["peer_review_type"] = peer_review_type
        if mine:
            params["mine"] = "true"

        data = await self._get("/submissions", params=params or None)
        if ticket != self._refresh_seq:
            logger.debug("discarding stale submission list (ticket=%s latest=%s)", ticket, self._refresh_seq)
            return None

        submissions = [Submission.model_validate(row) for row in data or []]
        self.submissions = {s.id: s for s in submissions}
        return submissions

    async def get_submission(self, submission_id: str) -> Submission:
        try:
            data = await self._get(f"/submissions/{submission_id}")
        except NotFound:
            self.submissions.pop(submission_id, None)
            raise
        return self._remember(data)

    async def list_users(self, role: str) -> list[UserSummary]:
        data = await self._get("/users", params={"role": role})
        return [UserSummary.model_validate(row) for row in data or []]

    async def search_articles(self, q: Optional[str] = None) -> list[Submission]:
        data = await self._get("/public/articles", params={"q": q} if q else None)
        return [Submission.model_validate(row) for row in data or []]

    async def review_round_status(self, submission_id: str) -> dict[str, Any]:
        return await self._get(f"/submissions/{submission_id}/reviews/status")

    # --- writes ---

    async def create_submission(self, draft: Any) -> Submission:
        return await self._mutate("/submissions", draft)

    async def update_submission(self, submission_id: str, patch: Any) -> Submission:
        data = await self._request("PUT", f"/submissions/{submission_id}", json=_dump(patch))
        return self._remember(data)

    async def submit(self, submission_id: str) -> Submission:
        return await self._mutate(f"/submissions/{submission_id}/submit")

    async def assign(self, submission_id: str, role: AssignmentRole | str, user_ids: Iterable[str]) -> Submission:
        role_value = role.value if isinstance(role, AssignmentRole) else str(role)
        return await self._mutate(
            f"/submissions/{submission_id}/assign",
            {"role": role_value, "user_ids": list(user_ids)},
        )

    async def send_to_review(self, submission_id: str, reviewer_ids: Iterable[str]) -> Submission:
        return await self._mutate(
            f"/submissions/{submission_id}/send-to-review",
            {"reviewer_ids": list(reviewer_ids)},
        )

    async def desk_decision(self, submission_id: str, decision: str, comments: str = "") -> Submission:
        return await self._mutate(
            f"/submissions/{submission_id}/desk-decision",
            {"decision": decision, "comments": comments},
        )

    async def record_decision(self, submission_id: str, decision: str, comments: str = "") -> Submission:
        return await self._mutate(
            f"/submissions/{submission_id}/decision",
            {"decision": decision, "comments": comments},
        )

    async def submit_review(self, submission_id: str, payload: Any) -> Review:
        data = await self._request("POST", f"/submissions/{submission_id}/reviews", json=_dump(payload))
        # 服务端只返回 Review；缓存中的稿件已过期，丢弃而不是本地拼接
        self.submissions.pop(submission_id, None)
        return Review.model_validate(data)

    async def resubmit(self, submission_id: str, payload: Any) -> Submission:
        return await self._mutate(f"/submissions/{submission_id}/resubmit", payload)

    async def upload_copyedit(self, submission_id: str, document: str) -> Submission:
        return await self._mutate(f"/submissions/{submission_id}/copyedit", {"document": document})

    async def publish(self, submission_id: str) -> Submission:
        return await self._mutate(f"/submissions/{submission_id}/publish")
