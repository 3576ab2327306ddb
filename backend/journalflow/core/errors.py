"""
工作流错误分类

中文注释:
- 所有错误都继承 HTTPException，服务层直接抛出，API 层无需再做映射。
- code 是稳定的机器可读标识；detail 是给 UI 展示的具体原因（禁止笼统的 "failed"）。
- 只有 TransportError 可重试；其余错误重试同样输入不可能成功。
"""

from __future__ import annotations

from fastapi import HTTPException


class WorkflowError(HTTPException):
    code = "workflow_error"
    status_code_default = 400
    retryable = False

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)

    def to_payload(self) -> dict:
        return {"detail": self.detail, "code": self.code, "retryable": self.retryable}


class Unauthorized(WorkflowError):
    """Role or ownership guard failed."""

    code = "unauthorized"
    status_code_default = 403


class InvalidTransition(WorkflowError):
    """No (state, event) pair matches."""

    code = "invalid_transition"
    status_code_default = 409


class InvalidAssignment(WorkflowError):
    code = "invalid_assignment"
    status_code_default = 422


class RoleMismatch(WorkflowError):
    code = "role_mismatch"
    status_code_default = 422


class AlreadySubmitted(WorkflowError):
    code = "already_submitted"
    status_code_default = 409


class NotFound(WorkflowError):
    code = "not_found"
    status_code_default = 404


class Conflict(WorkflowError):
    """A write lost the race against a newer row version."""

    code = "conflict"
    status_code_default = 409


class TransportError(WorkflowError):
    code = "transport_error"
    status_code_default = 503
    retryable = True


ERRORS_BY_CODE: dict[str, type[WorkflowError]] = {
    cls.code: cls
    for cls in (
        Unauthorized,
        InvalidTransition,
        InvalidAssignment,
        RoleMismatch,
        AlreadySubmitted,
        NotFound,
        Conflict,
        TransportError,
    )
}
