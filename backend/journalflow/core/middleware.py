import logging
import time

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from journalflow.core.errors import WorkflowError

# === 结构化日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("journalflow")


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """
    工作流错误统一渲染为 {detail, code, retryable}。

    中文注释: 被拒绝的操作记录 WARNING（传输层故障已在存储层记录 ERROR）。
    """
    logger.warning(
        "Rejected %s %s: code=%s status=%s detail=%s",
        request.method,
        request.url.path,
        exc.code,
        exc.status_code,
        exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    统一异常捕获中间件：请求日志 + 兜底 500
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                f"Method: {request.method} Path: {request.url.path} Status: {response.status_code} Time: {process_time:.4f}s"
            )
            return response
        except WorkflowError as exc:
            return await workflow_error_handler(request, exc)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "type": "http_exception"},
            )
        except Exception as e:
            logger.error(f"Unhandled Exception: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "code": "server_error", "retryable": False},
            )
