import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("journalflow")

_SENTRY_ENABLED = False
try:
    from journalflow.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: Sentry 任何异常不得阻塞启动
    logger.warning("[sentry] init failed (ignored): %s", e)

from journalflow.api.v1 import admin_users, public, reviews, submissions, users
from journalflow.api.v1.endpoints import system
from journalflow.core.errors import WorkflowError
from journalflow.core.middleware import ExceptionHandlerMiddleware, workflow_error_handler

app = FastAPI(
    title="JournalFlow API",
    description="Manuscript lifecycle and review workflow backend",
    version="1.0.0",
)

if _SENTRY_ENABLED:
    try:
        from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

        app.add_middleware(SentryAsgiMiddleware)
    except Exception as e:
        logger.warning("[sentry] middleware attach failed (ignored): %s", e)


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:3000
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    if many:
        for part in many.split(","):
            o = (part or "").strip().rstrip("/")
            if o:
                origins.append(o)

    if not origins:
        origins = ["http://localhost:3000"]

    return list(dict.fromkeys(origins))


# === 中间件配置 ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ExceptionHandlerMiddleware)

# 工作流错误统一渲染 {detail, code, retryable}
app.add_exception_handler(WorkflowError, workflow_error_handler)

# === 路由注册 ===
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(admin_users.router, prefix="/api/v1")
app.include_router(public.router, prefix="/api/v1")
app.include_router(system.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "JournalFlow API is running", "docs": "/docs"}
