import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int, *, min_value: int = 0) -> int:
    raw = (os.environ.get(key) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(min_value, value)


def _env_float(key: str, default: float) -> float:
    raw = (os.environ.get(key) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    Application environment config.
    """

    env: str  # 'development', 'staging', 'production'
    is_staging: bool
    supabase_url: str
    supabase_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        return AppConfig(
            env=env,
            is_staging=env == "staging",
            supabase_url=supabase_url,
            supabase_key=supabase_key,
        )


# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class WorkflowConfig:
    """
    稿件工作流配置（审稿期限、决策前置条件、缓存）

    中文注释:
    1) 审稿期限只是提示信息，不做强制过期（逾期审稿仍可提交）。
    2) require_complete_round 默认关闭：编辑可在审稿未全部完成时做出决定。
    """

    review_due_days: int
    due_soon_days: int
    require_complete_round: bool
    cache_ttl_sec: float

    @staticmethod
    def from_env() -> "WorkflowConfig":
        return WorkflowConfig(
            review_due_days=_env_int("REVIEW_DUE_DAYS", 14, min_value=1),
            due_soon_days=_env_int("REVIEW_DUE_SOON_DAYS", 7, min_value=0),
            require_complete_round=_env_bool("REQUIRE_COMPLETE_ROUND_FOR_DECISION", False),
            cache_ttl_sec=_env_float("SUBMISSION_CACHE_TTL_SEC", 30.0),
        )


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        return SentryConfig(
            enabled=_env_bool("SENTRY_ENABLED", bool(dsn)),
            dsn=dsn,
            environment=(os.environ.get("APP_ENV") or "development").strip().lower(),
            traces_sample_rate=_env_float("SENTRY_TRACES_SAMPLE_RATE", 0.0),
        )


def get_admin_emails() -> set[str]:
    """
    ADMIN_EMAILS 中的账号在加载 profile 时自动提升为 admin（便于本地/演示测试）。
    """
    raw = os.environ.get("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}
