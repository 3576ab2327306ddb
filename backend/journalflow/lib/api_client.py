import os
from typing import Any, Callable, Optional

from supabase import Client, create_client

from journalflow.core.config import AppConfig, app_config

# 中文注释:
# - supabase: anon key，仅用于 Auth API 校验非 HS256 token；
# - supabase_admin: service role key，submissions / user_profiles 的所有读写都走它（权限由工作流守卫判定，不依赖 RLS）。
ANON_KEY_ENV = "SUPABASE_ANON_KEY"


class _LazySupabaseClient:
    """
    首次访问属性时才创建 Client：缺少环境变量时模块仍可导入（测试会注入内存实现）。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def __getattr__(self, item: str) -> Any:
        if self._client is None:
            self._client = self._factory()
        return getattr(self._client, item)

    def __repr__(self) -> str:
        state = "connected" if self._client is not None else "lazy"
        return f"<{self._name} ({state})>"


def _connect(config: AppConfig, key: str, key_name: str) -> Client:
    if not config.supabase_url:
        raise RuntimeError("SUPABASE_URL is required")
    if not key:
        raise RuntimeError(f"{key_name} is required")
    return create_client(config.supabase_url, key)


def _create_supabase() -> Client:
    return _connect(app_config, (os.environ.get(ANON_KEY_ENV) or "").strip(), ANON_KEY_ENV)


def _create_supabase_admin() -> Client:
    return _connect(app_config, app_config.supabase_key, "SUPABASE_SERVICE_ROLE_KEY")


supabase: Client = _LazySupabaseClient(_create_supabase, name="supabase")  # type: ignore[assignment]

supabase_admin: Client = _LazySupabaseClient(_create_supabase_admin, name="supabase_admin")  # type: ignore[assignment]
