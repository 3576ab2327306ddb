from __future__ import annotations

from collections import OrderedDict
from threading import Lock
from time import monotonic
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

MIN_ENTRIES = 32


class ShortTTLCache(Generic[T]):
    """
    进程内短 TTL 读穿缓存（按稿件 id）。

    中文注释:
    - 缓存值只是服务端行的副本，写成功后由存储层 invalidate；
    - 容量满时先清过期项，再按最近最少使用（LRU）淘汰；
    - ttl_sec <= 0 表示不缓存（用于关闭缓存）。
    """

    def __init__(self, *, max_entries: int = 512) -> None:
        self._capacity = max(MIN_ENTRIES, int(max_entries or 512))
        self._entries: OrderedDict[str, tuple[float, T]] = OrderedDict()
        self._lock = Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry[0] <= monotonic():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry[1]

    def set(self, key: str, value: T, *, ttl_sec: float) -> None:
        if not ttl_sec or ttl_sec <= 0:
            return
        with self._lock:
            self._entries[key] = (monotonic() + float(ttl_sec), value)
            self._entries.move_to_end(key)
            if len(self._entries) > self._capacity:
                self._evict()

    def get_or_load(self, key: str, loader: Callable[[], T], *, ttl_sec: float) -> T:
        """命中直接返回；未命中调用 loader（加载失败不写缓存）。"""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value, ttl_sec=ttl_sec)
        return value

    def _evict(self) -> None:
        now = monotonic()
        for stale in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[stale]
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
